"""
Report strategies for the aggregation engine.

Each report type (kills, losses, plain value facts, hourly heatmap, group-size
distribution) supplies a fact extractor, a classification function and a summary
formatter; the engine itself is shared.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .classifier import classify
from .errors import UnknownReportError
from .formatting import format_count, format_percent
from .schemas import AggregationResult, Classification, FactRecord, GroupDefinition, Trend

logger = logging.getLogger(__name__)


class ReportStrategy(ABC):
    """Abstract base class for report strategies."""

    report_type: str = ""

    @abstractmethod
    def extract(self, record: Dict[str, Any]) -> FactRecord:
        """
        Build a fact from a domain record.

        Args:
            record: Raw record from the data source

        Returns:
            FactRecord carrying the value and participant list for this report
        """
        pass

    @abstractmethod
    def format_summary(self, result: AggregationResult) -> str:
        """Text summary of one group's result for presentation layers."""
        pass

    def classify(self, fact: FactRecord, group: GroupDefinition) -> Classification:
        """Classify a fact relative to a group."""
        return classify(fact, group)

    def extract_all(self, records: Iterable[Dict[str, Any]]) -> Tuple[List[FactRecord], List[str]]:
        """
        Extract facts from records, skipping the ones that cannot be parsed.

        Returns:
            Tuple of extracted facts and warning messages for skipped records
        """
        facts = []
        warnings = []
        for position, record in enumerate(records):
            try:
                facts.append(self.extract(record))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                message = f"{self.report_type} record {position} skipped: {e}"
                logger.warning(message)
                warnings.append(message)
        return facts, warnings


def _parse_time(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return raw
    return datetime.fromisoformat(str(raw).replace('Z', '+00:00'))


def _attacker_id(attacker: Any) -> Any:
    # Malformed attacker entries are kept as non-player participants
    if isinstance(attacker, dict):
        return attacker.get('character_id')
    return None


class KillsStrategy(ReportStrategy):
    """Kills: attackers are the participants, value is the destroyed value."""

    report_type = "kills"

    def extract(self, record: Dict[str, Any]) -> FactRecord:
        attackers = record.get('attackers') or []
        return FactRecord(
            key=record['killmail_id'],
            timestamp=_parse_time(record['kill_time']),
            primary_character_id=record['character_id'],
            participant_character_ids=[_attacker_id(attacker) for attacker in attackers],
            value=record.get('total_value', 0),
            precomputed_solo_flag=record.get('solo'),
        )

    def format_summary(self, result: AggregationResult) -> str:
        percent = format_percent(result.solo_count, result.unique_fact_count)
        return (
            f"Total kills: {format_count(result.unique_fact_count)}\n"
            f"Solo kills: {format_count(result.solo_count)} ({percent}%)"
        )


class LossesStrategy(ReportStrategy):
    """Losses: attributed through the victim only."""

    report_type = "losses"

    def extract(self, record: Dict[str, Any]) -> FactRecord:
        return FactRecord(
            key=record['killmail_id'],
            timestamp=_parse_time(record['kill_time']),
            primary_character_id=record['character_id'],
            participant_character_ids=[record['character_id']],
            value=record.get('total_value', 0),
        )

    def format_summary(self, result: AggregationResult) -> str:
        percent = format_percent(result.high_value_count, result.unique_fact_count)
        return (
            f"Total ship losses: {format_count(result.unique_fact_count)}\n"
            f"High-value losses: {format_count(result.high_value_count)} ({percent}%)\n"
            f"Total value lost: {result.formatted_total_value}"
        )


class ValueStrategy(ReportStrategy):
    """Plain fact records with a trend-oriented summary."""

    report_type = "activity"

    _ARROWS = {
        Trend.INCREASING: "📈",
        Trend.DECREASING: "📉",
        Trend.STABLE: "➡️",
    }

    def extract(self, record: Dict[str, Any]) -> FactRecord:
        return FactRecord.model_validate(record)

    def format_summary(self, result: AggregationResult) -> str:
        return (
            f"{self._ARROWS[result.trend]} {format_count(result.unique_fact_count)} total "
            f"({result.average_per_day:.1f} per day) with {result.trend.value} trend"
        )


class HeatmapStrategy(KillsStrategy):
    """Kill activity by UTC hour of day."""

    report_type = "heatmap"

    def format_summary(self, result: AggregationResult) -> str:
        counts = result.hour_of_day_counts
        if not any(counts):
            return "No kills recorded in this period"
        peak = max(range(24), key=lambda hour: counts[hour])
        active_hours = sum(1 for count in counts if count)
        return (
            f"Peak activity: {peak:02d}:00 UTC ({format_count(counts[peak])} kills)\n"
            f"Active hours: {active_hours}/24"
        )


class DistributionStrategy(KillsStrategy):
    """Kills by number of attackers (group size)."""

    report_type = "distribution"

    def format_summary(self, result: AggregationResult) -> str:
        total = result.unique_fact_count
        lines = [
            f"{band.capitalize()}: {format_count(count)} ({format_percent(count, total)}%)"
            for band, count in result.group_size_distribution.items()
        ]
        return "\n".join(lines)


STRATEGIES: Dict[str, ReportStrategy] = {
    strategy.report_type: strategy
    for strategy in (
        KillsStrategy(),
        LossesStrategy(),
        ValueStrategy(),
        HeatmapStrategy(),
        DistributionStrategy(),
    )
}


def get_strategy(report_type: Optional[str] = None) -> ReportStrategy:
    """Look up a registered strategy; defaults to the plain value report."""
    if report_type is None:
        return STRATEGIES[ValueStrategy.report_type]
    try:
        return STRATEGIES[report_type]
    except KeyError:
        raise UnknownReportError(report_type) from None

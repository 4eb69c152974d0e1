"""
Per-group and cross-group summaries.

Composes attribution, classification, bucketing and trend estimation into
``AggregationResult`` objects and the ``CrossGroupSummary`` that sits above
them.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from .config import AggregationConfig
from .formatting import format_value
from .schemas import (
    AggregationResult,
    Classification,
    CrossGroupSummary,
    FactKey,
    FactRecord,
    Granularity,
    GroupDefinition,
    TimeSeriesPoint,
    TopPerformerMetric,
    ensure_utc,
)
from .time_buckets import bucket, days_in_range
from .trend import estimate

logger = logging.getLogger(__name__)

SummaryFormatter = Callable[[AggregationResult], str]


def hour_of_day_counts(facts: Sequence[FactRecord]) -> List[int]:
    """Number of facts in each UTC hour of the day, index 0 through 23."""
    counts = [0] * 24
    for fact in facts:
        counts[ensure_utc(fact.timestamp).hour] += 1
    return counts


def group_size_band(participant_count: int) -> str:
    """
    Name of the group-size band for a participant count.

    Counts below one (facts without any recorded participant) fall in the
    smallest band.
    """
    for name, upper in AggregationConfig.GROUP_SIZE_BANDS:
        if upper is None or participant_count <= upper:
            return name
    return AggregationConfig.GROUP_SIZE_BANDS[-1][0]


def group_size_distribution(facts: Sequence[FactRecord]) -> Dict[str, int]:
    """
    Facts per group-size band, every band present in ascending order.

    The size is the full participant list, NPC entries included, so it
    reflects how many attackers were on the fact.
    """
    distribution = {name: 0 for name, _ in AggregationConfig.GROUP_SIZE_BANDS}
    for fact in facts:
        distribution[group_size_band(len(fact.participant_character_ids))] += 1
    return distribution


def group_display_name(group: GroupDefinition) -> str:
    """Main character's name when known, otherwise the group's display name."""
    if group.main_character_id is not None:
        name = group.character_names.get(group.main_character_id)
        if name:
            return name
    return group.display_name


class AggregateSummaryBuilder:
    """Builds aggregation results for groups and the totals across them."""

    def __init__(
        self,
        high_value_threshold: Optional[int] = None,
        top_performer_metric: TopPerformerMetric = "total_value",
        summary_formatter: Optional[SummaryFormatter] = None,
    ):
        if high_value_threshold is None:
            high_value_threshold = AggregationConfig.DEFAULT_HIGH_VALUE_THRESHOLD
        self.high_value_threshold = high_value_threshold
        self.top_performer_metric = top_performer_metric
        self.summary_formatter = summary_formatter

    def build_time_series(
        self,
        facts: Sequence[FactRecord],
        start: datetime,
        end: datetime,
        granularity: Granularity,
    ) -> List[TimeSeriesPoint]:
        """Count and value per bucket, empty buckets included."""
        return [
            TimeSeriesPoint(
                bucket_start=window.start,
                count=len(window.facts),
                value=sum(fact.value for fact in window.facts),
            )
            for window in bucket(start, end, granularity, facts)
        ]

    def build_group_result(
        self,
        group: GroupDefinition,
        facts: Sequence[FactRecord],
        classifications: Mapping[FactKey, Classification],
        start: datetime,
        end: datetime,
        granularity: Granularity,
    ) -> AggregationResult:
        """
        Aggregate the facts attributed to one group.

        Args:
            group: Group being summarized
            facts: Facts attributed to the group, one per key
            classifications: Classification of each fact relative to this group
            start: Inclusive range start
            end: Exclusive range end
            granularity: Bucket size for the time series

        Returns:
            AggregationResult for the group
        """
        true_solo = group_solo = multi_party = 0
        total_value = 0
        high_value = 0

        for fact in facts:
            label = classifications.get(fact.key, Classification.MULTI_PARTY)
            if label == Classification.TRUE_SOLO:
                true_solo += 1
            elif label == Classification.GROUP_SOLO:
                group_solo += 1
            else:
                multi_party += 1

            total_value += fact.value
            if fact.value >= self.high_value_threshold:
                high_value += 1

        time_series = self.build_time_series(facts, start, end, granularity)
        days = days_in_range(start, end)

        result = AggregationResult(
            group_id=group.id,
            display_name=group_display_name(group),
            unique_fact_count=len(facts),
            solo_count=true_solo + group_solo,
            true_solo_count=true_solo,
            group_solo_count=group_solo,
            multi_party_count=multi_party,
            total_value=total_value,
            formatted_total_value=format_value(total_value),
            high_value_count=high_value,
            average_per_day=(len(facts) / days) if days else 0.0,
            time_series=time_series,
            trend=estimate([point.count for point in time_series]),
            hour_of_day_counts=hour_of_day_counts(facts),
            group_size_distribution=group_size_distribution(facts),
        )

        if self.summary_formatter is not None:
            result.summary_text = self.summary_formatter(result)

        logger.debug(
            f"Group {group.id}: {result.unique_fact_count} facts, "
            f"{result.solo_count} solo, value {result.formatted_total_value}, trend {result.trend.value}"
        )
        return result

    def top_performer(
        self,
        results: Sequence[AggregationResult],
        metric: Optional[TopPerformerMetric] = None,
    ) -> Optional[str]:
        """
        Group with the highest metric value.

        Uses strict greater-than, so the first group supplied wins a tie.
        Returns None when there are no groups or every group scores zero.
        """
        metric = metric or self.top_performer_metric
        best_id = None
        best_value = 0
        for result in results:
            value = getattr(result, metric)
            if value > best_value:
                best_id = result.group_id
                best_value = value
        return best_id

    def cross_group_summary(
        self,
        results: Sequence[AggregationResult],
        metric: Optional[TopPerformerMetric] = None,
    ) -> CrossGroupSummary:
        """Plain sums across groups plus the top performer."""
        metric = metric or self.top_performer_metric
        grand_total_value = sum(result.total_value for result in results)
        return CrossGroupSummary(
            grand_total_count=sum(result.unique_fact_count for result in results),
            grand_total_value=grand_total_value,
            formatted_grand_total_value=format_value(grand_total_value),
            top_performer_group_id=self.top_performer(results, metric),
            top_performer_metric=metric,
        )

    def summarize(
        self,
        attributions: Mapping[str, Set[FactKey]],
        facts: Sequence[FactRecord],
        classifications: Mapping[str, Mapping[FactKey, Classification]],
        groups: Sequence[GroupDefinition],
        start: datetime,
        end: datetime,
        granularity: Granularity,
    ) -> Tuple[List[AggregationResult], CrossGroupSummary]:
        """
        Build every group's result and the cross-group totals.

        Args:
            attributions: Fact keys per group id
            facts: Fact snapshot
            classifications: Per group id, the classification of each attributed fact
            groups: Groups in caller order
            start: Inclusive range start
            end: Exclusive range end
            granularity: Bucket size

        Returns:
            Tuple of per-group results (in group order) and the cross-group summary
        """
        results = []
        for group in groups:
            keys = attributions.get(group.id, set())
            group_facts = [fact for fact in facts if fact.key in keys]
            results.append(
                self.build_group_result(
                    group,
                    group_facts,
                    classifications.get(group.id, {}),
                    start,
                    end,
                    granularity,
                )
            )
        return results, self.cross_group_summary(results)

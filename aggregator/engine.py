"""
Aggregation Engine.

Pure, synchronous aggregation of an already-fetched fact/group snapshot into
per-group results and cross-group totals. Group computations share nothing but
the read-only snapshot and can run on a thread pool.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from .attribution import attribute, dedupe_facts
from .config import AggregationConfig
from .errors import AggregationValidationError
from .formatting import format_count
from .schemas import (
    AggregationReport,
    AggregationRequest,
    AggregationResult,
    FactKey,
    FactRecord,
    Granularity,
    GroupDefinition,
    RatioReport,
    RatioResult,
    TopPerformerMetric,
    ensure_utc,
)
from .strategies import ReportStrategy, get_strategy
from .summary import AggregateSummaryBuilder
from .time_buckets import select_granularity

logger = logging.getLogger(__name__)


def validate_request(request: AggregationRequest):
    """
    Reject requests that cannot be aggregated.

    Raises:
        AggregationValidationError: If the time range is empty or inverted, or
            two groups share an id
    """
    issues = []
    if request.start_time >= request.end_time:
        issues.append({
            "field": "dateRange",
            "message": "Start time must be before end time",
        })

    seen: Set[str] = set()
    for group in request.groups:
        if group.id in seen:
            issues.append({
                "field": "groups",
                "message": f"Duplicate group id {group.id}",
            })
        seen.add(group.id)

    if issues:
        raise AggregationValidationError(
            "; ".join(issue["message"] for issue in issues), issues
        )


class AggregationEngine:
    """Attributes, classifies, buckets and summarizes facts per group."""

    def __init__(
        self,
        max_workers: int = 1,
        default_high_value_threshold: int = AggregationConfig.DEFAULT_HIGH_VALUE_THRESHOLD,
        top_performer_metric: TopPerformerMetric = "total_value",
    ):
        self.max_workers = max(1, max_workers)
        self.default_high_value_threshold = default_high_value_threshold
        self.top_performer_metric = top_performer_metric

    def aggregate(
        self,
        request: AggregationRequest,
        strategy: Optional[ReportStrategy] = None,
    ) -> AggregationReport:
        """
        Aggregate a fact snapshot for every requested group.

        Args:
            request: Facts, groups, time range and options
            strategy: Report strategy supplying classification and summaries
                (defaults to the plain value report)

        Returns:
            AggregationReport with one result per group, in request order
        """
        validate_request(request)
        strategy = strategy or get_strategy()

        warnings: List[str] = []
        start, end = request.start_time, request.end_time
        granularity = request.granularity or select_granularity(start, end)
        threshold = request.high_value_threshold
        if threshold is None:
            threshold = self.default_high_value_threshold
        metric = request.top_performer_metric or self.top_performer_metric

        facts = dedupe_facts(request.facts, warnings)
        in_range = [fact for fact in facts if start <= fact.timestamp < end]
        if len(in_range) != len(facts):
            message = f"{len(facts) - len(in_range)} fact(s) outside the requested range ignored"
            logger.warning(message)
            warnings.append(message)

        logger.info(
            f"Aggregating {strategy.report_type}: {len(in_range)} facts, {len(request.groups)} groups, "
            f"{start.isoformat()} to {end.isoformat()} by {granularity.value}"
        )

        attributions = attribute(in_range, request.groups, warnings)
        builder = AggregateSummaryBuilder(
            high_value_threshold=threshold,
            top_performer_metric=metric,
            summary_formatter=strategy.format_summary,
        )

        def run(group: GroupDefinition) -> AggregationResult:
            return self._aggregate_group(
                group, attributions[group.id], in_range, strategy, builder, start, end, granularity
            )

        if self.max_workers > 1 and len(request.groups) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(run, request.groups))
        else:
            results = [run(group) for group in request.groups]

        summary = builder.cross_group_summary(results)
        logger.info(
            f"Aggregated {format_count(summary.grand_total_count)} attributions, "
            f"total value {summary.formatted_grand_total_value}, "
            f"top performer {summary.top_performer_group_id}"
        )

        return AggregationReport(
            report_type=strategy.report_type,
            start_time=start,
            end_time=end,
            granularity=granularity,
            high_value_threshold=threshold,
            results=results,
            summary=summary,
            warnings=warnings,
        )

    def _aggregate_group(
        self,
        group: GroupDefinition,
        keys: Set[FactKey],
        facts: List[FactRecord],
        strategy: ReportStrategy,
        builder: AggregateSummaryBuilder,
        start: datetime,
        end: datetime,
        granularity: Granularity,
    ) -> AggregationResult:
        """Classify and summarize the facts attributed to one group."""
        group_facts = [fact for fact in facts if fact.key in keys]
        classifications = {fact.key: strategy.classify(fact, group) for fact in group_facts}
        return builder.build_group_result(group, group_facts, classifications, start, end, granularity)

    def aggregate_records(
        self,
        records: Iterable[Dict[str, Any]],
        groups: List[GroupDefinition],
        start_time: datetime,
        end_time: datetime,
        strategy: ReportStrategy,
        granularity: Optional[Granularity] = None,
        high_value_threshold: Optional[int] = None,
    ) -> AggregationReport:
        """
        Extract facts from domain records with a strategy, then aggregate them.

        Records that fail extraction are skipped and reported as warnings.
        """
        facts, extraction_warnings = strategy.extract_all(records)
        request = AggregationRequest(
            facts=facts,
            groups=groups,
            start_time=ensure_utc(start_time),
            end_time=ensure_utc(end_time),
            granularity=granularity,
            high_value_threshold=high_value_threshold,
        )
        report = self.aggregate(request, strategy)
        report.warnings = extraction_warnings + report.warnings
        return report

    def ratio_report(self, kills: AggregationReport, losses: AggregationReport) -> RatioReport:
        """
        Kill/loss ratio and efficiency per group.

        Groups with neither kills nor losses are left out. The best group is the
        one with the highest ratio; the first group wins a tie.
        """
        losses_by_group = {result.group_id: result for result in losses.results}
        results = []
        for kill_result in kills.results:
            loss_result = losses_by_group.get(kill_result.group_id)
            total_kills = kill_result.unique_fact_count
            total_losses = loss_result.unique_fact_count if loss_result else 0
            if total_kills == 0 and total_losses == 0:
                continue

            if total_losses > 0:
                ratio = total_kills / total_losses
            else:
                ratio = float(total_kills)
            efficiency = total_kills / (total_kills + total_losses) * 100

            results.append(RatioResult(
                group_id=kill_result.group_id,
                display_name=kill_result.display_name,
                kills=total_kills,
                losses=total_losses,
                ratio=ratio,
                efficiency=efficiency,
            ))

        best = None
        for result in results:
            if best is None or result.ratio > best.ratio:
                best = result

        summary_text = "Kill-Death ratios for tracked characters"
        if best is not None and best.ratio > 0:
            summary_text += f"\nBest performer: {best.display_name} with K/D ratio of {best.ratio:.2f}"

        return RatioReport(
            start_time=kills.start_time,
            end_time=kills.end_time,
            results=results,
            best_group_id=best.group_id if best is not None and best.ratio > 0 else None,
            summary_text=summary_text,
        )

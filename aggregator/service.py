"""
Group Activity Stats Service.

HTTP front end for the aggregation engine: accepts full fact snapshots, or
fetches facts and groups from the repository (with retry and a result cache)
and returns per-group reports.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query

from .cache import MemoryCache, make_cache_key
from .config import settings
from .database import create_tables
from .engine import AggregationEngine
from .errors import AggregationValidationError, FetchError, UnknownReportError
from .repository import FactRepository
from .retry import RetryPolicy
from .schemas import (
    AggregationReport,
    AggregationRequest,
    Granularity,
    GroupDefinition,
    RatioReport,
    ensure_utc,
)
from .strategies import get_strategy

logger = logging.getLogger(__name__)


class ReportService:
    """Fetches snapshots and runs the engine over them."""

    def __init__(
        self,
        repository: FactRepository,
        engine: AggregationEngine,
        cache: Optional[MemoryCache] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.repository = repository
        self.engine = engine
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy()

    async def _load_groups(self, group_ids: Optional[List[str]]) -> List[GroupDefinition]:
        return await self.retry_policy.run(
            lambda: self.repository.fetch_groups(group_ids or None), "fetch_groups"
        )

    async def _load_facts(
        self,
        groups: List[GroupDefinition],
        start_time: datetime,
        end_time: datetime,
        report_type: str,
    ):
        character_ids = set()
        for group in groups:
            character_ids.update(group.member_character_ids)
        return await self.retry_policy.run(
            lambda: self.repository.fetch_facts(character_ids, start_time, end_time, report_type),
            f"fetch_facts({report_type})",
        )

    async def build_report(
        self,
        report_type: str,
        group_ids: Optional[List[str]],
        start_time: datetime,
        end_time: datetime,
        granularity: Optional[Granularity] = None,
        high_value_threshold: Optional[int] = None,
    ) -> AggregationReport:
        """
        Aggregate stored facts of one report type for the given groups.

        Args:
            report_type: Registered strategy name (kills, losses, activity, heatmap, distribution)
            group_ids: Groups to report on; every stored group when empty
            start_time: Inclusive range start
            end_time: Exclusive range end
            granularity: Bucket size; chosen from the range when omitted
            high_value_threshold: Overrides the configured threshold

        Returns:
            AggregationReport, possibly served from the cache
        """
        strategy = get_strategy(report_type)
        start_time, end_time = ensure_utc(start_time), ensure_utc(end_time)
        if start_time >= end_time:
            raise AggregationValidationError(
                "Start time must be before end time",
                [{"field": "dateRange", "message": "Start time must be before end time"}],
            )

        groups = await self._load_groups(group_ids)

        cache_key = None
        if self.cache is not None:
            cache_key = make_cache_key(
                report_type, groups, start_time, end_time, granularity, high_value_threshold
            )
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit for {cache_key}")
                return cached

        facts, warnings = await self._load_facts(groups, start_time, end_time, report_type)
        request = AggregationRequest(
            facts=facts,
            groups=groups,
            start_time=start_time,
            end_time=end_time,
            granularity=granularity,
            high_value_threshold=high_value_threshold,
        )
        report = self.engine.aggregate(request, strategy)
        report.warnings = warnings + report.warnings

        if self.cache is not None:
            self.cache.set(cache_key, report)
        return report

    async def build_ratio_report(
        self,
        group_ids: Optional[List[str]],
        start_time: datetime,
        end_time: datetime,
    ) -> RatioReport:
        """Kill/loss ratio report for the given groups."""
        kills = await self.build_report("kills", group_ids, start_time, end_time)
        losses = await self.build_report("losses", group_ids, start_time, end_time)
        return self.engine.ratio_report(kills, losses)


# Global instances
aggregation_engine = AggregationEngine(
    max_workers=settings.max_workers,
    default_high_value_threshold=settings.default_high_value_threshold,
    top_performer_metric=settings.top_performer_metric,
)
report_cache = MemoryCache(
    default_ttl=settings.cache_ttl_seconds,
    cleanup_interval=settings.cache_cleanup_interval_seconds,
)
fact_repository = FactRepository()


def get_engine() -> AggregationEngine:
    """Engine dependency."""
    return aggregation_engine


def get_repository() -> FactRepository:
    """Fact source dependency."""
    return fact_repository


def get_report_service(
    repository: FactRepository = Depends(get_repository),
    engine: AggregationEngine = Depends(get_engine),
) -> ReportService:
    """Report service wired with the configured cache and retry policy."""
    return ReportService(
        repository,
        engine,
        cache=report_cache,
        retry_policy=RetryPolicy(
            max_attempts=settings.retry_attempts,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
            backoff_factor=settings.retry_backoff_factor,
        ),
    )


def _parse_datetime(raw: str, field: str) -> datetime:
    try:
        return ensure_utc(datetime.fromisoformat(raw.replace('Z', '+00:00')))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {field} time: {raw}")


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, AggregationValidationError):
        return HTTPException(status_code=400, detail={"message": str(e), "issues": e.issues})
    if isinstance(e, UnknownReportError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, FetchError):
        logger.error(f"Upstream fetch failed: {e}")
        return HTTPException(status_code=503, detail=str(e))
    logger.error(f"Report generation failed: {e}")
    return HTTPException(status_code=500, detail=str(e))


# FastAPI app for the stats service
app = FastAPI(
    title="Group Activity Stats",
    description="Attributes, classifies and aggregates activity facts per character group",
    version="1.0.0"
)


@app.on_event("startup")
async def startup_event():
    """Initialize service on startup."""
    create_tables()
    logger.info("Stats service started successfully")


@app.post("/aggregate", response_model=AggregationReport)
async def aggregate(
    request: AggregationRequest,
    report_type: str = Query("activity", description="Report strategy"),
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Aggregate a caller-supplied snapshot.

    The body carries the facts, groups and range; nothing is fetched.
    """
    try:
        return engine.aggregate(request, get_strategy(report_type))
    except Exception as e:
        raise _http_error(e) from e


@app.get("/reports/ratio", response_model=RatioReport)
async def get_ratio_report(
    start: str = Query(..., description="Range start (ISO format)"),
    end: str = Query(..., description="Range end (ISO format)"),
    group_ids: Optional[List[str]] = Query(None, description="Groups to include"),
    service: ReportService = Depends(get_report_service),
):
    """Kill/loss ratio and efficiency per group."""
    start_time = _parse_datetime(start, "start")
    end_time = _parse_datetime(end, "end")
    try:
        return await service.build_ratio_report(group_ids, start_time, end_time)
    except Exception as e:
        raise _http_error(e) from e


@app.get("/reports/{report_type}", response_model=AggregationReport)
async def get_report(
    report_type: str,
    start: str = Query(..., description="Range start (ISO format)"),
    end: str = Query(..., description="Range end (ISO format)"),
    group_ids: Optional[List[str]] = Query(None, description="Groups to include"),
    granularity: Optional[Granularity] = Query(None, description="Bucket size"),
    high_value_threshold: Optional[int] = Query(None, ge=0),
    service: ReportService = Depends(get_report_service),
):
    """Aggregate stored facts for the requested groups and range."""
    start_time = _parse_datetime(start, "start")
    end_time = _parse_datetime(end, "end")
    try:
        return await service.build_report(
            report_type, group_ids, start_time, end_time, granularity, high_value_threshold
        )
    except Exception as e:
        raise _http_error(e) from e


@app.get("/health", response_model=Dict[str, Any])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "group-activity-stats",
        "cached_reports": len(report_cache),
    }

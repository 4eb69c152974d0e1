"""
Calendar-aligned time bucketing.

Partitions a ``[start, end)`` range into hour, day or week windows (UTC) and
assigns each fact to exactly one of them.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Dict, Iterable, List

from .config import AggregationConfig
from .schemas import FactRecord, Granularity, TimeBucket, ensure_utc

logger = logging.getLogger(__name__)


_STEPS = {
    Granularity.HOUR: timedelta(hours=1),
    Granularity.DAY: timedelta(days=1),
    Granularity.WEEK: timedelta(weeks=1),
}


def floor_timestamp(timestamp: datetime, granularity: Granularity) -> datetime:
    """
    Truncate a timestamp to the start of its calendar bucket.

    Args:
        timestamp: Instant to truncate (naive values are read as UTC)
        granularity: Bucket size

    Returns:
        Bucket start in UTC
    """
    granularity = Granularity(granularity)
    timestamp = ensure_utc(timestamp)
    hour_start = timestamp.replace(minute=0, second=0, microsecond=0)
    if granularity == Granularity.HOUR:
        return hour_start

    day_start = hour_start.replace(hour=0)
    if granularity == Granularity.DAY:
        return day_start

    days_since_week_start = (day_start.weekday() - AggregationConfig.WEEK_START_WEEKDAY) % 7
    return day_start - timedelta(days=days_since_week_start)


def bucket_starts(start: datetime, end: datetime, granularity: Granularity) -> List[datetime]:
    """Every bucket boundary covering ``[start, end)``, empty buckets included."""
    granularity = Granularity(granularity)
    start = ensure_utc(start)
    end = ensure_utc(end)

    step = _STEPS[granularity]
    current = floor_timestamp(start, granularity)
    starts = []
    while current < end:
        starts.append(current)
        current += step
    return starts


def bucket(
    start: datetime,
    end: datetime,
    granularity: Granularity,
    facts: Iterable[FactRecord],
) -> List[TimeBucket]:
    """
    Partition facts into calendar-aligned buckets.

    Args:
        start: Inclusive range start
        end: Exclusive range end
        granularity: Bucket size
        facts: Facts to distribute; those outside the range are dropped

    Returns:
        Buckets in chronological order, one per boundary in the range
    """
    granularity = Granularity(granularity)
    start = ensure_utc(start)
    end = ensure_utc(end)

    buckets = [TimeBucket(start=s, granularity=granularity) for s in bucket_starts(start, end, granularity)]
    index: Dict[datetime, TimeBucket] = {b.start: b for b in buckets}

    dropped = 0
    for fact in facts:
        if not (start <= fact.timestamp < end):
            dropped += 1
            continue
        index[floor_timestamp(fact.timestamp, granularity)].facts.append(fact)

    if dropped:
        logger.debug(f"Dropped {dropped} facts outside {start.isoformat()} - {end.isoformat()}")

    return buckets


def select_granularity(start: datetime, end: datetime) -> Granularity:
    """Pick a default bucket size from the length of the range."""
    days = (ensure_utc(end) - ensure_utc(start)).total_seconds() / 86400
    if days <= AggregationConfig.HOURLY_MAX_DAYS:
        return Granularity.HOUR
    if days > AggregationConfig.DAILY_MAX_DAYS:
        return Granularity.WEEK
    return Granularity.DAY


def days_in_range(start: datetime, end: datetime) -> int:
    """Whole days touched by the range, rounded up."""
    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return max(math.ceil(seconds / 86400), 0)

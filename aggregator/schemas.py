"""
Shared schemas and utilities for the aggregation engine.

Input records (facts, groups, requests) are validated with pydantic on the way
in; result models are what the HTTP layer and any presentation code consume.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


FactKey = Union[int, str]
TopPerformerMetric = Literal["total_value", "unique_fact_count", "solo_count", "high_value_count"]


class Granularity(str, Enum):
    """Calendar bucket sizes."""
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"


class Classification(str, Enum):
    """Participant structure of a fact relative to one group."""
    TRUE_SOLO = "true_solo"
    GROUP_SOLO = "group_solo"
    MULTI_PARTY = "multi_party"


class Trend(str, Enum):
    """Qualitative direction of a time series."""
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_character_id(raw: Any) -> Optional[int]:
    """
    Convert a raw participant identifier into a player character id.

    Args:
        raw: Identifier as received from the data source

    Returns:
        Positive integer id, or None for nulls, NPC/system entries and
        anything non-numeric
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw > 0 else None
    if isinstance(raw, str):
        text = raw.strip()
        if text.isdigit():
            value = int(text)
            return value if value > 0 else None
    return None


class FactRecord(BaseModel):
    """Immutable record of a single tracked event."""
    model_config = ConfigDict(frozen=True)

    key: FactKey = Field(..., description="Unique identifier, stable across reads")
    timestamp: datetime = Field(..., description="Event time (UTC)")
    primary_character_id: int = Field(..., description="Primary actor of the event")
    participant_character_ids: List[Any] = Field(
        default_factory=list,
        description="Ordered participants; may contain NPC or malformed entries",
    )
    value: int = Field(0, ge=0, description="Arbitrary-precision magnitude")
    precomputed_solo_flag: Optional[bool] = Field(
        None, description="Stored solo flag from the source; display hint only"
    )

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class GroupDefinition(BaseModel):
    """Named collection of tracked characters reported as one unit."""

    id: str = Field(..., description="Group identifier")
    display_name: str = Field(..., description="Human readable group name")
    member_character_ids: FrozenSet[int] = Field(default_factory=frozenset)
    main_character_id: Optional[int] = Field(None, description="Member used for display naming")
    character_names: Dict[int, str] = Field(
        default_factory=dict, description="Optional character id to name lookup"
    )

    @model_validator(mode="after")
    def _main_is_member(self) -> "GroupDefinition":
        if self.main_character_id is not None and self.main_character_id not in self.member_character_ids:
            raise ValueError(
                f"main_character_id {self.main_character_id} is not a member of group {self.id}"
            )
        return self


class AggregationRequest(BaseModel):
    """Request payload for a single aggregation call."""

    facts: List[FactRecord] = Field(default_factory=list)
    groups: List[GroupDefinition] = Field(default_factory=list)
    start_time: datetime
    end_time: datetime
    granularity: Optional[Granularity] = Field(None, description="Chosen from the range when omitted")
    high_value_threshold: Optional[int] = Field(None, ge=0)
    top_performer_metric: Optional[TopPerformerMetric] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _range_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class TimeBucket(BaseModel):
    """Calendar-aligned window holding the facts that fall inside it."""

    start: datetime
    granularity: Granularity
    facts: List[FactRecord] = Field(default_factory=list)


class TimeSeriesPoint(BaseModel):
    """One bucket of a group's time series."""

    bucket_start: datetime
    count: int = 0
    value: int = 0


class AggregationResult(BaseModel):
    """Aggregated statistics for one group."""

    group_id: str
    display_name: str
    unique_fact_count: int = 0
    solo_count: int = 0
    true_solo_count: int = 0
    group_solo_count: int = 0
    multi_party_count: int = 0
    total_value: int = 0
    formatted_total_value: str = "0"
    high_value_count: int = 0
    average_per_day: float = 0.0
    time_series: List[TimeSeriesPoint] = Field(default_factory=list)
    trend: Trend = Trend.STABLE
    hour_of_day_counts: List[int] = Field(
        default_factory=lambda: [0] * 24, description="Facts per UTC hour of day, 0-23"
    )
    group_size_distribution: Dict[str, int] = Field(
        default_factory=dict, description="Facts per participant-count band"
    )
    summary_text: str = ""


class CrossGroupSummary(BaseModel):
    """Totals across every group of a report."""

    grand_total_count: int = 0
    grand_total_value: int = 0
    formatted_grand_total_value: str = "0"
    top_performer_group_id: Optional[str] = None
    top_performer_metric: TopPerformerMetric = "total_value"


class AggregationReport(BaseModel):
    """Full result of one aggregation call."""

    report_type: str
    start_time: datetime
    end_time: datetime
    granularity: Granularity
    high_value_threshold: int
    results: List[AggregationResult] = Field(default_factory=list)
    summary: CrossGroupSummary = Field(default_factory=CrossGroupSummary)
    warnings: List[str] = Field(default_factory=list)


class RatioResult(BaseModel):
    """Kill/loss ratio for one group."""

    group_id: str
    display_name: str
    kills: int = 0
    losses: int = 0
    ratio: float = 0.0
    efficiency: float = 0.0


class RatioReport(BaseModel):
    """Kill/loss ratios across groups."""

    start_time: datetime
    end_time: datetime
    results: List[RatioResult] = Field(default_factory=list)
    best_group_id: Optional[str] = None
    summary_text: str = ""

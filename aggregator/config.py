"""
Configuration management for the aggregator service.

Engine-wide constants live on ``AggregationConfig``; deployment settings are
loaded from environment variables through ``AggregatorSettings``.
"""
from typing import Literal

from pydantic_settings import BaseSettings


class AggregationConfig:
    """Constants shared by every aggregation call."""
    WEEK_START_WEEKDAY = 0  # Monday, for every weekly bucket in the system
    TREND_SLOPE_THRESHOLD = 0.05  # Absolute, not normalized by magnitude
    MIN_TREND_POINTS = 3
    DEFAULT_HIGH_VALUE_THRESHOLD = 100_000_000
    DISPLAY_OVERFLOW_LIMIT = 10 ** 18
    HOURLY_MAX_DAYS = 2  # Ranges up to this many days default to hourly buckets
    DAILY_MAX_DAYS = 30  # Longer ranges default to weekly buckets
    # Upper participant count per group-size band; the last band is open-ended
    GROUP_SIZE_BANDS = (
        ("solo", 1),
        ("small", 5),
        ("medium", 15),
        ("large", 50),
        ("blob", None),
    )


class AggregatorSettings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service configuration
    host: str = "0.0.0.0"
    port: int = 8001
    debug: bool = True

    # Engine execution
    max_workers: int = 1  # >1 fans group computations out to a thread pool
    default_high_value_threshold: int = AggregationConfig.DEFAULT_HIGH_VALUE_THRESHOLD
    top_performer_metric: Literal[
        "total_value", "unique_fact_count", "solo_count", "high_value_count"
    ] = "total_value"

    # Cache configuration
    cache_ttl_seconds: int = 300
    cache_cleanup_interval_seconds: int = 60

    # Retry policy for upstream fetches
    retry_attempts: int = 3
    retry_initial_delay: float = 1.0  # seconds
    retry_max_delay: float = 30.0  # seconds
    retry_backoff_factor: float = 2.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "AGGREGATOR_"
        extra = "ignore"  # Ignore extra environment variables


def get_settings() -> AggregatorSettings:
    """Get application settings instance."""
    return AggregatorSettings()


# Global settings instance
settings = get_settings()

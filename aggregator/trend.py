"""
Trend estimation from an ordered numeric series.
"""
from fractions import Fraction
from typing import Sequence, Union

from .config import AggregationConfig
from .schemas import Trend

Number = Union[int, float]

_THRESHOLD = Fraction(str(AggregationConfig.TREND_SLOPE_THRESHOLD))


def slope(series: Sequence[Number]) -> Fraction:
    """
    Ordinary least-squares slope of ``series[i]`` against ``i``.

    Computed with exact rational arithmetic so large integer series do not
    overflow a float.
    """
    n = len(series)
    if n < 2:
        return Fraction(0)

    x_mean = Fraction(n - 1, 2)
    y_mean = sum(Fraction(y) for y in series) / n

    numerator = Fraction(0)
    denominator = Fraction(0)
    for i, y in enumerate(series):
        dx = i - x_mean
        numerator += dx * (Fraction(y) - y_mean)
        denominator += dx * dx

    return numerator / denominator if denominator else Fraction(0)


def estimate(series: Sequence[Number]) -> Trend:
    """
    Label a series as increasing, stable or decreasing.

    Series shorter than three points are always stable. The slope thresholds
    are absolute, so high-magnitude series with a small relative change can
    still read as stable.
    """
    if len(series) < AggregationConfig.MIN_TREND_POINTS:
        return Trend.STABLE

    m = slope(series)
    if m > _THRESHOLD:
        return Trend.INCREASING
    if m < -_THRESHOLD:
        return Trend.DECREASING
    return Trend.STABLE

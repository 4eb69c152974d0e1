"""
Display formatting for aggregated values.

Formatting is for presentation only; every internal sum stays an exact integer.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from .config import AggregationConfig

logger = logging.getLogger(__name__)

Numeric = Union[int, float, Decimal]

# (scale, suffix, decimal places), smallest first
_UNITS = [
    (Decimal(10) ** 3, "K", 1),
    (Decimal(10) ** 6, "M", 2),
    (Decimal(10) ** 9, "B", 2),
    (Decimal(10) ** 12, "T", 2),
]

_OVERFLOW_LIMIT = Decimal(AggregationConfig.DISPLAY_OVERFLOW_LIMIT)
_OVERFLOW_TEXT = "1000000.00T+"


def _to_decimal(value: Numeric) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(int(value))


def _quantize(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def format_value(value: Numeric) -> str:
    """
    Format a magnitude with a K/M/B/T suffix.

    Values below 1000 render as plain integers and zero renders as ``"0"``.
    Thousands keep one decimal place, larger units two. The sign is preserved.
    Magnitudes at or above the display limit are clamped and flagged with a
    trailing ``+`` instead of overflowing.

    Examples:
        >>> format_value(999)
        '999'
        >>> format_value(1500)
        '1.5K'
        >>> format_value(2_500_000_000)
        '2.50B'
    """
    try:
        number = _to_decimal(value)
    except (InvalidOperation, ValueError):
        logger.warning(f"Cannot format non-numeric value {value!r}")
        return "0"

    if number.is_nan():
        logger.warning("Cannot format NaN value")
        return "0"

    sign = "-" if number < 0 else ""
    magnitude = abs(number)

    if magnitude >= _OVERFLOW_LIMIT:
        logger.warning(f"Value exceeds display range, clamping: {sign}{_OVERFLOW_TEXT}")
        return f"{sign}{_OVERFLOW_TEXT}"

    rounded = _quantize(magnitude, 0)
    if rounded < _UNITS[0][0]:
        if rounded == 0:
            return "0"
        return f"{sign}{int(rounded)}"

    position = 0
    for i, (scale, _, _) in enumerate(_UNITS):
        if magnitude >= scale:
            position = i

    scale, suffix, places = _UNITS[position]
    scaled = _quantize(magnitude / scale, places)
    # Rounding can push a value to the next unit, e.g. 999_950 -> 1000.0K
    if scaled >= 1000 and position + 1 < len(_UNITS):
        scale, suffix, places = _UNITS[position + 1]
        scaled = _quantize(magnitude / scale, places)

    return f"{sign}{scaled}{suffix}"


def format_count(count: int) -> str:
    """Integer with thousands separators."""
    return f"{count:,}"


def format_percent(part: int, whole: int) -> int:
    """Rounded percentage of ``part`` in ``whole``; 0 when ``whole`` is 0."""
    if not whole:
        return 0
    return int(_quantize(Decimal(part) * 100 / Decimal(whole), 0))

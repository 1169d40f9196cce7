"""
Field-level comparisons used by the match scorer.

- similarity: normalized Levenshtein similarity of two names
- dates_within_tolerance: calendar-day proximity
- amounts_match: magnitude agreement within a percentage of the average

All functions are pure and never raise on absent input.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from rapidfuzz.distance import Levenshtein


Number = Union[Decimal, float, int, str]


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Normalized edit-distance similarity in [0, 1].

    Inputs are lower-cased and trimmed; 1.0 means identical, 0.0 is
    returned when either side is empty.
    """
    if not a or not b:
        return 0.0

    a = a.lower().strip()
    b = b.lower().strip()

    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    distance = Levenshtein.distance(a, b)
    return 1.0 - distance / max(len(a), len(b))


def _to_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def dates_within_tolerance(
    d1: Optional[Union[date, datetime]],
    d2: Optional[Union[date, datetime]],
    tolerance_days: int
) -> bool:
    """True iff the calendar dates are at most `tolerance_days` apart."""
    if d1 is None or d2 is None:
        return False

    diff = abs((_to_date(d1) - _to_date(d2)).days)
    return diff <= tolerance_days


def _to_magnitude(value: Number) -> Optional[Decimal]:
    try:
        magnitude = abs(Decimal(str(value)))
    except (InvalidOperation, ValueError, TypeError):
        return None
    return magnitude if magnitude.is_finite() else None


def amounts_match(
    v1: Optional[Number],
    v2: Optional[Number],
    tolerance_percent: float
) -> bool:
    """
    True iff | |v1| - |v2| | is within `tolerance_percent` % of the
    average magnitude.

    Absent, unparseable or zero amounts never match.
    """
    if v1 is None or v2 is None:
        return False

    a1 = _to_magnitude(v1)
    a2 = _to_magnitude(v2)
    if a1 is None or a2 is None:
        return False
    if a1 == 0 or a2 == 0:
        return False

    average = (a1 + a2) / 2
    max_difference = average * Decimal(str(tolerance_percent)) / 100

    return abs(a1 - a2) <= max_difference

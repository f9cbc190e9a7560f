"""
Date-range comparisons used as temporal agreement signals.

Dates arrive already structured (``datetime.date`` or ISO calendar strings),
so no normalization is applied beyond parsing.
"""

from datetime import date
from typing import Optional, Union

DateLike = Union[date, str, None]

# Two sources commonly disagree by a few weeks about when something started
DEFAULT_TOLERANCE_DAYS = 45


def _as_date(value: DateLike) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def dates_overlap(
    start_a: DateLike,
    end_a: DateLike,
    start_b: DateLike,
    end_b: DateLike,
) -> bool:
    """
    True if the two ranges share at least one day.

    A missing start on either side is incomparable (False). A missing end is
    open-ended and extends indefinitely.
    """
    start_a, start_b = _as_date(start_a), _as_date(start_b)
    if start_a is None or start_b is None:
        return False

    end_a, end_b = _as_date(end_a), _as_date(end_b)
    if end_b is not None and start_a > end_b:
        return False
    if end_a is not None and start_b > end_a:
        return False
    return True


def dates_approx_equal(
    date_a: DateLike,
    date_b: DateLike,
    tolerance_days: int = DEFAULT_TOLERANCE_DAYS,
) -> bool:
    """True if both dates are known and within ``tolerance_days`` of each other."""
    date_a, date_b = _as_date(date_a), _as_date(date_b)
    if date_a is None or date_b is None:
        return False
    return abs((date_a - date_b).days) <= tolerance_days

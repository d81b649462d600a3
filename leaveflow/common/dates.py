"""Calendar arithmetic shared by the leave rules.

Every function works on calendar dates. A ``datetime`` passed in is reduced
to its date first, so two instants on the same day always compare equal.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional, Union

DateLike = Union[date, datetime]

# Saturday (5) and Sunday (6)
WEEKEND_DAYS = frozenset({5, 6})


def as_date(value: DateLike) -> date:
    """Normalise a date or datetime to a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    return value


def today_local() -> date:
    """Current local date.

    Wrapped so callers can inject a fixed ``today`` in tests.
    """
    return datetime.now().date()


def is_weekend(day: DateLike) -> bool:
    return as_date(day).weekday() in WEEKEND_DAYS


def date_range(start: DateLike, end: DateLike) -> list[date]:
    """Every calendar day in [start, end], inclusive. Empty when end < start."""
    current = as_date(start)
    last = as_date(end)
    days: list[date] = []
    while current <= last:
        days.append(current)
        current += timedelta(days=1)
    return days


def business_days_between(start: DateLike, end: DateLike) -> int:
    """Count Mon–Fri days in [start, end], inclusive.

    Holidays are not considered here; they are reported separately by the
    conflict detector.
    """
    return sum(1 for d in date_range(start, end) if d.weekday() not in WEEKEND_DAYS)


def days_until(target: DateLike, today: Optional[date] = None) -> int:
    """Whole days from today until ``target`` (negative when in the past)."""
    reference = today or today_local()
    return (as_date(target) - reference).days


def is_within_threshold(
    target: DateLike,
    threshold_days: int,
    today: Optional[date] = None,
) -> bool:
    """True iff ``0 <= days_until(target) <= threshold_days``."""
    remaining = days_until(target, today)
    return 0 <= remaining <= threshold_days

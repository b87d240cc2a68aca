# backend/app/domain/intervals.py
from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Any, Iterator, Optional

from .errors import ValidationError

# Reservation statuses that do not occupy nights.
NON_BLOCKING_STATUSES = frozenset({"cancelled", "no_show"})
RESERVATION_STATUSES = ("pending", "confirmed", "checked_in", "completed", "cancelled", "no_show")


def is_blocking(status: str | None) -> bool:
    return (status or "").lower() not in NON_BLOCKING_STATUSES


def as_date(v: Any) -> Optional[date]:
    if v is None:
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    try:
        return date.fromisoformat(str(v))
    except ValueError:
        return None


def validate_interval(check_in: Any, check_out: Any) -> tuple[date, date]:
    ci = as_date(check_in)
    co = as_date(check_out)
    if ci is None or co is None:
        raise ValidationError("check_in and check_out must be ISO dates")
    if co <= ci:
        raise ValidationError("check_out must be after check_in")
    return ci, co


def overlaps(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """
    Half-open overlap: [a_start, a_end) and [b_start, b_end).
    Same-day turnover (a_end == b_start) is not an overlap.
    """
    return a_start < b_end and b_start < a_end


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every day in [start, end)."""
    current = start
    while current < end:
        yield current
        current += timedelta(days=1)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First day of the month and first day of the next month (exclusive)."""
    if not 1 <= int(month) <= 12:
        raise ValidationError("month must be between 1 and 12")
    start = date(int(year), int(month), 1)
    days = calendar.monthrange(int(year), int(month))[1]
    return start, start + timedelta(days=days)


def parse_month_key(yyyy_mm: str) -> tuple[int, int]:
    try:
        y, m = [int(x) for x in str(yyyy_mm).strip().split("-")]
    except ValueError:
        raise ValidationError(f"invalid month {yyyy_mm!r}; expected YYYY-MM") from None
    month_bounds(y, m)
    return y, m


def month_key(year: int, month: int) -> str:
    return f"{int(year):04d}-{int(month):02d}"

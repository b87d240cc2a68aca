# backend/app/domain/availability.py
"""
Per-day booking status from reservation intervals and locked dates.

One resolver serves every presentation layer:
  - scope: a single property id, or None for "all properties passed in"
  - granularity: OWNER (5-way status) or PUBLIC (available / notAvailable)

The index is built once per data change in O(total interval-days); lookups are O(1).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Iterable, Optional

from .intervals import as_date, is_blocking, iter_days, month_bounds


class DayStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    COMPLETED = "completed"
    LOCKED = "locked"
    PAST = "past"


class PublicDayStatus(str, Enum):
    AVAILABLE = "available"
    NOT_AVAILABLE = "notAvailable"


class Granularity(str, Enum):
    OWNER = "owner"
    PUBLIC = "public"


@dataclass(frozen=True)
class AvailabilityIndex:
    today: date
    entries: dict[date, DayStatus] = field(default_factory=dict)

    def status_on(self, day: date) -> DayStatus:
        hit = self.entries.get(day)
        if hit is not None:
            return hit
        return DayStatus.PAST if day < self.today else DayStatus.AVAILABLE

    def month(self, year: int, month: int) -> dict[date, DayStatus]:
        start, end = month_bounds(year, month)
        return {d: self.status_on(d) for d in iter_days(start, end)}


def _in_scope(row: Any, property_id: Optional[int]) -> bool:
    if property_id is None:
        return True
    return int(getattr(row, "property_id")) == int(property_id)


def build_index(
    intervals: Iterable[Any],
    locks: Iterable[Any],
    *,
    today: date,
    property_id: Optional[int] = None,
) -> AvailabilityIndex:
    """
    Locks go in first and always win, including over past days.
    Intervals then fill [check_in, check_out) first-write-wins.
    """
    entries: dict[date, DayStatus] = {}

    for lock in locks:
        if not _in_scope(lock, property_id):
            continue
        d = as_date(getattr(lock, "date"))
        if d is not None:
            entries[d] = DayStatus.LOCKED

    for iv in intervals:
        if not _in_scope(iv, property_id):
            continue
        if not is_blocking(getattr(iv, "status", None)):
            continue
        check_in = as_date(getattr(iv, "check_in"))
        check_out = as_date(getattr(iv, "check_out"))
        if check_in is None or check_out is None or check_out <= check_in:
            continue

        status = DayStatus.COMPLETED if check_out <= today else DayStatus.BOOKED
        for d in iter_days(check_in, check_out):
            entries.setdefault(d, status)

    return AvailabilityIndex(today=today, entries=entries)


def collapse_public(status: DayStatus) -> PublicDayStatus:
    if status == DayStatus.AVAILABLE:
        return PublicDayStatus.AVAILABLE
    return PublicDayStatus.NOT_AVAILABLE


def resolve_month(
    intervals: Iterable[Any],
    locks: Iterable[Any],
    *,
    year: int,
    month: int,
    today: date,
    property_id: Optional[int] = None,
    granularity: Granularity = Granularity.OWNER,
) -> dict[date, str]:
    """
    Map every day of the month to its status value.

    PUBLIC granularity is customer-facing and must be scoped to exactly one property.
    """
    if granularity == Granularity.PUBLIC and property_id is None:
        raise ValueError("public availability requires a single property scope")

    index = build_index(intervals, locks, today=today, property_id=property_id)
    days = index.month(year, month)

    if granularity == Granularity.PUBLIC:
        return {d: collapse_public(s).value for d, s in days.items()}
    return {d: s.value for d, s in days.items()}


def summarize(days: dict[date, str]) -> dict[str, int]:
    out: dict[str, int] = {}
    for status in days.values():
        out[status] = out.get(status, 0) + 1
    return out

# backend/app/domain/ical.py
"""
RFC 5545 codec for the sync engine.

- parse_feed: VCALENDAR text -> FeedEvent records (UID, dates, STATUS, SUMMARY)
- build_feed: ExportEvent records -> deterministic VCALENDAR bytes

DTEND is exclusive on both sides, matching reservation check_out.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from icalendar import Calendar, Event

from .errors import SyncError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedEvent:
    uid: str
    check_in: date
    check_out: date
    status: str = ""  # upper-cased STATUS, "" when absent
    summary: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self.status == "CANCELLED"


@dataclass(frozen=True)
class ExportEvent:
    uid: str
    start: date
    end: date
    summary: str
    stamp: datetime
    kind_rank: int = 0  # reservations before locks on the same start day

    @property
    def sort_key(self) -> tuple:
        return (self.start, self.kind_rank, self.uid)


def _to_date(v: Any) -> Optional[date]:
    if v is None:
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    return None


def _prop_dt(component: Any, name: str) -> Optional[date]:
    prop = component.get(name)
    if prop is None:
        return None
    return _to_date(getattr(prop, "dt", None))


def _text(component: Any, name: str) -> Optional[str]:
    v = component.get(name)
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def parse_feed(data: str | bytes, *, max_event_days: int = 365) -> list[FeedEvent]:
    """
    Parse an upstream feed. A document that is not a VCALENDAR raises SyncError;
    individual unusable VEVENTs are skipped with a warning.
    """
    try:
        cal = Calendar.from_ical(data)
    except (ValueError, IndexError, KeyError) as e:
        raise SyncError(f"invalid iCal document: {e}") from e

    if getattr(cal, "name", None) != "VCALENDAR":
        raise SyncError("invalid iCal document: missing VCALENDAR")

    events: list[FeedEvent] = []
    seen: set[str] = set()

    for component in cal.walk("VEVENT"):
        uid = _text(component, "UID")
        start = _prop_dt(component, "DTSTART")
        if not uid or start is None:
            log.warning("ical: skipping VEVENT without UID/DTSTART (uid=%s)", uid)
            continue

        if uid in seen:
            # recurrence overrides share a UID; keep the first occurrence
            log.warning("ical: duplicate UID %s ignored", uid)
            continue

        end = _prop_dt(component, "DTEND")
        if end is None:
            duration = component.get("DURATION")
            delta = getattr(duration, "dt", None) if duration is not None else None
            if isinstance(delta, timedelta) and delta.days >= 1:
                end = start + timedelta(days=delta.days)
            else:
                end = start + timedelta(days=1)

        if end <= start:
            log.warning("ical: skipping VEVENT %s with DTEND <= DTSTART (%s, %s)", uid, start, end)
            continue

        max_end = start + timedelta(days=int(max_event_days))
        if end > max_end:
            log.warning("ical: event %s too long, truncating %s..%s to %s", uid, start, end, max_end)
            end = max_end

        seen.add(uid)
        events.append(
            FeedEvent(
                uid=uid,
                check_in=start,
                check_out=end,
                status=(_text(component, "STATUS") or "").upper(),
                summary=_text(component, "SUMMARY"),
            )
        )

    return events


def utc_stamp(v: Optional[datetime]) -> datetime:
    """DTSTAMP in UTC, second precision. Naive values are treated as UTC."""
    if v is None:
        v = datetime(1970, 1, 1)
    if v.tzinfo is None:
        v = v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc).replace(microsecond=0)


def build_feed(*, calendar_name: str, events: Iterable[ExportEvent], prodid: str) -> bytes:
    cal = Calendar()
    cal.add("prodid", prodid)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")
    cal.add("x-wr-calname", calendar_name)

    for e in sorted(events, key=lambda x: x.sort_key):
        ev = Event()
        ev.add("uid", e.uid)
        ev.add("dtstamp", utc_stamp(e.stamp))
        ev.add("dtstart", e.start)
        ev.add("dtend", e.end)
        ev.add("summary", e.summary)
        ev.add("status", "CONFIRMED")
        ev.add("transp", "OPAQUE")
        cal.add_component(ev)

    return cal.to_ical()

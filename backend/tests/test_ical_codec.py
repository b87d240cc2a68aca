# backend/tests/test_ical_codec.py
from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from app.domain.errors import SyncError
from app.domain.ical import ExportEvent, build_feed, parse_feed


def _cal(*events: str) -> str:
    body = "\r\n".join(events)
    return (
        "BEGIN:VCALENDAR\r\n"
        "VERSION:2.0\r\n"
        "PRODID:-//Upstream//Test//EN\r\n"
        f"{body}\r\n"
        "END:VCALENDAR\r\n"
    )


def _event(uid: str | None, *lines: str) -> str:
    parts = ["BEGIN:VEVENT"]
    if uid:
        parts.append(f"UID:{uid}")
    parts.append("DTSTAMP:20260101T000000Z")
    parts.extend(lines)
    parts.append("END:VEVENT")
    return "\r\n".join(parts)


def test_parses_date_and_datetime_events():
    events = parse_feed(
        _cal(
            _event("a@x", "DTSTART;VALUE=DATE:20260110", "DTEND;VALUE=DATE:20260112", "SUMMARY:Reserved"),
            _event("b@x", "DTSTART:20260115T150000Z", "DTEND:20260118T110000Z", "STATUS:cancelled"),
        )
    )
    assert [(e.uid, e.check_in, e.check_out) for e in events] == [
        ("a@x", date(2026, 1, 10), date(2026, 1, 12)),
        ("b@x", date(2026, 1, 15), date(2026, 1, 18)),
    ]
    assert events[0].summary == "Reserved"
    assert not events[0].cancelled
    assert events[1].cancelled


def test_missing_dtend_uses_duration_or_one_day():
    events = parse_feed(
        _cal(
            _event("a@x", "DTSTART;VALUE=DATE:20260110", "DURATION:P3D"),
            _event("b@x", "DTSTART;VALUE=DATE:20260120"),
        )
    )
    assert events[0].check_out == date(2026, 1, 13)
    assert events[1].check_out == date(2026, 1, 21)


def test_unusable_events_are_skipped():
    events = parse_feed(
        _cal(
            _event(None, "DTSTART;VALUE=DATE:20260110", "DTEND;VALUE=DATE:20260112"),
            _event("nostart@x", "SUMMARY:no dates"),
            _event("backwards@x", "DTSTART;VALUE=DATE:20260112", "DTEND;VALUE=DATE:20260110"),
            _event("ok@x", "DTSTART;VALUE=DATE:20260201", "DTEND;VALUE=DATE:20260203"),
        )
    )
    assert [e.uid for e in events] == ["ok@x"]


def test_duplicate_uid_keeps_first():
    events = parse_feed(
        _cal(
            _event("dup@x", "DTSTART;VALUE=DATE:20260110", "DTEND;VALUE=DATE:20260112"),
            _event("dup@x", "DTSTART;VALUE=DATE:20260310", "DTEND;VALUE=DATE:20260312"),
        )
    )
    assert len(events) == 1
    assert events[0].check_in == date(2026, 1, 10)


def test_overlong_event_is_clamped():
    events = parse_feed(
        _cal(_event("long@x", "DTSTART;VALUE=DATE:20260101", "DTEND;VALUE=DATE:20280101")),
        max_event_days=30,
    )
    assert events[0].check_out == date(2026, 1, 31)


def test_empty_calendar_yields_no_events():
    assert parse_feed(_cal("X-WR-CALNAME:empty")) == []


@pytest.mark.parametrize(
    "payload",
    [
        "this is not a calendar",
        "BEGIN:VEVENT\r\nUID:x\r\nDTSTART;VALUE=DATE:20260101\r\nEND:VEVENT\r\n",
    ],
)
def test_invalid_documents_raise_sync_error(payload):
    with pytest.raises(SyncError):
        parse_feed(payload)


def _export_events():
    stamp = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    return [
        ExportEvent(uid="reservation-2@t", start=date(2026, 2, 1), end=date(2026, 2, 4), summary="Reserved", stamp=stamp),
        ExportEvent(uid="locked-1@t", start=date(2026, 1, 20), end=date(2026, 1, 21), summary="Not available", stamp=stamp, kind_rank=1),
        ExportEvent(uid="reservation-1@t", start=date(2026, 1, 10), end=date(2026, 1, 12), summary="Reserved", stamp=stamp),
    ]


def test_build_feed_is_deterministic_and_sorted():
    a = build_feed(calendar_name="Cabin", events=_export_events(), prodid="-//T//T//EN")
    b = build_feed(calendar_name="Cabin", events=list(reversed(_export_events())), prodid="-//T//T//EN")
    assert a == b

    text = a.decode("utf-8")
    assert "X-WR-CALNAME:Cabin" in text
    assert "METHOD:PUBLISH" in text
    assert "DTSTART;VALUE=DATE:20260110" in text
    assert text.index("reservation-1@t") < text.index("locked-1@t") < text.index("reservation-2@t")


def test_export_round_trips_through_parser():
    events = _export_events()
    body = build_feed(calendar_name="Cabin", events=events, prodid="-//T//T//EN")
    parsed = parse_feed(body)
    assert {(e.check_in, e.check_out) for e in parsed} == {(e.start, e.end) for e in events}
    assert all(not e.cancelled for e in parsed)

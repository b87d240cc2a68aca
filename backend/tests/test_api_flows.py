# backend/tests/test_api_flows.py
from __future__ import annotations

from datetime import date, timedelta

import httpx

from app.models import utcnow
from app.routers.ical import get_fetcher
from app.services.ical_import import IcalFetcher

OWNER = {"X-User-Email": "owner@demo.local"}
STRANGER = {"X-User-Email": "someone@else.local"}


def _month_shift(d: date, delta: int) -> tuple[int, int]:
    idx = d.year * 12 + (d.month - 1) + delta
    return idx // 12, idx % 12 + 1


def _mk_property(client, headers=OWNER, name="Lakeside Cabin") -> int:
    r = client.post("/api/properties", json={"name": name, "city": "Traverse City"}, headers=headers)
    assert r.status_code == 200, r.text
    return r.json()["id"]


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.headers["X-Request-ID"]


def test_requires_dev_identity(client):
    assert client.get("/api/properties").status_code == 401


def test_other_users_property_is_not_found(client):
    pid = _mk_property(client)
    assert client.get(f"/api/properties/{pid}", headers=STRANGER).status_code == 404
    r = client.post(
        "/api/reservations",
        json={"property_id": pid, "check_in": "2026-01-10", "check_out": "2026-01-12"},
        headers=STRANGER,
    )
    assert r.status_code == 404


def test_overlapping_booking_returns_409_with_range(client):
    pid = _mk_property(client)
    ok = client.post(
        "/api/reservations",
        json={"property_id": pid, "check_in": "2026-01-11", "check_out": "2026-01-13"},
        headers=OWNER,
    )
    assert ok.status_code == 200, ok.text

    r = client.post(
        "/api/reservations",
        json={"property_id": pid, "check_in": "2026-01-10", "check_out": "2026-01-12"},
        headers=OWNER,
    )
    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "booking_conflict"
    assert body["conflict"]["check_in"] == "2026-01-11"
    assert body["conflict"]["check_out"] == "2026-01-13"


def test_invalid_interval_is_422(client):
    pid = _mk_property(client)
    r = client.post(
        "/api/reservations",
        json={"property_id": pid, "check_in": "2026-01-12", "check_out": "2026-01-12"},
        headers=OWNER,
    )
    assert r.status_code == 422
    assert r.json()["error"] == "validation_error"


def test_owner_calendar_is_gated_by_plan(client):
    pid = _mk_property(client)
    today = utcnow().date()
    ci = today + timedelta(days=1)
    client.post(
        "/api/reservations",
        json={"property_id": pid, "check_in": ci.isoformat(), "check_out": (ci + timedelta(days=2)).isoformat()},
        headers=OWNER,
    )

    r = client.get(
        "/api/calendar",
        params={"year": ci.year, "month": ci.month, "property_id": pid},
        headers=OWNER,
    )
    assert r.status_code == 200, r.text
    assert r.json()["days"][ci.isoformat()] == "booked"

    far_y, far_m = _month_shift(today, 6)
    denied = client.get("/api/calendar", params={"year": far_y, "month": far_m}, headers=OWNER)
    assert denied.status_code == 403
    assert denied.json()["upgrade_required"] is True


def test_share_page_is_two_way_and_revocable(client):
    pid = _mk_property(client)
    today = utcnow().date()
    lock_day = today + timedelta(days=1)
    client.post("/api/locked-dates", json={"property_id": pid, "date": lock_day.isoformat()}, headers=OWNER)

    enabled = client.post(f"/api/properties/{pid}/share-token", headers=OWNER).json()
    assert enabled["enabled"] is True
    token = enabled["token"]

    r = client.get(f"/share/{token}", params={"year": lock_day.year, "month": lock_day.month})
    assert r.status_code == 200
    days = r.json()["days"]
    assert set(days.values()) <= {"available", "notAvailable"}
    assert days[lock_day.isoformat()] == "notAvailable"

    client.delete(f"/api/properties/{pid}/share-token", headers=OWNER)
    gone = client.get(f"/share/{token}")
    assert gone.status_code == 404
    assert gone.json() == {"detail": "Not found"}


def test_feed_endpoint_is_stable_and_hides_token_state(client):
    pid = _mk_property(client)
    client.post(
        "/api/reservations",
        json={"property_id": pid, "check_in": "2026-03-10", "check_out": "2026-03-13"},
        headers=OWNER,
    )
    tok = client.post(f"/api/properties/{pid}/feed-token", headers=OWNER).json()
    assert tok["url"].endswith(f"/feed/{tok['token']}.ics")
    # enabling twice keeps the same URL
    assert client.post(f"/api/properties/{pid}/feed-token", headers=OWNER).json()["token"] == tok["token"]

    a = client.get(f"/feed/{tok['token']}.ics")
    b = client.get(f"/feed/{tok['token']}.ics")
    assert a.status_code == 200
    assert a.headers["content-type"].startswith("text/calendar")
    assert "lakeside-cabin.ics" in a.headers["content-disposition"]
    assert a.content == b.content
    assert b"DTSTART;VALUE=DATE:20260310" in a.content

    client.delete(f"/api/properties/{pid}/feed-token", headers=OWNER)
    revoked = client.get(f"/feed/{tok['token']}.ics")
    unknown = client.get(f"/feed/{'Z' * 43}.ics")
    malformed = client.get("/feed/abc.ics")
    assert revoked.status_code == unknown.status_code == malformed.status_code == 404
    assert revoked.content == unknown.content == malformed.content


def test_cashflow_export_reports_denied_months(client):
    pid = _mk_property(client)
    today = utcnow().date()
    client.post(
        "/api/cash/entries",
        json={
            "property_id": pid,
            "entry_type": "income",
            "description": "Stay, 3 nights",
            "amount": 360,
            "transaction_date": today.isoformat(),
        },
        headers=OWNER,
    )
    old_y, old_m = _month_shift(today, -5)

    r = client.post(
        "/api/reports/cashflow/export",
        json={"months": [f"{today.year:04d}-{today.month:02d}", f"{old_y:04d}-{old_m:02d}"]},
        headers=OWNER,
    )
    assert r.status_code == 200, r.text
    assert r.headers["x-entitlement-denied-months"] == f"{old_y:04d}-{old_m:02d}"
    lines = r.text.split("\r\n")
    assert lines[0].startswith("Date,Type,Category")
    assert '"Stay, 3 nights"' in lines[1]

    only_denied = client.post(
        "/api/reports/cashflow/export",
        json={"months": [f"{old_y:04d}-{old_m:02d}"]},
        headers=OWNER,
    )
    assert only_denied.status_code == 403


def test_subscription_lifecycle_without_network(client):
    pid = _mk_property(client)
    r = client.post(
        "/api/ical/subscriptions",
        params={"initial_sync": False},
        json={"property_id": pid, "feed_url": "https://www.airbnb.com/calendar/ical/1.ics", "source_name": "airbnb"},
        headers=OWNER,
    )
    assert r.status_code == 200, r.text
    sub = r.json()
    assert sub["last_sync_status"] == "pending"

    listed = client.get("/api/ical/subscriptions", params={"property_id": pid}, headers=OWNER).json()
    assert [s["id"] for s in listed] == [sub["id"]]

    removed = client.delete(f"/api/ical/subscriptions/{sub['id']}", headers=OWNER).json()
    assert removed["is_active"] is False
    assert client.get("/api/ical/subscriptions", params={"property_id": pid}, headers=OWNER).json() == []

    bad = client.post(
        "/api/ical/subscriptions",
        params={"initial_sync": False},
        json={"property_id": pid, "feed_url": "file:///etc/passwd", "source_name": "other"},
        headers=OWNER,
    )
    assert bad.status_code == 422


def test_manual_sync_imports_feed_and_shows_on_calendar(client):
    pid = _mk_property(client)
    ci = utcnow().date() + timedelta(days=3)
    co = ci + timedelta(days=2)
    body = "\r\n".join(
        [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            "BEGIN:VEVENT",
            "UID:abc-123@airbnb.com",
            f"DTSTART;VALUE=DATE:{ci:%Y%m%d}",
            f"DTEND;VALUE=DATE:{co:%Y%m%d}",
            "SUMMARY:Reserved",
            "END:VEVENT",
            "END:VCALENDAR",
        ]
    ) + "\r\n"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body, headers={"Content-Type": "text/calendar"})

    client.app.dependency_overrides[get_fetcher] = lambda: IcalFetcher(transport=httpx.MockTransport(handler))

    sub = client.post(
        "/api/ical/subscriptions",
        params={"initial_sync": False},
        json={"property_id": pid, "feed_url": "https://www.airbnb.com/calendar/ical/1.ics", "source_name": "airbnb"},
        headers=OWNER,
    ).json()

    r = client.post(f"/api/ical/subscriptions/{sub['id']}/sync", headers=OWNER)
    assert r.status_code == 200, r.text
    result = r.json()
    assert result["status"] == "synced"
    assert result["inserted"] == 1

    again = client.post(f"/api/ical/subscriptions/{sub['id']}/sync", headers=OWNER).json()
    assert again["inserted"] == 0
    assert again["unchanged"] == 1

    rows = client.get("/api/reservations", params={"property_id": pid}, headers=OWNER).json()
    assert [(x["check_in"], x["source"]) for x in rows] == [(ci.isoformat(), "airbnb")]

    cal = client.get(
        "/api/calendar",
        params={"year": ci.year, "month": ci.month, "property_id": pid},
        headers=OWNER,
    ).json()
    assert cal["days"][ci.isoformat()] == "booked"


def test_property_rename_and_delete(client):
    pid = _mk_property(client)
    r = client.patch(f"/api/properties/{pid}", json={"name": "  Lakeside Cabin North "}, headers=OWNER)
    assert r.status_code == 200
    assert r.json()["name"] == "Lakeside Cabin North"
    assert r.json()["city"] == "Traverse City"

    client.post(
        "/api/reservations",
        json={"property_id": pid, "check_in": "2026-02-01", "check_out": "2026-02-03"},
        headers=OWNER,
    )
    assert client.delete(f"/api/properties/{pid}", headers=STRANGER).status_code == 404
    assert client.delete(f"/api/properties/{pid}", headers=OWNER).json()["ok"] is True
    assert client.get(f"/api/properties/{pid}", headers=OWNER).status_code == 404
    assert client.get("/api/properties", headers=OWNER).json() == []

# backend/tests/test_sync_lease_and_locks.py
from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from app.domain.errors import ValidationError
from app.services.ical_import import create_subscription
from app.services.locked_dates import list_locked, lock_dates, unlock_date
from app.services.sync_lease import acquire_lease, release_lease

T0 = datetime(2026, 1, 1, 8, 0, 0)


def test_lease_is_exclusive_until_expiry(db, prop):
    sub = create_subscription(db, property_id=prop.id, feed_url="https://x.example/a.ics", source_name="other")

    assert acquire_lease(db, subscription_id=sub.id, owner="a", ttl_seconds=60, now=T0)
    assert not acquire_lease(db, subscription_id=sub.id, owner="b", ttl_seconds=60, now=T0 + timedelta(seconds=30))
    # same owner renews
    assert acquire_lease(db, subscription_id=sub.id, owner="a", ttl_seconds=60, now=T0 + timedelta(seconds=30))
    # expired => steal
    assert acquire_lease(db, subscription_id=sub.id, owner="b", ttl_seconds=60, now=T0 + timedelta(seconds=120))


def test_release_only_by_holder(db, prop):
    sub = create_subscription(db, property_id=prop.id, feed_url="https://x.example/a.ics", source_name="other")
    acquire_lease(db, subscription_id=sub.id, owner="a", ttl_seconds=60, now=T0)

    assert not release_lease(db, subscription_id=sub.id, owner="b", now=T0)
    assert release_lease(db, subscription_id=sub.id, owner="a", now=T0)
    assert acquire_lease(db, subscription_id=sub.id, owner="b", ttl_seconds=60, now=T0)


def test_lock_range_is_idempotent(db, prop):
    first = lock_dates(db, property_id=prop.id, start=date(2026, 7, 1), end=date(2026, 7, 3), reason="Painting")
    db.commit()
    again = lock_dates(db, property_id=prop.id, start=date(2026, 7, 2), end=date(2026, 7, 4))
    db.commit()

    assert [r.date for r in first] == [date(2026, 7, 1), date(2026, 7, 2), date(2026, 7, 3)]
    assert [r.date for r in again] == [date(2026, 7, 2), date(2026, 7, 3), date(2026, 7, 4)]
    assert again[0].id == first[1].id
    assert again[0].reason == "Painting"


def test_unlock_and_bad_ranges(db, prop):
    (row,) = lock_dates(db, property_id=prop.id, start=date(2026, 7, 1))
    db.commit()
    unlock_date(db, row)
    db.commit()
    assert list_locked(db, property_ids=[prop.id], start=date(2026, 7, 1), end=date(2026, 7, 2)) == []

    with pytest.raises(ValidationError):
        lock_dates(db, property_id=prop.id, start=date(2026, 7, 5), end=date(2026, 7, 1))
    with pytest.raises(ValidationError):
        lock_dates(db, property_id=prop.id, start=date(2026, 1, 1), end=date(2027, 6, 1))

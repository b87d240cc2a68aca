# backend/tests/test_conflict_guard.py
from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from app.domain.errors import BookingConflict, ValidationError
from app.models import Property
from app.services.conflict_guard import (
    create_reservation,
    delete_reservation,
    find_conflict,
    is_overlap_violation,
    update_reservation,
)


def _book(db, prop, ci, co, **kw):
    row = create_reservation(db, property_id=prop.id, check_in=ci, check_out=co, **kw)
    db.commit()
    return row


@pytest.mark.parametrize(
    "first,second",
    [
        ((date(2026, 1, 11), date(2026, 1, 13)), (date(2026, 1, 10), date(2026, 1, 12))),
        ((date(2026, 1, 10), date(2026, 1, 12)), (date(2026, 1, 11), date(2026, 1, 13))),
    ],
)
def test_overlap_rejected_regardless_of_order(db, prop, first, second):
    existing = _book(db, prop, *first)

    with pytest.raises(BookingConflict) as ei:
        create_reservation(db, property_id=prop.id, check_in=second[0], check_out=second[1])

    err = ei.value
    assert err.reservation_id == existing.id
    assert (err.check_in, err.check_out) == first
    assert first[0].isoformat() in err.message


def test_same_day_turnover_is_allowed(db, prop):
    _book(db, prop, date(2026, 2, 1), date(2026, 2, 4))
    row = _book(db, prop, date(2026, 2, 4), date(2026, 2, 6))
    assert row.id is not None


def test_other_property_does_not_conflict(db, owner, prop):
    other = Property(owner_user_id=owner.id, name="Other")
    db.add(other)
    db.commit()
    _book(db, prop, date(2026, 2, 1), date(2026, 2, 4))
    assert _book(db, other, date(2026, 2, 1), date(2026, 2, 4)).property_id == other.id


def test_cancelled_reservation_frees_nights(db, prop):
    first = _book(db, prop, date(2026, 3, 1), date(2026, 3, 5))
    update_reservation(db, first, status="cancelled")
    db.commit()

    second = _book(db, prop, date(2026, 3, 2), date(2026, 3, 4))

    # re-activating the cancelled booking must go through the guard again
    with pytest.raises(BookingConflict) as ei:
        update_reservation(db, first, status="confirmed")
    assert ei.value.reservation_id == second.id


def test_invalid_interval_rejected_before_write(db, prop):
    with pytest.raises(ValidationError):
        create_reservation(db, property_id=prop.id, check_in=date(2026, 1, 5), check_out=date(2026, 1, 5))
    with pytest.raises(ValidationError):
        create_reservation(db, property_id=prop.id, check_in=date(2026, 1, 5), check_out=date(2026, 1, 4))
    with pytest.raises(ValidationError):
        create_reservation(db, property_id=prop.id, check_in="not-a-date", check_out=date(2026, 1, 4))
    assert find_conflict(db, property_id=prop.id, check_in=date(2026, 1, 1), check_out=date(2026, 2, 1)) is None


def test_unknown_property_rejected(db):
    with pytest.raises(ValidationError):
        create_reservation(db, property_id=9999, check_in=date(2026, 1, 1), check_out=date(2026, 1, 2))


def test_moving_dates_ignores_itself(db, prop):
    row = _book(db, prop, date(2026, 4, 10), date(2026, 4, 14))
    update_reservation(db, row, check_in=date(2026, 4, 11), check_out=date(2026, 4, 15))
    db.commit()
    assert (row.check_in, row.check_out) == (date(2026, 4, 11), date(2026, 4, 15))


def test_moving_onto_another_booking_conflicts(db, prop):
    _book(db, prop, date(2026, 4, 1), date(2026, 4, 5))
    row = _book(db, prop, date(2026, 4, 10), date(2026, 4, 14))
    with pytest.raises(BookingConflict):
        update_reservation(db, row, check_in=date(2026, 4, 3))


def test_status_transitions(db, prop):
    row = _book(db, prop, date(2026, 5, 1), date(2026, 5, 3), status="pending")
    update_reservation(db, row, status="confirmed")
    update_reservation(db, row, status="checked_in")
    update_reservation(db, row, status="completed")
    db.commit()
    assert row.status == "completed"

    with pytest.raises(ValidationError):
        update_reservation(db, row, status="pending")
    with pytest.raises(ValidationError):
        update_reservation(db, row, status="vacationing")


def test_explicit_delete(db, prop):
    row = _book(db, prop, date(2026, 6, 1), date(2026, 6, 3))
    delete_reservation(db, row)
    db.commit()
    assert find_conflict(db, property_id=prop.id, check_in=date(2026, 6, 1), check_out=date(2026, 6, 3)) is None


class _Orig(Exception):
    pass


def test_only_the_overlap_constraint_maps_to_conflict():
    overlap = IntegrityError(
        "INSERT ...",
        {},
        _Orig('conflicting key value violates exclusion constraint "ex_reservations_no_overlap"'),
    )
    other = IntegrityError(
        "INSERT ...",
        {},
        _Orig('duplicate key value violates unique constraint "uq_reservations_subscription_uid"'),
    )
    assert is_overlap_violation(overlap)
    assert not is_overlap_violation(other)

# backend/app/services/conflict_guard.py
"""
Every reservation write goes through here.

The overlap check and the write happen in one transaction with the property
row locked (SELECT ... FOR UPDATE), and Postgres additionally enforces the
`ex_reservations_no_overlap` exclusion constraint. Nothing in this module
commits; callers own the transaction.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..domain.errors import BookingConflict, ValidationError
from ..domain.intervals import NON_BLOCKING_STATUSES, RESERVATION_STATUSES, is_blocking, validate_interval
from ..models import OVERLAP_CONSTRAINT_NAME, Property, Reservation

log = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"checked_in", "cancelled", "no_show"}),
    "checked_in": frozenset({"completed"}),
    "completed": frozenset(),
    "cancelled": frozenset({"pending", "confirmed"}),
    "no_show": frozenset(),
}


def _lock_property(db: Session, property_id: int) -> None:
    pid = db.execute(
        select(Property.id).where(Property.id == int(property_id)).with_for_update()
    ).scalar_one_or_none()
    if pid is None:
        raise ValidationError(f"unknown property id={property_id}")


def find_conflict(
    db: Session,
    *,
    property_id: int,
    check_in: date,
    check_out: date,
    ignore_reservation_id: Optional[int] = None,
) -> Optional[Reservation]:
    """First blocking reservation intersecting [check_in, check_out), if any."""
    q = select(Reservation).where(
        Reservation.property_id == int(property_id),
        Reservation.status.not_in(tuple(NON_BLOCKING_STATUSES)),
        Reservation.check_in < check_out,
        Reservation.check_out > check_in,
    )
    if ignore_reservation_id is not None:
        q = q.where(Reservation.id != int(ignore_reservation_id))
    return db.scalars(q.order_by(Reservation.check_in, Reservation.id).limit(1)).first()


def _conflict_from(row: Reservation) -> BookingConflict:
    return BookingConflict(
        property_id=row.property_id,
        check_in=row.check_in,
        check_out=row.check_out,
        reservation_id=row.id,
        source=row.source,
    )


def ensure_no_overlap(
    db: Session,
    *,
    property_id: int,
    check_in: date,
    check_out: date,
    ignore_reservation_id: Optional[int] = None,
) -> None:
    hit = find_conflict(
        db,
        property_id=property_id,
        check_in=check_in,
        check_out=check_out,
        ignore_reservation_id=ignore_reservation_id,
    )
    if hit is not None:
        log.info(
            "booking conflict %s..%s vs reservation %s (%s..%s)",
            check_in,
            check_out,
            hit.id,
            hit.check_in,
            hit.check_out,
            extra={"property_id": int(property_id)},
        )
        raise _conflict_from(hit)


def is_overlap_violation(exc: IntegrityError) -> bool:
    return OVERLAP_CONSTRAINT_NAME in str(getattr(exc, "orig", exc))


def _flush_guarded(
    db: Session,
    *,
    property_id: int,
    check_in: date,
    check_out: date,
    ignore_reservation_id: Optional[int],
) -> None:
    """
    Flush, mapping only the exclusion-constraint violation to BookingConflict.
    Any other integrity error propagates unchanged.
    """
    try:
        db.flush()
    except IntegrityError as e:
        if not is_overlap_violation(e):
            raise
        # the transaction is aborted; roll back before looking up the winner
        db.rollback()
        hit = find_conflict(
            db,
            property_id=property_id,
            check_in=check_in,
            check_out=check_out,
            ignore_reservation_id=ignore_reservation_id,
        )
        if hit is not None:
            conflict = _conflict_from(hit)
        else:
            conflict = BookingConflict(property_id=property_id, check_in=check_in, check_out=check_out)
        conflict.rolled_back = True
        raise conflict from e


def _check_status(status: str) -> str:
    s = (status or "").strip().lower()
    if s not in RESERVATION_STATUSES:
        raise ValidationError(f"unknown reservation status {status!r}")
    return s


def create_reservation(
    db: Session,
    *,
    property_id: int,
    check_in: Any,
    check_out: Any,
    status: str = "confirmed",
    source: str = "direct",
    subscription_id: Optional[int] = None,
    external_uid: Optional[str] = None,
    guest_name: Optional[str] = None,
    summary: Optional[str] = None,
    notes: Optional[str] = None,
) -> Reservation:
    ci, co = validate_interval(check_in, check_out)
    st = _check_status(status)

    _lock_property(db, property_id)
    if is_blocking(st):
        ensure_no_overlap(db, property_id=property_id, check_in=ci, check_out=co)

    row = Reservation(
        property_id=int(property_id),
        check_in=ci,
        check_out=co,
        status=st,
        source=source or "direct",
        subscription_id=subscription_id,
        external_uid=external_uid,
        guest_name=guest_name,
        summary=summary,
        notes=notes,
    )
    db.add(row)
    _flush_guarded(db, property_id=property_id, check_in=ci, check_out=co, ignore_reservation_id=None)
    log.info("reservation %s created %s..%s", row.id, ci, co, extra={"property_id": int(property_id), "reservation_id": row.id})
    return row


def update_reservation(
    db: Session,
    row: Reservation,
    *,
    check_in: Any = None,
    check_out: Any = None,
    status: Optional[str] = None,
    enforce_transitions: bool = True,
    **fields: Any,
) -> Reservation:
    """
    Edit dates and/or status. Any change that leaves the reservation blocking
    (new dates, or re-activation from cancelled) is re-checked against the
    other reservations on the property.
    """
    ci, co = validate_interval(
        check_in if check_in is not None else row.check_in,
        check_out if check_out is not None else row.check_out,
    )

    new_status = row.status
    if status is not None:
        new_status = _check_status(status)
        if enforce_transitions and new_status != row.status:
            allowed = ALLOWED_TRANSITIONS.get(row.status, frozenset())
            if new_status not in allowed:
                raise ValidationError(f"cannot change status from {row.status} to {new_status}")

    dates_changed = (ci, co) != (row.check_in, row.check_out)
    reactivated = is_blocking(new_status) and not is_blocking(row.status)

    _lock_property(db, row.property_id)
    if is_blocking(new_status) and (dates_changed or reactivated):
        ensure_no_overlap(
            db,
            property_id=row.property_id,
            check_in=ci,
            check_out=co,
            ignore_reservation_id=row.id,
        )

    row.check_in = ci
    row.check_out = co
    row.status = new_status
    for k, v in fields.items():
        if not hasattr(Reservation, k):
            raise ValidationError(f"unknown reservation field {k!r}")
        setattr(row, k, v)

    db.add(row)
    _flush_guarded(db, property_id=row.property_id, check_in=ci, check_out=co, ignore_reservation_id=row.id)
    return row


def delete_reservation(db: Session, row: Reservation) -> None:
    """Explicit user delete; everything else cancels instead."""
    rid = row.id
    db.delete(row)
    db.flush()
    log.info("reservation %s deleted", rid, extra={"reservation_id": rid})

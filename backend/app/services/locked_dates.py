# backend/app/services/locked_dates.py
from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.errors import ValidationError
from ..domain.intervals import as_date, iter_days
from ..models import LockedDate

log = logging.getLogger(__name__)

# a single request may not lock more than a year of days
MAX_LOCK_SPAN_DAYS = 366


def lock_dates(
    db: Session,
    *,
    property_id: int,
    start: Any,
    end: Any = None,
    reason: Optional[str] = None,
    user_id: Optional[int] = None,
) -> list[LockedDate]:
    """
    Lock one day, or every day in the inclusive range [start, end].
    Idempotent per day: already-locked days are returned as-is. Does NOT commit.
    """
    first = as_date(start)
    last = as_date(end) if end is not None else first
    if first is None or last is None:
        raise ValidationError("locked dates must be ISO dates")
    if last < first:
        raise ValidationError("end must be on or after start")
    if (last - first).days + 1 > MAX_LOCK_SPAN_DAYS:
        raise ValidationError(f"cannot lock more than {MAX_LOCK_SPAN_DAYS} days at once")

    existing = {
        r.date: r
        for r in db.scalars(
            select(LockedDate).where(
                LockedDate.property_id == int(property_id),
                LockedDate.date >= first,
                LockedDate.date <= last,
            )
        ).all()
    }

    out: list[LockedDate] = []
    for d in iter_days(first, last + timedelta(days=1)):
        row = existing.get(d)
        if row is None:
            row = LockedDate(property_id=int(property_id), date=d, reason=reason, created_by_user_id=user_id)
            db.add(row)
        out.append(row)

    db.flush()
    log.info("locked %d day(s) %s..%s", len(out), first, last, extra={"property_id": int(property_id)})
    return out


def unlock_date(db: Session, row: LockedDate) -> None:
    pid = row.property_id
    d = row.date
    db.delete(row)
    db.flush()
    log.info("unlocked %s", d, extra={"property_id": pid})


def list_locked(db: Session, *, property_ids: list[int], start: date, end: date) -> list[LockedDate]:
    """Locks on [start, end) for the given properties."""
    if not property_ids:
        return []
    return list(
        db.scalars(
            select(LockedDate)
            .where(LockedDate.property_id.in_(property_ids), LockedDate.date >= start, LockedDate.date < end)
            .order_by(LockedDate.date, LockedDate.id)
        ).all()
    )

# backend/app/services/calendar_service.py
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.availability import Granularity, resolve_month, summarize
from ..domain.entitlements import Feature
from ..domain.errors import EntitlementDenied
from ..domain.intervals import NON_BLOCKING_STATUSES, month_bounds, month_key
from ..models import CalendarShareToken, Property, Reservation, utcnow
from .entitlement_service import require_access
from .feed_tokens import resolve_active
from .locked_dates import list_locked
from .ownership import must_get_property

log = logging.getLogger(__name__)


def _reservations_in_window(db: Session, property_ids: list[int], start: date, end: date) -> list[Reservation]:
    if not property_ids:
        return []
    return list(
        db.scalars(
            select(Reservation)
            .where(
                Reservation.property_id.in_(property_ids),
                Reservation.status.not_in(tuple(NON_BLOCKING_STATUSES)),
                Reservation.check_in < end,
                Reservation.check_out > start,
            )
            .order_by(Reservation.check_in, Reservation.id)
        ).all()
    )


def _gate(db: Session, *, user_id: int, year: int, month: int, today: date) -> None:
    try:
        require_access(db, user_id=user_id, feature=Feature.CALENDAR, year=year, month=month, today=today)
    except EntitlementDenied as e:
        log.info("calendar month %s denied (limit=%s)", e.month_key, e.limit, extra={"user_id": int(user_id)})
        raise


def owner_month(
    db: Session,
    *,
    user_id: int,
    year: int,
    month: int,
    property_id: Optional[int] = None,
    today: Optional[date] = None,
) -> dict[str, Any]:
    """
    5-way status for every day of the month, for one property or all of the
    owner's properties.
    """
    today = today or utcnow().date()
    start, end = month_bounds(year, month)
    _gate(db, user_id=user_id, year=year, month=month, today=today)

    if property_id is not None:
        property_ids = [must_get_property(db, user_id=user_id, property_id=property_id).id]
    else:
        property_ids = list(
            db.scalars(select(Property.id).where(Property.owner_user_id == int(user_id)).order_by(Property.id)).all()
        )

    days = resolve_month(
        _reservations_in_window(db, property_ids, start, end),
        list_locked(db, property_ids=property_ids, start=start, end=end),
        year=year,
        month=month,
        today=today,
        property_id=property_id,
        granularity=Granularity.OWNER,
    )
    return {
        "month": month_key(year, month),
        "property_id": property_id,
        "property_ids": property_ids,
        "days": {d.isoformat(): s for d, s in days.items()},
        "summary": summarize(days),
    }


def shared_month(
    db: Session,
    *,
    token: str,
    year: int,
    month: int,
    today: Optional[date] = None,
) -> dict[str, Any]:
    """
    Customer-facing view behind a share token: exactly one property, 2-way
    status, limited by the property owner's calendar entitlement.
    """
    today = today or utcnow().date()
    row = resolve_active(db, CalendarShareToken, token)
    prop = db.get(Property, row.property_id)
    start, end = month_bounds(year, month)
    _gate(db, user_id=prop.owner_user_id, year=year, month=month, today=today)

    days = resolve_month(
        _reservations_in_window(db, [prop.id], start, end),
        list_locked(db, property_ids=[prop.id], start=start, end=end),
        year=year,
        month=month,
        today=today,
        property_id=prop.id,
        granularity=Granularity.PUBLIC,
    )
    return {
        "month": month_key(year, month),
        "property": {"name": prop.name, "city": prop.city},
        "days": {d.isoformat(): s for d, s in days.items()},
    }

# backend/app/services/ownership.py
from __future__ import annotations

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import IcalSubscription, LockedDate, Property, Reservation


def must_get_property(db: Session, *, user_id: int, property_id: int) -> Property:
    row = db.scalar(select(Property).where(Property.id == property_id, Property.owner_user_id == user_id))
    if not row:
        raise HTTPException(status_code=404, detail="property not found")
    return row


def must_get_reservation(db: Session, *, user_id: int, reservation_id: int) -> Reservation:
    row = db.scalar(
        select(Reservation)
        .join(Property, Property.id == Reservation.property_id)
        .where(Reservation.id == reservation_id, Property.owner_user_id == user_id)
    )
    if not row:
        raise HTTPException(status_code=404, detail="reservation not found")
    return row


def must_get_locked_date(db: Session, *, user_id: int, locked_date_id: int) -> LockedDate:
    row = db.scalar(
        select(LockedDate)
        .join(Property, Property.id == LockedDate.property_id)
        .where(LockedDate.id == locked_date_id, Property.owner_user_id == user_id)
    )
    if not row:
        raise HTTPException(status_code=404, detail="locked date not found")
    return row


def must_get_subscription(db: Session, *, user_id: int, subscription_id: int) -> IcalSubscription:
    row = db.scalar(
        select(IcalSubscription)
        .join(Property, Property.id == IcalSubscription.property_id)
        .where(IcalSubscription.id == subscription_id, Property.owner_user_id == user_id)
    )
    if not row:
        raise HTTPException(status_code=404, detail="ical subscription not found")
    return row

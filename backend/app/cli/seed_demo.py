# backend/app/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db import SessionLocal, init_db
from app.domain.errors import BookingConflict
from app.models import AppUser, CashflowEntry, Property, Reservation
from app.services.conflict_guard import create_reservation
from app.services.entitlement_service import ensure_default_plans, set_plan
from app.services.locked_dates import lock_dates


@dataclass(frozen=True)
class SeedResult:
    user_email: str
    plan_code: str
    property_id: Optional[int]


def _get_or_create_user(db: Session, email: str, display_name: str) -> AppUser:
    row = db.scalar(select(AppUser).where(AppUser.email == email))
    if row:
        return row
    row = AppUser(email=email, display_name=display_name)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _get_or_create_property(db: Session, owner_user_id: int, name: str, city: str) -> Property:
    row = db.scalar(select(Property).where(Property.owner_user_id == int(owner_user_id), Property.name == name))
    if row:
        return row
    row = Property(owner_user_id=int(owner_user_id), name=name, city=city)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _seed_sample_month(db: Session, property_id: int, today: date) -> None:
    """A couple of stays, a locked day and matching cash entries around today. Re-runnable."""
    if db.scalar(select(Reservation.id).where(Reservation.property_id == int(property_id)).limit(1)):
        return

    stays = [
        (today - timedelta(days=6), today - timedelta(days=3), "Past guest"),
        (today + timedelta(days=2), today + timedelta(days=5), "Upcoming guest"),
    ]
    for check_in, check_out, guest in stays:
        try:
            res = create_reservation(
                db,
                property_id=property_id,
                check_in=check_in,
                check_out=check_out,
                guest_name=guest,
            )
        except BookingConflict:
            continue
        db.add(
            CashflowEntry(
                user_id=db.get(Property, property_id).owner_user_id,
                property_id=property_id,
                reservation_id=res.id,
                entry_type="income",
                category="booking",
                description=f"Stay {check_in.isoformat()}",
                amount=120.0 * (check_out - check_in).days,
                transaction_date=check_in,
                payment_method="transfer",
            )
        )

    lock_dates(db, property_id=property_id, start=today + timedelta(days=10), reason="Maintenance")
    db.commit()


def seed_demo(
    *,
    user_email: str,
    user_name: str,
    plan_code: str = "free",
    create_sample_property: bool = True,
) -> SeedResult:
    init_db()
    db = SessionLocal()
    try:
        ensure_default_plans(db)
        user = _get_or_create_user(db, email=user_email, display_name=user_name)
        set_plan(db, user_id=user.id, plan_code=plan_code)
        db.commit()

        prop_id: Optional[int] = None
        if create_sample_property:
            prop = _get_or_create_property(db, owner_user_id=user.id, name="Lakeside Cabin", city="Traverse City")
            prop_id = int(prop.id)
            _seed_sample_month(db, prop_id, date.today())

        return SeedResult(user_email=user.email, plan_code=plan_code, property_id=prop_id)
    finally:
        db.close()

# backend/app/routers/locked_dates.py
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..models import LockedDate
from ..schemas import LockedDateCreate, LockedDateOut
from ..services.locked_dates import lock_dates, unlock_date
from ..services.ownership import must_get_locked_date, must_get_property

router = APIRouter(prefix="/locked-dates", tags=["locked-dates"])


@router.post("", response_model=list[LockedDateOut])
def create(payload: LockedDateCreate, db: Session = Depends(get_db), p=Depends(get_principal)):
    must_get_property(db, user_id=p.user_id, property_id=payload.property_id)
    rows = lock_dates(
        db,
        property_id=payload.property_id,
        start=payload.date,
        end=payload.end_date,
        reason=payload.reason,
        user_id=p.user_id,
    )
    db.commit()
    for r in rows:
        db.refresh(r)
    return rows


@router.get("", response_model=list[LockedDateOut])
def list_locked_dates(
    property_id: int = Query(...),
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    must_get_property(db, user_id=p.user_id, property_id=property_id)
    q = select(LockedDate).where(LockedDate.property_id == property_id)
    if start is not None:
        q = q.where(LockedDate.date >= start)
    if end is not None:
        q = q.where(LockedDate.date < end)
    return list(db.scalars(q.order_by(LockedDate.date)).all())


@router.delete("/{locked_date_id}")
def delete(locked_date_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    row = must_get_locked_date(db, user_id=p.user_id, locked_date_id=locked_date_id)
    unlock_date(db, row)
    db.commit()
    return {"ok": True}

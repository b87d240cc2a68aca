# backend/app/routers/cash.py
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, desc
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..models import CashflowEntry
from ..schemas import CashflowEntryCreate, CashflowEntryOut
from ..services.ownership import must_get_property, must_get_reservation

router = APIRouter(prefix="/cash", tags=["cash"])


@router.post("/entries", response_model=CashflowEntryOut)
def create_entry(payload: CashflowEntryCreate, db: Session = Depends(get_db), p=Depends(get_principal)):
    must_get_property(db, user_id=p.user_id, property_id=payload.property_id)
    if payload.reservation_id is not None:
        res = must_get_reservation(db, user_id=p.user_id, reservation_id=payload.reservation_id)
        if res.property_id != payload.property_id:
            raise HTTPException(status_code=422, detail="reservation belongs to another property")

    row = CashflowEntry(**payload.model_dump(), user_id=p.user_id)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@router.get("/entries", response_model=list[CashflowEntryOut])
def list_entries(
    property_id: int | None = Query(default=None),
    entry_type: str | None = Query(default=None),
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    limit: int = Query(default=500, ge=1, le=2000),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    q = select(CashflowEntry).where(CashflowEntry.user_id == p.user_id)

    if property_id is not None:
        must_get_property(db, user_id=p.user_id, property_id=property_id)
        q = q.where(CashflowEntry.property_id == property_id)
    if entry_type:
        q = q.where(CashflowEntry.entry_type == entry_type)
    if start is not None:
        q = q.where(CashflowEntry.transaction_date >= start)
    if end is not None:
        q = q.where(CashflowEntry.transaction_date < end)

    q = q.order_by(desc(CashflowEntry.transaction_date), desc(CashflowEntry.id)).limit(limit)
    return list(db.scalars(q).all())

# backend/app/routers/calendar.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..services.calendar_service import owner_month

router = APIRouter(prefix="/calendar", tags=["calendar"])


@router.get("", response_model=dict)
def month_view(
    year: int = Query(..., ge=1970, le=2200),
    month: int = Query(..., ge=1, le=12),
    property_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    """Per-day status for one property, or every property the caller owns when property_id is omitted."""
    return owner_month(db, user_id=p.user_id, year=year, month=month, property_id=property_id)

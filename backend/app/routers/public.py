# backend/app/routers/public.py
"""
Unauthenticated, token-addressed endpoints. Every invalid token case
(malformed, unknown, revoked) produces the same 404 via the TokenInvalid handler.
"""
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ..db import get_db
from ..services.calendar_service import shared_month
from ..services.ical_export import render_feed_for_token
from ..models import utcnow

router = APIRouter(tags=["public"])


@router.get("/feed/{token}.ics")
def ical_feed(token: str, db: Session = Depends(get_db)):
    feed = render_feed_for_token(db, token)
    return Response(
        content=feed.body,
        media_type="text/calendar; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{feed.filename}"',
            "Cache-Control": "no-store",
        },
    )


@router.get("/share/{token}", response_model=dict)
def shared_calendar(
    token: str,
    year: int | None = Query(default=None, ge=1970, le=2200),
    month: int | None = Query(default=None, ge=1, le=12),
    db: Session = Depends(get_db),
):
    today: date = utcnow().date()
    return shared_month(
        db,
        token=token,
        year=year or today.year,
        month=month or today.month,
        today=today,
    )

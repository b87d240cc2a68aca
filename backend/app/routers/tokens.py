# backend/app/routers/tokens.py
from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..models import CalendarShareToken, IcalFeedToken
from ..schemas import TokenOut
from ..services.feed_tokens import TokenModel, active_token, enable_token, feed_url, revoke_token, share_url
from ..services.ownership import must_get_property

router = APIRouter(prefix="/properties/{property_id}", tags=["tokens"])


def _out(property_id: int, row, to_url: Callable[[str], str]) -> TokenOut:
    if row is None:
        return TokenOut(property_id=property_id, enabled=False)
    return TokenOut(property_id=property_id, enabled=True, token=row.token, url=to_url(row.token))


def _get(db: Session, model: TokenModel, to_url, *, user_id: int, property_id: int) -> TokenOut:
    must_get_property(db, user_id=user_id, property_id=property_id)
    return _out(property_id, active_token(db, model, property_id=property_id), to_url)


def _enable(db: Session, model: TokenModel, to_url, *, user_id: int, property_id: int) -> TokenOut:
    must_get_property(db, user_id=user_id, property_id=property_id)
    return _out(property_id, enable_token(db, model, property_id=property_id), to_url)


def _revoke(db: Session, model: TokenModel, *, user_id: int, property_id: int) -> dict:
    must_get_property(db, user_id=user_id, property_id=property_id)
    return {"ok": True, "revoked": revoke_token(db, model, property_id=property_id)}


# ---- iCal export feed ----

@router.get("/feed-token", response_model=TokenOut)
def get_feed_token(property_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    return _get(db, IcalFeedToken, feed_url, user_id=p.user_id, property_id=property_id)


@router.post("/feed-token", response_model=TokenOut)
def enable_feed_token(property_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    return _enable(db, IcalFeedToken, feed_url, user_id=p.user_id, property_id=property_id)


@router.delete("/feed-token", response_model=dict)
def revoke_feed_token(property_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    return _revoke(db, IcalFeedToken, user_id=p.user_id, property_id=property_id)


# ---- public share page ----

@router.get("/share-token", response_model=TokenOut)
def get_share_token(property_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    return _get(db, CalendarShareToken, share_url, user_id=p.user_id, property_id=property_id)


@router.post("/share-token", response_model=TokenOut)
def enable_share_token(property_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    return _enable(db, CalendarShareToken, share_url, user_id=p.user_id, property_id=property_id)


@router.delete("/share-token", response_model=dict)
def revoke_share_token(property_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    return _revoke(db, CalendarShareToken, user_id=p.user_id, property_id=property_id)

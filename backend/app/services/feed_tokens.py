# backend/app/services/feed_tokens.py
"""
Bearer tokens for the public iCal feed and the public share page.

Both token kinds follow the same rules:
  - at most one active token per property (partial unique index)
  - enabling while one is active returns it unchanged
  - revoking is permanent; enabling again mints a fresh token
  - lookups hit the database every time so revocation is immediate
"""
from __future__ import annotations

import logging
import re
import secrets
from typing import Optional, Type, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..domain.errors import TokenInvalid
from ..models import CalendarShareToken, IcalFeedToken, utcnow

log = logging.getLogger(__name__)

TokenRow = Union[IcalFeedToken, CalendarShareToken]
TokenModel = Type[TokenRow]

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]{32,128}$")


def mint_token() -> str:
    return secrets.token_urlsafe(int(settings.feed_token_bytes))


def active_token(db: Session, model: TokenModel, *, property_id: int) -> Optional[TokenRow]:
    return db.scalar(
        select(model).where(model.property_id == int(property_id), model.is_active.is_(True))
    )


def enable_token(db: Session, model: TokenModel, *, property_id: int) -> TokenRow:
    """Idempotent. Commits."""
    row = active_token(db, model, property_id=property_id)
    if row is not None:
        return row

    row = model(property_id=int(property_id), token=mint_token(), is_active=True)
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        # lost a race with a concurrent enable; return the winner
        db.rollback()
        row = active_token(db, model, property_id=property_id)
        if row is None:
            raise
        return row

    db.refresh(row)
    log.info("%s enabled", model.__tablename__, extra={"property_id": int(property_id)})
    return row


def revoke_token(db: Session, model: TokenModel, *, property_id: int) -> bool:
    """Returns False when there was nothing to revoke. Commits."""
    row = active_token(db, model, property_id=property_id)
    if row is None:
        return False
    row.is_active = False
    row.revoked_at = utcnow()
    db.add(row)
    db.commit()
    log.info("%s revoked", model.__tablename__, extra={"property_id": int(property_id)})
    return True


def resolve_active(db: Session, model: TokenModel, token: str | None) -> TokenRow:
    """
    Malformed, unknown and revoked tokens all raise the same TokenInvalid.
    """
    raw = (token or "").strip()
    if not _TOKEN_RE.match(raw):
        raise TokenInvalid()
    row = db.scalar(select(model).where(model.token == raw))
    if row is None or not row.is_active:
        raise TokenInvalid()
    return row


def feed_url(token: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/feed/{token}.ics"


def share_url(token: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/share/{token}"

# backend/app/auth.py
from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db
from .models import AppUser


@dataclass(frozen=True)
class Principal:
    user_id: int
    email: str


def _get_user_by_email(db: Session, email: str) -> AppUser | None:
    return db.scalar(select(AppUser).where(AppUser.email == email))


# -------------------------
# get_principal
# -------------------------
def get_principal(request: Request, db: Session = Depends(get_db)) -> Principal:
    """
    Session handling lives in front of this service. The only mode shipped
    here is dev header spoofing, which config refuses in prod.
    """
    if settings.auth_mode != "dev":
        raise HTTPException(status_code=401, detail="Not authenticated")

    email = (request.headers.get(settings.dev_header_user_email) or "").strip().lower()
    if not email:
        raise HTTPException(status_code=401, detail=f"Missing {settings.dev_header_user_email} for dev auth")

    user = _get_user_by_email(db, email=email)
    if user is None and settings.dev_auto_provision:
        user = AppUser(email=email, display_name=email.split("@")[0])
        db.add(user)
        db.commit()
        db.refresh(user)

    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")

    return Principal(user_id=int(user.id), email=str(user.email))

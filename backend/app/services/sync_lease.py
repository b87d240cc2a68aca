# backend/app/services/sync_lease.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import SyncLease, utcnow


def acquire_lease(
    db: Session,
    *,
    subscription_id: int,
    owner: str | None,
    ttl_seconds: int,
    now: Optional[datetime] = None,
) -> bool:
    """
    At most one sync run per subscription.
    - returns True if the lease was acquired/renewed
    - returns False if another owner holds an unexpired lease
    Commits, so the lease is visible to concurrent workers immediately.
    """
    now = now or utcnow()
    expires = now + timedelta(seconds=int(ttl_seconds))

    row = db.scalar(
        select(SyncLease).where(SyncLease.subscription_id == int(subscription_id)).with_for_update()
    )
    if row is None:
        db.add(SyncLease(subscription_id=int(subscription_id), owner=owner, expires_at=expires, created_at=now))
        try:
            db.commit()
        except IntegrityError:
            # another worker inserted first
            db.rollback()
            return False
        return True

    # expired => steal
    if row.expires_at <= now:
        row.owner = owner
        row.expires_at = expires
        db.add(row)
        db.commit()
        return True

    # held by same owner => renew
    if (row.owner or "") == (owner or ""):
        row.expires_at = expires
        db.add(row)
        db.commit()
        return True

    db.rollback()
    return False


def release_lease(
    db: Session,
    *,
    subscription_id: int,
    owner: str | None,
    now: Optional[datetime] = None,
) -> bool:
    row = db.scalar(select(SyncLease).where(SyncLease.subscription_id == int(subscription_id)))
    if row is None:
        return True
    if owner and (row.owner or "") != owner:
        # don't release someone else's lease
        return False
    row.expires_at = (now or utcnow()) - timedelta(seconds=1)
    db.add(row)
    db.commit()
    return True

# backend/app/services/ical_export.py
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..domain.errors import TokenInvalid
from ..domain.ical import ExportEvent, build_feed
from ..domain.intervals import NON_BLOCKING_STATUSES
from ..models import IcalFeedToken, LockedDate, Property, Reservation
from .feed_tokens import resolve_active

RESERVED_SUMMARY = "Reserved"
LOCKED_SUMMARY = "Not available"


@dataclass(frozen=True)
class RenderedFeed:
    filename: str
    body: bytes


def _filename(name: str | None) -> str:
    slug = re.sub(r"[^A-Za-z0-9_-]+", "-", name or "").strip("-").lower()
    return f"{slug or 'calendar'}.ics"


def export_events(db: Session, *, property_id: int) -> list[ExportEvent]:
    """
    Blocking reservations and locked dates for one property. DTSTAMP comes from
    the row itself so an unchanged property always renders identically.
    """
    domain = settings.ical_uid_domain
    out: list[ExportEvent] = []

    # no_show releases its nights like cancelled
    reservations = db.scalars(
        select(Reservation).where(
            Reservation.property_id == int(property_id),
            Reservation.status.not_in(tuple(NON_BLOCKING_STATUSES)),
        )
    ).all()
    for r in reservations:
        out.append(
            ExportEvent(
                uid=f"reservation-{r.id}@{domain}",
                start=r.check_in,
                end=r.check_out,
                summary=RESERVED_SUMMARY,
                stamp=r.updated_at or r.created_at,
                kind_rank=0,
            )
        )

    locks = db.scalars(select(LockedDate).where(LockedDate.property_id == int(property_id))).all()
    for lock in locks:
        out.append(
            ExportEvent(
                uid=f"locked-{lock.id}@{domain}",
                start=lock.date,
                end=lock.date + timedelta(days=1),
                summary=LOCKED_SUMMARY,
                stamp=lock.created_at,
                kind_rank=1,
            )
        )

    return out


def render_property_feed(db: Session, *, property_id: int) -> RenderedFeed:
    prop = db.get(Property, int(property_id))
    if prop is None:
        raise TokenInvalid()
    body = build_feed(
        calendar_name=prop.name,
        events=export_events(db, property_id=prop.id),
        prodid=settings.ical_prodid,
    )
    return RenderedFeed(filename=_filename(prop.name), body=body)


def render_feed_for_token(db: Session, token: str) -> RenderedFeed:
    """Read-only. The token is re-validated against the database on every call."""
    row = resolve_active(db, IcalFeedToken, token)
    return render_property_feed(db, property_id=row.property_id)

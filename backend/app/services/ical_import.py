# backend/app/services/ical_import.py
"""
iCal import pipeline: fetch -> parse -> reconcile, one subscription at a time.

Reconciliation key is (subscription_id, UID). Every insert/update goes through
the conflict guard, so an upstream booking can never overwrite or sit on top
of a local one. A run ends in exactly one of:
  - synced: every event applied, last_synced_at advanced
  - error:  network/parse failure or >=1 conflicting event; last_synced_at kept

Failed runs never deactivate the subscription and are not retried here.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional
from urllib.parse import urlparse

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..domain.errors import BookingConflict, SyncError, ValidationError
from ..domain.ical import FeedEvent, parse_feed
from ..domain.intervals import is_blocking
from ..models import IcalSubscription, Reservation, utcnow
from .conflict_guard import create_reservation, update_reservation
from .sync_lease import acquire_lease, release_lease

log = logging.getLogger(__name__)

SOURCE_NAMES = ("airbnb", "vrbo", "booking_com", "other")

# error messages are stored on the subscription row
MAX_ERROR_MESSAGE_LEN = 2000
SUMMARY_MAX_LEN = 255


# -----------------------------
# Fetch
# -----------------------------
class IcalFetcher:
    """
    Thin httpx wrapper. `transport` lets tests swap in httpx.MockTransport.
    """

    def __init__(
        self,
        *,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.timeout = float(timeout if timeout is not None else settings.ical_fetch_timeout_seconds)
        self.user_agent = user_agent or settings.ical_user_agent
        self.transport = transport

    def fetch(self, url: str) -> bytes:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/calendar, text/plain;q=0.9, */*;q=0.1",
        }
        try:
            with httpx.Client(
                timeout=self.timeout,
                follow_redirects=True,
                headers=headers,
                transport=self.transport,
            ) as client:
                r = client.get(url)
        except httpx.TimeoutException as e:
            raise SyncError(f"timed out after {self.timeout:g}s fetching feed") from e
        except httpx.HTTPError as e:
            raise SyncError(f"could not fetch feed: {e}") from e

        if r.status_code >= 400:
            raise SyncError(f"feed returned HTTP {r.status_code}")
        return r.content


# -----------------------------
# Result
# -----------------------------
@dataclass
class SyncResult:
    subscription_id: int
    status: str  # synced | error | skipped
    inserted: int = 0
    updated: int = 0
    cancelled: int = 0
    unchanged: int = 0
    conflicts: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def mutations(self) -> int:
        return self.inserted + self.updated + self.cancelled

    def as_dict(self) -> dict:
        out = asdict(self)
        out["mutations"] = self.mutations
        return out


# -----------------------------
# Subscription lifecycle
# -----------------------------
def validate_feed_url(url: str) -> str:
    raw = (url or "").strip()
    parsed = urlparse(raw)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("feed_url must be an http(s) URL")
    return raw


def create_subscription(
    db: Session,
    *,
    property_id: int,
    feed_url: str,
    source_name: str,
    source_label: Optional[str] = None,
) -> IcalSubscription:
    """Commits. The caller schedules the initial sync."""
    src = (source_name or "").strip().lower()
    if src not in SOURCE_NAMES:
        raise ValidationError(f"source_name must be one of {', '.join(SOURCE_NAMES)}")

    sub = IcalSubscription(
        property_id=int(property_id),
        feed_url=validate_feed_url(feed_url),
        source_name=src,
        source_label=(source_label or "").strip() or None,
        is_active=True,
        last_sync_status="pending",
    )
    db.add(sub)
    db.commit()
    db.refresh(sub)
    log.info("ical subscription added (%s)", src, extra={"property_id": sub.property_id, "subscription_id": sub.id})
    return sub


def deactivate_subscription(db: Session, sub: IcalSubscription) -> IcalSubscription:
    """Soft removal; imported reservations stay. Commits."""
    sub.is_active = False
    db.add(sub)
    db.commit()
    log.info("ical subscription removed", extra={"property_id": sub.property_id, "subscription_id": sub.id})
    return sub


def list_subscriptions(db: Session, *, property_id: int, include_inactive: bool = False) -> list[IcalSubscription]:
    q = select(IcalSubscription).where(IcalSubscription.property_id == int(property_id))
    if not include_inactive:
        q = q.where(IcalSubscription.is_active.is_(True))
    return list(db.scalars(q.order_by(IcalSubscription.id)).all())


# -----------------------------
# Reconcile
# -----------------------------
def _summary(ev: FeedEvent) -> Optional[str]:
    return ev.summary[:SUMMARY_MAX_LEN] if ev.summary else None


def _describe_conflict(ev: FeedEvent, err: BookingConflict) -> str:
    return f"{ev.check_in.isoformat()} to {ev.check_out.isoformat()} ({ev.uid}): {err.message}"


def _target_status(row: Reservation, ev: FeedEvent) -> str:
    if ev.cancelled:
        return "cancelled"
    if row.status == "cancelled":
        return "confirmed"
    return row.status


def _frees_nights(row: Reservation, ev: FeedEvent, new_status: str) -> bool:
    """True when the change only gives nights back: a cancel or a shrink."""
    if not is_blocking(new_status):
        return True
    return is_blocking(row.status) and row.check_in <= ev.check_in and ev.check_out <= row.check_out


def _apply_change(
    db: Session, sub: IcalSubscription, row: Reservation, ev: FeedEvent, new_status: str, result: SyncResult
) -> None:
    was_blocking = is_blocking(row.status)
    reactivated = is_blocking(new_status) and not was_blocking
    update_reservation(
        db,
        row,
        check_in=ev.check_in,
        check_out=ev.check_out,
        status=new_status,
        enforce_transitions=False,
        summary=_summary(ev),
    )
    if reactivated:
        log.info(
            "imported reservation %s re-activated by feed (uid=%s)",
            row.id,
            ev.uid,
            extra={"property_id": sub.property_id, "subscription_id": sub.id, "reservation_id": row.id},
        )
    if was_blocking and not is_blocking(new_status):
        result.cancelled += 1
    else:
        result.updated += 1


def _reconcile(db: Session, sub: IcalSubscription, events: list[FeedEvent], *, now: datetime) -> SyncResult:
    """
    Apply one fetched feed. Work is ordered so this feed's own rows never
    block each other: retractions, then cancels and shrinks, then moves (a
    move blocked only by a sibling still waiting to move is retried after
    it), then new bookings.
    """
    result = SyncResult(subscription_id=sub.id, status="synced")
    today = now.date()

    existing: dict[str, Reservation] = {
        r.external_uid: r
        for r in db.scalars(select(Reservation).where(Reservation.subscription_id == sub.id)).all()
        if r.external_uid
    }
    incoming = {ev.uid for ev in events}

    for uid, row in existing.items():
        if uid in incoming or not is_blocking(row.status):
            continue
        # platforms drop finished stays from their feeds; history stays as-is
        if row.check_out <= today:
            continue
        update_reservation(db, row, status="cancelled", enforce_transitions=False)
        result.cancelled += 1

    inserts: list[FeedEvent] = []
    releases: list[tuple[Reservation, FeedEvent, str]] = []
    moves: list[tuple[Reservation, FeedEvent, str]] = []
    for ev in events:
        row = existing.get(ev.uid)
        if row is None:
            if ev.cancelled:
                result.unchanged += 1
            else:
                inserts.append(ev)
            continue

        new_status = _target_status(row, ev)
        same = (
            row.check_in == ev.check_in
            and row.check_out == ev.check_out
            and row.status == new_status
            and (row.summary or None) == _summary(ev)
        )
        if same:
            result.unchanged += 1
        elif _frees_nights(row, ev, new_status):
            releases.append((row, ev, new_status))
        else:
            moves.append((row, ev, new_status))

    for row, ev, new_status in releases:
        try:
            _apply_change(db, sub, row, ev, new_status, result)
        except BookingConflict as e:
            if e.rolled_back:
                raise
            result.conflicts.append(_describe_conflict(ev, e))

    pending = moves
    while pending:
        waiting = {row.id for row, _, _ in pending}
        blocked: list[tuple[tuple[Reservation, FeedEvent, str], BookingConflict]] = []
        for item in pending:
            row, ev, new_status = item
            try:
                _apply_change(db, sub, row, ev, new_status, result)
            except BookingConflict as e:
                if e.rolled_back:
                    raise
                if e.reservation_id in waiting:
                    blocked.append((item, e))
                else:
                    result.conflicts.append(_describe_conflict(ev, e))
                continue
            waiting.discard(row.id)

        if len(blocked) == len(pending):
            # no progress: the remaining moves block each other
            result.conflicts.extend(_describe_conflict(ev, e) for (_, ev, _), e in blocked)
            break
        pending = [item for item, _ in blocked]

    for ev in inserts:
        try:
            create_reservation(
                db,
                property_id=sub.property_id,
                check_in=ev.check_in,
                check_out=ev.check_out,
                status="confirmed",
                source=sub.source_name,
                subscription_id=sub.id,
                external_uid=ev.uid,
                summary=_summary(ev),
            )
        except BookingConflict as e:
            if e.rolled_back:
                raise
            result.conflicts.append(_describe_conflict(ev, e))
            continue
        result.inserted += 1

    if result.conflicts:
        result.status = "error"
        result.error = (
            f"{len(result.conflicts)} event(s) conflict with existing bookings: " + "; ".join(result.conflicts)
        )
    return result


def _record_outcome(db: Session, sub: IcalSubscription, result: SyncResult, *, now: datetime) -> None:
    sub.last_sync_status = result.status
    if result.status == "synced":
        sub.last_synced_at = now
        sub.last_error_message = None
    else:
        sub.last_error_message = (result.error or "sync failed")[:MAX_ERROR_MESSAGE_LEN]
    db.add(sub)


def sync_subscription(
    db: Session,
    subscription_id: int,
    *,
    fetcher: Optional[IcalFetcher] = None,
    now: Optional[datetime] = None,
    owner: Optional[str] = None,
) -> SyncResult:
    """
    Run one sync cycle. Never raises SyncError: failures are recorded on the
    subscription row and returned in the result.
    """
    sub = db.get(IcalSubscription, int(subscription_id))
    if sub is None:
        raise LookupError(f"unknown ical subscription id={subscription_id}")
    if not sub.is_active:
        return SyncResult(subscription_id=sub.id, status="skipped", error="subscription is inactive")

    fetcher = fetcher or IcalFetcher()
    owner = owner or f"sync-{uuid.uuid4().hex[:12]}"
    ctx = {"property_id": sub.property_id, "subscription_id": sub.id}

    now = now or utcnow()
    if not acquire_lease(
        db,
        subscription_id=sub.id,
        owner=owner,
        ttl_seconds=settings.sync_lease_ttl_seconds,
        now=now,
    ):
        log.info("ical sync skipped: already in progress", extra=ctx)
        return SyncResult(subscription_id=sub.id, status="skipped", error="sync already in progress")

    log.info("ical sync start", extra=ctx)
    try:
        try:
            data = fetcher.fetch(sub.feed_url)
            events = parse_feed(data, max_event_days=settings.ical_max_event_days)
            result = _reconcile(db, sub, events, now=now)
        except (SyncError, BookingConflict) as e:
            # BookingConflict here means the storage constraint fired; the guard already rolled back
            db.rollback()
            msg = e.message if isinstance(e, BookingConflict) else str(e)
            result = SyncResult(subscription_id=sub.id, status="error", error=msg)

        _record_outcome(db, sub, result, now=now)
        db.commit()
    finally:
        release_lease(db, subscription_id=sub.id, owner=owner, now=now)

    if result.status == "synced":
        log.info(
            "ical sync ok: +%d ~%d x%d =%d",
            result.inserted,
            result.updated,
            result.cancelled,
            result.unchanged,
            extra=ctx,
        )
    else:
        log.warning("ical sync error: %s", result.error, extra=ctx)
    return result


def sync_all_active(
    db: Session,
    *,
    fetcher: Optional[IcalFetcher] = None,
    now: Optional[datetime] = None,
) -> list[SyncResult]:
    """Scheduler entry point. Subscriptions are independent; one failure does not stop the rest."""
    ids = list(
        db.scalars(
            select(IcalSubscription.id).where(IcalSubscription.is_active.is_(True)).order_by(IcalSubscription.id)
        ).all()
    )
    results: list[SyncResult] = []
    for sid in ids:
        try:
            results.append(sync_subscription(db, sid, fetcher=fetcher, now=now))
        except Exception as e:
            log.exception("ical sync crashed", extra={"subscription_id": sid})
            db.rollback()
            results.append(SyncResult(subscription_id=sid, status="error", error=f"{type(e).__name__}: {e}"))
    return results

# backend/app/workers/sync_tasks.py
from __future__ import annotations

import logging

from ..config import settings
from ..db import SessionLocal
from ..services.ical_import import sync_all_active, sync_subscription
from .celery_app import celery_app

log = logging.getLogger(__name__)


def run_subscription_sync(subscription_id: int) -> dict:
    """Own session per run; used by the Celery task and by in-process dispatch."""
    db = SessionLocal()
    try:
        return sync_subscription(db, int(subscription_id)).as_dict()
    finally:
        db.close()


def run_all_syncs() -> list[dict]:
    db = SessionLocal()
    try:
        return [r.as_dict() for r in sync_all_active(db)]
    finally:
        db.close()


# No automatic retry: the next scheduled cycle is the retry.
# A single sync must finish inside its lease.
@celery_app.task(
    bind=True,
    max_retries=0,
    name="app.workers.sync_tasks.sync_ical_subscription",
    time_limit=settings.sync_lease_ttl_seconds,
)
def sync_ical_subscription(self, subscription_id: int) -> dict:
    log.info("sync task received", extra={"subscription_id": int(subscription_id), "task_id": self.request.id})
    return run_subscription_sync(subscription_id)


@celery_app.task(bind=True, max_retries=0, name="app.workers.sync_tasks.sync_all_ical_subscriptions")
def sync_all_ical_subscriptions(self) -> dict:
    results = run_all_syncs()
    errors = sum(1 for r in results if r["status"] == "error")
    log.info("sync fan-out done: %d subscription(s), %d error(s)", len(results), errors, extra={"task_id": self.request.id})
    return {"total": len(results), "errors": errors, "results": results}

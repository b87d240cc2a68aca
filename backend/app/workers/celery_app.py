# backend/app/workers/celery_app.py
from __future__ import annotations

from celery import Celery

from ..config import settings

BROKER = settings.celery_broker_url or "redis://localhost:6379/0"
BACKEND = settings.celery_result_backend or "redis://localhost:6379/1"

celery_app = Celery(
    "staysync",
    broker=BROKER,
    backend=BACKEND,
    include=["app.workers.sync_tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    timezone="UTC",
)

# imports get their own queue so a slow upstream feed never starves other work
celery_app.conf.task_routes = {
    "app.workers.sync_tasks.*": {"queue": "ical"},
}

if settings.ical_sync_interval_seconds:
    celery_app.conf.beat_schedule = {
        "sync-all-ical-subscriptions": {
            "task": "app.workers.sync_tasks.sync_all_ical_subscriptions",
            "schedule": float(settings.ical_sync_interval_seconds),
        },
    }

# backend/app/routers/ical.py
from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..config import settings
from ..db import get_db
from ..schemas import IcalSubscriptionCreate, IcalSubscriptionOut, SyncResultOut
from ..services.ical_import import (
    IcalFetcher,
    create_subscription,
    deactivate_subscription,
    list_subscriptions,
    sync_subscription,
)
from ..services.ownership import must_get_property, must_get_subscription
from ..workers.sync_tasks import run_subscription_sync, sync_ical_subscription

router = APIRouter(prefix="/ical/subscriptions", tags=["ical"])


def get_fetcher() -> IcalFetcher:
    return IcalFetcher()


def _dispatch_initial_sync(subscription_id: int, background: BackgroundTasks) -> None:
    if settings.celery_broker_url:
        sync_ical_subscription.delay(subscription_id=int(subscription_id))
    else:
        background.add_task(run_subscription_sync, int(subscription_id))


@router.post("", response_model=IcalSubscriptionOut)
def add_subscription(
    payload: IcalSubscriptionCreate,
    background: BackgroundTasks,
    initial_sync: bool = Query(default=True),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    must_get_property(db, user_id=p.user_id, property_id=payload.property_id)
    sub = create_subscription(
        db,
        property_id=payload.property_id,
        feed_url=payload.feed_url,
        source_name=payload.source_name,
        source_label=payload.source_label,
    )
    if initial_sync:
        _dispatch_initial_sync(sub.id, background)
    return sub


@router.get("", response_model=list[IcalSubscriptionOut])
def list_for_property(
    property_id: int = Query(...),
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    must_get_property(db, user_id=p.user_id, property_id=property_id)
    return list_subscriptions(db, property_id=property_id, include_inactive=include_inactive)


@router.delete("/{subscription_id}", response_model=IcalSubscriptionOut)
def remove_subscription(subscription_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    sub = must_get_subscription(db, user_id=p.user_id, subscription_id=subscription_id)
    return deactivate_subscription(db, sub)


@router.post("/{subscription_id}/sync", response_model=SyncResultOut)
def sync_now(
    subscription_id: int,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
    fetcher: IcalFetcher = Depends(get_fetcher),
):
    sub = must_get_subscription(db, user_id=p.user_id, subscription_id=subscription_id)
    return sync_subscription(db, sub.id, fetcher=fetcher).as_dict()

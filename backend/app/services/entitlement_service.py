# backend/app/services/entitlement_service.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..domain.entitlements import (
    Entitlement,
    Feature,
    MonthsOverride,
    PlanLimits,
    AccessDecision,
    check_month_access,
    ensure_month_access,
    override_from_columns,
    override_to_columns,
)
from ..models import AppUser, Plan, Subscription, utcnow


DEFAULT_PLANS = {
    "free": {
        "name": "Free",
        "calendar_months_limit": settings.free_calendar_months_limit,
        "report_months_limit": settings.free_report_months_limit,
        "is_paid": False,
    },
    "premium": {
        "name": "Premium",
        "calendar_months_limit": None,
        "report_months_limit": None,
        "is_paid": True,
    },
}

# subscription states that keep the subscribed plan in effect
LIVE_STATES = ("active", "grace_period")


def ensure_default_plans(db: Session) -> None:
    existing = {p.code for p in db.scalars(select(Plan)).all()}
    added = False
    for code, defaults in DEFAULT_PLANS.items():
        if code in existing:
            continue
        db.add(
            Plan(
                code=code,
                name=defaults["name"],
                calendar_months_limit=defaults["calendar_months_limit"],
                report_months_limit=defaults["report_months_limit"],
                is_paid=defaults["is_paid"],
            )
        )
        added = True
    if added:
        db.commit()


def _current_subscription(db: Session, user_id: int) -> Subscription | None:
    return db.scalar(
        select(Subscription).where(Subscription.user_id == int(user_id)).order_by(Subscription.id.desc())
    )


def _subscription_is_live(sub: Subscription, *, now: datetime) -> bool:
    status = (sub.status or "").lower()
    if status not in LIVE_STATES:
        return False
    if status == "grace_period" and sub.current_period_end is not None and sub.current_period_end < now:
        return False
    return True


def load_entitlement(db: Session, *, user_id: int, now: Optional[datetime] = None) -> Entitlement:
    """
    Plan + subscription state + per-user overrides for one user.

    An expired (or missing) subscription falls back to the free plan. Only an
    active paid subscription is unconditional; a grace period gets the
    subscribed plan's limits. Overrides apply on top of whichever plan is in
    effect.
    """
    ensure_default_plans(db)
    now = now or utcnow()

    user = db.get(AppUser, int(user_id))
    if user is None:
        raise LookupError(f"unknown user id={user_id}")

    sub = _current_subscription(db, user.id)
    plan_code = "free"
    is_active_sub = False
    if sub is not None and _subscription_is_live(sub, now=now):
        plan_code = sub.plan_code or "free"
        is_active_sub = (sub.status or "").lower() == "active"

    plan = db.scalar(select(Plan).where(Plan.code == plan_code, Plan.is_active.is_(True)))
    if plan is None:
        plan = db.scalar(select(Plan).where(Plan.code == "free"))
        plan_code = "free"

    return Entitlement(
        plan_code=plan_code,
        limits=PlanLimits(
            calendar_months_limit=plan.calendar_months_limit,
            report_months_limit=plan.report_months_limit,
        ),
        # grace period keeps the plan limits but not unconditional access
        is_paid_active=is_active_sub and bool(plan.is_paid) and plan_code != "free",
        calendar_override=override_from_columns(user.calendar_override_mode, user.calendar_override_months),
        report_override=override_from_columns(user.report_override_mode, user.report_override_months),
    )


def check_access(
    db: Session,
    *,
    user_id: int,
    feature: Feature,
    year: int,
    month: int,
    today: Optional[date] = None,
) -> AccessDecision:
    ent = load_entitlement(db, user_id=user_id)
    return check_month_access(ent, feature, year, month, now=today or utcnow().date())


def require_access(
    db: Session,
    *,
    user_id: int,
    feature: Feature,
    year: int,
    month: int,
    today: Optional[date] = None,
) -> AccessDecision:
    ent = load_entitlement(db, user_id=user_id)
    return ensure_month_access(ent, feature, year, month, now=today or utcnow().date())


def set_override(db: Session, *, user_id: int, feature: Feature, override: MonthsOverride) -> AppUser:
    """Admin-only. Does NOT commit."""
    user = db.get(AppUser, int(user_id))
    if user is None:
        raise LookupError(f"unknown user id={user_id}")
    mode, months = override_to_columns(override)
    if feature == Feature.CALENDAR:
        user.calendar_override_mode = mode
        user.calendar_override_months = months
    else:
        user.report_override_mode = mode
        user.report_override_months = months
    db.add(user)
    return user


def set_plan(
    db: Session,
    *,
    user_id: int,
    plan_code: str,
    status: str = "active",
    current_period_end: Optional[datetime] = None,
) -> Subscription:
    """Record a subscription state change reported by the billing provider. Does NOT commit."""
    ensure_default_plans(db)
    if db.scalar(select(Plan).where(Plan.code == plan_code)) is None:
        raise LookupError(f"unknown plan {plan_code!r}")
    if status not in ("active", "grace_period", "expired"):
        raise ValueError(f"unknown subscription status {status!r}")
    sub = _current_subscription(db, user_id)
    if sub is None:
        sub = Subscription(user_id=int(user_id))
    sub.plan_code = plan_code
    sub.status = status
    sub.current_period_end = current_period_end
    db.add(sub)
    return sub

# backend/tests/test_entitlement_gate.py
from __future__ import annotations

from datetime import date, datetime

import pytest

from app.domain.entitlements import (
    UNLIMITED,
    USE_DEFAULT,
    Entitlement,
    Feature,
    Months,
    PlanLimits,
    Unlimited,
    check_month_access,
    effective_limit,
    ensure_month_access,
    months_from_now,
    override_from_columns,
    override_to_columns,
)
from app.domain.errors import EntitlementDenied
from app.services.entitlement_service import load_entitlement, set_override, set_plan


FREE = PlanLimits(calendar_months_limit=2, report_months_limit=2)


def _free(**kw) -> Entitlement:
    return Entitlement(plan_code="free", limits=FREE, **kw)


def test_months_from_now_is_signed_and_crosses_years():
    now = date(2026, 1, 15)
    assert months_from_now(2026, 1, now=now) == 0
    assert months_from_now(2025, 12, now=now) == -1
    assert months_from_now(2025, 11, now=now) == -2
    assert months_from_now(2027, 1, now=now) == 12
    assert months_from_now(2026, 3, now=now) == 2


def test_limit_two_boundary():
    now = date(2026, 6, 10)
    ent = _free()
    assert check_month_access(ent, Feature.CALENDAR, 2026, 4, now=now).granted  # -2
    assert not check_month_access(ent, Feature.CALENDAR, 2026, 3, now=now).granted  # -3
    assert check_month_access(ent, Feature.CALENDAR, 2026, 6, now=now).granted  # 0
    assert check_month_access(ent, Feature.CALENDAR, 2026, 8, now=now).granted  # +2
    assert not check_month_access(ent, Feature.CALENDAR, 2026, 9, now=now).granted  # +3


def test_limit_two_boundary_across_new_year():
    now = date(2026, 1, 3)
    ent = _free()
    assert check_month_access(ent, Feature.REPORT, 2025, 11, now=now).granted
    assert not check_month_access(ent, Feature.REPORT, 2025, 10, now=now).granted


def test_denial_is_a_distinct_signal():
    with pytest.raises(EntitlementDenied) as ei:
        ensure_month_access(_free(), Feature.CALENDAR, 2026, 1, now=date(2026, 6, 1))
    err = ei.value
    assert err.month_key == "2026-01"
    assert err.months_from_now == -5
    assert err.limit == 2
    assert err.as_dict()["upgrade_required"] is True


def test_paid_plan_is_unconditional():
    ent = Entitlement(plan_code="premium", limits=FREE, is_paid_active=True, calendar_override=Months(1))
    d = check_month_access(ent, Feature.CALENDAR, 2019, 1, now=date(2026, 6, 1))
    assert d.granted and d.reason == "paid_plan"


def test_override_wins_over_plan_default():
    now = date(2026, 6, 1)
    wider = _free(calendar_override=Months(6))
    assert check_month_access(wider, Feature.CALENDAR, 2025, 12, now=now).granted

    narrower = _free(report_override=Months(1))
    assert not check_month_access(narrower, Feature.REPORT, 2026, 4, now=now).granted
    # calendar keeps the plan default
    assert check_month_access(narrower, Feature.CALENDAR, 2026, 4, now=now).granted

    unlimited = _free(report_override=UNLIMITED)
    assert effective_limit(unlimited, Feature.REPORT) is None
    assert check_month_access(unlimited, Feature.REPORT, 2001, 1, now=now).granted


def test_unlimited_plan_default():
    ent = Entitlement(plan_code="legacy", limits=PlanLimits(None, 2))
    assert check_month_access(ent, Feature.CALENDAR, 2040, 1, now=date(2026, 6, 1)).granted
    assert not check_month_access(ent, Feature.REPORT, 2040, 1, now=date(2026, 6, 1)).granted


def test_override_column_mapping():
    assert override_from_columns(None, None) == USE_DEFAULT
    assert isinstance(override_from_columns("unlimited", None), Unlimited)
    assert override_from_columns("months", 3) == Months(3)
    assert override_to_columns(Months(4)) == ("months", 4)
    assert override_to_columns(UNLIMITED) == ("unlimited", None)
    assert override_to_columns(USE_DEFAULT) == ("default", None)

    with pytest.raises(ValueError):
        override_from_columns("months", None)
    with pytest.raises(ValueError):
        override_from_columns("forever", None)
    with pytest.raises(ValueError):
        Months(0)


# ---- subscription states loaded from the database ----

NOW = datetime(2026, 6, 1, 12, 0)


def _decision(db, user_id: int, year: int, month: int):
    ent = load_entitlement(db, user_id=user_id, now=NOW)
    return check_month_access(ent, Feature.CALENDAR, year, month, now=NOW.date())


def test_active_paid_subscription_ignores_override(db, owner):
    set_plan(db, user_id=owner.id, plan_code="premium", status="active")
    set_override(db, user_id=owner.id, feature=Feature.CALENDAR, override=Months(1))
    db.commit()

    d = _decision(db, owner.id, 2026, 1)
    assert d.granted is True
    assert d.reason == "paid_plan"


def test_grace_period_uses_plan_limits_and_override(db, owner):
    set_plan(db, user_id=owner.id, plan_code="premium", status="grace_period")
    set_override(db, user_id=owner.id, feature=Feature.CALENDAR, override=Months(1))
    db.commit()

    ent = load_entitlement(db, user_id=owner.id, now=NOW)
    assert ent.plan_code == "premium"
    assert ent.is_paid_active is False

    denied = _decision(db, owner.id, 2026, 1)
    assert denied.granted is False
    assert denied.reason == "outside_limit"
    assert denied.limit == 1
    assert _decision(db, owner.id, 2026, 5).granted is True


def test_grace_period_without_override_keeps_plan_default(db, owner):
    set_plan(db, user_id=owner.id, plan_code="premium", status="grace_period")
    db.commit()

    d = _decision(db, owner.id, 2026, 1)
    assert d.granted is True
    assert d.reason == "unlimited"


def test_lapsed_grace_period_falls_back_to_free(db, owner):
    set_plan(
        db,
        user_id=owner.id,
        plan_code="premium",
        status="grace_period",
        current_period_end=datetime(2026, 5, 1),
    )
    db.commit()

    ent = load_entitlement(db, user_id=owner.id, now=NOW)
    assert ent.plan_code == "free"
    assert _decision(db, owner.id, 2026, 1).granted is False
    assert _decision(db, owner.id, 2026, 4).granted is True

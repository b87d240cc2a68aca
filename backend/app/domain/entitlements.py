# backend/app/domain/entitlements.py
"""
Entitlement gate: is a target month inside the user's accessible window?

Pure and I/O free. The caller loads plan + subscription + user overrides
(see services/entitlement_service.py) and passes `now` explicitly.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional, Union

from .errors import EntitlementDenied


class Feature(str, Enum):
    CALENDAR = "calendar"
    REPORT = "report"


# ---- per-user override: UseDefault | Unlimited | Months(n) ----

@dataclass(frozen=True)
class UseDefault:
    pass


@dataclass(frozen=True)
class Unlimited:
    pass


@dataclass(frozen=True)
class Months:
    count: int

    def __post_init__(self) -> None:
        if int(self.count) < 1:
            raise ValueError("override month count must be a positive integer")


MonthsOverride = Union[UseDefault, Unlimited, Months]

USE_DEFAULT = UseDefault()
UNLIMITED = Unlimited()

OVERRIDE_MODES = ("default", "unlimited", "months")


def override_from_columns(mode: Optional[str], months: Optional[int]) -> MonthsOverride:
    m = (mode or "default").strip().lower()
    if m == "unlimited":
        return UNLIMITED
    if m == "months":
        if months is None:
            raise ValueError("override mode 'months' requires a month count")
        return Months(int(months))
    if m == "default":
        return USE_DEFAULT
    raise ValueError(f"unknown override mode: {mode!r}")


def override_to_columns(o: MonthsOverride) -> tuple[str, Optional[int]]:
    if isinstance(o, Unlimited):
        return "unlimited", None
    if isinstance(o, Months):
        return "months", int(o.count)
    return "default", None


# ---- plan + user ----

@dataclass(frozen=True)
class PlanLimits:
    """None means unlimited."""

    calendar_months_limit: Optional[int]
    report_months_limit: Optional[int]

    def for_feature(self, feature: Feature) -> Optional[int]:
        if feature == Feature.CALENDAR:
            return self.calendar_months_limit
        return self.report_months_limit


@dataclass(frozen=True)
class Entitlement:
    plan_code: str
    limits: PlanLimits
    is_paid_active: bool = False
    calendar_override: MonthsOverride = USE_DEFAULT
    report_override: MonthsOverride = USE_DEFAULT

    def override_for(self, feature: Feature) -> MonthsOverride:
        if feature == Feature.CALENDAR:
            return self.calendar_override
        return self.report_override


def months_from_now(year: int, month: int, *, now: date) -> int:
    """Signed month offset; negative is the past."""
    return (int(year) - now.year) * 12 + (int(month) - now.month)


def effective_limit(ent: Entitlement, feature: Feature) -> Optional[int]:
    """A non-default user override always wins over the plan default. None = unlimited."""
    o = ent.override_for(feature)
    if isinstance(o, Unlimited):
        return None
    if isinstance(o, Months):
        return int(o.count)
    return ent.limits.for_feature(feature)


@dataclass(frozen=True)
class AccessDecision:
    granted: bool
    feature: Feature
    year: int
    month: int
    months_from_now: int
    limit: Optional[int]
    reason: str  # paid_plan | unlimited | within_limit | outside_limit

    def denial(self) -> EntitlementDenied:
        return EntitlementDenied(
            feature=self.feature.value,
            year=self.year,
            month=self.month,
            months_from_now=self.months_from_now,
            limit=self.limit,
        )


def check_month_access(
    ent: Entitlement,
    feature: Feature,
    year: int,
    month: int,
    *,
    now: date,
) -> AccessDecision:
    offset = months_from_now(year, month, now=now)

    if ent.is_paid_active:
        return AccessDecision(True, feature, int(year), int(month), offset, None, "paid_plan")

    limit = effective_limit(ent, feature)
    if limit is None:
        return AccessDecision(True, feature, int(year), int(month), offset, None, "unlimited")

    if abs(offset) <= int(limit):
        return AccessDecision(True, feature, int(year), int(month), offset, int(limit), "within_limit")

    return AccessDecision(False, feature, int(year), int(month), offset, int(limit), "outside_limit")


def ensure_month_access(
    ent: Entitlement,
    feature: Feature,
    year: int,
    month: int,
    *,
    now: date,
) -> AccessDecision:
    decision = check_month_access(ent, feature, year, month, now=now)
    if not decision.granted:
        raise decision.denial()
    return decision

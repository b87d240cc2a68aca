# backend/app/services/reports.py
"""
Multi-month cashflow export.

Each selected month is checked against the report entitlement on its own,
before anything is queried for it. Denied months are reported back, never
silently widened or clamped.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.entitlements import Feature, check_month_access
from ..domain.errors import EntitlementDenied, ValidationError
from ..domain.intervals import month_bounds, month_key, parse_month_key
from ..domain.reports import EntryTypeFilter, ReportRow, filter_and_sort, row_from_entry, to_delimited
from ..models import CashflowEntry, Property, utcnow
from .entitlement_service import load_entitlement

log = logging.getLogger(__name__)

# selecting more than this many months in one export is rejected outright
MAX_MONTHS_PER_EXPORT = 36
DELIMITERS = {"csv": ",", "tsv": "\t"}


@dataclass
class CashflowReport:
    rows: list[ReportRow]
    granted_months: list[str]
    denied: list[EntitlementDenied] = field(default_factory=list)
    delimiter: str = ","

    @property
    def denied_months(self) -> list[str]:
        return [d.month_key for d in self.denied]

    def render(self) -> str:
        return to_delimited(self.rows, delimiter=self.delimiter)


def _normalize_months(months: Iterable[str]) -> list[tuple[int, int]]:
    out = sorted({parse_month_key(m) for m in months})
    if not out:
        raise ValidationError("select at least one month")
    if len(out) > MAX_MONTHS_PER_EXPORT:
        raise ValidationError(f"select at most {MAX_MONTHS_PER_EXPORT} months")
    return out


def _entries_for_month(
    db: Session, *, user_id: int, year: int, month: int, property_id: Optional[int]
) -> list[tuple[CashflowEntry, str]]:
    start, end = month_bounds(year, month)
    q = (
        select(CashflowEntry, Property.name)
        .join(Property, Property.id == CashflowEntry.property_id)
        .where(
            CashflowEntry.user_id == int(user_id),
            Property.owner_user_id == int(user_id),
            CashflowEntry.transaction_date >= start,
            CashflowEntry.transaction_date < end,
        )
    )
    if property_id is not None:
        q = q.where(CashflowEntry.property_id == int(property_id))
    return [(entry, name) for entry, name in db.execute(q).all()]


def build_cashflow_report(
    db: Session,
    *,
    user_id: int,
    months: Iterable[str],
    entry_type: EntryTypeFilter = EntryTypeFilter.BOTH,
    property_id: Optional[int] = None,
    fmt: str = "csv",
    today: Optional[date] = None,
) -> CashflowReport:
    """
    Raises EntitlementDenied only when every selected month is denied; otherwise
    returns the accessible rows together with the denied months.
    """
    if fmt not in DELIMITERS:
        raise ValidationError(f"format must be one of {', '.join(DELIMITERS)}")

    selected = _normalize_months(months)
    today = today or utcnow().date()
    ent = load_entitlement(db, user_id=user_id)

    rows: list[ReportRow] = []
    granted: list[str] = []
    denied: list[EntitlementDenied] = []

    for year, month in selected:
        decision = check_month_access(ent, Feature.REPORT, year, month, now=today)
        if not decision.granted:
            denied.append(decision.denial())
            continue
        granted.append(month_key(year, month))
        for entry, prop_name in _entries_for_month(
            db, user_id=user_id, year=year, month=month, property_id=property_id
        ):
            rows.append(row_from_entry(entry, property_name=prop_name))

    if denied:
        log.info(
            "report months denied: %s",
            ",".join(d.month_key for d in denied),
            extra={"user_id": int(user_id)},
        )
    if not granted:
        raise denied[0]

    return CashflowReport(
        rows=filter_and_sort(rows, entry_type),
        granted_months=granted,
        denied=denied,
        delimiter=DELIMITERS[fmt],
    )

# backend/app/domain/reports.py
from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable

CSV_HEADER = (
    "Date",
    "Type",
    "Category",
    "Description",
    "Amount",
    "Property",
    "Payment Method",
    "Reference",
    "Notes",
)


class EntryTypeFilter(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    BOTH = "both"

    def matches(self, entry_type: str | None) -> bool:
        if self == EntryTypeFilter.BOTH:
            return True
        return (entry_type or "").lower() == self.value


@dataclass(frozen=True)
class ReportRow:
    txn_date: date
    entry_type: str
    category: str
    description: str
    amount: float
    property_name: str
    payment_method: str
    reference: str
    notes: str
    entry_id: int = 0

    def as_fields(self) -> list[str]:
        return [
            self.txn_date.isoformat(),
            self.entry_type,
            self.category,
            self.description,
            f"{float(self.amount):.2f}",
            self.property_name,
            self.payment_method,
            self.reference,
            self.notes,
        ]


def _day(v: Any) -> date:
    if isinstance(v, datetime):
        return v.date()
    return v


def row_from_entry(entry: Any, *, property_name: str) -> ReportRow:
    return ReportRow(
        txn_date=_day(entry.transaction_date),
        entry_type=(entry.entry_type or "").lower(),
        category=entry.category or "",
        description=entry.description or "",
        amount=float(entry.amount or 0.0),
        property_name=property_name or "",
        payment_method=entry.payment_method or "",
        reference=entry.reference_number or "",
        notes=entry.notes or "",
        entry_id=int(entry.id or 0),
    )


def filter_and_sort(rows: Iterable[ReportRow], type_filter: EntryTypeFilter) -> list[ReportRow]:
    kept = [r for r in rows if type_filter.matches(r.entry_type)]
    kept.sort(key=lambda r: (r.txn_date, r.entry_id))
    return kept


def to_delimited(rows: Iterable[ReportRow], *, delimiter: str = ",") -> str:
    """
    Header + one line per row. Fields containing the delimiter, a quote or a
    newline are quoted and embedded quotes doubled.
    """
    buf = io.StringIO()
    w = csv.writer(
        buf,
        delimiter=delimiter,
        quotechar='"',
        doublequote=True,
        quoting=csv.QUOTE_MINIMAL,
        lineterminator="\r\n",
    )
    w.writerow(CSV_HEADER)
    for r in rows:
        w.writerow(r.as_fields())
    return buf.getvalue()

# backend/tests/test_cashflow_report.py
from __future__ import annotations

import csv
import io
from datetime import date

import pytest

from app.domain.errors import EntitlementDenied, ValidationError
from app.domain.entitlements import Feature, Months
from app.domain.reports import CSV_HEADER, EntryTypeFilter, ReportRow, to_delimited
from app.models import CashflowEntry
from app.services.entitlement_service import set_override, set_plan
from app.services.reports import build_cashflow_report

TODAY = date(2026, 6, 15)


def _entry(db, owner, prop, d, entry_type="income", amount=100.0, **kw):
    db.add(
        CashflowEntry(
            user_id=owner.id,
            property_id=prop.id,
            entry_type=entry_type,
            amount=amount,
            transaction_date=d,
            category=kw.pop("category", "booking"),
            description=kw.pop("description", ""),
            **kw,
        )
    )


@pytest.fixture()
def entries(db, owner, prop):
    for m in (1, 2, 4, 5):
        _entry(db, owner, prop, date(2026, m, 20), description=f"stay {m}")
        _entry(db, owner, prop, date(2026, m, 3), entry_type="expense", amount=40.0, category="cleaning")
    db.commit()


def test_free_plan_gets_only_accessible_months(db, owner, entries):
    report = build_cashflow_report(
        db,
        user_id=owner.id,
        months=["2026-01", "2026-02", "2026-04", "2026-05"],
        today=TODAY,
    )

    assert report.granted_months == ["2026-04", "2026-05"]
    assert report.denied_months == ["2026-01", "2026-02"]
    assert {r.txn_date.month for r in report.rows} == {4, 5}
    # ascending by transaction date
    assert [r.txn_date for r in report.rows] == sorted(r.txn_date for r in report.rows)


def test_all_months_denied_raises(db, owner, entries):
    with pytest.raises(EntitlementDenied) as ei:
        build_cashflow_report(db, user_id=owner.id, months=["2026-01", "2026-02"], today=TODAY)
    assert ei.value.feature == "report"


def test_type_filter(db, owner, entries):
    report = build_cashflow_report(
        db, user_id=owner.id, months=["2026-05"], entry_type=EntryTypeFilter.EXPENSE, today=TODAY
    )
    assert [(r.entry_type, r.category, r.amount) for r in report.rows] == [("expense", "cleaning", 40.0)]


def test_paid_plan_and_override_widen_access(db, owner, entries):
    set_override(db, user_id=owner.id, feature=Feature.REPORT, override=Months(5))
    db.commit()
    report = build_cashflow_report(db, user_id=owner.id, months=["2026-01", "2026-02"], today=TODAY)
    assert report.granted_months == ["2026-01", "2026-02"]

    set_plan(db, user_id=owner.id, plan_code="premium", status="active")
    set_override(db, user_id=owner.id, feature=Feature.REPORT, override=Months(1))
    db.commit()
    report = build_cashflow_report(db, user_id=owner.id, months=["2026-01"], today=TODAY)
    assert report.denied == []


def test_expired_subscription_falls_back_to_free(db, owner, entries):
    set_plan(db, user_id=owner.id, plan_code="premium", status="expired")
    db.commit()
    report = build_cashflow_report(db, user_id=owner.id, months=["2026-01", "2026-05"], today=TODAY)
    assert report.denied_months == ["2026-01"]


def test_bad_month_selection(db, owner):
    with pytest.raises(ValidationError):
        build_cashflow_report(db, user_id=owner.id, months=[], today=TODAY)
    with pytest.raises(ValidationError):
        build_cashflow_report(db, user_id=owner.id, months=["2026-13"], today=TODAY)


def test_delimited_output_quotes_only_when_needed():
    rows = [
        ReportRow(
            txn_date=date(2026, 5, 2),
            entry_type="income",
            category="booking",
            description='Deposit, "early"',
            amount=120.0,
            property_name="Lakeside Cabin",
            payment_method="card",
            reference="R-1",
            notes="",
        )
    ]
    text = to_delimited(rows)
    lines = text.split("\r\n")
    assert lines[0] == ",".join(CSV_HEADER)
    assert lines[1] == '2026-05-02,income,booking,"Deposit, ""early""",120.00,Lakeside Cabin,card,R-1,'

    parsed = list(csv.reader(io.StringIO(text)))
    assert parsed[1][3] == 'Deposit, "early"'


def test_tab_delimited_output():
    rows = [
        ReportRow(date(2026, 5, 2), "expense", "repairs", "tap\tfix", 9.5, "Cabin", "", "", "")
    ]
    line = to_delimited(rows, delimiter="\t").split("\r\n")[1]
    assert line.split("\t", 3)[3].startswith('"tap\tfix"')

# backend/app/routers/reports.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..domain.reports import EntryTypeFilter
from ..schemas import CashflowExportIn
from ..services.ownership import must_get_property
from ..services.reports import build_cashflow_report
from ..models import utcnow

router = APIRouter(prefix="/reports", tags=["reports"])

MEDIA_TYPES = {"csv": "text/csv", "tsv": "text/tab-separated-values"}


@router.post("/cashflow/export")
def export_cashflow(payload: CashflowExportIn, db: Session = Depends(get_db), p=Depends(get_principal)):
    """
    Rows for the accessible months only. Months outside the plan window are
    listed in X-Entitlement-Denied-Months; if none are accessible the
    EntitlementDenied handler answers 403.
    """
    if payload.property_id is not None:
        must_get_property(db, user_id=p.user_id, property_id=payload.property_id)

    report = build_cashflow_report(
        db,
        user_id=p.user_id,
        months=payload.months,
        entry_type=EntryTypeFilter(payload.entry_type),
        property_id=payload.property_id,
        fmt=payload.format,
    )

    stamp = utcnow().strftime("%Y%m%d")
    headers = {
        "Content-Disposition": f'attachment; filename="cashflow-{stamp}.{payload.format}"',
        "X-Included-Months": ",".join(report.granted_months),
    }
    if report.denied:
        headers["X-Entitlement-Denied-Months"] = ",".join(report.denied_months)

    return Response(
        content=report.render(),
        media_type=f"{MEDIA_TYPES[payload.format]}; charset=utf-8",
        headers=headers,
    )

# backend/app/routers/reservations.py
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..models import Reservation
from ..schemas import ReservationCreate, ReservationOut, ReservationStatusIn, ReservationUpdate
from ..services.conflict_guard import create_reservation, delete_reservation, update_reservation
from ..services.ownership import must_get_property, must_get_reservation

router = APIRouter(prefix="/reservations", tags=["reservations"])


@router.post("", response_model=ReservationOut)
def create(payload: ReservationCreate, db: Session = Depends(get_db), p=Depends(get_principal)):
    must_get_property(db, user_id=p.user_id, property_id=payload.property_id)
    row = create_reservation(
        db,
        property_id=payload.property_id,
        check_in=payload.check_in,
        check_out=payload.check_out,
        status=payload.status,
        source="direct",
        guest_name=payload.guest_name,
        notes=payload.notes,
    )
    db.commit()
    db.refresh(row)
    return row


@router.get("", response_model=list[ReservationOut])
def list_reservations(
    property_id: int = Query(...),
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    include_cancelled: bool = Query(default=False),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    must_get_property(db, user_id=p.user_id, property_id=property_id)
    q = select(Reservation).where(Reservation.property_id == property_id)
    if start is not None:
        q = q.where(Reservation.check_out > start)
    if end is not None:
        q = q.where(Reservation.check_in < end)
    if not include_cancelled:
        q = q.where(Reservation.status.not_in(("cancelled", "no_show")))
    return list(db.scalars(q.order_by(Reservation.check_in, Reservation.id)).all())


@router.patch("/{reservation_id}", response_model=ReservationOut)
def update(
    reservation_id: int,
    payload: ReservationUpdate,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    row = must_get_reservation(db, user_id=p.user_id, reservation_id=reservation_id)
    extra = payload.model_dump(exclude_unset=True, exclude={"check_in", "check_out"})
    update_reservation(db, row, check_in=payload.check_in, check_out=payload.check_out, **extra)
    db.commit()
    db.refresh(row)
    return row


@router.post("/{reservation_id}/status", response_model=ReservationOut)
def change_status(
    reservation_id: int,
    payload: ReservationStatusIn,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    row = must_get_reservation(db, user_id=p.user_id, reservation_id=reservation_id)
    update_reservation(db, row, status=payload.status)
    db.commit()
    db.refresh(row)
    return row


@router.delete("/{reservation_id}")
def delete(reservation_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    row = must_get_reservation(db, user_id=p.user_id, reservation_id=reservation_id)
    delete_reservation(db, row)
    db.commit()
    return {"ok": True}

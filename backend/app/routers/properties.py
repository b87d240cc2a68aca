# backend/app/routers/properties.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..models import Property
from ..schemas import PropertyCreate, PropertyOut, PropertyUpdate
from ..services.ownership import must_get_property

router = APIRouter(prefix="/properties", tags=["properties"])


@router.post("", response_model=PropertyOut)
def create_property(payload: PropertyCreate, db: Session = Depends(get_db), p=Depends(get_principal)):
    row = Property(name=payload.name.strip(), city=payload.city, owner_user_id=p.user_id)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@router.get("", response_model=list[PropertyOut])
def list_properties(db: Session = Depends(get_db), p=Depends(get_principal)):
    q = select(Property).where(Property.owner_user_id == p.user_id).order_by(Property.id)
    return list(db.scalars(q).all())


@router.get("/{property_id}", response_model=PropertyOut)
def get_property(property_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    return must_get_property(db, user_id=p.user_id, property_id=property_id)


@router.patch("/{property_id}", response_model=PropertyOut)
def update_property(
    property_id: int,
    payload: PropertyUpdate,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    row = must_get_property(db, user_id=p.user_id, property_id=property_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("name") is not None:
        row.name = data["name"].strip()
    if "city" in data:
        row.city = data["city"]
    db.commit()
    db.refresh(row)
    return row


@router.delete("/{property_id}", response_model=dict)
def delete_property(property_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    """Removes the property with its reservations, locks, feeds and share links."""
    row = must_get_property(db, user_id=p.user_id, property_id=property_id)
    db.delete(row)
    db.commit()
    return {"ok": True, "deleted_id": property_id}

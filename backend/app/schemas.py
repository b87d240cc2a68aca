# backend/app/schemas.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Literal

from pydantic import BaseModel, Field, ConfigDict, model_validator


# -------------------- Properties --------------------

class PropertyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    city: Optional[str] = None


class PropertyUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    city: Optional[str] = None


class PropertyOut(PropertyCreate):
    id: int
    owner_user_id: int
    model_config = ConfigDict(from_attributes=True)


# -------------------- Reservations --------------------

ReservationStatus = Literal["pending", "confirmed", "checked_in", "completed", "cancelled", "no_show"]


class ReservationCreate(BaseModel):
    property_id: int
    check_in: date
    check_out: date
    status: ReservationStatus = "confirmed"
    guest_name: Optional[str] = None
    notes: Optional[str] = None


class ReservationUpdate(BaseModel):
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    guest_name: Optional[str] = None
    notes: Optional[str] = None


class ReservationStatusIn(BaseModel):
    status: ReservationStatus


class ReservationOut(BaseModel):
    id: int
    property_id: int
    check_in: date
    check_out: date
    status: str
    source: str
    subscription_id: Optional[int] = None
    external_uid: Optional[str] = None
    guest_name: Optional[str] = None
    summary: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# -------------------- Locked dates --------------------

class LockedDateCreate(BaseModel):
    property_id: int
    date: date
    end_date: Optional[date] = None  # inclusive; omit for a single day
    reason: Optional[str] = Field(default=None, max_length=255)


class LockedDateOut(BaseModel):
    id: int
    property_id: int
    date: date
    reason: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


# -------------------- iCal --------------------

class IcalSubscriptionCreate(BaseModel):
    property_id: int
    feed_url: str
    source_name: Literal["airbnb", "vrbo", "booking_com", "other"] = "other"
    source_label: Optional[str] = Field(default=None, max_length=120)


class IcalSubscriptionOut(BaseModel):
    id: int
    property_id: int
    feed_url: str
    source_name: str
    source_label: Optional[str] = None
    is_active: bool
    last_synced_at: Optional[datetime] = None
    last_sync_status: str
    last_error_message: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class SyncResultOut(BaseModel):
    subscription_id: int
    status: str
    inserted: int = 0
    updated: int = 0
    cancelled: int = 0
    unchanged: int = 0
    mutations: int = 0
    conflicts: list[str] = Field(default_factory=list)
    error: Optional[str] = None


class TokenOut(BaseModel):
    property_id: int
    enabled: bool
    token: Optional[str] = None
    url: Optional[str] = None


# -------------------- Cash + reports --------------------

class CashflowEntryCreate(BaseModel):
    property_id: int
    entry_type: Literal["income", "expense"]
    category: str = "other"
    description: str = ""
    amount: float = Field(ge=0)
    transaction_date: date
    reservation_id: Optional[int] = None
    payment_method: Optional[str] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None


class CashflowEntryOut(CashflowEntryCreate):
    id: int
    model_config = ConfigDict(from_attributes=True)


class CashflowExportIn(BaseModel):
    months: list[str] = Field(min_length=1)  # YYYY-MM
    entry_type: Literal["income", "expense", "both"] = "both"
    property_id: Optional[int] = None
    format: Literal["csv", "tsv"] = "csv"

    @model_validator(mode="after")
    def _strip_months(self):
        self.months = [m.strip() for m in self.months if m and m.strip()]
        return self

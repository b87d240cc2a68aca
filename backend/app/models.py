# backend/app/models.py
from __future__ import annotations

import datetime as dt
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    DDL,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def utcnow() -> datetime:
    """Naive UTC, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


OVERLAP_CONSTRAINT_NAME = "ex_reservations_no_overlap"

# Storage-level no-overlap guarantee (Postgres). The conflict guard maps a
# violation of exactly this constraint to BookingConflict.
OVERLAP_CONSTRAINT_SQL = f"""
CREATE EXTENSION IF NOT EXISTS btree_gist;
ALTER TABLE reservations
  ADD CONSTRAINT {OVERLAP_CONSTRAINT_NAME}
  EXCLUDE USING gist (
    property_id WITH =,
    daterange(check_in, check_out, '[)') WITH &&
  )
  WHERE (status NOT IN ('cancelled', 'no_show'));
"""


# -----------------------------
# Users + plans
# -----------------------------
class AppUser(Base):
    __tablename__ = "app_users"
    __table_args__ = (
        CheckConstraint(
            "calendar_override_mode IN ('default','unlimited','months')",
            name="ck_app_users_calendar_override_mode",
        ),
        CheckConstraint(
            "report_override_mode IN ('default','unlimited','months')",
            name="ck_app_users_report_override_mode",
        ),
        CheckConstraint(
            "(calendar_override_mode = 'months') = (calendar_override_months IS NOT NULL AND calendar_override_months > 0)",
            name="ck_app_users_calendar_override_months",
        ),
        CheckConstraint(
            "(report_override_mode = 'months') = (report_override_months IS NOT NULL AND report_override_months > 0)",
            name="ck_app_users_report_override_months",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)

    # per-user entitlement overrides (admin granted); see domain/entitlements.py
    calendar_override_mode: Mapped[str] = mapped_column(String(16), nullable=False, default="default")
    calendar_override_months: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    report_override_mode: Mapped[str] = mapped_column(String(16), nullable=False, default="default")
    report_override_months: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    properties: Mapped[List["Property"]] = relationship(back_populates="owner")


class Plan(Base):
    __tablename__ = "plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # NULL = unlimited
    calendar_months_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    report_months_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_code: Mapped[str] = mapped_column(String(50), nullable=False, default="free")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")  # active|grace_period|expired
    current_period_end: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


# -----------------------------
# Properties + intervals
# -----------------------------
class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_user_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    owner: Mapped["AppUser"] = relationship(back_populates="properties")
    reservations: Mapped[List["Reservation"]] = relationship(back_populates="property", cascade="all, delete-orphan")
    locked_dates: Mapped[List["LockedDate"]] = relationship(back_populates="property", cascade="all, delete-orphan")


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("check_out > check_in", name="ck_reservations_dates"),
        UniqueConstraint("subscription_id", "external_uid", name="uq_reservations_subscription_uid"),
        Index("ix_reservations_property_check_in", "property_id", "check_in"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )

    check_in: Mapped[date] = mapped_column(Date, nullable=False)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)  # exclusive

    # pending|confirmed|checked_in|completed|cancelled|no_show
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="confirmed")
    source: Mapped[str] = mapped_column(String(40), nullable=False, default="direct")  # direct|airbnb|vrbo|...

    subscription_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("ical_subscriptions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    external_uid: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    guest_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    property: Mapped["Property"] = relationship(back_populates="reservations")


event.listen(
    Reservation.__table__,
    "after_create",
    DDL(OVERLAP_CONSTRAINT_SQL).execute_if(dialect="postgresql"),
)


class LockedDate(Base):
    __tablename__ = "locked_dates"
    __table_args__ = (UniqueConstraint("property_id", "date", name="uq_locked_dates_property_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_by_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    property: Mapped["Property"] = relationship(back_populates="locked_dates")


# -----------------------------
# iCal import / export
# -----------------------------
class IcalSubscription(Base):
    __tablename__ = "ical_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    feed_url: Mapped[str] = mapped_column(Text, nullable=False)
    source_name: Mapped[str] = mapped_column(String(20), nullable=False)  # airbnb|vrbo|booking_com|other
    source_label: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # owned by the import pipeline
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_sync_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending|synced|error
    last_error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class SyncLease(Base):
    """
    In-progress lease per subscription. An expired lease may be stolen, so a
    hung fetch cannot wedge later cycles.
    """

    __tablename__ = "sync_leases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    subscription_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ical_subscriptions.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    owner: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class IcalFeedToken(Base):
    __tablename__ = "ical_feed_tokens"
    __table_args__ = (
        Index(
            "uq_ical_feed_tokens_active_property",
            "property_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class CalendarShareToken(Base):
    __tablename__ = "calendar_share_tokens"
    __table_args__ = (
        Index(
            "uq_calendar_share_tokens_active_property",
            "property_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


# -----------------------------
# Cashflow
# -----------------------------
class CashflowEntry(Base):
    __tablename__ = "cashflow_entries"
    __table_args__ = (Index("ix_cashflow_entries_user_date", "user_id", "transaction_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id", ondelete="CASCADE"), nullable=False, index=True)
    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reservation_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("reservations.id", ondelete="SET NULL"), nullable=True
    )

    entry_type: Mapped[str] = mapped_column(String(20), nullable=False)  # income|expense
    category: Mapped[str] = mapped_column(String(80), nullable=False, default="other")
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    payment_method: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    reference_number: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    property: Mapped["Property"] = relationship()

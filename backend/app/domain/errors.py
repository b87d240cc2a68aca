from __future__ import annotations

from datetime import date
from typing import Optional


class ValidationError(ValueError):
    """Malformed input rejected before any write."""


class BookingConflict(Exception):
    """
    A candidate interval intersects an existing blocking reservation.

    Always carries the colliding range so it can be shown verbatim.
    """

    def __init__(
        self,
        *,
        property_id: int,
        check_in: date,
        check_out: date,
        reservation_id: Optional[int] = None,
        source: Optional[str] = None,
        rolled_back: bool = False,
    ) -> None:
        self.property_id = int(property_id)
        # raised by the storage constraint; the enclosing transaction is gone
        self.rolled_back = rolled_back
        self.check_in = check_in
        self.check_out = check_out
        self.reservation_id = reservation_id
        self.source = source
        super().__init__(self.message)

    @property
    def message(self) -> str:
        who = f" ({self.source})" if self.source else ""
        return (
            f"dates overlap with existing booking{who} "
            f"{self.check_in.isoformat()} to {self.check_out.isoformat()}"
        )

    def as_dict(self) -> dict:
        return {
            "error": "booking_conflict",
            "message": self.message,
            "property_id": self.property_id,
            "conflict": {
                "reservation_id": self.reservation_id,
                "check_in": self.check_in.isoformat(),
                "check_out": self.check_out.isoformat(),
                "source": self.source,
            },
        }


class EntitlementDenied(Exception):
    """Target month is outside the user's plan window for a feature."""

    def __init__(
        self,
        *,
        feature: str,
        year: int,
        month: int,
        months_from_now: int,
        limit: Optional[int],
    ) -> None:
        self.feature = feature
        self.year = int(year)
        self.month = int(month)
        self.months_from_now = int(months_from_now)
        self.limit = limit
        super().__init__(f"{feature} access to {self.month_key} requires an upgrade (limit={limit})")

    @property
    def month_key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def as_dict(self) -> dict:
        return {
            "error": "entitlement_denied",
            "feature": self.feature,
            "month": self.month_key,
            "months_from_now": self.months_from_now,
            "limit": self.limit,
            "upgrade_required": True,
        }


class SyncError(Exception):
    """
    Failure of one import sync cycle. Recorded on the subscription row;
    never surfaced to interactive callers as an exception.
    """


class TokenInvalid(Exception):
    """Unknown, malformed or revoked bearer token. Deliberately carries no detail."""

    def __init__(self) -> None:
        super().__init__("Not found")

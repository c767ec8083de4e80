"""Check-in schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from moveup.core.enums import CheckInRejectionEnum


class Location(BaseModel):
    """Presenter position in degrees."""

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class CheckInRequest(BaseModel):
    """Scanned instructor QR code plus presenter location.

    ``qr_data`` is kept as raw JSON so malformed codes are reported as a
    rejection instead of a request validation error.
    """

    qr_data: dict[str, Any] | str
    location: Location


class CheckInRead(BaseModel):
    """Check-in outcome."""

    accepted: bool
    reason: CheckInRejectionEnum | None = None
    message: str
    booking_id: UUID | None = None
    lesson_title: str | None = None
    instructor_name: str | None = None
    checked_in_at: datetime | None = None
    distance_m: float | None = None
    amount: Decimal | None = None
    currency: str | None = None


class CheckInAttemptRead(BaseModel):
    """Audited check-in attempt."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    actor_id: UUID | None
    action: str
    payload: dict
    created_at: datetime

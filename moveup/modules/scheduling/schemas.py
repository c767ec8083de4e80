"""Scheduling schemas."""

from __future__ import annotations

import datetime as dt
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SlotRead(BaseModel):
    """Availability slot response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    instructor_id: UUID
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    is_available: bool
    latitude: float | None
    longitude: float | None


class NearbySlotRead(BaseModel):
    """Availability slot with distance from the search point."""

    slot: SlotRead
    distance_m: float


class NearbyQuery(BaseModel):
    """Radius search parameters."""

    date: dt.date
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    radius_m: float = Field(default=5000, gt=0, le=100_000)

"""Availability API router."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from moveup.core.security import Actor, get_current_actor
from moveup.modules.scheduling.schemas import NearbyQuery, NearbySlotRead, SlotRead
from moveup.modules.scheduling.service import AvailabilityIndex, get_availability_index

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get("/nearby", response_model=list[NearbySlotRead])
async def list_nearby_slots(
    query: NearbyQuery = Depends(),
    index: AvailabilityIndex = Depends(get_availability_index),
    _: Actor = Depends(get_current_actor),
) -> list[NearbySlotRead]:
    """Available slots with a meeting point near the given location."""
    matches = await index.find_available_near(query.date, query.latitude, query.longitude, query.radius_m)
    return [
        NearbySlotRead(slot=SlotRead.model_validate(item.slot), distance_m=round(item.distance_m, 1))
        for item in matches
    ]


@router.get("/{instructor_id}", response_model=list[SlotRead])
async def list_instructor_slots(
    instructor_id: UUID,
    day: date = Query(alias="date"),
    index: AvailabilityIndex = Depends(get_availability_index),
    _: Actor = Depends(get_current_actor),
) -> list[SlotRead]:
    """Slots of one instructor day."""
    slots = await index.query_availability(instructor_id, day)
    return [SlotRead.model_validate(slot) for slot in slots]

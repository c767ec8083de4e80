"""Notifications API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from moveup.core.enums import RoleEnum
from moveup.core.security import Actor, get_current_actor, require_roles
from moveup.modules.notifications.schemas import DispatchStatsRead, NotificationTaskRead
from moveup.modules.notifications.service import NotificationDispatchQueue, get_notification_queue
from moveup.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/failed", response_model=Page[NotificationTaskRead])
async def list_failed_notifications(
    pagination=Depends(get_pagination_params),
    queue: NotificationDispatchQueue = Depends(get_notification_queue),
    current_actor: Actor = Depends(get_current_actor),
) -> Page[NotificationTaskRead]:
    """List notifications that exhausted their delivery attempts."""
    items, total = await queue.list_failed(current_actor, pagination.limit, pagination.offset)
    serialized = [NotificationTaskRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.post("/dispatch", response_model=DispatchStatsRead)
async def dispatch_notifications(
    queue: NotificationDispatchQueue = Depends(get_notification_queue),
    _: Actor = Depends(require_roles(RoleEnum.ADMIN)),
) -> DispatchStatsRead:
    """Run one dispatch cycle (admin task endpoint)."""
    return DispatchStatsRead(**(await queue.run_once()))

"""Notifications repository layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Select, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from moveup.core.enums import NotificationPriorityEnum, NotificationStatusEnum, NotificationTypeEnum
from moveup.modules.notifications.models import NotificationTask

PRIORITY_RANK = {
    NotificationPriorityEnum.URGENT: 0,
    NotificationPriorityEnum.HIGH: 1,
    NotificationPriorityEnum.MEDIUM: 2,
    NotificationPriorityEnum.LOW: 3,
}


class NotificationsRepository:
    """DB operations for the notification queue."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_task(self, **values: Any) -> NotificationTask:
        task = NotificationTask(
            status=NotificationStatusEnum.PENDING,
            retry_count=0,
            sent_channels=[],
            **values,
        )
        self.session.add(task)
        await self.session.flush()
        return task

    async def claim_ready(self, now: datetime, limit: int, max_retries: int) -> list[NotificationTask]:
        """Lock due tasks, skipping rows another drain already holds, and mark them in flight."""
        priority_rank = case(PRIORITY_RANK, value=NotificationTask.priority, else_=len(PRIORITY_RANK))
        stmt = (
            select(NotificationTask)
            .where(
                NotificationTask.status == NotificationStatusEnum.PENDING,
                NotificationTask.scheduled_for <= now,
                NotificationTask.retry_count < max_retries,
            )
            .order_by(priority_rank.asc(), NotificationTask.scheduled_for.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        tasks = list((await self.session.scalars(stmt)).all())
        for task in tasks:
            task.status = NotificationStatusEnum.IN_FLIGHT
            task.claimed_at = now
        await self.session.flush()
        return tasks

    async def release_stale_claims(self, claimed_before: datetime) -> int:
        stmt = (
            update(NotificationTask)
            .where(
                NotificationTask.status == NotificationStatusEnum.IN_FLIGHT,
                NotificationTask.claimed_at <= claimed_before,
            )
            .values(status=NotificationStatusEnum.PENDING, claimed_at=None)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def withdraw_pending(
        self,
        booking_id: UUID,
        types: list[NotificationTypeEnum],
        withdrawn_at: datetime,
    ) -> int:
        """Withdraw queued tasks of the given types for a booking; in-flight and sent tasks are untouched."""
        stmt = (
            update(NotificationTask)
            .where(
                NotificationTask.related_booking_id == booking_id,
                NotificationTask.type.in_(types),
                NotificationTask.status == NotificationStatusEnum.PENDING,
            )
            .values(status=NotificationStatusEnum.WITHDRAWN, last_error=f"withdrawn at {withdrawn_at.isoformat()}")
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def mark_sent(self, task: NotificationTask, sent_channels: list[str], sent_at: datetime) -> NotificationTask:
        task.status = NotificationStatusEnum.SENT
        task.sent_channels = sent_channels
        task.sent_at = sent_at
        task.claimed_at = None
        task.last_error = None
        await self.session.flush()
        return task

    async def mark_retry(
        self,
        task: NotificationTask,
        error_message: str,
        retry_at: datetime,
    ) -> NotificationTask:
        task.status = NotificationStatusEnum.PENDING
        task.retry_count += 1
        task.last_error = error_message[:1024]
        task.scheduled_for = retry_at
        task.claimed_at = None
        await self.session.flush()
        return task

    async def mark_failed(self, task: NotificationTask, error_message: str, failed_at: datetime) -> NotificationTask:
        task.status = NotificationStatusEnum.FAILED
        task.retry_count += 1
        task.last_error = error_message[:1024]
        task.failed_at = failed_at
        task.claimed_at = None
        await self.session.flush()
        return task

    async def list_failed(self, limit: int, offset: int) -> tuple[list[NotificationTask], int]:
        base_stmt: Select[tuple[NotificationTask]] = select(NotificationTask).where(
            NotificationTask.status == NotificationStatusEnum.FAILED,
        )
        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(NotificationTask.failed_at.desc()).limit(limit).offset(offset)
        items = list((await self.session.scalars(stmt)).all())
        return items, total

"""Notification dispatch queue: enqueue, claim, deliver, retry."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from moveup.core.config import get_settings
from moveup.core.database import get_db_session
from moveup.core.enums import NotificationChannelEnum, NotificationTypeEnum
from moveup.core.metrics import NOTIFICATION_DELIVERIES_TOTAL
from moveup.core.security import Actor
from moveup.modules.notifications.events import NotificationDraft
from moveup.modules.notifications.models import NotificationTask
from moveup.modules.notifications.repository import NotificationsRepository
from moveup.modules.notifications.sender import NotificationSender, get_notification_sender
from moveup.shared.exceptions import ExternalFailureException, UnauthorizedException
from moveup.shared.utils import utc_now

logger = logging.getLogger(__name__)


class NotificationDispatchQueue:
    """Persistent queue with bounded per-task delivery attempts."""

    def __init__(
        self,
        repository: NotificationsRepository,
        sender: NotificationSender,
        *,
        batch_size: int = 100,
        max_retries: int = 3,
        base_backoff_seconds: int = 30,
        max_backoff_seconds: int = 300,
        claim_timeout_seconds: int = 300,
        now_provider=utc_now,
    ) -> None:
        self.repository = repository
        self.sender = sender
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.claim_timeout_seconds = claim_timeout_seconds
        self.now_provider = now_provider

    async def enqueue(self, draft: NotificationDraft) -> NotificationTask:
        """Persist a draft as a pending task."""
        return await self.repository.create_task(
            recipient_id=draft.recipient_id,
            type=draft.type,
            priority=draft.priority,
            title=draft.title,
            body=draft.body,
            payload=dict(draft.payload),
            channels=[str(channel) for channel in draft.channels],
            scheduled_for=draft.scheduled_for,
            related_booking_id=draft.related_booking_id,
        )

    async def enqueue_many(self, drafts: list[NotificationDraft]) -> list[NotificationTask]:
        return [await self.enqueue(draft) for draft in drafts]

    async def withdraw_for_booking(
        self,
        booking_id: UUID,
        types: list[NotificationTypeEnum],
        now: datetime | None = None,
    ) -> int:
        """Drop queued notifications that no longer apply to a booking."""
        withdrawn = await self.repository.withdraw_pending(booking_id, types, now or self.now_provider())
        if withdrawn:
            NOTIFICATION_DELIVERIES_TOTAL.labels(outcome="withdrawn").inc(withdrawn)
            logger.info("Withdrew %s queued notification(s) for booking %s", withdrawn, booking_id)
        return withdrawn

    async def drain_ready(self, now: datetime) -> list[NotificationTask]:
        """Claim due tasks that are neither sent nor retry-exhausted."""
        return await self.repository.claim_ready(now, limit=self.batch_size, max_retries=self.max_retries)

    async def dispatch(self, tasks: list[NotificationTask], now: datetime) -> dict[str, int]:
        """Deliver claimed tasks on each required channel not yet sent."""
        stats = {"sent": 0, "retried": 0, "failed": 0}
        for task in tasks:
            sent_channels = list(task.sent_channels or [])
            errors: list[str] = []
            for channel in task.channels:
                if channel in sent_channels:
                    continue
                try:
                    await self.sender.send(NotificationChannelEnum(channel), task.recipient_id, self._payload(task))
                except ExternalFailureException as exc:
                    errors.append(f"{channel}: {exc.message}")
                    continue
                sent_channels.append(channel)

            if sent_channels:
                await self.repository.mark_sent(task, sent_channels, now)
                NOTIFICATION_DELIVERIES_TOTAL.labels(outcome="sent").inc()
                stats["sent"] += 1
                continue

            error_message = "; ".join(errors) or "no deliverable channel"
            if task.retry_count + 1 >= self.max_retries:
                await self.repository.mark_failed(task, error_message, now)
                NOTIFICATION_DELIVERIES_TOTAL.labels(outcome="failed").inc()
                logger.error(
                    "Notification %s for %s failed permanently after %s attempts: %s",
                    task.id,
                    task.recipient_id,
                    task.retry_count,
                    error_message,
                )
                stats["failed"] += 1
                continue

            retry_at = now + timedelta(seconds=self._backoff_seconds(task.retry_count + 1))
            await self.repository.mark_retry(task, error_message, retry_at)
            NOTIFICATION_DELIVERIES_TOTAL.labels(outcome="retried").inc()
            logger.warning("Notification %s delivery failed, retrying at %s: %s", task.id, retry_at, error_message)
            stats["retried"] += 1
        return stats

    async def run_once(self, now: datetime | None = None) -> dict[str, int]:
        """Release stale claims, then drain and dispatch one batch."""
        now = now or self.now_provider()
        released = await self.repository.release_stale_claims(
            now - timedelta(seconds=self.claim_timeout_seconds),
        )
        tasks = await self.drain_ready(now)
        stats = await self.dispatch(tasks, now)
        return {"released": released, "claimed": len(tasks), **stats}

    async def list_failed(self, actor: Actor, limit: int, offset: int) -> tuple[list[NotificationTask], int]:
        """Terminal failures for operator remediation (admin only)."""
        if not actor.is_admin:
            raise UnauthorizedException("Only admin can view failed notifications")
        return await self.repository.list_failed(limit, offset)

    def _backoff_seconds(self, attempt: int) -> int:
        return min(self.max_backoff_seconds, self.base_backoff_seconds * (2 ** (max(attempt, 1) - 1)))

    @staticmethod
    def _payload(task: NotificationTask) -> dict:
        return {
            "type": str(task.type),
            "priority": str(task.priority),
            "title": task.title,
            "body": task.body,
            **(task.payload or {}),
        }


def build_notification_queue(session: AsyncSession, now_provider=utc_now) -> NotificationDispatchQueue:
    """Queue wired from settings."""
    settings = get_settings()
    return NotificationDispatchQueue(
        NotificationsRepository(session),
        get_notification_sender(),
        batch_size=settings.notification_batch_size,
        max_retries=settings.notification_max_retries,
        base_backoff_seconds=settings.notification_base_backoff_seconds,
        max_backoff_seconds=settings.notification_max_backoff_seconds,
        claim_timeout_seconds=settings.notification_claim_timeout_seconds,
        now_provider=now_provider,
    )


async def get_notification_queue(session: AsyncSession = Depends(get_db_session)) -> NotificationDispatchQueue:
    """Dependency provider for notification queue."""
    return build_notification_queue(session)

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from fakes import FakeNotificationsRepository, RecordingSender
from moveup.core.enums import (
    NotificationChannelEnum,
    NotificationPriorityEnum,
    NotificationStatusEnum,
    NotificationTypeEnum,
    RoleEnum,
)
from moveup.core.security import Actor
from moveup.modules.notifications.events import NotificationDraft
from moveup.modules.notifications.service import NotificationDispatchQueue
from moveup.shared.exceptions import UnauthorizedException

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def make_queue(
    sender: RecordingSender | None = None,
    max_retries: int = 3,
) -> tuple[NotificationDispatchQueue, FakeNotificationsRepository, RecordingSender]:
    repository = FakeNotificationsRepository()
    sender = sender or RecordingSender()
    queue = NotificationDispatchQueue(
        repository,
        sender,
        batch_size=10,
        max_retries=max_retries,
        base_backoff_seconds=30,
        max_backoff_seconds=300,
        claim_timeout_seconds=300,
        now_provider=lambda: NOW,
    )
    return queue, repository, sender


def draft(
    priority: NotificationPriorityEnum = NotificationPriorityEnum.MEDIUM,
    scheduled_for: datetime = NOW,
    channels: tuple[NotificationChannelEnum, ...] = (NotificationChannelEnum.PUSH,),
) -> NotificationDraft:
    return NotificationDraft(
        recipient_id=uuid4(),
        type=NotificationTypeEnum.BOOKING_CONFIRMATION,
        title="Booking confirmed",
        body="See you there.",
        scheduled_for=scheduled_for,
        priority=priority,
        channels=channels,
        payload={"booking_id": str(uuid4())},
    )


@pytest.mark.asyncio
async def test_enqueue_persists_pending_task() -> None:
    queue, repository, _ = make_queue()

    task = await queue.enqueue(draft(channels=(NotificationChannelEnum.PUSH, NotificationChannelEnum.EMAIL)))

    assert task.status == NotificationStatusEnum.PENDING
    assert task.channels == ["push", "email"]
    assert task.retry_count == 0
    assert repository.tasks == [task]


@pytest.mark.asyncio
async def test_run_once_delivers_due_tasks_by_priority() -> None:
    queue, _, sender = make_queue()
    low = await queue.enqueue(draft(NotificationPriorityEnum.LOW))
    urgent = await queue.enqueue(draft(NotificationPriorityEnum.URGENT))
    later = await queue.enqueue(draft(scheduled_for=NOW + timedelta(hours=1)))

    stats = await queue.run_once()

    assert stats == {"released": 0, "claimed": 2, "sent": 2, "retried": 0, "failed": 0}
    assert [recipient for _, recipient, _ in sender.deliveries] == [urgent.recipient_id, low.recipient_id]
    assert later.status == NotificationStatusEnum.PENDING
    assert urgent.sent_at == NOW
    assert sender.deliveries[0][2]["title"] == "Booking confirmed"


@pytest.mark.asyncio
async def test_failed_delivery_is_retried_with_backoff() -> None:
    queue, _, _ = make_queue(RecordingSender(failing_channels={"push"}))
    task = await queue.enqueue(draft())

    stats = await queue.run_once()

    assert stats["retried"] == 1
    assert task.status == NotificationStatusEnum.PENDING
    assert task.retry_count == 1
    assert task.scheduled_for == NOW + timedelta(seconds=30)
    assert "push gateway unavailable" in task.last_error


@pytest.mark.asyncio
async def test_delivery_gives_up_after_max_retries() -> None:
    queue, _, sender = make_queue(RecordingSender(failing_channels={"push"}))
    task = await queue.enqueue(draft())

    now = NOW
    outcomes = []
    for _ in range(5):
        stats = await queue.run_once(now)
        outcomes.append((stats["retried"], stats["failed"]))
        now += timedelta(minutes=10)

    assert outcomes == [(1, 0), (1, 0), (0, 1), (0, 0), (0, 0)]
    assert task.status == NotificationStatusEnum.FAILED
    assert task.retry_count == 3
    assert task.failed_at is not None
    assert sender.deliveries == []


def test_backoff_is_exponential_and_capped() -> None:
    queue, _, _ = make_queue()

    assert [queue._backoff_seconds(attempt) for attempt in range(1, 7)] == [30, 60, 120, 240, 300, 300]


@pytest.mark.asyncio
async def test_partial_channel_failure_counts_as_sent() -> None:
    queue, _, sender = make_queue(RecordingSender(failing_channels={"email"}))
    task = await queue.enqueue(draft(channels=(NotificationChannelEnum.PUSH, NotificationChannelEnum.EMAIL)))

    stats = await queue.run_once()

    assert stats["sent"] == 1
    assert task.status == NotificationStatusEnum.SENT
    assert task.sent_channels == ["push"]
    assert [channel for channel, _, _ in sender.deliveries] == ["push"]


@pytest.mark.asyncio
async def test_already_sent_channels_are_skipped() -> None:
    queue, _, sender = make_queue()
    task = await queue.enqueue(draft(channels=(NotificationChannelEnum.PUSH, NotificationChannelEnum.EMAIL)))
    task.sent_channels = ["push"]

    await queue.dispatch([task], NOW)

    assert [channel for channel, _, _ in sender.deliveries] == ["email"]
    assert task.sent_channels == ["push", "email"]


@pytest.mark.asyncio
async def test_stale_claims_are_released_before_draining() -> None:
    queue, repository, _ = make_queue()
    task = await queue.enqueue(draft())
    task.status = NotificationStatusEnum.IN_FLIGHT
    task.claimed_at = NOW - timedelta(minutes=10)

    stats = await queue.run_once()

    assert repository.released_before == [NOW - timedelta(seconds=300)]
    assert stats["released"] == 1
    assert task.status == NotificationStatusEnum.SENT


@pytest.mark.asyncio
async def test_withdraw_for_booking_only_touches_queued_tasks_of_given_type() -> None:
    queue, _, sender = make_queue()
    booking_id = uuid4()
    queued = draft()
    queued.type = NotificationTypeEnum.BOOKING_REMINDER
    queued.related_booking_id = booking_id
    queued_task = await queue.enqueue(queued)
    claimed = draft()
    claimed.type = NotificationTypeEnum.BOOKING_REMINDER
    claimed.related_booking_id = booking_id
    claimed_task = await queue.enqueue(claimed)
    claimed_task.status = NotificationStatusEnum.IN_FLIGHT
    other = draft()
    other.related_booking_id = booking_id
    other_task = await queue.enqueue(other)

    withdrawn = await queue.withdraw_for_booking(booking_id, [NotificationTypeEnum.BOOKING_REMINDER])
    stats = await queue.run_once()

    assert withdrawn == 1
    assert queued_task.status == NotificationStatusEnum.WITHDRAWN
    assert queued_task.last_error == f"withdrawn at {NOW.isoformat()}"
    assert claimed_task.status == NotificationStatusEnum.IN_FLIGHT
    assert other_task.status == NotificationStatusEnum.SENT
    assert stats["claimed"] == 1
    assert [payload["type"] for _, _, payload in sender.deliveries] == ["booking_confirmation"]


@pytest.mark.asyncio
async def test_failed_tasks_listing_requires_admin() -> None:
    queue, _, _ = make_queue()

    with pytest.raises(UnauthorizedException):
        await queue.list_failed(Actor(id=uuid4(), role=RoleEnum.USER), 10, 0)

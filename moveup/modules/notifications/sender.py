"""Channel transport seam for notification delivery."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Protocol
from uuid import UUID

from moveup.core.enums import NotificationChannelEnum

logger = logging.getLogger(__name__)


class NotificationSender(Protocol):
    """Delivers one payload on one channel; raises ExternalFailureException on failure."""

    async def send(self, channel: NotificationChannelEnum, recipient_id: UUID, payload: dict[str, Any]) -> None: ...


class LoggingNotificationSender:
    """Sender that only records deliveries in the application log."""

    async def send(self, channel: NotificationChannelEnum, recipient_id: UUID, payload: dict[str, Any]) -> None:
        logger.info(
            "Delivered %s notification to %s via %s: %s",
            payload.get("type"),
            recipient_id,
            channel,
            payload.get("title"),
        )


@lru_cache
def get_notification_sender() -> NotificationSender:
    """Return shared notification sender."""
    return LoggingNotificationSender()

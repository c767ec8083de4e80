"""Executable worker that drains the notification dispatch queue."""

from __future__ import annotations

import asyncio
import logging
import os

from moveup.core.config import get_settings
from moveup.core.database import session_scope
from moveup.modules.notifications.service import build_notification_queue

logger = logging.getLogger(__name__)


async def run_cycle() -> dict[str, int]:
    """Release stale claims, then claim and deliver one batch in one DB transaction."""
    async with session_scope() as session:
        queue = build_notification_queue(session)
        return await queue.run_once()


async def main() -> None:
    """Run once or keep polling according to worker mode."""
    level_name = os.getenv("NOTIFICATION_WORKER_LOG_LEVEL", get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    mode = os.getenv("NOTIFICATION_WORKER_MODE", "once").strip().lower()
    poll_seconds = int(os.getenv("NOTIFICATION_WORKER_POLL_SECONDS", "10"))

    if mode == "once":
        stats = await run_cycle()
        logger.info("Notification dispatch worker stats: %s", stats)
        return

    while True:
        try:
            stats = await run_cycle()
            logger.info("Notification dispatch worker stats: %s", stats)
        except Exception:
            logger.exception("Notification dispatch worker cycle failed")
        await asyncio.sleep(poll_seconds)


if __name__ == "__main__":
    asyncio.run(main())

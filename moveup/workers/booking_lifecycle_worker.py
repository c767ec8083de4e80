"""Executable worker for booking timeouts, payment leg retries and projection reconciliation."""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import timedelta

from moveup.core.config import get_settings
from moveup.core.database import session_scope
from moveup.modules.booking.service import build_booking_service
from moveup.shared.utils import utc_now

logger = logging.getLogger(__name__)


async def run_cycle(reconcile_window_minutes: int) -> dict[str, int]:
    """Sweep due bookings, retry failed payment legs, then reconcile recent payment projections."""
    now = utc_now()
    async with session_scope() as session:
        stats = await build_booking_service(session).run_lifecycle_sweep(now)

    async with session_scope() as session:
        retries = await build_booking_service(session).retry_payment_legs()
    stats.update({f"payment_{name}": count for name, count in retries.items()})

    async with session_scope() as session:
        stats["reconciled"] = await build_booking_service(session).reconcile_recent(
            now - timedelta(minutes=reconcile_window_minutes),
        )
    return stats


async def main() -> None:
    """Run once or keep polling according to worker mode."""
    level_name = os.getenv("BOOKING_WORKER_LOG_LEVEL", get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    mode = os.getenv("BOOKING_WORKER_MODE", "once").strip().lower()
    poll_seconds = int(os.getenv("BOOKING_WORKER_POLL_SECONDS", "60"))
    reconcile_window_minutes = int(os.getenv("BOOKING_WORKER_RECONCILE_WINDOW_MINUTES", "60"))

    if mode == "once":
        stats = await run_cycle(reconcile_window_minutes)
        logger.info("Booking lifecycle worker stats: %s", stats)
        return

    while True:
        try:
            stats = await run_cycle(reconcile_window_minutes)
            logger.info("Booking lifecycle worker stats: %s", stats)
        except Exception:
            logger.exception("Booking lifecycle worker cycle failed")
        await asyncio.sleep(poll_seconds)


if __name__ == "__main__":
    asyncio.run(main())

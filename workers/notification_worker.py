"""
Reminder scheduling worker.

Purpose:
- Periodically run one notification tick (rollover, due-today check, dispatch)
- Each tick runs to completion before the next one is scheduled
- Run as a single process: the scheduler assumes one active instance

Usage:
- python -m workers.notification_worker            # loop forever
- python -m workers.notification_worker --once     # single tick (cron)

Production notes:
- Ticks are safe to overlap or repeat: a reminder with a `sent` log row is never sent again
- Failed sends are retried by the next tick, there is no retry queue
"""
import argparse
import asyncio
import logging
from typing import Optional

from config.settings import settings
from core import db
from core.logging import configure_logging
from services.notification_scheduler import NotificationScheduler, TickResult
from services.store import SqlAlchemyStore

logger = logging.getLogger(__name__)


class NotificationSchedulingWorker:
    """Timer loop around NotificationScheduler."""

    def __init__(self, scheduler: NotificationScheduler, interval_seconds: Optional[int] = None):
        self.scheduler = scheduler
        if interval_seconds is None:
            interval_seconds = settings.NOTIFY_INTERVAL_SECONDS
        self.interval_seconds = interval_seconds
        self.ticks = 0

    async def run_once(self) -> Optional[TickResult]:
        self.ticks += 1
        try:
            return await self.scheduler.process_pending_notifications()
        except Exception:
            # e.g. the user enumeration query failed; try again next interval
            logger.exception("Notification tick %d failed", self.ticks)
            return None

    async def run(self, max_ticks: Optional[int] = None):
        logger.info("Notification worker started (interval=%ss)", self.interval_seconds)
        try:
            while max_ticks is None or self.ticks < max_ticks:
                await self.run_once()
                if max_ticks is not None and self.ticks >= max_ticks:
                    break
                await asyncio.sleep(self.interval_seconds)
        finally:
            logger.info("Notification worker stopped after %d tick(s)", self.ticks)


async def main(once: bool = False):
    """Entry point for running the worker."""
    configure_logging()
    if db.async_session_maker is None:
        raise RuntimeError("DATABASE_URL is disabled; the notification worker needs a database")

    scheduler = NotificationScheduler(SqlAlchemyStore(db.async_session_maker))
    worker = NotificationSchedulingWorker(scheduler)
    try:
        if once:
            await worker.run_once()
        else:
            await worker.run()
    finally:
        await db.engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Subscription reminder scheduler")
    parser.add_argument("--once", action="store_true", help="run a single tick and exit")
    args = parser.parse_args()
    asyncio.run(main(once=args.once))

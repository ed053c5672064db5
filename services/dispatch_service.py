"""
Bounded-concurrency dispatch of reminder jobs for one user.

Purpose:
- Fan a user's jobs out to min(job_count, K) asyncio workers over a shared queue
- Call the sender registered for each job's channel type
- Write exactly one NotificationLog row per job (sent / failed + error)

No job is retried here. A failed row does not block the next tick; only a
sent row does (see NotificationScheduler's durable dedup check).
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import List, Optional

from config.settings import settings
from models.subscription import LogStatus, NotificationChannel, NotificationLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchJob:
    subscription_id: int
    channel: NotificationChannel
    notify_date: date
    message: str
    target_hint: str = ""


@dataclass
class DispatchResult:
    sent: int = 0
    failed: int = 0


def worker_count(item_count: int, limit: int) -> int:
    if item_count <= 0:
        return 0
    return min(item_count, limit)


class DispatchWorkerPool:
    def __init__(self, store, senders, max_workers: Optional[int] = None):
        self.store = store
        self.senders = senders
        self.max_workers = max_workers or settings.NOTIFY_DISPATCH_WORKERS

    async def dispatch(self, user_id: int, jobs: List[DispatchJob]) -> DispatchResult:
        result = DispatchResult()
        workers = worker_count(len(jobs), self.max_workers)
        if workers == 0:
            return result

        queue: asyncio.Queue = asyncio.Queue()
        for job in jobs:
            queue.put_nowait(job)

        async def worker():
            while True:
                try:
                    job = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                await self._run_job(user_id, job, result)

        await asyncio.gather(*(worker() for _ in range(workers)))
        logger.info("User %s: dispatched %d job(s), sent=%d failed=%d",
                    user_id, len(jobs), result.sent, result.failed)
        return result

    async def _run_job(self, user_id: int, job: DispatchJob, result: DispatchResult) -> None:
        error = ""
        try:
            sender = self.senders.get(job.channel.type)
            await sender.send(job.channel, job.message, job.target_hint)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.warning("Send failed: user=%s subscription=%s channel=%s: %s",
                           user_id, job.subscription_id, job.channel.type, error)

        entry = NotificationLog(
            user_id=user_id,
            subscription_id=job.subscription_id,
            channel_type=job.channel.type,
            notify_date=job.notify_date,
            status=LogStatus.FAILED.value if error else LogStatus.SENT.value,
            error=error,
            sent_at=datetime.now(timezone.utc).replace(tzinfo=None),
        )
        if error:
            result.failed += 1
        else:
            result.sent += 1

        try:
            await self.store.insert_log(entry)
        except Exception:
            # the send already happened; nothing else to do but report it
            logger.exception("Failed to write notification log: user=%s subscription=%s channel=%s",
                             user_id, job.subscription_id, job.channel.type)

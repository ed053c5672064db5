"""
Reminder scheduling: one tick decides which (subscription, channel, date)
reminders are due today and hands them to the dispatch pool.

Per user:  advance -> collect candidates -> build jobs -> dispatch -> done
Per tick:  every user with an enabled channel, min(user_count, K) at a time

Dedup is two-level: a set built fresh for each user run (same channel type
configured twice) and the durable check for an existing `sent` log row,
which is what keeps restarts and overlapping ticks from sending twice.

Failure isolation:
- a store error in one user's run is logged and that user is skipped
- a render error drops that job only (retried next tick, no sent row exists)
- a send error becomes a `failed` log row (also retried next tick)
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Iterable, List, Optional, Set, Tuple

from config.settings import settings
from core.exceptions import TemplateRenderError
from core.timezone import get_system_timezone, now_in_system_timezone, today_in_timezone
from services.channel_senders import default_registry, target_hint_for
from services.dispatch_service import DispatchJob, DispatchResult, DispatchWorkerPool, worker_count
from services.policy_service import NotificationPolicyService, resolve_effective_policy, should_notify
from services.rollover_service import auto_advance_for_user
from services.template_service import TemplateRenderer, build_template_data, render_notification_message

logger = logging.getLogger(__name__)

DispatchKey = Tuple[int, str, date]


@dataclass
class TickResult:
    users_processed: int = 0
    users_failed: int = 0
    sent: int = 0
    failed: int = 0


def unique_user_ids(user_ids: Iterable[int]) -> List[int]:
    """Drop duplicates, keep first-seen order."""
    seen: Set[int] = set()
    unique: List[int] = []
    for user_id in user_ids:
        if user_id in seen:
            continue
        seen.add(user_id)
        unique.append(user_id)
    return unique


def should_schedule_dispatch(scheduled: Set[DispatchKey], subscription_id: int, channel_type: str,
                             notify_date: date) -> bool:
    key = (subscription_id, channel_type, notify_date)
    if key in scheduled:
        return False
    scheduled.add(key)
    return True


class NotificationScheduler:
    def __init__(
        self,
        store,
        senders=None,
        renderer=None,
        user_workers: Optional[int] = None,
        dispatch_workers: Optional[int] = None,
        tz: Optional[tzinfo] = None,
    ):
        self.store = store
        self.senders = senders or default_registry()
        self.renderer = renderer or TemplateRenderer()
        self.user_workers = user_workers or settings.NOTIFY_USER_WORKERS
        self.dispatch_workers = dispatch_workers or settings.NOTIFY_DISPATCH_WORKERS
        self.tz = tz
        self.policies = NotificationPolicyService(store)

    async def process_pending_notifications(self, now: Optional[datetime] = None) -> TickResult:
        """
        One scheduling tick over all users with an enabled channel.
        Returns after every user run has finished.
        """
        now = now or now_in_system_timezone()
        user_ids = unique_user_ids(await self.store.find_user_ids_with_enabled_channels())
        result = TickResult()
        workers = worker_count(len(user_ids), self.user_workers)
        if workers == 0:
            return result

        queue: asyncio.Queue = asyncio.Queue()
        for user_id in user_ids:
            queue.put_nowait(user_id)

        async def worker():
            while True:
                try:
                    user_id = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    dispatched = await self.process_user_notifications(user_id, now)
                except Exception:
                    logger.exception("Notification run failed for user %s", user_id)
                    result.users_failed += 1
                    continue
                result.users_processed += 1
                result.sent += dispatched.sent
                result.failed += dispatched.failed

        await asyncio.gather(*(worker() for _ in range(workers)))
        logger.info("Notification tick done: users=%d failed_users=%d sent=%d failed=%d",
                    result.users_processed, result.users_failed, result.sent, result.failed)
        return result

    async def process_user_notifications(self, user_id: int, now: Optional[datetime] = None) -> DispatchResult:
        now = now or now_in_system_timezone()
        today = today_in_timezone(now, self.tz or get_system_timezone())

        await auto_advance_for_user(self.store, user_id, today)

        policy = await self.policies.get_policy(user_id)
        subs = await self.store.find_notifiable_subscriptions(user_id)
        channels = await self.store.find_enabled_channels(user_id)
        if not channels:
            return DispatchResult()

        user = await self.store.find_user(user_id)
        user_email = user.email if user is not None else ""

        scheduled: Set[DispatchKey] = set()
        jobs: List[DispatchJob] = []

        for sub in subs:
            if sub.next_occurrence is None:
                continue
            effective = resolve_effective_policy(sub, policy)
            if not effective.notify_enabled:
                continue

            billing_date = sub.next_occurrence
            days_until_billing = (billing_date - today).days
            if not should_notify(days_until_billing, effective):
                continue

            payment_method = ""
            if sub.payment_method_id is not None:
                try:
                    payment_method = await self.store.find_payment_method_name(
                        user_id, sub.payment_method_id) or ""
                except Exception:
                    logger.exception("Payment method lookup failed for subscription %s", sub.id)
            fields = build_template_data(sub, billing_date, days_until_billing, user_email, payment_method)

            for channel in channels:
                if not should_schedule_dispatch(scheduled, sub.id, channel.type, billing_date):
                    continue
                if await self.store.exists_sent_log(sub.id, channel.type, billing_date):
                    continue

                try:
                    message = await render_notification_message(
                        self.store, self.renderer, user_id, channel.type, fields)
                except TemplateRenderError as e:
                    logger.error("Failed to render template for user %s channel %s: %s",
                                 user_id, channel.type, e)
                    continue
                except Exception:
                    # a caller-supplied renderer may raise anything; drop this job only
                    logger.exception("Failed to render template for user %s channel %s",
                                     user_id, channel.type)
                    continue

                jobs.append(DispatchJob(
                    subscription_id=sub.id,
                    channel=channel,
                    notify_date=billing_date,
                    message=message,
                    target_hint=target_hint_for(channel.type, user_email, sub.url),
                ))

        pool = DispatchWorkerPool(self.store, self.senders, max_workers=self.dispatch_workers)
        return await pool.dispatch(user_id, jobs)

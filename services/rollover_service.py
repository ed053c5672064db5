"""
Lazy rollover of stale billing dates.

A recurring subscription whose next_occurrence is before today (the process
was down, nobody looked at it) is fast-forwarded to its first occurrence on
or after today. Every read path that needs a correct date calls
auto_advance_for_user first; the call is idempotent and cheap when nothing
is overdue. One-time subscriptions are never advanced.
"""
import logging
from datetime import date, datetime
from typing import Optional

from models.billing import BillingType
from models.subscription import Subscription
from services.occurrence_service import next_recurring_occurrence_on_or_after
from services.schedule_math import normalize_date

logger = logging.getLogger(__name__)


def next_recurring_billing_date_on_or_after(sub: Subscription, reference: date | datetime) -> Optional[date]:
    """
    The advanced date for an overdue recurring subscription, or None when
    there is nothing to change (one-time, no date, already current, or a
    schedule that cannot be evaluated).
    """
    if sub.billing_type != BillingType.RECURRING.value or sub.next_occurrence is None:
        return None

    today = normalize_date(reference)
    current = normalize_date(sub.next_occurrence)
    if current >= today:
        return None

    nxt = next_recurring_occurrence_on_or_after(sub, current, today)
    if nxt is None or nxt <= current:
        return None
    return nxt


async def auto_advance_for_user(store, user_id: int, reference: date) -> int:
    """
    Rewrite every overdue recurring next_occurrence for one user.

    `reference` is today's calendar date in the system timezone. Returns the
    number of rows updated. Store errors propagate to the caller.
    """
    today = normalize_date(reference)
    overdue = await store.find_overdue_recurring(user_id, today)

    updated = 0
    for sub in overdue:
        nxt = next_recurring_billing_date_on_or_after(sub, today)
        if nxt is None:
            continue
        await store.update_next_occurrence(sub.id, nxt)
        updated += 1
        logger.debug("Advanced subscription %s from %s to %s", sub.id, sub.next_occurrence, nxt)

    if updated:
        logger.info("Rolled over %d overdue subscription(s) for user %s", updated, user_id)
    return updated

"""
Read paths over a user's subscriptions.

Both paths run the rollover first so callers never see a stale billing date.
Creating/updating subscriptions is the CRUD layer's job; it validates input
with services.billing_service.normalize_billing_draft.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional, Protocol

from core.timezone import now_in_system_timezone, today_in_timezone
from models.billing import BillingType
from models.subscription import Subscription
from services.occurrence_service import count_occurrences_in_range, monthly_factor
from services.rollover_service import auto_advance_for_user

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "USD"
UPCOMING_RENEWAL_DAYS = 7


class CurrencyConverter(Protocol):
    def convert(self, amount: float, from_currency: str, to_currency: str) -> float: ...


@dataclass
class DashboardSummary:
    total_monthly: float
    total_yearly: float
    due_this_month: float
    enabled_count: int
    upcoming_renewal_count: int
    currency: str


class SubscriptionService:
    def __init__(self, store):
        self.store = store

    async def list_subscriptions(self, user_id: int, now: Optional[datetime] = None) -> List[Subscription]:
        today = today_in_timezone(now or now_in_system_timezone())
        await auto_advance_for_user(self.store, user_id, today)
        return await self.store.list_subscriptions(user_id)

    async def get_dashboard_summary(
        self,
        user_id: int,
        target_currency: str = "",
        converter: Optional[CurrencyConverter] = None,
        now: Optional[datetime] = None,
    ) -> DashboardSummary:
        """
        - total_monthly: amortized monthly cost of recurring subscriptions
        - due_this_month: amount billed in [today, first day of next month),
          one-time charges included
        - upcoming_renewal_count: recurring renewals within the next 7 days
        """
        today = today_in_timezone(now or now_in_system_timezone())
        await auto_advance_for_user(self.store, user_id, today)

        subs = await self.store.find_enabled_subscriptions(user_id)
        target_currency = target_currency or DEFAULT_CURRENCY
        start_of_next_month = _first_of_next_month(today)
        renewal_horizon = today + timedelta(days=UPCOMING_RENEWAL_DAYS)

        total_monthly = 0.0
        due_this_month = 0.0
        upcoming = 0
        for sub in subs:
            amount = sub.amount
            if converter is not None and sub.currency != target_currency:
                amount = converter.convert(amount, sub.currency, target_currency)

            total_monthly += amount * monthly_factor(sub)

            occurrences = count_occurrences_in_range(sub, today, start_of_next_month)
            if occurrences > 0:
                due_this_month += amount * occurrences

            if (sub.billing_type == BillingType.RECURRING.value
                    and sub.next_occurrence is not None
                    and today <= sub.next_occurrence <= renewal_horizon):
                upcoming += 1

        return DashboardSummary(
            total_monthly=total_monthly,
            total_yearly=total_monthly * 12,
            due_this_month=due_this_month,
            enabled_count=len(subs),
            upcoming_renewal_count=upcoming,
            currency=target_currency,
        )


def _first_of_next_month(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)

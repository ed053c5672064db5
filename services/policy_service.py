# services/policy_service.py
import logging
from dataclasses import dataclass
from typing import List, Optional

from core.exceptions import PolicyValidationError
from models.subscription import (
    DEFAULT_DAYS_BEFORE,
    MAX_NOTIFICATION_DAYS_BEFORE,
    NotificationLog,
    NotificationPolicy,
    Subscription,
)

logger = logging.getLogger(__name__)

DEFAULT_LOG_LIMIT = 50
MAX_LOG_LIMIT = 100


@dataclass(frozen=True)
class EffectivePolicy:
    days_before: int
    notify_on_due_day: bool
    notify_enabled: bool


def default_policy(user_id: int) -> NotificationPolicy:
    return NotificationPolicy(user_id=user_id, days_before=DEFAULT_DAYS_BEFORE, notify_on_due_day=True)


def resolve_effective_policy(sub: Subscription, policy: NotificationPolicy) -> EffectivePolicy:
    """Subscription overrides win over the user's policy."""
    notify_enabled = True if sub.notify_enabled is None else sub.notify_enabled
    days_before = policy.days_before if sub.notify_days_before is None else sub.notify_days_before
    return EffectivePolicy(
        days_before=days_before,
        notify_on_due_day=policy.notify_on_due_day,
        notify_enabled=notify_enabled,
    )


def should_notify(days_until: int, effective: EffectivePolicy) -> bool:
    """
    Exact-day match only: a reminder whose day was missed (scheduler down)
    is not sent late. days_before == 0 never fires through the first branch.
    """
    if not effective.notify_enabled:
        return False
    if days_until == effective.days_before and effective.days_before > 0:
        return True
    return days_until == 0 and effective.notify_on_due_day


class NotificationPolicyService:
    def __init__(self, store):
        self.store = store

    async def get_policy(self, user_id: int) -> NotificationPolicy:
        policy = await self.store.find_policy(user_id)
        return policy if policy is not None else default_policy(user_id)

    async def update_policy(
        self,
        user_id: int,
        days_before: Optional[int] = None,
        notify_on_due_day: Optional[bool] = None,
    ) -> NotificationPolicy:
        """
        Partial update. The row is created on first write; until then
        get_policy serves the defaults.
        """
        if days_before is not None and not 0 <= days_before <= MAX_NOTIFICATION_DAYS_BEFORE:
            raise PolicyValidationError(f"days_before must be between 0 and {MAX_NOTIFICATION_DAYS_BEFORE}")

        policy = await self.get_policy(user_id)
        changes = {}
        if days_before is not None:
            changes["days_before"] = days_before
        if notify_on_due_day is not None:
            changes["notify_on_due_day"] = notify_on_due_day
        policy = policy.model_copy(update=changes)

        saved = await self.store.save_policy(policy)
        logger.info("Notification policy saved for user %s: days_before=%s notify_on_due_day=%s",
                    user_id, saved.days_before, saved.notify_on_due_day)
        return saved

    async def list_logs(self, user_id: int, limit: int = DEFAULT_LOG_LIMIT) -> List[NotificationLog]:
        if limit <= 0 or limit > MAX_LOG_LIMIT:
            limit = DEFAULT_LOG_LIMIT
        return await self.store.list_logs(user_id, limit)

from datetime import date, datetime, timedelta

import pytest

from core.exceptions import PolicyValidationError
from models.subscription import NotificationLog, NotificationPolicy, Subscription
from services.policy_service import (
    EffectivePolicy,
    NotificationPolicyService,
    resolve_effective_policy,
    should_notify,
)


@pytest.mark.asyncio
async def test_defaults_served_until_first_update(store):
    service = NotificationPolicyService(store)
    policy = await service.get_policy(7)
    assert (policy.days_before, policy.notify_on_due_day) == (3, True)
    assert policy.id is None
    assert store.policies == {}


@pytest.mark.asyncio
async def test_update_creates_then_patches(store):
    service = NotificationPolicyService(store)

    created = await service.update_policy(7, days_before=5)
    assert created.id is not None
    assert (created.days_before, created.notify_on_due_day) == (5, True)

    patched = await service.update_policy(7, notify_on_due_day=False)
    assert patched.id == created.id
    assert (patched.days_before, patched.notify_on_due_day) == (5, False)
    assert len(store.policies) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("days_before", [-1, 11])
async def test_update_rejects_out_of_range_days(store, days_before):
    service = NotificationPolicyService(store)
    with pytest.raises(PolicyValidationError, match="days_before must be between 0 and 10"):
        await service.update_policy(7, days_before=days_before)
    assert store.policies == {}


@pytest.mark.asyncio
async def test_zero_days_before_is_allowed(store):
    saved = await NotificationPolicyService(store).update_policy(7, days_before=0)
    assert saved.days_before == 0


def test_subscription_overrides_win():
    policy = NotificationPolicy(user_id=1, days_before=3, notify_on_due_day=False)

    plain = Subscription(id=1, user_id=1)
    assert resolve_effective_policy(plain, policy) == EffectivePolicy(3, False, True)

    override = Subscription(id=2, user_id=1, notify_days_before=0, notify_enabled=False)
    assert resolve_effective_policy(override, policy) == EffectivePolicy(0, False, False)


@pytest.mark.parametrize("days_until,effective,expected", [
    (3, EffectivePolicy(3, True, True), True),
    (0, EffectivePolicy(3, True, True), True),
    (0, EffectivePolicy(3, False, True), False),
    (2, EffectivePolicy(3, True, True), False),
    (4, EffectivePolicy(3, True, True), False),
    (0, EffectivePolicy(0, True, True), True),
    (0, EffectivePolicy(0, False, True), False),
    (3, EffectivePolicy(3, True, False), False),
    (-1, EffectivePolicy(3, True, True), False),
])
def test_should_notify(days_until, effective, expected):
    assert should_notify(days_until, effective) is expected


@pytest.mark.asyncio
async def test_list_logs_clamps_limit(store):
    start = datetime(2026, 3, 1, 8, 0)
    for i in range(60):
        await store.insert_log(NotificationLog(
            user_id=1, subscription_id=1, channel_type="telegram", notify_date=date(2026, 3, 1),
            status="sent", sent_at=start + timedelta(minutes=i),
        ))
    service = NotificationPolicyService(store)

    assert len(await service.list_logs(1, limit=10)) == 10
    assert len(await service.list_logs(1, limit=0)) == 50
    assert len(await service.list_logs(1, limit=500)) == 50
    newest = (await service.list_logs(1, limit=1))[0]
    assert newest.sent_at == start + timedelta(minutes=59)

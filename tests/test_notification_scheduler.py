from datetime import date, datetime, timedelta, timezone

import pytest

from models.subscription import LogStatus, NotificationPolicy
from services.notification_scheduler import NotificationScheduler, should_schedule_dispatch, unique_user_ids

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 10)


def make_scheduler(store, registry, **kwargs):
    return NotificationScheduler(store, senders=registry, user_workers=4, dispatch_workers=4,
                                 tz=timezone.utc, **kwargs)


def add_monthly(store, user_id=1, due=TODAY + timedelta(days=3), **fields):
    return store.add_subscription(user_id=user_id, recurrence_type="monthly_date", monthly_day=due.day,
                                  next_occurrence=due, **fields)


def test_unique_user_ids_keeps_first_seen_order():
    assert unique_user_ids([3, 1, 3, 2, 1]) == [3, 1, 2]


def test_in_memory_dedup_key():
    scheduled = set()
    assert should_schedule_dispatch(scheduled, 1, "smtp", TODAY)
    assert not should_schedule_dispatch(scheduled, 1, "smtp", TODAY)
    assert should_schedule_dispatch(scheduled, 1, "telegram", TODAY)


@pytest.mark.asyncio
async def test_reminder_sent_once_per_channel_across_ticks(store, registry, sender):
    sub = add_monthly(store, name="Music", amount=10.99, currency="EUR")
    store.add_channel(type="telegram")
    store.add_channel(type="smtp")
    store.add_user(1, "ann@example.com")
    scheduler = make_scheduler(store, registry)

    first = await scheduler.process_pending_notifications(NOW)
    second = await scheduler.process_pending_notifications(NOW + timedelta(hours=1))

    assert (first.users_processed, first.sent, first.failed) == (1, 2, 0)
    assert (second.sent, second.failed) == (0, 0)
    assert sorted(channel for channel, _, _ in sender.sent) == ["smtp", "telegram"]
    sent_rows = store.logs_with_status(LogStatus.SENT)
    assert {(row.subscription_id, row.channel_type, row.notify_date) for row in sent_rows} == {
        (sub.id, "telegram", TODAY + timedelta(days=3)),
        (sub.id, "smtp", TODAY + timedelta(days=3)),
    }


@pytest.mark.asyncio
async def test_message_and_target_hint(store, registry, sender):
    add_monthly(store, name="Music", amount=10.99, currency="EUR")
    store.add_channel(type="smtp")
    store.add_user(1, "ann@example.com")

    await make_scheduler(store, registry).process_user_notifications(1, NOW)

    assert sender.sent == [("smtp", "Music is due in 3 day(s) (2026-03-13): 10.99 EUR", "ann@example.com")]


@pytest.mark.asyncio
async def test_due_today_reminder(store, registry, sender):
    add_monthly(store, due=TODAY, name="Gym")
    store.add_channel(type="ntfy")

    result = await make_scheduler(store, registry).process_user_notifications(1, NOW)

    assert result.sent == 1
    assert sender.sent[0][1].startswith("Gym is due today")


@pytest.mark.asyncio
async def test_only_exact_days_before_match_fires(store, registry, sender):
    add_monthly(store, due=TODAY + timedelta(days=2))
    add_monthly(store, due=TODAY + timedelta(days=4))
    store.add_channel(type="telegram")

    result = await make_scheduler(store, registry).process_user_notifications(1, NOW)

    assert result.sent == 0
    assert store.logs == []


@pytest.mark.asyncio
async def test_subscription_overrides(store, registry, sender):
    silenced = add_monthly(store, notify_enabled=False)
    zero_days = add_monthly(store, due=TODAY, notify_days_before=0)
    five_days = add_monthly(store, due=TODAY + timedelta(days=5), notify_days_before=5)
    store.add_channel(type="telegram")

    await make_scheduler(store, registry).process_user_notifications(1, NOW)

    notified = sorted(row.subscription_id for row in store.logs)
    assert notified == sorted([zero_days.id, five_days.id])
    assert silenced.id not in notified


@pytest.mark.asyncio
async def test_user_policy_is_applied(store, registry, sender):
    await store.save_policy(NotificationPolicy(user_id=1, days_before=7, notify_on_due_day=False))
    add_monthly(store, due=TODAY + timedelta(days=7))
    add_monthly(store, due=TODAY)
    store.add_channel(type="telegram")

    result = await make_scheduler(store, registry).process_user_notifications(1, NOW)

    assert result.sent == 1
    assert store.logs[0].notify_date == TODAY + timedelta(days=7)


@pytest.mark.asyncio
async def test_disabled_and_one_time_subscriptions_are_skipped(store, registry, sender):
    add_monthly(store, enabled=False)
    store.add_subscription(billing_type="one_time", next_occurrence=TODAY + timedelta(days=3))
    store.add_channel(type="telegram")

    result = await make_scheduler(store, registry).process_user_notifications(1, NOW)

    assert result.sent == 0
    assert sender.sent == []


@pytest.mark.asyncio
async def test_no_enabled_channels_still_rolls_over(store, registry, sender):
    sub = store.add_subscription(recurrence_type="monthly_date", monthly_day=13,
                                 next_occurrence=date(2026, 1, 13))
    store.add_channel(type="telegram", enabled=False)

    result = await make_scheduler(store, registry).process_user_notifications(1, NOW)

    assert (result.sent, result.failed) == (0, 0)
    assert store.subscriptions[sub.id].next_occurrence == date(2026, 3, 13)
    assert store.logs == []


@pytest.mark.asyncio
async def test_overdue_subscription_is_advanced_before_checking(store, registry, sender):
    # Feb 13 is stale; today is Mar 10, so it rolls to Mar 13, three days out
    sub = store.add_subscription(recurrence_type="monthly_date", monthly_day=13,
                                 next_occurrence=date(2026, 2, 13))
    store.add_channel(type="telegram")

    result = await make_scheduler(store, registry).process_user_notifications(1, NOW)

    assert store.subscriptions[sub.id].next_occurrence == date(2026, 3, 13)
    assert result.sent == 1
    assert store.logs[0].notify_date == date(2026, 3, 13)


@pytest.mark.asyncio
async def test_same_channel_type_twice_sends_once(store, registry, sender):
    add_monthly(store)
    store.add_channel(type="telegram")
    store.add_channel(type="telegram")

    result = await make_scheduler(store, registry).process_user_notifications(1, NOW)

    assert result.sent == 1
    assert len(store.logs) == 1


@pytest.mark.asyncio
async def test_failed_send_is_retried_next_tick(store, registry, sender):
    add_monthly(store)
    store.add_channel(type="telegram")
    scheduler = make_scheduler(store, registry)

    sender.fail_types.add("telegram")
    first = await scheduler.process_pending_notifications(NOW)
    sender.fail_types.clear()
    second = await scheduler.process_pending_notifications(NOW + timedelta(hours=1))
    third = await scheduler.process_pending_notifications(NOW + timedelta(hours=2))

    assert (first.sent, first.failed) == (0, 1)
    assert (second.sent, second.failed) == (1, 0)
    assert (third.sent, third.failed) == (0, 0)
    assert [row.status for row in store.logs] == ["failed", "sent"]
    assert store.logs[0].error == "telegram provider rejected the message"


@pytest.mark.asyncio
async def test_render_failure_drops_job_until_template_is_fixed(store, registry, sender):
    add_monthly(store)
    store.add_channel(type="telegram")
    store.add_channel(type="smtp")
    store.add_template(1, "{{ subscription_title }}", channel_type="telegram")
    scheduler = make_scheduler(store, registry)

    first = await scheduler.process_user_notifications(1, NOW)
    assert first.sent == 1
    assert [channel for channel, _, _ in sender.sent] == ["smtp"]
    assert [row.channel_type for row in store.logs] == ["smtp"]

    store.templates.clear()
    second = await scheduler.process_user_notifications(1, NOW)
    assert second.sent == 1
    assert sorted(row.channel_type for row in store.logs) == ["smtp", "telegram"]


@pytest.mark.asyncio
@pytest.mark.parametrize("template", [
    "{{ amount / (days_until - days_until) }}",
    "{{ amount + subscription_name }}",
])
async def test_template_runtime_error_drops_only_that_channel(store, registry, sender, template):
    add_monthly(store)
    add_monthly(store, name="Gym")
    store.add_channel(type="telegram")
    store.add_channel(type="smtp")
    store.add_template(1, template, channel_type="telegram")

    result = await make_scheduler(store, registry).process_pending_notifications(NOW)

    assert (result.users_processed, result.users_failed) == (1, 0)
    assert (result.sent, result.failed) == (2, 0)
    assert [channel for channel, _, _ in sender.sent] == ["smtp", "smtp"]
    assert {row.channel_type for row in store.logs} == {"smtp"}


@pytest.mark.asyncio
async def test_template_lookup_failure_drops_jobs_without_failing_user(store, registry, sender):
    add_monthly(store)
    store.add_channel(type="telegram")
    scheduler = make_scheduler(store, registry)

    store.fail_template_lookups = True
    first = await scheduler.process_pending_notifications(NOW)
    assert (first.users_processed, first.users_failed, first.sent) == (1, 0, 0)
    assert store.logs == []

    store.fail_template_lookups = False
    second = await scheduler.process_pending_notifications(NOW)
    assert second.sent == 1


class ExplodingRenderer:
    def render(self, template_text, fields):
        raise KeyError("subscription_name")


@pytest.mark.asyncio
async def test_custom_renderer_errors_stay_with_the_job(store, registry, sender):
    add_monthly(store)
    store.add_channel(type="telegram")

    result = await make_scheduler(store, registry, renderer=ExplodingRenderer()).process_pending_notifications(NOW)

    assert (result.users_processed, result.users_failed, result.sent) == (1, 0, 0)
    assert sender.sent == []


@pytest.mark.asyncio
async def test_payment_method_lookup_failure_falls_back_to_blank(store, registry, sender):
    add_monthly(store, name="Music", payment_method_id=5)
    store.payment_methods[5] = (1, "Visa")
    store.add_channel(type="telegram")
    store.add_template(1, "{{ subscription_name }} via [{{ payment_method }}]")
    scheduler = make_scheduler(store, registry)

    store.fail_payment_lookups = True
    result = await scheduler.process_pending_notifications(NOW)

    assert (result.users_failed, result.sent) == (0, 1)
    assert sender.sent[0][1] == "Music via []"


@pytest.mark.asyncio
async def test_payment_method_name_reaches_the_message(store, registry, sender):
    add_monthly(store, name="Music", payment_method_id=5)
    store.payment_methods[5] = (1, "Visa")
    store.add_channel(type="telegram")
    store.add_template(1, "{{ subscription_name }} via [{{ payment_method }}]")

    await make_scheduler(store, registry).process_user_notifications(1, NOW)

    assert sender.sent[0][1] == "Music via [Visa]"


@pytest.mark.asyncio
async def test_failing_user_does_not_stop_the_tick(store, registry, sender):
    add_monthly(store, user_id=1)
    add_monthly(store, user_id=2)
    store.add_channel(user_id=1, type="telegram")
    store.add_channel(user_id=2, type="telegram")
    store.failing_users.add(1)

    result = await make_scheduler(store, registry).process_pending_notifications(NOW)

    assert (result.users_processed, result.users_failed, result.sent) == (1, 1, 1)
    assert [row.user_id for row in store.logs] == [2]


@pytest.mark.asyncio
async def test_tick_covers_every_user_with_bounded_concurrency(store, registry, sender):
    sender.delay = 0.01
    for user_id in range(1, 11):
        add_monthly(store, user_id=user_id)
        add_monthly(store, user_id=user_id)
        store.add_channel(user_id=user_id, type="telegram")

    scheduler = NotificationScheduler(store, senders=registry, user_workers=2, dispatch_workers=2,
                                      tz=timezone.utc)
    result = await scheduler.process_pending_notifications(NOW)

    assert (result.users_processed, result.sent) == (10, 20)
    assert sender.max_in_flight <= 4
    assert {row.user_id for row in store.logs} == set(range(1, 11))


@pytest.mark.asyncio
async def test_no_users_is_a_no_op(store, registry):
    result = await make_scheduler(store, registry).process_pending_notifications(NOW)
    assert (result.users_processed, result.users_failed, result.sent, result.failed) == (0, 0, 0, 0)


@pytest.mark.asyncio
async def test_today_follows_the_configured_timezone(store, registry, sender):
    # 23:30 UTC on Mar 9 is already Mar 10 in Tokyo
    add_monthly(store, due=TODAY + timedelta(days=3))
    store.add_channel(type="telegram")
    tokyo = timezone(timedelta(hours=9))

    scheduler = NotificationScheduler(store, senders=registry, tz=tokyo)
    result = await scheduler.process_user_notifications(1, datetime(2026, 3, 9, 23, 30, tzinfo=timezone.utc))

    assert result.sent == 1

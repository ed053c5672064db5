"""
Persistence contract for the billing/notification core, and its async
SQLAlchemy implementation.

The scheduling code only talks to the Store protocol; any relational or
document store can satisfy it. SqlAlchemyStore opens a fresh AsyncSession per
operation, so concurrent user and dispatch workers never share a session and
every write (rollover update, log insert) is its own transaction.
"""
import logging
from datetime import date
from typing import List, Optional, Protocol

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models import db_models
from models.billing import BillingType
from models.subscription import (
    LogStatus,
    NotificationChannel,
    NotificationLog,
    NotificationPolicy,
    NotificationTemplate,
    Subscription,
    User,
)

logger = logging.getLogger(__name__)


class Store(Protocol):
    async def find_overdue_recurring(self, user_id: int, before: date) -> List[Subscription]: ...

    async def update_next_occurrence(self, subscription_id: int, next_occurrence: date) -> None: ...

    async def find_enabled_channels(self, user_id: int) -> List[NotificationChannel]: ...

    async def find_policy(self, user_id: int) -> Optional[NotificationPolicy]: ...

    async def save_policy(self, policy: NotificationPolicy) -> NotificationPolicy: ...

    async def insert_log(self, entry: NotificationLog) -> None: ...

    async def exists_sent_log(self, subscription_id: int, channel_type: str, notify_date: date) -> bool: ...

    async def find_user_ids_with_enabled_channels(self) -> List[int]: ...

    async def find_notifiable_subscriptions(self, user_id: int) -> List[Subscription]: ...

    async def find_enabled_subscriptions(self, user_id: int) -> List[Subscription]: ...

    async def list_subscriptions(self, user_id: int) -> List[Subscription]: ...

    async def find_user(self, user_id: int) -> Optional[User]: ...

    async def find_payment_method_name(self, user_id: int, payment_method_id: int) -> Optional[str]: ...

    async def find_template(self, user_id: int, channel_type: str) -> Optional[NotificationTemplate]: ...

    async def list_logs(self, user_id: int, limit: int) -> List[NotificationLog]: ...


class SqlAlchemyStore:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def _scalars(self, stmt) -> list:
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def _write(self, stmt) -> int:
        async with self.session_maker() as session:
            try:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount
            except Exception:
                await session.rollback()
                raise

    # --- subscriptions ---

    async def find_overdue_recurring(self, user_id: int, before: date) -> List[Subscription]:
        stmt = (
            select(db_models.Subscription)
            .where(db_models.Subscription.user_id == user_id)
            .where(db_models.Subscription.billing_type == BillingType.RECURRING.value)
            .where(db_models.Subscription.next_occurrence.is_not(None))
            .where(db_models.Subscription.next_occurrence < before)
        )
        return [Subscription.model_validate(row) for row in await self._scalars(stmt)]

    async def update_next_occurrence(self, subscription_id: int, next_occurrence: date) -> None:
        stmt = (
            update(db_models.Subscription)
            .where(db_models.Subscription.id == subscription_id)
            .values(next_occurrence=next_occurrence)
        )
        await self._write(stmt)

    async def find_notifiable_subscriptions(self, user_id: int) -> List[Subscription]:
        """Enabled recurring subscriptions with a billing date."""
        stmt = (
            select(db_models.Subscription)
            .where(db_models.Subscription.user_id == user_id)
            .where(db_models.Subscription.enabled == True)  # noqa: E712
            .where(db_models.Subscription.billing_type == BillingType.RECURRING.value)
            .where(db_models.Subscription.next_occurrence.is_not(None))
            .order_by(db_models.Subscription.id)
        )
        return [Subscription.model_validate(row) for row in await self._scalars(stmt)]

    async def find_enabled_subscriptions(self, user_id: int) -> List[Subscription]:
        stmt = (
            select(db_models.Subscription)
            .where(db_models.Subscription.user_id == user_id)
            .where(db_models.Subscription.enabled == True)  # noqa: E712
            .order_by(db_models.Subscription.id)
        )
        return [Subscription.model_validate(row) for row in await self._scalars(stmt)]

    async def list_subscriptions(self, user_id: int) -> List[Subscription]:
        stmt = (
            select(db_models.Subscription)
            .where(db_models.Subscription.user_id == user_id)
            .order_by(db_models.Subscription.next_occurrence, db_models.Subscription.id)
        )
        return [Subscription.model_validate(row) for row in await self._scalars(stmt)]

    # --- channels / users ---

    async def find_enabled_channels(self, user_id: int) -> List[NotificationChannel]:
        stmt = (
            select(db_models.NotificationChannel)
            .where(db_models.NotificationChannel.user_id == user_id)
            .where(db_models.NotificationChannel.enabled == True)  # noqa: E712
            .order_by(db_models.NotificationChannel.id)
        )
        return [NotificationChannel.model_validate(row) for row in await self._scalars(stmt)]

    async def find_user_ids_with_enabled_channels(self) -> List[int]:
        stmt = (
            select(db_models.NotificationChannel.user_id)
            .where(db_models.NotificationChannel.enabled == True)  # noqa: E712
            .distinct()
            .order_by(db_models.NotificationChannel.user_id)
        )
        return await self._scalars(stmt)

    async def find_user(self, user_id: int) -> Optional[User]:
        rows = await self._scalars(select(db_models.User).where(db_models.User.id == user_id))
        return User.model_validate(rows[0]) if rows else None

    async def find_payment_method_name(self, user_id: int, payment_method_id: int) -> Optional[str]:
        stmt = (
            select(db_models.PaymentMethod.name)
            .where(db_models.PaymentMethod.id == payment_method_id)
            .where(db_models.PaymentMethod.user_id == user_id)
        )
        rows = await self._scalars(stmt)
        return rows[0] if rows else None

    # --- policy ---

    async def find_policy(self, user_id: int) -> Optional[NotificationPolicy]:
        stmt = select(db_models.NotificationPolicy).where(db_models.NotificationPolicy.user_id == user_id)
        rows = await self._scalars(stmt)
        return NotificationPolicy.model_validate(rows[0]) if rows else None

    async def save_policy(self, policy: NotificationPolicy) -> NotificationPolicy:
        """Insert on first save, update the user's row afterwards."""
        async with self.session_maker() as session:
            try:
                stmt = select(db_models.NotificationPolicy).where(
                    db_models.NotificationPolicy.user_id == policy.user_id)
                row = (await session.execute(stmt)).scalar_one_or_none()
                if row is None:
                    row = db_models.NotificationPolicy(user_id=policy.user_id)
                    session.add(row)
                row.days_before = policy.days_before
                row.notify_on_due_day = policy.notify_on_due_day
                await session.commit()
                await session.refresh(row)
                return NotificationPolicy.model_validate(row)
            except Exception:
                await session.rollback()
                raise

    # --- templates ---

    async def find_template(self, user_id: int, channel_type: str) -> Optional[NotificationTemplate]:
        """Channel-specific template first, then the user's default (channel_type IS NULL)."""
        base = select(db_models.NotificationTemplate).where(db_models.NotificationTemplate.user_id == user_id)
        rows = await self._scalars(base.where(db_models.NotificationTemplate.channel_type == channel_type))
        if not rows:
            rows = await self._scalars(base.where(db_models.NotificationTemplate.channel_type.is_(None)))
        return NotificationTemplate.model_validate(rows[0]) if rows else None

    # --- logs ---

    async def insert_log(self, entry: NotificationLog) -> None:
        async with self.session_maker() as session:
            try:
                session.add(db_models.NotificationLog(**entry.model_dump(exclude={"id"})))
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def exists_sent_log(self, subscription_id: int, channel_type: str, notify_date: date) -> bool:
        stmt = (
            select(func.count(db_models.NotificationLog.id))
            .where(db_models.NotificationLog.subscription_id == subscription_id)
            .where(db_models.NotificationLog.channel_type == channel_type)
            .where(db_models.NotificationLog.notify_date == notify_date)
            .where(db_models.NotificationLog.status == LogStatus.SENT.value)
        )
        counts = await self._scalars(stmt)
        return bool(counts and counts[0] > 0)

    async def list_logs(self, user_id: int, limit: int) -> List[NotificationLog]:
        stmt = (
            select(db_models.NotificationLog)
            .where(db_models.NotificationLog.user_id == user_id)
            .order_by(db_models.NotificationLog.sent_at.desc(), db_models.NotificationLog.id.desc())
            .limit(limit)
        )
        return [NotificationLog.model_validate(row) for row in await self._scalars(stmt)]

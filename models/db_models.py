"""
SQLAlchemy ORM models.

Purpose:
- Define User, PaymentMethod, Subscription and the notification tables
  (channels, policies, templates, logs)
- Use SQLAlchemy async-compatible models
- Support migrations via Alembic

Production notes:
- notification_logs is append-only and doubles as the dedup source of truth:
  (subscription_id, channel_type, notify_date, status) is the hot lookup
- next_occurrence is a calendar date; the scheduler owns only that column
"""

from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Boolean, Text, ForeignKey, Index
from core.db import Base
from datetime import datetime


class User(Base):
    """
    Subscription owner. Only the email is used by this service (template field,
    smtp target).
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Subscription(Base):
    """
    A recurring or one-time charge.

    Columns:
    - billing_type: recurring, one_time
    - recurrence_type: interval, monthly_date, yearly_date (recurring only)
    - interval_count/interval_unit | monthly_day | yearly_month/yearly_day:
      exactly one set is populated, matching recurrence_type
    - next_occurrence: next billing date (calendar date)
    - notify_enabled/notify_days_before: per-subscription override of the
      user's notification policy (NULL -> use policy)
    """
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    amount = Column(Float, nullable=False, default=0.0)
    currency = Column(String(10), nullable=False, default="USD")
    enabled = Column(Boolean, default=True, index=True)
    billing_type = Column(String(30), nullable=False, default="recurring")
    recurrence_type = Column(String(30), nullable=False, default="")
    interval_count = Column(Integer, nullable=True)
    interval_unit = Column(String(10), nullable=False, default="")
    monthly_day = Column(Integer, nullable=True)
    yearly_month = Column(Integer, nullable=True)
    yearly_day = Column(Integer, nullable=True)
    next_occurrence = Column(Date, nullable=True, index=True)
    category = Column(String(100), nullable=False, default="")
    payment_method_id = Column(Integer, ForeignKey("payment_methods.id"), nullable=True)
    url = Column(Text, nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    notify_enabled = Column(Boolean, nullable=True)
    notify_days_before = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NotificationChannel(Base):
    __tablename__ = "notification_channels"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    type = Column(String(20), nullable=False)
    enabled = Column(Boolean, default=False)
    config = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NotificationPolicy(Base):
    """One row per user, created on first update (defaults are served until then)."""
    __tablename__ = "notification_policies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    days_before = Column(Integer, default=3)
    notify_on_due_day = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NotificationTemplate(Base):
    """channel_type NULL is the user's default template."""
    __tablename__ = "notification_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    channel_type = Column(String(20), nullable=True, index=True)
    format = Column(String(20), nullable=False, default="plaintext")
    template = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, index=True, nullable=False)
    subscription_id = Column(Integer, index=True, nullable=False)
    channel_type = Column(String(20), nullable=False)
    notify_date = Column(Date, nullable=False, index=True)
    status = Column(String(20), nullable=False)  # sent, failed
    error = Column(Text, nullable=False, default="")
    sent_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_notification_logs_dedup", "subscription_id", "channel_type", "notify_date", "status"),
    )

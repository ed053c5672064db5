# models/subscription.py
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

DEFAULT_DAYS_BEFORE = 3
MAX_NOTIFICATION_DAYS_BEFORE = 10


class Subscription(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str = ""
    amount: float = 0.0
    currency: str = "USD"
    enabled: bool = True
    billing_type: str = "recurring"  # 'recurring' | 'one_time'
    recurrence_type: str = ""  # 'interval' | 'monthly_date' | 'yearly_date'
    interval_count: Optional[int] = None
    interval_unit: str = ""  # 'day' | 'week' | 'month' | 'year'
    monthly_day: Optional[int] = None
    yearly_month: Optional[int] = None
    yearly_day: Optional[int] = None
    next_occurrence: Optional[date] = None
    category: str = ""
    payment_method_id: Optional[int] = None
    url: str = ""
    notes: str = ""
    notify_enabled: Optional[bool] = None
    notify_days_before: Optional[int] = None


class NotificationPolicy(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    days_before: int = DEFAULT_DAYS_BEFORE
    notify_on_due_day: bool = True
    id: Optional[int] = None  # None until first persisted


class ChannelType(str, Enum):
    SMTP = "smtp"
    RESEND = "resend"
    TELEGRAM = "telegram"
    WEBHOOK = "webhook"
    GOTIFY = "gotify"
    NTFY = "ntfy"
    BARK = "bark"
    SERVERCHAN = "serverchan"
    FEISHU = "feishu"
    WECOM = "wecom"
    DINGTALK = "dingtalk"
    PUSHDEER = "pushdeer"
    PUSHPLUS = "pushplus"
    PUSHOVER = "pushover"
    NAPCAT = "napcat"


class NotificationChannel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    type: str
    enabled: bool = False
    config: str = ""  # opaque JSON, only the sender reads it


class LogStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class NotificationLog(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    subscription_id: int
    channel_type: str
    notify_date: date
    status: str
    error: str = ""
    sent_at: datetime
    id: Optional[int] = None


class NotificationTemplate(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    channel_type: Optional[str] = None  # None -> user's default template
    format: str = "plaintext"
    template: str
    id: Optional[int] = None


class User(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str = ""
    name: Optional[str] = None

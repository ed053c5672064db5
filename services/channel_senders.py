"""
Outbound channel senders.

Every channel type maps to one sender through SenderRegistry (a lookup
table, not an if/elif chain). A sender is any object with

    async def send(channel, message, target_hint) -> None

that raises on failure. Real per-provider senders (SMTP, Telegram, ...) live
outside this service and are registered at startup; this module ships:
- LoggingSender: writes the message to the log (dev / unconfigured channels)
- WebhookSender: POSTs the message as JSON with a short timeout

Production notes:
- Senders must bound their own latency; the dispatch pool does not time them out
"""
import json
import logging
from typing import Dict, Iterable, Optional, Protocol

import httpx

from config.settings import settings
from core.exceptions import UnsupportedChannelError
from models.subscription import ChannelType, NotificationChannel

logger = logging.getLogger(__name__)


class ChannelSender(Protocol):
    async def send(self, channel: NotificationChannel, message: str, target_hint: str) -> None:
        ...


def target_hint_for(channel_type: str, user_email: str, subscription_url: str) -> str:
    """smtp needs the recipient address, ntfy uses the subscription URL as click target."""
    if channel_type == ChannelType.SMTP.value:
        return user_email
    if channel_type == ChannelType.NTFY.value:
        return subscription_url
    return ""


def _channel_config(channel: NotificationChannel) -> dict:
    if not channel.config:
        return {}
    try:
        config = json.loads(channel.config)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid {channel.type} channel config: {e}") from e
    if not isinstance(config, dict):
        raise ValueError(f"invalid {channel.type} channel config: expected an object")
    return config


class LoggingSender:
    async def send(self, channel: NotificationChannel, message: str, target_hint: str) -> None:
        logger.info("[NOTIFY] user=%s channel=%s target=%s: %s",
                    channel.user_id, channel.type, target_hint or "-", message)


class WebhookSender:
    """
    Channel config: {"url": "...", "method": "POST", "headers": {...}}.
    Body: {"message": ..., "target": ...}. Non-2xx responses are failures.
    """

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout if timeout is not None else settings.SENDER_TIMEOUT_SECONDS
        self.transport = transport

    async def send(self, channel: NotificationChannel, message: str, target_hint: str) -> None:
        config = _channel_config(channel)
        url = (config.get("url") or "").strip()
        if not url:
            raise ValueError("webhook url is required")
        method = (config.get("method") or "POST").upper()
        headers = config.get("headers") or {}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            resp = await client.request(
                method,
                url,
                json={"message": message, "target": target_hint},
                headers=headers,
            )
        if not (200 <= resp.status_code < 300):
            raise RuntimeError(f"webhook returned status {resp.status_code}")


class SenderRegistry:
    def __init__(self, senders: Optional[Dict[str, ChannelSender]] = None):
        self._senders: Dict[str, ChannelSender] = {}
        for channel_type, sender in (senders or {}).items():
            self.register(channel_type, sender)

    def register(self, channel_type: str, sender: ChannelSender) -> None:
        self._senders[ChannelType(channel_type).value] = sender

    def get(self, channel_type: str) -> ChannelSender:
        sender = self._senders.get(channel_type)
        if sender is None:
            raise UnsupportedChannelError(channel_type)
        return sender

    def registered_types(self) -> Iterable[str]:
        return tuple(self._senders)


def default_registry() -> SenderRegistry:
    """Webhook goes out over HTTP; every other type is logged until a real sender is registered."""
    registry = SenderRegistry()
    fallback = LoggingSender()
    for channel_type in ChannelType:
        registry.register(channel_type, fallback)
    registry.register(ChannelType.WEBHOOK, WebhookSender())
    return registry

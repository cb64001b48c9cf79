"""Notification channels — Telegram, generic webhook, and log."""

import logging
from typing import Optional

import httpx

from signalbot.notifications.service import Notification, NotificationDeliveryError

logger = logging.getLogger("signalbot.notifications")

_NON_RETRYABLE_STATUS_CODES = {400, 401, 403, 404}


class TelegramChannel:
    """Sends notifications through the Telegram Bot API."""

    name = "telegram"

    def __init__(
        self,
        bot_token: Optional[str],
        chat_id: Optional[str],
        timeout: float = 10.0,
    ) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._timeout = timeout

    def is_enabled(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    async def send(self, notification: Notification) -> None:
        url = f"https://api.telegram.org/bot{self._bot_token}/sendMessage"
        body = {
            "chat_id": self._chat_id,
            "text": notification.message,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(url, json=body, timeout=self._timeout)
        except httpx.TransportError as exc:
            raise NotificationDeliveryError(f"Telegram unreachable: {exc}") from exc

        if resp.status_code == 429:
            retry_after = None
            try:
                retry_after = float(resp.json()["parameters"]["retry_after"])
            except (ValueError, KeyError, TypeError):
                pass
            raise NotificationDeliveryError(
                "Telegram rate limit", retry_after=retry_after,
            )
        if resp.status_code >= 400:
            raise NotificationDeliveryError(
                f"Telegram returned {resp.status_code}",
                retryable=resp.status_code not in _NON_RETRYABLE_STATUS_CODES,
            )


class WebhookChannel:
    """POSTs the notification as JSON to an arbitrary URL."""

    name = "webhook"

    def __init__(
        self,
        url: Optional[str],
        headers: Optional[dict] = None,
        timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._headers = headers or {"Content-Type": "application/json"}
        self._timeout = timeout

    def is_enabled(self) -> bool:
        return bool(self._url)

    async def send(self, notification: Notification) -> None:
        body = {
            "id": notification.id,
            "title": notification.title,
            "message": notification.message,
            "type": notification.type,
            "priority": notification.priority,
            "timestamp": notification.timestamp.isoformat(),
            "metadata": notification.metadata,
        }
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    self._url, headers=self._headers, json=body, timeout=self._timeout,
                )
        except httpx.TransportError as exc:
            raise NotificationDeliveryError(f"Webhook unreachable: {exc}") from exc

        if resp.status_code >= 400:
            raise NotificationDeliveryError(
                f"Webhook returned {resp.status_code}",
                retryable=resp.status_code not in _NON_RETRYABLE_STATUS_CODES,
            )


class LogChannel:
    """Writes notifications to the application log.  Always enabled.

    An audit sink: a log line reaches no user, so it never makes a
    broadcast count as delivered.
    """

    name = "log"
    audit_only = True

    def is_enabled(self) -> bool:
        return True

    async def send(self, notification: Notification) -> None:
        logger.info("[%s] %s\n%s", notification.priority.upper(), notification.title,
                    notification.message)

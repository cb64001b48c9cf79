"""Notification service — fan a message out to every enabled channel."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol, runtime_checkable

from signalbot.models.signal import Signal
from signalbot.notifications.formatting import format_signal_message

logger = logging.getLogger("signalbot.notifications")

_CHANNEL_RETRIES = 2
_CHANNEL_RETRY_BASE_DELAY = 1.0  # seconds; doubles each attempt


class NotificationDeliveryError(Exception):
    """A channel failed to deliver a notification.

    ``retryable`` is False for failures a retry cannot fix (bad token,
    unknown chat).  ``retry_after`` carries a provider-requested delay.
    """

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.retry_after = retry_after


@dataclass(frozen=True)
class Notification:
    """A channel-agnostic message."""

    title: str
    message: str
    type: str = "info"  # info | success | warning | error | signal
    priority: str = "normal"  # low | normal | high | urgent
    metadata: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class NotificationResult:
    """Per-channel outcome of one broadcast."""

    success: bool
    delivered_channels: list[str]
    failed_channels: list[str]
    errors: dict[str, str]

    @property
    def error(self) -> Optional[str]:
        if self.success:
            return None
        if not self.errors:
            return "no channel delivered the notification"
        return "; ".join(f"{name}: {err}" for name, err in self.errors.items())


@runtime_checkable
class NotificationChannel(Protocol):
    """A delivery target.  ``send`` raises ``NotificationDeliveryError``.

    Channels may set ``audit_only = True`` to record notifications without
    counting towards a successful broadcast.
    """

    name: str

    def is_enabled(self) -> bool:
        ...

    async def send(self, notification: Notification) -> None:
        ...


class NotificationService:
    """Broadcasts notifications to all enabled channels concurrently.

    Each channel gets up to two retries with exponential backoff.  The
    broadcast succeeds when at least one non-audit channel delivered.

    Args:
        channels: Registered channels; disabled ones are skipped.
        sleep: Coroutine used between channel retries.
    """

    def __init__(self, channels: list, sleep=asyncio.sleep) -> None:
        self._channels = {c.name: c for c in channels}
        self._sleep = sleep
        logger.info(
            "Notification service ready with %d enabled channel(s): %s",
            len(self.enabled_channels), ", ".join(self.enabled_channels) or "none",
        )
        if not self.delivering_channels:
            logger.warning("No delivering notification channel configured; signals will fail")

    @property
    def enabled_channels(self) -> list[str]:
        return [name for name, c in self._channels.items() if c.is_enabled()]

    @property
    def delivering_channels(self) -> list[str]:
        """Enabled channels that reach a user (audit sinks excluded)."""
        return [
            name for name, c in self._channels.items()
            if c.is_enabled() and not getattr(c, "audit_only", False)
        ]

    def is_any_channel_enabled(self) -> bool:
        return bool(self.enabled_channels)

    # ── Public API ───────────────────────────────────────────────────────

    async def send(self, notification: Notification) -> NotificationResult:
        return await self._broadcast(notification)

    async def send_signal_notification(self, signal: Signal) -> NotificationResult:
        notification = Notification(
            title=f"{signal.direction.value} Signal - {signal.pair}",
            message=format_signal_message(signal),
            type="signal",
            priority="high" if signal.confidence >= 8 else "normal",
            metadata={
                "signal_id": signal.id,
                "pair": signal.pair,
                "direction": signal.direction.value,
                "confidence": signal.confidence,
                "exchange": signal.exchange,
                "strategy": signal.strategy,
            },
        )
        result = await self._broadcast(notification)
        logger.info(
            "Signal %s notification: %d delivered, %d failed",
            signal.id, len(result.delivered_channels), len(result.failed_channels),
        )
        return result

    async def send_alert(
        self,
        title: str,
        message: str,
        priority: str = "normal",
    ) -> NotificationResult:
        notification_type = {
            "urgent": "error",
            "high": "warning",
        }.get(priority, "info")
        return await self._broadcast(
            Notification(
                title=title,
                message=message,
                type=notification_type,
                priority=priority,
                metadata={"source": "alert"},
            )
        )

    # ── Delivery ─────────────────────────────────────────────────────────

    async def _broadcast(self, notification: Notification) -> NotificationResult:
        channels = [c for c in self._channels.values() if c.is_enabled()]
        if not channels:
            logger.warning("No enabled notification channels available")
            return NotificationResult(False, [], [], {})

        outcomes = await asyncio.gather(
            *(self._send_to_channel(c, notification) for c in channels)
        )

        delivered: list[str] = []
        failed: list[str] = []
        errors: dict[str, str] = {}
        for channel, error in zip(channels, outcomes):
            if error is None:
                delivered.append(channel.name)
            else:
                failed.append(channel.name)
                errors[channel.name] = error
                logger.warning(
                    "Notification %s failed on %s: %s", notification.id, channel.name, error,
                )

        return NotificationResult(
            success=any(
                c.name in delivered and not getattr(c, "audit_only", False) for c in channels
            ),
            delivered_channels=delivered,
            failed_channels=failed,
            errors=errors,
        )

    async def _send_to_channel(self, channel, notification: Notification) -> Optional[str]:
        """Deliver with retries.  Returns ``None`` on success, else the error text."""
        last_error = ""
        for attempt in range(_CHANNEL_RETRIES + 1):
            try:
                await channel.send(notification)
                if attempt > 0:
                    logger.info(
                        "Notification delivered to %s after %d attempts",
                        channel.name, attempt + 1,
                    )
                return None
            except NotificationDeliveryError as exc:
                last_error = str(exc)
                if not exc.retryable or attempt == _CHANNEL_RETRIES:
                    break
                delay = exc.retry_after or _CHANNEL_RETRY_BASE_DELAY * (2 ** attempt)
                logger.debug(
                    "Retrying %s in %.1fs (attempt %d/%d)",
                    channel.name, delay, attempt + 2, _CHANNEL_RETRIES + 1,
                )
                await self._sleep(delay)
            except Exception as exc:
                logger.exception("Channel %s raised unexpectedly", channel.name)
                last_error = str(exc) or exc.__class__.__name__
                break
        return last_error

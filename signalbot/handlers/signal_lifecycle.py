"""Handlers for execution and failure acknowledgements."""

import logging

from signalbot.events.bus import Event, EventType
from signalbot.models.signal import SignalStateError

logger = logging.getLogger("signalbot.handlers")


class SignalExecutionHandler:
    """``signal.executed`` → mark a SENT signal EXECUTED."""

    def __init__(self, signal_repo) -> None:
        self._repo = signal_repo

    def can_handle(self, event: Event) -> bool:
        return event.type is EventType.SIGNAL_EXECUTED and bool(event.payload.get("signal_id"))

    async def handle(self, event: Event) -> None:
        signal_id = event.payload["signal_id"]
        signal = self._repo.find_by_id(signal_id)
        if signal is None:
            logger.error("Executed signal %s not found", signal_id)
            return
        try:
            signal.mark_executed()
        except SignalStateError as exc:
            logger.warning("Ignoring execution of %s: %s", signal_id, exc)
            return
        self._repo.save(signal)
        logger.info("Signal %s executed (%s %s)", signal_id, signal.direction.value, signal.pair)


class SignalFailureHandler:
    """``signal.failed`` → mark the signal FAILED, alerting on critical failures."""

    def __init__(self, signal_repo, notification_service=None) -> None:
        self._repo = signal_repo
        self._notifications = notification_service

    def can_handle(self, event: Event) -> bool:
        return event.type is EventType.SIGNAL_FAILED and bool(event.payload.get("signal_id"))

    async def handle(self, event: Event) -> None:
        signal_id = event.payload["signal_id"]
        reason = event.payload.get("reason", "")
        signal = self._repo.find_by_id(signal_id)
        if signal is None:
            logger.error("Failed signal %s not found", signal_id)
            return

        if not signal.is_terminal:
            signal.mark_failed(reason)
            self._repo.save(signal)
            logger.warning("Signal %s marked failed: %s", signal_id, reason or "no reason")

        if event.payload.get("critical") and self._notifications is not None:
            await self._notifications.send_alert(
                f"Signal failure: {signal.pair}",
                f"Signal {signal_id} failed: {reason or 'no reason given'}",
                priority="urgent",
            )

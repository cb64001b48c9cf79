"""Signal dispatch handler — deliver each generated signal once.

Subscribed to ``signal.generated``.  A signal id already being dispatched
is dropped, so duplicate deliveries of the same event are no-ops.  Each
dispatch runs a small state machine::

    IDLE ──▶ ATTEMPTING ──▶ SUCCEEDED
                 │  ▲  └──▶ SKIPPED   (no longer PENDING)
                 ▼  │
               BACKOFF                (write conflict, attempts left)
                 │
                 └────────▶ FAILED    (other error or attempts exhausted)

Notifications go out at most once per dispatch even when the status write
has to be retried.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from signalbot.events.bus import Event, EventType
from signalbot.models.signal import SignalStatus
from signalbot.notifications.service import NotificationDeliveryError
from signalbot.repos.db import PersistenceConflictError

logger = logging.getLogger("signalbot.dispatch")

MAX_ATTEMPTS = 3
BACKOFF_BASE_SECONDS = 0.1


class DispatchState(str, Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    BACKOFF = "backoff"
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


_TERMINAL = {DispatchState.SUCCEEDED, DispatchState.SKIPPED, DispatchState.FAILED}


@dataclass
class _DispatchRun:
    signal_id: str
    state: DispatchState = DispatchState.IDLE
    attempt: int = 0
    notified: bool = False
    error: Optional[Exception] = None


class SignalDispatchHandler:
    """Notifies channels about a PENDING signal and marks it SENT.

    Args:
        notification_service: A ``NotificationService`` (or duck-type).
        signal_repo: A ``SignalRepo`` (or duck-type) whose ``save`` raises
            ``PersistenceConflictError`` on a stale version.
        sleep: Coroutine used for backoff; tests pass a no-op.
    """

    def __init__(self, notification_service, signal_repo, sleep=asyncio.sleep) -> None:
        self._notifications = notification_service
        self._repo = signal_repo
        self._sleep = sleep
        self._in_flight: set[str] = set()
        self._lock = asyncio.Lock()

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    def can_handle(self, event: Event) -> bool:
        return (
            event.type is EventType.SIGNAL_GENERATED
            and bool(event.payload.get("signal_id"))
        )

    async def handle(self, event: Event) -> None:
        signal_id = event.payload["signal_id"]

        async with self._lock:
            if signal_id in self._in_flight:
                logger.debug("Signal %s already being dispatched, skipping", signal_id)
                return
            self._in_flight.add(signal_id)

        try:
            state = await self.dispatch(signal_id)
            logger.info(
                "Signal %s (%s) dispatch finished: %s",
                signal_id, event.payload.get("pair", "?"), state.value,
            )
        except Exception:
            logger.exception("Unexpected error dispatching signal %s", signal_id)
        finally:
            async with self._lock:
                self._in_flight.discard(signal_id)

    # ── State machine ────────────────────────────────────────────────────

    async def dispatch(self, signal_id: str) -> DispatchState:
        """Run the dispatch state machine to a terminal state and return it."""
        run = _DispatchRun(signal_id=signal_id)

        while run.state not in _TERMINAL:
            if run.state in (DispatchState.IDLE, DispatchState.BACKOFF):
                run.attempt += 1
                run.state = DispatchState.ATTEMPTING
                continue

            try:
                run.state = await self._attempt(run)
            except PersistenceConflictError as exc:
                run.error = exc
                if run.attempt < MAX_ATTEMPTS:
                    delay = BACKOFF_BASE_SECONDS * (2 ** run.attempt)
                    logger.warning(
                        "Write conflict on signal %s, retry %d/%d in %.0fms",
                        signal_id, run.attempt, MAX_ATTEMPTS, delay * 1000,
                    )
                    run.state = DispatchState.BACKOFF
                    await self._sleep(delay)
                else:
                    run.state = DispatchState.FAILED
            except Exception as exc:
                run.error = exc
                run.state = DispatchState.FAILED

        if run.state is DispatchState.FAILED:
            logger.error(
                "Signal %s dispatch failed after %d attempt(s): %s",
                signal_id, run.attempt, run.error,
            )
            self._mark_failed(signal_id, run.error)

        return run.state

    async def _attempt(self, run: _DispatchRun) -> DispatchState:
        signal = self._repo.find_by_id(run.signal_id)
        if signal is None:
            raise LookupError(f"Signal {run.signal_id} not found")

        if signal.status is not SignalStatus.PENDING:
            logger.debug(
                "Signal %s no longer pending (%s), skipping",
                signal.id, signal.status.value,
            )
            return DispatchState.SKIPPED

        if not run.notified:
            result = await self._notifications.send_signal_notification(signal)
            if not result.success:
                raise NotificationDeliveryError(result.error or "delivery failed")
            run.notified = True

        signal.mark_sent()
        self._repo.save(signal)
        return DispatchState.SUCCEEDED

    def _mark_failed(self, signal_id: str, error: Optional[Exception]) -> None:
        try:
            signal = self._repo.find_by_id(signal_id)
            if signal is not None and signal.status is SignalStatus.PENDING:
                signal.mark_failed(str(error) if error else "dispatch failed")
                self._repo.save(signal)
        except Exception as exc:
            logger.error("Could not mark signal %s as failed: %s", signal_id, exc)

"""Cooldown gate — minimum spacing between signals for one instrument."""

import logging
import time
from typing import Optional

from signalbot.models.instrument import InstrumentContext

logger = logging.getLogger("signalbot.cooldown")


class CooldownGate:
    """Checks and records per-instrument signal times.

    Args:
        instrument_repo: Optional ``InstrumentRepo`` used to persist
            ``last_signal_at`` so a restart keeps the cooldown.
        clock: Returns epoch seconds.
    """

    def __init__(self, instrument_repo=None, clock=time.time) -> None:
        self._repo = instrument_repo
        self._clock = clock

    def should_signal(self, instrument: InstrumentContext, now: Optional[float] = None) -> bool:
        if instrument.last_signal_at is None:
            return True
        if now is None:
            now = self._clock()
        return now - instrument.last_signal_at > instrument.signal_cooldown

    def remaining(self, instrument: InstrumentContext, now: Optional[float] = None) -> float:
        """Seconds until the gate opens, ``0.0`` when already open."""
        if instrument.last_signal_at is None:
            return 0.0
        if now is None:
            now = self._clock()
        return max(0.0, instrument.signal_cooldown - (now - instrument.last_signal_at))

    def record(self, instrument: InstrumentContext, now: Optional[float] = None) -> None:
        """Close the gate after a signal has been delivered."""
        if now is None:
            now = self._clock()
        instrument.last_signal_at = now
        if self._repo is not None:
            self._repo.update_instrument(
                instrument.exchange, instrument.symbol, last_signal_at=now,
            )
        logger.debug(
            "%s cooldown started (%.0fs)", instrument.symbol, instrument.signal_cooldown,
        )

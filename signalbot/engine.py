"""SignalBot — monitoring engine (polling loop).

Connects exchange adapters, indicator scoring, the cooldown gate and the
event bus into a single polling loop.  Each cycle processes every active
instrument with bounded concurrency; one instrument's failure never
aborts the others.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from signalbot.events.bus import EventBus, EventType
from signalbot.exchange.errors import ExchangeError, RateLimitError
from signalbot.models.instrument import InstrumentContext
from signalbot.models.signal import SignalStatus
from signalbot.strategy.cooldown import CooldownGate
from signalbot.strategy.scorer import generate_signal
from signalbot.strategy.snapshot import build_snapshot

logger = logging.getLogger("signalbot.engine")

_SOURCE = "MonitoringEngine"


class MonitoringEngine:
    """Runs fetch → analyse → score → publish for every instrument.

    Args:
        adapters: Exchange name → connected-or-connectable adapter.
        instruments: Instruments to watch.  The engine owns their state.
        event_bus: Bus on which ``signal.generated`` is published.
        signal_repo: Repository the new signal is saved to before publishing.
        cooldown: Gate deciding whether an instrument may signal again.
        max_parallel: Instruments processed concurrently within a cycle.
        poll_interval: Seconds between cycles.
        clock: Returns epoch seconds.
    """

    def __init__(
        self,
        adapters: dict,
        instruments: list[InstrumentContext],
        event_bus: EventBus,
        signal_repo,
        cooldown: Optional[CooldownGate] = None,
        max_parallel: int = 4,
        poll_interval: int = 60,
        clock=time.time,
    ) -> None:
        self._adapters = adapters
        self._instruments = {i.key: i for i in instruments}
        self._bus = event_bus
        self._signal_repo = signal_repo
        self._cooldown = cooldown or CooldownGate(clock=clock)
        self._semaphore = asyncio.Semaphore(max(1, max_parallel))
        self._poll_interval = poll_interval
        self._clock = clock
        self._backoff_until: dict[str, float] = {}
        self._running: bool = False
        self._cycle_count: int = 0
        self._last_cycle_at: Optional[str] = None
        self._last_results: list[dict] = []

    @property
    def instruments(self) -> list[InstrumentContext]:
        return list(self._instruments.values())

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Connect every adapter.  A failed connection is logged, not fatal."""
        for name, adapter in self._adapters.items():
            try:
                await adapter.connect()
                await self._bus.publish(
                    EventType.EXCHANGE_CONNECTED,
                    {"exchange": name, "latency_ms": adapter.health.latency_ms},
                    _SOURCE,
                )
            except ExchangeError as exc:
                logger.error("Exchange '%s' failed to connect: %s", name, exc)
                await self._bus.publish(
                    EventType.EXCHANGE_ERROR,
                    {"exchange": name, "error": str(exc)},
                    _SOURCE,
                )
        self._running = True

    def stop(self) -> None:
        """Signal the engine to stop after the current cycle."""
        self._running = False

    def activate(self, key: str) -> None:
        self._instruments[key].active = True

    def deactivate(self, key: str) -> None:
        self._instruments[key].active = False

    # ── Polling loop ─────────────────────────────────────────────────────

    async def run(self, max_cycles: int = 0) -> list[list[dict]]:
        """Run the monitoring loop until stopped.

        Args:
            max_cycles: Stop after this many cycles (0 = unlimited).

        Returns:
            Per-cycle result lists when *max_cycles* is set; an unlimited
            run returns ``[]`` (see ``get_status`` for the latest cycle).
        """
        self._running = True
        await self._bus.publish(
            EventType.MONITORING_STARTED,
            {"instruments": list(self._instruments.keys())},
            _SOURCE,
        )
        results: list[list[dict]] = []
        cycle = 0

        while self._running:
            cycle += 1
            cycle_results = await self.run_once()
            if max_cycles > 0:
                results.append(cycle_results)
            signalled = sum(1 for r in cycle_results if r["action"] == "signal_sent")
            logger.info(
                "Cycle %d: %d instrument(s), %d signal(s)",
                cycle, len(cycle_results), signalled,
            )

            if max_cycles > 0 and cycle >= max_cycles:
                break

            # Sleep in 1s steps so stop() takes effect promptly
            for _ in range(self._poll_interval):
                if not self._running:
                    break
                await asyncio.sleep(1)

        self._running = False
        await self._bus.publish(
            EventType.MONITORING_STOPPED, {"cycles": cycle}, _SOURCE,
        )
        return results

    # ── Single cycle ─────────────────────────────────────────────────────

    async def run_once(self, now: Optional[float] = None) -> list[dict]:
        """Process every instrument once and return one result dict each.

        Result ``action`` values: ``signal_sent``, ``signal_failed``,
        ``no_signal``, ``skipped`` (with ``reason``) and ``error``.
        """
        if now is None:
            now = self._clock()
        self._cycle_count += 1

        results = await asyncio.gather(
            *(self._guarded(inst, now) for inst in self._instruments.values())
        )
        self._last_cycle_at = datetime.now(timezone.utc).isoformat()
        self._last_results = list(results)
        return self._last_results

    async def _guarded(self, inst: InstrumentContext, now: float) -> dict:
        async with self._semaphore:
            try:
                return await self.process_instrument(inst, now)
            except RateLimitError as exc:
                self._backoff_until[inst.exchange] = now + exc.retry_after
                logger.warning(
                    "%s rate limited on %s, backing off %.1fs",
                    inst.symbol, inst.exchange, exc.retry_after,
                )
                return _result(inst, "error", reason="rate_limited", detail=str(exc))
            except ExchangeError as exc:
                logger.error("%s exchange error: %s", inst.symbol, exc)
                return _result(inst, "error", reason="exchange_error", detail=str(exc))
            except Exception as exc:
                logger.exception("%s processing failed", inst.symbol)
                return _result(inst, "error", reason="unexpected", detail=str(exc))

    async def process_instrument(self, inst: InstrumentContext, now: float) -> dict:
        """Fetch, analyse and possibly signal one instrument."""
        if not inst.active:
            return _result(inst, "skipped", reason="inactive")

        adapter = self._adapters.get(inst.exchange)
        if adapter is None:
            return _result(inst, "skipped", reason="unknown_exchange")

        if self._backoff_until.get(inst.exchange, 0.0) > now:
            return _result(inst, "skipped", reason="rate_limit_backoff")

        if not adapter.is_connected or not adapter.is_healthy():
            try:
                await adapter.ping()
            except RateLimitError:
                raise
            except ExchangeError as exc:
                logger.warning("%s unavailable, skipping %s: %s", inst.exchange, inst.symbol, exc)
                return _result(inst, "skipped", reason="exchange_unhealthy")

        if not self._cooldown.should_signal(inst, now):
            return _result(
                inst, "skipped", reason="cooldown",
                remaining=round(self._cooldown.remaining(inst, now), 1),
            )

        strategy = inst.adapted.strategy
        candles = await adapter.get_candles(inst.symbol, inst.timeframe, inst.candle_limit)
        snapshot = build_snapshot(candles, strategy)
        if snapshot is None:
            logger.debug(
                "%s has %d candle(s), need %d", inst.symbol, len(candles), strategy.min_candles,
            )
            return _result(inst, "skipped", reason="insufficient_data", candles=len(candles))

        await self._bus.publish(
            EventType.MARKET_DATA_UPDATED,
            {
                "pair": inst.symbol,
                "exchange": inst.exchange,
                "price": snapshot.price,
                "candle_count": len(candles),
            },
            _SOURCE,
        )

        signal = generate_signal(snapshot, inst.adapted, inst.symbol, inst.exchange)
        if signal is None:
            return _result(inst, "no_signal", rsi=round(snapshot.rsi, 2))

        self._signal_repo.save(signal)
        logger.info(
            "%s %s signal %s (confidence %.1f: %s)",
            inst.symbol, signal.direction.value, signal.id,
            signal.confidence, ", ".join(signal.reasoning),
        )
        await self._bus.publish(
            EventType.SIGNAL_GENERATED,
            {
                "signal_id": signal.id,
                "pair": signal.pair,
                "direction": signal.direction.value,
                "entry": signal.entry,
                "confidence": signal.confidence,
                "exchange": signal.exchange,
                "strategy": signal.strategy,
                "timestamp": signal.created_at.isoformat(),
            },
            _SOURCE,
            correlation_id=signal.id,
        )

        stored = self._signal_repo.find_by_id(signal.id)
        status = stored.status if stored is not None else SignalStatus.PENDING
        if status is SignalStatus.SENT:
            self._cooldown.record(inst, now)
            return _result(inst, "signal_sent", signal_id=signal.id,
                           direction=signal.direction.value)

        logger.warning("%s signal %s not delivered (status %s)", inst.symbol, signal.id, status.value)
        return _result(inst, "signal_failed", signal_id=signal.id, status=status.value)

    # ── Status ───────────────────────────────────────────────────────────

    def get_status(self) -> dict:
        return {
            "running": self._running,
            "cycle_count": self._cycle_count,
            "last_cycle_at": self._last_cycle_at,
            "poll_interval_seconds": self._poll_interval,
            "instruments": [i.to_dict() for i in self._instruments.values()],
            "last_results": list(self._last_results),
            "rate_limit_backoff": dict(self._backoff_until),
        }


def _result(inst: InstrumentContext, action: str, **extra) -> dict:
    return {"pair": inst.symbol, "exchange": inst.exchange, "action": action, **extra}

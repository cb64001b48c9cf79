"""BotOrchestrator — wires adapters, strategies, bus, handlers and engine.

Everything the monitoring loop needs is built here from a ``Config`` and
the instrument list.  Tests inject duck-typed adapters, repos or a
notification service through the constructor.
"""

import logging
import time
from typing import Optional

from signalbot.config import Config, InstrumentConfig
from signalbot.engine import MonitoringEngine
from signalbot.events.bus import EventBus, EventType
from signalbot.events.store import InMemoryEventStore
from signalbot.exchange.registry import get_adapter
from signalbot.handlers.signal_dispatch import SignalDispatchHandler
from signalbot.handlers.signal_lifecycle import (
    SignalExecutionHandler,
    SignalFailureHandler,
)
from signalbot.models.instrument import InstrumentContext
from signalbot.notifications.channels import LogChannel, TelegramChannel, WebhookChannel
from signalbot.notifications.service import NotificationService
from signalbot.repos.instrument_repo import InstrumentRepo
from signalbot.repos.signal_repo import SignalRepo
from signalbot.strategy.adaptation import adapt, signal_cooldown
from signalbot.strategy.cooldown import CooldownGate
from signalbot.strategy.models import get_base_strategy
from signalbot.strategy.templates import (
    TIMEFRAME_DATA_POINTS,
    PairCategory,
    detect_category,
)

logger = logging.getLogger("signalbot.orchestrator")


class BotOrchestrator:
    """Builds and runs the signal pipeline.

    Args:
        config: Global ``Config`` loaded from ``.env``.
        instruments: Instruments to watch.
        adapters: Exchange name → adapter.  Built from the registry when omitted.
        notification_service: Built from the configured channels when omitted.
        signal_repo: Defaults to ``SignalRepo(config.db_path)``.
        instrument_repo: Defaults to ``InstrumentRepo(config.db_path)``.
        clock: Returns epoch seconds.
    """

    def __init__(
        self,
        config: Config,
        instruments: list[InstrumentConfig],
        adapters: Optional[dict] = None,
        notification_service=None,
        signal_repo=None,
        instrument_repo=None,
        clock=time.time,
    ) -> None:
        self._config = config
        self._instrument_configs = instruments
        self._adapters = adapters
        self._clock = clock
        self.signal_repo = signal_repo or SignalRepo(config.db_path)
        self.instrument_repo = instrument_repo or InstrumentRepo(config.db_path)
        self.notifications = notification_service or self._build_notifications()
        self.event_store = InMemoryEventStore()
        self.event_bus = EventBus(store=self.event_store)
        self.engine: Optional[MonitoringEngine] = None
        self._started_at: Optional[float] = None

    # ── Build ────────────────────────────────────────────────────────────

    def _build_notifications(self) -> NotificationService:
        timeout = self._config.request_timeout_seconds
        return NotificationService([
            TelegramChannel(
                self._config.telegram_bot_token,
                self._config.telegram_chat_id,
                timeout=timeout,
            ),
            WebhookChannel(self._config.webhook_url, timeout=timeout),
            LogChannel(),
        ])

    def _build_adapters(self) -> dict:
        names = sorted({i.exchange for i in self._instrument_configs})
        return {name: get_adapter(name, self._config) for name in names}

    def build_instrument(self, item: InstrumentConfig) -> InstrumentContext:
        """Resolve strategy, category and cooldown for one instrument.

        Stored ``last_signal_at`` and ``active`` are restored so the
        cooldown survives restarts.  Raises ``KeyError`` for a timeframe
        with no base strategy.
        """
        base = get_base_strategy(item.timeframe, self._config.min_signal_strength)
        category = PairCategory(item.category) if item.category else detect_category(item.symbol)
        adapted = adapt(base, category)

        self.instrument_repo.upsert_instrument(
            item.exchange, item.symbol, item.timeframe,
            category=category.value, active=item.active,
        )
        stored = self.instrument_repo.find_instrument_config(item.exchange, item.symbol) or {}

        candle_limit = max(
            TIMEFRAME_DATA_POINTS.get(item.timeframe, self._config.profile.data_points),
            base.min_candles,
        )
        return InstrumentContext(
            symbol=item.symbol,
            exchange=item.exchange,
            timeframe=item.timeframe,
            adapted=adapted,
            signal_cooldown=signal_cooldown(
                self._config.profile.signal_cooldown_seconds, item.timeframe,
            ),
            candle_limit=candle_limit,
            last_signal_at=stored.get("last_signal_at"),
            active=item.active and stored.get("active", True),
        )

    def build(self) -> MonitoringEngine:
        """Create adapters, handlers and the engine.  Call once."""
        if self._adapters is None:
            self._adapters = self._build_adapters()

        instruments = []
        for item in self._instrument_configs:
            ctx = self.build_instrument(item)
            instruments.append(ctx)
            logger.info(
                "Registered %s on %s [%s] → %s, min strength %d, cooldown %ds",
                ctx.symbol, ctx.exchange, ctx.category.value,
                ctx.adapted.strategy.name, ctx.min_signal_strength,
                int(ctx.signal_cooldown),
            )

        self.event_bus.subscribe(
            EventType.SIGNAL_GENERATED,
            SignalDispatchHandler(self.notifications, self.signal_repo),
        )
        self.event_bus.subscribe(
            EventType.SIGNAL_EXECUTED, SignalExecutionHandler(self.signal_repo),
        )
        self.event_bus.subscribe(
            EventType.SIGNAL_FAILED,
            SignalFailureHandler(self.signal_repo, self.notifications),
        )

        self.engine = MonitoringEngine(
            adapters=self._adapters,
            instruments=instruments,
            event_bus=self.event_bus,
            signal_repo=self.signal_repo,
            cooldown=CooldownGate(self.instrument_repo, clock=self._clock),
            max_parallel=self._config.max_parallel_instruments,
            poll_interval=self._config.poll_interval_seconds,
            clock=self._clock,
        )
        return self.engine

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self, max_cycles: int = 0) -> list[list[dict]]:
        """Connect exchanges and run the monitoring loop until stopped."""
        if self.engine is None:
            self.build()
        self._started_at = self._clock()
        await self.engine.initialize()
        try:
            return await self.engine.run(max_cycles=max_cycles)
        finally:
            await self.shutdown()

    def stop(self) -> None:
        if self.engine is not None:
            self.engine.stop()
            logger.info("Stop signal sent to monitoring engine.")

    async def shutdown(self) -> None:
        for name, adapter in (self._adapters or {}).items():
            await adapter.disconnect()
            logger.info("Disconnected from %s", name)

    # ── Status ───────────────────────────────────────────────────────────

    def get_status(self) -> dict:
        engine_status = self.engine.get_status() if self.engine is not None else None
        uptime = None
        if self._started_at is not None:
            uptime = round(self._clock() - self._started_at, 1)
        return {
            "trading_mode": self._config.trading_mode,
            "uptime_seconds": uptime,
            "engine": engine_status,
            "exchanges": {
                name: adapter.get_status() for name, adapter in (self._adapters or {}).items()
            },
            "notifications": {"enabled_channels": self.notifications.enabled_channels},
            "event_bus": self.event_bus.get_metrics(),
            "signals": self.signal_repo.count_by_status(),
        }

    def health(self) -> dict:
        """Overall health: every exchange healthy and the bus without issues."""
        exchanges = {
            name: adapter.health_score() for name, adapter in (self._adapters or {}).items()
        }
        bus = self.event_bus.health_status()
        healthy = bus["healthy"] and all(
            a.is_healthy() for a in (self._adapters or {}).values()
        )
        return {
            "status": "ok" if healthy else "degraded",
            "exchanges": exchanges,
            "event_bus": bus,
        }

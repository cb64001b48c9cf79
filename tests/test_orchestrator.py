"""Tests for BotOrchestrator wiring and instrument resolution."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from signalbot.config import Config, InstrumentConfig
from signalbot.events.bus import EventType
from signalbot.exchange.models import Candle
from signalbot.models.signal import SignalStatus
from signalbot.orchestrator import BotOrchestrator
from signalbot.repos.db import init_db
from signalbot.strategy.snapshot import IndicatorSnapshot
from signalbot.strategy.templates import PairCategory

NOW = 1_700_000_000.0


def _make_config(db_path: str, **overrides) -> Config:
    defaults = dict(
        exchange="binance",
        api_key="k",
        api_secret="s",
        sandbox=True,
        trading_mode="intraday",
        watch_pairs=("BTC/USDT",),
        min_signal_strength=5,
        max_parallel_instruments=4,
        request_timeout_seconds=10.0,
        retry_count=3,
        db_path=db_path,
        log_level="WARNING",
        health_port=8080,
    )
    defaults.update(overrides)
    return Config(**defaults)


def _make_adapter(healthy: bool = True) -> MagicMock:
    """Return a mock adapter whose candle fetch yields no history."""
    adapter = MagicMock()
    adapter.connect = AsyncMock()
    adapter.ping = AsyncMock(return_value=10.0)
    adapter.disconnect = AsyncMock()
    adapter.get_candles = AsyncMock(return_value=[])
    adapter.is_connected = True
    adapter.is_healthy.return_value = healthy
    adapter.health_score.return_value = 100 if healthy else 40
    adapter.get_status.return_value = {"connected": True}
    adapter.health.latency_ms = 10.0
    return adapter


class MockNotificationService:
    enabled_channels = ["log"]


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "bot.db")
    init_db(path)
    return path


def _orchestrator(db_path, instruments, adapters=None, **config_overrides):
    return BotOrchestrator(
        _make_config(db_path, **config_overrides),
        instruments,
        adapters=adapters if adapters is not None else {"binance": _make_adapter()},
        notification_service=MockNotificationService(),
        clock=lambda: NOW,
    )


class TestBuildInstrument:
    def test_detects_category_and_cooldown(self, db_path):
        orch = _orchestrator(db_path, [])
        ctx = orch.build_instrument(InstrumentConfig("DOGE/USDT", "binance", "1h"))

        assert ctx.category is PairCategory.MEME
        assert ctx.adapted.strategy.name == "trend_1h"
        assert ctx.signal_cooldown == 600.0
        assert ctx.candle_limit == 100
        assert ctx.key == "binance:DOGE/USDT"

    def test_explicit_category_wins(self, db_path):
        orch = _orchestrator(db_path, [])
        ctx = orch.build_instrument(
            InstrumentConfig("DOGE/USDT", "binance", "1h", category="defi"),
        )
        assert ctx.category is PairCategory.DEFI

    def test_timeframe_scales_cooldown_and_history(self, db_path):
        orch = _orchestrator(db_path, [])
        ctx = orch.build_instrument(InstrumentConfig("BTC/USDT", "binance", "4h"))
        assert ctx.signal_cooldown == 1200.0
        assert ctx.candle_limit == 60

    def test_unknown_timeframe_raises(self, db_path):
        orch = _orchestrator(db_path, [])
        with pytest.raises(KeyError):
            orch.build_instrument(InstrumentConfig("BTC/USDT", "binance", "3h"))

    def test_restores_stored_state(self, db_path):
        orch = _orchestrator(db_path, [])
        orch.instrument_repo.upsert_instrument("binance", "BTC/USDT", "1h")
        orch.instrument_repo.update_instrument(
            "binance", "BTC/USDT", last_signal_at=NOW - 30, active=False,
        )

        ctx = orch.build_instrument(InstrumentConfig("BTC/USDT", "binance", "1h"))

        assert ctx.last_signal_at == NOW - 30
        assert ctx.active is False

    def test_persists_instrument(self, db_path):
        orch = _orchestrator(db_path, [])
        orch.build_instrument(InstrumentConfig("ETH/USDT", "bybit", "15m"))
        row = orch.instrument_repo.find_instrument_config("bybit", "ETH/USDT")
        assert row["timeframe"] == "15m"
        assert row["category"] == "crypto_major"


class TestBuild:
    def test_wires_handlers_and_engine(self, db_path):
        orch = _orchestrator(db_path, [InstrumentConfig("BTC/USDT", "binance", "1h")])
        engine = orch.build()

        assert orch.engine is engine
        assert [i.key for i in engine.instruments] == ["binance:BTC/USDT"]
        for event_type in (
            EventType.SIGNAL_GENERATED, EventType.SIGNAL_EXECUTED, EventType.SIGNAL_FAILED,
        ):
            assert orch.event_bus.handler_count(event_type) == 1

    @pytest.mark.asyncio
    async def test_start_runs_cycles_and_disconnects(self, db_path):
        adapter = _make_adapter()
        orch = _orchestrator(
            db_path, [InstrumentConfig("BTC/USDT", "binance", "1h")], {"binance": adapter},
        )

        results = await orch.start(max_cycles=1)

        assert results[0][0]["reason"] == "insufficient_data"
        adapter.connect.assert_awaited_once()
        adapter.get_candles.assert_awaited_once_with("BTC/USDT", "1h", 100)
        adapter.disconnect.assert_awaited_once()
        assert orch.get_status()["uptime_seconds"] == 0.0

    def test_stop_before_build_is_safe(self, db_path):
        _orchestrator(db_path, []).stop()


class TestStatus:
    def test_status_shape(self, db_path):
        orch = _orchestrator(db_path, [InstrumentConfig("BTC/USDT", "binance", "1h")])
        orch.build()
        status = orch.get_status()

        assert status["trading_mode"] == "intraday"
        assert status["uptime_seconds"] is None
        assert status["exchanges"] == {"binance": {"connected": True}}
        assert status["notifications"] == {"enabled_channels": ["log"]}
        assert status["signals"] == {}
        assert status["engine"]["cycle_count"] == 0

    def test_health_ok(self, db_path):
        orch = _orchestrator(db_path, [])
        health = orch.health()
        assert health["status"] == "ok"
        assert health["exchanges"] == {"binance": 100}

    def test_health_degraded_by_exchange(self, db_path):
        orch = _orchestrator(db_path, [], {"binance": _make_adapter(healthy=False)})
        health = orch.health()
        assert health["status"] == "degraded"
        assert health["exchanges"] == {"binance": 40}


class TestUndeliveredSignal:
    @pytest.mark.asyncio
    async def test_telegram_outage_fails_signal_and_keeps_gate_open(self, db_path, monkeypatch):
        # Bearish candle under resistance with MACD and medium EMA agreeing
        snapshot = IndicatorSnapshot(
            open=101.0, high=101.0, low=99.0, close=100.0,
            ema_short=101.0, ema_medium=105.0, ema_long=100.0,
            rsi=50.0, macd=-1.0, macd_signal=0.0,
            bb_upper=110.0, bb_middle=100.0, bb_lower=90.0,
            volume=100.0, average_volume=100.0,
        )
        monkeypatch.setattr("signalbot.engine.build_snapshot", lambda c, s: snapshot)
        posts: list[str] = []

        async def _mock_post(self, url, *, headers=None, json=None, timeout=None, **kwargs):
            posts.append(url)
            return httpx.Response(500, json={"ok": False}, request=httpx.Request("POST", url))

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)

        adapter = _make_adapter()
        adapter.get_candles = AsyncMock(return_value=[
            Candle(timestamp=i * 3_600_000, open=100.0, high=101.0, low=99.0,
                   close=100.0, volume=10.0)
            for i in range(100)
        ])
        orch = BotOrchestrator(
            _make_config(db_path, telegram_bot_token="tok", telegram_chat_id="42"),
            [InstrumentConfig("BTC/USDT", "binance", "1h")],
            adapters={"binance": adapter},
            clock=lambda: NOW,
        )

        async def _no_sleep(seconds):
            return None

        monkeypatch.setattr(orch.notifications, "_sleep", _no_sleep)
        engine = orch.build()

        [result] = await engine.run_once(now=NOW)

        assert orch.notifications.enabled_channels == ["telegram", "log"]
        assert len(posts) == 3
        assert result["action"] == "signal_failed"
        assert result["status"] == "FAILED"
        stored = orch.signal_repo.find_by_id(result["signal_id"])
        assert stored.status is SignalStatus.FAILED
        assert engine.instruments[0].last_signal_at is None
        row = orch.instrument_repo.find_instrument_config("binance", "BTC/USDT")
        assert row["last_signal_at"] is None

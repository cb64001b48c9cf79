"""Tests for the SQLite repositories — signals and instruments."""

import pytest

from signalbot.models.signal import Signal, SignalDirection, SignalStatus
from signalbot.repos.db import PersistenceConflictError, init_db
from signalbot.repos.instrument_repo import InstrumentRepo
from signalbot.repos.signal_repo import SignalRepo


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "data" / "test.db")
    init_db(path)
    return path


def _signal(**overrides) -> Signal:
    defaults = dict(
        pair="BTC/USDT",
        exchange="binance",
        direction=SignalDirection.SHORT,
        entry=42000.0,
        stop_loss=43050.0,
        take_profits=[41370.0, 40740.0, 39900.0],
        confidence=7.5,
        reasoning=["price_at_resistance", "rsi_neutral"],
        strategy="trend_1h",
        timeframe="1h",
    )
    defaults.update(overrides)
    return Signal(**defaults)


class TestInitDb:
    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "bot.db"
        init_db(str(path))
        assert path.exists()

    def test_idempotent(self, db_path):
        init_db(db_path)
        assert SignalRepo(db_path).count_by_status() == {}


class TestSignalRepo:
    def test_insert_and_find(self, db_path):
        repo = SignalRepo(db_path)
        signal = _signal()
        repo.save(signal)
        assert signal.version == 1

        loaded = repo.find_by_id(signal.id)
        assert loaded.pair == "BTC/USDT"
        assert loaded.direction is SignalDirection.SHORT
        assert loaded.take_profits == [41370.0, 40740.0, 39900.0]
        assert loaded.reasoning == ["price_at_resistance", "rsi_neutral"]
        assert loaded.status is SignalStatus.PENDING
        assert loaded.created_at == signal.created_at
        assert loaded.version == 1

    def test_find_missing(self, db_path):
        assert SignalRepo(db_path).find_by_id("nope") is None

    def test_status_update_bumps_version(self, db_path):
        repo = SignalRepo(db_path)
        signal = repo.save(_signal())
        loaded = repo.find_by_id(signal.id)
        loaded.mark_sent()
        repo.save(loaded)

        stored = repo.find_by_id(signal.id)
        assert stored.status is SignalStatus.SENT
        assert stored.sent_at is not None
        assert stored.version == 2

    def test_stale_write_conflicts(self, db_path):
        repo = SignalRepo(db_path)
        signal = repo.save(_signal())
        first = repo.find_by_id(signal.id)
        second = repo.find_by_id(signal.id)

        first.mark_sent()
        repo.save(first)

        second.mark_failed("late writer")
        with pytest.raises(PersistenceConflictError):
            repo.save(second)
        assert repo.find_by_id(signal.id).status is SignalStatus.SENT

    def test_duplicate_insert_conflicts(self, db_path):
        repo = SignalRepo(db_path)
        signal = _signal()
        repo.save(signal)
        signal.version = 0
        with pytest.raises(PersistenceConflictError):
            repo.save(signal)

    def test_find_recent_filters(self, db_path):
        repo = SignalRepo(db_path)
        repo.save(_signal())
        eth = repo.save(_signal(pair="ETH/USDT"))
        sent = repo.find_by_id(eth.id)
        sent.mark_sent()
        repo.save(sent)

        assert len(repo.find_recent()) == 2
        assert [s.pair for s in repo.find_recent(pair="ETH/USDT")] == ["ETH/USDT"]
        assert [s.id for s in repo.find_recent(status=SignalStatus.SENT)] == [eth.id]
        assert len(repo.find_recent(limit=1)) == 1

    def test_find_by_status_and_counts(self, db_path):
        repo = SignalRepo(db_path)
        repo.save(_signal())
        repo.save(_signal())
        failed = repo.save(_signal())
        loaded = repo.find_by_id(failed.id)
        loaded.mark_failed("no channel")
        repo.save(loaded)

        assert len(repo.find_by_status(SignalStatus.PENDING)) == 2
        assert repo.count_by_status() == {"PENDING": 2, "FAILED": 1}
        assert repo.find_by_id(failed.id).failure_reason == "no channel"


class TestInstrumentRepo:
    def test_upsert_and_find(self, db_path):
        repo = InstrumentRepo(db_path)
        repo.upsert_instrument("binance", "BTC/USDT", "1h", category="crypto_major")
        row = repo.find_instrument_config("binance", "BTC/USDT")
        assert row["timeframe"] == "1h"
        assert row["category"] == "crypto_major"
        assert row["active"] is True
        assert row["last_signal_at"] is None

    def test_find_missing(self, db_path):
        assert InstrumentRepo(db_path).find_instrument_config("binance", "X/Y") is None

    def test_upsert_keeps_cooldown(self, db_path):
        repo = InstrumentRepo(db_path)
        repo.upsert_instrument("binance", "BTC/USDT", "1h")
        repo.update_instrument("binance", "BTC/USDT", last_signal_at=1234.5)
        repo.upsert_instrument("binance", "BTC/USDT", "4h")

        row = repo.find_instrument_config("binance", "BTC/USDT")
        assert row["timeframe"] == "4h"
        assert row["last_signal_at"] == 1234.5

    def test_deactivate(self, db_path):
        repo = InstrumentRepo(db_path)
        repo.upsert_instrument("bybit", "ETH/USDT", "15m")
        repo.deactivate("bybit", "ETH/USDT")
        assert repo.find_instrument_config("bybit", "ETH/USDT")["active"] is False

    def test_update_without_fields_is_noop(self, db_path):
        repo = InstrumentRepo(db_path)
        repo.upsert_instrument("bybit", "ETH/USDT", "15m")
        repo.update_instrument("bybit", "ETH/USDT")
        assert repo.find_instrument_config("bybit", "ETH/USDT")["active"] is True

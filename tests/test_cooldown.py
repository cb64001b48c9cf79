"""Tests for the per-instrument cooldown gate."""

from signalbot.models.instrument import InstrumentContext
from signalbot.strategy.adaptation import adapt
from signalbot.strategy.cooldown import CooldownGate
from signalbot.strategy.models import get_base_strategy
from signalbot.strategy.templates import PairCategory


class MockInstrumentRepo:
    def __init__(self):
        self.updates: list[tuple] = []

    def update_instrument(self, exchange, symbol, last_signal_at=None, active=None):
        self.updates.append((exchange, symbol, last_signal_at))


def _instrument(**overrides) -> InstrumentContext:
    defaults = dict(
        symbol="BTC/USDT",
        exchange="binance",
        timeframe="1h",
        adapted=adapt(get_base_strategy("1h"), PairCategory.CRYPTO_MAJOR),
        signal_cooldown=600.0,
    )
    defaults.update(overrides)
    return InstrumentContext(**defaults)


class TestCooldownGate:
    def test_never_signalled_is_open(self):
        gate = CooldownGate(clock=lambda: 1000.0)
        assert gate.should_signal(_instrument()) is True
        assert gate.remaining(_instrument()) == 0.0

    def test_closed_within_cooldown(self):
        gate = CooldownGate()
        inst = _instrument(last_signal_at=1000.0)
        assert gate.should_signal(inst, now=1300.0) is False
        assert gate.remaining(inst, now=1300.0) == 300.0

    def test_exact_boundary_still_closed(self):
        gate = CooldownGate()
        inst = _instrument(last_signal_at=1000.0)
        assert gate.should_signal(inst, now=1600.0) is False

    def test_open_after_cooldown(self):
        gate = CooldownGate()
        inst = _instrument(last_signal_at=1000.0)
        assert gate.should_signal(inst, now=1600.5) is True
        assert gate.remaining(inst, now=1700.0) == 0.0

    def test_uses_clock_when_now_omitted(self):
        gate = CooldownGate(clock=lambda: 1100.0)
        assert gate.should_signal(_instrument(last_signal_at=1000.0)) is False

    def test_record_closes_gate(self):
        gate = CooldownGate()
        inst = _instrument()
        gate.record(inst, now=5000.0)
        assert inst.last_signal_at == 5000.0
        assert gate.should_signal(inst, now=5001.0) is False

    def test_record_persists(self):
        repo = MockInstrumentRepo()
        gate = CooldownGate(instrument_repo=repo, clock=lambda: 42.0)
        gate.record(_instrument())
        assert repo.updates == [("binance", "BTC/USDT", 42.0)]

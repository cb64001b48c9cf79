"""Tests for the signal scorer and indicator snapshot."""

from dataclasses import replace

import pytest

from signalbot.exchange.models import Candle
from signalbot.models.signal import SignalDirection, SignalStatus
from signalbot.strategy.adaptation import adapt
from signalbot.strategy.models import get_base_strategy
from signalbot.strategy.scorer import (
    generate_signal,
    long_conditions,
    score,
    short_conditions,
)
from signalbot.strategy.snapshot import IndicatorSnapshot, build_snapshot
from signalbot.strategy.templates import PairCategory


# ── Helpers ──────────────────────────────────────────────────────────────


def _adapted(category: PairCategory = PairCategory.CRYPTO_MAJOR):
    # 1h major: strength 5, RSI 35/65, volume threshold 1.56
    return adapt(get_base_strategy("1h"), category)


_NEUTRAL = IndicatorSnapshot(
    open=100.0,
    high=101.0,
    low=99.0,
    close=100.0,
    ema_short=110.0,
    ema_medium=100.0,
    ema_long=100.0,
    rsi=80.0,
    macd=0.0,
    macd_signal=0.0,
    bb_upper=110.0,
    bb_middle=100.0,
    bb_lower=90.0,
    volume=100.0,
    average_volume=100.0,
)


def _snap(**overrides) -> IndicatorSnapshot:
    return replace(_NEUTRAL, **overrides)


def _five_short_points() -> IndicatorSnapshot:
    return _snap(
        open=101.0,        # bearish candle
        ema_short=101.0,   # price just under resistance
        rsi=50.0,          # neutral
        macd=-1.0,         # below signal
        ema_medium=105.0,  # below medium trend
    )


def _four_long_points() -> IndicatorSnapshot:
    return _snap(
        open=99.0,         # bullish candle
        rsi=30.0,          # oversold
        macd=1.0,          # above signal
        ema_medium=95.0,   # above medium trend
    )


# ── Conditions ───────────────────────────────────────────────────────────


class TestConditions:
    def test_neutral_snapshot_scores_nothing(self):
        assert score(short_conditions(_NEUTRAL, _adapted())) == 0
        assert score(long_conditions(_NEUTRAL, _adapted())) == 0

    def test_short_condition_names(self):
        names = set(short_conditions(_NEUTRAL, _adapted()))
        assert names == {
            "price_at_resistance", "rsi_neutral", "macd_bearish",
            "volume_confirmation", "bearish_candle", "below_medium_trend",
            "near_bb_upper",
        }

    def test_long_condition_names(self):
        names = set(long_conditions(_NEUTRAL, _adapted()))
        assert names == {
            "rsi_oversold", "macd_bullish", "volume_confirmation",
            "bullish_candle", "above_medium_trend", "near_bb_lower",
            "bounce_from_support",
        }

    def test_resistance_requires_price_at_or_below_ema(self):
        above = short_conditions(_snap(ema_short=99.0), _adapted())
        below = short_conditions(_snap(ema_short=101.5), _adapted())
        assert above["price_at_resistance"] is False
        assert below["price_at_resistance"] is True

    def test_long_volume_needs_extra_margin(self):
        snap = _snap(volume=170.0)  # ratio 1.7: above 1.56, below 1.872
        assert short_conditions(snap, _adapted())["volume_confirmation"] is True
        assert long_conditions(snap, _adapted())["volume_confirmation"] is False

    def test_bounce_from_support(self):
        snap = _snap(low=85.0, close=100.0)
        assert long_conditions(snap, _adapted())["bounce_from_support"] is True

    def test_widened_rsi_band_for_volatile_category(self):
        snap = _snap(rsi=33.0)
        assert short_conditions(snap, _adapted())["rsi_neutral"] is False
        assert short_conditions(snap, _adapted(PairCategory.CRYPTO_ALT))["rsi_neutral"] is True


# ── Signal generation ────────────────────────────────────────────────────


class TestGenerateSignal:
    def test_short_at_exact_threshold(self):
        signal = generate_signal(_five_short_points(), _adapted(), "BTC/USDT", "binance")
        assert signal is not None
        assert signal.direction is SignalDirection.SHORT
        assert signal.confidence == pytest.approx(7.5)
        assert signal.status is SignalStatus.PENDING

    def test_short_levels(self):
        signal = generate_signal(_five_short_points(), _adapted(), "BTC/USDT", "binance")
        assert signal.entry == 100.0
        assert signal.stop_loss == pytest.approx(102.5)
        assert signal.take_profits == pytest.approx([98.5, 97.0, 95.0])

    def test_short_reasoning_lists_satisfied_conditions(self):
        signal = generate_signal(_five_short_points(), _adapted(), "BTC/USDT", "binance")
        assert signal.reasoning == [
            "price_at_resistance", "rsi_neutral", "macd_bearish",
            "bearish_candle", "below_medium_trend",
        ]

    def test_long_needs_one_point_less(self):
        signal = generate_signal(_four_long_points(), _adapted(), "ETH/USDT", "bybit")
        assert signal is not None
        assert signal.direction is SignalDirection.LONG
        assert signal.confidence == pytest.approx(6.0)
        assert signal.stop_loss == pytest.approx(97.5)
        assert signal.take_profits == pytest.approx([101.5, 103.0, 105.0])
        assert signal.exchange == "bybit"

    def test_below_threshold_returns_none(self):
        snap = replace(_four_long_points(), ema_medium=100.0)  # 3 long points
        assert generate_signal(snap, _adapted(), "BTC/USDT", "binance") is None

    def test_short_takes_priority(self):
        snap = _snap(
            ema_short=101.0,
            rsi=37.0,          # neutral for SHORT, oversold for LONG
            macd=-1.0,
            volume=200.0,
            bb_middle=99.0,
            low=85.0,          # bounce for LONG
            ema_medium=95.0,
        )
        assert score(long_conditions(snap, _adapted())) >= 4
        signal = generate_signal(snap, _adapted(), "BTC/USDT", "binance")
        assert signal.direction is SignalDirection.SHORT

    def test_confidence_capped_at_10(self):
        snap = _snap(
            open=101.0, ema_short=101.0, rsi=50.0, macd=-1.0,
            volume=200.0, ema_medium=105.0, bb_middle=99.0,
        )
        signal = generate_signal(snap, _adapted(), "BTC/USDT", "binance")
        assert len(signal.reasoning) == 7
        assert signal.confidence == 10.0

    def test_meme_raises_the_bar(self):
        assert generate_signal(
            _five_short_points(), _adapted(PairCategory.MEME), "DOGE/USDT", "binance",
        ) is None

    def test_strategy_metadata(self):
        signal = generate_signal(_five_short_points(), _adapted(), "BTC/USDT", "binance")
        assert signal.strategy == "trend_1h"
        assert signal.timeframe == "1h"


# ── Snapshot ─────────────────────────────────────────────────────────────


def _candles(n: int) -> list[Candle]:
    return [
        Candle(
            timestamp=1_700_000_000_000 + i * 3_600_000,
            open=100.0 + i * 0.1,
            high=101.0 + i * 0.1,
            low=99.0 + i * 0.1,
            close=100.5 + i * 0.1,
            volume=1000.0 + i,
        )
        for i in range(n)
    ]


class TestBuildSnapshot:
    def test_insufficient_history(self):
        strategy = get_base_strategy("1h")
        assert build_snapshot(_candles(strategy.min_candles - 1), strategy) is None

    def test_uses_last_candle(self):
        strategy = get_base_strategy("1h")
        candles = _candles(60)
        snap = build_snapshot(candles, strategy)
        assert snap is not None
        assert snap.price == candles[-1].close
        assert snap.is_bullish
        assert snap.bb_upper >= snap.bb_middle >= snap.bb_lower
        assert snap.average_volume == pytest.approx(sum(c.volume for c in candles[-20:]) / 20)

    def test_uptrend_orders_emas(self):
        strategy = get_base_strategy("1h")
        snap = build_snapshot(_candles(120), strategy)
        assert snap.ema_short > snap.ema_medium > snap.ema_long

"""Signal scorer — count satisfied conditions and emit SHORT or LONG.

Each direction has a fixed set of boolean conditions.  The score is the
number of conditions that hold.  SHORT is checked first and needs
``min_signal_strength``; LONG needs one point less.
"""

import logging
from typing import Optional

from signalbot.models.signal import Signal, SignalDirection
from signalbot.strategy.adaptation import AdaptedStrategy
from signalbot.strategy.snapshot import IndicatorSnapshot

logger = logging.getLogger("signalbot.scorer")

# Absolute price distance that counts as "at" the short EMA.
RESISTANCE_PROXIMITY = 2.0
LONG_VOLUME_FACTOR = 1.2
LONG_OVERSOLD_MARGIN = 5
CONFIDENCE_PER_POINT = 1.5
MAX_CONFIDENCE = 10.0


def short_conditions(snap: IndicatorSnapshot, adapted: AdaptedStrategy) -> dict[str, bool]:
    strategy = adapted.strategy
    return {
        "price_at_resistance": (
            abs(snap.price - snap.ema_short) < RESISTANCE_PROXIMITY
            and snap.price <= snap.ema_short
        ),
        "rsi_neutral": strategy.rsi.oversold < snap.rsi < strategy.rsi.overbought,
        "macd_bearish": snap.macd < snap.macd_signal,
        "volume_confirmation": snap.volume_ratio > strategy.volume.threshold,
        "bearish_candle": snap.is_bearish,
        "below_medium_trend": snap.price < snap.ema_medium,
        "near_bb_upper": snap.price > snap.bb_middle,
    }


def long_conditions(snap: IndicatorSnapshot, adapted: AdaptedStrategy) -> dict[str, bool]:
    strategy = adapted.strategy
    return {
        "rsi_oversold": snap.rsi < strategy.rsi.oversold + LONG_OVERSOLD_MARGIN,
        "macd_bullish": snap.macd > snap.macd_signal,
        "volume_confirmation": (
            snap.volume_ratio > strategy.volume.threshold * LONG_VOLUME_FACTOR
        ),
        "bullish_candle": snap.is_bullish,
        "above_medium_trend": snap.price > snap.ema_medium,
        "near_bb_lower": snap.price < snap.bb_middle,
        "bounce_from_support": snap.low < snap.bb_lower and snap.close > snap.bb_lower,
    }


def score(conditions: dict[str, bool]) -> int:
    return sum(1 for ok in conditions.values() if ok)


def generate_signal(
    snap: IndicatorSnapshot,
    adapted: AdaptedStrategy,
    pair: str,
    exchange: str,
) -> Optional[Signal]:
    """Return a PENDING ``Signal`` or ``None`` when neither threshold is met."""
    min_strength = adapted.min_signal_strength

    shorts = short_conditions(snap, adapted)
    short_score = score(shorts)
    if short_score >= min_strength:
        return _create_signal(SignalDirection.SHORT, snap, adapted, pair, exchange,
                              short_score, shorts)

    longs = long_conditions(snap, adapted)
    long_score = score(longs)
    if long_score >= min_strength - 1:
        return _create_signal(SignalDirection.LONG, snap, adapted, pair, exchange,
                              long_score, longs)

    logger.debug(
        "%s no signal (short %d, long %d, need %d)",
        pair, short_score, long_score, min_strength,
    )
    return None


def _create_signal(
    direction: SignalDirection,
    snap: IndicatorSnapshot,
    adapted: AdaptedStrategy,
    pair: str,
    exchange: str,
    points: int,
    conditions: dict[str, bool],
) -> Signal:
    risk = adapted.strategy.risk
    entry = snap.price
    if direction is SignalDirection.SHORT:
        stop_loss = entry * (1 + risk.stop_loss)
        targets = [entry * (1 - tp) for tp in risk.take_profits]
    else:
        stop_loss = entry * (1 - risk.stop_loss)
        targets = [entry * (1 + tp) for tp in risk.take_profits]

    return Signal(
        pair=pair,
        exchange=exchange,
        direction=direction,
        entry=entry,
        stop_loss=stop_loss,
        take_profits=targets,
        confidence=min(points * CONFIDENCE_PER_POINT, MAX_CONFIDENCE),
        reasoning=[name for name, ok in conditions.items() if ok],
        strategy=adapted.strategy.name,
        timeframe=adapted.strategy.timeframe,
    )

"""Strategy adaptation — scale a base strategy to an instrument category.

``adapt`` is a pure function of its inputs: the base strategy is a frozen
dataclass and a new one is built with ``dataclasses.replace``.
"""

from dataclasses import dataclass, replace

from signalbot.strategy.models import Strategy
from signalbot.strategy.templates import (
    CATEGORY_TEMPLATES,
    TIMEFRAME_COOLDOWN_MULTIPLIER,
    TIMEFRAME_STRENGTH_ADJUSTMENT,
    PairCategory,
)

_RSI_WIDEN_THRESHOLD = 1.2
_RSI_WIDEN_POINTS = 5
_MIN_STRENGTH = 1
_MAX_STRENGTH = 10


@dataclass(frozen=True)
class AdaptedStrategy:
    """A strategy tuned for one category, with its own strength threshold."""

    strategy: Strategy
    min_signal_strength: int
    category: PairCategory


def adjusted_signal_strength(
    base_strength: int,
    category: PairCategory,
    timeframe: str,
) -> int:
    """Return the category/timeframe adjusted threshold, clamped to 1..10."""
    template = CATEGORY_TEMPLATES[category]
    strength = (
        base_strength
        + template.signal_strength_adjustment
        + TIMEFRAME_STRENGTH_ADJUSTMENT.get(timeframe, 0)
    )
    return max(_MIN_STRENGTH, min(_MAX_STRENGTH, strength))


def adapt(base: Strategy, category: PairCategory) -> AdaptedStrategy:
    """Scale *base* risk, volume and RSI parameters for *category*.

    - stop loss × ``stop_loss_multiplier``
    - every take profit × ``take_profit_multiplier``
    - volume threshold × ``volume_weight``
    - RSI band widened by 5 points each side when the category's
      volatility multiplier exceeds 1.2
    """
    template = CATEGORY_TEMPLATES[category]

    risk = replace(
        base.risk,
        stop_loss=base.risk.stop_loss * template.stop_loss_multiplier,
        take_profits=tuple(
            tp * template.take_profit_multiplier for tp in base.risk.take_profits
        ),
    )
    volume = replace(
        base.volume,
        threshold=base.volume.threshold * template.volume_weight,
    )
    rsi = base.rsi
    if template.volatility_multiplier > _RSI_WIDEN_THRESHOLD:
        rsi = replace(
            rsi,
            oversold=rsi.oversold - _RSI_WIDEN_POINTS,
            overbought=rsi.overbought + _RSI_WIDEN_POINTS,
        )

    min_strength = adjusted_signal_strength(
        base.min_signal_strength, category, base.timeframe,
    )
    strategy = replace(
        base,
        risk=risk,
        volume=volume,
        rsi=rsi,
        min_signal_strength=min_strength,
    )
    return AdaptedStrategy(
        strategy=strategy,
        min_signal_strength=min_strength,
        category=category,
    )


def signal_cooldown(base_seconds: float, timeframe: str) -> float:
    """Scale the profile cooldown by the timeframe multiplier."""
    return base_seconds * TIMEFRAME_COOLDOWN_MULTIPLIER.get(timeframe, 1.0)

"""Indicator snapshot — the latest indicator values for one instrument."""

from dataclasses import dataclass
from typing import Optional

from signalbot.exchange.models import Candle
from signalbot.strategy.indicators import (
    average,
    calculate_bollinger,
    calculate_ema,
    calculate_macd,
    calculate_rsi,
)
from signalbot.strategy.models import Strategy


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Latest candle plus every indicator value the scorer reads."""

    open: float
    high: float
    low: float
    close: float
    ema_short: float
    ema_medium: float
    ema_long: float
    rsi: float
    macd: float
    macd_signal: float
    bb_upper: float
    bb_middle: float
    bb_lower: float
    volume: float
    average_volume: float

    @property
    def price(self) -> float:
        return self.close

    @property
    def volume_ratio(self) -> float:
        if self.average_volume <= 0:
            return 0.0
        return self.volume / self.average_volume

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    @property
    def body_size(self) -> float:
        return abs(self.close - self.open)

    def to_dict(self) -> dict:
        return {
            "price": self.price,
            "ema_short": self.ema_short,
            "ema_medium": self.ema_medium,
            "ema_long": self.ema_long,
            "rsi": self.rsi,
            "macd": self.macd,
            "macd_signal": self.macd_signal,
            "bb_upper": self.bb_upper,
            "bb_middle": self.bb_middle,
            "bb_lower": self.bb_lower,
            "volume_ratio": self.volume_ratio,
        }


def build_snapshot(candles: list[Candle], strategy: Strategy) -> Optional[IndicatorSnapshot]:
    """Compute every indicator over *candles* and keep the last values.

    Returns ``None`` when any indicator lacks history.
    """
    if len(candles) < strategy.min_candles:
        return None

    closes = [c.close for c in candles]
    volumes = [c.volume for c in candles]

    ema_short = calculate_ema(closes, strategy.ema.short)
    ema_medium = calculate_ema(closes, strategy.ema.medium)
    ema_long = calculate_ema(closes, strategy.ema.long)
    rsi = calculate_rsi(closes, strategy.rsi.period)
    macd_line, signal_line, _ = calculate_macd(
        closes, strategy.macd.fast, strategy.macd.slow, strategy.macd.signal,
    )
    upper, middle, lower = calculate_bollinger(
        closes, strategy.bollinger.period, strategy.bollinger.std_dev,
    )

    if not all((ema_short, ema_medium, ema_long, rsi, macd_line, upper)):
        return None

    last = candles[-1]
    return IndicatorSnapshot(
        open=last.open,
        high=last.high,
        low=last.low,
        close=last.close,
        ema_short=ema_short[-1],
        ema_medium=ema_medium[-1],
        ema_long=ema_long[-1],
        rsi=rsi[-1],
        macd=macd_line[-1],
        macd_signal=signal_line[-1] if signal_line else 0.0,
        bb_upper=upper[-1],
        bb_middle=middle[-1],
        bb_lower=lower[-1],
        volume=last.volume,
        average_volume=average(volumes[-strategy.volume.average_period:]),
    )

"""Strategy data models — indicator and risk parameters per timeframe."""

from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class EmaSettings:
    short: int
    medium: int
    long: int


@dataclass(frozen=True)
class RsiSettings:
    period: int
    oversold: float
    overbought: float


@dataclass(frozen=True)
class MacdSettings:
    fast: int = 12
    slow: int = 26
    signal: int = 9


@dataclass(frozen=True)
class BollingerSettings:
    period: int = 20
    std_dev: float = 2.0


@dataclass(frozen=True)
class VolumeSettings:
    threshold: float  # current / average volume ratio
    average_period: int = 20


@dataclass(frozen=True)
class RiskSettings:
    stop_loss: float  # fraction of entry, e.g. 0.015 = 1.5 %
    take_profits: tuple[float, ...]


@dataclass(frozen=True)
class Strategy:
    """Complete parameter set the scorer needs for one instrument."""

    name: str
    timeframe: str
    ema: EmaSettings
    rsi: RsiSettings
    volume: VolumeSettings
    risk: RiskSettings
    macd: MacdSettings = field(default_factory=MacdSettings)
    bollinger: BollingerSettings = field(default_factory=BollingerSettings)
    min_signal_strength: int = 5

    @property
    def min_candles(self) -> int:
        """Shortest candle history every indicator of this strategy can use."""
        return max(
            self.ema.long,
            self.rsi.period + 1,
            self.macd.slow,
            self.bollinger.period,
            self.volume.average_period,
        )


# ── Base strategies per timeframe ────────────────────────────────────────

BASE_STRATEGIES: dict[str, Strategy] = {
    "1m": Strategy(
        name="momentum_1m",
        timeframe="1m",
        ema=EmaSettings(3, 7, 14),
        rsi=RsiSettings(9, 25, 75),
        volume=VolumeSettings(2.0),
        risk=RiskSettings(0.008, (0.005, 0.01, 0.015)),
    ),
    "5m": Strategy(
        name="momentum_5m",
        timeframe="5m",
        ema=EmaSettings(5, 12, 21),
        rsi=RsiSettings(12, 30, 70),
        volume=VolumeSettings(1.8),
        risk=RiskSettings(0.012, (0.008, 0.015, 0.025)),
    ),
    "15m": Strategy(
        name="momentum_15m",
        timeframe="15m",
        ema=EmaSettings(7, 14, 21),
        rsi=RsiSettings(14, 30, 70),
        volume=VolumeSettings(1.5),
        risk=RiskSettings(0.015, (0.01, 0.02, 0.035)),
    ),
    "1h": Strategy(
        name="trend_1h",
        timeframe="1h",
        ema=EmaSettings(9, 21, 50),
        rsi=RsiSettings(14, 35, 65),
        volume=VolumeSettings(1.3),
        risk=RiskSettings(0.025, (0.015, 0.03, 0.05)),
    ),
    "4h": Strategy(
        name="trend_4h",
        timeframe="4h",
        ema=EmaSettings(12, 26, 50),
        rsi=RsiSettings(14, 40, 60),
        volume=VolumeSettings(1.2),
        risk=RiskSettings(0.035, (0.025, 0.05, 0.08)),
    ),
}


def get_base_strategy(timeframe: str, min_signal_strength: int = 5) -> Strategy:
    """Look up the base strategy for *timeframe*.

    Raises ``KeyError`` if no strategy is defined for the timeframe.
    """
    if timeframe not in BASE_STRATEGIES:
        raise KeyError(
            f"No strategy for timeframe '{timeframe}'. "
            f"Available: {', '.join(BASE_STRATEGIES.keys())}"
        )
    base = BASE_STRATEGIES[timeframe]
    if base.min_signal_strength == min_signal_strength:
        return base
    return replace(base, min_signal_strength=min_signal_strength)

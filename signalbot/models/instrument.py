"""Per-instrument runtime state owned by the monitoring engine."""

from dataclasses import dataclass
from typing import Optional

from signalbot.strategy.adaptation import AdaptedStrategy
from signalbot.strategy.templates import PairCategory


@dataclass
class InstrumentContext:
    """A watched instrument with its adapted strategy and cooldown state.

    Only the cooldown gate writes ``last_signal_at``; only the engine
    toggles ``active``.
    """

    symbol: str
    exchange: str
    timeframe: str
    adapted: AdaptedStrategy
    signal_cooldown: float  # seconds
    candle_limit: int = 100
    last_signal_at: Optional[float] = None  # epoch seconds
    active: bool = True

    @property
    def category(self) -> PairCategory:
        return self.adapted.category

    @property
    def min_signal_strength(self) -> int:
        return self.adapted.min_signal_strength

    @property
    def key(self) -> str:
        return f"{self.exchange}:{self.symbol}"

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "exchange": self.exchange,
            "timeframe": self.timeframe,
            "category": self.category.value,
            "strategy": self.adapted.strategy.name,
            "min_signal_strength": self.min_signal_strength,
            "signal_cooldown": self.signal_cooldown,
            "last_signal_at": self.last_signal_at,
            "active": self.active,
        }

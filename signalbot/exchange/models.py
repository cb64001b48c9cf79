"""Exchange data models — typed representations of exchange API objects."""

import threading
import time
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Candle:
    """A single candlestick bar.  ``timestamp`` is the open time in epoch ms."""

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    @property
    def body_size(self) -> float:
        return abs(self.close - self.open)


@dataclass(frozen=True)
class Ticker:
    """Latest top-of-book and 24h statistics for a symbol."""

    symbol: str
    bid: float
    ask: float
    last: float
    volume: float
    change: float
    percentage: float
    timestamp: int

    @property
    def spread(self) -> float:
        """Relative bid/ask spread, ``0.0`` when the book is empty."""
        if self.bid <= 0 or self.ask <= 0:
            return 0.0
        return (self.ask - self.bid) / self.ask


@dataclass(frozen=True)
class MarketInfo:
    """Trading rules for one market."""

    symbol: str
    base_asset: str
    quote_asset: str
    min_order_size: float
    max_order_size: Optional[float]
    price_step: float
    quantity_step: float
    is_active: bool


@dataclass(frozen=True)
class Balance:
    """Balance of one asset."""

    asset: str
    free: float
    locked: float

    @property
    def total(self) -> float:
        return self.free + self.locked


# ── Health ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RateLimitPolicy:
    """Provider budget: request weight per window and a polite request rate."""

    max_weight: int
    requests_per_second: float
    window_seconds: float = 60.0
    low_water_fraction: float = 0.1
    health_warning_fraction: float = 0.2
    exhausted_at: int = 10


class ExchangeHealth:
    """Mutable connection statistics for one exchange.

    All mutations take an internal lock so concurrent calls on the same
    exchange never interleave partial updates.  The health score is derived
    on demand and never stored.

    Args:
        policy: The provider's rate-limit budget.
        clock: Returns the current epoch time in seconds.
    """

    _ERROR_WINDOW_SECONDS = 60.0

    def __init__(self, policy: RateLimitPolicy, clock=time.time) -> None:
        self._policy = policy
        self._clock = clock
        self._lock = threading.Lock()
        self.initialized = False
        self.is_connected = False
        self.latency_ms = 0.0
        self.success_count = 0
        self.error_count = 0
        self.last_error_at: Optional[float] = None
        self.last_error: Optional[str] = None
        self.rate_limit_remaining = policy.max_weight
        self.rate_limit_reset_at = clock() + policy.window_seconds

    @property
    def policy(self) -> RateLimitPolicy:
        return self._policy

    # ── Mutations ────────────────────────────────────────────────────────

    def mark_connected(self, latency_ms: float) -> None:
        with self._lock:
            self.initialized = True
            self.is_connected = True
            self.latency_ms = latency_ms

    def mark_disconnected(self) -> None:
        with self._lock:
            self.is_connected = False

    def record_success(self, latency_ms: Optional[float] = None) -> None:
        with self._lock:
            self.success_count += 1
            if latency_ms is not None:
                self.latency_ms = latency_ms

    def record_error(self, exc: BaseException) -> None:
        with self._lock:
            self.error_count += 1
            self.last_error_at = self._clock()
            self.last_error = str(exc) or exc.__class__.__name__

    def update_rate_limit(
        self,
        remaining: Optional[int] = None,
        reset_at: Optional[float] = None,
    ) -> None:
        """Store the budget reported by the most recent provider response."""
        with self._lock:
            if remaining is not None:
                self.rate_limit_remaining = max(0, remaining)
            if reset_at is not None:
                self.rate_limit_reset_at = reset_at

    def consume(self, weight: int = 1) -> None:
        """Charge *weight* against the local budget estimate."""
        with self._lock:
            self._roll_window()
            self.rate_limit_remaining = max(0, self.rate_limit_remaining - weight)

    def _roll_window(self) -> None:
        now = self._clock()
        if now >= self.rate_limit_reset_at:
            self.rate_limit_remaining = self._policy.max_weight
            self.rate_limit_reset_at = now + self._policy.window_seconds

    # ── Derived ──────────────────────────────────────────────────────────

    @property
    def error_rate(self) -> float:
        total = self.success_count + self.error_count
        if total == 0:
            return 0.0
        return self.error_count / total

    def seconds_until_reset(self) -> float:
        return max(0.0, self.rate_limit_reset_at - self._clock())

    def is_approaching_rate_limit(self, fraction: Optional[float] = None) -> bool:
        """True once remaining budget is at or below *fraction* of the maximum."""
        if fraction is None:
            fraction = self._policy.low_water_fraction
        with self._lock:
            self._roll_window()
            return self.rate_limit_remaining / self._policy.max_weight <= fraction

    def is_rate_limit_exhausted(self) -> bool:
        with self._lock:
            self._roll_window()
            return self.rate_limit_remaining <= self._policy.exhausted_at

    def recommended_delay(self) -> float:
        """Seconds to wait before the next call.

        Zero while budget is healthy; once the low-water mark is crossed,
        one second bounded by the time left until the provider resets.
        """
        if not self.is_approaching_rate_limit():
            return 0.0
        return min(1.0, self.seconds_until_reset())

    def health_score(self) -> int:
        """Combine connection state, errors, latency and budget into 0..100."""
        with self._lock:
            if not self.initialized:
                return 0

            score = 100.0
            if not self.is_connected:
                score -= 50

            total = self.success_count + self.error_count
            if total > 0:
                score -= (self.error_count / total) * 30

            if self.latency_ms > 1000:
                score -= 20
            elif self.latency_ms > 500:
                score -= 10

            budget = self.rate_limit_remaining / self._policy.max_weight
            if budget <= self._policy.health_warning_fraction:
                score -= 15

            if (
                self.last_error_at is not None
                and self._clock() - self.last_error_at < self._ERROR_WINDOW_SECONDS
            ):
                score -= 10

        return max(0, round(score))

    def is_healthy(self, threshold: int = 70) -> bool:
        return self.health_score() >= threshold

    def snapshot(self) -> dict:
        """Return a JSON-friendly view for status endpoints."""
        return {
            "initialized": self.initialized,
            "is_connected": self.is_connected,
            "latency_ms": round(self.latency_ms, 1),
            "success_count": self.success_count,
            "error_count": self.error_count,
            "error_rate": round(self.error_rate, 4),
            "last_error": self.last_error,
            "rate_limit_remaining": self.rate_limit_remaining,
            "seconds_until_reset": round(self.seconds_until_reset(), 1),
            "health_score": self.health_score(),
        }

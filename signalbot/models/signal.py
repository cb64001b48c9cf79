"""Signal entity — an advisory trade idea and its delivery lifecycle.

Status moves forward only::

    PENDING ──▶ SENT ──▶ EXECUTED
       │          │
       └──────────┴──▶ FAILED

``version`` is the optimistic-lock counter owned by the signal repository.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class SignalDirection(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class SignalStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"


class SignalStateError(Exception):
    """Raised on an illegal status transition."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Signal:
    """A generated trading signal."""

    pair: str
    exchange: str
    direction: SignalDirection
    entry: float
    stop_loss: float
    take_profits: list[float]
    confidence: float
    reasoning: list[str]
    strategy: str
    timeframe: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utc_now)
    status: SignalStatus = SignalStatus.PENDING
    sent_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    version: int = 0

    # ── Transitions ──────────────────────────────────────────────────────

    def mark_sent(self, now: Optional[datetime] = None) -> None:
        if self.status is not SignalStatus.PENDING:
            raise SignalStateError(
                f"Signal {self.id} cannot be sent from status {self.status.value}"
            )
        self.status = SignalStatus.SENT
        self.sent_at = now or _utc_now()

    def mark_executed(self, now: Optional[datetime] = None) -> None:
        if self.status is not SignalStatus.SENT:
            raise SignalStateError(
                f"Signal {self.id} cannot be executed from status {self.status.value}"
            )
        self.status = SignalStatus.EXECUTED
        self.executed_at = now or _utc_now()

    def mark_failed(self, reason: str = "") -> None:
        if self.status in (SignalStatus.EXECUTED, SignalStatus.FAILED):
            raise SignalStateError(
                f"Signal {self.id} cannot fail from status {self.status.value}"
            )
        self.status = SignalStatus.FAILED
        self.failure_reason = reason or None

    @property
    def is_terminal(self) -> bool:
        return self.status in (SignalStatus.EXECUTED, SignalStatus.FAILED)

    # ── Risk metrics ─────────────────────────────────────────────────────

    def potential_profit(self, target_index: int = 0) -> float:
        """Percent gain if take-profit *target_index* is hit.

        Raises ``IndexError`` for a target the signal does not have.
        """
        if not 0 <= target_index < len(self.take_profits):
            raise IndexError(f"Signal {self.id} has no target {target_index}")
        target = self.take_profits[target_index]
        if self.direction is SignalDirection.LONG:
            return (target - self.entry) / self.entry * 100
        return (self.entry - target) / self.entry * 100

    def potential_loss(self) -> float:
        """Percent loss if the stop is hit."""
        if self.direction is SignalDirection.LONG:
            return (self.entry - self.stop_loss) / self.entry * 100
        return (self.stop_loss - self.entry) / self.entry * 100

    def risk_reward(self) -> float:
        """Reward-to-risk against the second target (first if only one)."""
        risk = abs(self.entry - self.stop_loss)
        if risk == 0 or not self.take_profits:
            return 0.0
        primary = self.take_profits[1] if len(self.take_profits) > 1 else self.take_profits[0]
        return round(abs(primary - self.entry) / risk, 2)

    def strength(self) -> str:
        score = self.confidence + len(self.reasoning) * 0.5
        if score >= 9:
            return "VERY_STRONG"
        if score >= 7:
            return "STRONG"
        if score >= 5:
            return "MODERATE"
        return "WEAK"

    # ── Serialisation ────────────────────────────────────────────────────

    def to_record(self) -> dict:
        """Stable producer record for downstream consumers."""
        return {
            "id": self.id,
            "pair": self.pair,
            "exchange": self.exchange,
            "direction": self.direction.value,
            "entry": self.entry,
            "stop_loss": self.stop_loss,
            "targets": list(self.take_profits),
            "confidence": self.confidence,
            "reasoning": list(self.reasoning),
            "strategy": self.strategy,
            "timeframe": self.timeframe,
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
        }

"""Signal repository — SQLite persistence with optimistic locking."""

import json
import sqlite3
from datetime import datetime
from typing import Optional

from signalbot.models.signal import Signal, SignalDirection, SignalStatus
from signalbot.repos.db import PersistenceConflictError, get_connection


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_signal(row: sqlite3.Row) -> Signal:
    return Signal(
        id=row["id"],
        pair=row["pair"],
        exchange=row["exchange"],
        direction=SignalDirection(row["direction"]),
        entry=row["entry"],
        stop_loss=row["stop_loss"],
        take_profits=json.loads(row["targets"]),
        confidence=row["confidence"],
        reasoning=json.loads(row["reasoning"]),
        strategy=row["strategy"],
        timeframe=row["timeframe"],
        status=SignalStatus(row["status"]),
        failure_reason=row["failure_reason"],
        created_at=_parse(row["created_at"]),
        sent_at=_parse(row["sent_at"]),
        executed_at=_parse(row["executed_at"]),
        version=row["version"],
    )


class SignalRepo:
    """Data access layer for signal records.

    ``save`` inserts unseen signals (``version == 0``) and otherwise
    updates only when the stored version still matches, bumping it by one.
    A mismatch raises ``PersistenceConflictError``.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    # ── Write ────────────────────────────────────────────────────────────

    def save(self, signal: Signal) -> Signal:
        """Persist *signal* and return it with its new ``version``."""
        conn = get_connection(self._db_path)
        try:
            if signal.version == 0:
                try:
                    conn.execute(
                        """
                        INSERT INTO signals
                            (id, pair, exchange, direction, entry, stop_loss,
                             targets, confidence, reasoning, strategy, timeframe,
                             status, failure_reason, created_at, sent_at,
                             executed_at, version)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)
                        """,
                        (
                            signal.id, signal.pair, signal.exchange,
                            signal.direction.value, signal.entry, signal.stop_loss,
                            json.dumps(signal.take_profits), signal.confidence,
                            json.dumps(signal.reasoning), signal.strategy,
                            signal.timeframe, signal.status.value,
                            signal.failure_reason, _iso(signal.created_at),
                            _iso(signal.sent_at), _iso(signal.executed_at),
                        ),
                    )
                except sqlite3.IntegrityError as exc:
                    raise PersistenceConflictError(
                        f"Signal {signal.id} already exists"
                    ) from exc
            else:
                cur = conn.execute(
                    """
                    UPDATE signals
                    SET status = ?, failure_reason = ?, sent_at = ?,
                        executed_at = ?, version = version + 1
                    WHERE id = ? AND version = ?
                    """,
                    (
                        signal.status.value, signal.failure_reason,
                        _iso(signal.sent_at), _iso(signal.executed_at),
                        signal.id, signal.version,
                    ),
                )
                if cur.rowcount == 0:
                    raise PersistenceConflictError(
                        f"Signal {signal.id} version conflict (expected {signal.version})"
                    )
            conn.commit()
        finally:
            conn.close()

        signal.version += 1
        return signal

    # ── Read ─────────────────────────────────────────────────────────────

    def find_by_id(self, signal_id: str) -> Optional[Signal]:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT * FROM signals WHERE id = ?", (signal_id,)
            ).fetchone()
            return _row_to_signal(row) if row else None
        finally:
            conn.close()

    def find_recent(
        self,
        limit: int = 20,
        pair: Optional[str] = None,
        status: Optional[SignalStatus] = None,
    ) -> list[Signal]:
        """Return the newest signals first, optionally filtered."""
        conn = get_connection(self._db_path)
        try:
            conditions: list[str] = []
            params: list = []

            if pair:
                conditions.append("pair = ?")
                params.append(pair)
            if status:
                conditions.append("status = ?")
                params.append(status.value)

            where_clause = ""
            if conditions:
                where_clause = "WHERE " + " AND ".join(conditions)

            rows = conn.execute(
                f"SELECT * FROM signals {where_clause} "
                f"ORDER BY created_at DESC LIMIT ?",
                (*params, limit),
            ).fetchall()
            return [_row_to_signal(row) for row in rows]
        finally:
            conn.close()

    def find_by_status(self, status: SignalStatus) -> list[Signal]:
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM signals WHERE status = ? ORDER BY created_at",
                (status.value,),
            ).fetchall()
            return [_row_to_signal(row) for row in rows]
        finally:
            conn.close()

    def count_by_status(self) -> dict[str, int]:
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS n FROM signals GROUP BY status"
            ).fetchall()
            return {row["status"]: row["n"] for row in rows}
        finally:
            conn.close()

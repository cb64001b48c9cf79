"""Instrument repository — persisted activity flag and cooldown timestamp."""

from datetime import datetime, timezone
from typing import Optional

from signalbot.repos.db import get_connection


class InstrumentRepo:
    """Data access layer for instrument state.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def find_instrument_config(self, exchange: str, symbol: str) -> Optional[dict]:
        """Return the stored row for an instrument, or ``None``."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT * FROM instruments WHERE exchange = ? AND symbol = ?",
                (exchange, symbol),
            ).fetchone()
            if row is None:
                return None
            result = dict(row)
            result["active"] = bool(result["active"])
            return result
        finally:
            conn.close()

    def upsert_instrument(
        self,
        exchange: str,
        symbol: str,
        timeframe: str,
        category: Optional[str] = None,
        active: bool = True,
    ) -> None:
        """Register an instrument, keeping any stored cooldown timestamp."""
        now = datetime.now(timezone.utc).isoformat()
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT INTO instruments
                    (exchange, symbol, timeframe, category, active, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (exchange, symbol) DO UPDATE SET
                    timeframe = excluded.timeframe,
                    category = excluded.category,
                    updated_at = excluded.updated_at
                """,
                (exchange, symbol, timeframe, category, int(active), now),
            )
            conn.commit()
        finally:
            conn.close()

    def update_instrument(
        self,
        exchange: str,
        symbol: str,
        last_signal_at: Optional[float] = None,
        active: Optional[bool] = None,
    ) -> None:
        """Update the cooldown timestamp and/or activity flag."""
        fields: list[str] = []
        params: list = []
        if last_signal_at is not None:
            fields.append("last_signal_at = ?")
            params.append(last_signal_at)
        if active is not None:
            fields.append("active = ?")
            params.append(int(active))
        if not fields:
            return

        fields.append("updated_at = ?")
        params.append(datetime.now(timezone.utc).isoformat())

        conn = get_connection(self._db_path)
        try:
            conn.execute(
                f"UPDATE instruments SET {', '.join(fields)} "
                f"WHERE exchange = ? AND symbol = ?",
                (*params, exchange, symbol),
            )
            conn.commit()
        finally:
            conn.close()

    def deactivate(self, exchange: str, symbol: str) -> None:
        self.update_instrument(exchange, symbol, active=False)

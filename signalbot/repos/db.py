"""SQLite bootstrap — schema migrations and the connection factory."""

import logging
import pathlib
import sqlite3


logger = logging.getLogger("signalbot.repos")

_MIGRATION_DIR = pathlib.Path(__file__).resolve().parent.parent.parent / "db" / "migrations"


class PersistenceConflictError(Exception):
    """A write lost an optimistic-lock race (stale ``version``)."""


def init_db(db_path: str) -> None:
    """Apply every ``db/migrations/*.sql`` script in name order.

    Creates the parent directory of *db_path* when needed.  Scripts only
    use ``IF NOT EXISTS`` so this is safe on every boot.
    """
    if db_path != ":memory:":
        pathlib.Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        for script in sorted(_MIGRATION_DIR.glob("*.sql")):
            conn.executescript(script.read_text(encoding="utf-8"))
            logger.debug("Applied migration %s to %s", script.name, db_path)
    finally:
        conn.close()


def get_connection(db_path: str) -> sqlite3.Connection:
    """Return a new connection with ``sqlite3.Row`` rows.  Caller closes it."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn

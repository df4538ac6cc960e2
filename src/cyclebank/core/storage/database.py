"""SQLite database management for the CycleBank data bank.

The schema is a single encrypted key-value table; the typed layout of each
value is owned by :mod:`cyclebank.core.storage.repository`. Schema changes
are applied as numbered migrations and recorded in ``schema_version``.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

# Ordered (version, script) pairs. Append new versions; never edit old ones.
_MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS kv_store (
            key         TEXT PRIMARY KEY,  -- 'periods', 'dailyLogs', 'symptoms', 'cycleSettings'
            value_enc   TEXT NOT NULL,     -- Fernet token of the JSON envelope
            updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
        );
        """,
    ),
]

SCHEMA_VERSION = _MIGRATIONS[-1][0]

_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class CycleDatabase:
    """SQLite connection owner for the cycle data bank.

    ``":memory:"`` gives a throwaway database for tests; any other path is
    expanded and its parent directory created on :meth:`initialize`.

    Usage::

        with CycleDatabase("~/.cyclebank/cycle.db") as db:
            with db.transaction() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", ("symptoms",))
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def connection(self) -> sqlite3.Connection:
        """The open connection.

        Raises:
            DatabaseError: If :meth:`initialize` has not been called (or the
                database was closed).
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Open the connection and apply pending migrations. Idempotent."""
        if self._conn is not None:
            return

        if self._db_path == ":memory:":
            target = ":memory:"
        else:
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_file)

        self._conn = sqlite3.connect(target)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._migrate()
        logger.info("Cycle database ready: %s (schema v%d)", self._db_path, SCHEMA_VERSION)

    def _migrate(self) -> None:
        conn = self.connection
        conn.executescript(_VERSION_TABLE)
        current = self.get_schema_version()
        for version, script in _MIGRATIONS:
            if version <= current:
                continue
            with self.transaction():
                conn.executescript(script)
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))
            logger.info("Applied schema migration v%d", version)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back and re-raise on any SQLite error."""
        conn = self.connection
        try:
            yield conn
        except sqlite3.Error:
            conn.rollback()
            raise
        conn.commit()

    def get_schema_version(self) -> int:
        row = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] or 0

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Cycle database closed: %s", self._db_path)

    def __enter__(self) -> CycleDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()

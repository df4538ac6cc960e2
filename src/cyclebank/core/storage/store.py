"""Generic asynchronous keyed store, the persistence seam of the cycle engine.

The repository only ever talks to a :class:`KeyValueStore`. Two
implementations ship here:

* :class:`SqliteKeyValueStore`: encrypted values in the SQLite data bank.
* :class:`InMemoryKeyValueStore`: process-local, used when no encryption key
  is configured and in tests.

Reads raise :class:`StoreReadError` when stored bytes cannot be decoded;
writes never raise and report failure through :class:`StoreResult`.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from cyclebank.core.storage.database import CycleDatabase, DatabaseError
from cyclebank.core.storage.encryption import EncryptionError, FieldEncryptor

logger = logging.getLogger(__name__)


class StoreReadError(Exception):
    """Raised when a stored value exists but cannot be decoded."""


@dataclass
class StoreResult:
    """Outcome of a store write."""

    success: bool
    error: str | None = None


@runtime_checkable
class KeyValueStore(Protocol):
    """Abstract asynchronous keyed store for structured records."""

    async def get(self, key: str) -> Any | None:
        """Return the structured value for ``key`` or ``None`` if absent."""
        ...

    async def set(self, key: str, value: Any) -> StoreResult:
        """Replace the value stored under ``key``."""
        ...

    async def remove(self, key: str) -> StoreResult:
        """Delete ``key``; removing an absent key succeeds."""
        ...

    async def remove_many(self, keys: list[str]) -> StoreResult:
        """Delete several keys at once."""
        ...


class SqliteKeyValueStore:
    """KeyValueStore backed by the encrypted ``kv_store`` table.

    Usage::

        db = CycleDatabase(":memory:")
        db.initialize()
        store = SqliteKeyValueStore(db, FieldEncryptor(key))
        await store.set("periods", {"schema_version": 1, "records": []})
    """

    def __init__(self, database: CycleDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    async def get(self, key: str) -> Any | None:
        row = self._db.connection.execute(
            "SELECT value_enc FROM kv_store WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None
        try:
            return self._enc.decrypt(row["value_enc"])
        except EncryptionError as exc:
            raise StoreReadError(f"Stored value for {key!r} is unreadable: {exc}") from exc

    async def set(self, key: str, value: Any) -> StoreResult:
        try:
            token = self._enc.encrypt(value)
            with self._db.transaction() as conn:
                conn.execute(
                    """INSERT INTO kv_store (key, value_enc, updated_at) VALUES (?, ?, ?)
                       ON CONFLICT(key) DO UPDATE SET
                           value_enc = excluded.value_enc,
                           updated_at = excluded.updated_at""",
                    (key, token, datetime.now(timezone.utc).isoformat()),
                )
        except (EncryptionError, DatabaseError, sqlite3.Error) as exc:
            logger.error("Store write error for key %r: %s", key, exc)
            return StoreResult(success=False, error=str(exc))
        return StoreResult(success=True)

    async def remove(self, key: str) -> StoreResult:
        return await self.remove_many([key])

    async def remove_many(self, keys: list[str]) -> StoreResult:
        if not keys:
            return StoreResult(success=True)
        placeholders = ",".join("?" for _ in keys)
        try:
            with self._db.transaction() as conn:
                conn.execute(f"DELETE FROM kv_store WHERE key IN ({placeholders})", keys)
        except (DatabaseError, sqlite3.Error) as exc:
            logger.error("Store remove error for keys %s: %s", keys, exc)
            return StoreResult(success=False, error=str(exc))
        return StoreResult(success=True)

    def rotate_keys(self) -> int:
        """Re-encrypt every stored value under the primary key.

        Rows no configured key can read are left untouched and reported by
        the next :meth:`get`. Returns the number of rows rotated.
        """
        rows = self._db.connection.execute("SELECT key, value_enc FROM kv_store").fetchall()
        rotated: list[tuple[str, str, str]] = []
        for row in rows:
            try:
                token = self._enc.rotate(row["value_enc"])
            except EncryptionError as exc:
                logger.warning("Cannot rotate %r: %s", row["key"], exc)
                continue
            rotated.append((token, datetime.now(timezone.utc).isoformat(), row["key"]))
        with self._db.transaction() as conn:
            conn.executemany(
                "UPDATE kv_store SET value_enc = ?, updated_at = ? WHERE key = ?", rotated
            )
        return len(rotated)


class InMemoryKeyValueStore:
    """Process-local KeyValueStore.

    Values round-trip through JSON on write so the store never shares mutable
    objects with its callers and rejects what a persistent store would reject.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._data[key] = json.dumps(value)

    async def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise StoreReadError(f"Stored value for {key!r} is unreadable: {exc}") from exc

    async def set(self, key: str, value: Any) -> StoreResult:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as exc:
            return StoreResult(success=False, error=str(exc))
        return StoreResult(success=True)

    async def remove(self, key: str) -> StoreResult:
        self._data.pop(key, None)
        return StoreResult(success=True)

    async def remove_many(self, keys: list[str]) -> StoreResult:
        for key in keys:
            self._data.pop(key, None)
        return StoreResult(success=True)

    def put_raw(self, key: str, raw: str) -> None:
        """Store an undecoded string as-is (simulates foreign or damaged data)."""
        self._data[key] = raw

    def keys(self) -> list[str]:
        return sorted(self._data)

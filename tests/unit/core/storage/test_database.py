"""Tests for CycleDatabase: schema creation, versioning, lifecycle."""

from __future__ import annotations

import sqlite3

import pytest

from cyclebank.core.storage.database import SCHEMA_VERSION, CycleDatabase, DatabaseError


class TestInitialization:
    def test_double_initialize_is_idempotent(self):
        db = CycleDatabase(":memory:")
        db.initialize()
        conn1 = db.connection
        db.initialize()
        assert db.connection is conn1
        db.close()

    def test_connection_before_init_raises(self):
        db = CycleDatabase(":memory:")
        with pytest.raises(DatabaseError, match="not initialized"):
            _ = db.connection

    def test_context_manager(self):
        with CycleDatabase(":memory:") as db:
            assert db.connection is not None
        with pytest.raises(DatabaseError):
            _ = db.connection


class TestSchema:
    def test_schema_version_recorded(self, cycle_db: CycleDatabase):
        assert cycle_db.get_schema_version() == SCHEMA_VERSION

    def test_tables_created(self, cycle_db: CycleDatabase):
        cursor = cycle_db.connection.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
        )
        tables = {row[0] for row in cursor.fetchall()}
        assert {"kv_store", "schema_version"} <= tables

    def test_kv_store_key_is_unique(self, cycle_db: CycleDatabase):
        conn = cycle_db.connection
        conn.execute("INSERT INTO kv_store (key, value_enc) VALUES ('periods', 'a')")
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("INSERT INTO kv_store (key, value_enc) VALUES ('periods', 'b')")


class TestFileDatabase:
    def test_creates_parent_directories(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "cycle.db"
        db = CycleDatabase(str(db_path))
        db.initialize()
        assert db_path.exists()
        assert db.get_schema_version() == SCHEMA_VERSION
        db.close()

    def test_reopen_does_not_duplicate_version_rows(self, tmp_path):
        db_path = str(tmp_path / "cycle.db")
        with CycleDatabase(db_path):
            pass
        with CycleDatabase(db_path) as db:
            count = db.connection.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
            assert count == 1


class TestClose:
    def test_double_close_is_safe(self):
        db = CycleDatabase(":memory:")
        db.initialize()
        db.close()
        db.close()


class TestTransaction:
    def test_commit_on_success(self, tmp_path):
        db_path = str(tmp_path / "cycle.db")
        with CycleDatabase(db_path) as db:
            with db.transaction() as conn:
                conn.execute("INSERT INTO kv_store (key, value_enc) VALUES ('periods', 'x')")
        with CycleDatabase(db_path) as db:
            row = db.connection.execute("SELECT value_enc FROM kv_store").fetchone()
            assert row["value_enc"] == "x"

    def test_rollback_on_error(self, cycle_db: CycleDatabase):
        with pytest.raises(sqlite3.IntegrityError):
            with cycle_db.transaction() as conn:
                conn.execute("INSERT INTO kv_store (key, value_enc) VALUES ('periods', 'a')")
                conn.execute("INSERT INTO kv_store (key, value_enc) VALUES ('periods', 'b')")
        count = cycle_db.connection.execute("SELECT COUNT(*) FROM kv_store").fetchone()[0]
        assert count == 0

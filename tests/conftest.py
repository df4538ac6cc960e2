"""Shared test fixtures for CycleBank tests."""

from __future__ import annotations

import asyncio
import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("DB_PATH", str(tmp_path / "cycle.db"))
    monkeypatch.setenv("DAY_BOUNDARY", "local")
    monkeypatch.chdir(tmp_path)

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from cryptography.fernet import Fernet  # noqa: E402

from cyclebank.core.storage.database import CycleDatabase  # noqa: E402
from cyclebank.core.storage.encryption import FieldEncryptor  # noqa: E402
from cyclebank.core.storage.models import Period  # noqa: E402
from cyclebank.core.storage.repository import CycleRepository  # noqa: E402
from cyclebank.core.storage.store import (  # noqa: E402
    InMemoryKeyValueStore,
    SqliteKeyValueStore,
)
from cyclebank.domains.cycle.service import CycleService  # noqa: E402

# Fixed "today" used across domain tests.
TODAY = date(2026, 3, 15)


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def make_period():
    """Factory for Period records with sensible defaults."""
    def _make(start: date, end: date | None = None, id: str | None = None) -> Period:
        return Period(
            id=id or f"p-{start.isoformat()}",
            start_date=start,
            end_date=end,
            created_at="2026-01-01T00:00:00+00:00",
        )
    return _make


@pytest.fixture
def periods_every(make_period):
    """Factory: ``count`` periods spaced ``days`` apart, the newest starting on ``last``."""
    def _make(days: int, count: int, last: date) -> list[Period]:
        return [make_period(last - timedelta(days=days * i)) for i in range(count)]
    return _make


# ---------------------------------------------------------------------------
# Storage fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def encryption_key() -> str:
    return Fernet.generate_key().decode()


@pytest.fixture
def field_encryptor(encryption_key: str) -> FieldEncryptor:
    return FieldEncryptor(encryption_key)


@pytest.fixture
def cycle_db():
    """In-memory cycle database, closed after the test."""
    db = CycleDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def sqlite_store(cycle_db: CycleDatabase, field_encryptor: FieldEncryptor) -> SqliteKeyValueStore:
    return SqliteKeyValueStore(cycle_db, field_encryptor)


@pytest.fixture
def memory_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def repository(memory_store: InMemoryKeyValueStore) -> CycleRepository:
    return CycleRepository(memory_store)


@pytest.fixture
def service(repository: CycleRepository) -> CycleService:
    """A loaded service over an empty in-memory store, with today pinned."""
    svc = CycleService(repository, today_provider=lambda: TODAY)
    _run(svc.load())
    return svc

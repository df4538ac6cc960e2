"""CycleBank MCP Server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging
import sqlite3

from fastmcp import FastMCP

from cyclebank.core.calendar.days import today_provider
from cyclebank.core.config.settings import get_settings
from cyclebank.core.storage.database import CycleDatabase, DatabaseError
from cyclebank.core.storage.encryption import EncryptionError, FieldEncryptor
from cyclebank.core.storage.repository import CycleRepository
from cyclebank.core.storage.store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    SqliteKeyValueStore,
)
from cyclebank.domains.cycle.domain_logic.predictions import PredictionEngine
from cyclebank.domains.cycle.service import CycleService
from cyclebank.domains.cycle.tools.cycle_tools import register_cycle_tools

logger = logging.getLogger(__name__)


def split_keys(value: str) -> list[str]:
    """Parse a comma-separated key list, ignoring blanks."""
    return [k.strip() for k in value.split(",") if k.strip()]


def open_store(
    db_path: str,
    encryption_key: str,
    previous_keys: list[str],
) -> KeyValueStore | None:
    """Open the encrypted SQLite store, or ``None`` if it cannot be used."""
    try:
        encryptor = FieldEncryptor(encryption_key, previous_keys=previous_keys)
        cycle_db = CycleDatabase(db_path)
        cycle_db.initialize()
    except (EncryptionError, DatabaseError, sqlite3.Error, OSError) as exc:
        logger.error("Failed to initialize storage: %s", exc)
        return None

    logger.info(
        "Cycle data bank initialized: %s (schema v%d)",
        db_path,
        cycle_db.get_schema_version(),
    )
    store = SqliteKeyValueStore(cycle_db, encryptor)
    if previous_keys:
        try:
            rotated = store.rotate_keys()
        except sqlite3.Error as exc:
            logger.error("Key rotation failed, data bank left unchanged: %s", exc)
            cycle_db.close()
            return None
        logger.info("Key rotation: re-encrypted %d stored collection(s)", rotated)
    return store


def create_app(
    *,
    service_override: CycleService | None = None,
    store_override: KeyValueStore | None = None,
) -> FastMCP:
    """Create and configure the CycleBank MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Opens the cycle data bank (encrypted SQLite, or in-memory without a key)
    3. Builds the cycle service over the repository
    4. Registers all tools
    """
    settings = get_settings()

    # --- Server instance ---
    server = FastMCP(
        "CycleBank",
        instructions=(
            "CycleBank: personal menstrual cycle tracker. Log periods, daily "
            "entries and symptoms; get cycle statistics, multi-cycle predictions "
            "and an annotated calendar month."
        ),
    )

    # --- Initialize storage (cycle data bank) ---
    persistent = False
    if service_override is not None:
        service = service_override
    else:
        store: KeyValueStore | None = store_override
        if store is None and settings.encryption_key:
            store = open_store(
                settings.db_path,
                settings.encryption_key,
                split_keys(settings.encryption_previous_keys),
            )
            persistent = store is not None
            if store is None:
                logger.warning("Continuing without persistence; data will not be stored")
        elif store is None:
            logger.info(
                "No ENCRYPTION_KEY configured; running without persistence. "
                "Set ENCRYPTION_KEY to enable the cycle data bank."
            )
        if store is None:
            store = InMemoryKeyValueStore()

        service = CycleService(
            CycleRepository(store),
            today_provider=today_provider(settings.day_boundary),
            predictions=PredictionEngine(cycles=settings.prediction_cycles),
        )

    # --- Register tools ---
    @server.tool
    async def health_check() -> dict:
        """Check server health and return basic status information."""
        await service.ensure_loaded()
        return {
            "status": "ok",
            "server": "CycleBank",
            "version": "0.1.0",
            "storage_persistent": persistent,
            "day_boundary": settings.day_boundary,
            "periods_logged": len(service.state.periods),
            "daily_logs": len(service.state.daily_logs),
            "symptoms_logged": len(service.state.symptoms),
        }

    register_cycle_tools(server, service)
    logger.info("Cycle tracking tools registered")

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

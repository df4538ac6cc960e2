"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """CycleBank server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Default to loopback: cycle data is personal health data and there is
    # no auth layer in front of the MCP server.
    cycle_host: str = "127.0.0.1"
    cycle_port: int = 8001
    cycle_log_level: str = "info"
    cycle_allow_insecure_bind: bool = False

    # Storage (cycle data bank)
    db_path: str = "~/.cyclebank/cycle.db"

    # Encryption. Without a key the server runs on an in-memory store.
    encryption_key: str = ""
    # Comma-separated retired keys. Data under them is re-encrypted on startup.
    encryption_previous_keys: str = ""

    # Which midnight starts a calendar day. "local" matches the device-time
    # behavior of the mobile client; "utc" is available pending a product call.
    day_boundary: Literal["local", "utc"] = "local"

    # Number of future cycles projected. The default of 3 is the product
    # behavior; other values are an operator extension.
    prediction_cycles: int = Field(default=3, ge=1, le=12)


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()

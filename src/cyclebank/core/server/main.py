"""CycleBank command line.

    cyclebank-server                  # same as ``serve``
    cyclebank-server serve --port 8001
    cyclebank-server generate-key     # print a fresh ENCRYPTION_KEY
    cyclebank-server status           # what the data bank holds

Also runnable as ``python -m cyclebank.core.server.main``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from ipaddress import ip_address

import click

from cyclebank.core.config.settings import get_settings
from cyclebank.core.server.app import create_app, open_store, split_keys
from cyclebank.core.storage.encryption import FieldEncryptor
from cyclebank.core.storage.repository import CycleRepository

logger = logging.getLogger(__name__)


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


@click.group(invoke_without_command=True)
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """CycleBank: personal menstrual cycle tracker over MCP."""
    level = get_settings().cycle_log_level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(levelname)s: %(name)s: %(message)s",
    )
    if ctx.invoked_subcommand is None:
        ctx.invoke(serve)


@cli.command()
@click.option("--host", default=None, help="Bind address (default: CYCLE_HOST).")
@click.option("--port", type=int, default=None, help="Port (default: CYCLE_PORT).")
def serve(host: str | None, port: int | None) -> None:
    """Start the MCP server with Streamable HTTP transport."""
    settings = get_settings()
    host = host or settings.cycle_host
    port = port or settings.cycle_port
    if not settings.cycle_allow_insecure_bind and not _is_loopback_host(host):
        raise click.ClickException(
            f"Refusing to serve cycle data on non-loopback host {host!r} without an "
            "auth layer. Set CYCLE_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info("Starting CycleBank server on %s:%d", host, port)
    create_app().run(transport="streamable-http", host=host, port=port)


@cli.command("generate-key")
def generate_key() -> None:
    """Print a new Fernet key to use as ENCRYPTION_KEY."""
    click.echo(FieldEncryptor.generate_key())


@cli.command()
def status() -> None:
    """Report what the data bank holds without starting the server."""
    settings = get_settings()
    if not settings.encryption_key:
        raise click.ClickException("ENCRYPTION_KEY is not set; there is no data bank to read.")
    store = open_store(
        settings.db_path,
        settings.encryption_key,
        split_keys(settings.encryption_previous_keys),
    )
    if store is None:
        raise click.ClickException(f"Cannot open the data bank at {settings.db_path}")

    loaded = asyncio.run(CycleRepository(store).load())
    state = loaded.state
    click.echo(json.dumps({
        "db_path": settings.db_path,
        "periods": len(state.periods),
        "daily_logs": len(state.daily_logs),
        "symptoms": len(state.symptoms),
        "collection_errors": loaded.errors,
        "skipped_records": loaded.skipped_records,
    }, indent=2))


def run() -> None:
    cli()


if __name__ == "__main__":
    run()

#!/usr/bin/env python3
"""
Midweave Library CLI
--------------------

Command-line interface for operating the Midweave library.

This module provides the main CLI group and the shared context setup
(configuration, logger, admin check, async storage runner) for all
commands.

Command Structure:
    - Sync (resync, deploy)
    - Browse (list, search, show, stats)
    - Entries (add, update, delete)
    - Analysis (analyze)
    - Transfer (export, import)

Usage:
    # Get general help
    midweave --help

    # Rebuild the cache from the remote store
    midweave resync

    # Delete two entries (asks for the admin password)
    midweave delete 12 14
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import click

from midweave.core.auth import AdminAuth
from midweave.core.config import MidweaveConfig
from midweave.core.exceptions import ConfigurationError
from midweave.core.logging_manager import MidweaveLogger, setup_logger
from midweave.core.paths import LOG_DIR
from midweave.storage import LibraryStorage

T = TypeVar("T")


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to a YAML config file",
)
@click.option(
    "--cache-path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to the cache database (overrides config)",
)
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False),
    default=str(LOG_DIR),
    help="Path to log directory",
)
@click.option(
    "--password",
    envvar="MIDWEAVE_PASSWORD",
    default=None,
    help="Admin password for write commands (prompted when omitted)",
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Show detailed errors and tracebacks",
)
@click.pass_context
def cli(ctx, config_path, cache_path, log_dir, password, verbose):
    """Midweave library management CLI"""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["cache_path"] = Path(cache_path) if cache_path else None
    ctx.obj["log_dir"] = Path(log_dir)
    ctx.obj["password"] = password
    ctx.obj["verbose"] = verbose
    ctx.obj["logger"] = setup_logger(Path(log_dir), "cli")


def get_logger(ctx: click.Context) -> MidweaveLogger:
    return ctx.obj["logger"]


def get_config(ctx: click.Context) -> MidweaveConfig:
    """Load (once) the configuration, applying CLI overrides."""
    if "config" not in ctx.obj:
        config = MidweaveConfig.load(ctx.obj.get("config_path"))
        if ctx.obj.get("cache_path"):
            config.cache.path = ctx.obj["cache_path"]
        ctx.obj["config"] = config
    return ctx.obj["config"]


def require_admin(ctx: click.Context) -> None:
    """
    Check the admin password before a write command.

    Raises:
        ConfigurationError: If the password does not match
    """
    config = get_config(ctx)
    auth = AdminAuth(config.admin_password, logger=get_logger(ctx))
    password = ctx.obj.get("password")
    if password is None:
        password = click.prompt("Admin password", hide_input=True)
    if not auth.login(password):
        raise ConfigurationError("Invalid admin password")


def run_with_storage(
    ctx: click.Context,
    operation: Callable[[LibraryStorage], Awaitable[T]],
) -> T:
    """
    Run an async operation against a LibraryStorage built from the context.

    ctx.obj may carry an httpx transport under 'transport' (used by tests).
    """
    config = get_config(ctx)
    config.validate()
    transport: Optional[Any] = ctx.obj.get("transport")

    async def runner() -> T:
        async with LibraryStorage.from_config(
            config, logger=get_logger(ctx), transport=transport
        ) as storage:
            return await operation(storage)

    return asyncio.run(runner())


# Import and register command modules
# These imports must come after CLI group definition
from .analyze import analyze  # noqa: E402
from .entries import add, delete, update  # noqa: E402
from .library import list_entries, search, show, stats  # noqa: E402
from .sync import deploy, resync  # noqa: E402
from .transfer import export_library, import_library  # noqa: E402

cli.add_command(resync)
cli.add_command(deploy)
cli.add_command(list_entries)
cli.add_command(search)
cli.add_command(show)
cli.add_command(stats)
cli.add_command(add)
cli.add_command(update)
cli.add_command(delete)
cli.add_command(analyze)
cli.add_command(export_library)
cli.add_command(import_library)


if __name__ == "__main__":
    cli(obj={})

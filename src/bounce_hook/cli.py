# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line interface for bounce-hook.

Usage:
    bounce-hook init                      # create tables and indexes
    bounce-hook ingest < message.eml      # MTA pipe transport
    bounce-hook worker                    # delivery loop until SIGINT/SIGTERM
    bounce-hook queue list --status failed_permanent
    bounce-hook queue stats

Global options ``--config`` and ``--log-level`` come before the command.
Logging goes to stderr so ``ingest`` never writes to its pipe.

Example:
    Postfix ``master.cf`` transport::

        bounce-hook unix - n n - - pipe
          flags=q user=bouncehook argv=/usr/local/bin/bounce-hook ingest
"""

from __future__ import annotations

import asyncio
import json
import sys
from datetime import datetime, timezone
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import HookConfig, load_config
from .errors import ConfigError, StoreError
from .hook_db import BounceHookDb
from .ingest import EXIT_STORE_ERROR, run_ingest
from .logger import configure_logging
from .metrics import HookMetrics
from .models import QueueItem, QueueStatus
from .worker import run_worker

console = Console()
err_console = Console(stderr=True)

STATUS_STYLES = {
    QueueStatus.PENDING: "yellow",
    QueueStatus.DELIVERING: "cyan",
    QueueStatus.DELIVERED: "green",
    QueueStatus.FAILED_PERMANENT: "red",
}


def run_async(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    console.print_json(json.dumps(data, indent=2, default=str))


def _format_ts(value: int | None) -> str:
    if not value:
        return "-"
    return datetime.fromtimestamp(value, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


async def _with_db(config: HookConfig, action):
    async with BounceHookDb(config.database_url) as db:
        return await action(db)


def _store_call(config: HookConfig, action):
    """Run ``action(db)`` and turn store failures into exit code 2."""
    try:
        return run_async(_with_db(config, action))
    except (StoreError, ValueError) as exc:
        print_error(str(exc))
        sys.exit(EXIT_STORE_ERROR)


@click.group()
@click.version_option(__version__, prog_name="bounce-hook")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="INI configuration file (overrides the default locations).",
)
@click.option(
    "--log-level",
    envvar="BOUNCE_HOOK_LOG_LEVEL",
    default="INFO",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level (also BOUNCE_HOOK_LOG_LEVEL).",
)
@click.pass_context
def main(ctx: click.Context, config_path: str | None, log_level: str) -> None:
    """Turn bounce notifications into signed webhooks."""
    configure_logging(log_level)
    try:
        ctx.obj = load_config(config_path)
    except ConfigError as exc:
        print_error(str(exc))
        ctx.exit(EXIT_STORE_ERROR)


@main.command()
@click.pass_obj
def init(config: HookConfig) -> None:
    """Create the routes and queue tables (idempotent)."""
    _store_call(config, lambda db: db.check_structure())
    print_success(f"Schema ready on {config.database_url}")


@main.command()
@click.pass_context
def ingest(ctx: click.Context) -> None:
    """Read one raw email from stdin and queue its webhooks.

    Exit status: 0 queued (or nothing to queue), 1 not a usable bounce,
    2 store failure.
    """
    raw = click.get_binary_stream("stdin").read()
    ctx.exit(run_async(run_ingest(raw, ctx.obj)))


@main.command()
@click.pass_obj
def worker(config: HookConfig) -> None:
    """Run the delivery loop until interrupted."""
    metrics = HookMetrics()
    if config.metrics_port:
        metrics.serve(config.metrics_port)
        err_console.print(f"[dim]Metrics on :{config.metrics_port}/metrics[/dim]")
    try:
        run_async(run_worker(config, metrics))
    except (StoreError, ValueError) as exc:
        print_error(str(exc))
        sys.exit(EXIT_STORE_ERROR)


@main.group()
def queue() -> None:
    """Inspect the webhook queue."""


@queue.command("list")
@click.option(
    "--status",
    "-s",
    type=click.Choice([s.value for s in QueueStatus]),
    default=None,
    help="Only rows in this status.",
)
@click.option("--limit", "-n", type=int, default=50, show_default=True, help="Maximum rows.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_obj
def queue_list(config: HookConfig, status: str | None, limit: int, as_json: bool) -> None:
    """List queue rows, newest first."""
    items: list[QueueItem] = _store_call(config, lambda db: db.list_queue(status, limit))

    if as_json:
        print_json([item.model_dump(mode="json", exclude={"secret_token"}) for item in items])
        return

    if not items:
        console.print("[dim]No queue rows found.[/dim]")
        return

    table = Table(title="Webhook queue")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Next attempt")
    table.add_column("URL")
    table.add_column("Last error", style="dim")
    for item in items:
        style = STATUS_STYLES.get(item.status, "white")
        table.add_row(
            str(item.id),
            f"[{style}]{item.status.value}[/{style}]",
            str(item.attempt_count),
            _format_ts(item.next_attempt_at),
            item.url,
            (item.last_error or "")[:60],
        )
    console.print(table)


@queue.command("stats")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_obj
def queue_stats(config: HookConfig, as_json: bool) -> None:
    """Show row counts per status."""
    counts: dict[str, int] = _store_call(config, lambda db: db.count_by_status())

    if as_json:
        print_json(counts)
        return

    table = Table(title="Queue status")
    table.add_column("Status")
    table.add_column("Rows", justify="right")
    for status in QueueStatus:
        style = STATUS_STYLES[status]
        table.add_row(f"[{style}]{status.value}[/{style}]", str(counts.get(status.value, 0)))
    console.print(table)


if __name__ == "__main__":
    main()

# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line interface for ses-dispatcher.

Usage:
    ses-dispatch send --to user@example.com --subject "Hi" --body "<p>Hello</p>"
    ses-dispatch send --to a@example.com --to b@example.com --subject "News" \\
        --body-file newsletter.html --from news@example.com --from-name "News"
    ses-dispatch config
    ses-dispatch serve --port 8000

Credentials are read from ``SESAccess``, ``SESSecret`` and ``SESRegion``.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from .config import DispatcherConfig, load_config, load_server_settings
from .dispatcher import SesDispatcher, create_dispatcher
from .errors import ConfigurationError, ValidationError
from .logger import configure_logging
from .models import DispatchOutcome
from .ses_client import resolve_credentials

console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Execute an async coroutine synchronously from CLI context."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    err_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_json(data: Any) -> None:
    console.print_json(json.dumps(data, indent=2, default=str))


def outcomes_table(outcomes: list[DispatchOutcome]) -> Table:
    table = Table(title="Delivery results")
    table.add_column("To", style="cyan")
    table.add_column("Status")
    table.add_column("Message ID / Error")
    table.add_column("Throttled", justify="center")
    for outcome in outcomes:
        status = "[green]sent[/green]" if outcome.ok else "[red]error[/red]"
        detail = (outcome.message_id or "-") if outcome.ok else str(outcome.error)
        table.add_row(outcome.destination or "-", status, detail, "yes" if outcome.throttled else "")
    return table


async def _send_all(dispatcher: SesDispatcher, recipients: tuple[str, ...], subject: str, body: str,
                    from_address: str | None, from_name: str | None) -> list[DispatchOutcome]:
    outcomes: list[DispatchOutcome] = []
    dispatcher.on_success(outcomes.append)
    dispatcher.on_failure(outcomes.append)
    for target in recipients:
        dispatcher.enqueue(target, subject, body, from_address=from_address, from_display_name=from_name)
    await dispatcher.start()
    dispatcher.run_now()
    try:
        await dispatcher.wait_for_drain()
    finally:
        await dispatcher.stop()
    return outcomes


@click.group()
@click.version_option(package_name="ses-dispatcher")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              envvar="SESD_CONFIG", help="INI configuration file.")
@click.option("--log-level", default=None, help="Logging level (default: SESD_LOG_LEVEL or INFO).")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, log_level: str | None) -> None:
    """Rate-limited Amazon SES dispatcher."""
    configure_logging(log_level)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command("send")
@click.option("--to", "recipients", multiple=True, required=True, help="Recipient address (repeatable).")
@click.option("--subject", "-s", required=True, help="Subject line.")
@click.option("--body", "-b", default=None, help="HTML body.")
@click.option("--body-file", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None,
              help="Read the HTML body from a file.")
@click.option("--from", "from_address", default=None, help="Sender address (default: SESD_DEFAULT_FROM).")
@click.option("--from-name", default=None, help="Sender display name.")
@click.option("--rate-limit", type=int, default=None, help="Messages per second.")
@click.pass_context
def send_cmd(ctx: click.Context, recipients: tuple[str, ...], subject: str, body: str | None,
             body_file: Path | None, from_address: str | None, from_name: str | None,
             rate_limit: int | None) -> None:
    """Send one message to each recipient and wait for the results."""
    if (body is None) == (body_file is None):
        print_error("Provide exactly one of --body or --body-file")
        sys.exit(1)
    html = body if body is not None else body_file.read_text(encoding="utf-8")

    try:
        config = load_config(ctx.obj.get("config_path"), rate_limit=rate_limit)
        dispatcher = create_dispatcher(config)
        outcomes = run_async(_send_all(dispatcher, recipients, subject, html, from_address, from_name))
    except (ConfigurationError, ValidationError) as exc:
        print_error(str(exc))
        sys.exit(1)

    console.print(outcomes_table(outcomes))
    failed = [outcome for outcome in outcomes if not outcome.ok]
    if failed:
        print_error(f"{len(failed)} of {len(outcomes)} messages failed")
        sys.exit(1)
    print_success(f"{len(outcomes)} message(s) sent")


@main.command("config")
@click.pass_context
def config_cmd(ctx: click.Context) -> None:
    """Show the resolved configuration (secrets masked)."""
    config_path = ctx.obj.get("config_path")
    try:
        config: DispatcherConfig = load_config(config_path)
    except ConfigurationError as exc:
        print_error(str(exc))
        sys.exit(1)
    server = load_server_settings(config_path)
    data: dict[str, Any] = {
        "dispatcher": config.as_dict(),
        "server": {"host": server.host, "port": server.port, "api_token": "****" if server.api_token else None},
    }
    try:
        data["ses"] = resolve_credentials().masked()
    except ConfigurationError as exc:
        data["ses"] = {"error": str(exc)}
    print_json(data)


@main.command("serve")
@click.option("--host", "-h", default=None, help="Host to bind to (default: 0.0.0.0).")
@click.option("--port", "-p", type=int, default=None, help="Port to listen on (default: 8000).")
@click.pass_context
def serve_cmd(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the HTTP API with the dispatch loop."""
    from .server import main as serve

    try:
        serve(host=host, port=port, config_path=ctx.obj.get("config_path"))
    except ConfigurationError as exc:
        print_error(str(exc))
        sys.exit(1)


if __name__ == "__main__":
    main()

"""``wsforge run``: execute a WebSocket load test with live terminal output."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from wsforge._internal.config import load_config
from wsforge._internal.errors import ConfigurationError, WsForgeError
from wsforge.engine.runner import run_load_test
from wsforge.metrics.report import render_summary, summary_to_dict, write_json_report

if TYPE_CHECKING:
    from wsforge.metrics.models import RunSummary

console = Console(stderr=True)


def _make_live_table(summary: RunSummary | None) -> Table:
    """Build a Rich table with the current run counters.

    Args:
        summary: Latest live summary, or None before the first tick.

    Returns:
        Formatted Rich Table.
    """
    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    if summary is None:
        table.add_row("Status", "Starting...")
        return table

    table.add_row("Elapsed", f"{summary.duration_seconds:.0f}s")
    table.add_row("Iterations", str(summary.total_iterations))
    table.add_row("Connected", str(summary.successful_connections))
    table.add_row("Failed", str(summary.failed_connections))
    table.add_row("Acknowledged", str(summary.acknowledged_count))
    table.add_row("Messages Received", str(summary.messages_received))
    table.add_row("Check Failures", str(summary.check_failures))
    table.add_row("Errors", str(summary.error_count))
    return table


def run_cmd(
    target_url: str | None = typer.Argument(
        None,
        help="ws:// or wss:// endpoint (default: $WSFORGE_TARGET_URL or ws://localhost:8583).",
        show_default=False,
    ),
    users: int | None = typer.Option(
        None,
        "--users",
        "-u",
        help="Concurrent virtual users (default: $WSFORGE_VUS or 10).",
        show_default=False,
    ),
    duration: str | None = typer.Option(
        None,
        "--duration",
        "-d",
        help="Test duration, e.g. 30s, 1m, 1m30s (default: $WSFORGE_DURATION or 1m).",
        show_default=False,
    ),
    ack_marker: str | None = typer.Option(
        None,
        "--ack-marker",
        help="Substring expected in every server reply (default: ACK).",
        show_default=False,
    ),
    hello_message: str | None = typer.Option(
        None,
        "--hello-message",
        help="Text sent in the hello frame.",
        show_default=False,
    ),
    close_after: float | None = typer.Option(
        None,
        "--close-after",
        help="Seconds each connection stays open (default: 5).",
        show_default=False,
    ),
    ping_interval: float | None = typer.Option(
        None,
        "--ping-interval",
        help="Seconds between ping frames (default: 1).",
        show_default=False,
    ),
    pacing: float | None = typer.Option(
        None,
        "--pacing",
        help="Seconds to wait between iterations (default: 1).",
        show_default=False,
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the JSON summary to this file.",
    ),
    fmt: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Summary format: text or json.",
    ),
    no_preflight: bool = typer.Option(
        False,
        "--no-preflight",
        help="Skip the single probe connection made before the run.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit structured JSON logs.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging, including every received message.",
    ),
) -> None:
    """Execute a WebSocket load test with live terminal output."""
    if fmt not in ("text", "json"):
        msg = f"Unknown format: {fmt}. Choose from: text, json"
        raise typer.BadParameter(msg)

    try:
        config = load_config(
            target_url=target_url,
            virtual_users=users,
            duration=duration,
            ack_marker=ack_marker,
            hello_message=hello_message,
            close_after=close_after,
            ping_interval=ping_interval,
            pacing=pacing,
        )
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=1) from exc

    behavior = config.behavior
    console.print(
        Panel(
            f"[bold]Target:[/bold]   {escape(config.target_url)}\n"
            f"[bold]Users:[/bold]    {config.virtual_users}\n"
            f"[bold]Duration:[/bold] {config.duration_seconds:g}s\n"
            f"[bold]Per connection:[/bold] ping every {behavior.ping_interval:g}s, "
            f"close after {behavior.close_after:g}s, pace {behavior.pacing:g}s, "
            f"expect {escape(repr(behavior.ack_marker))}",
            title="WsForge",
            border_style="cyan",
        )
    )

    log_level = logging.DEBUG if verbose else logging.INFO

    try:
        with Live(
            _make_live_table(None),
            console=console,
            refresh_per_second=2,
            transient=True,
        ) as live:

            def _on_tick(summary: RunSummary) -> None:
                live.update(_make_live_table(summary))

            summary = run_load_test(
                config,
                preflight=not no_preflight,
                on_tick=_on_tick,
                log_level=log_level,
                json_logs=json_logs,
            )
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=1) from exc
    except WsForgeError as exc:
        console.print(f"[red]Load test failed:[/red] {escape(str(exc))}")
        raise typer.Exit(code=1) from exc

    if output is not None:
        path = write_json_report(summary, output)
        console.print(f"Summary written to {escape(str(path))}")

    if fmt == "json":
        typer.echo(json.dumps(summary_to_dict(summary), indent=2))
    else:
        console.print(render_summary(summary))

    console.print("[green]Load test completed.[/green]")

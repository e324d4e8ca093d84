"""``wsforge report``: render a previously saved JSON summary."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from wsforge._internal.errors import WsForgeError
from wsforge.metrics.report import load_json_report, render_summary, summary_to_dict

console = Console(stderr=True)


def report_cmd(
    results_file: Path = typer.Argument(
        ...,
        help="JSON summary written by 'wsforge run --output'.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    fmt: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text or json.",
    ),
) -> None:
    """Render a saved run summary as a table or JSON."""
    if fmt not in ("text", "json"):
        msg = f"Unknown format: {fmt}. Choose from: text, json"
        raise typer.BadParameter(msg)

    try:
        summary = load_json_report(results_file)
    except WsForgeError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=1) from exc

    if fmt == "json":
        typer.echo(json.dumps(summary_to_dict(summary), indent=2))
    else:
        console.print(render_summary(summary, title=f"Run Summary ({results_file.name})"))

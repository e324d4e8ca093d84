"""Main Typer application and entry point for the ``wsforge`` CLI."""

from __future__ import annotations

import typer

from wsforge import __version__
from wsforge.cli.report import report_cmd
from wsforge.cli.run import run_cmd

app = typer.Typer(
    name="wsforge",
    help="Open many concurrent WebSocket clients against a server and check its replies.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run", help="Run a WebSocket load test.")(run_cmd)
app.command("report", help="Render a saved JSON summary.")(report_cmd)


def _version_callback(value: bool) -> None:
    """Print version and exit.

    Args:
        value: True if --version was passed.
    """
    if value:
        typer.echo(f"wsforge {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """WsForge: WebSocket virtual-user load testing."""

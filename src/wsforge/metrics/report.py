"""Structured and human-readable rendering of a RunSummary."""

from __future__ import annotations

import json
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any

from rich.markup import escape
from rich.table import Table

from wsforge._internal.errors import WsForgeError
from wsforge.metrics.models import CheckStats, RunSummary

# Errors listed individually in the text table
MAX_LISTED_ERRORS = 5


def summary_to_dict(summary: RunSummary) -> dict[str, Any]:
    """Convert a summary to a JSON-serializable dict."""
    data = asdict(summary)
    data["checks"] = {
        name: {"passes": c.passes, "fails": c.fails} for name, c in summary.checks.items()
    }
    data["check_failures"] = summary.check_failures
    return data


def _checks_from_dict(raw: Any) -> dict[str, CheckStats]:
    if not isinstance(raw, dict):
        msg = f"Expected 'checks' to be an object, got {type(raw).__name__}"
        raise WsForgeError(msg)

    checks: dict[str, CheckStats] = {}
    for name, counts in raw.items():
        if not isinstance(counts, dict):
            msg = f"Check {name!r} must be an object with passes and fails"
            raise WsForgeError(msg)
        try:
            checks[name] = CheckStats(name, int(counts.get("passes", 0)), int(counts.get("fails", 0)))
        except (TypeError, ValueError) as exc:
            msg = f"Check {name!r} has non-integer counts"
            raise WsForgeError(msg) from exc
    return checks


def summary_from_dict(data: dict[str, Any]) -> RunSummary:
    """Rebuild a summary from ``summary_to_dict`` output.

    Raises:
        WsForgeError: If ``data`` is not a summary mapping.
    """
    if not isinstance(data, dict):
        msg = f"Expected a summary object, got {type(data).__name__}"
        raise WsForgeError(msg)

    known = {f.name for f in fields(RunSummary)}
    kwargs = {k: v for k, v in data.items() if k in known and k != "checks"}
    return RunSummary(**kwargs, checks=_checks_from_dict(data.get("checks", {})))


def write_json_report(summary: RunSummary, path: str | Path) -> Path:
    """Write ``summary`` as indented JSON, creating parent directories.

    Returns:
        The written path.
    """
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(summary_to_dict(summary), indent=2) + "\n", encoding="utf-8")
    return out


def load_json_report(path: str | Path) -> RunSummary:
    """Load a summary previously written by ``write_json_report``.

    Raises:
        WsForgeError: If the file is not valid summary JSON.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        msg = f"{path} is not valid JSON: {exc}"
        raise WsForgeError(msg) from exc
    except UnicodeDecodeError as exc:
        msg = f"{path} is not UTF-8 text: {exc}"
        raise WsForgeError(msg) from exc
    return summary_from_dict(data)


def render_summary(summary: RunSummary, title: str = "Test Complete") -> Table:
    """Build a Rich table describing the run.

    Args:
        summary: The summary to render.
        title: Table title.

    Returns:
        Formatted Rich Table.
    """
    table = Table(title=title, show_header=True, header_style="bold green", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Target", summary.target_url)
    table.add_row("Virtual Users", str(summary.virtual_users))
    table.add_row("Duration", f"{summary.duration_seconds:.1f}s")
    table.add_row("Iterations", str(summary.total_iterations))
    table.add_row("Successful Connections", str(summary.successful_connections))
    table.add_row("Failed Connections", str(summary.failed_connections))
    table.add_row("Acknowledged Iterations", str(summary.acknowledged_count))
    table.add_row("Messages Sent", str(summary.messages_sent))
    table.add_row("Messages Received", str(summary.messages_received))
    table.add_row("Connect p50", f"{summary.connect_latency_p50:.1f}ms")
    table.add_row("Connect p95", f"{summary.connect_latency_p95:.1f}ms")
    table.add_row("Connect max", f"{summary.connect_latency_max:.1f}ms")

    for check in summary.checks.values():
        mark = "[green]✓[/green]" if check.fails == 0 else "[red]✗[/red]"
        table.add_row(
            f"{mark} {check.name}",
            f"{check.pass_rate * 100:.1f}% ({check.passes} ✓ / {check.fails} ✗)",
        )

    table.add_row("Errors", str(summary.error_count))
    for error in summary.errors[:MAX_LISTED_ERRORS]:
        table.add_row("", f"[red]{escape(error)}[/red]")
    if summary.error_count > MAX_LISTED_ERRORS:
        table.add_row("", f"... and {summary.error_count - MAX_LISTED_ERRORS} more")

    return table

"""Tests for summary serialization and rendering."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from rich.console import Console
from rich.table import Table

from wsforge._internal.errors import WsForgeError
from wsforge.metrics.models import ACK_CHECK, CONNECT_CHECK, CheckStats, RunSummary
from wsforge.metrics.report import (
    MAX_LISTED_ERRORS,
    load_json_report,
    render_summary,
    summary_from_dict,
    summary_to_dict,
    write_json_report,
)

if TYPE_CHECKING:
    from pathlib import Path


def _make_summary(errors: list[str] | None = None) -> RunSummary:
    return RunSummary(
        target_url="ws://localhost:8583",
        virtual_users=10,
        duration_seconds=60.2,
        total_iterations=100,
        successful_connections=98,
        failed_connections=2,
        acknowledged_count=97,
        messages_sent=588,
        messages_received=580,
        errors=errors if errors is not None else ["ClientConnectorError: refused"] * 2,
        checks={
            CONNECT_CHECK: CheckStats(CONNECT_CHECK, passes=98, fails=2),
            ACK_CHECK: CheckStats(ACK_CHECK, passes=578, fails=2),
        },
        connect_latency_p50=1.5,
        connect_latency_p95=4.0,
    )


def _render_text(table: Table) -> str:
    console = Console(width=160, record=True)
    console.print(table)
    return console.export_text()


class TestSummaryDict:
    def test_to_dict_is_json_serializable(self):
        data = summary_to_dict(_make_summary())
        text = json.dumps(data)
        assert '"total_iterations": 100' in text
        assert data["checks"][ACK_CHECK] == {"passes": 578, "fails": 2}
        assert data["check_failures"] == 4

    def test_from_dict_restores_summary(self):
        original = _make_summary()
        restored = summary_from_dict(summary_to_dict(original))
        assert restored == original

    def test_from_dict_ignores_unknown_keys(self):
        restored = summary_from_dict({"total_iterations": 3, "extra": True})
        assert restored.total_iterations == 3

    def test_from_dict_rejects_non_mapping(self):
        with pytest.raises(WsForgeError):
            summary_from_dict([1, 2, 3])  # type: ignore[arg-type]

    @pytest.mark.parametrize(
        "checks",
        [
            [],
            {"connect": 3},
            {"connect": {"passes": "many"}},
        ],
    )
    def test_from_dict_rejects_malformed_checks(self, checks: object):
        with pytest.raises(WsForgeError, match="[Cc]heck"):
            summary_from_dict({"total_iterations": 1, "checks": checks})


class TestJsonReport:
    def test_write_and_load(self, tmp_path: Path):
        path = write_json_report(_make_summary(), tmp_path / "out" / "summary.json")
        assert path.exists()
        assert load_json_report(path).successful_connections == 98

    def test_load_invalid_json(self, tmp_path: Path):
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")
        with pytest.raises(WsForgeError, match="not valid JSON"):
            load_json_report(bad)

    def test_load_non_utf8_file(self, tmp_path: Path):
        bad = tmp_path / "latin1.json"
        bad.write_bytes(b"\xff\xfe{}")
        with pytest.raises(WsForgeError, match="not UTF-8"):
            load_json_report(bad)


class TestRenderSummary:
    def test_contains_counts_and_checks(self):
        text = _render_text(render_summary(_make_summary()))
        assert "Test Complete" in text
        assert "Iterations" in text
        assert "100" in text
        assert CONNECT_CHECK in text
        assert ACK_CHECK in text
        assert "ClientConnectorError: refused" in text

    def test_truncates_long_error_lists(self):
        errors = [f"error {i}" for i in range(MAX_LISTED_ERRORS + 3)]
        text = _render_text(render_summary(_make_summary(errors)))
        assert "and 3 more" in text
        assert f"error {MAX_LISTED_ERRORS + 2}" not in text

    def test_error_text_with_brackets_is_not_markup(self):
        text = _render_text(render_summary(_make_summary(["bad [bold]frame[/bold]"])))
        assert "bad [bold]frame[/bold]" in text

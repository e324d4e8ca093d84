"""Drive a load test from Python instead of the CLI.

Ten virtual users for one minute: each sends a hello frame, pings every
second, expects "ACK" in every reply, closes after five seconds and
waits one second before reconnecting. Run it with:

    python examples/programmatic_run.py
"""

from __future__ import annotations

from rich.console import Console

from wsforge import ConnectionBehavior, build_config, run_load_test
from wsforge.metrics.report import render_summary, write_json_report


def main() -> None:
    config = build_config(
        target_url="ws://localhost:8583",
        virtual_users=10,
        duration="1m",
        behavior=ConnectionBehavior(hello_message="from wsforge example"),
    )
    summary = run_load_test(config)

    Console().print(render_summary(summary))
    write_json_report(summary, "results/summary.json")


if __name__ == "__main__":
    main()

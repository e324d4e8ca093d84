"""Thread-safe accumulation of iteration outcomes into a run summary."""

from __future__ import annotations

import threading

import numpy as np

from wsforge.metrics.models import (
    ACK_CHECK,
    CONNECT_CHECK,
    CheckStats,
    IterationOutcome,
    RunSummary,
)


def _compute_latency_stats(
    latencies: list[float],
) -> tuple[float, float, float, float, float, float]:
    """Compute handshake latency statistics.

    Args:
        latencies: Latency values in milliseconds.

    Returns:
        Tuple of (min, avg, p50, p95, p99, max).
    """
    if not latencies:
        return (0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

    arr = np.array(latencies, dtype=np.float64)
    p50, p95, p99 = np.percentile(arr, [50.0, 95.0, 99.0])

    return (
        float(np.min(arr)),
        float(np.mean(arr)),
        float(p50),
        float(p95),
        float(p99),
        float(np.max(arr)),
    )


class SummaryAccumulator:
    """Merges ``IterationOutcome`` objects into running totals.

    Virtual users call ``record`` concurrently; a ``threading.Lock``
    serializes every update so no increment is lost, whether the writers
    are asyncio tasks or threads. ``snapshot`` returns an independent
    ``RunSummary`` that later updates do not affect.

    Attributes:
        target_url: Endpoint recorded in every snapshot.
        virtual_users: Configured virtual user count recorded in snapshots.
    """

    def __init__(self, target_url: str = "", virtual_users: int = 0) -> None:
        self.target_url = target_url
        self.virtual_users = virtual_users
        self._lock = threading.Lock()
        self._total_iterations = 0
        self._successful = 0
        self._failed = 0
        self._acknowledged = 0
        self._messages_sent = 0
        self._messages_received = 0
        self._errors: list[str] = []
        self._checks: dict[str, CheckStats] = {
            CONNECT_CHECK: CheckStats(CONNECT_CHECK),
            ACK_CHECK: CheckStats(ACK_CHECK),
        }
        self._connect_latencies: list[float] = []

    def record(self, outcome: IterationOutcome) -> None:
        """Merge one completed iteration into the totals.

        Args:
            outcome: The finished iteration's outcome.
        """
        with self._lock:
            self._total_iterations += 1
            self._messages_sent += outcome.messages_sent
            self._messages_received += outcome.messages_received

            connect = self._checks[CONNECT_CHECK]
            if outcome.connected:
                self._successful += 1
                connect.passes += 1
                self._connect_latencies.append(outcome.connect_latency_ms)
            else:
                self._failed += 1
                connect.fails += 1

            if outcome.acknowledged_message_seen:
                self._acknowledged += 1

            ack = self._checks[ACK_CHECK]
            ack.passes += outcome.ack_checks_passed
            ack.fails += outcome.ack_checks_failed

            if outcome.error is not None:
                self._errors.append(outcome.error)

    def snapshot(self, duration_seconds: float = 0.0) -> RunSummary:
        """Return a copy of the current totals.

        Args:
            duration_seconds: Elapsed run time to stamp on the summary.

        Returns:
            A RunSummary detached from the accumulator's internal state.
        """
        with self._lock:
            latencies = list(self._connect_latencies)
            summary = RunSummary(
                target_url=self.target_url,
                virtual_users=self.virtual_users,
                duration_seconds=duration_seconds,
                total_iterations=self._total_iterations,
                successful_connections=self._successful,
                failed_connections=self._failed,
                acknowledged_count=self._acknowledged,
                messages_sent=self._messages_sent,
                messages_received=self._messages_received,
                errors=list(self._errors),
                checks={
                    name: CheckStats(name, stats.passes, stats.fails)
                    for name, stats in self._checks.items()
                },
            )

        (
            summary.connect_latency_min,
            summary.connect_latency_avg,
            summary.connect_latency_p50,
            summary.connect_latency_p95,
            summary.connect_latency_p99,
            summary.connect_latency_max,
        ) = _compute_latency_stats(latencies)
        return summary

    def __len__(self) -> int:
        """Return the number of recorded outcomes."""
        with self._lock:
            return self._total_iterations

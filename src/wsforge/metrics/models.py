"""Outcome and summary dataclasses for WsForge."""

from __future__ import annotations

from dataclasses import dataclass, field

CONNECT_CHECK = "WebSocket connection successful"
ACK_CHECK = "message contains expected string"

__all__ = [
    "ACK_CHECK",
    "CONNECT_CHECK",
    "CheckStats",
    "IterationOutcome",
    "RunSummary",
]


@dataclass(frozen=True)
class IterationOutcome:
    """Result of one connect-interact-close cycle of a virtual user.

    Created once when the iteration ends and never mutated afterwards.

    Attributes:
        connected: Whether the opening handshake succeeded (HTTP 101).
        acknowledged_message_seen: Whether any received message contained
            the acknowledgment marker.
        error: First unexpected error of the iteration, or None.
        vu_id: Virtual user that ran the iteration.
        iteration: Zero-based iteration index within that virtual user.
        status_code: 101 on success, the handshake status on rejection,
            0 when no HTTP response was received.
        connect_latency_ms: Time spent on the opening handshake.
        messages_sent: Frames sent (hello plus pings).
        messages_received: Frames received from the server.
        ack_checks_passed: Received messages that contained the marker.
        ack_checks_failed: Received messages that did not.
    """

    connected: bool
    acknowledged_message_seen: bool = False
    error: str | None = None
    vu_id: int = 0
    iteration: int = 0
    status_code: int = 0
    connect_latency_ms: float = 0.0
    messages_sent: int = 0
    messages_received: int = 0
    ack_checks_passed: int = 0
    ack_checks_failed: int = 0


@dataclass
class CheckStats:
    """Pass/fail counters for one named check."""

    name: str
    passes: int = 0
    fails: int = 0

    @property
    def total(self) -> int:
        return self.passes + self.fails

    @property
    def pass_rate(self) -> float:
        """Fraction of evaluations that passed (1.0 when never evaluated)."""
        return self.passes / self.total if self.total else 1.0


@dataclass
class RunSummary:
    """Aggregate result of a load test run.

    Attributes:
        target_url: Endpoint the run targeted.
        virtual_users: Configured number of virtual users.
        duration_seconds: Wall-clock duration of the run.
        total_iterations: Completed iterations across all virtual users.
        successful_connections: Iterations whose handshake succeeded.
        failed_connections: Iterations whose handshake failed.
        acknowledged_count: Iterations that saw the marker at least once.
        messages_sent: Frames sent across all iterations.
        messages_received: Frames received across all iterations.
        errors: Unexpected errors in the order they were recorded.
        checks: Pass/fail counters keyed by check name.
        connect_latency_min: Minimum handshake latency (ms).
        connect_latency_avg: Mean handshake latency (ms).
        connect_latency_p50: 50th percentile handshake latency (ms).
        connect_latency_p95: 95th percentile handshake latency (ms).
        connect_latency_p99: 99th percentile handshake latency (ms).
        connect_latency_max: Maximum handshake latency (ms).
    """

    target_url: str = ""
    virtual_users: int = 0
    duration_seconds: float = 0.0
    total_iterations: int = 0
    successful_connections: int = 0
    failed_connections: int = 0
    acknowledged_count: int = 0
    messages_sent: int = 0
    messages_received: int = 0
    errors: list[str] = field(default_factory=list)
    checks: dict[str, CheckStats] = field(default_factory=dict)
    connect_latency_min: float = 0.0
    connect_latency_avg: float = 0.0
    connect_latency_p50: float = 0.0
    connect_latency_p95: float = 0.0
    connect_latency_p99: float = 0.0
    connect_latency_max: float = 0.0

    @property
    def check_failures(self) -> int:
        """Total failed check evaluations across all checks."""
        return sum(c.fails for c in self.checks.values())

    @property
    def error_count(self) -> int:
        return len(self.errors)

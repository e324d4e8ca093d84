"""Run configuration for WsForge."""

from __future__ import annotations

import math
import os
import re
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from wsforge._internal.errors import ConfigurationError

DEFAULT_TARGET_URL = "ws://localhost:8583"
DEFAULT_VIRTUAL_USERS = 10
DEFAULT_DURATION = "1m"
DEFAULT_ACK_MARKER = "ACK"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


@dataclass(frozen=True)
class ConnectionBehavior:
    """What every virtual user does with each connection it opens.

    Attributes:
        hello_message: Text placed in the ``message`` field of the hello frame.
        ping_interval: Seconds between ping frames while the socket is open.
        ack_marker: Substring every server reply is checked for.
        close_after: Seconds the socket stays open before it is closed locally.
        pacing: Seconds to wait after closing before the next iteration.
        connect_timeout: Seconds allowed for the opening handshake.
        shutdown_grace: Seconds allowed for connections to close after a
            forced abort.
    """

    hello_message: str = "from wsforge"
    ping_interval: float = 1.0
    ack_marker: str = DEFAULT_ACK_MARKER
    close_after: float = 5.0
    pacing: float = 1.0
    connect_timeout: float = 10.0
    shutdown_grace: float = 2.0


@dataclass(frozen=True)
class TestConfig:
    """Immutable configuration for one load test run.

    Attributes:
        target_url: ``ws://`` or ``wss://`` endpoint under test.
        virtual_users: Number of concurrent virtual users (> 0).
        duration_seconds: Wall-clock time during which iterations may start.
        behavior: Per-connection behavior shared by all virtual users.
    """

    __test__ = False  # not a pytest test class

    target_url: str
    virtual_users: int
    duration_seconds: float
    behavior: ConnectionBehavior = field(default_factory=ConnectionBehavior)


def parse_duration(value: str | float) -> float:
    """Parse a duration into seconds.

    Accepts plain numbers (seconds) and compound unit strings in the
    ``500ms``, ``30s``, ``1m``, ``1m30s``, ``1h`` style.

    Args:
        value: Number of seconds or a duration string.

    Returns:
        Duration in seconds (always > 0).

    Raises:
        ConfigurationError: If the value cannot be parsed or is not positive.
    """
    if isinstance(value, bool):
        msg = f"Invalid duration: {value!r}"
        raise ConfigurationError(msg)

    if isinstance(value, int | float):
        seconds = float(value)
    else:
        text = value.strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            seconds = _parse_unit_string(text)

    if not math.isfinite(seconds) or seconds <= 0:
        msg = f"Duration must be positive, got: {value!r}"
        raise ConfigurationError(msg)
    return seconds


def _parse_unit_string(text: str) -> float:
    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if pos == 0 or pos != len(text):
        msg = f"Invalid duration: {text!r} (expected e.g. '30s', '1m', '1m30s', '500ms')"
        raise ConfigurationError(msg)
    return total


def _validate_target_url(url: str) -> str:
    parts = urlsplit(url.strip())
    if parts.scheme not in ("ws", "wss"):
        msg = f"Target URL must use ws:// or wss://, got: {url!r}"
        raise ConfigurationError(msg)
    if not parts.hostname:
        msg = f"Target URL has no host: {url!r}"
        raise ConfigurationError(msg)
    return url.strip()


def build_config(
    target_url: str,
    virtual_users: int,
    duration: str | float,
    behavior: ConnectionBehavior | None = None,
) -> TestConfig:
    """Validate inputs and build a ``TestConfig``.

    Args:
        target_url: ``ws://`` or ``wss://`` endpoint.
        virtual_users: Number of concurrent virtual users.
        duration: Test duration, seconds or a duration string.
        behavior: Per-connection behavior. Defaults to ``ConnectionBehavior()``.

    Returns:
        Validated configuration.

    Raises:
        ConfigurationError: If any value is invalid.
    """
    if isinstance(virtual_users, bool) or not isinstance(virtual_users, int):
        msg = f"virtual_users must be an integer, got: {virtual_users!r}"
        raise ConfigurationError(msg)
    if virtual_users < 1:
        msg = f"virtual_users must be >= 1, got: {virtual_users}"
        raise ConfigurationError(msg)

    behavior = behavior or ConnectionBehavior()
    for name in ("ping_interval", "close_after", "connect_timeout", "shutdown_grace"):
        if getattr(behavior, name) <= 0:
            msg = f"{name} must be positive, got: {getattr(behavior, name)}"
            raise ConfigurationError(msg)
    if behavior.pacing < 0:
        msg = f"pacing must be >= 0, got: {behavior.pacing}"
        raise ConfigurationError(msg)
    if not behavior.ack_marker:
        msg = "ack_marker must not be empty"
        raise ConfigurationError(msg)

    return TestConfig(
        target_url=_validate_target_url(target_url),
        virtual_users=virtual_users,
        duration_seconds=parse_duration(duration),
        behavior=behavior,
    )


def load_config(
    *,
    target_url: str | None = None,
    virtual_users: int | None = None,
    duration: str | float | None = None,
    ack_marker: str | None = None,
    hello_message: str | None = None,
    close_after: float | None = None,
    ping_interval: float | None = None,
    pacing: float | None = None,
) -> TestConfig:
    """Load configuration from explicit values, the environment, and defaults.

    Explicit (non-None) arguments win over environment variables, which
    win over the built-in defaults.

    Environment variables:
        WSFORGE_TARGET_URL: Target endpoint (default: ws://localhost:8583).
        WSFORGE_VUS: Virtual user count (default: 10).
        WSFORGE_DURATION: Test duration (default: 1m).
        WSFORGE_ACK_MARKER: Acknowledgment marker (default: ACK).

    Returns:
        Validated TestConfig.

    Raises:
        ConfigurationError: If any resolved value is invalid.
    """
    if virtual_users is None:
        vus_str = os.environ.get("WSFORGE_VUS", str(DEFAULT_VIRTUAL_USERS))
        try:
            virtual_users = int(vus_str)
        except ValueError:
            msg = f"WSFORGE_VUS must be an integer, got: {vus_str!r}"
            raise ConfigurationError(msg) from None

    defaults = ConnectionBehavior()
    behavior = ConnectionBehavior(
        hello_message=hello_message if hello_message is not None else defaults.hello_message,
        ping_interval=ping_interval if ping_interval is not None else defaults.ping_interval,
        ack_marker=(
            ack_marker
            if ack_marker is not None
            else os.environ.get("WSFORGE_ACK_MARKER", DEFAULT_ACK_MARKER)
        ),
        close_after=close_after if close_after is not None else defaults.close_after,
        pacing=pacing if pacing is not None else defaults.pacing,
    )

    return build_config(
        target_url=(
            target_url
            if target_url is not None
            else os.environ.get("WSFORGE_TARGET_URL", DEFAULT_TARGET_URL)
        ),
        virtual_users=virtual_users,
        duration=(
            duration
            if duration is not None
            else os.environ.get("WSFORGE_DURATION", DEFAULT_DURATION)
        ),
        behavior=behavior,
    )

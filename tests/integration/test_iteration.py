"""Integration tests for a single virtual-user iteration."""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

import pytest

from wsforge._internal.config import ConnectionBehavior, build_config
from wsforge.engine.iteration import run_iteration
from wsforge.transport.ws_client import WsClient

if TYPE_CHECKING:
    from tests.conftest import WsServer


async def _run_once(url: str, behavior: ConnectionBehavior):
    config = build_config(url, 1, 10, behavior)
    async with WsClient(connect_timeout=behavior.connect_timeout) as client:
        return await run_iteration(client, config, vu_id=7, iteration=3)


@pytest.fixture
def wsforge_caplog(caplog: pytest.LogCaptureFixture):
    """Capture wsforge records even after setup_logging stops propagation."""
    logger = logging.getLogger("wsforge")
    logger.addHandler(caplog.handler)
    yield caplog
    logger.removeHandler(caplog.handler)


@pytest.mark.timeout(15)
class TestRunIteration:
    async def test_ack_server_passes_every_check(
        self, ws_server: WsServer, fast_behavior: ConnectionBehavior
    ):
        """A server replying ACK-12345 to every frame yields no check failures."""
        outcome = await _run_once(f"{ws_server.url}/ack", fast_behavior)

        assert outcome.connected is True
        assert outcome.status_code == 101
        assert outcome.acknowledged_message_seen is True
        assert outcome.ack_checks_failed == 0
        assert outcome.ack_checks_passed >= 1
        assert outcome.error is None
        assert outcome.vu_id == 7
        assert outcome.iteration == 3

    async def test_hello_then_pings(self, ws_server: WsServer, fast_behavior: ConnectionBehavior):
        outcome = await _run_once(f"{ws_server.url}/silent", fast_behavior)

        frames = [json.loads(f) for f in ws_server.frames]
        assert frames[0] == {"event": "hello", "message": "from tests"}
        pings = frames[1:]
        # 0.35s open with a 0.1s interval
        assert len(pings) >= 2
        assert all(p["event"] == "ping" for p in pings)
        assert all(isinstance(p["timestamp"], int) for p in pings)
        assert outcome.messages_sent == len(frames)

    async def test_silent_server_counts_as_connected(
        self, ws_server: WsServer, fast_behavior: ConnectionBehavior
    ):
        """No marker ever received: no acknowledgment, still a successful connection."""
        outcome = await _run_once(f"{ws_server.url}/silent", fast_behavior)

        assert outcome.connected is True
        assert outcome.acknowledged_message_seen is False
        assert outcome.messages_received == 0
        assert outcome.error is None

    async def test_missing_marker_is_check_failure_not_error(
        self, ws_server: WsServer, fast_behavior: ConnectionBehavior
    ):
        outcome = await _run_once(f"{ws_server.url}/noack", fast_behavior)

        assert outcome.connected is True
        assert outcome.acknowledged_message_seen is False
        assert outcome.ack_checks_failed >= 1
        assert outcome.ack_checks_passed == 0
        assert outcome.error is None

    async def test_custom_marker(self, ws_server: WsServer, fast_behavior: ConnectionBehavior):
        behavior = ConnectionBehavior(
            ack_marker="NOPE",
            ping_interval=fast_behavior.ping_interval,
            close_after=fast_behavior.close_after,
        )
        outcome = await _run_once(f"{ws_server.url}/noack", behavior)
        assert outcome.acknowledged_message_seen is True
        assert outcome.ack_checks_failed == 0

    async def test_server_close_after_handshake(
        self, ws_server: WsServer, fast_behavior: ConnectionBehavior
    ):
        """Immediate server close: connected, no acknowledgment, no error."""
        start = time.monotonic()
        outcome = await _run_once(f"{ws_server.url}/close", fast_behavior)
        elapsed = time.monotonic() - start

        assert outcome.connected is True
        assert outcome.acknowledged_message_seen is False
        assert outcome.error is None
        assert elapsed < 2.0

    async def test_socket_closed_after_budget(self, ws_server: WsServer):
        behavior = ConnectionBehavior(ping_interval=0.1, close_after=0.5)
        start = time.monotonic()
        outcome = await _run_once(f"{ws_server.url}/ack", behavior)
        elapsed = time.monotonic() - start

        assert outcome.connected is True
        assert 0.5 <= elapsed < 2.0

    async def test_rejected_handshake_fails_without_retry(
        self, ws_server: WsServer, fast_behavior: ConnectionBehavior
    ):
        start = time.monotonic()
        outcome = await _run_once(f"{ws_server.url}/reject", fast_behavior)

        assert outcome.connected is False
        assert outcome.status_code == 403
        assert outcome.error is not None
        assert "403" in outcome.error
        assert outcome.messages_sent == 0
        assert time.monotonic() - start < fast_behavior.close_after

    async def test_refused_connection(self, unused_ws_url: str, fast_behavior: ConnectionBehavior):
        outcome = await _run_once(unused_ws_url, fast_behavior)

        assert outcome.connected is False
        assert outcome.status_code == 0
        assert outcome.error is not None

    async def test_dropped_connection_is_recorded_as_error(
        self,
        ws_server: WsServer,
        fast_behavior: ConnectionBehavior,
        wsforge_caplog: pytest.LogCaptureFixture,
    ):
        """A peer vanishing without a close frame is a transport error, not a clean close."""
        outcome = await _run_once(f"{ws_server.url}/drop", fast_behavior)

        assert outcome.connected is True
        assert outcome.error is not None
        warnings = [
            r
            for r in wsforge_caplog.records
            if r.levelno == logging.WARNING and r.name == "wsforge.engine.iteration"
        ]
        assert warnings
        assert "unexpected error" in warnings[0].getMessage()

    async def test_protocol_error_reports_the_cause(
        self,
        ws_server: WsServer,
        fast_behavior: ConnectionBehavior,
        wsforge_caplog: pytest.LogCaptureFixture,
    ):
        outcome = await _run_once(f"{ws_server.url}/badframe", fast_behavior)

        assert outcome.connected is True
        assert outcome.error is not None
        assert "unknown websocket error" not in outcome.error
        assert any(
            r.levelno == logging.WARNING and r.name == "wsforge.engine.iteration"
            for r in wsforge_caplog.records
        )

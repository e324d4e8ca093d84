"""One connect-interact-close cycle of a virtual user."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import TYPE_CHECKING

from wsforge._internal.errors import (
    ExpectedCloseError,
    TargetConnectionError,
    TransportError,
)
from wsforge._internal.logging import get_logger
from wsforge.metrics.models import IterationOutcome
from wsforge.transport.ws_client import hello_frame, ping_frame

if TYPE_CHECKING:
    from wsforge._internal.config import TestConfig
    from wsforge.transport.ws_client import WsClient, WsConnection

logger = get_logger("engine.iteration")


@dataclass
class _AckTally:
    marker: str
    passed: int = 0
    failed: int = 0

    @property
    def seen(self) -> bool:
        return self.passed > 0


async def _ping_loop(conn: WsConnection, interval: float) -> None:
    """Send a ping frame every ``interval`` seconds until the socket closes."""
    while not conn.closed:
        await asyncio.sleep(interval)
        await conn.send_json(ping_frame())


async def _consume(conn: WsConnection, tally: _AckTally, vu_id: int) -> None:
    """Check every received message for the acknowledgment marker."""
    async with contextlib.aclosing(conn.receive()) as messages:
        async for message in messages:
            logger.debug("VU %d received message: %s", vu_id, message)
            if tally.marker in message:
                tally.passed += 1
            else:
                tally.failed += 1


def _pinger_error(pinger: asyncio.Task[None], vu_id: int) -> str | None:
    """Return the pinger's unexpected error, if it died with one."""
    if not pinger.done() or pinger.cancelled():
        return None
    exc = pinger.exception()
    if exc is None:
        return None
    if isinstance(exc, ExpectedCloseError):
        logger.debug("VU %d ping after local close suppressed", vu_id)
        return None
    return str(exc) if isinstance(exc, TransportError) else f"{type(exc).__name__}: {exc}"


async def run_iteration(
    client: WsClient,
    config: TestConfig,
    vu_id: int,
    iteration: int,
) -> IterationOutcome:
    """Run one iteration against ``config.target_url``.

    Opens the socket, sends the hello frame, pings on a fixed interval,
    checks every reply for the acknowledgment marker and closes the socket
    once the ``close_after`` budget elapses or the server closes first.
    A failed handshake ends the iteration immediately without retrying.

    Args:
        client: The virtual user's WebSocket client.
        config: Run configuration.
        vu_id: Virtual user running the iteration.
        iteration: Zero-based iteration index for that virtual user.

    Returns:
        The iteration's outcome. Transport errors are captured in it rather
        than raised.
    """
    behavior = config.behavior

    try:
        conn = await client.connect(config.target_url)
    except TargetConnectionError as exc:
        logger.debug("VU %d iteration %d failed to connect: %s", vu_id, iteration, exc)
        return IterationOutcome(
            connected=False,
            error=str(exc),
            vu_id=vu_id,
            iteration=iteration,
            status_code=exc.status_code,
        )

    logger.debug("VU %d connected in %.1fms", vu_id, conn.connect_latency_ms)
    tally = _AckTally(behavior.ack_marker)
    error: str | None = None
    pinger: asyncio.Task[None] | None = None

    try:
        await conn.send_json(hello_frame(behavior.hello_message))
        pinger = asyncio.create_task(
            _ping_loop(conn, behavior.ping_interval),
            name=f"pinger-{vu_id}-{iteration}",
        )
        await asyncio.wait_for(_consume(conn, tally, vu_id), timeout=behavior.close_after)
    except TimeoutError:
        pass
    except ExpectedCloseError:
        logger.debug("VU %d send after local close suppressed", vu_id)
    except TransportError as exc:
        error = str(exc)
    finally:
        if pinger is not None:
            pinger.cancel()
        await conn.close()
        if pinger is not None:
            await asyncio.gather(pinger, return_exceptions=True)

    if error is None and pinger is not None:
        error = _pinger_error(pinger, vu_id)
    if error is not None:
        logger.warning("An unexpected error occurred (VU %d): %s", vu_id, error)

    return IterationOutcome(
        connected=True,
        acknowledged_message_seen=tally.seen,
        error=error,
        vu_id=vu_id,
        iteration=iteration,
        status_code=101,
        connect_latency_ms=conn.connect_latency_ms,
        messages_sent=conn.messages_sent,
        messages_received=conn.messages_received,
        ack_checks_passed=tally.passed,
        ack_checks_failed=tally.failed,
    )

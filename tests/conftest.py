"""Shared test fixtures for WsForge test suite."""

from __future__ import annotations

import asyncio
import socket
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import pytest
from aiohttp import WSMsgType, web

from wsforge._internal.config import ConnectionBehavior

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


# =============================================================================
# Network utilities
# =============================================================================


def _get_free_port() -> int:
    """Find an available port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


FRAMES_KEY = web.AppKey("frames", list)


@dataclass
class WsServer:
    """Handle on a running test server.

    Attributes:
        url: Base ``ws://`` URL; append a route such as ``/ack``.
        frames: Text frames received by any route, in arrival order.
    """

    url: str
    frames: list[str] = field(default_factory=list)


# =============================================================================
# WebSocket route handlers
# =============================================================================


def _make_reply_handler(reply: str | None):
    """Build a handler that records frames and optionally answers each one."""

    async def _handler(request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                request.app[FRAMES_KEY].append(msg.data)
                if reply is not None:
                    await ws.send_str(reply)
        return ws

    return _handler


async def _close_handler(request: web.Request) -> web.WebSocketResponse:
    """Close the socket right after the handshake."""
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    await ws.close()
    return ws


async def _drop_handler(request: web.Request) -> web.WebSocketResponse:
    """Read the hello frame, then drop the TCP connection without a close frame."""
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    await ws.receive()
    request.transport.abort()
    return ws


async def _bad_frame_handler(request: web.Request) -> web.WebSocketResponse:
    """Read the hello frame, then answer with a frame using a reserved opcode."""
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    await ws.receive()
    request.transport.write(b"\x8f\x00")
    async for _msg in ws:
        pass
    return ws


async def _deaf_handler(request: web.Request) -> web.WebSocketResponse:
    """Accept the upgrade but never read, so close frames go unanswered."""
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    while request.transport is not None and not request.transport.is_closing():
        await asyncio.sleep(0.05)
    return ws


async def _reject_handler(request: web.Request) -> web.Response:
    """Refuse the upgrade with HTTP 403."""
    return web.Response(status=403, text="forbidden")


def _create_ws_app(frames: list[str]) -> web.Application:
    """Build the WebSocket test app with all routes."""
    app = web.Application()
    app[FRAMES_KEY] = frames
    app.router.add_get("/ack", _make_reply_handler("ACK-12345"))
    app.router.add_get("/noack", _make_reply_handler("NOPE"))
    app.router.add_get("/silent", _make_reply_handler(None))
    app.router.add_get("/close", _close_handler)
    app.router.add_get("/reject", _reject_handler)
    app.router.add_get("/drop", _drop_handler)
    app.router.add_get("/badframe", _bad_frame_handler)
    app.router.add_get("/deaf", _deaf_handler)
    return app


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fast_behavior() -> ConnectionBehavior:
    """Scaled-down per-connection timings for quick tests."""
    return ConnectionBehavior(
        hello_message="from tests",
        ping_interval=0.1,
        close_after=0.35,
        pacing=0.05,
        connect_timeout=2.0,
        shutdown_grace=1.0,
    )


@pytest.fixture
def unused_ws_url() -> str:
    """A ws:// URL on a port nothing listens on."""
    return f"ws://127.0.0.1:{_get_free_port()}/ack"


@pytest.fixture
async def ws_server() -> AsyncIterator[WsServer]:
    """Aiohttp WebSocket server fixture running on the test's event loop."""
    server = WsServer(url="")
    app = _create_ws_app(server.frames)
    port = _get_free_port()
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    server.url = f"ws://127.0.0.1:{port}"
    yield server
    await runner.cleanup()


@pytest.fixture
def sync_ws_server() -> Iterator[WsServer]:
    """WebSocket server running in a background thread for sync tests.

    Needed by tests that call blocking entry points which run their own
    event loop (``run_load_test`` and the CLI).
    """
    port = _get_free_port()
    server = WsServer(url=f"ws://127.0.0.1:{port}")
    started = threading.Event()
    loop_holder: list[asyncio.AbstractEventLoop] = []

    def _thread_target() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        app = _create_ws_app(server.frames)
        runner = web.AppRunner(app)
        loop.run_until_complete(runner.setup())
        site = web.TCPSite(runner, "127.0.0.1", port)
        loop.run_until_complete(site.start())
        loop_holder.append(loop)
        started.set()
        loop.run_forever()
        loop.run_until_complete(runner.cleanup())
        loop.close()

    thread = threading.Thread(target=_thread_target, daemon=True)
    thread.start()
    started.wait(timeout=5.0)

    yield server

    if loop_holder:
        loop_holder[0].call_soon_threadsafe(loop_holder[0].stop)
    thread.join(timeout=5.0)

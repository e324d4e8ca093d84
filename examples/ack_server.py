"""Minimal ACK server to try WsForge against locally.

Replies ``ACK-<n>`` to every text frame it receives. Run it with:

    python examples/ack_server.py --port 8583

then, in another terminal:

    wsforge run ws://localhost:8583/ --users 10 --duration 30s
"""

from __future__ import annotations

import itertools

import typer
from aiohttp import WSMsgType, web

_counter = itertools.count(1)


async def ws_handler(request: web.Request) -> web.WebSocketResponse:
    """Acknowledge every text frame."""
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    async for msg in ws:
        if msg.type == WSMsgType.TEXT:
            await ws.send_str(f"ACK-{next(_counter)}")
    return ws


def main(
    host: str = typer.Option("127.0.0.1", help="Interface to bind."),
    port: int = typer.Option(8583, help="Port to listen on."),
) -> None:
    """Serve the ACK WebSocket endpoint at /."""
    app = web.Application()
    app.router.add_get("/", ws_handler)
    web.run_app(app, host=host, port=port)


if __name__ == "__main__":
    typer.run(main)

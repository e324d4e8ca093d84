"""Instrumented WebSocket client built on aiohttp."""

from __future__ import annotations

import asyncio
import json
import time
from typing import TYPE_CHECKING, Any

import aiohttp

from wsforge._internal.errors import (
    ExpectedCloseError,
    TargetConnectionError,
    TransportError,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

# Message reported for a send attempted after the close handshake began.
LOCAL_CLOSE_MESSAGE = "websocket: close sent"


def hello_frame(message: str) -> dict[str, Any]:
    """Build the frame sent once right after the socket opens."""
    return {"event": "hello", "message": message}


def ping_frame(now: float | None = None) -> dict[str, Any]:
    """Build a ping frame stamped with epoch milliseconds.

    Args:
        now: Epoch seconds to stamp. Defaults to the current time.
    """
    if now is None:
        now = time.time()
    return {"event": "ping", "timestamp": int(now * 1000)}


class WsConnection:
    """One open WebSocket with frame counters.

    Attributes:
        url: Endpoint the socket is connected to.
        connect_latency_ms: Duration of the opening handshake.
        messages_sent: Frames successfully written.
        messages_received: Text or binary frames read.
    """

    def __init__(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        url: str,
        connect_latency_ms: float,
    ) -> None:
        self._ws = ws
        self.url = url
        self.connect_latency_ms = connect_latency_ms
        self.messages_sent = 0
        self.messages_received = 0
        self._closed_locally = False

    @property
    def closed(self) -> bool:
        return self._closed_locally or self._ws.closed

    async def send_json(self, payload: dict[str, Any]) -> None:
        """Send ``payload`` as one JSON text frame.

        Raises:
            ExpectedCloseError: If the socket has already started closing.
            TransportError: If the write fails on a socket that is still open.
        """
        if self.closed:
            raise ExpectedCloseError(LOCAL_CLOSE_MESSAGE)
        try:
            await self._ws.send_str(json.dumps(payload))
        except ConnectionResetError as exc:
            # aiohttp raises this when writing to a closing transport
            if self.closed:
                raise ExpectedCloseError(LOCAL_CLOSE_MESSAGE) from exc
            msg = f"{type(exc).__name__}: {exc}"
            raise TransportError(msg) from exc
        except (aiohttp.ClientError, OSError) as exc:
            msg = f"{type(exc).__name__}: {exc}"
            raise TransportError(msg) from exc
        self.messages_sent += 1

    async def receive(self) -> AsyncIterator[str]:
        """Yield incoming messages as text until the socket closes.

        Binary frames are decoded as UTF-8 with replacement characters.
        A peer that drops the connection without sending a close frame
        ends the stream with an error rather than silently.

        Raises:
            TransportError: If the socket reports a transport error or
                closes abnormally.
        """
        peer_closed = False
        try:
            while True:
                msg = await self._ws.receive()
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self.messages_received += 1
                    yield msg.data
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    self.messages_received += 1
                    yield msg.data.decode("utf-8", errors="replace")
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    exc = msg.data if isinstance(msg.data, BaseException) else self._ws.exception()
                    detail = f"{type(exc).__name__}: {exc}" if exc else "unknown websocket error"
                    raise TransportError(detail)
                elif msg.type == aiohttp.WSMsgType.CLOSE:
                    peer_closed = True
                    break
                elif msg.type in (aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                    break
        except (aiohttp.ClientError, OSError) as exc:
            detail = f"{type(exc).__name__}: {exc}"
            raise TransportError(detail) from exc

        if not peer_closed and not self._closed_locally:
            self._raise_if_abnormal()

    def _raise_if_abnormal(self) -> None:
        """Raise if the peer went away without a close handshake."""
        code = self._ws.close_code
        exc = self._ws.exception()
        if code != aiohttp.WSCloseCode.ABNORMAL_CLOSURE and exc is None:
            return
        detail = f"websocket: close {code} (abnormal closure)"
        if exc is not None:
            detail = f"{detail}: {type(exc).__name__}: {exc}"
        raise TransportError(detail)

    async def close(self) -> None:
        """Close the socket locally. Safe to call more than once."""
        self._closed_locally = True
        await self._ws.close()


class WsClient:
    """Per-virtual-user WebSocket client wrapping ``aiohttp.ClientSession``.

    One session is opened for the lifetime of the virtual user and reused
    for every connection it makes.

    Attributes:
        connect_timeout: Seconds allowed for each opening handshake.
        close_timeout: Seconds to wait for the peer to answer a close frame.
        headers: Extra headers sent with every handshake request.
    """

    def __init__(
        self,
        connect_timeout: float = 10.0,
        close_timeout: float = 10.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.connect_timeout = connect_timeout
        self.close_timeout = close_timeout
        self.headers: dict[str, str] = dict(headers or {})
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> WsClient:
        """Open the underlying aiohttp session."""
        self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        """Close the underlying aiohttp session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def connect(self, url: str) -> WsConnection:
        """Open a WebSocket to ``url`` and time the handshake.

        Args:
            url: ``ws://`` or ``wss://`` endpoint.

        Returns:
            The open connection.

        Raises:
            TargetConnectionError: If the handshake fails for any reason.
            RuntimeError: If the client is used outside an async context
                manager.
        """
        if self._session is None:
            msg = "WsClient must be used as an async context manager"
            raise RuntimeError(msg)

        start = time.monotonic()
        try:
            ws = await asyncio.wait_for(
                self._session.ws_connect(
                    url,
                    headers=self.headers,
                    timeout=aiohttp.ClientWSTimeout(ws_close=self.close_timeout),
                ),
                timeout=self.connect_timeout,
            )
        except aiohttp.WSServerHandshakeError as exc:
            msg = f"WSServerHandshakeError: handshake rejected with status {exc.status}"
            raise TargetConnectionError(msg, status_code=exc.status) from exc
        except TimeoutError as exc:
            msg = f"TimeoutError: handshake timed out after {self.connect_timeout:.1f}s"
            raise TargetConnectionError(msg) from exc
        except (aiohttp.ClientError, OSError) as exc:
            msg = f"{type(exc).__name__}: {exc}"
            raise TargetConnectionError(msg) from exc

        latency_ms = (time.monotonic() - start) * 1000
        return WsConnection(ws, url, latency_ms)

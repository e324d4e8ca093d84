"""Custom exception hierarchy for WsForge."""

from __future__ import annotations


class WsForgeError(Exception):
    """Base exception for all WsForge errors.

    All custom exceptions in WsForge inherit from this class, making it
    easy to catch any WsForge-specific error with a single except clause.
    """


class ConfigurationError(WsForgeError):
    """Raised when the run configuration is invalid.

    Fatal: raised before any virtual user starts.

    Examples:
        - ``virtual_users`` is zero or negative.
        - The duration string cannot be parsed.
        - The target URL is not a ``ws://`` or ``wss://`` endpoint.
    """


class TargetUnreachableError(ConfigurationError):
    """Raised when the preflight probe cannot open a connection to the target."""


class TargetConnectionError(WsForgeError):
    """Raised when a single iteration fails to open its WebSocket.

    Recorded as a failed iteration; the run continues.

    Attributes:
        status_code: HTTP status of the failed handshake, or 0 when no
            response was received (refused, DNS failure, timeout).
    """

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportError(WsForgeError):
    """Raised for an unexpected transport failure on an open WebSocket."""


class ExpectedCloseError(WsForgeError):
    """Raised when a frame is sent on a socket that was closed locally.

    This is the normal end of a connection's life and is never reported.
    """


class EngineError(WsForgeError):
    """Raised when the virtual-user driver fails unrecoverably."""

from __future__ import annotations


class ClosureError(Exception):
    """Base class for every error raised by the stream client."""


class AuthError(ClosureError, PermissionError):
    """The service rejected our credentials or token."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class TransientStreamError(ClosureError, RuntimeError):
    """Network failure, 5xx or an unexpected end of stream. Worth retrying."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class StreamEndedError(TransientStreamError):
    """The remote end closed the event stream."""


class DecodeError(ClosureError, ValueError):
    """Malformed SSE framing or an undecodable event payload."""


class PersistenceError(ClosureError, OSError):
    """The token file could not be read or written."""


class NoDataError(ClosureError, LookupError):
    """No game status has been received yet."""

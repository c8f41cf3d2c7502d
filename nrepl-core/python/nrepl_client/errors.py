"""Exception types raised by the nREPL client.

Every public operation fails with a subclass of :class:`NreplError`. The
``kind`` attribute gives callers a stable, string-valued classification that
does not depend on the exception class hierarchy.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of client failures."""

    CONNECTION_CLOSED = "connection_closed"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"
    IO_ERROR = "io_error"
    PROTOCOL_ERROR = "protocol_error"


class NreplError(Exception):
    """Base exception for the nREPL client."""

    kind: ErrorKind | None = None


class ConnectionClosedError(NreplError):
    """The peer closed or reset the connection, or the client disconnected."""

    kind = ErrorKind.CONNECTION_CLOSED

    def __init__(self, message: str = "Connection closed by server"):
        super().__init__(message)


class OperationTimeoutError(NreplError, TimeoutError):
    """A read deadline or an operation deadline elapsed.

    ``request_id`` is set when the timeout interrupted a correlated request,
    so that the caller can target it with an interrupt.
    """

    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str = "Operation timed out", request_id: str | None = None):
        self.request_id = request_id
        super().__init__(message)


class ParseError(NreplError):
    """The byte stream could not be turned into a message."""

    kind = ErrorKind.PARSE_ERROR


class MalformedFrameError(ParseError):
    """The buffered bytes can never form a valid bencode value."""

    def __init__(self, message: str, offset: int | None = None):
        self.offset = offset
        if offset is not None:
            message = f"{message} (at byte {offset})"
        super().__init__(message)


class TransportIOError(NreplError):
    """An operating system error not covered by the other classes."""

    kind = ErrorKind.IO_ERROR

    def __init__(self, message: str, errno: int | None = None):
        self.errno = errno
        super().__init__(message)

    @classmethod
    def from_os_error(cls, exc: OSError, action: str) -> TransportIOError:
        return cls(f"{action} failed: {exc}", errno=exc.errno)


class ProtocolError(NreplError):
    """A well-formed response is missing a field the operation requires."""

    kind = ErrorKind.PROTOCOL_ERROR

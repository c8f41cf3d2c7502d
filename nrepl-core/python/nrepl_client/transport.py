"""Blocking TCP transport with independent read and write deadlines."""

from __future__ import annotations

import socket

from loguru import logger

from nrepl_client.config import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_READ_CHUNK_SIZE,
    DEFAULT_READ_TIMEOUT,
    DEFAULT_WRITE_TIMEOUT,
)
from nrepl_client.errors import (
    ConnectionClosedError,
    OperationTimeoutError,
    TransportIOError,
)

_CLOSED_ERRORS = (BrokenPipeError, ConnectionResetError, ConnectionAbortedError)


class Transport:
    """Owns one connected TCP socket.

    Failures are classified as :class:`ConnectionClosedError` (peer went
    away), :class:`OperationTimeoutError` (deadline elapsed) or
    :class:`TransportIOError` (anything else the OS reports).
    """

    def __init__(
        self,
        sock: socket.socket,
        *,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
        keepalive: bool = True,
    ):
        self._sock: socket.socket | None = sock
        self.read_timeout = DEFAULT_READ_TIMEOUT
        self.write_timeout = DEFAULT_WRITE_TIMEOUT
        self.set_timeouts(read_timeout, write_timeout)
        if keepalive:
            self._enable_keepalive()

    @classmethod
    def connect(
        cls,
        host: str,
        port: int,
        *,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
        keepalive: bool = True,
    ) -> Transport:
        """Open a TCP connection to ``host:port``."""
        try:
            sock = socket.create_connection((host, port), timeout=connect_timeout)
        except socket.timeout as exc:
            raise OperationTimeoutError(f"Connecting to {host}:{port} timed out") from exc
        except OSError as exc:
            raise TransportIOError.from_os_error(exc, f"Connecting to {host}:{port}") from exc

        logger.debug("Connected to {}:{}", host, port)
        try:
            return cls(sock, read_timeout=read_timeout, write_timeout=write_timeout, keepalive=keepalive)
        except BaseException:
            sock.close()
            raise

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    def set_timeouts(self, read_timeout: float, write_timeout: float) -> None:
        """Set the read and write deadlines, in seconds."""
        if read_timeout <= 0 or write_timeout <= 0:
            raise ValueError("timeouts must be positive")
        self.read_timeout = float(read_timeout)
        self.write_timeout = float(write_timeout)

    def _enable_keepalive(self) -> None:
        try:
            self._require_open().setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        except OSError as exc:
            logger.debug("TCP keepalive unavailable: {}", exc)

    def _require_open(self) -> socket.socket:
        if self._sock is None:
            raise ConnectionClosedError("Transport is closed")
        return self._sock

    def write_all(self, data: bytes) -> None:
        """Send all of ``data`` within the write deadline."""
        sock = self._require_open()
        try:
            sock.settimeout(self.write_timeout)
            sock.sendall(data)
        except socket.timeout as exc:
            raise OperationTimeoutError(f"Write timed out after {self.write_timeout:g}s") from exc
        except _CLOSED_ERRORS as exc:
            raise ConnectionClosedError(f"Connection closed while writing: {exc}") from exc
        except OSError as exc:
            raise TransportIOError.from_os_error(exc, "Write") from exc

    def read_chunk(self, size: int = DEFAULT_READ_CHUNK_SIZE, timeout: float | None = None) -> bytes:
        """Read up to ``size`` bytes.

        Waits at most the read deadline, or ``timeout`` if that is shorter.
        Never returns an empty result: end of stream is a closed connection.
        """
        sock = self._require_open()
        limit = self.read_timeout if timeout is None else min(timeout, self.read_timeout)
        if limit <= 0:
            raise OperationTimeoutError("Read timed out")
        try:
            sock.settimeout(limit)
            data = sock.recv(size)
        except socket.timeout as exc:
            raise OperationTimeoutError(f"Read timed out after {limit:g}s") from exc
        except _CLOSED_ERRORS as exc:
            raise ConnectionClosedError(f"Connection closed while reading: {exc}") from exc
        except OSError as exc:
            raise TransportIOError.from_os_error(exc, "Read") from exc
        if not data:
            raise ConnectionClosedError()
        return data

    def close(self) -> None:
        """Release the socket. Safe to call more than once."""
        sock, self._sock = self._sock, None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as exc:
            logger.debug("Socket shutdown failed: {}", exc)
        sock.close()
        logger.debug("Transport closed")

    def __enter__(self) -> Transport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

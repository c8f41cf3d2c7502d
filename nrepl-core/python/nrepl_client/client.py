"""Synchronous nREPL client.

Example:
    >>> from nrepl_client import NreplClient
    >>> with NreplClient.connect("127.0.0.1", 7888) as client:
    ...     result = client.eval("(+ 1 2 3)")
    ...     print(result.value)
    6

The client keeps a single connection and a single conversation: every call
blocks until its response arrives, its deadline passes, or the connection
drops. It is not safe to share one client between threads.
"""

from __future__ import annotations

import time
from typing import Callable

from loguru import logger

from nrepl_client.config import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_EVAL_TIMEOUT,
    DEFAULT_HOST,
    DEFAULT_MAX_MESSAGE_SIZE,
    DEFAULT_PORT,
    DEFAULT_READ_CHUNK_SIZE,
    DEFAULT_READ_TIMEOUT,
    DEFAULT_WRITE_TIMEOUT,
    ClientSettings,
)
from nrepl_client.dispatcher import RequestDispatcher
from nrepl_client.errors import ConnectionClosedError, NreplError, ProtocolError
from nrepl_client.log import configure_logging
from nrepl_client.protocol import (
    DescribeResponse,
    EvalResult,
    Op,
    field_text,
    new_request_id,
    status_of,
)
from nrepl_client.reader import MessageReader
from nrepl_client.session import ConnectionState, SessionState
from nrepl_client.transport import Transport


class NreplClient:
    """Evaluate code on an nREPL server and manage its session."""

    def __init__(
        self,
        transport: Transport,
        *,
        eval_timeout: float = DEFAULT_EVAL_TIMEOUT,
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
        read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Callable[[], str] = new_request_id,
    ):
        self.transport = transport
        self.reader = MessageReader(
            transport,
            max_message_size=max_message_size,
            chunk_size=read_chunk_size,
            clock=clock,
        )
        self.dispatcher = RequestDispatcher(
            transport,
            self.reader,
            eval_timeout=eval_timeout,
            clock=clock,
            id_factory=id_factory,
        )
        self._connection = ConnectionState()

    @classmethod
    def connect(
        cls,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        *,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
        keepalive: bool = True,
        eval_timeout: float = DEFAULT_EVAL_TIMEOUT,
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
        read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
    ) -> NreplClient:
        """Open a connection. No request is sent until the first operation."""
        transport = Transport.connect(
            host,
            port,
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            write_timeout=write_timeout,
            keepalive=keepalive,
        )
        return cls(
            transport,
            eval_timeout=eval_timeout,
            max_message_size=max_message_size,
            read_chunk_size=read_chunk_size,
        )

    @classmethod
    def from_settings(cls, settings: ClientSettings | None = None) -> NreplClient:
        """Connect using ``settings``, or settings loaded from the environment.

        A configured ``log_level`` turns on client logging before connecting.
        """
        settings = settings or ClientSettings()
        if settings.log_level:
            configure_logging(settings.log_level)
        return cls.connect(
            settings.host,
            settings.port,
            connect_timeout=settings.connect_timeout,
            read_timeout=settings.read_timeout,
            write_timeout=settings.write_timeout,
            keepalive=settings.keepalive,
            eval_timeout=settings.eval_timeout,
            max_message_size=settings.max_message_size,
            read_chunk_size=settings.read_chunk_size,
        )

    @property
    def connection(self) -> ConnectionState:
        return self._connection

    @property
    def state(self) -> SessionState:
        return self._connection.state

    @property
    def session(self) -> str | None:
        """The active session id, if any."""
        return self._connection.session_id

    def _require_connected(self) -> None:
        if not self._connection.connected:
            raise ConnectionClosedError("Client is disconnected")

    def set_timeouts(self, read_timeout: float, write_timeout: float) -> None:
        """Change the per-read and per-write deadlines, in seconds."""
        self.transport.set_timeouts(read_timeout, write_timeout)

    def clone(self) -> str:
        """Create a fresh session and make it the active one.

        The request never names the current session, so the server starts
        the new one from its defaults. A previously active session is
        replaced but not closed.
        """
        self._require_connected()
        request = self.dispatcher.build(Op.CLONE)
        response = self.dispatcher.request(request)

        session_id = field_text(response, "new-session")
        if not session_id:
            raise ProtocolError("no session in clone response")
        self._connection = self._connection.with_session(session_id)
        logger.debug("Session {} active", session_id)
        return session_id

    clone_session = clone

    def eval(self, code: str, *, timeout: float | None = None, ns: str | None = None) -> EvalResult:
        """Evaluate ``code`` in the active session, cloning one first if needed.

        ``timeout`` bounds the whole exchange and defaults to the client's
        eval timeout. A timeout only stops the client from waiting: the
        server may still be evaluating, see :meth:`interrupt`.
        """
        self._require_connected()
        if self.session is None:
            self.clone()
        return self.dispatcher.eval(code, self.session, timeout=timeout, ns=ns)

    def eval_with_timeout(self, code: str, timeout: float) -> EvalResult:
        return self.eval(code, timeout=timeout)

    def describe(self) -> DescribeResponse:
        """Ask the server which operations and versions it supports."""
        self._require_connected()
        response = self.dispatcher.request(self.dispatcher.build(Op.DESCRIBE))
        return DescribeResponse.from_message(response)

    def interrupt(self, interrupt_id: str | None = None) -> list[str]:
        """Ask the server to interrupt evaluation in the active session.

        ``interrupt_id`` targets a specific eval, e.g. the ``request_id`` of
        an :class:`~nrepl_client.errors.OperationTimeoutError`. The request
        travels over the same connection as the eval it targets, so nothing
        guarantees the evaluation actually stops. Without a session nothing
        is sent and an empty list is returned; otherwise the response's
        status flags are returned.
        """
        self._require_connected()
        if self.session is None:
            return []
        request = self.dispatcher.build(Op.INTERRUPT, session=self.session, interrupt_id=interrupt_id)
        return status_of(self.dispatcher.request(request))

    def is_connected(self) -> bool:
        """Probe the connection with a ``describe`` round trip.

        This sends a real request and reads its response, so it costs a
        network exchange every time it is called.
        """
        if not self._connection.connected:
            return False
        try:
            self.describe()
        except NreplError as exc:
            logger.debug("Connection probe failed: {}", exc)
            return False
        return True

    def close(self) -> None:
        """Close the active session, if any.

        The close request is best effort: failures are logged and ignored,
        and the session is forgotten either way. Calling this without a
        session does nothing.
        """
        session_id = self.session
        if session_id is None:
            return
        try:
            self.dispatcher.request(self.dispatcher.build(Op.CLOSE, session=session_id))
        except NreplError as exc:
            logger.warning("Closing session {} failed: {}", session_id, exc)
        finally:
            self._connection = self._connection.without_session()
            logger.debug("Session {} released", session_id)

    def disconnect(self) -> None:
        """Close the session and release the socket."""
        try:
            self.close()
        finally:
            self.transport.close()
            self.reader.clear()
            self._connection = self._connection.disconnected()

    def __enter__(self) -> NreplClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.disconnect()

"""Shared fakes for client tests.

``FakeNrepl`` scripts server behaviour per op. It is driven either in memory
through ``ScriptedTransport`` or over a real socket through ``FakeNreplServer``.
"""

from __future__ import annotations

import socketserver
import threading
from collections import deque
from typing import Any, Callable

import pytest

from nrepl_client.bencode import Message, decode_message, encode
from nrepl_client.client import NreplClient
from nrepl_client.errors import ConnectionClosedError, OperationTimeoutError
from nrepl_client.protocol import field_text

Frame = dict[str, Any]


class FakeNrepl:
    """Minimal nREPL server behaviour.

    ``evals`` maps code to the frames the server answers with. Frames get the
    request's id stamped on unless they carry their own; ``"id": None``
    removes it.
    """

    def __init__(self):
        self.evals: dict[str, list[Frame]] = {}
        self.session_count = 0
        self.closed_sessions: list[str] = []
        self.interrupted: list[str | None] = []
        self.clone_sources: list[str | None] = []

    def __call__(self, request: Message) -> list[Frame]:
        op = field_text(request, "op")
        request_id = field_text(request, "id")
        handler = getattr(self, f"_{op}", None)
        if handler is None:
            frames = [{"status": ["error", "unknown-op", "done"]}]
        else:
            frames = handler(request)
        return [_stamp(frame, request_id) for frame in frames]

    def _clone(self, request: Message) -> list[Frame]:
        self.session_count += 1
        self.clone_sources.append(field_text(request, "session"))
        return [{"new-session": f"session-{self.session_count}", "status": ["done"]}]

    def _describe(self, request: Message) -> list[Frame]:
        return [
            {
                "ops": {op: {} for op in ("clone", "close", "describe", "eval", "interrupt")},
                "versions": {"nrepl": {"major": 1, "minor": 0, "version-string": "1.0.0"}},
                "aux": {},
                "status": ["done"],
            }
        ]

    def _eval(self, request: Message) -> list[Frame]:
        code = field_text(request, "code")
        return self.evals.get(code, [{"value": "nil", "status": ["done"]}])

    def _interrupt(self, request: Message) -> list[Frame]:
        self.interrupted.append(field_text(request, "interrupt-id"))
        return [{"status": ["done"]}]

    def _close(self, request: Message) -> list[Frame]:
        self.closed_sessions.append(field_text(request, "session"))
        return [{"status": ["session-closed", "done"]}]


def _stamp(frame: Frame, request_id: str | None) -> Frame:
    frame = dict(frame)
    if "id" not in frame:
        frame["id"] = request_id
    elif frame["id"] is None:
        del frame["id"]
    return frame


class ScriptedTransport:
    """In-memory stand-in for :class:`~nrepl_client.transport.Transport`.

    Each request written is answered by ``handler``; the answer is queued as
    one blob (frames concatenated) or cut into ``chunk_size`` pieces. Reading
    from an empty queue times out, or reports a closed connection once
    ``peer_closed`` is set.
    """

    def __init__(
        self,
        handler: Callable[[Message], list[Frame]] | None = None,
        *,
        chunk_size: int | None = None,
        read_timeout: float = 30.0,
        write_timeout: float = 10.0,
    ):
        self.handler = handler
        self.chunk_size = chunk_size
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.requests: list[Message] = []
        self.chunks: deque[bytes] = deque()
        self.peer_closed = False
        self.closed = False
        self.read_timeouts: list[float | None] = []

    @property
    def is_open(self) -> bool:
        return not self.closed

    @property
    def ops(self) -> list[str]:
        return [field_text(request, "op") for request in self.requests]

    def set_timeouts(self, read_timeout: float, write_timeout: float) -> None:
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout

    def feed(self, *items: Frame | bytes) -> None:
        blob = b"".join(item if isinstance(item, bytes) else encode(item) for item in items)
        if self.chunk_size is None:
            self.chunks.append(blob)
        else:
            for i in range(0, len(blob), self.chunk_size):
                self.chunks.append(blob[i : i + self.chunk_size])

    def write_all(self, data: bytes) -> None:
        if self.closed or self.peer_closed:
            raise ConnectionClosedError("Connection closed while writing")
        message, consumed = decode_message(data)
        assert consumed == len(data)
        self.requests.append(message)
        if self.handler is not None:
            frames = self.handler(message)
            if frames:
                self.feed(*frames)

    def read_chunk(self, size: int = 4096, timeout: float | None = None) -> bytes:
        self.read_timeouts.append(timeout)
        if self.closed:
            raise ConnectionClosedError("Transport is closed")
        if not self.chunks:
            if self.peer_closed:
                raise ConnectionClosedError()
            raise OperationTimeoutError("Read timed out")
        chunk = self.chunks.popleft()
        if len(chunk) > size:
            self.chunks.appendleft(chunk[size:])
            chunk = chunk[:size]
        return chunk

    def close(self) -> None:
        self.closed = True


class FakeClock:
    """Monotonic clock that moves forward by ``step`` on every reading."""

    def __init__(self, step: float = 0.0):
        self.now = 1000.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


class FakeNreplServer(socketserver.ThreadingTCPServer):
    """A localhost TCP server answering with a :class:`FakeNrepl`."""

    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, behaviour: FakeNrepl, trickle: bool = False):
        self.behaviour = behaviour
        self.trickle = trickle
        self.received: list[Message] = []
        self.hang_up_ops: set[str] = set()
        super().__init__(("127.0.0.1", 0), _FakeNreplHandler)

    @property
    def port(self) -> int:
        return self.server_address[1]


class _FakeNreplHandler(socketserver.BaseRequestHandler):
    server: FakeNreplServer

    def handle(self) -> None:
        buffer = bytearray()
        while True:
            data = self.request.recv(4096)
            if not data:
                return
            buffer += data
            while True:
                decoded = decode_message(buffer)
                if decoded is None:
                    break
                message, consumed = decoded
                del buffer[:consumed]
                self.server.received.append(message)
                if field_text(message, "op") in self.server.hang_up_ops:
                    return
                reply = b"".join(encode(frame) for frame in self.server.behaviour(message))
                if self.server.trickle:
                    for i in range(len(reply)):
                        self.request.sendall(reply[i : i + 1])
                else:
                    self.request.sendall(reply)


@pytest.fixture
def nrepl() -> FakeNrepl:
    return FakeNrepl()


@pytest.fixture
def transport(nrepl) -> ScriptedTransport:
    return ScriptedTransport(nrepl)


@pytest.fixture
def client(transport) -> NreplClient:
    return NreplClient(transport)


@pytest.fixture
def make_transport() -> Callable[..., ScriptedTransport]:
    return ScriptedTransport


@pytest.fixture
def fake_clock() -> type[FakeClock]:
    return FakeClock


@pytest.fixture
def tcp_server(nrepl):
    """Factory starting fake servers; ``trickle=True`` sends replies one byte at a time."""

    def start(trickle: bool = False) -> FakeNreplServer:
        server = FakeNreplServer(nrepl, trickle=trickle)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        servers.append(server)
        return server

    servers: list[FakeNreplServer] = []
    yield start
    for server in servers:
        server.shutdown()
        server.server_close()

"""Assemble bencode messages from a stream of socket reads.

A single read may carry part of a message, exactly one message, or several
pipelined messages. The reader keeps whatever follows a decoded message in
its buffer and serves it on the next call before touching the socket again.
"""

from __future__ import annotations

import time
from typing import Callable, Protocol

from loguru import logger

from nrepl_client.bencode import Message, Pending, decode_frame
from nrepl_client.config import DEFAULT_MAX_MESSAGE_SIZE, DEFAULT_READ_CHUNK_SIZE
from nrepl_client.errors import OperationTimeoutError, ParseError


class ChunkSource(Protocol):
    """Anything that can hand out raw bytes, like :class:`~nrepl_client.transport.Transport`."""

    read_timeout: float

    def read_chunk(self, size: int = ..., timeout: float | None = None) -> bytes: ...


class MessageReader:
    """Turns the transport's byte stream into decoded messages."""

    def __init__(
        self,
        source: ChunkSource,
        *,
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
        chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.max_message_size = max_message_size
        self.chunk_size = chunk_size
        self._clock = clock
        self._buffer = bytearray()
        # Buffer length below which decoding cannot make progress.
        self._needed = 0

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet returned as a message."""
        return len(self._buffer)

    def clear(self) -> None:
        """Drop any buffered bytes."""
        self._buffer.clear()
        self._needed = 0

    def next_message(self, timeout: float | None = None) -> Message:
        """Return the next complete message.

        ``timeout`` bounds the whole call and defaults to the source's read
        timeout.
        """
        budget = self.source.read_timeout if timeout is None else timeout
        deadline = self._clock() + budget

        while True:
            message = self._take_buffered()
            if message is not None:
                return message

            if len(self._buffer) > self.max_message_size:
                size = len(self._buffer)
                self.clear()
                raise ParseError(f"message too large: {size} bytes buffered without a complete message")

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise OperationTimeoutError(
                    f"No complete message within {budget:g}s ({len(self._buffer)} bytes buffered)"
                )
            self._buffer += self.source.read_chunk(self.chunk_size, timeout=remaining)

    def _take_buffered(self) -> Message | None:
        if len(self._buffer) < self._needed:
            return None
        try:
            decoded = decode_frame(self._buffer, max_size=self.max_message_size)
        except ParseError:
            logger.debug("Discarding {} unparseable buffered bytes", len(self._buffer))
            self.clear()
            raise
        if isinstance(decoded, Pending):
            self._needed = decoded.needed
            return None

        message, consumed = decoded
        del self._buffer[:consumed]
        self._needed = 0
        if self._buffer:
            logger.debug("Retaining {} bytes after decoded message", len(self._buffer))
        return message

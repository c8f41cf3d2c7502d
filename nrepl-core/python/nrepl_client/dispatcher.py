"""Request/response correlation over a single connection.

Only one request is ever outstanding. Frames carrying a different ``id`` are
leftovers from an earlier request (typically an eval the caller stopped
waiting for) and are dropped. Frames without an ``id`` are accepted.
"""

from __future__ import annotations

import time
from typing import Callable, Iterator

from loguru import logger

from nrepl_client.bencode import Message, encode
from nrepl_client.config import DEFAULT_EVAL_TIMEOUT
from nrepl_client.errors import OperationTimeoutError
from nrepl_client.protocol import EvalResult, Op, Request, field_text, new_request_id
from nrepl_client.reader import MessageReader
from nrepl_client.transport import Transport


class RequestDispatcher:
    """Builds correlated requests, sends them, and collects their responses."""

    def __init__(
        self,
        transport: Transport,
        reader: MessageReader,
        *,
        eval_timeout: float = DEFAULT_EVAL_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Callable[[], str] = new_request_id,
    ):
        self.transport = transport
        self.reader = reader
        self.eval_timeout = eval_timeout
        self._clock = clock
        self._id_factory = id_factory

    def build(self, op: Op, **fields: str | None) -> Request:
        """Create a request for ``op`` with a fresh correlation id."""
        return Request(op=op, id=self._id_factory(), **fields)

    def send(self, request: Request) -> None:
        logger.debug("Sending {} request {}", request.op.value, request.id)
        self.transport.write_all(encode(request.to_message()))

    def request(self, request: Request, timeout: float | None = None) -> Message:
        """Send ``request`` and return the first frame that answers it.

        ``timeout`` defaults to the transport's read timeout.
        """
        self.send(request)
        budget = self.transport.read_timeout if timeout is None else timeout
        return next(self.responses(request.id, self._clock() + budget))

    def eval(
        self,
        code: str,
        session: str | None,
        *,
        timeout: float | None = None,
        ns: str | None = None,
    ) -> EvalResult:
        """Evaluate ``code`` and merge every frame until one reports ``done``.

        If ``timeout`` (default ``eval_timeout``) elapses first, the partial
        result is discarded and :class:`OperationTimeoutError` is raised with
        the eval's ``request_id``.
        """
        request = self.build(Op.EVAL, session=session, code=code, ns=ns)
        budget = self.eval_timeout if timeout is None else timeout
        self.send(request)

        result = EvalResult()
        for frame in self.responses(request.id, self._clock() + budget):
            if result.merge(frame):
                break
        return result

    def responses(self, request_id: str, deadline: float) -> Iterator[Message]:
        """Yield frames answering ``request_id`` until ``deadline`` passes."""
        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise OperationTimeoutError(
                    f"Request {request_id} did not complete in time", request_id=request_id
                )
            try:
                frame = self.reader.next_message(timeout=min(remaining, self.transport.read_timeout))
            except OperationTimeoutError as exc:
                raise OperationTimeoutError(str(exc), request_id=request_id) from exc

            frame_id = field_text(frame, "id")
            if frame_id is not None and frame_id != request_id:
                logger.debug("Discarding frame for {} while waiting for {}", frame_id, request_id)
                continue
            yield frame

"""nREPL message types.

Requests are built as pydantic models and flattened to bencode-ready
dictionaries; responses arrive as raw decoded dictionaries whose byte-string
values are turned into text by the helpers here.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from nrepl_client.bencode import Message


class Op(str, Enum):
    """Operations the client sends."""

    CLONE = "clone"
    EVAL = "eval"
    DESCRIBE = "describe"
    INTERRUPT = "interrupt"
    CLOSE = "close"


class Status(str, Enum):
    """Status flags the client acts on. Other flags are kept but ignored."""

    DONE = "done"
    ERROR = "error"


def new_request_id() -> str:
    """Generate a fresh correlation id."""
    return str(uuid.uuid4())


def to_text(value: Any) -> Any:
    """Recursively decode byte strings in a response value as UTF-8."""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, list):
        return [to_text(v) for v in value]
    if isinstance(value, dict):
        return {k: to_text(v) for k, v in value.items()}
    return value


def field_text(message: Message, key: str) -> str | None:
    """Return ``message[key]`` as text, or None if absent or not a string."""
    value = message.get(key)
    if isinstance(value, (bytes, str)):
        return to_text(value)
    return None


def status_of(message: Message) -> list[str]:
    """Return the status flags of a response, in order."""
    status = message.get("status")
    if not isinstance(status, list):
        return []
    return [to_text(item) for item in status if isinstance(item, (bytes, str))]


class Request(BaseModel):
    """An outgoing nREPL request."""

    op: Op
    id: str = Field(default_factory=new_request_id)
    session: str | None = None
    code: str | None = None
    ns: str | None = None
    interrupt_id: str | None = Field(default=None, description="Id of the eval to interrupt")

    def to_message(self) -> Message:
        """Flatten to the wire mapping, omitting unset fields."""
        message: Message = {"op": self.op.value, "id": self.id}
        if self.session is not None:
            message["session"] = self.session
        if self.code is not None:
            message["code"] = self.code
        if self.ns is not None:
            message["ns"] = self.ns
        if self.interrupt_id is not None:
            message["interrupt-id"] = self.interrupt_id
        return message


class EvalResult(BaseModel):
    """Everything one eval produced, merged across its response frames."""

    value: str | None = Field(default=None, description="Last value reported")
    output: str = Field(default="", description="Accumulated stdout")
    error: str = Field(default="", description="Accumulated stderr")
    has_error: bool = Field(default=False, description="Whether any frame reported an error status")
    status: list[str] = Field(default_factory=list, description="Status flags seen, in arrival order")
    ns: str | None = Field(default=None, description="Namespace after evaluation")

    def merge(self, frame: Message) -> bool:
        """Fold one response frame in. Returns True once the eval is done."""
        value = field_text(frame, "value")
        if value is not None:
            self.value = value

        out = field_text(frame, "out")
        if out is not None:
            self.output += out

        err = field_text(frame, "err")
        if err is not None:
            self.error += err

        ns = field_text(frame, "ns")
        if ns is not None:
            self.ns = ns

        flags = status_of(frame)
        for flag in flags:
            if flag not in self.status:
                self.status.append(flag)
        if Status.ERROR.value in flags:
            self.has_error = True
        return Status.DONE.value in flags


class DescribeResponse(BaseModel):
    """Server capabilities as reported by ``describe``."""

    ops: dict[str, Any] = Field(default_factory=dict)
    versions: dict[str, Any] = Field(default_factory=dict)
    aux: dict[str, Any] = Field(default_factory=dict)
    raw: dict[str, Any] = Field(default_factory=dict, description="The full decoded response")

    @classmethod
    def from_message(cls, message: Message) -> DescribeResponse:
        def mapping(key: str) -> dict[str, Any]:
            value = message.get(key)
            return to_text(value) if isinstance(value, dict) else {}

        return cls(
            ops=mapping("ops"),
            versions=mapping("versions"),
            aux=mapping("aux"),
            raw=to_text(message),
        )

    def supports(self, op: Op | str) -> bool:
        """Check whether the server advertises ``op``."""
        name = op.value if isinstance(op, Op) else op
        return name in self.ops

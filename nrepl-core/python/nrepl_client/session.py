"""Connection and session state.

The client never mutates this state in place: each operation produces a new
:class:`ConnectionState` value that replaces the previous one.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum


class SessionState(str, Enum):
    """Lifecycle of a client connection."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    ACTIVE = "active"


@dataclass(frozen=True)
class Session:
    """A server-side evaluation context, identified by an opaque id."""

    id: str

    def __str__(self) -> str:
        return self.id


@dataclass(frozen=True)
class ConnectionState:
    connected: bool = True
    session: Session | None = None

    @property
    def state(self) -> SessionState:
        if not self.connected:
            return SessionState.DISCONNECTED
        if self.session is None:
            return SessionState.CONNECTED
        return SessionState.ACTIVE

    @property
    def session_id(self) -> str | None:
        return self.session.id if self.session is not None else None

    def with_session(self, session_id: str) -> ConnectionState:
        return replace(self, session=Session(session_id))

    def without_session(self) -> ConnectionState:
        return replace(self, session=None)

    def disconnected(self) -> ConnectionState:
        return ConnectionState(connected=False, session=None)

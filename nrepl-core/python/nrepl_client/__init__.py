"""nrepl-client - A synchronous client for nREPL servers.

This package speaks the nREPL wire protocol (bencode over TCP): it evaluates
code remotely, manages an evaluation session, and requests interruption or
teardown.
"""

from loguru import logger

from nrepl_client.client import NreplClient
from nrepl_client.config import ClientSettings, get_settings
from nrepl_client.errors import (
    ConnectionClosedError,
    ErrorKind,
    MalformedFrameError,
    NreplError,
    OperationTimeoutError,
    ParseError,
    ProtocolError,
    TransportIOError,
)
from nrepl_client.log import configure_logging
from nrepl_client.protocol import DescribeResponse, EvalResult, Op, Status
from nrepl_client.session import Session, SessionState

logger.disable("nrepl_client")

__version__ = "0.1.0"
__all__ = [
    "ClientSettings",
    "ConnectionClosedError",
    "DescribeResponse",
    "ErrorKind",
    "EvalResult",
    "MalformedFrameError",
    "NreplClient",
    "NreplError",
    "Op",
    "OperationTimeoutError",
    "ParseError",
    "ProtocolError",
    "Session",
    "SessionState",
    "Status",
    "TransportIOError",
    "configure_logging",
    "get_settings",
]

"""Logging setup for the nREPL client.

The package logs through loguru and is disabled on import, so applications
see nothing until they opt in with :func:`configure_logging`.
"""

from __future__ import annotations

import sys

from loguru import logger

_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<7} | {name}:{function}:{line} | {message}"
_handler_id: int | None = None


def configure_logging(level: str = "INFO") -> None:
    """Enable client logging to stderr at ``level``.

    Calling it again replaces the previously installed sink.
    """
    global _handler_id
    if _handler_id is not None:
        logger.remove(_handler_id)
    _handler_id = logger.add(
        sys.stderr,
        level=level.upper(),
        format=_FORMAT,
        filter="nrepl_client",
        backtrace=False,
        diagnose=False,
    )
    logger.enable("nrepl_client")

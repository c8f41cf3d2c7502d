"""Connection settings for the nREPL client.

Settings are read from ``NREPL_*`` environment variables or a ``.env`` file,
for example ``NREPL_PORT=7888`` or ``NREPL_EVAL_TIMEOUT=120``.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 7888
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_READ_TIMEOUT = 30.0
DEFAULT_WRITE_TIMEOUT = 10.0
DEFAULT_EVAL_TIMEOUT = 60.0
DEFAULT_MAX_MESSAGE_SIZE = 1024 * 1024
DEFAULT_READ_CHUNK_SIZE = 4096


class ClientSettings(BaseSettings):
    """Where to connect and how long to wait."""

    model_config = SettingsConfigDict(
        env_prefix="NREPL_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(default=DEFAULT_HOST, description="nREPL server host")
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535, description="nREPL server port")
    connect_timeout: float = Field(
        default=DEFAULT_CONNECT_TIMEOUT, gt=0, description="TCP connect timeout in seconds"
    )
    read_timeout: float = Field(
        default=DEFAULT_READ_TIMEOUT, gt=0, description="Deadline for reading one message, in seconds"
    )
    write_timeout: float = Field(
        default=DEFAULT_WRITE_TIMEOUT, gt=0, description="Deadline for writing one message, in seconds"
    )
    eval_timeout: float = Field(
        default=DEFAULT_EVAL_TIMEOUT, gt=0, description="Deadline for a whole eval exchange, in seconds"
    )
    max_message_size: int = Field(
        default=DEFAULT_MAX_MESSAGE_SIZE,
        gt=0,
        description="Bytes buffered without a complete message before giving up",
    )
    read_chunk_size: int = Field(default=DEFAULT_READ_CHUNK_SIZE, gt=0, description="Bytes per socket read")
    keepalive: bool = Field(default=True, description="Enable TCP keepalive when supported")
    log_level: str | None = Field(
        default=None, description="When set, NreplClient.from_settings enables client logging at this level"
    )


def get_settings(**overrides: object) -> ClientSettings:
    """Load settings from the environment, with keyword overrides applied on top."""
    return ClientSettings(**overrides)

"""Environment-driven client settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_BASE_URL = "http://localhost:7071/api"
DEFAULT_READ_TIMEOUT = 10.0
DEFAULT_WRITE_TIMEOUT = 30.0


def _as_float(value: str | None, default: float) -> float:
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class ClientSettings:
    """Settings for :class:`vcarpool.client.CarpoolClient`.

    Reads are bounded by ``read_timeout``; mutations get the longer
    ``write_timeout``.
    """

    base_url: str = DEFAULT_BASE_URL
    read_timeout: float = DEFAULT_READ_TIMEOUT
    write_timeout: float = DEFAULT_WRITE_TIMEOUT
    environment: str = "development"
    login_url: str = "/login"
    refresh_path: str = "/auth/refresh-token"
    token_file: Path | None = None

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls) -> ClientSettings:
        token_file = os.environ.get("VCARPOOL_TOKEN_FILE", "")
        return cls(
            base_url=os.environ.get("VCARPOOL_API_URL", DEFAULT_BASE_URL).rstrip("/"),
            read_timeout=_as_float(os.environ.get("VCARPOOL_READ_TIMEOUT"), DEFAULT_READ_TIMEOUT),
            write_timeout=_as_float(os.environ.get("VCARPOOL_WRITE_TIMEOUT"), DEFAULT_WRITE_TIMEOUT),
            environment=os.environ.get("VCARPOOL_ENV", "development"),
            login_url=os.environ.get("VCARPOOL_LOGIN_URL", "/login"),
            token_file=Path(token_file).expanduser() if token_file else None,
        )

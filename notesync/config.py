from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional

DEFAULT_LOCAL_DIR = Path.home() / ".notesync"
DEFAULT_SERVER_DIR = Path(__file__).resolve().parents[1] / "data"


def server_data_dir() -> Path:
    return Path(os.getenv("APP_DATA_DIR", str(DEFAULT_SERVER_DIR)))


def local_data_dir() -> Path:
    return Path(os.getenv("NOTESYNC_DATA_DIR", str(DEFAULT_LOCAL_DIR)))


def remote_url() -> Optional[str]:
    url = os.getenv("NOTESYNC_REMOTE_URL", "").strip()
    return url or None


def http_timeout() -> float:
    try:
        return float(os.getenv("NOTESYNC_HTTP_TIMEOUT", "10"))
    except ValueError:
        return 10.0


def log_level() -> str:
    return os.getenv("NOTESYNC_LOG_LEVEL", "INFO").upper()


def jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError("JWT_SECRET is not set")
    return secret


def jwt_algorithm() -> str:
    return os.getenv("JWT_ALGORITHM", "HS256")


def token_lifetime() -> timedelta:
    try:
        minutes = int(os.getenv("JWT_EXP_MINUTES", "15"))
    except ValueError:
        minutes = 15
    return timedelta(minutes=minutes)


@dataclass(frozen=True)
class ClientSettings:
    data_dir: Path
    remote_url: Optional[str]
    http_timeout: float

    @classmethod
    def from_env(cls) -> "ClientSettings":
        return cls(data_dir=local_data_dir(), remote_url=remote_url(), http_timeout=http_timeout())


def configure_logging(level: Optional[str] = None) -> None:
    """Install a basic stderr handler for programs embedding notesync."""
    logging.basicConfig(
        level=getattr(logging, level or log_level(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

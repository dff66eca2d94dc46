"""Environment-driven settings for rssfeed-sync."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from rssfeed_sync.errors import ConfigError

DEFAULT_DB_PATH = str(
    Path.home() / ".local" / "share" / "rssfeed-sync" / "rssfeed_sync.db"
)
DEFAULT_FETCH_TIMEOUT = 20.0
DEFAULT_MAX_WORKERS = 4
DEFAULT_POLL_INTERVAL = 900  # 15 minutes


@dataclass
class Config:
    """Resolved settings handed to the core."""

    db_path: str = DEFAULT_DB_PATH
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    max_workers: int = DEFAULT_MAX_WORKERS
    poll_interval: int = DEFAULT_POLL_INTERVAL

    @classmethod
    def from_env(cls, db_path: str | None = None) -> "Config":
        """Build a Config from ``RSSFEED_*`` variables.

        An explicit ``db_path`` wins over ``RSSFEED_DB_PATH``.

        Raises:
            ConfigError: If a numeric variable is malformed or not positive.
        """
        return cls(
            db_path=db_path or os.environ.get("RSSFEED_DB_PATH", DEFAULT_DB_PATH),
            fetch_timeout=_env_number("RSSFEED_FETCH_TIMEOUT", float, DEFAULT_FETCH_TIMEOUT),
            max_workers=_env_number("RSSFEED_MAX_WORKERS", int, DEFAULT_MAX_WORKERS),
            poll_interval=_env_number("RSSFEED_POLL_INTERVAL", int, DEFAULT_POLL_INTERVAL),
        )


def _env_number(name: str, convert: Callable[[str], float], default):
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = convert(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be greater than zero, got {raw!r}")
    return value

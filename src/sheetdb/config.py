"""
Runtime settings and logging for sheetdb.

Settings are read from the environment (call `dotenv.load_dotenv()` first if a
``.env`` file should be honoured) and never at import time.
"""

from __future__ import annotations

import logging
import os
import sys

from pydantic import BaseModel, Field

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] [%(funcName)s]: %(message)s"

logger = logging.getLogger("sheetdb")


def _get_int(env_name: str, default: int) -> int:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(env_name: str, default: float) -> float:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


class Settings(BaseModel):
    name: str = "sheetdb"
    database_url: str = "sqlite:///sheetdb.sqlite3"
    lock_timeout_seconds: float = Field(default=10.0, gt=0)
    cache_ttl_seconds: float = Field(default=60.0, ge=0)
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            name=os.environ.get("SHEETDB_NAME", defaults.name),
            database_url=os.environ.get("SHEETDB_DATABASE_URL", defaults.database_url),
            lock_timeout_seconds=_get_float(
                "SHEETDB_LOCK_TIMEOUT_SECONDS", defaults.lock_timeout_seconds
            ),
            cache_ttl_seconds=_get_float("SHEETDB_CACHE_TTL_SECONDS", defaults.cache_ttl_seconds),
            log_level=os.environ.get("SHEETDB_LOG_LEVEL", defaults.log_level).strip().upper(),
            host=os.environ.get("SHEETDB_HOST", defaults.host),
            port=_get_int("SHEETDB_PORT", defaults.port),
        )


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a stdout handler to the ``sheetdb`` logger (once)."""
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(getattr(h, "_sheetdb", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._sheetdb = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger


__all__ = ["Settings", "configure_logging", "logger"]

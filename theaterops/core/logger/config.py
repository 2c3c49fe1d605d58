"""
Logger configuration, built in code or from the environment.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Optional

_TRUTHY = ("1", "true", "yes")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    return raw in _TRUTHY if raw else default


@dataclass(frozen=True)
class LoggerConfig:
    """
    Configuration for the theaterops logger.

    Use LoggerConfig.from_env() for env-based config, or build explicitly.
    """

    # DEBUG, INFO, WARNING, ERROR, CRITICAL
    level: str = "INFO"
    # Directory for the rotating JSON file; None skips the file handler
    log_dir: Optional[str] = None
    log_file_basename: str = "theaterops"
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 5
    # Handlers are attached here; module loggers under it inherit them
    root_name: str = "theaterops"
    console: bool = True
    file_rotating: bool = True

    @classmethod
    def from_env(cls) -> "LoggerConfig":
        """
        Build config from environment variables.

        Env:
            LOG_LEVEL           – default INFO
            LOG_DIR             – unset disables the file handler
            LOG_FILE_BASENAME   – default theaterops
            LOG_MAX_BYTES       – default 5 MB
            LOG_BACKUP_COUNT    – default 5
            LOG_ROOT_NAME       – default theaterops
            LOG_CONSOLE         – "1" / "true" / "yes"
            LOG_FILE_ROTATING   – "1" / "true" / "yes"
        """
        return cls(
            level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            log_dir=os.environ.get("LOG_DIR") or None,
            log_file_basename=os.environ.get("LOG_FILE_BASENAME", "theaterops"),
            max_bytes=int(os.environ.get("LOG_MAX_BYTES", str(5 * 1024 * 1024))),
            backup_count=int(os.environ.get("LOG_BACKUP_COUNT", "5")),
            root_name=os.environ.get("LOG_ROOT_NAME", "theaterops"),
            console=_env_bool("LOG_CONSOLE", True),
            file_rotating=_env_bool("LOG_FILE_ROTATING", True),
        )

    def with_overrides(self, **overrides: Any) -> "LoggerConfig":
        """Return a new config with the non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

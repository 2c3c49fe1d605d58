"""
theaterops logger: rotating JSON file plus console.

Usage:
    from theaterops.core.logger import configure, LoggerConfig

    configure()  # LoggerConfig.from_env(): LOG_LEVEL, LOG_DIR, ...
    configure(LoggerConfig(level="DEBUG", log_dir="/var/log/theaterops"))

Modules log through ``logging.getLogger(__name__)``; names under
``theaterops.`` inherit the configured handlers.
"""
from theaterops.core.logger.config import LoggerConfig
from theaterops.core.logger.formatters import JsonFormatter, PlainConsoleFormatter
from theaterops.core.logger.setup import (
    build_console_handler,
    build_rotating_file_handler,
    configure,
    get_logger,
)

__all__ = [
    "LoggerConfig",
    "JsonFormatter",
    "PlainConsoleFormatter",
    "configure",
    "get_logger",
    "build_rotating_file_handler",
    "build_console_handler",
]

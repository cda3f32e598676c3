"""
Root logger setup for the rowsync command line.

A run logs to stderr (colored, or JSON lines for log shipping) and
optionally to a rotating file that survives long multi-table syncs.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path

from .formatters import ConsoleFormatter, JSONFormatter

# Libraries that log at INFO on every request/export
NOISY_LOGGERS = ("urllib3", "requests", "opentelemetry", "grpc")

FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

TRUTHY = ("true", "1", "yes")


def _console_handler(level: int, json_format: bool, app_name: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        JSONFormatter(app_name=app_name) if json_format else ConsoleFormatter(use_colors=True)
    )
    return handler


def _file_handler(
    log_file: str, level: int, json_format: bool, app_name: str, max_bytes: int, backup_count: int
) -> logging.Handler:
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        filename=log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JSONFormatter(app_name=app_name))
    else:
        handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    console_output: bool = True,
    json_format: bool = False,
    app_name: str = "rowsync",
    max_bytes: int = 50 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Replace the root logger's handlers for a rowsync run

    Args:
        level: Log level name; unknown names fall back to INFO
        log_file: Rotating log file (parent directories are created)
        console_output: Log to stderr
        json_format: JSON lines on every handler instead of text
        app_name: ``app`` field of JSON records
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files kept
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    if console_output:
        root_logger.addHandler(_console_handler(numeric_level, json_format, app_name))
    if log_file:
        root_logger.addHandler(
            _file_handler(log_file, numeric_level, json_format, app_name, max_bytes, backup_count)
        )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging initialized: level={level}, file={log_file or 'none'}, "
        f"console={console_output}, json={json_format}"
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically ``get_logger(__name__)``)."""
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """
    Close and detach every root handler.

    Releases the rotating file handle; the CLI calls this on exit.
    """
    root_logger = logging.getLogger()

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    logging.shutdown()


def configure_from_env() -> None:
    """
    Configure logging from ``LOG_LEVEL``, ``LOG_FILE``, ``LOG_JSON`` and
    ``LOG_CONSOLE`` (defaults: INFO, no file, text, console on).
    """
    setup_logging(
        level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=os.getenv("LOG_FILE"),
        console_output=os.getenv("LOG_CONSOLE", "true").lower() in TRUTHY,
        json_format=os.getenv("LOG_JSON", "false").lower() in TRUTHY,
    )

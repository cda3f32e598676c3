"""
Log formatters: JSON lines for shipping, colored text for a terminal.

Both render the fields passed through ``extra`` (table name, window page,
row counts): JSON nests them under ``context``, text appends ``[k=v, ...]``.
"""

import json
import logging
import socket
import sys
import traceback
from datetime import UTC, datetime
from typing import Any

# Attributes set by LogRecord itself
RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def extract_context(record: logging.LogRecord) -> dict[str, Any]:
    """Return the ``extra`` fields attached to a log record."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in RESERVED_ATTRS and not key.startswith("_")
    }


def _exception_fields(exc_info) -> dict[str, Any]:
    exc_type, exc, tb = exc_info
    return {
        "type": exc_type.__name__,
        "message": str(exc),
        "traceback": traceback.format_exception(exc_type, exc, tb),
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def __init__(
        self,
        include_timestamp: bool = True,
        include_hostname: bool = True,
        app_name: str = "rowsync",
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.app_name = app_name
        self.hostname = socket.gethostname() if include_hostname else None

    def _base_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "app": self.app_name,
        }
        if self.include_timestamp:
            fields["timestamp"] = datetime.fromtimestamp(record.created, UTC).isoformat()
        if self.hostname:
            fields["hostname"] = self.hostname
        fields["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }
        return fields

    def format(self, record: logging.LogRecord) -> str:
        fields = self._base_fields(record)
        if record.exc_info:
            fields["exception"] = _exception_fields(record.exc_info)

        context = extract_context(record)
        if context:
            fields["context"] = context

        # Tuple keys serialize as lists; anything else unknown as str()
        return json.dumps(fields, default=str)


class ConsoleFormatter(logging.Formatter):
    """Text lines with the level name colored when stderr is a terminal."""

    LEVEL_COLORS = {
        "DEBUG": "36",
        "INFO": "32",
        "WARNING": "33",
        "ERROR": "31",
        "CRITICAL": "35",
    }

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def _colored(self, levelname: str) -> str:
        code = self.LEVEL_COLORS.get(levelname)
        if not self.use_colors or code is None:
            return levelname
        return f"\033[{code}m{levelname}\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        record.levelname = self._colored(levelname)
        try:
            line = super().format(record)
        finally:
            record.levelname = levelname

        context = extract_context(record)
        if not context:
            return line
        return line + " [" + ", ".join(f"{key}={value}" for key, value in context.items()) + "]"

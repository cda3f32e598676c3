"""
Structured logging configuration for rowsync

Provides JSON-formatted or colored console logging with contextual fields
(table name, page, verdict counts) attached through ``extra``.

Usage:
    from syncutils.logging import setup_logging, get_logger

    setup_logging(level="INFO", log_file="/var/log/rowsync/sync.log")

    logger = get_logger(__name__)
    logger.info("Page applied", extra={"table_name": "orders", "page": 12})
"""

from .config import configure_from_env, get_logger, setup_logging, shutdown_logging
from .formatters import ConsoleFormatter, JSONFormatter
from .handlers import ContextLogger

__all__ = [
    "setup_logging",
    "get_logger",
    "configure_from_env",
    "shutdown_logging",
    "JSONFormatter",
    "ConsoleFormatter",
    "ContextLogger",
]

"""
Loggers carrying bound context.
"""

import logging
from functools import partialmethod
from typing import Any


class ContextLogger:
    """
    Logger that attaches bound fields to every record it emits.

    Usage:
        log = ContextLogger(__name__, table_name="orders")
        log.info("Window applied", page=3, inserted=12)
        # record carries table_name, page and inserted
    """

    def __init__(self, name: str, **context: Any):
        self.logger = logging.getLogger(name)
        self.context = context

    def bind(self, **context: Any) -> "ContextLogger":
        return ContextLogger(self.logger.name, **{**self.context, **context})

    def log(self, level: int, msg: str, *args, exc_info=None, **fields: Any) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, msg, *args, exc_info=exc_info, extra={**self.context, **fields})

    debug = partialmethod(log, logging.DEBUG)
    info = partialmethod(log, logging.INFO)
    warning = partialmethod(log, logging.WARNING)
    error = partialmethod(log, logging.ERROR)
    exception = partialmethod(log, logging.ERROR, exc_info=True)

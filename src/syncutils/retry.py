"""
Connection retry with exponential backoff

Only establishing a connection is retried, and only for transient failures
(server starting up, refused or reset connections, login timeouts). Query
execution is never wrapped: a failed statement aborts the run.

Usage:
    from syncutils.retry import retry_database_operation

    @retry_database_operation(max_retries=3, base_delay=1.0)
    def connect():
        return psycopg2.connect(**params)
"""

import logging
import random
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# Driver exception classes worth another attempt (psycopg2 / pyodbc / builtins)
TRANSIENT_EXCEPTION_NAMES = frozenset({
    "operationalerror",
    "interfaceerror",
    "connectionerror",
    "timeouterror",
})

# Message fragments of transient failures, including ODBC SQLSTATEs
# 08001 (unable to connect), 08S01 (link failure) and HYT00 (timeout)
TRANSIENT_MESSAGES = (
    "could not connect",
    "unable to connect",
    "communication link failure",
    "the database system is starting up",
    "server closed the connection",
    "broken pipe",
    "network error",
    "timeout",
    "timed out",
    "deadlock",
    "08001",
    "08s01",
    "hyt00",
)

# Failures no retry can fix: bad credentials or a missing database, even when
# the driver raises them as OperationalError (SQLSTATE 28000, 28P01, 3D000)
PERMANENT_MESSAGES = (
    "password authentication failed",
    "login failed",
    "no pg_hba.conf entry",
    "does not exist",
    "cannot open database",
    "28000",
    "28p01",
    "3d000",
)

OnRetry = Callable[[int, Exception, float], None]


def is_retryable_db_exception(exception: Exception) -> bool:
    """True when ``exception`` looks like a transient connection failure."""
    type_name = type(exception).__name__.lower()
    text = f"{type_name} {exception}".lower()
    if any(fragment in text for fragment in PERMANENT_MESSAGES):
        return False
    if type_name in TRANSIENT_EXCEPTION_NAMES:
        return True
    return any(fragment in text for fragment in TRANSIENT_MESSAGES)


def backoff_delay(attempt: int, base_delay: float, max_delay: float = 60.0) -> float:
    """Exponential delay for ``attempt`` (0-based) with +/-25% jitter, floor 0.1s."""
    delay = min(base_delay * 2 ** attempt, max_delay)
    return max(0.1, delay * random.uniform(0.75, 1.25))


@dataclass
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    on_retry: Optional[OnRetry] = None

    def call(self, func: Callable, *args, **kwargs) -> Any:
        name = getattr(func, "__name__", "operation")
        attempt = 0
        while True:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if not is_retryable_db_exception(e):
                    logger.error(f"{name} failed with a permanent error: {type(e).__name__}: {e}")
                    raise
                if attempt >= self.max_retries:
                    logger.error(
                        f"{name} still failing after {self.max_retries} retries: "
                        f"{type(e).__name__}: {e}"
                    )
                    raise
                self._wait(name, attempt, e)
                attempt += 1

    def _wait(self, name: str, attempt: int, error: Exception) -> None:
        delay = backoff_delay(attempt, self.base_delay, self.max_delay)
        logger.warning(
            f"{name} attempt {attempt + 1}/{self.max_retries} hit a transient error "
            f"({type(error).__name__}: {error}); retrying in {delay:.2f}s"
        )
        if self.on_retry:
            try:
                self.on_retry(attempt + 1, error, delay)
            except Exception as callback_error:
                logger.error(f"Error in retry callback: {callback_error}")
        time.sleep(delay)


def retry_database_operation(
    max_retries: int = 3,
    base_delay: float = 1.0,
    on_retry: Optional[OnRetry] = None,
):
    """
    Decorator retrying transient connection errors with exponential backoff

    Args:
        max_retries: Retries after the first attempt
        base_delay: Delay before the first retry, doubled per attempt
        on_retry: Callback ``(attempt, exception, delay)`` run before each sleep
    """
    policy = RetryPolicy(max_retries=max_retries, base_delay=base_delay, on_retry=on_retry)

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            return policy.call(func, *args, **kwargs)

        return wrapper
    return decorator

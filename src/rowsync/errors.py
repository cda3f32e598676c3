"""
Exception hierarchy for rowsync.

Driver exceptions (psycopg2.Error, pyodbc.Error) are never wrapped: a failed
query propagates untouched and aborts the run.
"""


class RowsyncError(Exception):
    """Base class for errors raised by rowsync itself."""


class SkipTable(RowsyncError):
    """A table cannot be reconciled and must be skipped (not a run failure)."""

    def __init__(self, table: str, reason: str):
        super().__init__(f"{table}: {reason}")
        self.table = table
        self.reason = reason


class StreamOrderError(RowsyncError):
    """A fingerprint stream was not strictly ascending by key."""

    def __init__(self, side: str, previous: tuple, current: tuple):
        super().__init__(
            f"Fingerprint stream {side} is not strictly ascending: "
            f"{current!r} follows {previous!r}"
        )
        self.side = side
        self.previous = previous
        self.current = current


class ConfigurationError(RowsyncError):
    """Invalid settings or missing credentials."""


class AuditFormatError(RowsyncError):
    """A persisted manifest or fingerprint file could not be parsed."""

"""
Database handle: the query executor every component goes through.

Wraps one DB-API connection (psycopg2 or pyodbc) in autocommit mode. Each
statement is its own transaction; a whole-table sync is not atomic.
"""

import logging
import uuid
from typing import Any, Iterator, Sequence

import psycopg2

from syncutils.retry import retry_database_operation
from syncutils.tracing import trace_operation

from .config import ConnectionConfig
from .sql.dialect import Dialect, get_dialect

logger = logging.getLogger(__name__)

STREAM_FETCH_SIZE = 5000


class Database:
    """
    Args:
        connection: Open DB-API connection
        dialect: Dialect matching the connection's engine
        host: Server host, for audit directory naming and logs
        name: Database name
    """

    def __init__(self, connection: Any, dialect: Dialect, host: str = "", name: str = ""):
        self.connection = connection
        self.dialect = dialect
        self.host = host
        self.name = name

    def __repr__(self) -> str:
        return f"Database({self.dialect.name}://{self.host}/{self.name})"

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
        """Execute a SELECT and return all rows as tuples."""
        cursor = self.connection.cursor()
        try:
            cursor.execute(sql, tuple(params))
            return [tuple(row) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute a statement and return the affected-row count."""
        cursor = self.connection.cursor()
        try:
            cursor.execute(sql, tuple(params))
            return cursor.rowcount
        finally:
            cursor.close()

    def _stream_cursor(self) -> Any:
        if self.dialect.name == "postgresql":
            # Named (server-side) cursor; WITH HOLD is required under autocommit
            cursor = self.connection.cursor(
                name=f"rowsync_{uuid.uuid4().hex[:12]}", withhold=True
            )
            cursor.itersize = STREAM_FETCH_SIZE
            return cursor
        return self.connection.cursor()

    def iterate(
        self, sql: str, params: Sequence[Any] = (), fetch_size: int = STREAM_FETCH_SIZE
    ) -> Iterator[tuple]:
        """
        Lazily stream rows of a SELECT.

        Forward-only: abandoning the iterator closes the cursor, and a new
        call re-runs the query.
        """
        cursor = self._stream_cursor()
        try:
            cursor.execute(sql, tuple(params))
            while True:
                rows = cursor.fetchmany(fetch_size)
                if not rows:
                    break
                for row in rows:
                    yield tuple(row)
        finally:
            cursor.close()

    def close(self) -> None:
        try:
            self.connection.close()
        except Exception as e:
            logger.warning(f"Error closing connection to {self.host}/{self.name}: {e}")


@retry_database_operation(max_retries=3, base_delay=1.0)
def _connect_postgres(config: ConnectionConfig) -> Any:
    connection = psycopg2.connect(
        host=config.host,
        port=config.port,
        database=config.database,
        user=config.username,
        password=config.password,
        connect_timeout=10,
    )
    connection.set_session(autocommit=True)
    return connection


@retry_database_operation(max_retries=3, base_delay=1.0)
def _connect_sqlserver(config: ConnectionConfig) -> Any:
    # pyodbc needs the unixODBC shared library at import time
    import pyodbc

    conn_str = (
        f"DRIVER={{{config.driver}}};"
        f"SERVER={config.host},{config.port};"
        f"DATABASE={config.database};"
        f"UID={config.username};"
        f"PWD={config.password};"
        f"TrustServerCertificate=yes;"
        f"Encrypt=yes;"
    )
    return pyodbc.connect(conn_str, timeout=10, autocommit=True)


def connect(config: ConnectionConfig) -> Database:
    """Open a Database for ``config``, retrying transient connection errors."""
    dialect = get_dialect(config.dialect)
    with trace_operation("db_connect", dialect=dialect.name, host=config.host):
        if dialect.name == "postgresql":
            connection = _connect_postgres(config)
        else:
            connection = _connect_sqlserver(config)

    logger.info(f"Connected to {config.describe()}")
    return Database(connection, dialect, host=config.host, name=config.database)

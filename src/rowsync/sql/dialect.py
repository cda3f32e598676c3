"""
Per-engine SQL fragments.

Everything engine specific lives here: placeholder style, identifier quoting,
the text canonicalization and hashing used by fingerprints, key collation,
row limiting, identity inserts, and how the destination's
referential-integrity checks are suspended.

Canonical text is engine independent, so a PostgreSQL source and a SQL
Server destination produce identical checksums for identical rows: text is
hashed as UTF-8 on both sides, and floats render as
``<three significant digits>e<exponent>``.
"""

from abc import ABC, abstractmethod

from ..errors import ConfigurationError
from ..schema.models import Column, ColumnKind
from .quoting import (
    quote_postgres_identifier,
    quote_sqlserver_identifier,
    quote_string_literal,
)


class Dialect(ABC):
    """SQL generation strategy for one database engine."""

    name: str = ""
    placeholder: str = "?"
    # Bound parameters per statement / rows per multi-row VALUES list
    max_parameters: int = 65535
    max_values_rows: int | None = None
    # Literal ten as a double, for exact power-of-ten scaling
    ten: str = "10"

    @abstractmethod
    def quote(self, identifier: str) -> str:
        """Quote a table or column identifier."""

    def literal(self, value: str) -> str:
        return quote_string_literal(value)

    def placeholders(self, count: int) -> str:
        return ", ".join([self.placeholder] * count)

    def max_rows_per_statement(self, params_per_row: int) -> int:
        """Largest row count one statement can bind with ``params_per_row`` each."""
        rows = max(1, self.max_parameters // max(1, params_per_row))
        if self.max_values_rows is not None:
            rows = min(rows, self.max_values_rows)
        return rows

    def insert(self, table: str, columns: list[str], row_count: int, identity: bool = False) -> str:
        """Multi-row parameterized INSERT for ``row_count`` rows."""
        values = f"({self.placeholders(len(columns))})"
        column_list = ", ".join(self.quote(c) for c in columns)
        return (
            f"INSERT INTO {self.quote(table)} ({column_list}) "
            f"VALUES {', '.join([values] * row_count)}"
        )

    def identity_insert(self, table: str, enabled: bool) -> list[str]:
        """Statements allowing (or again refusing) explicit identity values."""
        return []

    def key_expression(self, column: Column) -> str:
        """Key column as compared and ordered: binary order for character types."""
        return self.quote(column.name)

    def _magnitude(self, expression: str) -> str:
        return f"FLOOR({self.log10(f'ABS({expression})')})"

    def _mantissa(self, expression: str) -> str:
        # Scale by an exact power of ten so both engines round the same double
        exponent = self._magnitude(expression)
        return (
            f"CASE WHEN {exponent} <= 2 THEN {expression} * POWER({self.ten}, 2 - {exponent}) "
            f"ELSE {expression} / POWER({self.ten}, {exponent} - 2) END"
        )

    @abstractmethod
    def log10(self, expression: str) -> str:
        """Base-10 logarithm."""

    @abstractmethod
    def significant_text(self, expression: str) -> str:
        """
        Render a float as ``<mantissa>e<exponent>``: the value rounded to
        three significant digits of its own magnitude (``10.005`` and ``10.0``
        both give ``100e1``); zero renders as ``0``.
        """

    @abstractmethod
    def as_text(self, expression: str, kind: ColumnKind) -> str:
        """Cast an expression to the canonical text form for its column kind."""

    def coalesce(self, expression: str, fallback: str) -> str:
        return f"COALESCE({expression}, {fallback})"

    @abstractmethod
    def md5(self, expression: str) -> str:
        """Lowercase hex MD5 digest of a text expression."""

    @abstractmethod
    def concat(self, expressions: list[str]) -> str:
        """Concatenate text expressions."""

    @abstractmethod
    def select(
        self,
        select_list: str,
        table: str,
        where: str | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> str:
        """Build a SELECT with optional filter, ordering and row limit."""

    @abstractmethod
    def disable_integrity_checks(self, tables: list[str]) -> list[str]:
        """Statements suspending foreign-key enforcement on the given tables."""

    @abstractmethod
    def enable_integrity_checks(self, tables: list[str]) -> list[str]:
        """Statements restoring foreign-key enforcement on the given tables."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class PostgresDialect(Dialect):
    name = "postgresql"
    placeholder = "%s"
    ten = "CAST(10 AS DOUBLE PRECISION)"

    def quote(self, identifier: str) -> str:
        return quote_postgres_identifier(identifier)

    def insert(self, table, columns, row_count, identity=False):
        sql = super().insert(table, columns, row_count)
        if identity:
            # GENERATED ALWAYS identity columns refuse explicit values otherwise
            sql = sql.replace(") VALUES ", ") OVERRIDING SYSTEM VALUE VALUES ", 1)
        return sql

    def key_expression(self, column: Column) -> str:
        quoted = self.quote(column.name)
        if column.kind is ColumnKind.ENUM:
            # Enums sort in declaration order; compare their labels instead
            return f'CAST({quoted} AS TEXT) COLLATE "C"'
        if column.is_character:
            return f'{quoted} COLLATE "C"'
        return quoted

    def log10(self, expression: str) -> str:
        return f"LOG({expression})"

    def significant_text(self, expression: str) -> str:
        # NaN and infinities have no magnitude; LOG would overflow the cast
        return (
            f"CASE WHEN {expression} = 0 THEN '0' "
            f"WHEN {expression} IN ('NaN', 'Infinity', '-Infinity') THEN CAST({expression} AS TEXT) "
            f"ELSE CAST(CAST(ROUND(CAST({self._mantissa(expression)} AS NUMERIC)) AS BIGINT) AS TEXT)"
            f" || 'e' || CAST(CAST({self._magnitude(expression)} AS INTEGER) AS TEXT) END"
        )

    def as_text(self, expression: str, kind: ColumnKind) -> str:
        if kind is ColumnKind.FLOAT:
            return self.significant_text(expression)
        if kind is ColumnKind.BOOLEAN:
            return f"CAST(CAST({expression} AS INTEGER) AS TEXT)"
        if kind is ColumnKind.DATE:
            return f"to_char({expression}, 'YYYY-MM-DD')"
        if kind is ColumnKind.DATETIME:
            return f"to_char({expression}, 'YYYY-MM-DD HH24:MI:SS.US')"
        if kind is ColumnKind.BINARY:
            return f"encode({expression}, 'hex')"
        return f"CAST({expression} AS TEXT)"

    def md5(self, expression: str) -> str:
        return f"md5({expression})"

    def concat(self, expressions: list[str]) -> str:
        return " || ".join(expressions)

    def select(self, select_list, table, where=None, order_by=None, limit=None):
        query = f"SELECT {select_list} FROM {self.quote(table)}"
        if where:
            query += f" WHERE {where}"
        if order_by:
            query += f" ORDER BY {order_by}"
        if limit is not None:
            query += f" LIMIT {int(limit)}"
        return query

    def disable_integrity_checks(self, tables):
        # Session wide: triggers (and with them FK enforcement) stop firing
        return ["SET session_replication_role = replica"]

    def enable_integrity_checks(self, tables):
        return ["SET session_replication_role = DEFAULT"]


class SQLServerDialect(Dialect):
    name = "sqlserver"
    placeholder = "?"
    max_parameters = 2099
    max_values_rows = 1000
    ten = "CAST(10 AS FLOAT)"

    # Code-point order, matching Python string comparison
    BINARY_COLLATION = "Latin1_General_BIN2"
    # HASHBYTES over VARCHAR in this collation sees UTF-8 bytes (SQL Server 2019+)
    UTF8_COLLATION = "Latin1_General_100_BIN2_UTF8"

    def quote(self, identifier: str) -> str:
        return quote_sqlserver_identifier(identifier)

    def identity_insert(self, table, enabled):
        return [f"SET IDENTITY_INSERT {self.quote(table)} {'ON' if enabled else 'OFF'}"]

    def key_expression(self, column: Column) -> str:
        quoted = self.quote(column.name)
        if column.is_character:
            return f"{quoted} COLLATE {self.BINARY_COLLATION}"
        return quoted

    def log10(self, expression: str) -> str:
        return f"LOG10({expression})"

    def significant_text(self, expression: str) -> str:
        # CONCAT treats NULL as '', so NULL is handled before it
        return (
            f"CASE WHEN {expression} IS NULL THEN NULL "
            f"WHEN {expression} = 0 THEN '0' "
            f"ELSE CONCAT(CAST(ROUND({self._mantissa(expression)}, 0) AS BIGINT), 'e', "
            f"CAST({self._magnitude(expression)} AS INT)) END"
        )

    def as_text(self, expression: str, kind: ColumnKind) -> str:
        if kind is ColumnKind.FLOAT:
            return self.significant_text(expression)
        if kind is ColumnKind.BOOLEAN:
            return f"CONVERT(VARCHAR(1), {expression})"
        if kind is ColumnKind.DATE:
            return f"CONVERT(VARCHAR(10), {expression}, 23)"
        if kind is ColumnKind.DATETIME:
            return f"CONVERT(VARCHAR(26), CAST({expression} AS DATETIME2(6)), 121)"
        if kind is ColumnKind.BINARY:
            return f"LOWER(CONVERT(VARCHAR(MAX), {expression}, 2))"
        return (
            f"CONVERT(VARCHAR(MAX), CONVERT(NVARCHAR(MAX), {expression}) "
            f"COLLATE {self.UTF8_COLLATION})"
        )

    def md5(self, expression: str) -> str:
        return f"LOWER(CONVERT(VARCHAR(32), HASHBYTES('MD5', {expression}), 2))"

    def concat(self, expressions: list[str]) -> str:
        if len(expressions) == 1:
            return expressions[0]
        return f"CONCAT({', '.join(expressions)})"

    def select(self, select_list, table, where=None, order_by=None, limit=None):
        top = f"TOP ({int(limit)}) " if limit is not None else ""
        query = f"SELECT {top}{select_list} FROM {self.quote(table)}"
        if where:
            query += f" WHERE {where}"
        if order_by:
            query += f" ORDER BY {order_by}"
        return query

    def disable_integrity_checks(self, tables):
        return [f"ALTER TABLE {self.quote(t)} NOCHECK CONSTRAINT ALL" for t in tables]

    def enable_integrity_checks(self, tables):
        return [
            f"ALTER TABLE {self.quote(t)} WITH CHECK CHECK CONSTRAINT ALL"
            for t in tables
        ]


_DIALECTS = {
    "postgresql": PostgresDialect,
    "postgres": PostgresDialect,
    "pg": PostgresDialect,
    "sqlserver": SQLServerDialect,
    "mssql": SQLServerDialect,
}


def get_dialect(name: str) -> Dialect:
    """
    Look up a dialect by engine name.

    Raises:
        ConfigurationError: Unknown engine name
    """
    try:
        return _DIALECTS[name.lower()]()
    except KeyError:
        raise ConfigurationError(
            f"Unsupported database dialect: {name!r} "
            f"(expected one of {', '.join(sorted(_DIALECTS))})"
        ) from None

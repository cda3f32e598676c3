"""
Column-driven row decoding.

Result rows are positional tuples; ``RowDecoder`` pairs each field with the
Column it was selected for and maps driver values to plain Python values.
The same module owns the write-side helpers: sentinel normalization before
insert and the approximate serialized size used for the payload budget.
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Iterable, Sequence

from .models import Column, ColumnKind, Table

ZERO_DATE_PREFIX = "0000-00-00"

# Fixed size estimate for a NULL value on the wire
NULL_SIZE = 4


def decode_value(column: Column, value: Any) -> Any:
    """Map one driver value to the Python type for the column's kind."""
    if value is None:
        return None

    kind = column.kind
    if kind is ColumnKind.BINARY:
        if isinstance(value, (memoryview, bytearray)):
            return bytes(value)
        return value
    if kind is ColumnKind.INTEGER and isinstance(value, (Decimal, str)):
        return int(value)
    if kind is ColumnKind.BOOLEAN and isinstance(value, int):
        return bool(value)
    return value


class RowDecoder:
    """
    Decodes positional rows selected as ``columns`` from ``table``.

    Args:
        table: Table the rows were selected from
        columns: Selected column names, in select-list order (default: all)
    """

    def __init__(self, table: Table, columns: Sequence[str] | None = None):
        names = list(columns) if columns is not None else table.column_names
        missing = [n for n in names if n not in table.columns]
        if missing:
            raise KeyError(f"{table.name} has no column(s): {', '.join(missing)}")
        self.table = table
        self.columns = [table.columns[n] for n in names]

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def decode(self, row: Sequence[Any]) -> tuple:
        if len(row) != len(self.columns):
            raise ValueError(
                f"{self.table.name}: row has {len(row)} fields, "
                f"expected {len(self.columns)}"
            )
        return tuple(decode_value(c, v) for c, v in zip(self.columns, row))

    def decode_dict(self, row: Sequence[Any]) -> dict[str, Any]:
        return dict(zip(self.column_names, self.decode(row)))

    def decode_all(self, rows: Iterable[Sequence[Any]]) -> list[tuple]:
        return [self.decode(row) for row in rows]


def is_zero_date(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(ZERO_DATE_PREFIX)


def normalize_for_insert(column: Column, value: Any) -> Any:
    """
    Replace values the destination may reject with NULL.

    A zero date/datetime/timestamp literal and an empty-string enum value both
    become NULL.
    """
    if value is None:
        return None
    kind = column.kind
    if kind in (ColumnKind.DATE, ColumnKind.DATETIME) and is_zero_date(value):
        return None
    if kind is ColumnKind.ENUM and value == "":
        return None
    return value


def normalize_row(columns: Sequence[Column], row: Sequence[Any]) -> tuple:
    return tuple(normalize_for_insert(c, v) for c, v in zip(columns, row))


def estimate_value_size(value: Any) -> int:
    """
    Approximate serialized size of one bound value.

    >>> estimate_value_size("abc"), estimate_value_size(12.5), estimate_value_size(None)
    (3, 4, 4)
    """
    if value is None:
        return NULL_SIZE
    if isinstance(value, (bytes, bytearray, memoryview)):
        return len(value)
    if isinstance(value, str):
        return len(value)
    if isinstance(value, bool):
        return 1
    if isinstance(value, (datetime, date, time)):
        return len(value.isoformat())
    return len(str(value))


def estimate_row_size(row: Iterable[Any]) -> int:
    return sum(estimate_value_size(v) for v in row)

"""
Parameterized key predicates.

Builders produce ``(sql, params)`` pairs and never touch a connection, so the
generated text can be checked without a database.
"""

from dataclasses import dataclass
from typing import Any, Iterable

from ..keys import KEY_MAX, RowKey
from ..schema.models import Table
from .dialect import Dialect


@dataclass(frozen=True)
class Predicate:
    sql: str
    params: tuple = ()

    def __and__(self, other: "Predicate") -> "Predicate":
        return Predicate(f"({self.sql}) AND ({other.sql})", self.params + other.params)


TRUE = Predicate("1 = 1")


def key_expressions(dialect: Dialect, columns: list[str], table: Table | None = None) -> list[str]:
    """
    Quoted key columns; with ``table`` known, character columns compare and
    sort in binary (code point) order, as Python compares key tuples.
    """
    if table is None:
        return [dialect.quote(c) for c in columns]
    return [dialect.key_expression(table.columns[c]) for c in columns]


class KeySetPredicate:
    """
    Matches any of a set of keys: ``(k1 = ? AND k2 = ?) OR (k1 = ? AND k2 = ?)``.
    """

    def __init__(self, dialect: Dialect, columns: list[str], table: Table | None = None):
        if not columns:
            raise ValueError("Key predicate needs at least one column")
        self.dialect = dialect
        self.columns = key_expressions(dialect, columns, table)

    def build(self, keys: Iterable[RowKey]) -> Predicate:
        clause = " AND ".join(f"{c} = {self.dialect.placeholder}" for c in self.columns)
        if len(self.columns) > 1:
            clause = f"({clause})"

        clauses = []
        params: list[Any] = []
        for key in keys:
            if len(key) != len(self.columns):
                raise ValueError(
                    f"Key {key!r} does not match columns ({len(self.columns)} expected)"
                )
            clauses.append(clause)
            params.extend(key)

        if not clauses:
            raise ValueError("Key predicate needs at least one key")

        return Predicate(" OR ".join(clauses), tuple(params))


class KeyRangePredicate:
    """
    Half-open key range ``lower < key <= upper`` under lexicographic ordering.

    Composite keys expand to the row-value comparison by hand, since SQL
    Server has no ``(a, b) > (?, ?)`` syntax:
    ``(a > ?) OR (a = ? AND b > ?)``.
    """

    def __init__(self, dialect: Dialect, columns: list[str], table: Table | None = None):
        if not columns:
            raise ValueError("Key predicate needs at least one column")
        self.dialect = dialect
        self.columns = key_expressions(dialect, columns, table)

    def _compare(self, key: RowKey, strict: str, inclusive: bool) -> Predicate:
        ph = self.dialect.placeholder
        clauses = []
        params: list[Any] = []

        for i, column in enumerate(self.columns):
            parts = [f"{c} = {ph}" for c in self.columns[:i]]
            parts.append(f"{column} {strict} {ph}")
            clauses.append(" AND ".join(parts))
            params.extend(key[: i + 1])

        if inclusive:
            clauses.append(" AND ".join(f"{c} = {ph}" for c in self.columns))
            params.extend(key)

        if len(clauses) == 1:
            return Predicate(clauses[0], tuple(params))
        return Predicate(" OR ".join(f"({c})" for c in clauses), tuple(params))

    def greater_than(self, key: RowKey) -> Predicate:
        return self._compare(key, ">", inclusive=False)

    def at_most(self, key: RowKey) -> Predicate:
        return self._compare(key, "<", inclusive=True)

    def build(self, lower: RowKey | None = None, upper: RowKey | None = None) -> Predicate:
        """
        Args:
            lower: Exclusive lower bound, or None for unbounded
            upper: Inclusive upper bound, or None/KEY_MAX for unbounded
        """
        for bound in (lower, upper):
            if bound is not None and bound is not KEY_MAX and len(bound) != len(self.columns):
                raise ValueError(
                    f"Key {bound!r} does not match columns ({len(self.columns)} expected)"
                )

        predicate = None
        if lower is not None:
            predicate = self.greater_than(lower)
        if upper is not None and upper is not KEY_MAX:
            upper_predicate = self.at_most(upper)
            predicate = upper_predicate if predicate is None else predicate & upper_predicate
        return predicate or TRUE


def order_by(dialect: Dialect, columns: list[str], table: Table | None = None) -> str:
    return ", ".join(key_expressions(dialect, columns, table))

"""
Table gateway: every read and write one side of a reconciliation performs.

The windowed differ, apply executor, cascade walker, audit rollup and
comparator only talk to a ``TableGateway``; SQL text is built here from the
dialect, the fingerprint generator and the key predicate builders.
"""

import logging
from typing import Any, Iterable, Iterator, Sequence

from .database import Database
from .fingerprint import FingerprintGenerator
from .keys import RowFingerprint, RowKey
from .metrics import FINGERPRINTS_READ
from .schema.decode import RowDecoder
from .schema.models import ForeignKey, Schema, Table
from .sql.predicates import KeyRangePredicate, KeySetPredicate, order_by

logger = logging.getLogger(__name__)

# Keys per lookup statement when fetching rows or child keys
KEY_BATCH_SIZE = 1000


def _chunks(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class TableGateway:
    """
    Args:
        database: Database handle for this side
        schema: Schema Model the tables belong to
        role: "source" or "destination", used in logs and metrics
    """

    def __init__(self, database: Database, schema: Schema, role: str = "source"):
        self.database = database
        self.dialect = database.dialect
        self.schema = schema
        self.role = role
        self.fingerprints = FingerprintGenerator(self.dialect)
        self._key_decoders: dict[str, RowDecoder] = {}

    @property
    def label(self) -> str:
        """``host.database``, used to name audit directories."""
        return f"{self.database.host}.{self.database.name}"

    def _key_width_batch(self, table: Table) -> int:
        return min(
            KEY_BATCH_SIZE,
            self.dialect.max_rows_per_statement(len(table.primary_key_names)),
        )

    def max_rows_per_statement(self, params_per_row: int) -> int:
        return self.dialect.max_rows_per_statement(params_per_row)

    def _local(self, table: Table) -> Table:
        """This side's own definition of ``table`` (types and nullability may differ)."""
        return self.schema.tables.get(table.name, table)

    def _to_fingerprint(self, table: Table, row: Sequence[Any]) -> RowFingerprint:
        decoder = self._key_decoders.get(table.name)
        if decoder is None:
            decoder = RowDecoder(table, table.primary_key_names)
            self._key_decoders[table.name] = decoder
        width = len(decoder.columns)
        return RowFingerprint(decoder.decode(row[:width]), str(row[width]))

    def _fingerprint_query(
        self,
        table: Table,
        lower: RowKey | None = None,
        upper: RowKey | None = None,
        limit: int | None = None,
    ) -> tuple[str, tuple]:
        pk = table.primary_key_names
        predicate = KeyRangePredicate(self.dialect, pk, table).build(lower=lower, upper=upper)
        where = predicate.sql if predicate.params else None
        sql = self.dialect.select(
            self.fingerprints.projection(table),
            table.name,
            where=where,
            order_by=order_by(self.dialect, pk, table),
            limit=limit,
        )
        return sql, predicate.params

    # -- reads -----------------------------------------------------------

    def fingerprint_page(
        self, table: Table, after: RowKey | None = None, limit: int = 10000
    ) -> list[RowFingerprint]:
        """Up to ``limit`` fingerprints with key > ``after``, ascending."""
        table = self._local(table)
        sql, params = self._fingerprint_query(table, lower=after, limit=limit)
        page = [self._to_fingerprint(table, row) for row in self.database.query(sql, params)]
        FINGERPRINTS_READ.labels(table=table.name, side=self.role).inc(len(page))
        return page

    def fingerprint_range(
        self, table: Table, lower: RowKey | None, upper: RowKey
    ) -> list[RowFingerprint]:
        """Fingerprints with ``lower < key <= upper``, ascending."""
        table = self._local(table)
        sql, params = self._fingerprint_query(table, lower=lower, upper=upper)
        page = [self._to_fingerprint(table, row) for row in self.database.query(sql, params)]
        FINGERPRINTS_READ.labels(table=table.name, side=self.role).inc(len(page))
        return page

    def stream_fingerprints(self, table: Table) -> Iterator[RowFingerprint]:
        """Lazily stream every fingerprint of ``table`` in key order."""
        table = self._local(table)
        sql, params = self._fingerprint_query(table)
        counter = FINGERPRINTS_READ.labels(table=table.name, side=self.role)
        for row in self.database.iterate(sql, params):
            counter.inc()
            yield self._to_fingerprint(table, row)

    def fetch_rows(
        self, table: Table, keys: Sequence[RowKey], columns: Sequence[str] | None = None
    ) -> list[tuple]:
        """
        Full rows for ``keys``, decoded through the Schema Model.

        Rows come back in key order with fields in ``columns`` order
        (default: every column in declaration order). Missing keys are
        simply absent.
        """
        table = self._local(table)
        columns = list(columns) if columns is not None else table.column_names
        decoder = RowDecoder(table, columns)
        pk = table.primary_key_names
        builder = KeySetPredicate(self.dialect, pk, table)
        select_list = ", ".join(self.dialect.quote(c) for c in columns)

        rows: list[tuple] = []
        for chunk in _chunks(list(keys), self._key_width_batch(table)):
            predicate = builder.build(chunk)
            sql = self.dialect.select(
                select_list, table.name, where=predicate.sql, order_by=order_by(self.dialect, pk, table)
            )
            rows.extend(decoder.decode_all(self.database.query(sql, predicate.params)))
        return rows

    def fetch_row_map(
        self, table: Table, keys: Sequence[RowKey], columns: Sequence[str]
    ) -> dict[RowKey, dict[str, Any]]:
        """Rows for ``keys`` as ``{key: {column: value}}``."""
        pk = table.primary_key_names
        selected = pk + [c for c in columns if c not in pk]
        width = len(pk)
        result = {}
        for row in self.fetch_rows(table, keys, selected):
            values = dict(zip(selected, row))
            result[tuple(row[:width])] = {c: values[c] for c in columns}
        return result

    def child_keys(self, fk: ForeignKey, parent_keys: Sequence[RowKey]) -> list[RowKey]:
        """
        Primary keys of ``fk.child_table`` rows referencing any of ``parent_keys``.
        """
        parent = self.schema.table(fk.parent_table)
        child = self.schema.table(fk.child_table)
        parent_pk = parent.primary_key_names

        if all(c in parent_pk for c in fk.parent_columns):
            positions = [parent_pk.index(c) for c in fk.parent_columns]
            referenced = [tuple(key[i] for i in positions) for key in parent_keys]
        else:
            # FK targets a unique constraint other than the primary key
            referenced = self.fetch_rows(parent, parent_keys, fk.parent_columns)

        referenced = [v for v in dict.fromkeys(referenced) if None not in v]
        if not referenced:
            return []

        child_pk = child.primary_key_names
        builder = KeySetPredicate(self.dialect, fk.child_columns, child)
        key_decoder = RowDecoder(child, child_pk)
        select_list = ", ".join(self.dialect.quote(c) for c in child_pk)
        batch = min(KEY_BATCH_SIZE, self.dialect.max_rows_per_statement(len(fk.child_columns)))

        keys: dict[RowKey, None] = {}
        for chunk in _chunks(referenced, batch):
            predicate = builder.build(chunk)
            sql = self.dialect.select(
                select_list, child.name, where=predicate.sql,
                order_by=order_by(self.dialect, child_pk, child),
            )
            for row in self.database.query(sql, predicate.params):
                keys[key_decoder.decode(row)] = None
        return list(keys)

    # -- writes ----------------------------------------------------------

    def delete_keys(self, table: Table, keys: Sequence[RowKey]) -> int:
        """One DELETE matching any of ``keys``; returns the affected-row count."""
        table = self._local(table)
        predicate = KeySetPredicate(self.dialect, table.primary_key_names, table).build(keys)
        sql = f"DELETE FROM {self.dialect.quote(table.name)} WHERE {predicate.sql}"
        return self.database.execute(sql, predicate.params)

    def insert_rows(self, table: Table, columns: list[str], rows: Sequence[Sequence[Any]]) -> int:
        """
        One multi-row INSERT; returns the affected-row count.

        Identity columns receive the source's values: on SQL Server the
        INSERT runs between ``SET IDENTITY_INSERT ON`` and ``OFF``.
        """
        table = self._local(table)
        identity = table.has_identity
        sql = self.dialect.insert(table.name, columns, len(rows), identity=identity)
        params: list[Any] = []
        for row in rows:
            params.extend(row)

        if not identity:
            return self.database.execute(sql, params)

        self._run_all(self.dialect.identity_insert(table.name, enabled=True))
        try:
            return self.database.execute(sql, params)
        finally:
            self._run_all(self.dialect.identity_insert(table.name, enabled=False))

    def _run_all(self, statements: Iterable[str]) -> None:
        for statement in statements:
            self.database.execute(statement)

    def disable_integrity_checks(self, tables: list[str]) -> None:
        self._run_all(self.dialect.disable_integrity_checks(tables))
        logger.info(f"Integrity checks disabled on {self.role} ({len(tables)} tables)")

    def enable_integrity_checks(self, tables: list[str]) -> None:
        self._run_all(self.dialect.enable_integrity_checks(tables))
        logger.info(f"Integrity checks re-enabled on {self.role}")

"""
Batched Apply Executor.

Turns diff verdicts into DELETE and multi-row INSERT statements against the
destination. Updates are realized as delete-then-insert of the same key.
Inserted rows are re-selected from the source, normalized, and split so no
statement exceeds ``max_payload_bytes`` of bound values.

Affected-row mismatches are warnings; statement failures propagate.
"""

from dataclasses import dataclass
from typing import Any, Iterable

from syncutils.logging import ContextLogger
from syncutils.tracing import trace_operation

from .config import DEFAULT_BATCH_SIZE, DEFAULT_MAX_PAYLOAD_BYTES
from .differ import DiffEntry, Verdict
from .keys import RowKey, format_key
from .metrics import APPLY_DISCREPANCIES, APPLY_ROWS, APPLY_STATEMENTS
from .schema.decode import estimate_row_size, normalize_row
from .schema.models import Table

# Keys quoted in a discrepancy warning
WARNING_KEY_SAMPLE = 5


@dataclass
class ApplyStats:
    deleted: int = 0
    inserted: int = 0
    delete_statements: int = 0
    insert_statements: int = 0
    discrepancies: int = 0
    deferred_rows: int = 0
    missing_source_rows: int = 0

    def merge(self, other: "ApplyStats") -> None:
        for name in self.__dataclass_fields__:
            setattr(self, name, getattr(self, name) + getattr(other, name))

    def to_dict(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


def describe_keys(pk: list[str], keys: list[RowKey]) -> str:
    """Short key-predicate description for log lines."""
    shown = ", ".join(format_key(k) for k in keys[:WARNING_KEY_SAMPLE])
    more = f" (+{len(keys) - WARNING_KEY_SAMPLE} more)" if len(keys) > WARNING_KEY_SAMPLE else ""
    return f"({', '.join(pk)}) in [{shown}]{more}"


class BatchedApplyExecutor:
    """
    Args:
        source: Source TableGateway (rows to insert are read from here)
        destination: Destination TableGateway (statements run here)
        table: Table being applied
        batch_size: Pending operations that trigger a flush
        max_payload_bytes: Approximate bound-value budget per INSERT
        keys_must_exist: Warn when a delete misses or a source row is gone.
            The cascade walker turns this off: its key sets are a union of
            both sides, so absent rows are expected.
    """

    def __init__(
        self,
        source: Any,
        destination: Any,
        table: Table,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES,
        keys_must_exist: bool = True,
    ):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if max_payload_bytes <= 0:
            raise ValueError(f"max_payload_bytes must be positive, got {max_payload_bytes}")

        self.source = source
        self.destination = destination
        self.table = table
        self.batch_size = batch_size
        self.max_payload_bytes = max_payload_bytes
        self.keys_must_exist = keys_must_exist

        self.column_names = table.column_names
        self.columns = [table.columns[name] for name in self.column_names]
        self._key_positions = [self.column_names.index(n) for n in table.primary_key_names]
        self.pending_deletes: list[RowKey] = []
        self.pending_inserts: list[RowKey] = []
        self.stats = ApplyStats()
        self.log = ContextLogger(__name__, table_name=table.name)

    @property
    def pending(self) -> int:
        return len(self.pending_deletes) + len(self.pending_inserts)

    def record(self, entry: DiffEntry) -> None:
        verdict = entry.verdict
        if verdict is Verdict.INSERT:
            self.pending_inserts.append(entry.key)
        elif verdict is Verdict.DELETE:
            self.pending_deletes.append(entry.key)
        elif verdict is Verdict.UPDATE:
            self.pending_deletes.append(entry.key)
            self.pending_inserts.append(entry.key)
        else:
            return

        if self.pending >= self.batch_size:
            self.flush()

    def record_all(self, entries: Iterable[DiffEntry]) -> None:
        for entry in entries:
            self.record(entry)

    def resync(self, keys: Iterable[RowKey]) -> None:
        """Delete ``keys`` from the destination and re-insert them from the source."""
        for key in keys:
            self.record(DiffEntry(Verdict.UPDATE, key))

    def flush(self) -> None:
        """Execute all pending deletes, then all pending inserts."""
        if not self.pending:
            return
        with trace_operation(
            "apply_flush",
            table=self.table.name,
            deletes=len(self.pending_deletes),
            inserts=len(self.pending_inserts),
        ):
            self._flush_deletes()
            self._flush_inserts()

    def finish(self) -> ApplyStats:
        self.flush()
        return self.stats

    def _discrepancy(self, operation: str, expected: int, affected: int, keys: list[RowKey]) -> None:
        self.stats.discrepancies += 1
        APPLY_DISCREPANCIES.labels(table=self.table.name, operation=operation).inc()
        self.log.warning(
            f"{operation.upper()} on {self.table.name} affected {affected} rows, "
            f"expected {expected}: {describe_keys(self.table.primary_key_names, keys)}",
            operation=operation,
            expected=expected,
            affected=affected,
        )

    def _flush_deletes(self) -> None:
        keys, self.pending_deletes = self.pending_deletes, []
        if not keys:
            return

        pk = self.table.primary_key_names
        chunk_size = self.destination.max_rows_per_statement(len(pk))
        for start in range(0, len(keys), chunk_size):
            chunk = keys[start:start + chunk_size]
            affected = self.destination.delete_keys(self.table, chunk)
            self.stats.delete_statements += 1
            self.stats.deleted += max(affected, 0)
            APPLY_STATEMENTS.labels(table=self.table.name, operation="delete").inc()
            APPLY_ROWS.labels(table=self.table.name, operation="delete").inc(max(affected, 0))

            if self.keys_must_exist and affected != len(chunk):
                self._discrepancy("delete", len(chunk), affected, chunk)

    def _flush_inserts(self) -> None:
        keys, self.pending_inserts = self.pending_inserts, []
        if not keys:
            return

        rows = [
            normalize_row(self.columns, row)
            for row in self.source.fetch_rows(self.table, keys, self.column_names)
        ]
        missing = len(keys) - len(rows)
        if missing:
            self.stats.missing_source_rows += missing
            if self.keys_must_exist:
                self.log.warning(
                    f"{missing} of {len(keys)} rows to insert no longer exist in the source",
                    missing=missing,
                )

        max_rows = self.destination.max_rows_per_statement(len(self.column_names))
        while rows:
            statement_rows = []
            payload = 0
            for row in rows[:max_rows]:
                size = estimate_row_size(row)
                if statement_rows and payload + size > self.max_payload_bytes:
                    break
                statement_rows.append(row)
                payload += size

            if payload > self.max_payload_bytes:
                self.log.warning(
                    f"Single row of ~{payload} bytes exceeds the {self.max_payload_bytes} "
                    f"byte payload budget; sending it alone",
                    payload_bytes=payload,
                )

            rows = rows[len(statement_rows):]
            if rows:
                self.stats.deferred_rows += len(rows)
                self.log.debug(
                    f"Payload budget reached after {len(statement_rows)} rows "
                    f"(~{payload} bytes), deferring {len(rows)}"
                )

            affected = self.destination.insert_rows(self.table, self.column_names, statement_rows)
            self.stats.insert_statements += 1
            self.stats.inserted += max(affected, 0)
            APPLY_STATEMENTS.labels(table=self.table.name, operation="insert").inc()
            APPLY_ROWS.labels(table=self.table.name, operation="insert").inc(max(affected, 0))

            if affected != len(statement_rows):
                self._discrepancy(
                    "insert",
                    len(statement_rows),
                    affected,
                    [self._key_of(r) for r in statement_rows],
                )

    def _key_of(self, row: tuple) -> RowKey:
        return tuple(row[i] for i in self._key_positions)

"""
Table and database synchronization.

``sync_table`` runs the windowed differ over one table and, unless running in
diff-only mode, feeds every change into a batched apply executor.
``sync_database`` does that for every selected table, in name order, with
the destination's integrity checks suspended for the whole run.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

from syncutils.tracing import trace_operation

from .apply import ApplyStats, BatchedApplyExecutor
from .config import SyncSettings
from .differ import DiffSummary
from .keys import RowKey, format_key
from .metrics import TABLE_SYNC_DURATION, TABLES_SKIPPED
from .schema.models import Table
from .windowed import WindowedDiffer

logger = logging.getLogger(__name__)


class Outcome:
    IN_SYNC = "in_sync"
    SYNCED = "synced"
    DIFFERENT = "different"
    SKIPPED = "skipped"


@dataclass
class TableSyncResult:
    table: str
    outcome: str
    summary: DiffSummary = field(default_factory=DiffSummary)
    stats: ApplyStats = field(default_factory=ApplyStats)
    windows: int = 0
    seconds: float = 0.0
    last_key: RowKey | None = None
    skip_reason: str | None = None

    @property
    def rows_per_second(self) -> float:
        return self.summary.rows_a / self.seconds if self.seconds > 0 else 0.0

    def describe(self) -> str:
        if self.outcome == Outcome.SKIPPED:
            return f"{self.table:<48} skipped: {self.skip_reason}"
        s = self.summary
        return (
            f"{self.table:<48} {s.rows_a:>10} rows {self.rows_per_second / 1000:8.3f} krows/sec "
            f"{self.seconds:7.3f}s  +{s.inserts} -{s.deletes} ~{s.updates}  {self.outcome}"
        )


@dataclass
class SyncRunResult:
    tables: list[TableSyncResult] = field(default_factory=list)

    @property
    def skipped(self) -> list[TableSyncResult]:
        return [t for t in self.tables if t.outcome == Outcome.SKIPPED]

    @property
    def changed(self) -> list[TableSyncResult]:
        return [t for t in self.tables if t.outcome in (Outcome.SYNCED, Outcome.DIFFERENT)]

    @property
    def has_differences(self) -> bool:
        return bool(self.changed)

    @property
    def discrepancies(self) -> int:
        return sum(t.stats.discrepancies for t in self.tables)


@contextmanager
def integrity_checks_suspended(gateway: Any, tables: list[str]) -> Iterator[None]:
    """
    Disable the gateway's referential-integrity checks for the block.

    Re-enabling runs exactly once on the way out, also on error. If it fails
    while another exception is propagating, the failure is only logged.
    """
    gateway.disable_integrity_checks(tables)
    failed = False
    try:
        yield
    except BaseException:
        failed = True
        raise
    finally:
        try:
            gateway.enable_integrity_checks(tables)
        except Exception as e:
            logger.error(f"Failed to re-enable integrity checks on {gateway.role}: {e}")
            if not failed:
                raise


def skip_reason(table: Table, destination: Any) -> str | None:
    """Why ``table`` cannot be synced into ``destination``, or None."""
    reason = table.unusable_reason()
    if reason:
        return reason

    other = destination.schema.tables.get(table.name)
    if other is None:
        return "missing in destination"
    reason = other.unusable_reason()
    if reason:
        return f"destination: {reason}"
    if other.primary_key_names != table.primary_key_names:
        return "primary keys differ between source and destination"
    if set(other.columns) != set(table.columns):
        return "column sets differ between source and destination"
    return None


def _skipped(table: Table, reason: str) -> TableSyncResult:
    logger.warning(f"Skipping {table.name}: {reason}")
    TABLES_SKIPPED.labels(table=table.name).inc()
    return TableSyncResult(table=table.name, outcome=Outcome.SKIPPED, skip_reason=reason)


def sync_table(
    source: Any,
    destination: Any,
    table: Table,
    settings: SyncSettings,
    apply: bool = True,
    start_key: RowKey | None = None,
) -> TableSyncResult:
    """
    Diff one table and, when ``apply`` is set, make the destination match.

    Query failures propagate.
    """
    reason = skip_reason(table, destination)
    if reason:
        return _skipped(table, reason)

    started = time.monotonic()
    differ = WindowedDiffer(
        source,
        destination,
        table,
        page_size=settings.page_size,
        start_key=start_key,
        trailing_sweep=settings.trailing_sweep,
    )
    executor = None
    if apply:
        executor = BatchedApplyExecutor(
            source,
            destination,
            table,
            batch_size=settings.batch_size,
            max_payload_bytes=settings.max_payload_bytes,
        )

    result = TableSyncResult(table=table.name, outcome=Outcome.IN_SYNC, summary=differ.summary)
    with trace_operation("sync_table", table=table.name, apply=apply) as span:
        for window in differ:
            result.windows += 1
            if executor is not None:
                for entry in window.changes:
                    executor.record(entry)
            logger.info(
                f"{table.name}: window {window.index + 1} up to {format_key(window.upper)} "
                f"({differ.summary.rows_a} rows, {differ.summary.changes} changes)"
            )

        if executor is not None:
            result.stats = executor.finish()

        span.set_attribute("rows.source", differ.summary.rows_a)
        span.set_attribute("rows.changed", differ.summary.changes)

    result.seconds = time.monotonic() - started
    result.last_key = differ.last_key
    TABLE_SYNC_DURATION.labels(table=table.name).observe(result.seconds)

    if not differ.summary.is_identical:
        result.outcome = Outcome.SYNCED if apply else Outcome.DIFFERENT

    logger.info(result.describe())
    return result


def sync_database(
    source: Any,
    destination: Any,
    settings: SyncSettings,
    apply: bool = True,
) -> SyncRunResult:
    """
    Sync every selected table of the source schema, in table-name order.

    ``settings.start_table``/``start_key`` resume an interrupted run; the
    start key only applies to the start table.
    """
    settings.validate()
    tables = source.schema.select_tables(
        include=settings.include_tables,
        skip=settings.skip_tables,
        start_table=settings.start_table,
    )
    logger.info(f"Reconciling {len(tables)} tables ({'apply' if apply else 'diff only'})")

    run = SyncRunResult()

    def run_tables():
        for table in tables:
            start_key = settings.start_key if table.name == settings.start_table else None
            run.tables.append(
                sync_table(source, destination, table, settings, apply=apply, start_key=start_key)
            )

    if apply and settings.suspend_integrity_checks:
        with integrity_checks_suspended(destination, sorted(destination.schema.tables)):
            run_tables()
    else:
        run_tables()

    logger.info(
        f"Reconciled {len(run.tables)} tables: {len(run.changed)} with differences, "
        f"{len(run.skipped)} skipped, {run.discrepancies} apply discrepancies"
    )
    return run

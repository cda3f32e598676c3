"""
Offline Comparator.

Compares two audit directories. Tables whose rollup or row count differ are
investigated by re-running the Sorted-Stream Differ over the two persisted
fingerprint files, which needs no database. When database gateways are
supplied, a bounded sample of changed keys is drilled into column by column,
with optional equivalence rules absorbing known-harmless differences.
"""

import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

from syncutils.tracing import trace_operation

from .audit import ManifestEntry, fingerprint_path, read_fingerprints, read_manifest
from .config import EquivalenceRules
from .differ import DiffSummary, SortedStreamDiffer
from .keys import RowKey, encode_key, format_key
from .schema.decode import is_zero_date
from .schema.models import Table

logger = logging.getLogger(__name__)

DRILL_DOWN_BATCH_SIZE = 1000
DEFAULT_SAMPLE_SIZE = 1000
DEFAULT_MAX_EXAMPLES = 50


@dataclass(frozen=True)
class ColumnMismatch:
    key: RowKey
    column: str
    value_a: Any
    value_b: Any

    def describe(self, table: str) -> str:
        return f"{table}[{format_key(self.key)}]::{self.column} {self.value_a!r} vs {self.value_b!r}"


@dataclass
class DrillDown:
    sampled_keys: int = 0
    missing_keys: int = 0
    differing_columns: set[str] = field(default_factory=set)
    ignored: int = 0
    ignored_columns: set[str] = field(default_factory=set)
    examples: list[ColumnMismatch] = field(default_factory=list)


@dataclass
class TableComparison:
    table: str
    entry_a: ManifestEntry
    entry_b: ManifestEntry
    summary: DiffSummary
    drill_down: DrillDown | None = None

    @property
    def only_in_a(self) -> int:
        return self.summary.inserts

    @property
    def only_in_b(self) -> int:
        return self.summary.deletes

    @property
    def changed(self) -> int:
        return self.summary.updates


@dataclass
class ComparisonReport:
    directory_a: Path
    directory_b: Path
    tables: list[TableComparison] = field(default_factory=list)
    only_in_a: list[str] = field(default_factory=list)
    only_in_b: list[str] = field(default_factory=list)
    matching: int = 0

    @property
    def has_discrepancies(self) -> bool:
        return bool(self.tables)


def select_divergent_tables(
    manifest_a: dict[str, ManifestEntry], manifest_b: dict[str, ManifestEntry]
) -> list[str]:
    """
    Tables present in both manifests whose rollup or row count differ.

    A table missing from either manifest is not a divergence.
    """
    return sorted(
        name for name in manifest_a.keys() & manifest_b.keys()
        if manifest_a[name].rollup != manifest_b[name].rollup
        or manifest_a[name].row_count != manifest_b[name].row_count
    )


def investigate_table(
    entry_a: ManifestEntry,
    entry_b: ManifestEntry,
    directory_a: Path,
    directory_b: Path,
    changed_keys_limit: int | None = None,
) -> TableComparison:
    """Diff the two persisted fingerprint streams of one table."""
    table_name = entry_a.table
    differ = SortedStreamDiffer(changed_keys_limit=changed_keys_limit)
    with trace_operation("investigate_table", table=table_name):
        summary = differ.run(
            read_fingerprints(fingerprint_path(directory_a, table_name)),
            read_fingerprints(fingerprint_path(directory_b, table_name)),
        )
    return TableComparison(table_name, entry_a, entry_b, summary)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def values_equivalent(a: Any, b: Any, rules: EquivalenceRules) -> tuple[bool, bool]:
    """
    Compare two column values.

    Returns:
        (equivalent, by_rule): by_rule is True when only an equivalence rule
        made the values match
    """
    if a == b:
        return True, False
    if rules.null_equals_empty and ((a is None and b == "") or (b is None and a == "")):
        return True, True
    if rules.null_equals_zero_date and (
        (a is None and is_zero_date(b)) or (b is None and is_zero_date(a))
    ):
        return True, True
    if rules.numeric_tolerance and _is_number(a) and _is_number(b):
        if math.isclose(float(a), float(b), rel_tol=rules.numeric_tolerance):
            return True, True
    return False, False


def drill_down(
    table_a: Table,
    table_b: Table,
    gateway_a: Any,
    gateway_b: Any,
    keys: list[RowKey],
    rules: EquivalenceRules,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    max_examples: int = DEFAULT_MAX_EXAMPLES,
) -> DrillDown:
    """
    Compare full rows of a sample of changed keys, common columns only.

    Stops early once ``max_examples`` mismatches have been collected.
    """
    columns = sorted(set(table_a.columns) & set(table_b.columns))
    result = DrillDown()
    sample = keys[:sample_size]

    for start in range(0, len(sample), DRILL_DOWN_BATCH_SIZE):
        if len(result.examples) >= max_examples:
            break
        batch = sample[start:start + DRILL_DOWN_BATCH_SIZE]
        rows_a = {encode_key(k): v for k, v in gateway_a.fetch_row_map(table_a, batch, columns).items()}
        rows_b = {encode_key(k): v for k, v in gateway_b.fetch_row_map(table_b, batch, columns).items()}

        for key in batch:
            encoded = encode_key(key)
            row_a = rows_a.get(encoded)
            row_b = rows_b.get(encoded)
            result.sampled_keys += 1
            if row_a is None or row_b is None:
                result.missing_keys += 1
                continue

            for column in columns:
                equivalent, by_rule = values_equivalent(row_a[column], row_b[column], rules)
                if by_rule:
                    result.ignored += 1
                    result.ignored_columns.add(column)
                if equivalent:
                    continue
                result.differing_columns.add(column)
                if len(result.examples) < max_examples:
                    result.examples.append(
                        ColumnMismatch(key, column, row_a[column], row_b[column])
                    )

    return result


class AuditComparator:
    """
    Args:
        directory_a: Audit directory of side A
        directory_b: Audit directory of side B
        rules: Equivalence rules for drill-down
        gateway_a: Optional TableGateway for side A, enables drill-down
        gateway_b: Optional TableGateway for side B
        sample_size: Changed keys drilled into per table
        max_examples: Column mismatch examples kept per table
    """

    def __init__(
        self,
        directory_a: Path,
        directory_b: Path,
        rules: EquivalenceRules | None = None,
        gateway_a: Any = None,
        gateway_b: Any = None,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        max_examples: int = DEFAULT_MAX_EXAMPLES,
    ):
        self.directory_a = Path(directory_a)
        self.directory_b = Path(directory_b)
        self.rules = rules or EquivalenceRules()
        self.gateway_a = gateway_a
        self.gateway_b = gateway_b
        self.sample_size = sample_size
        self.max_examples = max_examples

    @property
    def can_drill_down(self) -> bool:
        return self.gateway_a is not None and self.gateway_b is not None

    def compare(self) -> ComparisonReport:
        manifest_a = read_manifest(self.directory_a)
        manifest_b = read_manifest(self.directory_b)
        report = ComparisonReport(
            directory_a=self.directory_a,
            directory_b=self.directory_b,
            only_in_a=sorted(manifest_a.keys() - manifest_b.keys()),
            only_in_b=sorted(manifest_b.keys() - manifest_a.keys()),
        )

        divergent = select_divergent_tables(manifest_a, manifest_b)
        report.matching = len(manifest_a.keys() & manifest_b.keys()) - len(divergent)
        logger.info(
            f"{len(divergent)} of {len(manifest_a.keys() & manifest_b.keys())} "
            f"common tables differ"
        )

        for name in divergent:
            comparison = investigate_table(
                manifest_a[name], manifest_b[name], self.directory_a, self.directory_b,
                changed_keys_limit=self.sample_size,
            )
            summary = comparison.summary

            if summary.changed_keys and self.can_drill_down:
                table_a = self.gateway_a.schema.tables.get(name)
                table_b = self.gateway_b.schema.tables.get(name)
                if table_a is None or table_b is None:
                    logger.warning(f"{name}: not present in both live schemas, skipping drill-down")
                else:
                    with trace_operation("drill_down", table=name):
                        comparison.drill_down = drill_down(
                            table_a, table_b, self.gateway_a, self.gateway_b,
                            summary.changed_keys, self.rules,
                            sample_size=self.sample_size, max_examples=self.max_examples,
                        )

            report.tables.append(comparison)

        return report

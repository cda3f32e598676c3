"""
Foreign-Key Cascade Walker.

Re-syncs a set of keys in one table and then, following every foreign key
where that table is the parent, the child rows referencing those keys, and
so on down the dependency chain.

Child keys are collected from both sides: source children are (re)inserted
and destination-only children are deleted. A visited set of ``(table, key)``
pairs per walk keeps cyclic foreign-key graphs finite.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from syncutils.tracing import trace_operation

from .apply import ApplyStats, BatchedApplyExecutor
from .config import DEFAULT_BATCH_SIZE, DEFAULT_MAX_PAYLOAD_BYTES
from .errors import SkipTable
from .keys import RowKey, as_key
from .schema.models import Schema, Table

logger = logging.getLogger(__name__)


@dataclass
class CascadeResult:
    root_table: str
    visit_order: list[str] = field(default_factory=list)
    synced_keys: dict[str, int] = field(default_factory=dict)
    skipped_tables: dict[str, str] = field(default_factory=dict)
    stats: ApplyStats = field(default_factory=ApplyStats)

    @property
    def total_keys(self) -> int:
        return sum(self.synced_keys.values())


class CascadeWalker:
    def __init__(
        self,
        schema: Schema,
        source: Any,
        destination: Any,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES,
    ):
        self.schema = schema
        self.source = source
        self.destination = destination
        self.batch_size = batch_size
        self.max_payload_bytes = max_payload_bytes
        self.children = schema.children_index()

    def walk(self, table_name: str, keys: Iterable[Any]) -> CascadeResult:
        """
        Re-sync ``keys`` of ``table_name`` and everything referencing them.

        Raises:
            SkipTable: The root table has no usable primary key
        """
        root = self.schema.table(table_name)
        reason = root.unusable_reason()
        if reason:
            raise SkipTable(root.name, reason)

        result = CascadeResult(root_table=root.name)
        with trace_operation("cascade", table=root.name):
            self._walk(root, [as_key(k) for k in keys], set(), result, depth=0)

        logger.info(
            f"Cascade from {root.name} synced {result.total_keys} keys "
            f"across {len(result.synced_keys)} tables"
        )
        return result

    def _walk(
        self,
        table: Table,
        keys: list[RowKey],
        visited: set[tuple[str, RowKey]],
        result: CascadeResult,
        depth: int,
    ) -> None:
        fresh = [k for k in dict.fromkeys(keys) if (table.name, k) not in visited]
        if not fresh:
            return
        visited.update((table.name, k) for k in fresh)

        logger.debug(f"{'  ' * depth}{table.name}: re-syncing {len(fresh)} keys")
        executor = BatchedApplyExecutor(
            self.source,
            self.destination,
            table,
            batch_size=self.batch_size,
            max_payload_bytes=self.max_payload_bytes,
            keys_must_exist=False,
        )
        executor.resync(fresh)
        result.stats.merge(executor.finish())

        if table.name not in result.synced_keys:
            result.visit_order.append(table.name)
            result.synced_keys[table.name] = 0
        result.synced_keys[table.name] += len(fresh)

        for fk in self.children.get(table.name, []):
            child = self.schema.table(fk.child_table)
            reason = child.unusable_reason()
            if reason:
                if child.name not in result.skipped_tables:
                    logger.warning(f"Cascade skipping {child.name}: {reason}")
                    result.skipped_tables[child.name] = reason
                continue

            child_keys = list(dict.fromkeys(
                self.source.child_keys(fk, fresh) + self.destination.child_keys(fk, fresh)
            ))
            if child_keys:
                self._walk(child, child_keys, visited, result, depth + 1)

"""
Windowed Live Differ.

Pages through the source table in key order, ``page_size`` fingerprints at a
time, and for each page fetches only the destination fingerprints inside the
page's key range ``(last, page_max]``. Memory is bounded by the page size
regardless of table size.

Destination keys beyond the source's largest key fall in no page and are
never reported. Pass ``trailing_sweep=True`` to follow the last page with a
pass over those destination keys, reported as DELETE verdicts.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterator

from syncutils.tracing import trace_operation

from .differ import DiffEntry, DiffSummary, Verdict, diff_streams
from .keys import RowKey, format_key
from .metrics import VERDICTS, WINDOW_DURATION
from .schema.models import Table

logger = logging.getLogger(__name__)


@dataclass
class Window:
    index: int
    lower: RowKey | None
    upper: RowKey
    source_rows: int
    destination_rows: int
    entries: list[DiffEntry] = field(default_factory=list)
    sweep: bool = False

    @property
    def changes(self) -> list[DiffEntry]:
        return [e for e in self.entries if e.verdict is not Verdict.EQUAL]


class WindowedDiffer:
    """
    Args:
        source: Source TableGateway
        destination: Destination TableGateway
        table: Table to diff
        page_size: Source fingerprints per window
        start_key: Resume after this key (exclusive)
        trailing_sweep: Also report destination keys beyond the source's max
    """

    def __init__(
        self,
        source: Any,
        destination: Any,
        table: Table,
        page_size: int = 10000,
        start_key: RowKey | None = None,
        trailing_sweep: bool = False,
    ):
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.source = source
        self.destination = destination
        self.table = table
        self.page_size = page_size
        self.start_key = start_key
        self.trailing_sweep = trailing_sweep
        self.summary = DiffSummary()
        self.last_key: RowKey | None = start_key

    def _record(self, entries: list[DiffEntry]) -> None:
        for entry in entries:
            self.summary.add(entry)
            VERDICTS.labels(table=self.table.name, verdict=entry.verdict.value).inc()

    def _next_window(self, index: int) -> Window | None:
        started = time.monotonic()
        with trace_operation(
            "diff_window", table=self.table.name, window=index, after=self.last_key
        ) as span:
            source_page = self.source.fingerprint_page(
                self.table, after=self.last_key, limit=self.page_size
            )
            if not source_page:
                return None

            upper = source_page[-1].key
            destination_page = self.destination.fingerprint_range(
                self.table, lower=self.last_key, upper=upper
            )
            entries = list(diff_streams(source_page, destination_page))
            span.set_attribute("rows.source", len(source_page))
            span.set_attribute("rows.destination", len(destination_page))

        WINDOW_DURATION.labels(table=self.table.name).observe(time.monotonic() - started)
        return Window(
            index=index,
            lower=self.last_key,
            upper=upper,
            source_rows=len(source_page),
            destination_rows=len(destination_page),
            entries=entries,
        )

    def _next_sweep_window(self, index: int) -> Window | None:
        with trace_operation("trailing_sweep", table=self.table.name, after=self.last_key):
            page = self.destination.fingerprint_page(
                self.table, after=self.last_key, limit=self.page_size
            )
        if not page:
            return None
        return Window(
            index=index,
            lower=self.last_key,
            upper=page[-1].key,
            source_rows=0,
            destination_rows=len(page),
            entries=[DiffEntry(Verdict.DELETE, fp.key, checksum_b=fp.checksum) for fp in page],
            sweep=True,
        )

    def windows(self) -> Iterator[Window]:
        """
        Yield windows in key order until the source is exhausted.

        Not restartable: a second call continues from the last key reached.
        """
        index = 0
        while True:
            window = self._next_window(index)
            if window is None:
                break
            self._record(window.entries)
            self.last_key = window.upper
            logger.debug(
                f"{self.table.name} window {index}: {window.source_rows} source / "
                f"{window.destination_rows} destination rows, "
                f"{len(window.changes)} changes, up to {format_key(window.upper)}"
            )
            yield window
            index += 1

        if not self.trailing_sweep:
            return

        while True:
            window = self._next_sweep_window(index)
            if window is None:
                break
            self._record(window.entries)
            self.last_key = window.upper
            logger.info(
                f"{self.table.name}: {len(window.entries)} destination rows "
                f"beyond the source's last key"
            )
            yield window
            index += 1

    __iter__ = windows

    def entries(self) -> Iterator[DiffEntry]:
        for window in self.windows():
            yield from window.entries

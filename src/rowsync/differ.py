"""
Sorted-Stream Differ.

Merges two ascending ``RowFingerprint`` streams in a single forward pass.
Only the current head of each stream is held in memory; an exhausted stream
is represented by ``KEY_MAX`` so the comparison needs no special cases.

Usage:
    differ = SortedStreamDiffer()
    for entry in differ.diff(source_stream, destination_stream):
        executor.record(entry)
    print(differ.summary.inserts, differ.summary.growth_kind("A"))
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator

from .errors import StreamOrderError
from .keys import KEY_MAX, RowFingerprint, RowKey


class Verdict(str, Enum):
    INSERT = "insert"   # only in A (source)
    DELETE = "delete"   # only in B (destination)
    UPDATE = "update"   # same key, checksums differ
    EQUAL = "equal"


@dataclass(frozen=True)
class DiffEntry:
    verdict: Verdict
    key: RowKey
    checksum_a: str | None = None
    checksum_b: str | None = None


def _ascending(stream: Iterable[RowFingerprint], side: str) -> Iterator[RowFingerprint]:
    previous = None
    for fingerprint in stream:
        if previous is not None and not previous < fingerprint.key:
            raise StreamOrderError(side, previous, fingerprint.key)
        previous = fingerprint.key
        yield fingerprint


def diff_streams(
    a: Iterable[RowFingerprint], b: Iterable[RowFingerprint]
) -> Iterator[DiffEntry]:
    """
    Yield one DiffEntry per distinct key of A and B, in ascending key order.

    Raises:
        StreamOrderError: A stream is not strictly ascending
    """
    stream_a = _ascending(a, "A")
    stream_b = _ascending(b, "B")
    head_a = next(stream_a, None)
    head_b = next(stream_b, None)

    while head_a is not None or head_b is not None:
        key_a = head_a.key if head_a is not None else KEY_MAX
        key_b = head_b.key if head_b is not None else KEY_MAX

        if key_a < key_b:
            yield DiffEntry(Verdict.INSERT, key_a, checksum_a=head_a.checksum)
            head_a = next(stream_a, None)
        elif key_b < key_a:
            yield DiffEntry(Verdict.DELETE, key_b, checksum_b=head_b.checksum)
            head_b = next(stream_b, None)
        else:
            verdict = Verdict.EQUAL if head_a.checksum == head_b.checksum else Verdict.UPDATE
            yield DiffEntry(verdict, key_a, head_a.checksum, head_b.checksum)
            head_a = next(stream_a, None)
            head_b = next(stream_b, None)


@dataclass
class DiffSummary:
    """
    Counters over a diff.

    ``only_a_*`` track the range of INSERT keys and ``only_b_*`` the range of
    DELETE keys; ``max_a``/``max_b`` are the largest keys seen on each side.
    ``changed_keys`` collects UPDATE keys, up to ``changed_keys_limit``.
    """

    counts: dict = field(default_factory=lambda: {v: 0 for v in Verdict})
    only_a_min: RowKey | None = None
    only_a_max: RowKey | None = None
    only_b_min: RowKey | None = None
    only_b_max: RowKey | None = None
    max_a: RowKey | None = None
    max_b: RowKey | None = None
    changed_keys: list = field(default_factory=list)
    changed_keys_limit: int | None = None

    def add(self, entry: DiffEntry) -> None:
        verdict = entry.verdict
        key = entry.key
        self.counts[verdict] += 1

        # Entries arrive ascending, so the latest key is the max
        if verdict is not Verdict.DELETE:
            self.max_a = key
        if verdict is not Verdict.INSERT:
            self.max_b = key

        if verdict is Verdict.INSERT:
            if self.only_a_min is None:
                self.only_a_min = key
            self.only_a_max = key
        elif verdict is Verdict.DELETE:
            if self.only_b_min is None:
                self.only_b_min = key
            self.only_b_max = key
        elif verdict is Verdict.UPDATE:
            if self.changed_keys_limit is None or len(self.changed_keys) < self.changed_keys_limit:
                self.changed_keys.append(key)

    def merge(self, other: "DiffSummary") -> None:
        """Fold in the summary of a later, non-overlapping key range."""
        for verdict, count in other.counts.items():
            self.counts[verdict] += count
        if other.only_a_min is not None:
            self.only_a_min = self.only_a_min if self.only_a_min is not None else other.only_a_min
            self.only_a_max = other.only_a_max
        if other.only_b_min is not None:
            self.only_b_min = self.only_b_min if self.only_b_min is not None else other.only_b_min
            self.only_b_max = other.only_b_max
        self.max_a = other.max_a if other.max_a is not None else self.max_a
        self.max_b = other.max_b if other.max_b is not None else self.max_b
        for key in other.changed_keys:
            if self.changed_keys_limit is not None and len(self.changed_keys) >= self.changed_keys_limit:
                break
            self.changed_keys.append(key)

    @property
    def inserts(self) -> int:
        return self.counts[Verdict.INSERT]

    @property
    def deletes(self) -> int:
        return self.counts[Verdict.DELETE]

    @property
    def updates(self) -> int:
        return self.counts[Verdict.UPDATE]

    @property
    def equal(self) -> int:
        return self.counts[Verdict.EQUAL]

    @property
    def changes(self) -> int:
        return self.inserts + self.deletes + self.updates

    @property
    def rows_a(self) -> int:
        return self.inserts + self.updates + self.equal

    @property
    def rows_b(self) -> int:
        return self.deletes + self.updates + self.equal

    @property
    def is_identical(self) -> bool:
        return self.changes == 0

    def growth_kind(self, side: str = "A") -> str | None:
        """
        Classify the keys found only on ``side``.

        Returns "growth" when every such key lies beyond the other side's
        maximum (plain trailing growth), "interleaved" when some fall inside
        the other side's range, or None when the side has no exclusive keys.
        """
        if side == "A":
            low, other_max = self.only_a_min, self.max_b
        elif side == "B":
            low, other_max = self.only_b_min, self.max_a
        else:
            raise ValueError(f"side must be 'A' or 'B', got {side!r}")

        if low is None:
            return None
        if other_max is None or low > other_max:
            return "growth"
        return "interleaved"


class SortedStreamDiffer:
    """Runs diff_streams while accumulating a DiffSummary."""

    def __init__(self, changed_keys_limit: int | None = None):
        self.summary = DiffSummary(changed_keys_limit=changed_keys_limit)

    def diff(
        self, a: Iterable[RowFingerprint], b: Iterable[RowFingerprint]
    ) -> Iterator[DiffEntry]:
        for entry in diff_streams(a, b):
            self.summary.add(entry)
            yield entry

    def run(self, a: Iterable[RowFingerprint], b: Iterable[RowFingerprint]) -> DiffSummary:
        for _ in self.diff(a, b):
            pass
        return self.summary

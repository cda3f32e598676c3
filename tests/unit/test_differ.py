"""
Unit tests for the sorted-stream differ.

Tests verdict classification, ordering checks, and summary counters.
"""

import pytest

from rowsync.differ import (
    DiffEntry,
    DiffSummary,
    SortedStreamDiffer,
    Verdict,
    diff_streams,
)
from rowsync.errors import StreamOrderError
from rowsync.keys import RowFingerprint


def fps(*pairs):
    return [RowFingerprint((key,), checksum) for key, checksum in pairs]


def verdicts(entries):
    return [(e.verdict, e.key) for e in entries]


class TestDiffStreams:
    """Test diff_streams verdicts"""

    def test_all_verdicts(self):
        a = fps((1, "a1"), (2, "b"), (4, "d"))
        b = fps((2, "b"), (3, "c"), (4, "D"))

        entries = list(diff_streams(a, b))

        assert verdicts(entries) == [
            (Verdict.INSERT, (1,)),
            (Verdict.EQUAL, (2,)),
            (Verdict.DELETE, (3,)),
            (Verdict.UPDATE, (4,)),
        ]

    def test_checksums_carried(self):
        entries = list(diff_streams(fps((1, "x")), fps((1, "y"), (2, "z"))))

        assert entries[0] == DiffEntry(Verdict.UPDATE, (1,), "x", "y")
        assert entries[1] == DiffEntry(Verdict.DELETE, (2,), None, "z")

    def test_identical_streams(self):
        a = fps((1, "a"), (2, "b"))

        entries = list(diff_streams(a, list(a)))

        assert all(e.verdict is Verdict.EQUAL for e in entries)
        assert len(entries) == 2

    def test_empty_streams(self):
        assert list(diff_streams([], [])) == []

    def test_empty_destination_is_all_inserts(self):
        entries = list(diff_streams(fps((1, "a"), (2, "b")), []))
        assert [e.verdict for e in entries] == [Verdict.INSERT, Verdict.INSERT]

    def test_empty_source_is_all_deletes(self):
        entries = list(diff_streams([], fps((1, "a"), (2, "b"))))
        assert [e.verdict for e in entries] == [Verdict.DELETE, Verdict.DELETE]

    def test_composite_keys(self):
        a = [RowFingerprint((1, "a"), "x"), RowFingerprint((1, "b"), "y")]
        b = [RowFingerprint((1, "b"), "y"), RowFingerprint((2, "a"), "z")]

        assert verdicts(diff_streams(a, b)) == [
            (Verdict.INSERT, (1, "a")),
            (Verdict.EQUAL, (1, "b")),
            (Verdict.DELETE, (2, "a")),
        ]

    def test_accepts_iterators(self):
        entries = list(diff_streams(iter(fps((1, "a"))), iter(fps((1, "a")))))
        assert verdicts(entries) == [(Verdict.EQUAL, (1,))]


class TestStreamOrder:
    """Test strict ascending order enforcement"""

    def test_descending_a_raises(self):
        with pytest.raises(StreamOrderError) as exc_info:
            list(diff_streams(fps((2, "a"), (1, "b")), []))

        assert exc_info.value.side == "A"
        assert exc_info.value.previous == (2,)
        assert exc_info.value.current == (1,)

    def test_duplicate_key_in_b_raises(self):
        with pytest.raises(StreamOrderError) as exc_info:
            list(diff_streams([], fps((1, "a"), (1, "b"))))

        assert exc_info.value.side == "B"

    def test_binary_ordered_mixed_case_keys(self):
        # Upper case sorts first in code point order, as COLLATE "C" returns them
        a = fps(("Banana", "x"), ("apple", "y"))
        b = fps(("Banana", "x"), ("cherry", "z"))

        assert verdicts(diff_streams(a, b)) == [
            (Verdict.EQUAL, ("Banana",)),
            (Verdict.INSERT, ("apple",)),
            (Verdict.DELETE, ("cherry",)),
        ]

    def test_case_insensitive_order_rejected(self):
        with pytest.raises(StreamOrderError):
            list(diff_streams(fps(("apple", "x"), ("Banana", "y")), []))

    def test_entries_before_the_error_are_emitted(self):
        stream = diff_streams(fps((1, "a"), (3, "b"), (2, "c")), [])

        assert next(stream).key == (1,)
        with pytest.raises(StreamOrderError):
            list(stream)


class TestDiffSummary:
    """Test DiffSummary counters"""

    def summarize(self, a, b, **kwargs):
        return SortedStreamDiffer(**kwargs).run(a, b)

    def test_counts(self):
        summary = self.summarize(
            fps((1, "a"), (2, "b"), (4, "d"), (5, "e")),
            fps((2, "b"), (3, "c"), (4, "D")),
        )

        assert summary.inserts == 2
        assert summary.deletes == 1
        assert summary.updates == 1
        assert summary.equal == 1
        assert summary.changes == 4
        assert summary.rows_a == 4
        assert summary.rows_b == 3
        assert not summary.is_identical

    def test_exclusive_ranges_and_maxima(self):
        summary = self.summarize(
            fps((1, "a"), (2, "b"), (6, "f"), (7, "g")),
            fps((2, "b"), (3, "c"), (4, "d")),
        )

        assert summary.only_a_min == (1,)
        assert summary.only_a_max == (7,)
        assert summary.only_b_min == (3,)
        assert summary.only_b_max == (4,)
        assert summary.max_a == (7,)
        assert summary.max_b == (4,)

    def test_identical(self):
        summary = self.summarize(fps((1, "a")), fps((1, "a")))
        assert summary.is_identical
        assert summary.growth_kind("A") is None
        assert summary.growth_kind("B") is None

    def test_growth_beyond_other_side(self):
        summary = self.summarize(
            fps((1, "a"), (2, "b"), (3, "c"), (4, "d")),
            fps((1, "a"), (2, "b")),
        )
        assert summary.growth_kind("A") == "growth"

    def test_growth_into_empty_side(self):
        summary = self.summarize(fps((1, "a")), [])
        assert summary.growth_kind("A") == "growth"

    def test_interleaved(self):
        summary = self.summarize(
            fps((1, "a"), (2, "b"), (3, "c")),
            fps((1, "a"), (3, "c")),
        )
        assert summary.growth_kind("A") == "interleaved"

    def test_growth_kind_b(self):
        summary = self.summarize(fps((1, "a")), fps((1, "a"), (9, "z")))
        assert summary.growth_kind("B") == "growth"
        assert summary.growth_kind("A") is None

    def test_growth_kind_rejects_unknown_side(self):
        with pytest.raises(ValueError, match="side must be"):
            DiffSummary().growth_kind("C")

    def test_changed_keys_limit(self):
        summary = self.summarize(
            fps((1, "a"), (2, "b"), (3, "c")),
            fps((1, "x"), (2, "y"), (3, "z")),
            changed_keys_limit=2,
        )
        assert summary.updates == 3
        assert summary.changed_keys == [(1,), (2,)]

    def test_changed_keys_unlimited(self):
        summary = self.summarize(fps((1, "a"), (2, "b")), fps((1, "x"), (2, "y")))
        assert summary.changed_keys == [(1,), (2,)]

    def test_merge_matches_single_pass(self):
        a = fps((1, "a"), (2, "b"), (5, "e"), (6, "f"))
        b = fps((2, "B"), (3, "c"), (5, "e"), (7, "g"))

        whole = self.summarize(a, b)
        first = self.summarize(a[:2], b[:2])
        second = self.summarize(a[2:], b[2:])
        first.merge(second)

        assert first.counts == whole.counts
        assert first.only_a_min == whole.only_a_min
        assert first.only_a_max == whole.only_a_max
        assert first.only_b_min == whole.only_b_min
        assert first.only_b_max == whole.only_b_max
        assert first.max_a == whole.max_a
        assert first.max_b == whole.max_b
        assert first.changed_keys == whole.changed_keys


class TestSortedStreamDiffer:
    """Test SortedStreamDiffer"""

    def test_diff_yields_and_summarizes(self):
        differ = SortedStreamDiffer()

        entries = list(differ.diff(fps((1, "a")), fps((2, "b"))))

        assert len(entries) == 2
        assert differ.summary.inserts == 1
        assert differ.summary.deletes == 1

    def test_summary_is_lazy(self):
        differ = SortedStreamDiffer()
        stream = differ.diff(fps((1, "a"), (2, "b")), [])

        next(stream)

        assert differ.summary.inserts == 1

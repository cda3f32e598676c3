"""
Property-based tests for diffing and syncing using Hypothesis.

Tests invariants that should hold for all inputs:
- Every key gets exactly one verdict
- Swapping the sides swaps inserts and deletes
- Windowed diffing matches a whole-stream diff for any page size
- A sync makes the destination equal to the source, and is idempotent
- Apply statements respect the destination's parameter limit
"""

from hypothesis import given, settings, strategies as st

from fakes import FakeGateway, make_schema, make_table, row_checksum
from rowsync.config import SyncSettings
from rowsync.differ import SortedStreamDiffer, Verdict, diff_streams
from rowsync.keys import RowFingerprint
from rowsync.sync import sync_table
from rowsync.windowed import WindowedDiffer

checksums = st.dictionaries(st.integers(min_value=0, max_value=60), st.sampled_from("abc"), max_size=40)

table_rows = st.dictionaries(
    st.integers(min_value=0, max_value=60),
    st.one_of(st.none(), st.sampled_from(["a", "b", "c", ""])),
    max_size=40,
)


def stream(data):
    return [RowFingerprint((k,), data[k]) for k in sorted(data)]


def gateway_pair(source_rows, destination_rows, max_parameters=65535):
    def schema():
        return make_schema(make_table("items", [("id", "integer"), ("name", "text")]))

    source = FakeGateway(schema(), role="source")
    destination = FakeGateway(schema(), role="destination", max_parameters=max_parameters)
    source.load("items", [{"id": k, "name": v} for k, v in source_rows.items()])
    destination.load("items", [{"id": k, "name": v} for k, v in destination_rows.items()])
    return source, destination


@given(a=checksums, b=checksums)
def test_every_key_gets_one_verdict(a, b):
    """The diff is a partition of the key union."""
    entries = list(diff_streams(stream(a), stream(b)))
    keys = [e.key[0] for e in entries]

    assert keys == sorted(a.keys() | b.keys())

    for entry in entries:
        k = entry.key[0]
        if k in a and k in b:
            expected = Verdict.EQUAL if a[k] == b[k] else Verdict.UPDATE
        elif k in a:
            expected = Verdict.INSERT
        else:
            expected = Verdict.DELETE
        assert entry.verdict is expected


@given(a=checksums, b=checksums)
def test_summary_counts_add_up(a, b):
    differ = SortedStreamDiffer()
    list(differ.diff(stream(a), stream(b)))
    summary = differ.summary

    assert summary.rows_a == len(a)
    assert summary.rows_b == len(b)
    assert summary.inserts == len(a.keys() - b.keys())
    assert summary.deletes == len(b.keys() - a.keys())


@given(a=checksums, b=checksums)
def test_swapping_sides_swaps_inserts_and_deletes(a, b):
    swap = {
        Verdict.INSERT: Verdict.DELETE,
        Verdict.DELETE: Verdict.INSERT,
        Verdict.UPDATE: Verdict.UPDATE,
        Verdict.EQUAL: Verdict.EQUAL,
    }
    forward = [(e.key, swap[e.verdict]) for e in diff_streams(stream(a), stream(b))]
    backward = [(e.key, e.verdict) for e in diff_streams(stream(b), stream(a))]

    assert forward == backward


@settings(deadline=None, max_examples=60)
@given(source_rows=table_rows, destination_rows=table_rows, page_size=st.integers(min_value=1, max_value=12))
def test_windowed_matches_whole_stream_diff(source_rows, destination_rows, page_size):
    """With the trailing sweep, paging never changes the verdicts."""
    source, destination = gateway_pair(source_rows, destination_rows)
    table = source.schema.table("items")

    windowed = list(
        WindowedDiffer(source, destination, table, page_size=page_size, trailing_sweep=True).entries()
    )
    whole = list(
        diff_streams(source.stream_fingerprints(table), destination.stream_fingerprints(table))
    )

    assert windowed == whole


@settings(deadline=None, max_examples=60)
@given(
    source_rows=table_rows,
    destination_rows=table_rows,
    page_size=st.integers(min_value=1, max_value=12),
    batch_size=st.integers(min_value=1, max_value=8),
)
def test_sync_converges_and_is_idempotent(source_rows, destination_rows, page_size, batch_size):
    source, destination = gateway_pair(source_rows, destination_rows)
    table = source.schema.table("items")
    run_settings = SyncSettings(page_size=page_size, batch_size=batch_size, trailing_sweep=True)

    first = sync_table(source, destination, table, run_settings)

    assert destination.rows["items"] == source.rows["items"]
    assert first.stats.discrepancies == 0

    second = sync_table(source, destination, table, run_settings)

    assert second.summary.is_identical
    assert second.summary.equal == len(source_rows)


@settings(deadline=None, max_examples=40)
@given(
    source_rows=table_rows,
    destination_rows=table_rows,
    max_parameters=st.integers(min_value=2, max_value=9),
)
def test_statements_respect_parameter_limit(source_rows, destination_rows, max_parameters):
    source, destination = gateway_pair(source_rows, destination_rows, max_parameters=max_parameters)
    table = source.schema.table("items")

    sync_table(source, destination, table, SyncSettings(page_size=7, trailing_sweep=True))

    for operation, _, rows in destination.statements:
        params_per_row = 2 if operation == "insert" else 1
        assert rows * params_per_row <= max_parameters
    assert {k: row_checksum(r) for k, r in destination.rows["items"].items()} == {
        k: row_checksum(r) for k, r in source.rows["items"].items()
    }

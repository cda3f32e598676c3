"""
Prometheus metrics for reconciliation runs.
"""

from prometheus_client import Counter, Histogram

from syncutils.metrics import get_or_create_metric

FINGERPRINTS_READ = get_or_create_metric(
    lambda: Counter(
        "rowsync_fingerprints_read_total",
        "Row fingerprints read",
        ["table", "side"],
    ),
    "rowsync_fingerprints_read_total",
)

VERDICTS = get_or_create_metric(
    lambda: Counter(
        "rowsync_verdicts_total",
        "Diff verdicts by type",
        ["table", "verdict"],
    ),
    "rowsync_verdicts_total",
)

APPLY_STATEMENTS = get_or_create_metric(
    lambda: Counter(
        "rowsync_apply_statements_total",
        "Delete and insert statements executed on the destination",
        ["table", "operation"],
    ),
    "rowsync_apply_statements_total",
)

APPLY_ROWS = get_or_create_metric(
    lambda: Counter(
        "rowsync_apply_rows_total",
        "Rows deleted from or inserted into the destination",
        ["table", "operation"],
    ),
    "rowsync_apply_rows_total",
)

APPLY_DISCREPANCIES = get_or_create_metric(
    lambda: Counter(
        "rowsync_apply_discrepancies_total",
        "Statements whose affected-row count did not match the batch",
        ["table", "operation"],
    ),
    "rowsync_apply_discrepancies_total",
)

WINDOW_DURATION = get_or_create_metric(
    lambda: Histogram(
        "rowsync_window_seconds",
        "Time to fetch and diff one window",
        ["table"],
        buckets=[0.01, 0.05, 0.1, 0.5, 1, 5, 10, 30, 60],
    ),
    "rowsync_window_seconds",
)

TABLE_SYNC_DURATION = get_or_create_metric(
    lambda: Histogram(
        "rowsync_table_sync_seconds",
        "Time to reconcile one table",
        ["table"],
        buckets=[1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600],
    ),
    "rowsync_table_sync_seconds",
)

TABLES_SKIPPED = get_or_create_metric(
    lambda: Counter(
        "rowsync_tables_skipped_total",
        "Tables skipped as unusable",
        ["table"],
    ),
    "rowsync_tables_skipped_total",
)

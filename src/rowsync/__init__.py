"""
rowsync: row-level reconciliation between two relational databases.

Rows are reduced to per-row fingerprints in SQL, the two fingerprint streams
are merged in key order to classify every key as insert, delete, update or
equal, and the differences are applied to the destination in bounded
batches. Audits persist the fingerprint streams for later offline
comparison.

Modules:
- fingerprint: SQL projection producing (pk..., row_checksum)
- differ: sorted-stream merge diff and summary counters
- windowed: page-by-page live diff of two databases
- apply: batched delete/insert executor with a payload budget
- cascade: foreign-key cascade re-sync
- audit / compare: persisted rollups and offline comparison
- sync: table and database orchestration
"""

from .apply import ApplyStats, BatchedApplyExecutor
from .cascade import CascadeResult, CascadeWalker
from .differ import DiffEntry, DiffSummary, SortedStreamDiffer, Verdict, diff_streams
from .errors import ConfigurationError, RowsyncError, SkipTable, StreamOrderError
from .fingerprint import NULL_SENTINEL, FingerprintGenerator
from .keys import KEY_MAX, RowFingerprint
from .windowed import Window, WindowedDiffer

__version__ = "1.0.0"

__all__ = [
    "ApplyStats",
    "BatchedApplyExecutor",
    "CascadeResult",
    "CascadeWalker",
    "DiffEntry",
    "DiffSummary",
    "SortedStreamDiffer",
    "Verdict",
    "diff_streams",
    "ConfigurationError",
    "RowsyncError",
    "SkipTable",
    "StreamOrderError",
    "NULL_SENTINEL",
    "FingerprintGenerator",
    "KEY_MAX",
    "RowFingerprint",
    "Window",
    "WindowedDiffer",
]

"""
Command-line argument parser configuration.

Defines the ``rowsync`` commands and their options.
"""

import argparse

from ..config import DEFAULT_BATCH_SIZE, DEFAULT_MAX_PAYLOAD_BYTES, DEFAULT_PAGE_SIZE
from ..compare import DEFAULT_MAX_EXAMPLES, DEFAULT_SAMPLE_SIZE

SIDES = {
    "source": "source",
    "destination": "dest",
}


def _add_connection_args(parser: argparse.ArgumentParser, side: str) -> None:
    flag = SIDES[side]
    group = parser.add_argument_group(f"{side} database")
    group.add_argument(f'--{flag}-dialect', choices=['postgresql', 'sqlserver'],
                       help=f'{side} engine (default: env or postgresql)')
    group.add_argument(f'--{flag}-host', help=f'{side} host')
    group.add_argument(f'--{flag}-port', type=int, help=f'{side} port')
    group.add_argument(f'--{flag}-database', help=f'{side} database name')
    group.add_argument(f'--{flag}-user', help=f'{side} user')
    group.add_argument(f'--{flag}-password', help=f'{side} password')
    group.add_argument(f'--{flag}-driver', help=f'{side} ODBC driver name (SQL Server)')
    group.add_argument(f'--{flag}-schema', help=f'{side} catalog schema (default: public / dbo)')


def _add_common_connection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--use-vault',
        action='store_true',
        help='Fetch credentials from HashiCorp Vault (secret/database/<side>)'
    )


def _add_table_selection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--tables', help='Comma-separated list of tables to include')
    parser.add_argument('--tables-file', help='File listing tables to include (one per line)')
    parser.add_argument('--skip-tables', help='Comma-separated list of tables to skip')


def _add_apply_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--batch-size',
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help=f'Pending operations per flush (default: {DEFAULT_BATCH_SIZE})'
    )
    parser.add_argument(
        '--max-payload-bytes',
        type=int,
        default=DEFAULT_MAX_PAYLOAD_BYTES,
        help=f'Approximate payload budget per INSERT (default: {DEFAULT_MAX_PAYLOAD_BYTES})'
    )
    parser.add_argument(
        '--no-suspend-integrity-checks',
        action='store_true',
        help='Leave destination foreign-key checks enabled while applying'
    )


def _add_diff_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--page-size',
        type=int,
        default=DEFAULT_PAGE_SIZE,
        help=f'Source fingerprints per window (default: {DEFAULT_PAGE_SIZE})'
    )
    parser.add_argument('--start-table', help='Resume from this table (tables before it are skipped)')
    parser.add_argument(
        '--start-key',
        help='Resume the start table after this key (JSON array, e.g. [5] or [5,"a"])'
    )
    parser.add_argument(
        '--trailing-sweep',
        action='store_true',
        help="Also report destination rows beyond the source's largest key"
    )
    parser.add_argument('--output', help='Write a JSON report to this file')
    parser.add_argument('--metrics-port', type=int, help='Expose Prometheus metrics on this port')


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog='rowsync',
        description="Row-level reconciliation between two databases",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Make the destination match the source, table by table
  rowsync sync --source-host db1 --source-database app --dest-host db2 --dest-database app

  # Only report differences for two tables
  rowsync diff --tables customers,orders --trailing-sweep

  # Resume an interrupted run
  rowsync sync --start-table orders --start-key '[120000]'

  # Re-sync one customer and every row referencing it
  rowsync cascade --table customers --key 42

  # Audit a database, then compare two audits offline
  rowsync audit --side source --output-dir audits
  rowsync compare audits/db1.app audits/db2.app --ignore-null-vs-empty
        """
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level (default: INFO)'
    )
    parser.add_argument('--log-json', action='store_true', help='Log as JSON lines')
    parser.add_argument('--log-file', help='Also log to this (rotating) file')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # ========== sync ==========
    sync_parser = subparsers.add_parser('sync', help='Diff and apply changes to the destination')
    _add_table_selection_args(sync_parser)
    _add_diff_args(sync_parser)
    _add_apply_args(sync_parser)
    _add_common_connection_args(sync_parser)
    _add_connection_args(sync_parser, 'source')
    _add_connection_args(sync_parser, 'destination')

    # ========== diff ==========
    diff_parser = subparsers.add_parser('diff', help='Report differences without applying them')
    _add_table_selection_args(diff_parser)
    _add_diff_args(diff_parser)
    _add_common_connection_args(diff_parser)
    _add_connection_args(diff_parser, 'source')
    _add_connection_args(diff_parser, 'destination')

    # ========== cascade ==========
    cascade_parser = subparsers.add_parser(
        'cascade', help='Re-sync rows and every row referencing them via foreign keys'
    )
    cascade_parser.add_argument('--table', required=True, help='Root table')
    cascade_parser.add_argument(
        '--key',
        action='append',
        required=True,
        help='Root key, scalar or JSON array for composite keys (repeatable)'
    )
    _add_apply_args(cascade_parser)
    _add_common_connection_args(cascade_parser)
    _add_connection_args(cascade_parser, 'source')
    _add_connection_args(cascade_parser, 'destination')

    # ========== audit ==========
    audit_parser = subparsers.add_parser(
        'audit', help='Write per-table rollups and fingerprint files for one database'
    )
    audit_parser.add_argument(
        '--side',
        choices=list(SIDES),
        default='source',
        help='Which configured database to audit (default: source)'
    )
    audit_parser.add_argument(
        '--output-dir',
        default='.',
        help='Directory receiving <host>.<database>/ (default: current directory)'
    )
    audit_parser.add_argument('--row-limit', type=int, help='Audit at most this many rows per table')
    _add_table_selection_args(audit_parser)
    _add_common_connection_args(audit_parser)
    _add_connection_args(audit_parser, 'source')
    _add_connection_args(audit_parser, 'destination')

    # ========== compare ==========
    compare_parser = subparsers.add_parser('compare', help='Compare two audit directories')
    compare_parser.add_argument('audit_a', help='Audit directory of side A')
    compare_parser.add_argument('audit_b', help='Audit directory of side B')
    compare_parser.add_argument(
        '--ignore-null-vs-empty', action='store_true', help='Treat NULL and empty string as equal'
    )
    compare_parser.add_argument(
        '--ignore-null-vs-zero-date', action='store_true', help='Treat NULL and a zero date as equal'
    )
    compare_parser.add_argument(
        '--numeric-tolerance',
        type=float,
        default=0.0,
        help='Relative tolerance for numeric column values (e.g. 0.001)'
    )
    compare_parser.add_argument(
        '--drill-down',
        action='store_true',
        help='Fetch column values for changed rows (A = source, B = destination connection)'
    )
    compare_parser.add_argument(
        '--sample-size',
        type=int,
        default=DEFAULT_SAMPLE_SIZE,
        help=f'Changed keys drilled into per table (default: {DEFAULT_SAMPLE_SIZE})'
    )
    compare_parser.add_argument(
        '--max-examples',
        type=int,
        default=DEFAULT_MAX_EXAMPLES,
        help=f'Column mismatch examples printed per table (default: {DEFAULT_MAX_EXAMPLES})'
    )
    compare_parser.add_argument('--output', help='Write a JSON report to this file')
    _add_common_connection_args(compare_parser)
    _add_connection_args(compare_parser, 'source')
    _add_connection_args(compare_parser, 'destination')

    return parser

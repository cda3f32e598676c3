"""
CLI command implementations.

Each ``cmd_*`` returns the process exit code: 0 when the databases (or
audits) match or the run applied cleanly, 1 when differences or apply
discrepancies remain.
"""

import argparse
import json
import logging
from contextlib import ExitStack
from pathlib import Path

from syncutils.metrics import MetricsPublisher

from ..audit import audit_database
from ..cascade import CascadeWalker
from ..compare import AuditComparator
from ..config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_PAYLOAD_BYTES,
    DEFAULT_PAGE_SIZE,
    EquivalenceRules,
    SyncSettings,
    load_connection_config,
)
from ..database import Database, connect
from ..errors import ConfigurationError
from ..gateway import TableGateway
from ..keys import RowKey
from ..report import (
    comparison_report_dict,
    export_report_json,
    format_cascade_console,
    format_comparison_console,
    format_sync_console,
    sync_report_dict,
)
from ..schema.introspect import SchemaIntrospector
from ..sync import integrity_checks_suspended, sync_database
from .parser import SIDES

logger = logging.getLogger(__name__)


def parse_key(text: str) -> RowKey:
    """
    Parse a key given on the command line.

    >>> parse_key("42"), parse_key('[5, "a"]'), parse_key("abc")
    ((42,), (5, 'a'), ('abc',))
    """
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return (text,)
    if isinstance(value, list):
        if not value:
            raise ConfigurationError("Key must not be empty")
        return tuple(value)
    return (value,)


def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


def _included_tables(args: argparse.Namespace) -> list[str]:
    tables = _split(getattr(args, 'tables', None))
    tables_file = getattr(args, 'tables_file', None)
    if tables_file:
        with open(tables_file) as f:
            tables.extend(line.strip() for line in f if line.strip())
    return tables


def settings_from_args(args: argparse.Namespace) -> SyncSettings:
    start_key = getattr(args, 'start_key', None)
    settings = SyncSettings(
        page_size=getattr(args, 'page_size', DEFAULT_PAGE_SIZE),
        batch_size=getattr(args, 'batch_size', DEFAULT_BATCH_SIZE),
        max_payload_bytes=getattr(args, 'max_payload_bytes', DEFAULT_MAX_PAYLOAD_BYTES),
        include_tables=_included_tables(args),
        skip_tables=_split(getattr(args, 'skip_tables', None)),
        start_table=getattr(args, 'start_table', None),
        start_key=parse_key(start_key) if start_key else None,
        trailing_sweep=getattr(args, 'trailing_sweep', False),
        suspend_integrity_checks=not getattr(args, 'no_suspend_integrity_checks', False),
    )
    settings.validate()
    return settings


def _connection_overrides(args: argparse.Namespace, side: str) -> dict:
    flag = SIDES[side]
    return {
        "dialect": getattr(args, f"{flag}_dialect"),
        "host": getattr(args, f"{flag}_host"),
        "port": getattr(args, f"{flag}_port"),
        "database": getattr(args, f"{flag}_database"),
        "username": getattr(args, f"{flag}_user"),
        "password": getattr(args, f"{flag}_password"),
        "driver": getattr(args, f"{flag}_driver"),
    }


def open_gateway(args: argparse.Namespace, side: str, stack: ExitStack) -> TableGateway:
    """Connect one side, load its schema, and register the connection for closing."""
    config = load_connection_config(
        side, overrides=_connection_overrides(args, side), use_vault=args.use_vault
    )
    database: Database = connect(config)
    stack.callback(database.close)

    schema = SchemaIntrospector(database, getattr(args, f"{SIDES[side]}_schema")).load()
    return TableGateway(database, schema, role=side)


def _start_metrics(args: argparse.Namespace) -> None:
    port = getattr(args, 'metrics_port', None)
    if port:
        MetricsPublisher(port=port).start()


def _run_sync(args: argparse.Namespace, apply: bool) -> int:
    settings = settings_from_args(args)
    _start_metrics(args)

    with ExitStack() as stack:
        source = open_gateway(args, 'source', stack)
        destination = open_gateway(args, 'destination', stack)
        run = sync_database(source, destination, settings, apply=apply)

    print(format_sync_console(run))
    if args.output:
        export_report_json(sync_report_dict(run), args.output)
        logger.info(f"Report written to {args.output}")

    if apply:
        return 1 if run.discrepancies else 0
    return 1 if run.has_differences else 0


def cmd_sync(args: argparse.Namespace) -> int:
    """Diff every selected table and make the destination match the source."""
    logger.info("Starting sync run")
    return _run_sync(args, apply=True)


def cmd_diff(args: argparse.Namespace) -> int:
    """Diff every selected table without writing to the destination."""
    logger.info("Starting diff run")
    return _run_sync(args, apply=False)


def cmd_cascade(args: argparse.Namespace) -> int:
    """Re-sync root keys and all dependent rows."""
    settings = settings_from_args(args)
    keys = [parse_key(k) for k in args.key]

    with ExitStack() as stack:
        source = open_gateway(args, 'source', stack)
        destination = open_gateway(args, 'destination', stack)
        walker = CascadeWalker(
            source.schema,
            source,
            destination,
            batch_size=settings.batch_size,
            max_payload_bytes=settings.max_payload_bytes,
        )
        if settings.suspend_integrity_checks:
            with integrity_checks_suspended(destination, sorted(destination.schema.tables)):
                result = walker.walk(args.table, keys)
        else:
            result = walker.walk(args.table, keys)

    print(format_cascade_console(result))
    return 1 if result.stats.discrepancies else 0


def cmd_audit(args: argparse.Namespace) -> int:
    """Audit one database into ``<output_dir>/<host>.<database>/``."""
    settings = settings_from_args(args)

    with ExitStack() as stack:
        gateway = open_gateway(args, args.side, stack)
        tables = gateway.schema.select_tables(
            include=settings.include_tables, skip=settings.skip_tables
        )
        audited = audit_database(gateway, tables, Path(args.output_dir), row_limit=args.row_limit)

    print(f"Audited {len(audited)} tables of {gateway.label}")
    return 0


def cmd_compare(args: argparse.Namespace) -> int:
    """Compare two audit directories, optionally drilling into live rows."""
    if args.numeric_tolerance < 0:
        raise ConfigurationError("--numeric-tolerance must not be negative")
    rules = EquivalenceRules(
        null_equals_empty=args.ignore_null_vs_empty,
        null_equals_zero_date=args.ignore_null_vs_zero_date,
        numeric_tolerance=args.numeric_tolerance,
    )

    with ExitStack() as stack:
        gateway_a = gateway_b = None
        if args.drill_down:
            gateway_a = open_gateway(args, 'source', stack)
            gateway_b = open_gateway(args, 'destination', stack)

        comparator = AuditComparator(
            Path(args.audit_a),
            Path(args.audit_b),
            rules=rules,
            gateway_a=gateway_a,
            gateway_b=gateway_b,
            sample_size=args.sample_size,
            max_examples=args.max_examples,
        )
        report = comparator.compare()

    print(format_comparison_console(report))
    if args.output:
        export_report_json(comparison_report_dict(report), args.output)
        logger.info(f"Report written to {args.output}")

    return 1 if report.has_discrepancies else 0

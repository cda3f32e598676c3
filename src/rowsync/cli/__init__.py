"""
Command-line interface for row-level reconciliation.

Available commands:
- sync: Diff tables and make the destination match the source
- diff: Report differences only
- cascade: Re-sync rows and their foreign-key dependents
- audit: Persist per-table rollups and fingerprint streams
- compare: Compare two audits offline
"""

import logging
import sys

from syncutils.logging import setup_logging, shutdown_logging
from syncutils.tracing import initialize_tracing, shutdown_tracing

from ..errors import ConfigurationError, RowsyncError
from .commands import cmd_audit, cmd_cascade, cmd_compare, cmd_diff, cmd_sync, parse_key
from .parser import create_parser

logger = logging.getLogger(__name__)

COMMANDS = {
    'sync': cmd_sync,
    'diff': cmd_diff,
    'cascade': cmd_cascade,
    'audit': cmd_audit,
    'compare': cmd_compare,
}

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the rowsync CLI"""
    parser = create_parser()
    args = parser.parse_args(argv)

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(EXIT_FAILURE)

    setup_logging(level=args.log_level, log_file=args.log_file, json_format=args.log_json)
    initialize_tracing(service_name="rowsync")

    try:
        exit_code = command(args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        exit_code = EXIT_CONFIG_ERROR
    except RowsyncError as e:
        logger.error(f"{args.command} failed: {e}")
        exit_code = EXIT_FAILURE
    except Exception as e:
        logger.exception(f"{args.command} failed: {type(e).__name__}: {e}")
        exit_code = EXIT_FAILURE
    finally:
        shutdown_tracing()
        shutdown_logging()

    sys.exit(exit_code)


__all__ = [
    'main',
    'create_parser',
    'parse_key',
    'cmd_sync',
    'cmd_diff',
    'cmd_cascade',
    'cmd_audit',
    'cmd_compare',
]


if __name__ == '__main__':
    main()

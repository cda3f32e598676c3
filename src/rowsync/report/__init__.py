"""
Console and JSON rendering of sync runs, cascades and audit comparisons.
"""

from .formatters import (
    comparison_report_dict,
    export_report_json,
    format_cascade_console,
    format_comparison_console,
    format_sync_console,
    format_timestamp,
    sync_report_dict,
)

__all__ = [
    'comparison_report_dict',
    'export_report_json',
    'format_cascade_console',
    'format_comparison_console',
    'format_sync_console',
    'format_timestamp',
    'sync_report_dict',
]

"""
Report formatting and export utilities.

Renders sync runs, cascades and audit comparisons for the console, and
exports them as JSON.
"""

import json
from datetime import UTC, datetime
from typing import Any

from ..cascade import CascadeResult
from ..compare import ComparisonReport, TableComparison
from ..keys import format_key
from ..sync import Outcome, SyncRunResult


def format_timestamp(timestamp: datetime | None = None) -> str:
    return (timestamp or datetime.now(UTC)).isoformat()


def sync_report_dict(run: SyncRunResult) -> dict[str, Any]:
    tables = []
    for t in run.tables:
        tables.append({
            "table": t.table,
            "outcome": t.outcome,
            "skip_reason": t.skip_reason,
            "source_rows": t.summary.rows_a,
            "destination_rows": t.summary.rows_b,
            "inserts": t.summary.inserts,
            "deletes": t.summary.deletes,
            "updates": t.summary.updates,
            "windows": t.windows,
            "seconds": round(t.seconds, 3),
            "apply": t.stats.to_dict(),
        })
    return {
        "timestamp": format_timestamp(),
        "status": "DIFFERENT" if run.has_differences else "IN_SYNC",
        "total_tables": len(run.tables),
        "tables_changed": len(run.changed),
        "tables_skipped": len(run.skipped),
        "apply_discrepancies": run.discrepancies,
        "tables": tables,
    }


def format_sync_console(run: SyncRunResult) -> str:
    lines = []
    lines.append("=" * 80)
    lines.append("ROW RECONCILIATION")
    lines.append("=" * 80)
    for t in run.tables:
        lines.append(t.describe())
    lines.append("-" * 80)
    lines.append(
        f"Tables: {len(run.tables)}  changed: {len(run.changed)}  "
        f"skipped: {len(run.skipped)}  apply discrepancies: {run.discrepancies}"
    )
    if any(t.outcome == Outcome.DIFFERENT for t in run.tables):
        lines.append("Differences were found but not applied (diff only).")
    lines.append("=" * 80)
    return "\n".join(lines)


def format_cascade_console(result: CascadeResult) -> str:
    lines = [f"Cascade from {result.root_table}:"]
    for table in result.visit_order:
        lines.append(f"  {table:<46} {result.synced_keys[table]:>8} keys")
    for table, reason in result.skipped_tables.items():
        lines.append(f"  {table:<46} skipped: {reason}")
    stats = result.stats
    lines.append(
        f"Deleted {stats.deleted}, inserted {stats.inserted} rows "
        f"({stats.discrepancies} discrepancies)"
    )
    return "\n".join(lines)


def _exclusive_line(comparison: TableComparison, side: str) -> str | None:
    summary = comparison.summary
    other = "B" if side == "A" else "A"
    if side == "A":
        count, low, high, other_max = (
            summary.inserts, summary.only_a_min, summary.only_a_max, summary.max_b
        )
    else:
        count, low, high, other_max = (
            summary.deletes, summary.only_b_min, summary.only_b_max, summary.max_a
        )
    if not count:
        return None

    if summary.growth_kind(side) == "growth":
        return f"{comparison.table:<48} {count:>7} new records in {side} but not {other}"
    return (
        f"{comparison.table:<48} {count:>7} records only in {side} in range "
        f"[{format_key(low)}..{format_key(high)}] Max {other} is "
        f"{format_key(other_max) if other_max is not None else '-'}"
    )


def format_comparison_console(report: ComparisonReport) -> str:
    lines = []
    for table in report.only_in_a:
        lines.append(f"{table:<48} only audited in A, not compared")
    for table in report.only_in_b:
        lines.append(f"{table:<48} only audited in B, not compared")

    for comparison in report.tables:
        for side in ("A", "B"):
            line = _exclusive_line(comparison, side)
            if line:
                lines.append(line)

        drill = comparison.drill_down
        if drill is not None:
            for example in drill.examples:
                lines.append(f"\t{example.describe(comparison.table)}")
            ignored = ", ".join(sorted(drill.ignored_columns))
            lines.append(
                f"{comparison.table:<48} {comparison.changed:>7} checksum row mismatches "
                f"{drill.ignored:>7} ignored columns ({ignored})"
            )
            if drill.differing_columns:
                lines.append(
                    f"{comparison.table:<48} differing columns: "
                    f"{', '.join(sorted(drill.differing_columns))}"
                )
        elif comparison.changed:
            lines.append(f"{comparison.table:<48} {comparison.changed:>7} checksum row mismatches")

    lines.append(
        f"{len(report.tables)} tables differ, {report.matching} match"
    )
    return "\n".join(lines)


def comparison_report_dict(report: ComparisonReport) -> dict[str, Any]:
    tables = []
    for c in report.tables:
        s = c.summary
        entry = {
            "table": c.table,
            "rollup_a": c.entry_a.rollup,
            "rollup_b": c.entry_b.rollup,
            "rows_a": c.entry_a.row_count,
            "rows_b": c.entry_b.row_count,
            "only_in_a": s.inserts,
            "only_in_b": s.deletes,
            "changed": s.updates,
            "only_in_a_kind": s.growth_kind("A"),
            "only_in_b_kind": s.growth_kind("B"),
            "only_in_a_range": [s.only_a_min, s.only_a_max],
            "only_in_b_range": [s.only_b_min, s.only_b_max],
        }
        if c.drill_down is not None:
            entry["drill_down"] = {
                "sampled_keys": c.drill_down.sampled_keys,
                "missing_keys": c.drill_down.missing_keys,
                "differing_columns": sorted(c.drill_down.differing_columns),
                "ignored": c.drill_down.ignored,
                "ignored_columns": sorted(c.drill_down.ignored_columns),
                "examples": [
                    {"key": e.key, "column": e.column, "a": e.value_a, "b": e.value_b}
                    for e in c.drill_down.examples
                ],
            }
        tables.append(entry)

    return {
        "timestamp": format_timestamp(),
        "directory_a": str(report.directory_a),
        "directory_b": str(report.directory_b),
        "tables_matching": report.matching,
        "only_in_a": report.only_in_a,
        "only_in_b": report.only_in_b,
        "tables": tables,
    }


def export_report_json(report: dict[str, Any], output_path: str) -> None:
    """
    Export report to JSON file

    Keys and column values that are not JSON types (dates, decimals) are
    written as strings.
    """
    with open(output_path, 'w') as f:
        json.dump(report, f, indent=2, default=str)

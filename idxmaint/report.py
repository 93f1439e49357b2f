from __future__ import annotations

from .models import MaintenanceReport, StatementStatus

NO_ACTION_TAKEN = "No action taken."


def format_report(report: MaintenanceReport) -> str:
    """
    Render a maintenance report as plain text, one line per index.
    """
    target = f"{report.schema_name}.{report.table_name}"
    mode = " (dry run)" if report.dry_run else ""
    lines = [f"Index maintenance for {target}{mode}, rebuild threshold {report.threshold:g}%"]

    for outcome in report.outcomes:
        record = outcome.statement.record
        action = outcome.statement.action.value.upper()
        if report.dry_run:
            status = "PLANNED"
        else:
            status = outcome.status.value.upper()
        line = (
            f"  {action:<10} {status:<9} {record.index_name} "
            f"({record.fragmentation_percent:.1f}%, {record.page_count} pages)"
        )
        if outcome.status == StatementStatus.SUCCEEDED:
            line += f" in {outcome.duration_s:.2f}s"
        lines.append(line)
        if report.dry_run:
            lines.append(f"      {outcome.statement.sql}")
        if outcome.error:
            lines.append(f"      error: {outcome.error}")

    for record in report.skipped:
        lines.append(
            f"  {'SKIPPED':<10} {'':<9} {record.index_name} "
            f"({record.fragmentation_percent:.1f}%, {record.page_count} pages)"
        )

    if report.no_action_taken:
        lines.append(NO_ACTION_TAKEN)

    lines.append(
        f"Reorganized: {len(report.reorganized)}, rebuilt: {len(report.rebuilt)}, "
        f"failed: {len(report.failed)}, timed out: {len(report.timed_out)}, "
        f"skipped: {len(report.skipped)}"
    )
    return "\n".join(lines)

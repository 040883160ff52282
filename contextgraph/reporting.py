"""
Rich rendering of sync results and graph status.
"""

from typing import Any

from rich.table import Table

from contextgraph.graph.models import GraphStatus
from contextgraph.sync.orchestrator import ReconcileReport, SyncResult


def sync_result_table(result: SyncResult) -> Table:
    """Per-kind breakdown of a sync run with a totals row."""
    status = "cancelled" if result.cancelled else ("ok" if result.ok else "with errors")
    table = Table(title=f"Graph Sync: {result.project_id} ({result.mode.value}, {status})")
    table.add_column("Kind", style="cyan")
    table.add_column("Rows", justify="right")
    table.add_column("Created", justify="right", style="green")
    table.add_column("Updated", justify="right")
    table.add_column("Rels +", justify="right", style="green")
    table.add_column("Rels =", justify="right")
    table.add_column("Rels -", justify="right", style="magenta")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Malformed", justify="right", style="yellow")
    table.add_column("Errors", justify="right", style="red")

    for kind, report in result.per_kind.items():
        table.add_row(
            kind,
            str(report.rows_read),
            str(report.nodes.created),
            str(report.nodes.updated),
            str(report.edges.created),
            str(report.edges.unchanged),
            str(report.edges.removed),
            str(report.edges.skipped),
            str(report.malformed_relationships),
            "failed" if report.failed else str(len(report.errors)),
        )

    table.add_section()
    table.add_row(
        "Total",
        "",
        str(result.nodes_created),
        str(result.nodes_updated),
        str(result.relationships_created),
        str(result.relationships_unchanged),
        str(result.relationships_removed),
        str(result.relationships_skipped),
        str(result.malformed_relationships),
        str(sum(len(errors) for errors in result.per_kind_errors.values())),
        style="bold",
    )
    return table


def graph_status_table(status: GraphStatus) -> Table:
    table = Table(title="Graph Status")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Total Nodes", str(status.counts.nodes))
    table.add_row("Total Relationships", str(status.counts.relationships))
    for kind, count in sorted(status.counts.nodes_by_kind.items()):
        table.add_row(f"  {kind}", str(count))
    last_sync = status.last_sync_time.isoformat() if status.last_sync_time else "never"
    table.add_row("Last Sync", last_sync)
    return table


def schema_info_table(info: dict[str, Any]) -> Table:
    table = Table(title="Graph Schema Info")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Constraints", str(info["constraints"]))
    table.add_row("Full-text Indexes", str(info["fulltext_indexes"]))
    table.add_row("Missing Constraints", ", ".join(info["missing_constraints"]) or "-")
    table.add_row("Schema Valid", "✓" if info["schema_valid"] else "✗")
    return table


def reconcile_table(report: ReconcileReport) -> Table:
    mode = "dry run" if report.dry_run else f"{report.deleted} deleted"
    table = Table(title=f"Reconcile: {report.project_id} ({mode})")
    table.add_column("Kind", style="cyan")
    table.add_column("Stale", justify="right", style="yellow")
    table.add_column("Ids")

    for kind, ids in report.stale.items():
        table.add_row(kind, str(len(ids)), ", ".join(ids))
    for kind, reason in report.skipped_kinds.items():
        table.add_row(kind, "-", f"[red]skipped: {reason}[/red]")
    return table


__all__ = ["graph_status_table", "reconcile_table", "schema_info_table", "sync_result_table"]

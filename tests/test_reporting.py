"""Tests for rich rendering of sync outcomes."""

from __future__ import annotations

import pytest
from rich.console import Console

from contextgraph.queries.impact import ImpactQueryService
from contextgraph.reporting import graph_status_table, reconcile_table, sync_result_table
from contextgraph.sync.orchestrator import SyncOrchestrator


def render(table) -> str:
    """Plain text of a table with runs of whitespace collapsed.

    Rich wraps a title to the table width, so words may land on separate lines.
    """
    console = Console(record=True, width=160)
    console.print(table)
    return " ".join(console.export_text().split())


@pytest.mark.asyncio
async def test_sync_tables_render_counts(orchestrator: SyncOrchestrator, source) -> None:
    source.failures["tasks"] = RuntimeError("boom")
    result = await orchestrator.run_full_sync("P1")

    text = render(sync_result_table(result))

    assert "with errors" in text
    assert "Spec" in text and "failed" in text
    assert "Total" in text
    assert "Rels -" in text


@pytest.mark.asyncio
async def test_status_and_reconcile_tables(orchestrator: SyncOrchestrator, source) -> None:
    await orchestrator.run_full_sync("P1")
    source.data["specs"].pop()

    status_text = render(graph_status_table(await ImpactQueryService(orchestrator.store).graph_status("P1")))
    reconcile_text = render(reconcile_table(await orchestrator.reconcile("P1")))

    assert "Total Nodes" in status_text
    assert "dry run" in reconcile_text and "S2" in reconcile_text

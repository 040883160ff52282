"""Tests for impact, membership and search queries over a synced graph."""

from __future__ import annotations

import pytest
import pytest_asyncio

from contextgraph.graph.memory import InMemoryGraphStore
from contextgraph.graph.models import NodeKind, RelationType
from contextgraph.queries.impact import ImpactQueryService
from contextgraph.sync.orchestrator import SyncOrchestrator

from .conftest import FakeSource


@pytest_asyncio.fixture
async def graph(store: InMemoryGraphStore, rich_source: FakeSource) -> InMemoryGraphStore:
    result = await SyncOrchestrator(store, rich_source).run_full_sync("P1")
    assert result.ok, result.per_kind_errors
    return store


@pytest.fixture
def queries(graph: InMemoryGraphStore) -> ImpactQueryService:
    return ImpactQueryService(graph)


@pytest.mark.asyncio
async def test_dependents_ordered_by_depth_then_id(queries: ImpactQueryService) -> None:
    dependents = await queries.dependents_of("S1")

    assert [(d.id, d.depth) for d in dependents] == [("S2", 1), ("S3", 2)]


@pytest.mark.asyncio
async def test_dependents_depth_bounds(graph: InMemoryGraphStore) -> None:
    queries = ImpactQueryService(graph, max_depth=1)

    assert [d.id for d in await queries.dependents_of("S1", max_depth=1)] == ["S2"]
    assert [d.id for d in await queries.dependents_of("S1", max_depth=10)] == ["S2"]
    assert await queries.dependents_of("S1", max_depth=0) == []
    assert await queries.dependents_of("nope") == []


@pytest.mark.asyncio
async def test_task_blockers_are_dependents(queries: ImpactQueryService) -> None:
    assert [d.id for d in await queries.dependents_of("K1")] == ["K2"]


@pytest.mark.asyncio
async def test_members_ordered_by_kind_then_id(queries: ImpactQueryService) -> None:
    members = await queries.members_of("P1")

    assert [m.id for m in members] == ["C1", "C2", "D1", "D2", "S1", "S2", "S3", "K1", "K2", "T1"]
    assert [m.id for m in await queries.members_of("P1", NodeKind.SPEC)] == ["S1", "S2", "S3"]
    assert await queries.members_of("P2") == []


@pytest.mark.asyncio
async def test_search_ranks_titles_above_body_text(queries: ImpactQueryService) -> None:
    hits = await queries.full_text_search("capture")

    assert [h.id for h in hits] == ["S1", "T1", "M1"]
    assert hits[2].snippet == "Capture must be idempotent"
    assert [h.id for h in await queries.full_text_search("CAPTURE", kinds=[NodeKind.TERM])] == ["T1"]


@pytest.mark.asyncio
async def test_search_edge_cases(queries: ImpactQueryService) -> None:
    assert await queries.full_text_search("   ") == []
    assert await queries.full_text_search("capture", limit=0) == []
    assert len(await queries.full_text_search("capture", limit=1)) == 1


@pytest.mark.asyncio
async def test_impact_of_spec(queries: ImpactQueryService) -> None:
    impact = await queries.impact_of("S1")

    assert [(e.relationship, e.id) for e in impact] == [
        ("DEPENDS_ON", "S2"),
        ("IMPLEMENTS", "K1"),
        ("RELATES_TO", "D1"),
    ]


@pytest.mark.asyncio
async def test_impact_of_bounded_context(queries: ImpactQueryService) -> None:
    impact = await queries.impact_of("C1")

    assert [(e.relationship, e.id) for e in impact] == [
        ("DEFINES", "T1"),
        ("DOWNSTREAM", "C2"),
        ("PART_OF", "E1"),
    ]


@pytest.mark.asyncio
async def test_impact_of_task_and_decision(queries: ImpactQueryService) -> None:
    assert [(e.relationship, e.id) for e in await queries.impact_of("K1")] == [
        ("BLOCKS", "K2"),
        ("IMPLEMENTS", "S1"),
    ]
    assert [(e.relationship, e.id) for e in await queries.impact_of("D1")] == [
        ("RELATES_TO", "S1"),
        ("SUPERSEDED_BY", "D2"),
    ]
    assert [(e.relationship, e.id) for e in await queries.impact_of("D2")] == [("SUPERSEDES", "D1")]


@pytest.mark.asyncio
async def test_impact_of_other_kinds_uses_all_neighbors(queries: ImpactQueryService) -> None:
    assert [(e.relationship, e.id) for e in await queries.impact_of("M1")] == [("RELATES_TO", "S1")]
    assert await queries.impact_of("missing") == []


@pytest.mark.asyncio
async def test_explore_returns_center_neighbors_and_edges(queries: ImpactQueryService) -> None:
    hood = await queries.explore("S2")

    assert hood.center.id == "S2" and hood.center.depth == 0
    assert [n.id for n in hood.nodes] == ["K2", "P1", "S1", "S3"]
    edges = {(r.from_id, r.relation_type, r.to_id) for r in hood.relationships}
    assert ("S2", RelationType.DEPENDS_ON, "S1") in edges
    assert ("S3", RelationType.DEPENDS_ON, "S2") in edges
    assert ("K2", RelationType.IMPLEMENTS, "S2") in edges


@pytest.mark.asyncio
async def test_explore_unknown_entity(queries: ImpactQueryService) -> None:
    hood = await queries.explore("missing")

    assert hood.center is None
    assert hood.nodes == []


@pytest.mark.asyncio
async def test_list_nodes_ordered_by_name(queries: ImpactQueryService) -> None:
    specs = await queries.list_nodes(NodeKind.SPEC)

    assert [(s.name, s.id) for s in specs] == [
        ("Chargebacks", "S3"),
        ("Payment capture", "S1"),
        ("Refunds", "S2"),
    ]


@pytest.mark.asyncio
async def test_graph_status(queries: ImpactQueryService) -> None:
    status = await queries.graph_status("P1")

    assert status.counts.nodes == 13
    assert status.counts.relationships == 21
    assert status.counts.nodes_by_kind["Spec"] == 3
    assert status.last_sync_time is not None

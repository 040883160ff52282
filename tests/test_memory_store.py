"""Tests for the in-memory graph store."""

from __future__ import annotations

import pytest

from contextgraph.graph.memory import InMemoryGraphStore
from contextgraph.graph.models import (
    EdgeOutcome,
    NodeKind,
    NodeRef,
    RelationType,
    SearchSpec,
    TraversalDirection,
    TraversalSpec,
)
from contextgraph.graph.store import GraphStore


def spec(node_id: str) -> NodeRef:
    return NodeRef(kind=NodeKind.SPEC, id=node_id)


async def seed_chain(store: InMemoryGraphStore) -> None:
    """S3 -> S2 -> S1 and S4 -> S1, all DEPENDS_ON."""
    for node_id, title in [("S1", "Capture"), ("S2", "Refunds"), ("S3", "Disputes"), ("S4", "Payouts")]:
        await store.upsert_node(NodeKind.SPEC, node_id, {"title": title})
    for source, target in [("S2", "S1"), ("S3", "S2"), ("S4", "S1")]:
        await store.upsert_edge(RelationType.DEPENDS_ON, spec(source), spec(target))


def test_implements_graph_store_protocol() -> None:
    assert isinstance(InMemoryGraphStore(), GraphStore)


@pytest.mark.asyncio
async def test_upsert_node_reports_created_then_updated(store: InMemoryGraphStore) -> None:
    assert await store.upsert_node(NodeKind.SPEC, "S1", {"title": "Old", "status": "draft"}) is True
    assert await store.upsert_node(NodeKind.SPEC, "S1", {"title": "New"}) is False

    node = await store.get_node("S1")
    assert node.properties == {"title": "New", "id": "S1"}, "properties are replaced, not merged"


@pytest.mark.asyncio
async def test_edge_requires_both_endpoints(store: InMemoryGraphStore) -> None:
    await store.upsert_node(NodeKind.SPEC, "S1", {})

    outcome = await store.upsert_edge(RelationType.DEPENDS_ON, spec("S1"), spec("missing"))

    assert outcome == EdgeOutcome.MISSING_ENDPOINT
    assert (await store.counts()).relationships == 0


@pytest.mark.asyncio
async def test_edge_upsert_is_idempotent(store: InMemoryGraphStore) -> None:
    await store.upsert_node(NodeKind.SPEC, "S1", {})
    await store.upsert_node(NodeKind.SPEC, "S2", {})

    first = await store.upsert_edge(RelationType.DEPENDS_ON, spec("S2"), spec("S1"))
    second = await store.upsert_edge(RelationType.DEPENDS_ON, spec("S2"), spec("S1"))

    assert (first, second) == (EdgeOutcome.CREATED, EdgeOutcome.UNCHANGED)
    assert (await store.counts()).relationships == 1


@pytest.mark.asyncio
async def test_endpoint_kind_must_match(store: InMemoryGraphStore) -> None:
    await store.upsert_node(NodeKind.SPEC, "X1", {})
    await store.upsert_node(NodeKind.TASK, "K1", {})

    outcome = await store.upsert_edge(
        RelationType.IMPLEMENTS, NodeRef(kind=NodeKind.TASK, id="K1"), NodeRef(kind=NodeKind.TASK, id="X1")
    )

    assert outcome == EdgeOutcome.MISSING_ENDPOINT


@pytest.mark.asyncio
async def test_traverse_reports_minimum_depth_in_order(store: InMemoryGraphStore) -> None:
    await seed_chain(store)

    results = await store.traverse(
        TraversalSpec(
            start_id="S1",
            relation_types=[RelationType.DEPENDS_ON],
            direction=TraversalDirection.INCOMING,
            max_depth=3,
        )
    )

    assert [(r.id, r.depth) for r in results] == [("S2", 1), ("S4", 1), ("S3", 2)]


@pytest.mark.asyncio
async def test_traverse_respects_max_depth(store: InMemoryGraphStore) -> None:
    await seed_chain(store)

    results = await store.traverse(
        TraversalSpec(start_id="S1", direction=TraversalDirection.INCOMING, max_depth=1)
    )

    assert [r.id for r in results] == ["S2", "S4"]


@pytest.mark.asyncio
async def test_neighbors_report_direction(store: InMemoryGraphStore) -> None:
    await seed_chain(store)

    adjacent = await store.neighbors("S2")

    assert [(a.node.id, a.outgoing) for a in adjacent] == [("S1", True), ("S3", False)]


@pytest.mark.asyncio
async def test_delete_node_removes_its_edges(store: InMemoryGraphStore) -> None:
    await seed_chain(store)

    assert await store.delete_node(NodeKind.SPEC, "S2") is True
    assert await store.delete_node(NodeKind.SPEC, "S2") is False

    counts = await store.counts()
    assert counts.nodes == 3
    assert counts.relationships == 1
    assert await store.neighbors("S3") == []


@pytest.mark.asyncio
async def test_search_is_case_insensitive_and_deterministic(store: InMemoryGraphStore) -> None:
    await store.upsert_node(NodeKind.SPEC, "S2", {"title": "Refund flow", "description": "refund"})
    await store.upsert_node(NodeKind.SPEC, "S1", {"title": "REFUND api"})
    await store.upsert_node(NodeKind.TERM, "T1", {"name": "Chargeback", "definition": "Refund forced by bank"})
    await store.upsert_node(NodeKind.TASK, "K1", {"title": "Unrelated"})

    first = await store.search(SearchSpec(text="refund"))
    second = await store.search(SearchSpec(text="Refund"))

    assert [h.id for h in first] == ["S2", "S1", "T1"]
    assert [(h.id, h.score) for h in first] == [(h.id, h.score) for h in second]


@pytest.mark.asyncio
async def test_search_matches_inside_words(store: InMemoryGraphStore) -> None:
    await store.upsert_node(NodeKind.SPEC, "S1", {"title": "Payment capture"})

    hits = await store.search(SearchSpec(text="apture"))

    assert [h.id for h in hits] == ["S1"]


@pytest.mark.asyncio
async def test_search_filters_kinds_and_limits(store: InMemoryGraphStore) -> None:
    for index in range(5):
        await store.upsert_node(NodeKind.SPEC, f"S{index}", {"title": "payment"})
    await store.upsert_node(NodeKind.TERM, "T1", {"name": "payment"})

    hits = await store.search(SearchSpec(text="payment", kinds=[NodeKind.SPEC], limit=3))

    assert [h.id for h in hits] == ["S0", "S1", "S2"]


@pytest.mark.asyncio
async def test_sync_state_round_trip(store: InMemoryGraphStore) -> None:
    from datetime import datetime, timezone

    synced_at = datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert await store.get_sync_state("P1") is None

    await store.set_sync_state("P1", synced_at)

    assert await store.get_sync_state("P1") == synced_at


@pytest.mark.asyncio
async def test_prune_edges_keeps_only_listed_targets(store: InMemoryGraphStore) -> None:
    await seed_chain(store)
    await store.upsert_node(NodeKind.PROJECT, "P1", {})
    await store.upsert_edge(RelationType.BELONGS_TO, spec("S2"), NodeRef(kind=NodeKind.PROJECT, id="P1"))

    removed = await store.prune_edges(
        RelationType.DEPENDS_ON, spec("S2"), TraversalDirection.OUTGOING, []
    )

    assert removed == 1
    outgoing = await store.neighbors("S2", TraversalDirection.OUTGOING)
    assert [(a.relation_type, a.node.id) for a in outgoing] == [(RelationType.BELONGS_TO, "P1")]
    assert [a.node.id for a in await store.neighbors("S1", TraversalDirection.INCOMING)] == ["S4"]


@pytest.mark.asyncio
async def test_prune_incoming_edges_at_target(store: InMemoryGraphStore) -> None:
    await seed_chain(store)

    removed = await store.prune_edges(
        RelationType.DEPENDS_ON, spec("S1"), TraversalDirection.INCOMING, [spec("S4")]
    )

    assert removed == 1
    assert [a.node.id for a in await store.neighbors("S1", TraversalDirection.INCOMING)] == ["S4"]
    assert (await store.counts()).relationships == 2


@pytest.mark.asyncio
async def test_prune_edges_rejects_both_directions(store: InMemoryGraphStore) -> None:
    with pytest.raises(ValueError):
        await store.prune_edges(RelationType.DEPENDS_ON, spec("S1"), TraversalDirection.BOTH, [])

"""
In-memory graph store.

Keeps nodes in keyed dictionaries and relationships in adjacency sets. It has
the same observable semantics as ``Neo4jGraphStore`` and backs the test suite
and local development without a running database.
"""

import asyncio
import logging
from collections import defaultdict, deque
from datetime import datetime
from typing import Any, Optional

from .models import (
    SEARCHABLE_PROPERTIES,
    Adjacency,
    EdgeOutcome,
    EntitySummary,
    GraphCounts,
    NodeKind,
    NodeRef,
    RelationType,
    RelationshipView,
    SearchHit,
    SearchSpec,
    StoredNode,
    TraversalDirection,
    TraversalSpec,
    display_name,
)

logger = logging.getLogger(__name__)

_Key = tuple[NodeKind, str]
_Edge = tuple[RelationType, _Key, _Key]

_KIND_ORDER = {kind: index for index, kind in enumerate(NodeKind)}
_NAME_FIELDS = ("title", "name")
SNIPPET_LENGTH = 160


class InMemoryGraphStore:
    """Graph store that lives entirely in process memory."""

    def __init__(self) -> None:
        self._nodes: dict[_Key, dict[str, Any]] = {}
        self._ids: dict[str, set[NodeKind]] = defaultdict(set)
        self._edges: set[_Edge] = set()
        self._out: dict[_Key, set[_Edge]] = defaultdict(set)
        self._in: dict[_Key, set[_Edge]] = defaultdict(set)
        self._sync_state: dict[str, datetime] = {}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert_node(self, kind: NodeKind, node_id: str, properties: dict[str, Any]) -> bool:
        # Yield first so concurrent syncers interleave; the check-and-write below is atomic.
        await asyncio.sleep(0)
        key = (kind, node_id)
        created = key not in self._nodes
        self._nodes[key] = {**properties, "id": node_id}
        self._ids[node_id].add(kind)
        return created

    async def upsert_edge(
        self, relation_type: RelationType, source: NodeRef, target: NodeRef
    ) -> EdgeOutcome:
        await asyncio.sleep(0)
        src = (source.kind, source.id)
        dst = (target.kind, target.id)
        if src not in self._nodes or dst not in self._nodes:
            return EdgeOutcome.MISSING_ENDPOINT

        edge = (relation_type, src, dst)
        if edge in self._edges:
            return EdgeOutcome.UNCHANGED
        self._edges.add(edge)
        self._out[src].add(edge)
        self._in[dst].add(edge)
        return EdgeOutcome.CREATED

    async def prune_edges(
        self,
        relation_type: RelationType,
        anchor: NodeRef,
        direction: TraversalDirection,
        keep: list[NodeRef],
    ) -> int:
        if direction == TraversalDirection.BOTH:
            raise ValueError("prune_edges needs an OUTGOING or INCOMING direction")
        await asyncio.sleep(0)
        key = (anchor.kind, anchor.id)
        wanted = {(ref.kind, ref.id) for ref in keep}
        if direction == TraversalDirection.OUTGOING:
            candidates, other = self._out.get(key, set()), 2
        else:
            candidates, other = self._in.get(key, set()), 1

        stale = [edge for edge in candidates if edge[0] == relation_type and edge[other] not in wanted]
        for edge in stale:
            _, src, dst = edge
            self._edges.discard(edge)
            self._out[src].discard(edge)
            self._in[dst].discard(edge)
        return len(stale)

    async def delete_node(self, kind: NodeKind, node_id: str) -> bool:
        key = (kind, node_id)
        if key not in self._nodes:
            return False

        for edge in self._out.pop(key, set()) | self._in.pop(key, set()):
            self._edges.discard(edge)
            _, src, dst = edge
            self._out[src].discard(edge)
            self._in[dst].discard(edge)

        del self._nodes[key]
        self._ids[node_id].discard(kind)
        if not self._ids[node_id]:
            del self._ids[node_id]
        logger.info("graph_node_deleted", extra={"kind": kind.value, "id": node_id})
        return True

    async def set_sync_state(self, project_id: str, synced_at: datetime) -> None:
        self._sync_state[project_id] = synced_at

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def node_exists(self, kind: NodeKind, node_id: str) -> bool:
        return (kind, node_id) in self._nodes

    async def get_node(self, node_id: str) -> Optional[StoredNode]:
        keys = self._keys_for(node_id)
        if not keys:
            return None
        kind = keys[0][0]
        return StoredNode(kind=kind, id=node_id, properties=dict(self._nodes[keys[0]]))

    async def node_ids(self, kind: NodeKind, project_id: str) -> set[str]:
        if kind == NodeKind.PROJECT:
            return {project_id} if (kind, project_id) in self._nodes else set()
        return {
            node_id
            for (node_kind, node_id), props in self._nodes.items()
            if node_kind == kind and props.get("project_id") == project_id
        }

    async def traverse(self, spec: TraversalSpec) -> list[EntitySummary]:
        starts = self._keys_for(spec.start_id)
        depths: dict[_Key, int] = {}
        seen = set(starts)
        queue = deque((key, 0) for key in starts)

        while queue:
            key, depth = queue.popleft()
            if depth >= spec.max_depth:
                continue
            for _, other in self._adjacent(key, spec.direction, spec.relation_types):
                if other in seen:
                    continue
                seen.add(other)
                depths[other] = depth + 1
                queue.append((other, depth + 1))

        results = [self._summary(key, depth=depth) for key, depth in depths.items()]
        return sorted(results, key=lambda s: (s.depth, s.id, _KIND_ORDER[s.kind]))

    async def neighbors(
        self,
        node_id: str,
        direction: TraversalDirection = TraversalDirection.BOTH,
        relation_types: Optional[list[RelationType]] = None,
    ) -> list[Adjacency]:
        adjacencies = []
        for key in self._keys_for(node_id):
            for edge, other in self._adjacent(key, direction, relation_types):
                adjacencies.append(
                    Adjacency(
                        relation_type=edge[0],
                        outgoing=edge[1] == key,
                        node=self._summary(other),
                    )
                )
        return sorted(adjacencies, key=lambda a: (a.relation_type.value, a.node.id))

    async def relationships_among(self, node_ids: list[str]) -> list[RelationshipView]:
        wanted = set(node_ids)
        views = {
            (src[1], dst[1], relation_type)
            for relation_type, src, dst in self._edges
            if src[1] in wanted and dst[1] in wanted
        }
        return [
            RelationshipView(from_id=from_id, to_id=to_id, relation_type=relation_type)
            for from_id, to_id, relation_type in sorted(views, key=lambda v: (v[0], v[1], v[2].value))
        ]

    async def members(self, project_id: str, kind: Optional[NodeKind] = None) -> list[EntitySummary]:
        project = (NodeKind.PROJECT, project_id)
        results = [
            self._summary(src)
            for relation_type, src, _ in self._in.get(project, set())
            if relation_type == RelationType.BELONGS_TO and (kind is None or src[0] == kind)
        ]
        return sorted(results, key=lambda s: (s.kind.value, s.id))

    async def list_nodes(self, kind: NodeKind) -> list[EntitySummary]:
        results = [self._summary(key) for key in self._nodes if key[0] == kind]
        return sorted(results, key=lambda s: (s.name, s.id))

    async def search(self, spec: SearchSpec) -> list[SearchHit]:
        tokens = [token.lower() for token in spec.text.split()]
        if not tokens:
            return []

        hits = []
        for key, props in self._nodes.items():
            if spec.kinds and key[0] not in spec.kinds:
                continue
            score = _score(props, tokens)
            if score <= 0:
                continue
            snippet = next(
                (str(props[field]) for field in ("description", "definition", "content") if props.get(field)),
                "",
            )
            hits.append(
                SearchHit(
                    id=key[1],
                    kind=key[0],
                    name=display_name(props, key[1]),
                    score=score,
                    snippet=snippet[:SNIPPET_LENGTH],
                )
            )

        hits.sort(key=lambda h: (-h.score, h.id))
        return hits[: spec.limit]

    async def get_sync_state(self, project_id: str) -> Optional[datetime]:
        return self._sync_state.get(project_id)

    async def counts(self) -> GraphCounts:
        by_kind: dict[str, int] = defaultdict(int)
        for kind, _ in self._nodes:
            by_kind[kind.value] += 1
        return GraphCounts(
            nodes=len(self._nodes), relationships=len(self._edges), nodes_by_kind=dict(by_kind)
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _keys_for(self, node_id: str) -> list[_Key]:
        kinds = sorted(self._ids.get(node_id, ()), key=_KIND_ORDER.__getitem__)
        return [(kind, node_id) for kind in kinds]

    def _adjacent(
        self,
        key: _Key,
        direction: TraversalDirection,
        relation_types: Optional[list[RelationType]],
    ) -> list[tuple[_Edge, _Key]]:
        pairs: list[tuple[_Edge, _Key]] = []
        if direction in (TraversalDirection.OUTGOING, TraversalDirection.BOTH):
            pairs.extend((edge, edge[2]) for edge in self._out.get(key, ()))
        if direction in (TraversalDirection.INCOMING, TraversalDirection.BOTH):
            pairs.extend((edge, edge[1]) for edge in self._in.get(key, ()))
        if relation_types:
            pairs = [(edge, other) for edge, other in pairs if edge[0] in relation_types]
        # Stable order keeps traversal output independent of set iteration.
        return sorted(pairs, key=lambda p: (p[1][1], _KIND_ORDER[p[1][0]], p[0][0].value))

    def _summary(self, key: _Key, depth: Optional[int] = None) -> EntitySummary:
        return EntitySummary(
            id=key[1], kind=key[0], name=display_name(self._nodes[key], key[1]), depth=depth
        )


def _score(props: dict[str, Any], tokens: list[str]) -> float:
    """Weighted count of case-insensitive token occurrences."""
    score = 0.0
    for field in SEARCHABLE_PROPERTIES:
        value = props.get(field)
        if not isinstance(value, str) or not value:
            continue
        text = value.lower()
        weight = 2.0 if field in _NAME_FIELDS else 1.0
        score += weight * sum(text.count(token) for token in tokens)
    return score

"""Read-only impact, membership and search queries over the projected graph."""

from __future__ import annotations

import logging
from typing import Optional

from contextgraph.graph.models import (
    EntitySummary,
    GraphStatus,
    ImpactEntry,
    Neighborhood,
    NodeKind,
    RelationType,
    SearchHit,
    SearchSpec,
    TraversalDirection,
    TraversalSpec,
    display_name,
)
from contextgraph.graph.store import GraphStore

logger = logging.getLogger(__name__)

_IN = TraversalDirection.INCOMING
_OUT = TraversalDirection.OUTGOING

# Per kind: (relationship followed, direction from the changed node, affected kind, label).
IMPACT_RULES: dict[NodeKind, list[tuple[RelationType, TraversalDirection, NodeKind, str]]] = {
    NodeKind.SPEC: [
        (RelationType.IMPLEMENTS, _IN, NodeKind.TASK, "IMPLEMENTS"),
        (RelationType.RELATES_TO, _IN, NodeKind.DECISION, "RELATES_TO"),
        (RelationType.DEPENDS_ON, _IN, NodeKind.SPEC, "DEPENDS_ON"),
    ],
    NodeKind.BOUNDED_CONTEXT: [
        (RelationType.PART_OF, _IN, NodeKind.DOMAIN_ENTITY, "PART_OF"),
        (RelationType.DEFINES, _OUT, NodeKind.TERM, "DEFINES"),
        (RelationType.UPSTREAM_OF, _OUT, NodeKind.BOUNDED_CONTEXT, "DOWNSTREAM"),
    ],
    NodeKind.TASK: [
        (RelationType.IMPLEMENTS, _OUT, NodeKind.SPEC, "IMPLEMENTS"),
        (RelationType.DEPENDS_ON, _IN, NodeKind.TASK, "BLOCKS"),
    ],
    NodeKind.DECISION: [
        (RelationType.RELATES_TO, _OUT, NodeKind.SPEC, "RELATES_TO"),
        (RelationType.SUPERSEDED_BY, _IN, NodeKind.DECISION, "SUPERSEDES"),
        (RelationType.SUPERSEDED_BY, _OUT, NodeKind.DECISION, "SUPERSEDED_BY"),
    ],
}


class ImpactQueryService:
    """
    Queries answering "what is affected if X changes".

    All results are deterministic: every list has a total order on
    (depth or score or kind) and then id.
    """

    def __init__(
        self,
        store: GraphStore,
        default_depth: int = 3,
        max_depth: int = 5,
        search_limit: int = 20,
    ):
        """
        Initialize the query service.

        Args:
            store: Graph store to read from
            default_depth: Depth used when a traversal passes none
            max_depth: Hard cap on traversal depth
            search_limit: Default number of search hits
        """
        self.store = store
        self.default_depth = default_depth
        self.max_depth = max_depth
        self.search_limit = search_limit

    def _cap(self, depth: Optional[int]) -> int:
        return min(self.default_depth if depth is None else depth, self.max_depth)

    async def dependents_of(self, entity_id: str, max_depth: Optional[int] = None) -> list[EntitySummary]:
        """
        Entities that transitively depend on ``entity_id``.

        Follows DEPENDS_ON edges backwards. Each entity is reported once, at
        its minimum depth.

        Args:
            entity_id: Entity whose dependents are wanted
            max_depth: Maximum hops; capped, and below 1 yields no results

        Returns:
            Dependents ordered by (depth, id)
        """
        depth = self._cap(max_depth)
        if depth < 1:
            return []
        return await self.store.traverse(
            TraversalSpec(
                start_id=entity_id,
                relation_types=[RelationType.DEPENDS_ON],
                direction=TraversalDirection.INCOMING,
                max_depth=depth,
            )
        )

    async def members_of(self, project_id: str, kind: Optional[NodeKind] = None) -> list[EntitySummary]:
        """
        Entities that belong to a project, optionally of one kind.

        Returns:
            Members ordered by (kind, id)
        """
        return await self.store.members(project_id, kind)

    async def full_text_search(
        self,
        query: str,
        kinds: Optional[list[NodeKind]] = None,
        limit: Optional[int] = None,
    ) -> list[SearchHit]:
        """
        Case-insensitive relevance search over titles, names and text fields.

        Args:
            query: Free text; blank returns no hits
            kinds: Restrict hits to these kinds
            limit: Maximum hits

        Returns:
            Hits ordered by (score desc, id asc)
        """
        limit = self.search_limit if limit is None else limit
        if not query.strip() or limit < 1:
            return []
        return await self.store.search(SearchSpec(text=query, kinds=kinds or [], limit=limit))

    async def impact_of(self, entity_id: str) -> list[ImpactEntry]:
        """
        Entities directly affected by a change to ``entity_id``.

        Returns:
            Impact entries ordered by (relationship, id)
        """
        node = await self.store.get_node(entity_id)
        if node is None:
            return []

        entries: dict[tuple[str, str, NodeKind], ImpactEntry] = {}
        rules = IMPACT_RULES.get(node.kind)
        if rules:
            for relation_type, direction, kind, label in rules:
                for adjacency in await self.store.neighbors(entity_id, direction, [relation_type]):
                    if adjacency.node.kind != kind:
                        continue
                    entry = ImpactEntry(
                        id=adjacency.node.id,
                        kind=adjacency.node.kind,
                        name=adjacency.node.name,
                        relationship=label,
                    )
                    entries[(label, entry.id, entry.kind)] = entry
        else:
            for adjacency in await self.store.neighbors(entity_id):
                label = adjacency.relation_type.value
                entries[(label, adjacency.node.id, adjacency.node.kind)] = ImpactEntry(
                    id=adjacency.node.id,
                    kind=adjacency.node.kind,
                    name=adjacency.node.name,
                    relationship=label,
                )

        return sorted(entries.values(), key=lambda e: (e.relationship, e.id))

    async def explore(self, entity_id: str, depth: int = 1) -> Neighborhood:
        """
        Neighborhood of an entity: nodes within ``depth`` hops in either
        direction and the relationships among them.
        """
        node = await self.store.get_node(entity_id)
        if node is None:
            return Neighborhood()

        center = EntitySummary(
            id=node.id, kind=node.kind, name=display_name(node.properties, node.id), depth=0
        )
        depth = self._cap(depth)
        nodes: list[EntitySummary] = []
        if depth >= 1:
            nodes = await self.store.traverse(
                TraversalSpec(
                    start_id=entity_id, direction=TraversalDirection.BOTH, max_depth=depth
                )
            )
        relationships = await self.store.relationships_among([entity_id] + [n.id for n in nodes])
        return Neighborhood(center=center, nodes=nodes, relationships=relationships)

    async def list_nodes(self, kind: NodeKind) -> list[EntitySummary]:
        """All entities of one kind, ordered by (name, id)."""
        return await self.store.list_nodes(kind)

    async def graph_status(self, project_id: str) -> GraphStatus:
        counts = await self.store.counts()
        last_sync = await self.store.get_sync_state(project_id)
        return GraphStatus(project_id=project_id, counts=counts, last_sync_time=last_sync)


__all__ = ["IMPACT_RULES", "ImpactQueryService"]

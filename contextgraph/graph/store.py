"""Generic graph-operation interface shared by the Neo4j and in-memory stores."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

from .models import (
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
)


@runtime_checkable
class GraphStore(Protocol):
    """Operations the sync engine and query service need from a graph backend.

    Implementations must make ``upsert_node`` a single atomic write and must
    never create an edge whose endpoints are not both present.
    """

    async def upsert_node(self, kind: NodeKind, node_id: str, properties: dict[str, Any]) -> bool:
        """Create or replace a node. Returns True if the node was created."""
        ...

    async def upsert_edge(
        self, relation_type: RelationType, source: NodeRef, target: NodeRef
    ) -> EdgeOutcome:
        """Create the edge if both endpoints exist."""
        ...

    async def prune_edges(
        self,
        relation_type: RelationType,
        anchor: NodeRef,
        direction: TraversalDirection,
        keep: list[NodeRef],
    ) -> int:
        """Remove ``relation_type`` edges at ``anchor`` in ``direction`` whose other end is not in ``keep``.

        Returns the number of edges removed.
        """
        ...

    async def node_exists(self, kind: NodeKind, node_id: str) -> bool:
        """Check whether a node of this kind exists."""
        ...

    async def get_node(self, node_id: str) -> Optional[StoredNode]:
        """Fetch any entity node by id."""
        ...

    async def delete_node(self, kind: NodeKind, node_id: str) -> bool:
        """Remove a node together with its relationships."""
        ...

    async def node_ids(self, kind: NodeKind, project_id: str) -> set[str]:
        """Ids of nodes of ``kind`` stamped with ``project_id``."""
        ...

    async def traverse(self, spec: TraversalSpec) -> list[EntitySummary]:
        """Nodes reachable from the start node, each at its minimum depth."""
        ...

    async def neighbors(
        self,
        node_id: str,
        direction: TraversalDirection = TraversalDirection.BOTH,
        relation_types: Optional[list[RelationType]] = None,
    ) -> list[Adjacency]:
        """One-hop relationships of a node."""
        ...

    async def relationships_among(self, node_ids: list[str]) -> list[RelationshipView]:
        """Relationships whose both endpoints are in ``node_ids``."""
        ...

    async def members(self, project_id: str, kind: Optional[NodeKind] = None) -> list[EntitySummary]:
        """Nodes linked to the project by BELONGS_TO."""
        ...

    async def list_nodes(self, kind: NodeKind) -> list[EntitySummary]:
        """All nodes of one kind."""
        ...

    async def search(self, spec: SearchSpec) -> list[SearchHit]:
        """Case-insensitive relevance search over text properties.

        Matching granularity is backend specific: the Neo4j store matches word
        prefixes, the in-memory store matches substrings.
        """
        ...

    async def get_sync_state(self, project_id: str) -> Optional[datetime]:
        """Last persisted sync time for a project."""
        ...

    async def set_sync_state(self, project_id: str, synced_at: datetime) -> None:
        """Persist the last sync time for a project."""
        ...

    async def counts(self) -> GraphCounts:
        """Entity node and relationship totals."""
        ...


__all__ = ["GraphStore"]

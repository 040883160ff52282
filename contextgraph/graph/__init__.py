"""Graph layer: Neo4j client, schema, and the graph store implementations."""

from .client import GraphClient, GraphConfig
from .memory import InMemoryGraphStore
from .models import (
    Adjacency,
    EdgeOutcome,
    EdgeRef,
    EntitySummary,
    GraphCounts,
    GraphStatus,
    ImpactEntry,
    Neighborhood,
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
from .neo4j_store import Neo4jGraphStore
from .schema import SchemaManager
from .store import GraphStore

__all__ = [
    "Adjacency",
    "EdgeOutcome",
    "EdgeRef",
    "EntitySummary",
    "GraphClient",
    "GraphConfig",
    "GraphCounts",
    "GraphStatus",
    "GraphStore",
    "ImpactEntry",
    "InMemoryGraphStore",
    "Neighborhood",
    "Neo4jGraphStore",
    "NodeKind",
    "NodeRef",
    "RelationType",
    "RelationshipView",
    "SchemaManager",
    "SearchHit",
    "SearchSpec",
    "StoredNode",
    "TraversalDirection",
    "TraversalSpec",
]

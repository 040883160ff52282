"""
Pydantic models for graph nodes, relationships and query results.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class NodeKind(str, Enum):
    """Entity kinds projected into the graph. Values double as Neo4j labels."""

    PROJECT = "Project"
    BOUNDED_CONTEXT = "BoundedContext"
    DOMAIN_ENTITY = "DomainEntity"
    TERM = "Term"
    DECISION = "Decision"
    SPEC = "Spec"
    TASK = "Task"
    MEMORY = "Memory"
    DESIGN_SYSTEM = "DesignSystem"

    @classmethod
    def parse(cls, value: str) -> Optional["NodeKind"]:
        """
        Resolve a loose entity-type string ("spec", "bounded_context", "Task").

        Returns:
            Matching kind, or None if the string names no known kind
        """
        normalized = value.replace("_", "").replace("-", "").lower()
        for kind in cls:
            if kind.value.lower() == normalized:
                return kind
        return _KIND_ALIASES.get(normalized)


_KIND_ALIASES = {
    "context": NodeKind.BOUNDED_CONTEXT,
    "domainobject": NodeKind.DOMAIN_ENTITY,
    "glossaryterm": NodeKind.TERM,
    "glossary": NodeKind.TERM,
    "memoryentry": NodeKind.MEMORY,
    "design": NodeKind.DESIGN_SYSTEM,
}


class RelationType(str, Enum):
    """Types of relationships derived from source rows."""

    BELONGS_TO = "BELONGS_TO"
    DEPENDS_ON = "DEPENDS_ON"
    DEFINES = "DEFINES"
    RELATES_TO = "RELATES_TO"
    IMPLEMENTS = "IMPLEMENTS"
    SUPERSEDED_BY = "SUPERSEDED_BY"
    UPSTREAM_OF = "UPSTREAM_OF"
    PART_OF = "PART_OF"


class EdgeOutcome(str, Enum):
    """Result of a single edge upsert."""

    CREATED = "created"
    UNCHANGED = "unchanged"
    MISSING_ENDPOINT = "missing_endpoint"


class NodeRef(BaseModel):
    """Kind-qualified reference to a node."""

    kind: NodeKind
    id: str


class EdgeRef(BaseModel):
    """A relationship a syncer wants to exist."""

    relation_type: RelationType
    source: NodeRef
    target: NodeRef
    source_field: str = Field(..., description="Source row field the edge was derived from")


# Properties scanned by full-text search, in scoring order.
SEARCHABLE_PROPERTIES = ("title", "name", "description", "definition", "content", "context")


def display_name(properties: dict[str, Any], fallback: str) -> str:
    """Human-readable name for a node: title, then name, then id."""
    for key in ("title", "name"):
        value = properties.get(key)
        if value:
            return str(value)
    return fallback


class EntitySummary(BaseModel):
    """Compact node description returned by read queries."""

    id: str
    kind: NodeKind
    name: str
    depth: Optional[int] = Field(None, description="Hop distance for traversal results")


class SearchHit(BaseModel):
    """Full-text search result."""

    id: str
    kind: NodeKind
    name: str
    score: float
    snippet: str = ""


class TraversalDirection(str, Enum):
    """Edge direction followed by a traversal."""

    OUTGOING = "outgoing"
    INCOMING = "incoming"
    BOTH = "both"


class TraversalSpec(BaseModel):
    """Variable-length traversal from a start node."""

    start_id: str
    relation_types: list[RelationType] = Field(default_factory=list)
    direction: TraversalDirection = TraversalDirection.OUTGOING
    max_depth: int = Field(default=1, ge=1)


class SearchSpec(BaseModel):
    """Full-text query over searchable properties."""

    text: str
    kinds: list[NodeKind] = Field(default_factory=list)
    limit: int = Field(default=20, ge=1)


class RelationshipView(BaseModel):
    """A relationship as seen by read queries."""

    from_id: str
    to_id: str
    relation_type: RelationType


class ImpactEntry(BaseModel):
    """A node affected by a change, with the relationship that links it."""

    id: str
    kind: NodeKind
    name: str
    relationship: str
    depth: int = 1


class Neighborhood(BaseModel):
    """Local neighborhood around a node."""

    center: Optional[EntitySummary] = None
    nodes: list[EntitySummary] = Field(default_factory=list)
    relationships: list[RelationshipView] = Field(default_factory=list)


class GraphCounts(BaseModel):
    """Node and relationship totals."""

    nodes: int = 0
    relationships: int = 0
    nodes_by_kind: dict[str, int] = Field(default_factory=dict)


class GraphStatus(BaseModel):
    """Graph totals plus the project's last sync time."""

    project_id: str
    counts: GraphCounts
    last_sync_time: Optional[datetime] = None


class StoredNode(BaseModel):
    """A node with its full property bag."""

    kind: NodeKind
    id: str
    properties: dict[str, Any] = Field(default_factory=dict)


class Adjacency(BaseModel):
    """One relationship seen from a given node."""

    relation_type: RelationType
    outgoing: bool = Field(..., description="True if the edge starts at the queried node")
    node: EntitySummary

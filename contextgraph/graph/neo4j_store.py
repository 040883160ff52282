"""
Cypher implementation of the graph store.

Labels and relationship types are interpolated only from ``NodeKind`` and
``RelationType`` members; every value travels as a parameter.
"""

import logging
import re
from datetime import datetime
from typing import Any, Optional

from .client import GraphClient
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
from .schema import ENTITY_SEARCH_INDEX

logger = logging.getLogger(__name__)

ENTITY_LABELS = [kind.value for kind in NodeKind]

# Lucene query syntax characters that must be escaped in user text.
_LUCENE_SPECIAL = re.compile(r'([+\-!(){}\[\]^"~*?:\\/]|&&|\|\|)')

SNIPPET_LENGTH = 160


def lucene_query(text: str) -> str:
    """Turn free text into a prefix-matching Lucene query."""
    tokens = [_LUCENE_SPECIAL.sub(r"\\\1", token) for token in text.split()]
    return " ".join(f"{token}*" for token in tokens if token)


def _rel_pattern(relation_types: Optional[list[RelationType]], depth: str = "") -> str:
    types = "|".join(rt.value for rt in relation_types or [])
    inner = f"r:{types}" if types else "r"
    return f"[{inner}{depth}]"


def _arrows(direction: TraversalDirection) -> tuple[str, str]:
    if direction == TraversalDirection.OUTGOING:
        return "-", "->"
    if direction == TraversalDirection.INCOMING:
        return "<-", "-"
    return "-", "-"


def _summary(record: dict[str, Any], depth: Optional[int] = None) -> EntitySummary:
    return EntitySummary(
        id=record["id"],
        kind=NodeKind(record["kind"]),
        name=record.get("name") or record["id"],
        depth=depth,
    )


class Neo4jGraphStore:
    """Graph store backed by Neo4j through ``GraphClient``."""

    def __init__(self, client: GraphClient):
        self.client = client

    async def upsert_node(self, kind: NodeKind, node_id: str, properties: dict[str, Any]) -> bool:
        # Single MERGE statement: readers never see a half-built node.
        query = f"""
        OPTIONAL MATCH (existing:{kind.value} {{id: $id}})
        WITH count(existing) AS existed
        MERGE (n:{kind.value} {{id: $id}})
        SET n = $properties
        RETURN existed = 0 AS created
        """
        records = await self.client.execute(
            query, {"id": node_id, "properties": {**properties, "id": node_id}}
        )
        return bool(records and records[0]["created"])

    async def upsert_edge(
        self, relation_type: RelationType, source: NodeRef, target: NodeRef
    ) -> EdgeOutcome:
        query = f"""
        MATCH (a:{source.kind.value} {{id: $from_id}})
        MATCH (b:{target.kind.value} {{id: $to_id}})
        OPTIONAL MATCH (a)-[existing:{relation_type.value}]->(b)
        WITH a, b, count(existing) AS existed
        MERGE (a)-[:{relation_type.value}]->(b)
        RETURN existed = 0 AS created
        """
        records = await self.client.execute(query, {"from_id": source.id, "to_id": target.id})
        if not records:
            return EdgeOutcome.MISSING_ENDPOINT
        return EdgeOutcome.CREATED if records[0]["created"] else EdgeOutcome.UNCHANGED

    async def prune_edges(
        self,
        relation_type: RelationType,
        anchor: NodeRef,
        direction: TraversalDirection,
        keep: list[NodeRef],
    ) -> int:
        if direction == TraversalDirection.BOTH:
            raise ValueError("prune_edges needs an OUTGOING or INCOMING direction")
        left, right = _arrows(direction)
        query = f"""
        MATCH (a:{anchor.kind.value} {{id: $id}}){left}[r:{relation_type.value}]{right}(other)
        WHERE NOT any(k IN $keep WHERE k.id = other.id AND k.kind IN labels(other))
        DELETE r
        RETURN count(r) AS removed
        """
        records = await self.client.execute(
            query,
            {"id": anchor.id, "keep": [{"kind": ref.kind.value, "id": ref.id} for ref in keep]},
        )
        return int(records[0]["removed"]) if records else 0

    async def node_exists(self, kind: NodeKind, node_id: str) -> bool:
        records = await self.client.execute(
            f"MATCH (n:{kind.value} {{id: $id}}) RETURN count(n) > 0 AS found", {"id": node_id}
        )
        return bool(records and records[0]["found"])

    async def get_node(self, node_id: str) -> Optional[StoredNode]:
        query = """
        MATCH (n {id: $id})
        WITH n, [l IN labels(n) WHERE l IN $labels] AS kinds
        WHERE size(kinds) > 0
        RETURN kinds[0] AS kind, properties(n) AS properties
        ORDER BY kind
        LIMIT 1
        """
        records = await self.client.execute(query, {"id": node_id, "labels": ENTITY_LABELS})
        if not records:
            return None
        return StoredNode(
            kind=NodeKind(records[0]["kind"]), id=node_id, properties=records[0]["properties"]
        )

    async def delete_node(self, kind: NodeKind, node_id: str) -> bool:
        query = f"""
        MATCH (n:{kind.value} {{id: $id}})
        DETACH DELETE n
        RETURN count(n) AS deleted
        """
        records = await self.client.execute(query, {"id": node_id})
        deleted = bool(records and records[0]["deleted"] > 0)
        if deleted:
            logger.info("graph_node_deleted", extra={"kind": kind.value, "id": node_id})
        return deleted

    async def node_ids(self, kind: NodeKind, project_id: str) -> set[str]:
        if kind == NodeKind.PROJECT:
            query = "MATCH (n:Project {id: $project_id}) RETURN n.id AS id"
        else:
            query = f"MATCH (n:{kind.value} {{project_id: $project_id}}) RETURN n.id AS id"
        records = await self.client.execute(query, {"project_id": project_id})
        return {record["id"] for record in records}

    async def traverse(self, spec: TraversalSpec) -> list[EntitySummary]:
        left, right = _arrows(spec.direction)
        pattern = _rel_pattern(spec.relation_types, f"*1..{int(spec.max_depth)}")
        query = f"""
        MATCH (start {{id: $start_id}})
        WHERE any(l IN labels(start) WHERE l IN $labels)
        MATCH path = (start){left}{pattern}{right}(node)
        WHERE node <> start AND any(l IN labels(node) WHERE l IN $labels)
        WITH node, min(length(path)) AS depth
        RETURN node.id AS id,
               [l IN labels(node) WHERE l IN $labels][0] AS kind,
               coalesce(node.title, node.name, node.id) AS name,
               depth
        ORDER BY depth ASC, id ASC
        """
        records = await self.client.execute(
            query, {"start_id": spec.start_id, "labels": ENTITY_LABELS}
        )
        return [_summary(record, depth=record["depth"]) for record in records]

    async def neighbors(
        self,
        node_id: str,
        direction: TraversalDirection = TraversalDirection.BOTH,
        relation_types: Optional[list[RelationType]] = None,
    ) -> list[Adjacency]:
        left, right = _arrows(direction)
        query = f"""
        MATCH (start {{id: $id}}){left}{_rel_pattern(relation_types)}{right}(other)
        WHERE any(l IN labels(start) WHERE l IN $labels)
          AND any(l IN labels(other) WHERE l IN $labels)
        RETURN type(r) AS relation_type,
               startNode(r) = start AS outgoing,
               other.id AS id,
               [l IN labels(other) WHERE l IN $labels][0] AS kind,
               coalesce(other.title, other.name, other.id) AS name
        ORDER BY relation_type ASC, id ASC
        """
        records = await self.client.execute(query, {"id": node_id, "labels": ENTITY_LABELS})
        return [
            Adjacency(
                relation_type=RelationType(record["relation_type"]),
                outgoing=record["outgoing"],
                node=_summary(record),
            )
            for record in records
        ]

    async def relationships_among(self, node_ids: list[str]) -> list[RelationshipView]:
        query = """
        MATCH (a)-[r]->(b)
        WHERE a.id IN $ids AND b.id IN $ids AND type(r) IN $types
        RETURN DISTINCT a.id AS from_id, b.id AS to_id, type(r) AS relation_type
        ORDER BY from_id, to_id, relation_type
        """
        records = await self.client.execute(
            query, {"ids": node_ids, "types": [rt.value for rt in RelationType]}
        )
        return [
            RelationshipView(
                from_id=record["from_id"],
                to_id=record["to_id"],
                relation_type=RelationType(record["relation_type"]),
            )
            for record in records
        ]

    async def members(self, project_id: str, kind: Optional[NodeKind] = None) -> list[EntitySummary]:
        labels = [kind.value] if kind else ENTITY_LABELS
        query = """
        MATCH (n)-[:BELONGS_TO]->(p:Project {id: $project_id})
        WITH n, [l IN labels(n) WHERE l IN $labels] AS kinds
        WHERE size(kinds) > 0
        RETURN n.id AS id, kinds[0] AS kind, coalesce(n.title, n.name, n.id) AS name
        ORDER BY kind ASC, id ASC
        """
        records = await self.client.execute(query, {"project_id": project_id, "labels": labels})
        return [_summary(record) for record in records]

    async def list_nodes(self, kind: NodeKind) -> list[EntitySummary]:
        query = f"""
        MATCH (n:{kind.value})
        RETURN n.id AS id, $kind AS kind, coalesce(n.title, n.name, n.id) AS name
        ORDER BY name ASC, id ASC
        """
        records = await self.client.execute(query, {"kind": kind.value})
        return [_summary(record) for record in records]

    async def search(self, spec: SearchSpec) -> list[SearchHit]:
        """
        Full-text search through the entity index.

        Lucene matches each token as a word prefix, so "apture" does not find
        "capture" here while ``InMemoryGraphStore`` matches any substring.
        """
        text = lucene_query(spec.text)
        if not text:
            return []
        labels = [kind.value for kind in spec.kinds] or ENTITY_LABELS
        query = """
        CALL db.index.fulltext.queryNodes($index, $query)
        YIELD node, score
        WITH node, score, [l IN labels(node) WHERE l IN $labels] AS kinds
        WHERE size(kinds) > 0
        RETURN node.id AS id,
               kinds[0] AS kind,
               coalesce(node.title, node.name, node.id) AS name,
               score,
               coalesce(node.description, node.definition, node.content, '') AS snippet
        ORDER BY score DESC, id ASC
        LIMIT $limit
        """
        records = await self.client.execute(
            query,
            {"index": ENTITY_SEARCH_INDEX, "query": text, "labels": labels, "limit": spec.limit},
        )
        return [
            SearchHit(
                id=record["id"],
                kind=NodeKind(record["kind"]),
                name=record["name"] or record["id"],
                score=float(record["score"]),
                snippet=(record["snippet"] or "")[:SNIPPET_LENGTH],
            )
            for record in records
        ]

    async def get_sync_state(self, project_id: str) -> Optional[datetime]:
        records = await self.client.execute(
            "MATCH (s:SyncState {project_id: $project_id}) RETURN s.last_sync_time AS synced_at",
            {"project_id": project_id},
        )
        if not records or not records[0]["synced_at"]:
            return None
        return datetime.fromisoformat(records[0]["synced_at"])

    async def set_sync_state(self, project_id: str, synced_at: datetime) -> None:
        await self.client.execute(
            """
            MERGE (s:SyncState {project_id: $project_id})
            SET s.last_sync_time = $synced_at
            """,
            {"project_id": project_id, "synced_at": synced_at.isoformat()},
        )

    async def counts(self) -> GraphCounts:
        node_records = await self.client.execute(
            """
            MATCH (n)
            WITH [l IN labels(n) WHERE l IN $labels] AS kinds
            WHERE size(kinds) > 0
            RETURN kinds[0] AS kind, count(*) AS count
            """,
            {"labels": ENTITY_LABELS},
        )
        rel_records = await self.client.execute(
            "MATCH ()-[r]->() WHERE type(r) IN $types RETURN count(r) AS count",
            {"types": [rt.value for rt in RelationType]},
        )
        by_kind = {record["kind"]: record["count"] for record in node_records}
        return GraphCounts(
            nodes=sum(by_kind.values()),
            relationships=rel_records[0]["count"] if rel_records else 0,
            nodes_by_kind=by_kind,
        )

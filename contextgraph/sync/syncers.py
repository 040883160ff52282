"""
Per-kind syncers and the dependency-ordered tier table.

Relationships derived here:

- (Spec|Task|Decision|BoundedContext|Term|DesignSystem)-[:BELONGS_TO]->(Project)
- (Spec)-[:DEPENDS_ON]->(Spec)                 from ``dependencies``
- (Task)-[:DEPENDS_ON]->(Task)                 from ``blocked_by``
- (Task)-[:IMPLEMENTS]->(Spec)                 from ``spec_id``
- (BoundedContext)-[:DEFINES]->(Term)          from the term's ``context_id``
- (BoundedContext)-[:UPSTREAM_OF]->(BoundedContext) from ``upstream_contexts``
- (DomainEntity)-[:PART_OF]->(BoundedContext)  from ``context_id``
- (Decision)-[:RELATES_TO]->(Spec)             from ``related_specs``
- (Decision)-[:SUPERSEDED_BY]->(Decision)      from ``superseded_by``
- (Memory)-[:RELATES_TO]->(any)                from ``related_entity_type`` / ``related_entity_id``
"""

from __future__ import annotations

from contextgraph.exceptions import MalformedRelationshipData, ProjectNotFoundError
from contextgraph.graph.models import EdgeRef, NodeKind, NodeRef, RelationType, TraversalDirection

from .base import EntitySyncer, KindSyncReport
from .decoding import decode_id
from .rows import (
    BoundedContextRow,
    DecisionRow,
    DesignSystemRow,
    DomainObjectRow,
    MemoryRow,
    ProjectRow,
    SpecRow,
    TaskRow,
    TermRow,
)
from .source import Row


_OUT = TraversalDirection.OUTGOING
_IN = TraversalDirection.INCOMING
_OWNED_BY_PROJECT = ((RelationType.BELONGS_TO, _OUT),)


class ProjectSyncer(EntitySyncer[ProjectRow]):
    kind = NodeKind.PROJECT
    row_model = ProjectRow

    async def list_rows(self, project_id: str) -> list[Row]:
        rows = [row for row in await self.source.list_projects() if row.get("id") == project_id]
        if not rows:
            raise ProjectNotFoundError(project_id)
        return rows

    def edges_for(self, project_id: str, row: ProjectRow, report: KindSyncReport) -> list[EdgeRef]:
        return []


class BoundedContextSyncer(EntitySyncer[BoundedContextRow]):
    kind = NodeKind.BOUNDED_CONTEXT
    row_model = BoundedContextRow
    owned_relationships = _OWNED_BY_PROJECT + ((RelationType.UPSTREAM_OF, _IN),)

    async def list_rows(self, project_id: str) -> list[Row]:
        return await self.source.list_bounded_contexts(project_id)

    def edges_for(
        self, project_id: str, row: BoundedContextRow, report: KindSyncReport
    ) -> list[EdgeRef]:
        edges = [self.belongs_to(project_id, row)]
        # Upstream contexts point at the contexts that consume them.
        for upstream_id in self.decode_list(row, "upstream_contexts", report):
            edges.append(
                EdgeRef(
                    relation_type=RelationType.UPSTREAM_OF,
                    source=NodeRef(kind=NodeKind.BOUNDED_CONTEXT, id=upstream_id),
                    target=NodeRef(kind=NodeKind.BOUNDED_CONTEXT, id=row.id),
                    source_field="upstream_contexts",
                )
            )
        return edges


class DesignSystemSyncer(EntitySyncer[DesignSystemRow]):
    kind = NodeKind.DESIGN_SYSTEM
    row_model = DesignSystemRow
    owned_relationships = _OWNED_BY_PROJECT

    async def list_rows(self, project_id: str) -> list[Row]:
        return await self.source.list_design_systems(project_id)

    def edges_for(
        self, project_id: str, row: DesignSystemRow, report: KindSyncReport
    ) -> list[EdgeRef]:
        return [self.belongs_to(project_id, row)]


class DomainEntitySyncer(EntitySyncer[DomainObjectRow]):
    kind = NodeKind.DOMAIN_ENTITY
    row_model = DomainObjectRow
    owned_relationships = ((RelationType.PART_OF, _OUT),)

    async def list_rows(self, project_id: str) -> list[Row]:
        return await self.source.list_domain_objects(project_id)

    def edges_for(
        self, project_id: str, row: DomainObjectRow, report: KindSyncReport
    ) -> list[EdgeRef]:
        context_id = decode_id(row.context_id)
        if context_id is None:
            return []
        return [
            self.edge(
                RelationType.PART_OF, row.id, NodeKind.BOUNDED_CONTEXT, context_id, "context_id"
            )
        ]


class TermSyncer(EntitySyncer[TermRow]):
    kind = NodeKind.TERM
    row_model = TermRow
    owned_relationships = _OWNED_BY_PROJECT + ((RelationType.DEFINES, _IN),)

    async def list_rows(self, project_id: str) -> list[Row]:
        return await self.source.list_terms(project_id)

    def edges_for(self, project_id: str, row: TermRow, report: KindSyncReport) -> list[EdgeRef]:
        edges = [self.belongs_to(project_id, row)]
        context_id = decode_id(row.context_id)
        if context_id is not None:
            edges.append(
                EdgeRef(
                    relation_type=RelationType.DEFINES,
                    source=NodeRef(kind=NodeKind.BOUNDED_CONTEXT, id=context_id),
                    target=NodeRef(kind=NodeKind.TERM, id=row.id),
                    source_field="context_id",
                )
            )
        return edges


class DecisionSyncer(EntitySyncer[DecisionRow]):
    kind = NodeKind.DECISION
    row_model = DecisionRow
    owned_relationships = _OWNED_BY_PROJECT + (
        (RelationType.RELATES_TO, _OUT),
        (RelationType.SUPERSEDED_BY, _OUT),
    )

    async def list_rows(self, project_id: str) -> list[Row]:
        return await self.source.list_decisions(project_id)

    def edges_for(self, project_id: str, row: DecisionRow, report: KindSyncReport) -> list[EdgeRef]:
        edges = [self.belongs_to(project_id, row)]
        for spec_id in self.decode_list(row, "related_specs", report):
            edges.append(
                self.edge(RelationType.RELATES_TO, row.id, NodeKind.SPEC, spec_id, "related_specs")
            )
        newer_id = decode_id(row.superseded_by)
        if newer_id is not None:
            edges.append(
                self.edge(
                    RelationType.SUPERSEDED_BY, row.id, NodeKind.DECISION, newer_id, "superseded_by"
                )
            )
        return edges


class SpecSyncer(EntitySyncer[SpecRow]):
    kind = NodeKind.SPEC
    row_model = SpecRow
    owned_relationships = _OWNED_BY_PROJECT + ((RelationType.DEPENDS_ON, _OUT),)

    async def list_rows(self, project_id: str) -> list[Row]:
        return await self.source.list_specs(project_id)

    def edges_for(self, project_id: str, row: SpecRow, report: KindSyncReport) -> list[EdgeRef]:
        edges = [self.belongs_to(project_id, row)]
        for dependency_id in self.decode_list(row, "dependencies", report):
            edges.append(
                self.edge(
                    RelationType.DEPENDS_ON, row.id, NodeKind.SPEC, dependency_id, "dependencies"
                )
            )
        return edges


class TaskSyncer(EntitySyncer[TaskRow]):
    kind = NodeKind.TASK
    row_model = TaskRow
    owned_relationships = _OWNED_BY_PROJECT + (
        (RelationType.IMPLEMENTS, _OUT),
        (RelationType.DEPENDS_ON, _OUT),
    )

    async def list_rows(self, project_id: str) -> list[Row]:
        return await self.source.list_tasks(project_id)

    def edges_for(self, project_id: str, row: TaskRow, report: KindSyncReport) -> list[EdgeRef]:
        edges = [self.belongs_to(project_id, row)]
        spec_id = decode_id(row.spec_id)
        if spec_id is not None:
            edges.append(
                self.edge(RelationType.IMPLEMENTS, row.id, NodeKind.SPEC, spec_id, "spec_id")
            )
        for blocker_id in self.decode_list(row, "blocked_by", report):
            edges.append(
                self.edge(RelationType.DEPENDS_ON, row.id, NodeKind.TASK, blocker_id, "blocked_by")
            )
        return edges


class MemorySyncer(EntitySyncer[MemoryRow]):
    kind = NodeKind.MEMORY
    row_model = MemoryRow
    owned_relationships = ((RelationType.RELATES_TO, _OUT),)

    async def list_rows(self, project_id: str) -> list[Row]:
        return await self.source.list_memory_entries(project_id)

    def edges_for(self, project_id: str, row: MemoryRow, report: KindSyncReport) -> list[EdgeRef]:
        target_id = decode_id(row.related_entity_id)
        if target_id is None:
            return []

        raw_type = decode_id(row.related_entity_type)
        target_kind = NodeKind.parse(raw_type) if raw_type else None
        if target_kind is None:
            report.record_malformed(
                MalformedRelationshipData(
                    "related_entity_type", row.related_entity_type, "unknown entity type"
                ),
                row.id,
            )
            return []

        return [
            self.edge(
                RelationType.RELATES_TO, row.id, target_kind, target_id, "related_entity_id"
            )
        ]


# Kinds in one tier may only reference kinds in earlier tiers or in the same tier.
SYNC_TIERS: list[list[type[EntitySyncer]]] = [
    [ProjectSyncer],
    [BoundedContextSyncer, DesignSystemSyncer, DomainEntitySyncer, TermSyncer],
    [DecisionSyncer, SpecSyncer, TaskSyncer],
    [MemorySyncer],
]


__all__ = [
    "BoundedContextSyncer",
    "DecisionSyncer",
    "DesignSystemSyncer",
    "DomainEntitySyncer",
    "MemorySyncer",
    "ProjectSyncer",
    "SYNC_TIERS",
    "SpecSyncer",
    "TaskSyncer",
    "TermSyncer",
]

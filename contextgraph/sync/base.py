"""
Generic entity syncer and the bookkeeping types shared by a sync run.

A syncer owns one node kind. It reads that kind's rows from the source store,
upserts one node per row, and reconciles the relationships its rows declare.
Upserting and deriving are separate phases so the orchestrator can place a
barrier between them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, ClassVar, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, ValidationError

from contextgraph.exceptions import MalformedRelationshipData, QueryError, SyncCancelledError
from contextgraph.graph.models import (
    EdgeOutcome,
    EdgeRef,
    NodeKind,
    NodeRef,
    RelationType,
    TraversalDirection,
)
from contextgraph.graph.store import GraphStore

from .decoding import DecodedIds, decode_id, decode_id_list
from .rows import SourceRow
from .source import Row, SourceStore

logger = logging.getLogger(__name__)

RowT = TypeVar("RowT", bound=SourceRow)


class CancellationToken:
    """
    Cooperative cancellation handle for one sync run.

    Fires when the wrapped event is set or the optional deadline passes.
    """

    def __init__(self, event: Optional[asyncio.Event] = None, timeout: Optional[float] = None):
        self.event = event or asyncio.Event()
        self.deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self.event.set()

    @property
    def cancelled(self) -> bool:
        if self.event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def raise_if_cancelled(self) -> None:
        """
        Raises:
            SyncCancelledError: If the token has fired
        """
        if self.cancelled:
            reason = "timeout" if not self.event.is_set() else "cancel requested"
            raise SyncCancelledError(f"Sync cancelled ({reason})")


class NodeCounts(BaseModel):
    created: int = 0
    updated: int = 0


class EdgeCounts(BaseModel):
    created: int = 0
    unchanged: int = 0
    skipped: int = 0
    removed: int = 0


class KindSyncReport(BaseModel):
    """Outcome of syncing one node kind."""

    kind: NodeKind
    rows_read: int = 0
    rows_failed: int = 0
    nodes: NodeCounts = Field(default_factory=NodeCounts)
    edges: EdgeCounts = Field(default_factory=EdgeCounts)
    malformed_relationships: int = 0
    failed: bool = Field(default=False, description="True if the kind aborted with an error")
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def record_malformed(self, error: MalformedRelationshipData, row_id: str) -> None:
        self.malformed_relationships += 1
        self.warnings.append(f"{row_id}: {error}")
        logger.warning(
            "sync_malformed_relationship",
            extra={
                "kind": self.kind.value,
                "row_id": row_id,
                "field": error.field,
                "reason": error.reason,
            },
        )


class EntitySyncer(ABC, Generic[RowT]):
    """
    Base class for one node kind's projection.

    Subclasses set ``kind`` and ``row_model`` and implement ``list_rows`` and
    ``edges_for``. Everything else (validation, filtering, upserts, counting,
    cancellation checks) lives here.
    """

    kind: ClassVar[NodeKind]
    row_model: ClassVar[type[SourceRow]]
    # Relationships this kind's rows declare, seen from the row's own node.
    # Edges of these types that a row no longer declares are removed.
    owned_relationships: ClassVar[tuple[tuple[RelationType, TraversalDirection], ...]] = ()

    def __init__(self, store: GraphStore, source: SourceStore):
        self.store = store
        self.source = source

    @abstractmethod
    async def list_rows(self, project_id: str) -> list[Row]:
        """Fetch this kind's raw rows from the source store."""

    @abstractmethod
    def edges_for(self, project_id: str, row: RowT, report: KindSyncReport) -> list[EdgeRef]:
        """Relationships declared by one row."""

    def parse_rows(self, raw_rows: list[Row], report: KindSyncReport) -> list[RowT]:
        """
        Validate raw rows, recording and skipping the invalid ones.

        Returns:
            Valid rows in source order
        """
        rows: list[RowT] = []
        for raw in raw_rows:
            try:
                rows.append(self.row_model.model_validate(dict(raw)))
            except ValidationError as e:
                row_id = raw.get("id", "<missing id>")
                report.rows_failed += 1
                report.errors.append(f"{row_id}: invalid row ({e.error_count()} errors)")
                logger.warning(
                    "sync_row_invalid",
                    extra={"kind": self.kind.value, "row_id": row_id, "error": str(e)},
                )
        report.rows_read += len(raw_rows)
        return rows

    @staticmethod
    def select_changed(rows: list[RowT], since: Optional[datetime]) -> list[RowT]:
        """Rows changed after ``since``. Rows without timestamps always qualify."""
        if since is None:
            return rows
        return [row for row in rows if row.changed_at is None or row.changed_at > since]

    def node_properties(self, project_id: str, row: RowT) -> dict[str, Any]:
        properties = row.node_properties()
        properties["kind"] = self.kind.value
        if self.kind != NodeKind.PROJECT:
            properties["project_id"] = project_id
        return properties

    async def upsert_nodes(
        self,
        project_id: str,
        rows: list[RowT],
        token: CancellationToken,
        report: KindSyncReport,
    ) -> NodeCounts:
        """
        Upsert one node per row.

        Raises:
            SyncCancelledError: If the token fires between rows
            GraphConnectionError: If the graph becomes unreachable
        """
        counts = NodeCounts()
        for row in rows:
            token.raise_if_cancelled()
            try:
                created = await self.store.upsert_node(
                    self.kind, row.id, self.node_properties(project_id, row)
                )
            except QueryError as e:
                report.rows_failed += 1
                report.errors.append(f"{row.id}: {e}")
                logger.error(
                    "sync_node_upsert_failed",
                    extra={"kind": self.kind.value, "row_id": row.id, "error": str(e)},
                )
                continue

            # Report per row so a cancelled run still accounts for its writes.
            if created:
                counts.created += 1
                report.nodes.created += 1
            else:
                counts.updated += 1
                report.nodes.updated += 1

        return counts

    async def derive_relationships(
        self,
        project_id: str,
        rows: list[RowT],
        token: CancellationToken,
        report: KindSyncReport,
    ) -> EdgeCounts:
        """
        Make each row's relationships match what the row currently declares.

        Declared edges whose endpoints both exist are created; missing
        endpoints are counted as skipped and never abort the sync. Edges of an
        owned relationship type that the row no longer declares are removed.
        """
        counts = EdgeCounts()
        for row in rows:
            token.raise_if_cancelled()
            row_counts = EdgeCounts()
            edges = self.edges_for(project_id, row, report)

            for edge in edges:
                try:
                    outcome = await self.store.upsert_edge(
                        edge.relation_type, edge.source, edge.target
                    )
                except QueryError as e:
                    self._record_edge_failure(report, row.id, edge.relation_type, e)
                    continue

                if outcome == EdgeOutcome.CREATED:
                    row_counts.created += 1
                elif outcome == EdgeOutcome.UNCHANGED:
                    row_counts.unchanged += 1
                else:
                    row_counts.skipped += 1
                    logger.debug(
                        "sync_edge_skipped_missing_endpoint",
                        extra={
                            "relation_type": edge.relation_type.value,
                            "from_id": edge.source.id,
                            "to_id": edge.target.id,
                            "field": edge.source_field,
                        },
                    )

            row_counts.removed = await self._prune_undeclared(row.id, edges, report)
            for counter in (counts, report.edges):
                counter.created += row_counts.created
                counter.unchanged += row_counts.unchanged
                counter.skipped += row_counts.skipped
                counter.removed += row_counts.removed

        return counts

    async def _prune_undeclared(
        self, row_id: str, edges: list[EdgeRef], report: KindSyncReport
    ) -> int:
        anchor = NodeRef(kind=self.kind, id=row_id)
        removed = 0
        for relation_type, direction in self.owned_relationships:
            declared = [e for e in edges if e.relation_type == relation_type]
            if direction == TraversalDirection.OUTGOING:
                keep = [e.target for e in declared if e.source == anchor]
            else:
                keep = [e.source for e in declared if e.target == anchor]
            try:
                removed += await self.store.prune_edges(relation_type, anchor, direction, keep)
            except QueryError as e:
                self._record_edge_failure(report, row_id, relation_type, e)
        if removed:
            logger.info(
                "sync_edges_removed",
                extra={"kind": self.kind.value, "row_id": row_id, "removed": removed},
            )
        return removed

    def _record_edge_failure(
        self, report: KindSyncReport, row_id: str, relation_type: RelationType, error: QueryError
    ) -> None:
        report.errors.append(f"{row_id}: {relation_type.value} failed: {error}")
        logger.error(
            "sync_edge_upsert_failed",
            extra={
                "kind": self.kind.value,
                "row_id": row_id,
                "relation_type": relation_type.value,
                "error": str(error),
            },
        )

    # ------------------------------------------------------------------
    # Edge helpers for subclasses
    # ------------------------------------------------------------------

    def edge(
        self,
        relation_type: RelationType,
        source_id: str,
        target_kind: NodeKind,
        target_id: str,
        field: str,
    ) -> EdgeRef:
        return EdgeRef(
            relation_type=relation_type,
            source=NodeRef(kind=self.kind, id=source_id),
            target=NodeRef(kind=target_kind, id=target_id),
            source_field=field,
        )

    def belongs_to(self, project_id: str, row: RowT) -> EdgeRef:
        # Rows listed for a project belong to it even if the column is empty.
        owner = decode_id(getattr(row, "project_id", None)) or project_id
        return self.edge(RelationType.BELONGS_TO, row.id, NodeKind.PROJECT, owner, "project_id")

    def decode_list(self, row: RowT, field: str, report: KindSyncReport) -> list[str]:
        decoded: DecodedIds = decode_id_list(field, getattr(row, field, None))
        if decoded.error is not None:
            report.record_malformed(decoded.error, row.id)
        return decoded.ids


__all__ = [
    "CancellationToken",
    "EdgeCounts",
    "EntitySyncer",
    "KindSyncReport",
    "NodeCounts",
]

"""
Sync orchestration: runs every syncer tier by tier and aggregates the outcome.

Within a tier each kind's node upserts run concurrently, then every kind's
relationship derivation runs concurrently. A barrier separates the two phases
and the tiers, so any reference to a kind in the same or an earlier tier finds
its endpoint already written.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Optional

from pydantic import BaseModel, Field

from contextgraph.exceptions import (
    GraphConnectionError,
    ProjectNotFoundError,
    SchemaInitializationError,
    SyncCancelledError,
)
from contextgraph.graph.models import NodeKind
from contextgraph.graph.schema import SchemaManager
from contextgraph.graph.store import GraphStore
from contextgraph.logging_config import reset_sync_run_id, set_sync_run_id

from .base import CancellationToken, EntitySyncer, KindSyncReport
from .rows import as_utc
from .source import SourceStore
from .syncers import SYNC_TIERS

logger = logging.getLogger(__name__)

# Errors that end a run instead of being recorded against one kind.
FATAL_ERRORS = (GraphConnectionError, SchemaInitializationError, ProjectNotFoundError)


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class SyncResult(BaseModel):
    """Aggregated outcome of one sync run."""

    project_id: str
    mode: SyncMode
    started_at: datetime
    finished_at: Optional[datetime] = None
    nodes_created: int = 0
    nodes_updated: int = 0
    relationships_created: int = 0
    relationships_unchanged: int = 0
    relationships_skipped: int = 0
    relationships_removed: int = 0
    rows_failed: int = 0
    malformed_relationships: int = 0
    per_kind: dict[str, KindSyncReport] = Field(default_factory=dict)
    per_kind_errors: dict[str, list[str]] = Field(default_factory=dict)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        """True if the run finished without cancellation or errors."""
        return not self.cancelled and not self.per_kind_errors

    @property
    def total_nodes(self) -> int:
        return self.nodes_created + self.nodes_updated

    @property
    def failed_kinds(self) -> list[str]:
        return [kind for kind, report in self.per_kind.items() if report.failed]

    def collect(self) -> None:
        """Recompute totals from the per-kind reports."""
        reports = list(self.per_kind.values())
        self.nodes_created = sum(r.nodes.created for r in reports)
        self.nodes_updated = sum(r.nodes.updated for r in reports)
        self.relationships_created = sum(r.edges.created for r in reports)
        self.relationships_unchanged = sum(r.edges.unchanged for r in reports)
        self.relationships_skipped = sum(r.edges.skipped for r in reports)
        self.relationships_removed = sum(r.edges.removed for r in reports)
        self.rows_failed = sum(r.rows_failed for r in reports)
        self.malformed_relationships = sum(r.malformed_relationships for r in reports)
        self.per_kind_errors = {kind: list(r.errors) for kind, r in self.per_kind.items() if r.errors}


class ReconcileReport(BaseModel):
    """Graph nodes whose source rows no longer exist."""

    project_id: str
    dry_run: bool = True
    stale: dict[str, list[str]] = Field(default_factory=dict)
    deleted: int = 0
    skipped_kinds: dict[str, str] = Field(
        default_factory=dict, description="Kinds not examined, with the reason"
    )

    @property
    def total_stale(self) -> int:
        return sum(len(ids) for ids in self.stale.values())


class SyncOrchestrator:
    """
    Runs full and incremental syncs of one source store into one graph store.

    Schema initialization is exclusive with sync runs: it waits for active runs
    to drain and new runs wait until it is done. Runs for the same project are
    serialized.
    """

    def __init__(
        self,
        store: GraphStore,
        source: SourceStore,
        schema: Optional[SchemaManager] = None,
        max_concurrency: int = 4,
        default_timeout: Optional[float] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Graph store written by the syncers
            source: Authoritative store read by the syncers
            schema: Schema manager; None for stores that need no schema
            max_concurrency: Upper bound on kinds processed at once within a tier
            default_timeout: Timeout in seconds applied when a run passes none
        """
        self.store = store
        self.source = source
        self.schema = schema
        self.max_concurrency = max(1, max_concurrency)
        self.default_timeout = default_timeout

        self._state = asyncio.Condition()
        self._active_runs = 0
        self._schema_waiting = 0
        self._schema_running = False
        self._schema_ready = schema is None
        self._schema_once = asyncio.Lock()
        self._project_locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    async def initialize_schema(self) -> None:
        """
        Create constraints and indexes, excluding any concurrent sync run.

        Raises:
            SchemaInitializationError: If a schema statement fails
        """
        if self.schema is None:
            self._schema_ready = True
            return

        async with self._state:
            self._schema_waiting += 1
            try:
                await self._state.wait_for(
                    lambda: self._active_runs == 0 and not self._schema_running
                )
            finally:
                self._schema_waiting -= 1
            self._schema_running = True

        try:
            await self.schema.initialize_schema()
            self._schema_ready = True
        finally:
            async with self._state:
                self._schema_running = False
                self._state.notify_all()

    async def ensure_schema(self) -> None:
        """Initialize the schema once per process."""
        if self._schema_ready:
            return
        async with self._schema_once:
            if not self._schema_ready:
                await self.initialize_schema()

    @asynccontextmanager
    async def _run_slot(self, project_id: str) -> AsyncIterator[None]:
        await self.ensure_schema()
        lock = self._project_locks.setdefault(project_id, asyncio.Lock())
        async with lock:
            async with self._state:
                await self._state.wait_for(
                    lambda: not self._schema_running and self._schema_waiting == 0
                )
                self._active_runs += 1
            try:
                yield
            finally:
                async with self._state:
                    self._active_runs -= 1
                    self._state.notify_all()

    # ------------------------------------------------------------------
    # Sync runs
    # ------------------------------------------------------------------

    async def run_full_sync(
        self,
        project_id: str,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
    ) -> SyncResult:
        """
        Project every source entity of a project into the graph.

        Args:
            project_id: Project to sync
            cancel_event: Set it to stop the run between rows
            timeout: Seconds before the run cancels itself

        Returns:
            SyncResult; partial with ``cancelled=True`` if the run was stopped

        Raises:
            ProjectNotFoundError: If the source store has no such project
            GraphConnectionError: If the graph stays unreachable
            SchemaInitializationError: If the schema cannot be created
        """
        return await self._run(project_id, SyncMode.FULL, None, cancel_event, timeout)

    async def run_incremental_sync(
        self,
        project_id: str,
        since: Optional[datetime] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
    ) -> SyncResult:
        """
        Project only rows changed after ``since``.

        Without ``since`` the project's last sync time is used; with neither,
        every row qualifies. Relationships of changed rows still link to nodes
        written by earlier runs.

        Only changed rows have their relationships derived. An edge skipped
        earlier because its endpoint was missing is not retried until the
        declaring row changes again or a full sync runs.
        """
        if since is None:
            since = await self.get_last_sync_time(project_id)
        if since is not None:
            since = as_utc(since)
        return await self._run(project_id, SyncMode.INCREMENTAL, since, cancel_event, timeout)

    async def get_last_sync_time(self, project_id: str) -> Optional[datetime]:
        """Start time of the project's last completed sync, if any."""
        return await self.store.get_sync_state(project_id)

    async def _run(
        self,
        project_id: str,
        mode: SyncMode,
        since: Optional[datetime],
        cancel_event: Optional[asyncio.Event],
        timeout: Optional[float],
    ) -> SyncResult:
        run_token = set_sync_run_id(uuid.uuid4().hex[:12])
        try:
            async with self._run_slot(project_id):
                token = CancellationToken(
                    cancel_event, timeout if timeout is not None else self.default_timeout
                )
                result = SyncResult(
                    project_id=project_id, mode=mode, started_at=datetime.now(timezone.utc)
                )
                logger.info(
                    "sync_started",
                    extra={
                        "project_id": project_id,
                        "mode": mode.value,
                        "since": since.isoformat() if since else None,
                    },
                )

                try:
                    for tier_index, tier in enumerate(SYNC_TIERS):
                        await self._run_tier(tier_index, tier, project_id, since, token, result)
                except SyncCancelledError as e:
                    result.cancelled = True
                    logger.warning("sync_cancelled", extra={"project_id": project_id, "reason": str(e)})

                result.collect()
                result.finished_at = datetime.now(timezone.utc)

                # A run with any recorded error leaves the watermark where it was so
                # the next incremental run picks the failed rows up again.
                if result.ok:
                    await self.store.set_sync_state(project_id, result.started_at)

                logger.info(
                    "sync_completed",
                    extra={
                        "project_id": project_id,
                        "mode": mode.value,
                        "nodes_created": result.nodes_created,
                        "nodes_updated": result.nodes_updated,
                        "relationships_created": result.relationships_created,
                        "relationships_skipped": result.relationships_skipped,
                        "relationships_removed": result.relationships_removed,
                        "cancelled": result.cancelled,
                        "failed_kinds": result.failed_kinds,
                    },
                )
                return result
        finally:
            reset_sync_run_id(run_token)

    async def _run_tier(
        self,
        tier_index: int,
        tier: list[type[EntitySyncer]],
        project_id: str,
        since: Optional[datetime],
        token: CancellationToken,
        result: SyncResult,
    ) -> None:
        token.raise_if_cancelled()
        syncers = [syncer_cls(self.store, self.source) for syncer_cls in tier]
        reports = {}
        for syncer in syncers:
            reports[syncer.kind] = result.per_kind.setdefault(
                syncer.kind.value, KindSyncReport(kind=syncer.kind)
            )
        semaphore = asyncio.Semaphore(min(len(syncers), self.max_concurrency))
        loaded: dict[NodeKind, list[Any]] = {}

        async def write_nodes(syncer: EntitySyncer) -> None:
            report = reports[syncer.kind]
            async with semaphore:
                raw_rows = await syncer.list_rows(project_id)
                rows = syncer.select_changed(syncer.parse_rows(raw_rows, report), since)
                await syncer.upsert_nodes(project_id, rows, token, report)
                loaded[syncer.kind] = rows

        async def write_edges(syncer: EntitySyncer) -> None:
            async with semaphore:
                await syncer.derive_relationships(
                    project_id, loaded[syncer.kind], token, reports[syncer.kind]
                )

        await self._gather(syncers, write_nodes, reports)
        await self._gather(
            [syncer for syncer in syncers if syncer.kind in loaded], write_edges, reports
        )

        logger.info(
            "sync_tier_completed",
            extra={"tier": tier_index, "kinds": [syncer.kind.value for syncer in syncers]},
        )

    async def _gather(
        self,
        syncers: list[EntitySyncer],
        phase,
        reports: dict[NodeKind, KindSyncReport],
    ) -> None:
        """
        Run one phase for every syncer and wait for all of them.

        A kind's own failure is recorded on its report. Fatal errors and
        cancellation are re-raised once every syncer has stopped.
        """
        outcomes = await asyncio.gather(*(phase(syncer) for syncer in syncers), return_exceptions=True)

        cancelled: Optional[SyncCancelledError] = None
        for syncer, outcome in zip(syncers, outcomes):
            if not isinstance(outcome, BaseException):
                continue
            if isinstance(outcome, FATAL_ERRORS):
                raise outcome
            if isinstance(outcome, SyncCancelledError):
                cancelled = cancelled or outcome
                continue
            if not isinstance(outcome, Exception):
                raise outcome

            report = reports[syncer.kind]
            report.failed = True
            report.errors.append(f"{type(outcome).__name__}: {outcome}")
            logger.error(
                "sync_kind_failed",
                extra={"kind": syncer.kind.value, "error": str(outcome)},
                exc_info=outcome,
            )

        if cancelled is not None:
            raise cancelled

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def reconcile(self, project_id: str, dry_run: bool = True) -> ReconcileReport:
        """
        Find, and unless ``dry_run`` delete, nodes whose source rows are gone.

        Only nodes stamped with ``project_id`` are considered, and a kind whose
        source read fails is left untouched. Project nodes are never pruned.

        Returns:
            ReconcileReport listing stale ids per kind
        """
        report = ReconcileReport(project_id=project_id, dry_run=dry_run)

        async with self._run_slot(project_id):
            for tier in SYNC_TIERS:
                for syncer_cls in tier:
                    if syncer_cls.kind == NodeKind.PROJECT:
                        continue
                    syncer = syncer_cls(self.store, self.source)
                    kind = syncer.kind
                    try:
                        raw_rows = await syncer.list_rows(project_id)
                    except FATAL_ERRORS:
                        raise
                    except Exception as e:
                        report.skipped_kinds[kind.value] = str(e)
                        logger.warning(
                            "reconcile_kind_skipped", extra={"kind": kind.value, "error": str(e)}
                        )
                        continue

                    source_ids = {str(row.get("id", "")).strip() for row in raw_rows}
                    graph_ids = await self.store.node_ids(kind, project_id)
                    stale = sorted(graph_ids - source_ids)
                    if not stale:
                        continue

                    report.stale[kind.value] = stale
                    if not dry_run:
                        for node_id in stale:
                            if await self.store.delete_node(kind, node_id):
                                report.deleted += 1

        logger.info(
            "reconcile_completed",
            extra={
                "project_id": project_id,
                "dry_run": dry_run,
                "stale": report.total_stale,
                "deleted": report.deleted,
            },
        )
        return report


__all__ = ["ReconcileReport", "SyncMode", "SyncOrchestrator", "SyncResult"]

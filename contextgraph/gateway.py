"""Graph Gateway - single entry point for graph projection and queries."""

import logging
from datetime import datetime
from typing import Optional

from contextgraph.graph.client import GraphClient
from contextgraph.graph.models import (
    EntitySummary,
    GraphStatus,
    ImpactEntry,
    Neighborhood,
    NodeKind,
    SearchHit,
)
from contextgraph.graph.neo4j_store import Neo4jGraphStore
from contextgraph.graph.schema import SchemaManager
from contextgraph.graph.store import GraphStore
from contextgraph.queries.impact import ImpactQueryService
from contextgraph.settings import ContextGraphSettings
from contextgraph.sync.orchestrator import ReconcileReport, SyncOrchestrator, SyncResult
from contextgraph.sync.source import SourceStore

logger = logging.getLogger(__name__)


class GraphGateway:
    """
    Unified gateway over the graph projection.

    Wires settings, client, store, schema, orchestrator and query service.
    This is the surface callers (CLI, protocol server, web layer) use.
    """

    def __init__(
        self,
        settings: ContextGraphSettings,
        source: SourceStore,
        store: Optional[GraphStore] = None,
    ):
        """
        Initialize graph gateway.

        Args:
            settings: Application settings
            source: Authoritative store to project from
            store: Graph store to use instead of Neo4j (e.g. InMemoryGraphStore)
        """
        self.settings = settings
        self.source = source
        self.client: Optional[GraphClient] = None
        schema: Optional[SchemaManager] = None

        if store is None:
            self.client = GraphClient(settings.to_graph_config())
            store = Neo4jGraphStore(self.client)
            schema = SchemaManager(self.client)

        self.store = store
        self.schema = schema
        self.orchestrator = SyncOrchestrator(
            store,
            source,
            schema=schema,
            max_concurrency=settings.sync_max_concurrency,
            default_timeout=settings.sync_timeout_seconds,
        )
        self.queries = ImpactQueryService(
            store,
            default_depth=settings.default_traversal_depth,
            max_depth=settings.max_traversal_depth,
            search_limit=settings.search_limit,
        )
        self._initialized = False

    async def initialize(self) -> None:
        """Connect to the graph database, if one is configured."""
        if self.client is not None:
            await self.client.connect()
        self._initialized = True
        logger.info("graph_gateway_initialized", extra={"neo4j": self.client is not None})

    async def close(self) -> None:
        """Close the graph connection."""
        if self.client is not None:
            await self.client.close()
        self._initialized = False
        logger.info("graph_gateway_closed")

    async def __aenter__(self) -> "GraphGateway":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("GraphGateway not initialized. Call initialize() first.")

    # === Schema and sync ===

    async def initialize_schema(self) -> None:
        self._require_initialized()
        await self.orchestrator.initialize_schema()

    async def run_full_sync(self, project_id: str, **kwargs) -> SyncResult:
        self._require_initialized()
        return await self.orchestrator.run_full_sync(project_id, **kwargs)

    async def run_incremental_sync(
        self, project_id: str, since: Optional[datetime] = None, **kwargs
    ) -> SyncResult:
        self._require_initialized()
        return await self.orchestrator.run_incremental_sync(project_id, since, **kwargs)

    async def get_last_sync_time(self, project_id: str) -> Optional[datetime]:
        self._require_initialized()
        return await self.orchestrator.get_last_sync_time(project_id)

    async def reconcile(self, project_id: str, dry_run: bool = True) -> ReconcileReport:
        self._require_initialized()
        return await self.orchestrator.reconcile(project_id, dry_run=dry_run)

    # === Queries ===

    async def dependents_of(self, entity_id: str, max_depth: Optional[int] = None) -> list[EntitySummary]:
        self._require_initialized()
        return await self.queries.dependents_of(entity_id, max_depth)

    async def members_of(self, project_id: str, kind: Optional[NodeKind] = None) -> list[EntitySummary]:
        self._require_initialized()
        return await self.queries.members_of(project_id, kind)

    async def full_text_search(
        self, query: str, kinds: Optional[list[NodeKind]] = None, limit: Optional[int] = None
    ) -> list[SearchHit]:
        self._require_initialized()
        return await self.queries.full_text_search(query, kinds, limit)

    async def impact_of(self, entity_id: str) -> list[ImpactEntry]:
        self._require_initialized()
        return await self.queries.impact_of(entity_id)

    async def explore(self, entity_id: str, depth: int = 1) -> Neighborhood:
        self._require_initialized()
        return await self.queries.explore(entity_id, depth)

    async def list_nodes(self, kind: NodeKind) -> list[EntitySummary]:
        self._require_initialized()
        return await self.queries.list_nodes(kind)

    async def graph_status(self, project_id: str) -> GraphStatus:
        self._require_initialized()
        return await self.queries.graph_status(project_id)

    async def health_check(self) -> bool:
        """True if the graph answers. Never raises."""
        if self.client is None:
            return self._initialized
        return await self.client.health_check()


__all__ = ["GraphGateway"]

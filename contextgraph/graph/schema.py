"""
Neo4j schema initialization and validation.

Defines the uniqueness constraints that make node upserts idempotent and the
full-text indexes behind search.
"""

import logging
from typing import Any

from contextgraph.exceptions import ContextGraphError, SchemaInitializationError

from .client import GraphClient
from .models import NodeKind

logger = logging.getLogger(__name__)

_CONSTRAINT_NAMES = {
    NodeKind.PROJECT: "project_id",
    NodeKind.BOUNDED_CONTEXT: "context_id",
    NodeKind.DOMAIN_ENTITY: "domain_entity_id",
    NodeKind.TERM: "term_id",
    NodeKind.DECISION: "decision_id",
    NodeKind.SPEC: "spec_id",
    NodeKind.TASK: "task_id",
    NodeKind.MEMORY: "memory_id",
    NodeKind.DESIGN_SYSTEM: "design_system_id",
}

_ALL_LABELS = "|".join(kind.value for kind in NodeKind)

# Order matters: constraints first, then full-text indexes.
SCHEMA_STATEMENTS = [
    # === Constraints (Unique IDs) ===
    *(
        f"CREATE CONSTRAINT {name} IF NOT EXISTS FOR (n:{kind.value}) REQUIRE n.id IS UNIQUE"
        for kind, name in _CONSTRAINT_NAMES.items()
    ),
    "CREATE CONSTRAINT sync_state_project IF NOT EXISTS FOR (s:SyncState) REQUIRE s.project_id IS UNIQUE",
    # === Full-text Search Indexes ===
    f"CREATE FULLTEXT INDEX entity_search IF NOT EXISTS FOR (n:{_ALL_LABELS}) "
    "ON EACH [n.title, n.name, n.description, n.definition, n.content, n.context]",
    "CREATE FULLTEXT INDEX spec_search IF NOT EXISTS FOR (s:Spec) ON EACH [s.title, s.description]",
    "CREATE FULLTEXT INDEX term_search IF NOT EXISTS FOR (t:Term) ON EACH [t.name, t.definition]",
    "CREATE FULLTEXT INDEX memory_search IF NOT EXISTS FOR (m:Memory) ON EACH [m.content, m.context]",
]

ENTITY_SEARCH_INDEX = "entity_search"


class SchemaManager:
    """
    Idempotent bootstrap of constraints and indexes.

    Every statement is guarded with ``IF NOT EXISTS`` so the manager can run
    on every process start.
    """

    def __init__(self, client: GraphClient):
        self.client = client

    async def initialize_schema(self) -> None:
        """
        Issue every schema statement in order.

        Raises:
            SchemaInitializationError: If any statement fails
        """
        logger.info("graph_schema_initialization_started")

        for statement in SCHEMA_STATEMENTS:
            try:
                await self.client.execute(statement)
            except ContextGraphError as e:
                logger.error("graph_schema_statement_failed", extra={"statement": statement})
                raise SchemaInitializationError(
                    f"Schema statement failed: {e}", statement=statement, original_error=e
                ) from e

        logger.info("graph_schema_initialized", extra={"statements": len(SCHEMA_STATEMENTS)})

    async def get_schema_info(self) -> dict[str, Any]:
        """
        Validate that the schema is properly configured.

        Returns:
            Dictionary with constraint, index and node counts
        """
        constraints = await self.client.execute("SHOW CONSTRAINTS YIELD name RETURN name")
        indexes = await self.client.execute(
            "SHOW INDEXES YIELD name, type WHERE type = 'FULLTEXT' RETURN name"
        )

        constraint_names = {record["name"] for record in constraints}
        index_names = {record["name"] for record in indexes}
        expected_constraints = set(_CONSTRAINT_NAMES.values())

        return {
            "constraints": len(constraint_names),
            "fulltext_indexes": len(index_names),
            "missing_constraints": sorted(expected_constraints - constraint_names),
            "schema_valid": expected_constraints <= constraint_names
            and ENTITY_SEARCH_INDEX in index_names,
        }

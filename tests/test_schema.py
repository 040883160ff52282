"""Tests for schema bootstrap statements."""

from __future__ import annotations

from typing import Any

import pytest

from contextgraph.exceptions import QueryError, SchemaInitializationError
from contextgraph.graph.models import NodeKind
from contextgraph.graph.schema import SCHEMA_STATEMENTS, SchemaManager


class RecordingClient:
    def __init__(self, fail_on: str | None = None, responses: dict[str, list] | None = None):
        self.fail_on = fail_on
        self.responses = responses or {}
        self.statements: list[str] = []

    async def execute(self, query: str, parameters: dict[str, Any] | None = None) -> list[dict]:
        self.statements.append(query)
        if self.fail_on and self.fail_on in query:
            raise QueryError("rejected", query=query)
        for prefix, records in self.responses.items():
            if query.startswith(prefix):
                return records
        return []


def test_every_statement_is_idempotent() -> None:
    assert all("IF NOT EXISTS" in statement for statement in SCHEMA_STATEMENTS)


def test_constraints_precede_indexes() -> None:
    kinds = [s.startswith("CREATE CONSTRAINT") for s in SCHEMA_STATEMENTS]
    first_index = kinds.index(False)
    assert all(kinds[:first_index])
    assert not any(kinds[first_index:])


def test_one_uniqueness_constraint_per_kind() -> None:
    for kind in NodeKind:
        assert any(
            f"(n:{kind.value})" in s and "n.id IS UNIQUE" in s for s in SCHEMA_STATEMENTS
        ), f"No uniqueness constraint for {kind.value}"


@pytest.mark.asyncio
async def test_initialize_schema_issues_statements_in_order() -> None:
    client = RecordingClient()

    await SchemaManager(client).initialize_schema()
    await SchemaManager(client).initialize_schema()

    assert client.statements == SCHEMA_STATEMENTS * 2


@pytest.mark.asyncio
async def test_failed_statement_raises_schema_error() -> None:
    client = RecordingClient(fail_on="entity_search")

    with pytest.raises(SchemaInitializationError) as exc_info:
        await SchemaManager(client).initialize_schema()

    assert "entity_search" in exc_info.value.statement
    assert isinstance(exc_info.value.original_error, QueryError)


@pytest.mark.asyncio
async def test_schema_info_reports_missing_constraints() -> None:
    client = RecordingClient(
        responses={
            "SHOW CONSTRAINTS": [{"name": "project_id"}, {"name": "spec_id"}],
            "SHOW INDEXES": [{"name": "entity_search"}],
        }
    )

    info = await SchemaManager(client).get_schema_info()

    assert info["constraints"] == 2
    assert info["fulltext_indexes"] == 1
    assert "task_id" in info["missing_constraints"]
    assert info["schema_valid"] is False

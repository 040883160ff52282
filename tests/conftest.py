"""Shared fixtures: an in-memory graph and a snapshot-backed source store."""

from __future__ import annotations

from typing import Any

import pytest

from contextgraph.graph.memory import InMemoryGraphStore
from contextgraph.sync.orchestrator import SyncOrchestrator
from contextgraph.sync.source import Row, SnapshotSource


class FakeSource(SnapshotSource):
    """Snapshot source that can be mutated between syncs and made to fail per collection."""

    def __init__(self, data: dict[str, list[Row]] | None = None):
        super().__init__(data or {})
        self.failures: dict[str, Exception] = {}
        self.calls: list[str] = []

    def add(self, collection: str, **row: Any) -> dict[str, Any]:
        self.data[collection].append(row)
        return row

    def _check(self, collection: str) -> None:
        self.calls.append(collection)
        if collection in self.failures:
            raise self.failures[collection]

    async def list_projects(self) -> list[Row]:
        self._check("projects")
        return await super().list_projects()

    async def list_bounded_contexts(self, project_id: str) -> list[Row]:
        self._check("bounded_contexts")
        return await super().list_bounded_contexts(project_id)

    async def list_design_systems(self, project_id: str) -> list[Row]:
        self._check("design_systems")
        return await super().list_design_systems(project_id)

    async def list_domain_objects(self, project_id: str) -> list[Row]:
        self._check("domain_objects")
        return await super().list_domain_objects(project_id)

    async def list_terms(self, project_id: str) -> list[Row]:
        self._check("terms")
        return await super().list_terms(project_id)

    async def list_decisions(self, project_id: str) -> list[Row]:
        self._check("decisions")
        return await super().list_decisions(project_id)

    async def list_specs(self, project_id: str) -> list[Row]:
        self._check("specs")
        return await super().list_specs(project_id)

    async def list_tasks(self, project_id: str) -> list[Row]:
        self._check("tasks")
        return await super().list_tasks(project_id)

    async def list_memory_entries(self, project_id: str) -> list[Row]:
        self._check("memory_entries")
        return await super().list_memory_entries(project_id)


@pytest.fixture
def store() -> InMemoryGraphStore:
    return InMemoryGraphStore()


@pytest.fixture
def source() -> FakeSource:
    """Project P1 with two specs where S2 depends on S1."""
    return FakeSource(
        {
            "projects": [{"id": "P1", "name": "Checkout", "updated_at": "2024-01-01T00:00:00Z"}],
            "specs": [
                {
                    "id": "S1",
                    "project_id": "P1",
                    "title": "Payment capture",
                    "description": "Capture card payments",
                    "updated_at": "2024-01-02T00:00:00Z",
                },
                {
                    "id": "S2",
                    "project_id": "P1",
                    "title": "Refunds",
                    "description": "Refund captured payments",
                    "dependencies": '["S1"]',
                    "updated_at": "2024-01-03T00:00:00Z",
                },
            ],
        }
    )


@pytest.fixture
def rich_source() -> FakeSource:
    """Project P1 populated with every entity kind."""
    return FakeSource(
        {
            "projects": [{"id": "P1", "name": "Checkout"}],
            "bounded_contexts": [
                {"id": "C1", "project_id": "P1", "name": "Payments"},
                {"id": "C2", "project_id": "P1", "name": "Billing", "upstream_contexts": ["C1"]},
            ],
            "domain_objects": [
                {"id": "E1", "context_id": "C1", "name": "Payment", "object_type": "aggregate"},
            ],
            "terms": [
                {"id": "T1", "project_id": "P1", "context_id": "C1", "term": "Capture",
                 "definition": "Settling an authorized payment"},
            ],
            "specs": [
                {"id": "S1", "project_id": "P1", "title": "Payment capture"},
                {"id": "S2", "project_id": "P1", "title": "Refunds", "dependencies": ["S1"]},
                {"id": "S3", "project_id": "P1", "title": "Chargebacks", "dependencies": ["S2"]},
            ],
            "tasks": [
                {"id": "K1", "project_id": "P1", "title": "Wire gateway", "spec_id": "S1"},
                {"id": "K2", "project_id": "P1", "title": "Refund endpoint", "spec_id": "S2",
                 "blocked_by": '["K1"]'},
            ],
            "decisions": [
                {"id": "D1", "project_id": "P1", "title": "Use Stripe", "related_specs": '["S1"]',
                 "superseded_by": "D2"},
                {"id": "D2", "project_id": "P1", "title": "Use Adyen", "related_specs": []},
            ],
            "memory_entries": [
                {"id": "M1", "project_id": "P1", "content": "Capture must be idempotent",
                 "related_entity_type": "spec", "related_entity_id": "S1",
                 "created_at": "2024-01-05T00:00:00Z"},
            ],
        }
    )


@pytest.fixture
def orchestrator(store: InMemoryGraphStore, source: FakeSource) -> SyncOrchestrator:
    return SyncOrchestrator(store, source)

"""Source store protocol and a snapshot-backed implementation."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, Protocol, runtime_checkable

Row = Mapping[str, Any]


@runtime_checkable
class SourceStore(Protocol):
    """Read-only access to source entities.

    Rows are plain mappings. Relationship fields may be JSON strings, native
    lists, or absent.
    """

    async def list_projects(self) -> list[Row]:
        """List every project."""
        ...

    async def list_bounded_contexts(self, project_id: str) -> list[Row]:
        """List bounded contexts of a project."""
        ...

    async def list_design_systems(self, project_id: str) -> list[Row]:
        """List design systems extracted for a project."""
        ...

    async def list_domain_objects(self, project_id: str) -> list[Row]:
        """List domain objects across all contexts of a project."""
        ...

    async def list_terms(self, project_id: str) -> list[Row]:
        """List glossary terms of a project."""
        ...

    async def list_decisions(self, project_id: str) -> list[Row]:
        """List architectural decisions of a project."""
        ...

    async def list_specs(self, project_id: str) -> list[Row]:
        """List specs of a project."""
        ...

    async def list_tasks(self, project_id: str) -> list[Row]:
        """List tasks of a project."""
        ...

    async def list_memory_entries(self, project_id: str) -> list[Row]:
        """List memory entries of a project."""
        ...


class SnapshotSource:
    """
    SourceStore over an exported snapshot of the primary store.

    The snapshot maps collection names (``projects``, ``bounded_contexts``,
    ``design_systems``, ``domain_objects``, ``terms``, ``decisions``, ``specs``,
    ``tasks``, ``memory_entries``) to lists of rows.
    """

    COLLECTIONS = (
        "projects",
        "bounded_contexts",
        "design_systems",
        "domain_objects",
        "terms",
        "decisions",
        "specs",
        "tasks",
        "memory_entries",
    )

    def __init__(self, data: Mapping[str, list[Row]]):
        unknown = set(data) - set(self.COLLECTIONS)
        if unknown:
            raise ValueError(f"Unknown snapshot collections: {sorted(unknown)}")
        self.data = {name: list(data.get(name, [])) for name in self.COLLECTIONS}

    @classmethod
    def from_json_file(cls, path: str | Path) -> "SnapshotSource":
        with open(path, encoding="utf-8") as f:
            return cls(json.load(f))

    def _owned(self, collection: str, project_id: str) -> list[Row]:
        return [row for row in self.data[collection] if row.get("project_id") == project_id]

    async def list_projects(self) -> list[Row]:
        return list(self.data["projects"])

    async def list_bounded_contexts(self, project_id: str) -> list[Row]:
        return self._owned("bounded_contexts", project_id)

    async def list_design_systems(self, project_id: str) -> list[Row]:
        return self._owned("design_systems", project_id)

    async def list_domain_objects(self, project_id: str) -> list[Row]:
        # Domain objects hang off contexts and may not carry a project_id.
        context_ids = {row.get("id") for row in self._owned("bounded_contexts", project_id)}
        return [
            row
            for row in self.data["domain_objects"]
            if row.get("project_id") == project_id
            or ("project_id" not in row and row.get("context_id") in context_ids)
        ]

    async def list_terms(self, project_id: str) -> list[Row]:
        return self._owned("terms", project_id)

    async def list_decisions(self, project_id: str) -> list[Row]:
        return self._owned("decisions", project_id)

    async def list_specs(self, project_id: str) -> list[Row]:
        return self._owned("specs", project_id)

    async def list_tasks(self, project_id: str) -> list[Row]:
        return self._owned("tasks", project_id)

    async def list_memory_entries(self, project_id: str) -> list[Row]:
        return self._owned("memory_entries", project_id)


__all__ = ["Row", "SnapshotSource", "SourceStore"]

"""
Pydantic models for source-store rows.

Each model validates the fields a syncer relies on and keeps everything else
(``extra="allow"``) so unknown scalar columns still reach the graph as node
properties. Relationship fields are typed ``Any``: they are decoded by
``contextgraph.sync.decoding`` rather than validated here, so a malformed
payload never rejects the whole row.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_graph_value(value: Any) -> Any:
    """
    Convert a Python value into something a graph property can hold.

    Returns:
        Scalar, homogeneous list of scalars, JSON string, or None to drop
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        items = [to_graph_value(item) for item in value if item is not None]
        types = {type(item) for item in items}
        if len(types) <= 1 and all(isinstance(item, (str, int, float, bool)) for item in items):
            return items
    return json.dumps(value, default=str, sort_keys=True)


class SourceRow(BaseModel):
    """Fields shared by every source row."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    # Fields turned into edges instead of properties.
    RELATIONSHIP_FIELDS: ClassVar[frozenset[str]] = frozenset()

    id: str = Field(..., min_length=1)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("id")
    @classmethod
    def strip_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("id must not be blank")
        return v

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else None

    @property
    def changed_at(self) -> Optional[datetime]:
        """Timestamp used by incremental sync: updated_at, else created_at."""
        return self.updated_at or self.created_at

    def node_properties(self) -> dict[str, Any]:
        """Scalar property bag for the graph node, relationship fields removed."""
        data = self.model_dump(exclude=set(self.RELATIONSHIP_FIELDS) | {"id"})
        properties = {}
        for key, value in data.items():
            converted = to_graph_value(value)
            if converted is not None:
                properties[key] = converted
        return properties


class ProjectRow(SourceRow):
    name: str = ""
    description: Optional[str] = None
    status: Optional[str] = None


class BoundedContextRow(SourceRow):
    RELATIONSHIP_FIELDS: ClassVar[frozenset[str]] = frozenset({"upstream_contexts"})

    project_id: Optional[str] = None
    name: str = ""
    description: Optional[str] = None
    upstream_contexts: Any = None


def _json_or_none(raw: Any) -> Any:
    if not isinstance(raw, (str, bytes)):
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        return None


class DesignSystemRow(SourceRow):
    """
    Design tokens extracted from a reference site.

    The token payloads are large JSON documents; the node keeps only summary
    counts and the font family names.
    """

    TOKEN_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {
            "colors_json",
            "typography_json",
            "spacing_json",
            "border_radius_json",
            "shadows_json",
            "breakpoints_json",
            "components_json",
            "raw_analysis",
        }
    )

    project_id: Optional[str] = None
    source_url: str = ""

    @property
    def colors_count(self) -> int:
        colors = _json_or_none(getattr(self, "colors_json", None))
        if not isinstance(colors, dict):
            return 0
        return sum(
            len(colors[group])
            for group in ("primary", "secondary", "neutral")
            if isinstance(colors.get(group), list)
        )

    @property
    def typography_families(self) -> str:
        typography = _json_or_none(getattr(self, "typography_json", None))
        families = typography.get("font_families") if isinstance(typography, dict) else None
        if not isinstance(families, list):
            return ""
        return ", ".join(
            family["name"]
            for family in families
            if isinstance(family, dict) and isinstance(family.get("name"), str)
        )

    @property
    def components_count(self) -> int:
        components = _json_or_none(getattr(self, "components_json", None))
        return len(components) if isinstance(components, list) else 0

    def node_properties(self) -> dict[str, Any]:
        properties = {
            key: value
            for key, value in super().node_properties().items()
            if key not in self.TOKEN_FIELDS
        }
        properties["colors_count"] = self.colors_count
        properties["typography_families"] = self.typography_families
        properties["components_count"] = self.components_count
        return properties


class DomainObjectRow(SourceRow):
    RELATIONSHIP_FIELDS: ClassVar[frozenset[str]] = frozenset({"context_id"})

    project_id: Optional[str] = None
    context_id: Any = None
    name: str = ""
    object_type: Optional[str] = None
    description: Optional[str] = None


class TermRow(SourceRow):
    RELATIONSHIP_FIELDS: ClassVar[frozenset[str]] = frozenset({"context_id"})

    project_id: Optional[str] = None
    context_id: Any = None
    name: str = Field(default="", validation_alias=AliasChoices("term", "name"))
    definition: Optional[str] = None


class DecisionRow(SourceRow):
    RELATIONSHIP_FIELDS: ClassVar[frozenset[str]] = frozenset({"related_specs", "superseded_by"})

    project_id: Optional[str] = None
    title: str = ""
    status: Optional[str] = None
    context: Optional[str] = None
    decision: Optional[str] = None
    related_specs: Any = None
    superseded_by: Any = None


class SpecRow(SourceRow):
    RELATIONSHIP_FIELDS: ClassVar[frozenset[str]] = frozenset({"dependencies"})

    project_id: Optional[str] = None
    title: str = ""
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    dependencies: Any = None


class TaskRow(SourceRow):
    RELATIONSHIP_FIELDS: ClassVar[frozenset[str]] = frozenset({"blocked_by", "spec_id"})

    project_id: Optional[str] = None
    spec_id: Any = None
    title: str = ""
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    blocked_by: Any = None


class MemoryRow(SourceRow):
    RELATIONSHIP_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"related_entity_type", "related_entity_id"}
    )

    project_id: Optional[str] = None
    entry_type: Optional[str] = None
    content: str = ""
    importance: Optional[str] = None
    related_entity_type: Any = None
    related_entity_id: Any = None


__all__ = [
    "BoundedContextRow",
    "DecisionRow",
    "DesignSystemRow",
    "DomainObjectRow",
    "MemoryRow",
    "ProjectRow",
    "SourceRow",
    "SpecRow",
    "TaskRow",
    "TermRow",
    "as_utc",
    "to_graph_value",
]

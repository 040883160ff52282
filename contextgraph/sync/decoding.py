"""
Decoding of relationship fields.

Source rows carry id lists either as JSON-encoded strings or as native lists.
Decoding never raises: an unparseable value yields an empty id list together
with a ``MalformedRelationshipData`` describing the problem.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from contextgraph.exceptions import MalformedRelationshipData

_ID_LIST = TypeAdapter(list[str])


class DecodedIds(BaseModel):
    """Decoded id list plus the error that emptied it, if any."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    ids: list[str] = Field(default_factory=list)
    error: Optional[MalformedRelationshipData] = None

    @property
    def malformed(self) -> bool:
        return self.error is not None


def decode_id_list(field: str, raw: Any) -> DecodedIds:
    """
    Decode a relationship field into a list of ids.

    Args:
        field: Source field name, used in the error description
        raw: JSON string, list, or None

    Returns:
        DecodedIds with de-duplicated, non-empty ids in source order
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return DecodedIds()

    try:
        if isinstance(raw, (str, bytes)):
            values = _ID_LIST.validate_json(raw)
        else:
            values = _ID_LIST.validate_python(raw)
    except ValidationError as e:
        reason = e.errors()[0]["msg"] if e.errors() else str(e)
        return DecodedIds(error=MalformedRelationshipData(field, raw, reason))

    ids: list[str] = []
    for value in values:
        value = value.strip()
        if value and value not in ids:
            ids.append(value)
    return DecodedIds(ids=ids)


def decode_id(raw: Any) -> Optional[str]:
    """Normalize a single optional reference id; blank means absent."""
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


__all__ = ["DecodedIds", "decode_id", "decode_id_list"]

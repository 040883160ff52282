"""Project-wide exception hierarchy for graph projection."""

from __future__ import annotations


class ContextGraphError(Exception):
    """Base exception for all ContextGraph errors.

    All project-specific exceptions inherit from this class so callers can
    catch the whole family in one place.
    """

    def __init__(self, message: str, original_error: Exception | None = None):
        """Initialize with message and optional original error.

        Args:
            message: Human-readable error description
            original_error: Optional original exception that caused this error
        """
        super().__init__(message)
        self.original_error = original_error


class ConfigError(ContextGraphError):
    """Raised when configuration load, parsing, or validation fails."""

    pass


class GraphConnectionError(ContextGraphError):
    """Raised when the graph database stays unreachable after all retries."""

    pass


class QueryError(ContextGraphError):
    """Raised when a graph query fails for a non-transient reason."""

    def __init__(
        self,
        message: str,
        query: str | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message, original_error)
        self.query = query


class SchemaInitializationError(ContextGraphError):
    """Raised when constraints or indexes cannot be created."""

    def __init__(
        self,
        message: str,
        statement: str | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message, original_error)
        self.statement = statement


class ProjectNotFoundError(ContextGraphError):
    """Raised when the requested project does not exist in the source store."""

    def __init__(self, project_id: str):
        super().__init__(f"Project '{project_id}' not found in source store")
        self.project_id = project_id


class MalformedRelationshipData(ContextGraphError):
    """Describes an unparseable relationship payload.

    Never raised out of a sync: the decoder returns it inside a
    ``DecodedIds`` result and the row syncs with an empty relationship set.
    """

    def __init__(self, field: str, raw_value: object, reason: str):
        super().__init__(f"Malformed relationship field '{field}': {reason}")
        self.field = field
        self.raw_value = raw_value
        self.reason = reason


class SyncCancelledError(ContextGraphError):
    """Raised inside a sync run when its cancellation token fires."""

    pass


__all__ = [
    "ConfigError",
    "ContextGraphError",
    "GraphConnectionError",
    "MalformedRelationshipData",
    "ProjectNotFoundError",
    "QueryError",
    "SchemaInitializationError",
    "SyncCancelledError",
]

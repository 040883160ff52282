"""
ContextGraph settings with environment variable support.
"""

from __future__ import annotations

import functools

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from contextgraph.exceptions import ConfigError
from contextgraph.graph.client import GraphConfig


class ContextGraphSettings(BaseSettings):
    """Application settings for ContextGraph."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="CONTEXTGRAPH_",
        extra="ignore",
    )

    # === Neo4j Configuration ===
    neo4j_uri: str = Field(default="bolt://localhost:7687", description="Neo4j connection URI")
    neo4j_username: str = Field(default="neo4j", description="Neo4j username")
    neo4j_password: str = Field(..., description="Neo4j password")
    neo4j_database: str = Field(default="neo4j", description="Neo4j database name")
    neo4j_max_connection_pool_size: int = Field(
        default=16, description="Maximum pooled connections shared by all syncers"
    )
    neo4j_connection_acquisition_timeout: float = Field(
        default=30.0, description="Seconds to wait for a pooled connection"
    )

    # === Retry Configuration ===
    graph_max_retries: int = Field(
        default=3, description="Attempts per query before a connection failure is fatal"
    )
    graph_retry_base_delay: float = Field(
        default=0.2, description="Base delay in seconds for exponential backoff"
    )

    # === Sync Configuration ===
    sync_max_concurrency: int = Field(
        default=4, description="Upper bound on syncers running at once within a tier"
    )
    sync_timeout_seconds: float | None = Field(
        default=None, description="Default timeout for a sync run (None = no timeout)"
    )

    # === Query Configuration ===
    default_traversal_depth: int = Field(default=3, description="Default dependents_of depth")
    max_traversal_depth: int = Field(default=5, description="Hard cap on traversal depth")
    search_limit: int = Field(default=20, description="Default full-text search result limit")

    # === Logging ===
    log_level: str = Field(default="INFO", description="Root log level")

    @field_validator("graph_max_retries", "sync_max_concurrency", "max_traversal_depth")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Ensure counts that bound loops are at least one."""
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @field_validator("graph_retry_base_delay")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        """Ensure the backoff base is not negative."""
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    def to_graph_config(self) -> GraphConfig:
        """Build the connection config consumed by GraphClient."""
        return GraphConfig(
            uri=self.neo4j_uri,
            username=self.neo4j_username,
            password=self.neo4j_password,
            database=self.neo4j_database,
            max_connection_pool_size=self.neo4j_max_connection_pool_size,
            connection_acquisition_timeout=self.neo4j_connection_acquisition_timeout,
            max_retries=self.graph_max_retries,
            retry_base_delay=self.graph_retry_base_delay,
        )


@functools.lru_cache(maxsize=1)
def load_settings() -> ContextGraphSettings:
    """Load settings from environment. Cached for performance.

    Raises:
        ConfigError: If required settings are missing or invalid
    """
    try:
        return ContextGraphSettings()
    except ValidationError as e:
        raise ConfigError(f"Invalid ContextGraph settings: {e}", original_error=e) from e


__all__ = ["ContextGraphSettings", "load_settings"]

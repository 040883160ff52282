"""
Neo4j client with pooled connection management and retrying execution.
"""

import asyncio
import logging
from typing import Any, Optional

from neo4j import AsyncDriver, AsyncGraphDatabase
from neo4j.exceptions import (
    AuthError,
    Neo4jError,
    ServiceUnavailable,
    SessionExpired,
    TransientError,
)
from pydantic import BaseModel

from contextgraph.exceptions import GraphConnectionError, QueryError

logger = logging.getLogger(__name__)

# Errors worth retrying: the server or the route to it is temporarily gone.
TRANSIENT_ERRORS = (ServiceUnavailable, SessionExpired, TransientError, OSError)


class GraphConfig(BaseModel):
    """Configuration for Neo4j connection."""

    uri: str
    username: str
    password: str
    database: str = "neo4j"
    max_connection_lifetime: int = 3600
    max_connection_pool_size: int = 16
    connection_acquisition_timeout: float = 30.0
    max_retries: int = 3
    retry_base_delay: float = 0.2


class GraphClient:
    """
    Async Neo4j client shared by every syncer and query.

    Every statement is parameterized; callers only interpolate labels and
    relationship types taken from validated enums. The underlying driver
    keeps a connection pool and is safe for concurrent use, each call
    opening its own session.
    """

    def __init__(self, config: GraphConfig, driver: Optional[AsyncDriver] = None):
        """
        Initialize graph client.

        Args:
            config: Neo4j connection configuration
            driver: Pre-built driver (tests inject a fake one)
        """
        self.config = config
        self._driver: Optional[AsyncDriver] = driver

    async def connect(self) -> None:
        """
        Create the pooled driver and verify the server answers.

        Raises:
            GraphConnectionError: If Neo4j is unreachable or rejects the credentials
        """
        if self._driver is None:
            self._driver = AsyncGraphDatabase.driver(
                self.config.uri,
                auth=(self.config.username, self.config.password),
                max_connection_lifetime=self.config.max_connection_lifetime,
                max_connection_pool_size=self.config.max_connection_pool_size,
                connection_acquisition_timeout=self.config.connection_acquisition_timeout,
            )

        try:
            await self._driver.verify_connectivity()
        except AuthError as e:
            logger.exception("graph_connection_failed_auth", extra={"uri": self.config.uri})
            raise GraphConnectionError(f"Neo4j rejected credentials: {e}", original_error=e) from e
        except TRANSIENT_ERRORS as e:
            logger.exception("graph_connection_failed_unavailable", extra={"uri": self.config.uri})
            raise GraphConnectionError(f"Neo4j unreachable at {self.config.uri}", original_error=e) from e

        logger.info(
            "graph_connection_established",
            extra={"uri": self.config.uri, "database": self.config.database},
        )

    async def close(self) -> None:
        """Close the driver and its pool."""
        if self._driver:
            await self._driver.close()
            self._driver = None
            logger.info("graph_connection_closed")

    async def __aenter__(self) -> "GraphClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def driver(self) -> AsyncDriver:
        """
        Get the Neo4j driver instance.

        Raises:
            RuntimeError: If not connected
        """
        if not self._driver:
            raise RuntimeError("Graph client not connected. Call connect() first.")
        return self._driver

    async def execute(
        self, query: str, parameters: Optional[dict[str, Any]] = None
    ) -> list[dict[str, Any]]:
        """
        Execute a parameterized Cypher statement.

        Transient failures are retried with exponential backoff
        (``retry_base_delay * 2**attempt``) up to ``max_retries`` attempts.

        Args:
            query: Cypher statement
            parameters: Statement parameters

        Returns:
            Result records as dictionaries

        Raises:
            GraphConnectionError: If the failure persists past the last attempt
            QueryError: If the statement itself is rejected
        """
        params = dict(parameters or {})
        attempts = max(1, self.config.max_retries)
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                return await self._run(query, params)
            except TRANSIENT_ERRORS as e:
                last_error = e
                if attempt < attempts - 1:
                    delay = self.config.retry_base_delay * (2**attempt)
                    logger.warning(
                        "graph_query_retry",
                        extra={"attempt": attempt + 1, "delay": delay, "error": str(e)},
                    )
                    await asyncio.sleep(delay)
            except Neo4jError as e:
                logger.error(
                    "graph_query_failed",
                    extra={"query": query[:100], "code": getattr(e, "code", None)},
                )
                raise QueryError(f"Graph query failed: {e}", query=query, original_error=e) from e

        logger.error("graph_connection_lost", extra={"attempts": attempts, "error": str(last_error)})
        raise GraphConnectionError(
            f"Graph query failed after {attempts} attempts: {last_error}",
            original_error=last_error,
        ) from last_error

    async def _run(self, query: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        async with self.driver.session(database=self.config.database) as session:
            result = await session.run(query, params)
            return [record.data() async for record in result]

    async def health_check(self) -> bool:
        """
        Check that the graph answers a trivial query. Never raises.

        Returns:
            True if Neo4j responded
        """
        try:
            records = await self.execute("RETURN 1 AS ok")
        except Exception as e:
            logger.warning("graph_health_check_failed", extra={"error": str(e)})
            return False
        return bool(records) and records[0].get("ok") == 1

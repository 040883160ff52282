"""Tests for GraphClient retry, error mapping and health check."""

from __future__ import annotations

from typing import Any

import pytest
from neo4j.exceptions import AuthError, ClientError, ServiceUnavailable, TransientError

from contextgraph.exceptions import GraphConnectionError, QueryError
from contextgraph.graph.client import GraphClient, GraphConfig


class FakeRecord:
    def __init__(self, data: dict[str, Any]):
        self._data = data

    def data(self) -> dict[str, Any]:
        return dict(self._data)


class FakeResult:
    def __init__(self, records: list[dict[str, Any]]):
        self._records = iter(records)

    def __aiter__(self) -> "FakeResult":
        return self

    async def __anext__(self) -> FakeRecord:
        try:
            return FakeRecord(next(self._records))
        except StopIteration:
            raise StopAsyncIteration


class FakeSession:
    def __init__(self, driver: "FakeDriver"):
        self.driver = driver

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    async def run(self, query: str, parameters: dict[str, Any]) -> FakeResult:
        self.driver.calls.append((query, parameters))
        outcome = self.driver.outcomes.pop(0) if self.driver.outcomes else []
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResult(outcome)


class FakeDriver:
    """Async driver double: each run() consumes the next queued outcome."""

    def __init__(self, outcomes: list[Any] | None = None, connect_error: Exception | None = None):
        self.outcomes = list(outcomes or [])
        self.connect_error = connect_error
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.databases: list[str] = []
        self.closed = False

    def session(self, database: str) -> FakeSession:
        self.databases.append(database)
        return FakeSession(self)

    async def verify_connectivity(self) -> None:
        if self.connect_error:
            raise self.connect_error

    async def close(self) -> None:
        self.closed = True


def make_client(driver: FakeDriver, max_retries: int = 3) -> GraphClient:
    config = GraphConfig(
        uri="bolt://graph:7687",
        username="neo4j",
        password="secret",
        database="projects",
        max_retries=max_retries,
        retry_base_delay=0.0,
    )
    return GraphClient(config, driver=driver)


@pytest.mark.asyncio
async def test_execute_returns_records_and_passes_parameters() -> None:
    driver = FakeDriver([[{"id": "S1"}, {"id": "S2"}]])
    client = make_client(driver)

    records = await client.execute("MATCH (s:Spec {id: $id}) RETURN s.id AS id", {"id": "S1"})

    assert records == [{"id": "S1"}, {"id": "S2"}]
    assert driver.calls[0][1] == {"id": "S1"}
    assert driver.databases == ["projects"]


@pytest.mark.asyncio
async def test_transient_errors_are_retried() -> None:
    driver = FakeDriver([ServiceUnavailable("down"), TransientError("busy"), [{"ok": 1}]])
    client = make_client(driver)

    records = await client.execute("RETURN 1 AS ok")

    assert records == [{"ok": 1}]
    assert len(driver.calls) == 3


@pytest.mark.asyncio
async def test_retry_exhaustion_raises_connection_error() -> None:
    driver = FakeDriver([ServiceUnavailable("down")] * 5)
    client = make_client(driver, max_retries=2)

    with pytest.raises(GraphConnectionError) as exc_info:
        await client.execute("RETURN 1")

    assert len(driver.calls) == 2
    assert isinstance(exc_info.value.original_error, ServiceUnavailable)


@pytest.mark.asyncio
async def test_client_errors_are_not_retried() -> None:
    driver = FakeDriver([ClientError("syntax error"), [{"ok": 1}]])
    client = make_client(driver)

    with pytest.raises(QueryError) as exc_info:
        await client.execute("MATCH (n RETURN n")

    assert len(driver.calls) == 1
    assert exc_info.value.query == "MATCH (n RETURN n"


@pytest.mark.asyncio
async def test_health_check_never_raises() -> None:
    healthy = make_client(FakeDriver([[{"ok": 1}]]))
    unhealthy = make_client(FakeDriver([ServiceUnavailable("down")] * 3))

    assert await healthy.health_check() is True
    assert await unhealthy.health_check() is False


@pytest.mark.asyncio
async def test_health_check_without_connection_is_false() -> None:
    client = GraphClient(GraphConfig(uri="bolt://graph:7687", username="neo4j", password="x"))
    assert await client.health_check() is False


@pytest.mark.asyncio
async def test_connect_maps_auth_failure() -> None:
    client = make_client(FakeDriver(connect_error=AuthError("bad credentials")))

    with pytest.raises(GraphConnectionError):
        await client.connect()


@pytest.mark.asyncio
async def test_context_manager_closes_driver() -> None:
    driver = FakeDriver()
    async with make_client(driver) as client:
        assert client.driver is driver

    assert driver.closed
    with pytest.raises(RuntimeError):
        _ = client.driver

"""Tests for environment-driven settings and the gateway wiring they feed."""

from __future__ import annotations

import pytest

from contextgraph.exceptions import ConfigError
from contextgraph.gateway import GraphGateway
from contextgraph.graph.memory import InMemoryGraphStore
from contextgraph.settings import ContextGraphSettings, load_settings

from .conftest import FakeSource


@pytest.fixture(autouse=True)
def clear_settings_cache():
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CONTEXTGRAPH_NEO4J_PASSWORD", "secret")
    monkeypatch.setenv("CONTEXTGRAPH_SYNC_MAX_CONCURRENCY", "2")

    settings = ContextGraphSettings(_env_file=None)

    assert settings.neo4j_password == "secret"
    assert settings.sync_max_concurrency == 2
    assert settings.sync_timeout_seconds is None


def test_graph_config_carries_retry_settings() -> None:
    settings = ContextGraphSettings(
        _env_file=None, neo4j_password="secret", graph_max_retries=5, graph_retry_base_delay=0.5
    )

    config = settings.to_graph_config()

    assert config.password == "secret"
    assert (config.max_retries, config.retry_base_delay) == (5, 0.5)


def test_zero_retries_rejected() -> None:
    with pytest.raises(ValueError):
        ContextGraphSettings(_env_file=None, neo4j_password="secret", graph_max_retries=0)


def test_missing_password_is_config_error(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.delenv("CONTEXTGRAPH_NEO4J_PASSWORD", raising=False)
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ConfigError):
        load_settings()


@pytest.mark.asyncio
async def test_gateway_over_in_memory_store(source: FakeSource) -> None:
    settings = ContextGraphSettings(_env_file=None, neo4j_password="unused")
    gateway = GraphGateway(settings, source, store=InMemoryGraphStore())

    with pytest.raises(RuntimeError):
        await gateway.run_full_sync("P1")

    async with gateway:
        assert await gateway.health_check() is True
        await gateway.initialize_schema()
        result = await gateway.run_full_sync("P1")
        dependents = await gateway.dependents_of("S1")
        status = await gateway.graph_status("P1")

    assert result.ok
    assert [d.id for d in dependents] == ["S2"]
    assert status.last_sync_time == result.started_at
    assert await gateway.health_check() is False

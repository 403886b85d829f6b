"""Shared fixtures for redmetrics tests."""

from __future__ import annotations

import fakeredis
import pytest

from redmetrics import (
    CollectorRegistry,
    MemoryStorage,
    RedisStorage,
    reset_metrics,
)


@pytest.fixture
def fake_server():
    """One in-process Redis server shared by every client of a test."""
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(fake_server):
    return fakeredis.FakeRedis(server=fake_server, decode_responses=True)


@pytest.fixture
def redis_storage(redis_client):
    return RedisStorage(client=redis_client)


@pytest.fixture
def registry(redis_storage):
    """Registry backed by fake Redis, running the real Lua scripts."""
    return CollectorRegistry(redis_storage)


@pytest.fixture
def memory_registry():
    return CollectorRegistry(MemoryStorage())


@pytest.fixture(autouse=True)
def _reset_default_metrics():
    yield
    reset_metrics()

"""Global pytest configuration and fixtures.

Backend tests run against fakeredis, so no Redis server is needed.
"""

from __future__ import annotations

import fakeredis
import pytest

from mirrorcache.cache.backend import ServerSpec
from mirrorcache.cache.facade import CacheFacade
from mirrorcache.cache.redis import RedisCacheClient

# Fixed reference time for expiration handling
NOW = 1_700_000_000


@pytest.fixture
def fake_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(fake_server: fakeredis.FakeServer) -> RedisCacheClient:
    """Cache client with a single fakeredis server."""

    def factory(spec: ServerSpec) -> fakeredis.FakeRedis:
        return fakeredis.FakeRedis(server=fake_server)

    return RedisCacheClient([("127.0.0.1", 6379)], client_factory=factory)


@pytest.fixture
def raw_redis(fake_server: fakeredis.FakeServer) -> fakeredis.FakeRedis:
    """Direct handle on the fake server, for inspecting stored payloads."""
    return fakeredis.FakeRedis(server=fake_server)


@pytest.fixture
def cache(redis_client: RedisCacheClient) -> CacheFacade:
    """Facade over the fakeredis-backed client."""
    return CacheFacade(redis_client, salt="", namespace="site1", now=NOW)

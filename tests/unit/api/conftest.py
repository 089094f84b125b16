from unittest.mock import AsyncMock, MagicMock

import fakeredis.aioredis
import httpx
import pytest
from fastapi.testclient import TestClient

from shared.constants import RedisKeys
from trackline.core.config import Settings
from trackline.main import app
from trackline.startup import assemble


def geo_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200, json={"success": True, "country": "Norway", "city": "Oslo", "region": "Oslo"}
    )


@pytest.fixture
def api_settings():
    return Settings(
        ingest_max_batch_size=3,
        ingest_max_body_bytes=4096,
        ingest_rate_limit_requests=1000,
        dispatch_retry_base_delay_seconds=0.001,
        dispatch_retry_max_delay_seconds=0.002,
        fallback_drain_interval_seconds=60,
    )


@pytest.fixture
def event_store():
    store = MagicMock()
    store.insert = AsyncMock()
    return store


@pytest.fixture
def test_client(fake_server, api_settings, event_store):
    """TestClient whose lifespan builds the container on fakeredis."""

    async def factory(_settings):
        redis = fakeredis.aioredis.FakeRedis(server=fake_server, decode_responses=True)
        await redis.hset(
            RedisKeys.tenant_key("T1"),
            mapping={"id": "tenant-1", "active": "1", "exclude_bots": "1"},
        )
        await redis.hset(
            RedisKeys.tenant_key("T2"), mapping={"id": "tenant-2", "active": "0"}
        )
        return assemble(
            api_settings,
            queue_redis=redis,
            sessions_redis=redis,
            tenants_redis=redis,
            http=httpx.AsyncClient(transport=httpx.MockTransport(geo_handler)),
            store=event_store,
        )

    app.state.container_factory = factory
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.state.container_factory = None


@pytest.fixture
def container(test_client):
    return test_client.app.state.container

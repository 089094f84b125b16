"""Ingestion to session rollup through the real queue, pool and aggregator."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from trackline.core.config import Settings
from trackline.startup import assemble


@pytest.fixture
def settings():
    return Settings(
        worker_concurrency=1,
        worker_poll_interval_seconds=0.01,
        worker_promote_interval_seconds=0.01,
        queue_backoff_delay_ms=10,
    )


@pytest.fixture
def container(settings, redis_client):
    store = MagicMock()
    store.insert = AsyncMock()
    store.close = MagicMock()
    return assemble(
        settings,
        queue_redis=redis_client,
        sessions_redis=redis_client,
        tenants_redis=redis_client,
        http=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))),
        store=store,
        with_worker=True,
    )


async def _drain(container, expected):
    outcomes = container.pool.subscribe()
    shutdown = asyncio.Event()
    runner = asyncio.create_task(container.pool.run(shutdown))
    seen = [await asyncio.wait_for(outcomes.get(), timeout=5) for _ in range(expected)]
    shutdown.set()
    await asyncio.wait_for(runner, timeout=5)
    return seen


@pytest.mark.asyncio
async def test_pageview_then_click_through_the_queue(container, event_factory):
    events = [
        event_factory("pageview", timestamp=1000, url="/"),
        event_factory("click", timestamp=2000),
    ]
    for event in events:
        assert await container.dispatcher.dispatch(event)

    outcomes = await _drain(container, 2)
    session = await container.sessions.get("tenant-1", "S1")

    assert [o.status for o in outcomes] == ["completed", "completed"]
    assert container.store.insert.await_count == 2
    assert (session.page_views, session.clicks) == (1, 1)
    assert session.is_bounce is False
    assert (session.start_time, session.last_activity) == (1000, 2000)


@pytest.mark.asyncio
async def test_redelivery_after_partial_failure_counts_once(container, event_factory):
    original_apply = container.processor.aggregator.apply
    calls = {"n": 0}

    async def _apply_then_fail_once(event):
        result = await original_apply(event)
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConnectionError("lost reply")
        return result

    container.processor.aggregator.apply = _apply_then_fail_once
    await container.dispatcher.dispatch(event_factory("click", timestamp=5))

    outcomes = await _drain(container, 2)
    session = await container.sessions.get("tenant-1", "S1")

    assert [o.status for o in outcomes] == ["retrying", "completed"]
    assert outcomes[1].result["session"] == "duplicate"
    assert session.clicks == 1


@pytest.mark.asyncio
async def test_fallback_path_has_the_same_effect(container, event_factory):
    container.queue.add = AsyncMock(side_effect=ConnectionError("queue down"))
    for ts, kind in [(0, "pageview"), (5000, "unload")]:
        assert await container.dispatcher.dispatch(event_factory(kind, timestamp=ts)) is False

    assert await container.fallback.drain_once() == 2
    session = await container.sessions.get("tenant-1", "S1")

    assert (session.start_time, session.end_time, session.duration) == (0, 5000, 5000)

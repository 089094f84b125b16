import json

import pytest

from shared.constants import Queues, RedisKeys
from shared.utils.clock import now_ms
from trackline.infrastructure.redis.job_queue import JobOptions, JobQueue


@pytest.fixture
def queue(redis_client):
    return JobQueue(
        redis_client,
        "test",
        JobOptions(attempts=3, backoff_delay_ms=2000, remove_on_complete=2, remove_on_fail=5),
    )


def test_backoff_is_exponential():
    options = JobOptions(backoff_delay_ms=2000)
    assert [options.backoff_for(n) for n in (1, 2, 3)] == [2000, 4000, 8000]


@pytest.mark.asyncio
async def test_add_and_reserve(queue):
    job_id = await queue.add(Queues.PROCESS_EVENT, '{"a": 1}')

    job = await queue.reserve()

    assert job.id == job_id
    assert job.name == Queues.PROCESS_EVENT
    assert json.loads(job.data) == {"a": 1}
    assert job.attempts_made == 0
    stats = await queue.stats()
    assert (stats.waiting, stats.active) == (0, 1)


@pytest.mark.asyncio
async def test_reserve_empty_queue_returns_none(queue):
    assert await queue.reserve() is None


@pytest.mark.asyncio
async def test_higher_priority_first_then_fifo(queue):
    low_1 = await queue.add("j", "1", priority=Queues.PRIORITY_NORMAL)
    low_2 = await queue.add("j", "2", priority=Queues.PRIORITY_NORMAL)
    high = await queue.add("j", "3", priority=Queues.PRIORITY_HIGH)

    order = [(await queue.reserve()).id for _ in range(3)]

    assert order == [high, low_1, low_2]


@pytest.mark.asyncio
async def test_complete_records_and_trims(queue, redis_client):
    for i in range(3):
        await queue.add("j", str(i))
    for _ in range(3):
        job = await queue.reserve()
        await queue.complete(job, {"ok": True})

    stats = await queue.stats()
    assert stats.active == 0
    assert stats.completed == 2
    assert not await redis_client.exists(RedisKeys.job_key("test", job.id))
    latest = json.loads(await redis_client.lindex(RedisKeys.queue_key("completed", "test"), 0))
    assert latest["id"] == job.id
    assert latest["result"] == {"ok": True}


@pytest.mark.asyncio
async def test_zero_retention_keeps_no_records(redis_client):
    queue = JobQueue(redis_client, "bare", JobOptions(remove_on_complete=0))
    await queue.add("j", "x")
    await queue.complete(await queue.reserve())
    assert (await queue.stats()).completed == 0


@pytest.mark.asyncio
async def test_fail_schedules_retry_with_backoff(queue, redis_client):
    await queue.add("j", "payload")
    job = await queue.reserve()
    before = now_ms()

    assert await queue.fail(job, "boom") == "retry"

    stats = await queue.stats()
    assert (stats.active, stats.delayed, stats.waiting) == (0, 1, 0)
    ready_at = await redis_client.zscore(RedisKeys.queue_key("delayed", "test"), job.id)
    assert before + 2000 <= ready_at <= now_ms() + 2000


@pytest.mark.asyncio
async def test_attempts_exhausted_moves_job_to_failed(queue):
    await queue.add("j", "payload")
    results = []
    for attempt in range(3):
        job = await queue.reserve()
        assert job.attempts_made == attempt
        results.append(await queue.fail(job, f"boom {attempt}"))
        await queue.promote(now=now_ms() + 60_000)

    assert results == ["retry", "retry", "failed"]
    stats = await queue.stats()
    assert (stats.waiting, stats.delayed, stats.failed) == (0, 0, 1)
    [record] = await queue.failed_jobs()
    assert record["attempts"] == 3
    assert record["error"] == "boom 2"
    assert record["data"] == "payload"


@pytest.mark.asyncio
async def test_non_retryable_failure_is_terminal(queue):
    await queue.add("j", "garbage")
    job = await queue.reserve()
    assert await queue.fail(job, "invalid payload", retryable=False) == "failed"
    assert (await queue.stats()).failed == 1


@pytest.mark.asyncio
async def test_promote_leaves_jobs_that_are_not_due(queue):
    await queue.add("j", "payload")
    await queue.fail(await queue.reserve(), "boom")

    assert await queue.promote() == 0
    assert (await queue.stats()).delayed == 1


@pytest.mark.asyncio
async def test_expired_lease_is_redelivered(queue):
    job_id = await queue.add("j", "payload")
    await queue.reserve(lease_seconds=0)

    moved = await queue.promote(now=now_ms() + 1)
    again = await queue.reserve()

    assert moved == 1
    assert again.id == job_id
    assert again.data == "payload"


@pytest.mark.asyncio
async def test_retried_job_keeps_its_priority(queue):
    high = await queue.add("j", "h", priority=Queues.PRIORITY_HIGH)
    await queue.fail(await queue.reserve(), "boom")
    normal = await queue.add("j", "n", priority=Queues.PRIORITY_NORMAL)
    await queue.promote(now=now_ms() + 60_000)

    assert (await queue.reserve()).id == high
    assert (await queue.reserve()).id == normal


@pytest.mark.asyncio
async def test_ping(queue):
    assert await queue.ping() is True

"""Redis-backed durable work queue with priorities, attempts and backoff.

Layout per queue (see ``shared.constants.RedisKeys``):
    waiting    ZSET  job id -> priority score (lowest served first)
    active     ZSET  job id -> lease deadline (epoch ms)
    delayed    ZSET  job id -> ready time (epoch ms), used for backoff
    completed  LIST  JSON records of finished jobs, trimmed
    failed     LIST  JSON records of jobs that exhausted their attempts, trimmed
    job:{id}   HASH  payload and bookkeeping

A job whose lease expires (its worker died) is moved back to waiting by
``promote``; that is where redelivery, and therefore at-least-once, comes from.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Literal

from redis.asyncio import Redis

from shared.constants import Queues, RedisKeys
from shared.utils.clock import now_ms

# Score = (PRIORITY_CEILING - priority) * PRIORITY_SPAN + job id, so higher
# priority sorts first and ids keep FIFO order inside one priority.
PRIORITY_CEILING = 100
PRIORITY_SPAN = 10**10

_RESERVE_LUA = """
local popped = redis.call('ZPOPMIN', KEYS[1])
if #popped == 0 then
    return false
end
redis.call('ZADD', KEYS[2], ARGV[1], popped[1])
return popped[1]
"""

_PROMOTE_LUA = """
local moved = 0
for i = 1, 2 do
    local ids = redis.call('ZRANGEBYSCORE', KEYS[i], '-inf', ARGV[1], 'LIMIT', 0, tonumber(ARGV[2]))
    for _, id in ipairs(ids) do
        redis.call('ZREM', KEYS[i], id)
        local score = redis.call('HGET', ARGV[3] .. id, 'score')
        if score then
            redis.call('ZADD', KEYS[3], score, id)
            moved = moved + 1
        end
    end
end
return moved
"""

FailResult = Literal["retry", "failed"]


@dataclass(frozen=True)
class JobOptions:
    attempts: int = 3
    backoff_delay_ms: int = 2000
    remove_on_complete: int = 100
    remove_on_fail: int = 500

    def backoff_for(self, attempts_made: int) -> int:
        """Exponential backoff before the next attempt, in ms."""
        return self.backoff_delay_ms * 2 ** max(attempts_made - 1, 0)

@dataclass(frozen=True)
class Job:
    id: str
    name: str
    data: str
    priority: int
    attempts_made: int
    created_at: int

@dataclass(frozen=True)
class QueueStats:
    waiting: int
    active: int
    delayed: int
    completed: int
    failed: int

def priority_score(priority: int, job_id: int) -> int:
    priority = max(0, min(PRIORITY_CEILING - 1, priority))
    return (PRIORITY_CEILING - priority) * PRIORITY_SPAN + job_id

class JobQueue:
    def __init__(
        self,
        redis: Redis,
        name: str = Queues.TRACKING,
        options: JobOptions | None = None,
    ):
        self.r = redis
        self.name = name
        self.options = options or JobOptions()
        self._reserve = self.r.register_script(_RESERVE_LUA)
        self._promote = self.r.register_script(_PROMOTE_LUA)

    def _key(self, kind: str) -> str:
        return RedisKeys.queue_key(kind, self.name)

    def _job_key(self, job_id: str) -> str:
        return RedisKeys.job_key(self.name, job_id)

    async def ping(self) -> bool:
        return bool(await self.r.ping())

    async def add(
        self, name: str, data: str, priority: int = Queues.PRIORITY_NORMAL
    ) -> str:
        job_id = int(await self.r.incr(self._key("id")))
        score = priority_score(priority, job_id)
        pipe = self.r.pipeline(transaction=True)
        pipe.hset(
            self._job_key(str(job_id)),
            mapping={
                "name": name,
                "data": data,
                "priority": priority,
                "score": score,
                "attempts_made": 0,
                "created_at": now_ms(),
            },
        )
        pipe.zadd(self._key("waiting"), {str(job_id): score})
        await pipe.execute()
        return str(job_id)

    async def reserve(self, lease_seconds: float = 60) -> Job | None:
        """Take the next waiting job and lease it to the caller."""
        while True:
            deadline = now_ms() + int(lease_seconds * 1000)
            job_id = await self._reserve(
                keys=[self._key("waiting"), self._key("active")], args=[deadline]
            )
            if job_id is None:
                return None
            raw = await self.r.hgetall(self._job_key(job_id))
            if raw:
                return Job(
                    id=job_id,
                    name=raw.get("name", ""),
                    data=raw.get("data", ""),
                    priority=int(raw.get("priority", 0)),
                    attempts_made=int(raw.get("attempts_made", 0)),
                    created_at=int(raw.get("created_at", 0)),
                )
            # Orphaned id with no job record
            await self.r.zrem(self._key("active"), job_id)

    async def complete(self, job: Job, result: dict[str, Any] | None = None) -> None:
        record = {
            "id": job.id,
            "name": job.name,
            "attempts": job.attempts_made + 1,
            "finished_at": now_ms(),
            "result": result or {},
        }
        pipe = self.r.pipeline(transaction=True)
        pipe.zrem(self._key("active"), job.id)
        pipe.delete(self._job_key(job.id))
        self._record(pipe, "completed", record, self.options.remove_on_complete)
        await pipe.execute()

    async def fail(
        self, job: Job, error: str, retryable: bool = True
    ) -> FailResult:
        """Record a failed attempt; schedule a retry or make the failure terminal."""
        attempts = job.attempts_made + 1
        pipe = self.r.pipeline(transaction=True)
        pipe.zrem(self._key("active"), job.id)
        if retryable and attempts < self.options.attempts:
            ready_at = now_ms() + self.options.backoff_for(attempts)
            pipe.hset(
                self._job_key(job.id),
                mapping={"attempts_made": attempts, "last_error": error[:1000]},
            )
            pipe.zadd(self._key("delayed"), {job.id: ready_at})
            await pipe.execute()
            return "retry"

        record = {
            "id": job.id,
            "name": job.name,
            "attempts": attempts,
            "failed_at": now_ms(),
            "error": error[:1000],
            "data": job.data,
        }
        pipe.delete(self._job_key(job.id))
        self._record(pipe, "failed", record, self.options.remove_on_fail)
        await pipe.execute()
        return "failed"

    async def promote(self, now: int | None = None, limit: int = 1000) -> int:
        """Move due delayed jobs and expired leases back to waiting."""
        return int(
            await self._promote(
                keys=[self._key("delayed"), self._key("active"), self._key("waiting")],
                args=[now_ms() if now is None else now, limit, self._job_key("")],
            )
        )

    async def stats(self) -> QueueStats:
        pipe = self.r.pipeline(transaction=False)
        pipe.zcard(self._key("waiting"))
        pipe.zcard(self._key("active"))
        pipe.zcard(self._key("delayed"))
        pipe.llen(self._key("completed"))
        pipe.llen(self._key("failed"))
        waiting, active, delayed, completed, failed = await pipe.execute()
        return QueueStats(
            waiting=int(waiting),
            active=int(active),
            delayed=int(delayed),
            completed=int(completed),
            failed=int(failed),
        )

    async def failed_jobs(self, limit: int = 50) -> list[dict[str, Any]]:
        entries = await self.r.lrange(self._key("failed"), 0, limit - 1)
        return [json.loads(e) for e in entries]

    def _record(self, pipe, kind: str, record: dict[str, Any], keep: int) -> None:
        if keep <= 0:
            return
        pipe.lpush(self._key(kind), json.dumps(record, default=str))
        pipe.ltrim(self._key(kind), 0, keep - 1)

__all__ = ["Job", "JobOptions", "JobQueue", "QueueStats"]

"""Session rollups stored as one Redis hash per (tenant, session).

Every event is folded in by a single Lua script, so set-on-insert fields,
counters, the bounce transition and the unload duration are one atomic step.
"""

from __future__ import annotations

from typing import Literal

from redis.asyncio import Redis

from shared.constants import RedisKeys
from trackline.schemas.session import Session

ApplyResult = Literal["created", "updated", "duplicate"]

# KEYS: session hash, applied-event set
# ARGV: event_id ('' skips dedupe), timestamp, event type, counter field ('' none),
#       bounce effect, page JSON ('' none), is unload, user JSON, expire-at ms, now ms
_APPLY_LUA = """
local key = KEYS[1]
local applied = KEYS[2]
local event_id = ARGV[1]
local ts = ARGV[2]

if event_id ~= '' then
    if redis.call('SADD', applied, event_id) == 0 then
        return 'duplicate'
    end
end

local created = redis.call('HSETNX', key, 'start_time', ts)
if created == 1 then
    redis.call('HSET', key, 'user', ARGV[8], 'is_bounce', '1')
    if ARGV[6] ~= '' and ARGV[3] == 'pageview' then
        redis.call('HSET', key, 'first_page', ARGV[6])
    end
    redis.call('PEXPIREAT', key, ARGV[9])
end

redis.call('HSET', key, 'last_activity', ts, 'last_event', ARGV[3], 'updated_at', ARGV[10])
if ARGV[6] ~= '' then
    redis.call('HSET', key, 'last_page', ARGV[6])
end
redis.call('HINCRBY', key, 'events', 1)

if ARGV[4] ~= '' then
    local count = redis.call('HINCRBY', key, ARGV[4], 1)
    if ARGV[5] == 'clear_on_repeat_pageview' and count > 1 then
        redis.call('HSET', key, 'is_bounce', '0')
    end
end
if ARGV[5] == 'clear' then
    redis.call('HSET', key, 'is_bounce', '0')
end

if ARGV[7] == '1' and redis.call('HSETNX', key, 'end_time', ts) == 1 then
    local duration = tonumber(ts) - tonumber(redis.call('HGET', key, 'start_time'))
    if duration < 0 then
        duration = 0
    end
    redis.call('HSET', key, 'duration', string.format('%d', duration))
end

if event_id ~= '' and redis.call('PTTL', applied) < 0 then
    local ttl = redis.call('PTTL', key)
    if ttl > 0 then
        redis.call('PEXPIRE', applied, ttl)
    end
end

if created == 1 then
    return 'created'
end
return 'updated'
"""


class SessionRepository:
    def __init__(self, redis: Redis):
        self.r = redis
        self._apply = self.r.register_script(_APPLY_LUA)

    async def apply(
        self,
        tenant_id: str,
        session_id: str,
        *,
        event_id: str,
        event_type: str,
        timestamp: int,
        counter: str | None,
        bounce: str,
        page_json: str | None,
        is_unload: bool,
        user_json: str,
        expire_at_ms: int,
        now_ms: int,
    ) -> ApplyResult:
        result = await self._apply(
            keys=[
                RedisKeys.session_key(tenant_id, session_id),
                RedisKeys.session_applied_key(tenant_id, session_id),
            ],
            args=[
                event_id,
                timestamp,
                event_type,
                counter or "",
                bounce,
                page_json or "",
                "1" if is_unload else "0",
                user_json,
                expire_at_ms,
                now_ms,
            ],
        )
        if isinstance(result, bytes):
            result = result.decode()
        return result  # type: ignore[return-value]

    async def get(self, tenant_id: str, session_id: str) -> Session | None:
        raw = await self.r.hgetall(RedisKeys.session_key(tenant_id, session_id))
        if not raw:
            return None
        return Session.from_redis_hash(tenant_id, session_id, raw)


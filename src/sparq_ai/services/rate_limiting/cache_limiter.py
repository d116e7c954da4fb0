"""Sliding-window rate limiter backed by Redis.

Each (action, caller) pair owns a sorted set of request timestamps. Trimming,
counting and recording happen in one Lua script so concurrent requests that
share a key cannot both take the last slot. A denied request also writes a
block key that refuses the caller for the action's block duration.
"""

import time
import uuid
from datetime import UTC, datetime

from redis.asyncio import Redis
from redis.exceptions import RedisError

from sparq_ai.core.logging_utils import get_logger
from sparq_ai.services.rate_limiting.policies import (
    ACTION_LIMITS,
    RateLimitAction,
    composite_key,
)
from sparq_ai.services.rate_limiting.results import RateLimitResult

logger = get_logger(__name__)

KEY_PREFIX = "sparq"

# KEYS[1] window key; ARGV: now_ms, window_ms, limit, member
# Returns {allowed (0/1), count after this request, reset_ms}
SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
local allowed = 0
if count < limit then
  redis.call('ZADD', key, now, ARGV[4])
  count = count + 1
  allowed = 1
end
redis.call('PEXPIRE', key, window)

local reset = now + window
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
if oldest[2] then
  reset = tonumber(oldest[2]) + window
end
return {allowed, count, reset}
"""


def _now_ms() -> int:
    return int(time.time() * 1000)


def _from_ms(ms: int | float) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=UTC)


class RedisRateLimiter:
    """Cache-backed limiter; backend errors fail open."""

    def __init__(self, redis: Redis, prefix: str = KEY_PREFIX):
        self._redis = redis
        self._prefix = prefix
        self._sliding_window = redis.register_script(SLIDING_WINDOW_LUA)

    @classmethod
    def from_url(cls, url: str, prefix: str = KEY_PREFIX) -> "RedisRateLimiter":
        """Create a limiter with its own connection pool."""
        return cls(Redis.from_url(url, socket_timeout=5, decode_responses=True), prefix=prefix)

    def _window_key(self, action: RateLimitAction, key: str) -> str:
        return f"{self._prefix}_{action.value}:{key}"

    def _block_key(self, action: RateLimitAction, key: str) -> str:
        return f"{self._prefix}_block:{action.value}:{key}"

    async def check_limit(
        self,
        action: RateLimitAction | str,
        identifier: str,
        user_id: str | None = None,
    ) -> RateLimitResult:
        """Count one request and decide whether it is allowed.

        Raises:
            ValueError: If the action is unknown.
        """
        action = RateLimitAction(action)
        config = ACTION_LIMITS[action]
        key = composite_key(identifier, user_id)
        window_ms = config.window_seconds * 1000

        try:
            now = _now_ms()
            block_ttl = await self._redis.pttl(self._block_key(action, key))
            if block_ttl > 0:
                return RateLimitResult.denied(
                    limit=config.limit,
                    reset=_from_ms(now + window_ms),
                    block_until=_from_ms(now + block_ttl),
                )

            allowed, count, reset_ms = await self._sliding_window(
                keys=[self._window_key(action, key)],
                args=[now, window_ms, config.limit, f"{now}:{uuid.uuid4().hex}"],
            )

            if not int(allowed):
                block_ms = config.block_seconds * 1000
                await self._redis.set(self._block_key(action, key), "1", px=block_ms)
                return RateLimitResult.denied(
                    limit=config.limit,
                    reset=_from_ms(int(reset_ms)),
                    block_until=_from_ms(now + block_ms),
                )

            return RateLimitResult(
                success=True,
                limit=config.limit,
                remaining=max(0, config.limit - int(count)),
                reset=_from_ms(int(reset_ms)),
            )
        except RedisError as e:
            logger.error(
                "RATE_LIMIT_BACKEND_ERROR",
                backend="redis",
                action=action.value,
                error=str(e)[:200],
            )
            return RateLimitResult.fail_open()

    async def get_status(
        self,
        action: RateLimitAction | str,
        identifier: str,
        user_id: str | None = None,
    ) -> RateLimitResult:
        """Report current usage without counting a request."""
        action = RateLimitAction(action)
        config = ACTION_LIMITS[action]
        key = composite_key(identifier, user_id)
        window_ms = config.window_seconds * 1000

        try:
            now = _now_ms()
            window_key = self._window_key(action, key)
            count = await self._redis.zcount(window_key, f"({now - window_ms}", "+inf")
            oldest = await self._redis.zrangebyscore(
                window_key, f"({now - window_ms}", "+inf", start=0, num=1, withscores=True
            )
            block_ttl = await self._redis.pttl(self._block_key(action, key))
        except RedisError as e:
            logger.error(
                "RATE_LIMIT_BACKEND_ERROR",
                backend="redis",
                action=action.value,
                error=str(e)[:200],
            )
            return RateLimitResult.fail_open()

        reset = _from_ms(oldest[0][1] + window_ms) if oldest else _from_ms(now + window_ms)
        if block_ttl > 0:
            return RateLimitResult.denied(
                limit=config.limit,
                reset=reset,
                block_until=_from_ms(now + block_ttl),
                remaining=max(0, config.limit - count),
            )
        return RateLimitResult(
            success=count < config.limit,
            limit=config.limit,
            remaining=max(0, config.limit - count),
            reset=reset,
        )

    async def reset_limit(
        self,
        action: RateLimitAction | str,
        identifier: str,
        user_id: str | None = None,
    ) -> bool:
        """Clear the window and any block for a caller. Returns False on backend error."""
        action = RateLimitAction(action)
        key = composite_key(identifier, user_id)
        try:
            await self._redis.delete(self._window_key(action, key), self._block_key(action, key))
        except RedisError as e:
            logger.error("RATE_LIMIT_RESET_FAILED", backend="redis", action=action.value, error=str(e)[:200])
            return False
        return True

    async def close(self) -> None:
        await self._redis.aclose()

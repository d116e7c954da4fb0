"""Rate-limit service: routes each decision to the backend the strategy selects."""

import asyncio
from collections.abc import Callable
from typing import Protocol

from sparq_ai.core.config import Settings, get_settings
from sparq_ai.core.logging_utils import get_logger, log_rate_limit_decision
from sparq_ai.services.rate_limiting.policies import ACTION_LIMITS, RateLimitAction
from sparq_ai.services.rate_limiting.results import RateLimitResult
from sparq_ai.services.rate_limiting.strategy import (
    RateLimitConfig,
    Strategy,
    select_strategy,
)

logger = get_logger(__name__)


class RateLimiter(Protocol):
    """Counting backend for one strategy."""

    async def check_limit(
        self, action: RateLimitAction | str, identifier: str, user_id: str | None = None
    ) -> RateLimitResult: ...

    async def get_status(
        self, action: RateLimitAction | str, identifier: str, user_id: str | None = None
    ) -> RateLimitResult: ...

    async def reset_limit(
        self, action: RateLimitAction | str, identifier: str, user_id: str | None = None
    ) -> bool: ...


def _settings_config() -> RateLimitConfig:
    return get_settings().rate_limit_config


class RateLimitService:
    """Selects the strategy on every call, then delegates to that backend.

    A strategy whose backend is not configured behaves like ``disabled``.
    """

    def __init__(
        self,
        cache_limiter: RateLimiter | None = None,
        store_limiter: RateLimiter | None = None,
        config_provider: Callable[[], RateLimitConfig] = _settings_config,
    ):
        self._cache_limiter = cache_limiter
        self._store_limiter = store_limiter
        self._config_provider = config_provider

    @property
    def config(self) -> RateLimitConfig:
        return self._config_provider()

    @property
    def strategy(self) -> Strategy:
        """Strategy for the current configuration (recomputed on each access)."""
        return select_strategy(self._config_provider())

    def _limiter(self) -> tuple[Strategy, RateLimiter | None]:
        strategy = self.strategy
        if strategy == Strategy.CACHE:
            limiter = self._cache_limiter
        elif strategy == Strategy.PERSISTENT_STORE:
            limiter = self._store_limiter
        else:
            return strategy, None

        if limiter is None:
            logger.debug("RATE_LIMIT_BACKEND_MISSING", strategy=strategy.value)
        return strategy, limiter

    @property
    def available(self) -> bool:
        """True when the selected strategy has a backend to count with."""
        return self._limiter()[1] is not None

    async def check(
        self,
        action: RateLimitAction | str,
        identifier: str,
        user_id: str | None = None,
    ) -> RateLimitResult | None:
        """Count a request. Returns None when rate limiting is not in force."""
        strategy, limiter = self._limiter()
        if limiter is None:
            return None

        result = await limiter.check_limit(action, identifier, user_id)
        log_rate_limit_decision(
            logger,
            action=RateLimitAction(action).value,
            strategy=strategy.value,
            allowed=result.success,
            remaining=result.remaining,
            blocked=result.blocked,
        )
        return result

    async def get_status(
        self,
        action: RateLimitAction | str,
        identifier: str,
        user_id: str | None = None,
    ) -> RateLimitResult | None:
        """Current usage without counting. None when rate limiting is not in force."""
        _, limiter = self._limiter()
        if limiter is None:
            return None
        return await limiter.get_status(action, identifier, user_id)

    async def reset_limit(
        self,
        action: RateLimitAction | str,
        identifier: str,
        user_id: str | None = None,
    ) -> bool:
        """Clear one action's counters for a caller."""
        _, limiter = self._limiter()
        if limiter is None:
            return False
        reset = await limiter.reset_limit(action, identifier, user_id)
        if reset:
            logger.info("RATE_LIMIT_RESET", action=RateLimitAction(action).value)
        return reset

    async def reset_all(self, identifier: str, user_id: str | None = None) -> int:
        """Clear every action's counters for a caller. Returns how many were reset."""
        _, limiter = self._limiter()
        if limiter is None:
            return 0
        results = await asyncio.gather(
            *(limiter.reset_limit(action, identifier, user_id) for action in ACTION_LIMITS)
        )
        logger.info("RATE_LIMIT_RESET_ALL", reset=sum(results), actions=len(results))
        return sum(results)

    async def close(self) -> None:
        """Close backend connections that need it."""
        for limiter in (self._cache_limiter, self._store_limiter):
            close = getattr(limiter, "close", None)
            if close is not None:
                await close()


def build_rate_limit_service(settings: Settings | None = None) -> RateLimitService:
    """Create backends for whatever infrastructure is configured."""
    from sparq_ai.db.session import database_configured, get_session_maker
    from sparq_ai.services.rate_limiting.cache_limiter import RedisRateLimiter
    from sparq_ai.services.rate_limiting.store_limiter import StoreRateLimiter

    settings = settings or get_settings()

    cache_limiter = RedisRateLimiter.from_url(settings.redis_url) if settings.redis_url else None
    store_limiter = (
        StoreRateLimiter(get_session_maker(settings)) if database_configured(settings) else None
    )

    service = RateLimitService(
        cache_limiter=cache_limiter,
        store_limiter=store_limiter,
        config_provider=lambda: settings.rate_limit_config,
    )
    logger.info(
        "RATE_LIMIT_SERVICE_INIT",
        strategy=service.strategy.value,
        cache=cache_limiter is not None,
        store=store_limiter is not None,
    )
    return service


_service: RateLimitService | None = None


def get_rate_limit_service() -> RateLimitService:
    """Get the process-wide rate-limit service."""
    global _service
    if _service is None:
        _service = build_rate_limit_service()
    return _service


def set_rate_limit_service(service: RateLimitService | None) -> None:
    """Replace the process-wide service (application startup and tests)."""
    global _service
    _service = service

"""Selection of the backend that enforces rate limits."""

from dataclasses import dataclass
from enum import Enum


class Strategy(str, Enum):
    """Backend family that counts requests."""

    CACHE = "cache"  # Distributed cache (Redis)
    PERSISTENT_STORE = "persistent_store"  # Relational database
    DISABLED = "disabled"


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate-limit switches read from process configuration."""

    enabled: bool
    cache_backend_available: bool
    fallback_to_persistent_store: bool


def select_strategy(config: RateLimitConfig) -> Strategy:
    """Pick the enforcement backend for one throttling decision.

    The enabled flag is a kill switch and wins over backend availability.
    Callers evaluate this per decision instead of caching the result.
    """
    if not config.enabled:
        return Strategy.DISABLED
    if config.cache_backend_available:
        return Strategy.CACHE
    if config.fallback_to_persistent_store:
        return Strategy.PERSISTENT_STORE
    return Strategy.DISABLED

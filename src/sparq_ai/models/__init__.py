"""Database models package."""

from sparq_ai.models.rate_limit_counter import RateLimitCounter

__all__ = [
    "RateLimitCounter",
]

"""Pydantic schemas package."""

from sparq_ai.schemas.common import BaseSchema, ErrorResponse, HealthResponse
from sparq_ai.schemas.rate_limit import (
    RateLimitOverviewResponse,
    RateLimitResetRequest,
    RateLimitResetResponse,
    RateLimitStatusResponse,
)

__all__ = [
    # Common
    "BaseSchema",
    "ErrorResponse",
    "HealthResponse",
    # Rate limiting
    "RateLimitOverviewResponse",
    "RateLimitResetRequest",
    "RateLimitResetResponse",
    "RateLimitStatusResponse",
]

"""Rate-limit administration schemas."""

from typing import Any

from pydantic import Field, model_validator

from sparq_ai.schemas.common import BaseSchema
from sparq_ai.services.rate_limiting.policies import RateLimitAction


class RateLimitOverviewResponse(BaseSchema):
    """Active strategy, switches, and configured limits."""

    strategy: str
    enabled: bool
    cache_available: bool
    fallback_to_database: bool
    configurations: dict[str, dict[str, Any]]
    endpoints: dict[str, str]


class RateLimitStatusResponse(BaseSchema):
    """Usage of one action by one caller."""

    identifier: str
    action: RateLimitAction
    user_id: str | None = None
    strategy: str
    available: bool
    message: str | None = None
    status: dict[str, Any] | None = None
    config: dict[str, Any] | None = None


class RateLimitResetRequest(BaseSchema):
    """Reset one action, or every action, for a caller."""

    identifier: str = Field(..., min_length=1)
    action: RateLimitAction | None = None
    user_id: str | None = None
    reset_all: bool = False

    @model_validator(mode="after")
    def require_target(self) -> "RateLimitResetRequest":
        if not self.reset_all and self.action is None:
            raise ValueError("Provide an action or set resetAll")
        return self


class RateLimitResetResponse(BaseSchema):
    """Outcome of a reset."""

    message: str
    identifier: str
    action: RateLimitAction | None = None
    user_id: str | None = None
    reset_count: int

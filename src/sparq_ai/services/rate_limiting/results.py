"""Rate-limit check results and their HTTP representation."""

import math
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

# Permissive numbers reported when a backend fails and the request is let through
FAIL_OPEN_LIMIT = 1000
FAIL_OPEN_WINDOW_SECONDS = 60


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of counting one request against an action's budget."""

    success: bool
    limit: int
    remaining: int
    reset: datetime
    blocked: bool = False
    block_until: datetime | None = None
    retry_after: int | None = None

    @classmethod
    def fail_open(cls) -> "RateLimitResult":
        """Result used when the counting backend is unreachable."""
        return cls(
            success=True,
            limit=FAIL_OPEN_LIMIT,
            remaining=FAIL_OPEN_LIMIT - 1,
            reset=datetime.now(UTC) + timedelta(seconds=FAIL_OPEN_WINDOW_SECONDS),
        )

    @classmethod
    def denied(
        cls,
        limit: int,
        reset: datetime,
        block_until: datetime,
        remaining: int = 0,
    ) -> "RateLimitResult":
        """Result for a request refused until ``block_until``."""
        wait = (block_until - datetime.now(UTC)).total_seconds()
        return cls(
            success=False,
            limit=limit,
            remaining=remaining,
            reset=reset,
            blocked=True,
            block_until=block_until,
            retry_after=max(1, math.ceil(wait)),
        )

    def headers(self) -> dict[str, str]:
        """Rate-limit response headers."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset.timestamp() * 1000)),
        }
        if self.retry_after:
            headers["Retry-After"] = str(self.retry_after)
        if self.blocked and self.block_until:
            headers["X-RateLimit-Blocked-Until"] = self.block_until.isoformat()
        return headers

    def error_body(self, action: str | None = None) -> dict[str, Any]:
        """JSON body for a 429 response."""
        if self.blocked and self.block_until:
            message = f"Rate limit exceeded. Blocked until {self.block_until.isoformat()}"
        else:
            message = "Rate limit exceeded. Please try again later."
        return {
            "error": {
                "code": "RATE_LIMIT_EXCEEDED",
                "message": message,
                "action": action,
                "limit": self.limit,
                "remaining": self.remaining,
                "reset": self.reset.isoformat(),
                "blocked": self.blocked,
                "retryAfter": self.retry_after,
            }
        }

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe status representation."""
        return {
            "success": self.success,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset": self.reset.isoformat(),
            "blocked": self.blocked,
            "blockUntil": self.block_until.isoformat() if self.block_until else None,
            "retryAfter": self.retry_after,
        }

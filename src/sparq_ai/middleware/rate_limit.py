"""Rate limiting middleware for API routes."""

from collections.abc import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from sparq_ai.core.logging_utils import get_logger
from sparq_ai.services.rate_limiting.policies import (
    action_for_path,
    client_identifier,
    should_rate_limit,
)
from sparq_ai.services.rate_limiting.service import (
    RateLimitService,
    get_rate_limit_service,
)

logger = get_logger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Counts API requests against the matching action's budget.

    Uses the service passed in, else ``app.state.rate_limit_service``, else
    the process-wide service. An authenticated user id placed on
    ``request.state.user_id`` by an earlier layer narrows the counter key.
    Errors while counting let the request through.
    """

    def __init__(self, app: ASGIApp, service: RateLimitService | None = None):
        super().__init__(app)
        self._service = service

    def _resolve_service(self, request: Request) -> RateLimitService:
        if self._service is not None:
            return self._service
        service = getattr(request.app.state, "rate_limit_service", None)
        return service or get_rate_limit_service()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if not should_rate_limit(path):
            return await call_next(request)

        action = action_for_path(path)
        try:
            result = await self._resolve_service(request).check(
                action,
                client_identifier(request),
                getattr(request.state, "user_id", None),
            )
        except Exception as e:
            logger.error("RATE_LIMIT_MIDDLEWARE_ERROR", path=path, error=str(e)[:200])
            result = None

        if result is None:
            return await call_next(request)

        if not result.success:
            logger.warning(
                "RATE_LIMIT_EXCEEDED",
                action=action.value,
                path=path,
                retry_after=result.retry_after,
            )
            return JSONResponse(
                status_code=429,
                content=result.error_body(action.value),
                headers=result.headers(),
            )

        response = await call_next(request)
        response.headers.update(result.headers())
        return response

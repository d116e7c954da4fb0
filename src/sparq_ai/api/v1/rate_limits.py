"""Rate-limit administration endpoints.

Callers must be authorized by the host application (mount behind its admin
guard); these handlers do no authentication of their own.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status

from sparq_ai.core.exceptions import AppException
from sparq_ai.core.logging_utils import get_logger
from sparq_ai.schemas.common import ErrorResponse
from sparq_ai.schemas.rate_limit import (
    RateLimitOverviewResponse,
    RateLimitResetRequest,
    RateLimitResetResponse,
    RateLimitStatusResponse,
)
from sparq_ai.services.rate_limiting.policies import ACTION_LIMITS, RateLimitAction
from sparq_ai.services.rate_limiting.service import (
    RateLimitService,
    get_rate_limit_service,
)

router = APIRouter(
    prefix="/admin/rate-limits",
    tags=["Rate Limits"],
    responses={
        400: {"model": ErrorResponse, "description": "Rate limiting not available"},
        500: {"model": ErrorResponse, "description": "Reset failed"},
    },
)
logger = get_logger(__name__)

ENDPOINTS = {
    "GET /api/v1/admin/rate-limits": "Get rate limit status for specific identifier/action",
    "POST /api/v1/admin/rate-limits": "Reset rate limits",
    "GET /api/v1/admin/rate-limits/overview": "Get system overview (this endpoint)",
}


def _get_service(request: Request) -> RateLimitService:
    service = getattr(request.app.state, "rate_limit_service", None)
    return service or get_rate_limit_service()


RateLimitServiceDep = Annotated[RateLimitService, Depends(_get_service)]


@router.get("/overview", response_model=RateLimitOverviewResponse)
async def get_overview(service: RateLimitServiceDep) -> RateLimitOverviewResponse:
    """Current strategy, rate-limit switches, and every action's limits."""
    config = service.config
    return RateLimitOverviewResponse(
        strategy=service.strategy.value,
        enabled=config.enabled,
        cache_available=config.cache_backend_available,
        fallback_to_database=config.fallback_to_persistent_store,
        configurations={action.value: limit.to_dict() for action, limit in ACTION_LIMITS.items()},
        endpoints=ENDPOINTS,
    )


@router.get("", response_model=RateLimitStatusResponse, response_model_exclude_none=True)
async def get_status(
    service: RateLimitServiceDep,
    identifier: str = Query(..., min_length=1),
    action: RateLimitAction = Query(...),
    user_id: str | None = Query(None, alias="userId"),
) -> RateLimitStatusResponse:
    """Usage of one action by one caller, without counting a request."""
    strategy = service.strategy.value
    result = await service.get_status(action, identifier, user_id)

    if result is None:
        return RateLimitStatusResponse(
            identifier=identifier,
            action=action,
            user_id=user_id,
            strategy=strategy,
            available=False,
            message="Rate limiting not available",
        )

    return RateLimitStatusResponse(
        identifier=identifier,
        action=action,
        user_id=user_id,
        strategy=strategy,
        available=True,
        status=result.to_dict(),
        config=ACTION_LIMITS[action].to_dict(),
    )


@router.post("", response_model=RateLimitResetResponse, response_model_exclude_none=True)
async def reset_rate_limit(
    body: RateLimitResetRequest,
    service: RateLimitServiceDep,
) -> RateLimitResetResponse:
    """Reset one action's counters, or all of them, for a caller.

    Raises:
        AppException 400: If no rate-limit backend is active.
        AppException 500: If the backend failed to reset a single action.
    """
    if not service.available:
        raise AppException(
            message="Rate limiting not available",
            code="RATE_LIMITING_UNAVAILABLE",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"strategy": service.strategy.value},
        )

    if body.reset_all:
        reset_count = await service.reset_all(body.identifier, body.user_id)
        logger.info("RATE_LIMIT_ADMIN_RESET_ALL", reset_count=reset_count)
        return RateLimitResetResponse(
            message="All rate limits reset successfully",
            identifier=body.identifier,
            user_id=body.user_id,
            reset_count=reset_count,
        )

    if not await service.reset_limit(body.action, body.identifier, body.user_id):
        raise AppException(
            message="Failed to reset rate limit",
            code="RATE_LIMIT_RESET_FAILED",
            details={"action": body.action.value},
        )

    logger.info("RATE_LIMIT_ADMIN_RESET", action=body.action.value)
    return RateLimitResetResponse(
        message="Rate limit reset successfully",
        identifier=body.identifier,
        action=body.action,
        user_id=body.user_id,
        reset_count=1,
    )

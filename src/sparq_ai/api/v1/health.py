"""Health check endpoint."""

import logging

from fastapi import APIRouter, Request

from sparq_ai import __version__
from sparq_ai.core.config import get_settings
from sparq_ai.schemas.common import HealthResponse
from sparq_ai.services.rate_limiting.strategy import select_strategy

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check for monitoring and load balancers.

    Reports configuration only; the model provider and counting backends
    are not contacted.
    """
    settings = get_settings()
    service = getattr(request.app.state, "rate_limit_service", None)
    strategy = service.strategy if service is not None else select_strategy(settings.rate_limit_config)
    logger.debug("Health check called")
    return HealthResponse(
        version=__version__,
        ai_enabled=bool(settings.openrouter_api_key),
        rate_limit_strategy=strategy.value,
    )

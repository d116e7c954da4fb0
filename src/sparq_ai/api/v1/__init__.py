"""API v1 router."""

from fastapi import APIRouter

from sparq_ai.api.v1 import health, rate_limits

router = APIRouter()

# Include sub-routers
router.include_router(health.router, tags=["Health"])
# Admin routes; the host application guards them
router.include_router(rate_limits.router)

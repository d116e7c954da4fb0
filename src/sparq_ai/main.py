"""ASGI application: model router and rate limiting behind a small admin API."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from sparq_ai import __version__
from sparq_ai.api.v1 import router as api_v1_router
from sparq_ai.core.config import Settings, get_settings, validate_environment
from sparq_ai.core.exceptions import (
    AppException,
    ConfigurationError,
    app_exception_handler,
    http_exception_handler,
)
from sparq_ai.core.logging_utils import get_logger
from sparq_ai.db.session import close_db
from sparq_ai.middleware.logging import RequestLoggingMiddleware, setup_logging
from sparq_ai.middleware.rate_limit import RateLimitMiddleware
from sparq_ai.services.llm import ModelRouter, OpenRouterTransport, get_model_map, set_model_router
from sparq_ai.services.rate_limiting.service import (
    build_rate_limit_service,
    set_rate_limit_service,
)

logger = get_logger(__name__)


def _start_services(app: FastAPI, settings: Settings) -> None:
    """Validate configuration and publish shared services on ``app.state``.

    Any configuration problem stops the process before it accepts traffic.
    """
    problems = validate_environment(settings)
    for problem in problems:
        logger.critical("STARTUP_INVALID_ENVIRONMENT", problem=problem)
    if problems:
        raise SystemExit(1)

    try:
        model_map = get_model_map()
    except ConfigurationError as e:
        logger.critical("STARTUP_INVALID_MODEL_MAP", error=e.message)
        raise SystemExit(1) from e

    transport = OpenRouterTransport(settings)
    app.state.model_router = ModelRouter(transport, model_map)
    app.state.rate_limit_service = build_rate_limit_service(settings)
    set_model_router(app.state.model_router)
    set_rate_limit_service(app.state.rate_limit_service)

    logger.info(
        "APP_STARTED",
        env=settings.app_env,
        tasks=len(model_map),
        ai_enabled=transport.enabled,
        rate_limit_strategy=app.state.rate_limit_service.strategy.value,
    )


async def _stop_services(app: FastAPI) -> None:
    await app.state.model_router.close()
    await app.state.rate_limit_service.close()
    set_model_router(None)
    set_rate_limit_service(None)
    await close_db()
    logger.info("APP_STOPPED")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    _start_services(app, settings)
    try:
        yield
    finally:
        await _stop_services(app)


def create_app() -> FastAPI:
    settings = get_settings()
    show_docs = not settings.is_production

    app = FastAPI(
        title=settings.app_name,
        description="Task-based model routing with ordered fallback, plus rate limiting",
        version=__version__,
        docs_url="/docs" if show_docs else None,
        redoc_url="/redoc" if show_docs else None,
        lifespan=lifespan,
    )

    # Added innermost first, so denied requests still get CORS headers
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", include_in_schema=False)
    async def liveness():
        """Unversioned liveness probe."""
        return {"status": "healthy", "service": "sparq-ai"}

    return app


app = create_app()

"""Async engine and session factory for the persistent rate-limit store."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from sparq_ai.core.config import Settings, get_settings
from sparq_ai.core.logging_utils import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def database_configured(settings: Settings | None = None) -> bool:
    return (settings or get_settings()).database_url is not None


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """Return the process-wide engine, creating it on first use.

    Raises:
        ValueError: If DATABASE_URL is not configured.
    """
    global _engine
    if _engine is not None:
        return _engine

    settings = settings or get_settings()
    if settings.database_url is None:
        raise ValueError("No database configuration: set DATABASE_URL")

    # Counter upserts are short; a small pool is enough
    _engine = create_async_engine(
        str(settings.database_url),
        echo=settings.debug,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=1800,
    )
    logger.info("DB_ENGINE_CREATED", dialect=_engine.dialect.name)
    return _engine


def get_session_maker(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(settings), expire_on_commit=False)
    return _session_maker


async def close_db() -> None:
    """Dispose of the engine on shutdown. Safe to call when none was created."""
    global _engine, _session_maker
    engine, _engine, _session_maker = _engine, None, None
    if engine is not None:
        await engine.dispose()
        logger.info("DB_ENGINE_DISPOSED")

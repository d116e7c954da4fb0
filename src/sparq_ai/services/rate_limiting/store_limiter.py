"""Fixed-window rate limiter backed by the relational store.

Used when no distributed cache is reachable. Each request upserts the
counter row for the current window with ``INSERT ... ON CONFLICT DO UPDATE
... RETURNING count``, which PostgreSQL applies atomically per row, so
concurrent requests sharing a key see strictly increasing counts.
"""

import math
import time
from datetime import UTC, datetime

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sparq_ai.core.logging_utils import get_logger
from sparq_ai.models.rate_limit_counter import RateLimitCounter
from sparq_ai.services.rate_limiting.policies import (
    ACTION_LIMITS,
    RateLimitAction,
    composite_key,
)
from sparq_ai.services.rate_limiting.results import RateLimitResult

logger = get_logger(__name__)


def _window_bounds(window_seconds: int, now: float | None = None) -> tuple[datetime, datetime]:
    """Start and end of the fixed window containing ``now``."""
    now = time.time() if now is None else now
    start = math.floor(now / window_seconds) * window_seconds
    return (
        datetime.fromtimestamp(start, tz=UTC),
        datetime.fromtimestamp(start + window_seconds, tz=UTC),
    )


class StoreRateLimiter:
    """Persistent-store limiter; database errors fail open.

    Denials last until the end of the current window (no separate block
    duration is tracked in the store).
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @staticmethod
    def _row_key(action: RateLimitAction, key: str) -> str:
        return f"{action.value}:{key}"

    async def check_limit(
        self,
        action: RateLimitAction | str,
        identifier: str,
        user_id: str | None = None,
    ) -> RateLimitResult:
        """Count one request and decide whether it is allowed.

        Raises:
            ValueError: If the action is unknown.
        """
        action = RateLimitAction(action)
        config = ACTION_LIMITS[action]
        row_key = self._row_key(action, composite_key(identifier, user_id))
        window_start, window_end = _window_bounds(config.window_seconds)

        stmt = (
            pg_insert(RateLimitCounter)
            .values(key=row_key, window_start=window_start, count=1)
            .on_conflict_do_update(
                index_elements=[RateLimitCounter.key, RateLimitCounter.window_start],
                set_={"count": RateLimitCounter.count + 1, "updated_at": func.now()},
            )
            .returning(RateLimitCounter.count)
        )

        try:
            async with self._session_maker() as session:
                count = (await session.execute(stmt)).scalar_one()
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                "RATE_LIMIT_BACKEND_ERROR",
                backend="database",
                action=action.value,
                error=str(e)[:200],
            )
            return RateLimitResult.fail_open()

        if count > config.limit:
            return RateLimitResult.denied(
                limit=config.limit,
                reset=window_end,
                block_until=window_end,
            )
        return RateLimitResult(
            success=True,
            limit=config.limit,
            remaining=config.limit - count,
            reset=window_end,
        )

    async def get_status(
        self,
        action: RateLimitAction | str,
        identifier: str,
        user_id: str | None = None,
    ) -> RateLimitResult:
        """Report current usage without counting a request."""
        action = RateLimitAction(action)
        config = ACTION_LIMITS[action]
        row_key = self._row_key(action, composite_key(identifier, user_id))
        window_start, window_end = _window_bounds(config.window_seconds)

        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(RateLimitCounter.count).where(
                        RateLimitCounter.key == row_key,
                        RateLimitCounter.window_start == window_start,
                    )
                )
                count = result.scalar_one_or_none() or 0
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                "RATE_LIMIT_BACKEND_ERROR",
                backend="database",
                action=action.value,
                error=str(e)[:200],
            )
            return RateLimitResult.fail_open()

        if count >= config.limit:
            return RateLimitResult.denied(
                limit=config.limit,
                reset=window_end,
                block_until=window_end,
            )
        return RateLimitResult(
            success=True,
            limit=config.limit,
            remaining=config.limit - count,
            reset=window_end,
        )

    async def reset_limit(
        self,
        action: RateLimitAction | str,
        identifier: str,
        user_id: str | None = None,
    ) -> bool:
        """Delete every window counter for a caller. Returns False on backend error."""
        action = RateLimitAction(action)
        row_key = self._row_key(action, composite_key(identifier, user_id))
        try:
            async with self._session_maker() as session:
                await session.execute(delete(RateLimitCounter).where(RateLimitCounter.key == row_key))
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.error("RATE_LIMIT_RESET_FAILED", backend="database", action=action.value, error=str(e)[:200])
            return False
        return True

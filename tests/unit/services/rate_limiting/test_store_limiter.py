"""Unit tests for the database-backed fixed-window limiter."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from sparq_ai.services.rate_limiting.policies import RateLimitAction
from sparq_ai.services.rate_limiting.results import FAIL_OPEN_LIMIT
from sparq_ai.services.rate_limiting.store_limiter import StoreRateLimiter, _window_bounds

IDENTIFIER = "1.2.3.4:curl/8"


def _count_result(count: int | None) -> MagicMock:
    result = MagicMock()
    result.scalar_one = MagicMock(return_value=count)
    result.scalar_one_or_none = MagicMock(return_value=count)
    return result


class TestWindowBounds:
    """Tests for fixed window alignment."""

    def test_aligned_to_window(self) -> None:
        start, end = _window_bounds(3600, now=7200 + 125)

        assert start == datetime.fromtimestamp(7200, tz=UTC)
        assert end == datetime.fromtimestamp(10800, tz=UTC)

    def test_boundary_starts_new_window(self) -> None:
        start, _ = _window_bounds(60, now=120)
        assert start == datetime.fromtimestamp(120, tz=UTC)


class TestStoreRateLimiterCheck:
    """Tests for counting requests."""

    @pytest.mark.asyncio
    async def test_uses_atomic_upsert(
        self, mock_session_maker: MagicMock, mock_db_session: AsyncMock
    ) -> None:
        """Counting is a single INSERT ... ON CONFLICT DO UPDATE ... RETURNING."""
        mock_db_session.execute.return_value = _count_result(1)
        limiter = StoreRateLimiter(mock_session_maker)

        await limiter.check_limit(RateLimitAction.AUTH_LOGIN, IDENTIFIER)

        stmt = mock_db_session.execute.await_args.args[0]
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "INSERT INTO rate_limit_counters" in sql
        assert "ON CONFLICT (key, window_start) DO UPDATE" in sql
        assert "RETURNING rate_limit_counters.count" in sql
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_allowed_under_limit(
        self, mock_session_maker: MagicMock, mock_db_session: AsyncMock
    ) -> None:
        mock_db_session.execute.return_value = _count_result(3)
        limiter = StoreRateLimiter(mock_session_maker)

        result = await limiter.check_limit(RateLimitAction.AUTH_LOGIN, IDENTIFIER)

        assert result.success is True
        assert result.remaining == 2

    @pytest.mark.asyncio
    async def test_last_slot_allowed(
        self, mock_session_maker: MagicMock, mock_db_session: AsyncMock
    ) -> None:
        """The request that reaches the limit exactly is still allowed."""
        mock_db_session.execute.return_value = _count_result(5)
        limiter = StoreRateLimiter(mock_session_maker)

        result = await limiter.check_limit(RateLimitAction.AUTH_LOGIN, IDENTIFIER)

        assert result.success is True
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_denied_over_limit_until_window_end(
        self, mock_session_maker: MagicMock, mock_db_session: AsyncMock
    ) -> None:
        mock_db_session.execute.return_value = _count_result(6)
        limiter = StoreRateLimiter(mock_session_maker)

        result = await limiter.check_limit(RateLimitAction.AUTH_LOGIN, IDENTIFIER)

        assert result.success is False
        assert result.blocked is True
        assert result.block_until == result.reset
        assert 1 <= result.retry_after <= 60

    @pytest.mark.asyncio
    async def test_database_error_fails_open(
        self, mock_session_maker: MagicMock, mock_db_session: AsyncMock
    ) -> None:
        mock_db_session.execute.side_effect = OperationalError("INSERT", {}, Exception("down"))
        limiter = StoreRateLimiter(mock_session_maker)

        result = await limiter.check_limit(RateLimitAction.AUTH_LOGIN, IDENTIFIER)

        assert result.success is True
        assert result.limit == FAIL_OPEN_LIMIT


class TestStoreRateLimiterStatus:
    """Tests for read-only status and reset."""

    @pytest.mark.asyncio
    async def test_status_without_row(
        self, mock_session_maker: MagicMock, mock_db_session: AsyncMock
    ) -> None:
        """No counter row means the full budget is available."""
        mock_db_session.execute.return_value = _count_result(None)
        limiter = StoreRateLimiter(mock_session_maker)

        result = await limiter.get_status("ai_content_generation", IDENTIFIER)

        assert result.success is True
        assert result.remaining == 20
        mock_db_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_status_exhausted(
        self, mock_session_maker: MagicMock, mock_db_session: AsyncMock
    ) -> None:
        mock_db_session.execute.return_value = _count_result(20)
        limiter = StoreRateLimiter(mock_session_maker)

        result = await limiter.get_status("ai_content_generation", IDENTIFIER)

        assert result.success is False
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_reset_deletes_rows(
        self, mock_session_maker: MagicMock, mock_db_session: AsyncMock
    ) -> None:
        limiter = StoreRateLimiter(mock_session_maker)

        assert await limiter.reset_limit("auth_login", IDENTIFIER, "user-1") is True

        stmt = mock_db_session.execute.await_args.args[0]
        sql = str(stmt.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))
        assert "DELETE FROM rate_limit_counters" in sql
        assert f"auth_login:{IDENTIFIER}:user-1" in sql
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reset_reports_database_error(
        self, mock_session_maker: MagicMock, mock_db_session: AsyncMock
    ) -> None:
        mock_db_session.execute.side_effect = OperationalError("DELETE", {}, Exception("down"))
        limiter = StoreRateLimiter(mock_session_maker)

        assert await limiter.reset_limit("auth_login", IDENTIFIER) is False

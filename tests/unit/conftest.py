"""Unit test fixtures.

These fixtures provide:
- Isolation from the developer's environment (settings, caches, singletons)
- A scripted chat transport for router tests
- A mocked async Redis client
- A mocked AsyncSession / session maker
"""

from collections.abc import Sequence
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from sparq_ai.core.config import Settings, get_settings
from sparq_ai.core.exceptions import ProviderError
from sparq_ai.services.llm import clear_model_map_cache, set_model_router
from sparq_ai.services.llm.types import ChatMessage
from sparq_ai.services.rate_limiting.service import set_rate_limit_service

_ISOLATED_ENV = (
    "APP_ENV",
    "OPENROUTER_API_KEY",
    "REDIS_URL",
    "DATABASE_URL",
    "RATE_LIMITING_ENABLED",
    "FALLBACK_TO_DATABASE_RATE_LIMITING",
    "MODEL_MAP_PATH",
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch):
    """Drop infrastructure env vars and reset process-wide caches around each test."""
    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)

    get_settings.cache_clear()
    clear_model_map_cache()
    set_model_router(None)
    set_rate_limit_service(None)
    yield
    get_settings.cache_clear()
    clear_model_map_cache()
    set_model_router(None)
    set_rate_limit_service(None)


@pytest.fixture
def make_settings():
    """Factory for Settings that ignores any .env file.

    Returns:
        Function that creates Settings with keyword overrides.
    """

    def _make(**overrides: Any) -> Settings:
        return Settings(_env_file=None, **overrides)

    return _make


# ---------------------------------------------------------------------------
# Chat Transport
# ---------------------------------------------------------------------------


class ScriptedTransport:
    """ChatTransport double that answers per model from a script.

    Models missing from the script fail with ProviderError.
    """

    def __init__(self, outcomes: dict[str, str | Exception] | None = None):
        self.outcomes: dict[str, str | Exception] = dict(outcomes or {})
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        self.calls.append({
            "model": model,
            "messages": list(messages),
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        outcome = self.outcomes.get(model)
        if outcome is None:
            outcome = ProviderError("unscripted model", model=model)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    @property
    def models_called(self) -> list[str]:
        return [call["model"] for call in self.calls]


@pytest.fixture
def scripted_transport() -> ScriptedTransport:
    """Transport with an empty script; tests fill in ``outcomes``."""
    return ScriptedTransport()


# ---------------------------------------------------------------------------
# Counting Backends
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_redis() -> MagicMock:
    """Create a mocked redis.asyncio client.

    ``register_script`` returns ``mock_redis.sliding_window``, an AsyncMock the
    tests configure with ``[allowed, count, reset_ms]``.
    """
    redis = MagicMock()
    redis.sliding_window = AsyncMock(return_value=[1, 1, 0])
    redis.register_script = MagicMock(return_value=redis.sliding_window)
    redis.pttl = AsyncMock(return_value=-2)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=2)
    redis.zcount = AsyncMock(return_value=0)
    redis.zrangebyscore = AsyncMock(return_value=[])
    redis.aclose = AsyncMock()
    return redis


@pytest.fixture
def mock_db_session() -> AsyncMock:
    """Create a mocked AsyncSession usable as an async context manager."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.__aenter__.return_value = session
    session.__aexit__.return_value = None
    return session


@pytest.fixture
def mock_session_maker(mock_db_session: AsyncMock) -> MagicMock:
    """Session maker whose sessions are ``mock_db_session``."""
    return MagicMock(return_value=mock_db_session)

"""Application configuration using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, PostgresDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sparq_ai.services.rate_limiting.strategy import RateLimitConfig

logger = logging.getLogger(__name__)

# Path: src/sparq_ai/core/config.py -> core -> sparq_ai -> src -> project root
_this_file = Path(__file__).resolve()
_project_root = _this_file.parent.parent.parent.parent
_env_file = _project_root / ".env"
_default_model_map = str(_project_root / "config" / "models.yaml")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_env_file) if _env_file.exists() else ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Sparq Connection"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["text", "json"] = "text"

    # OpenRouter (OpenAI-compatible chat completions)
    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_app_url: str = "http://localhost:3000"
    openrouter_app_name: str = "Sparq Connection"
    openrouter_timeout_seconds: float = Field(default=60.0, gt=0)

    # Task-to-model override file (built-in table is used when absent)
    model_map_path: str = _default_model_map

    # Distributed cache used for rate limiting
    redis_url: str | None = None

    # Rate limiting
    rate_limiting_enabled: bool = True
    fallback_to_database_rate_limiting: bool = True

    # Persistent store (rate-limit counters when the cache is unavailable)
    database_url: PostgresDsn | None = Field(default=None)

    @field_validator("database_url", mode="before")
    @classmethod
    def ensure_asyncpg_driver(cls, v: str | None) -> str | None:
        """Ensure the database URL uses asyncpg driver."""
        if v and "postgresql://" in v and "asyncpg" not in v:
            v = v.replace("postgresql://", "postgresql+asyncpg://")
        return v

    @field_validator("openrouter_api_key", "redis_url", mode="before")
    @classmethod
    def blank_as_none(cls, v: str | None) -> str | None:
        """Treat empty strings from .env files as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    # CORS (stored as comma-separated string, accessed via cors_origins_list property)
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def cache_backend_available(self) -> bool:
        """Check if distributed cache credentials are configured."""
        return bool(self.redis_url)

    @property
    def rate_limit_config(self) -> RateLimitConfig:
        """Snapshot of the rate-limit switches for strategy selection."""
        return RateLimitConfig(
            enabled=self.rate_limiting_enabled,
            cache_backend_available=self.cache_backend_available,
            fallback_to_persistent_store=self.fallback_to_database_rate_limiting,
        )


def validate_environment(settings: Settings) -> list[str]:
    """Check settings for problems that should stop a deployment.

    A missing OpenRouter key only disables AI features, so it is logged
    rather than reported.

    Returns:
        List of error messages (empty when the environment is usable).
    """
    errors: list[str] = []

    if settings.is_production and not settings.cache_backend_available:
        errors.append("Redis configuration missing in production environment")

    if not settings.openrouter_api_key:
        logger.warning("OPENROUTER_API_KEY is not set. AI features will be disabled.")

    return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

"""Chat-completion transport: one model, one call, no retries."""

from collections.abc import Sequence
from typing import Any, Protocol

import openai
from openai import AsyncOpenAI

from sparq_ai.core.config import Settings, get_settings
from sparq_ai.core.exceptions import ProviderError
from sparq_ai.core.logging_utils import get_logger
from sparq_ai.services.llm.types import ChatMessage

logger = get_logger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1024


class ChatTransport(Protocol):
    """Anything that can run a single chat completion against a named model."""

    async def complete(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Return completion text or raise ProviderError."""
        ...


def _normalize_content(raw_content: str | list[Any] | None) -> str | None:
    """Flatten list-of-parts content into a string; keep None as None."""
    if raw_content is None or isinstance(raw_content, str):
        return raw_content
    if isinstance(raw_content, list):
        parts: list[str] = []
        for part in raw_content:
            if isinstance(part, dict):
                text = part.get("text", "")
                if text:
                    parts.append(text)
            elif isinstance(part, str):
                parts.append(part)
            else:
                parts.append(str(part))
        return " ".join(parts)
    return str(raw_content)


class OpenRouterTransport:
    """ChatTransport backed by OpenRouter's OpenAI-compatible API."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize the transport.

        Args:
            settings: Application settings. Uses cached settings if None.
            client: Pre-built OpenAI client (tests inject a mock here).
        """
        self._settings = settings or get_settings()
        self._client: AsyncOpenAI | None = client

        if self._client is None and self._settings.openrouter_api_key:
            self._client = AsyncOpenAI(
                api_key=self._settings.openrouter_api_key,
                base_url=self._settings.openrouter_base_url,
                timeout=self._settings.openrouter_timeout_seconds,
                # Retries belong to the router's fallback chain, not the SDK
                max_retries=0,
                default_headers={
                    "HTTP-Referer": self._settings.openrouter_app_url,
                    "X-Title": self._settings.openrouter_app_name,
                },
            )

        if self._client is None:
            logger.warning("OPENROUTER_TRANSPORT_DISABLED", reason="missing OPENROUTER_API_KEY")
        else:
            logger.info("OPENROUTER_TRANSPORT_INIT", base_url=self._settings.openrouter_base_url)

    @property
    def enabled(self) -> bool:
        """Whether an API client is configured."""
        return self._client is not None

    async def complete(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Run one chat completion.

        Raises:
            ProviderError: For any provider-side failure or unusable response.
        """
        if self._client is None:
            raise ProviderError("AI is unavailable: OPENROUTER_API_KEY is not set", model=model)

        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=[m.to_dict() for m in messages],
                temperature=DEFAULT_TEMPERATURE if temperature is None else temperature,
                max_tokens=DEFAULT_MAX_TOKENS if max_tokens is None else max_tokens,
            )
        except openai.RateLimitError as e:
            raise ProviderError(
                f"Provider rate limit: {e}", model=model, provider_status=429, rate_limited=True
            ) from e
        except openai.APIStatusError as e:
            raise ProviderError(
                f"Provider error ({e.status_code}): {e.message}",
                model=model,
                provider_status=e.status_code,
                rate_limited=e.status_code == 429,
            ) from e
        except openai.APITimeoutError as e:
            raise ProviderError(f"Timeout: {e}", model=model) from e
        except openai.APIConnectionError as e:
            raise ProviderError(f"Connection error: {e}", model=model) from e
        except openai.OpenAIError as e:
            raise ProviderError(str(e), model=model) from e

        if not response.choices:
            raise ProviderError("Empty response from model (no choices)", model=model)

        content = _normalize_content(response.choices[0].message.content)
        if content is None:
            raise ProviderError("Malformed response from model (no content)", model=model)
        return content

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()

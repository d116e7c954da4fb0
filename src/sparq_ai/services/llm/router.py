"""Ordered-fallback model router."""

import time
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from sparq_ai.core.exceptions import (
    ConfigurationError,
    ExhaustionError,
    ProviderError,
    ProviderFailure,
)
from sparq_ai.core.logging_utils import (
    get_logger,
    log_llm_error,
    log_llm_exhausted,
    log_llm_fallback,
    log_llm_request,
    log_llm_response,
)
from sparq_ai.services.llm.models import ModelMap, resolve
from sparq_ai.services.llm.transport import ChatTransport
from sparq_ai.services.llm.types import (
    AskOptions,
    AskResult,
    ChatMessage,
    MessageRole,
)

logger = get_logger(__name__)


def build_messages(user_prompt: str, system: str | None = None) -> list[ChatMessage]:
    """System message (if any) followed by the user message."""
    messages: list[ChatMessage] = []
    if system:
        messages.append(ChatMessage(role=MessageRole.SYSTEM, content=system))
    messages.append(ChatMessage(role=MessageRole.USER, content=user_prompt))
    return messages


def _coerce_options(options: AskOptions | Mapping[str, Any]) -> AskOptions:
    # Instances are validated again: model_copy and model_construct skip validation
    data = options.model_dump() if isinstance(options, AskOptions) else dict(options)
    try:
        return AskOptions.model_validate(data)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid ask options: {e}", field="options") from e


class ModelRouter:
    """Tries each model configured for a task, in order, until one answers.

    The router keeps no per-call state on the instance, so one router can
    serve any number of concurrent requests. Attempts within a call are
    sequential and each model is tried at most once.
    """

    def __init__(self, transport: ChatTransport, model_map: ModelMap | None = None):
        """Initialize the router.

        Args:
            transport: Chat-completion transport shared by all candidates.
            model_map: Task-to-model map. Uses the process-wide map if None.
        """
        self._transport = transport
        self._model_map = model_map

    async def complete(
        self,
        user_prompt: str,
        options: AskOptions | Mapping[str, Any],
    ) -> AskResult:
        """Route a prompt and return the first successful completion with metadata.

        Raises:
            ConfigurationError: Unknown task kind or invalid options. No model is called.
            ExhaustionError: Every candidate failed; carries the ordered failure trail.
        """
        opts = _coerce_options(options)
        mapping = resolve(opts.task, self._model_map)
        candidates = mapping.candidates
        messages = build_messages(user_prompt, opts.system)
        wire_messages = [m.to_dict() for m in messages]

        failures: list[ProviderFailure] = []
        start_time = time.perf_counter()

        for index, model in enumerate(candidates):
            log_llm_request(
                logger,
                model=model,
                task=opts.task.value,
                attempt=index + 1,
                messages=wire_messages,
                temperature=opts.temperature,
                max_tokens=opts.max_tokens,
            )
            attempt_start = time.perf_counter()

            try:
                content = await self._transport.complete(
                    model,
                    messages,
                    temperature=opts.temperature,
                    max_tokens=opts.max_tokens,
                )
            except ConfigurationError:
                raise
            except Exception as e:
                failures.append(ProviderFailure.from_exception(model, e))
                next_model = candidates[index + 1] if index + 1 < len(candidates) else None
                is_rate_limit = isinstance(e, ProviderError) and e.rate_limited

                log_llm_error(
                    logger,
                    model=model,
                    error=e,
                    is_rate_limit=is_rate_limit,
                    will_fallback=next_model is not None,
                )
                if next_model is not None:
                    log_llm_fallback(
                        logger,
                        from_model=model,
                        to_model=next_model,
                        reason="rate_limit" if is_rate_limit else type(e).__name__,
                    )
                continue

            log_llm_response(
                logger,
                model=model,
                duration_ms=(time.perf_counter() - attempt_start) * 1000,
                content=content,
            )
            return AskResult(
                content=content,
                model=model,
                task=opts.task,
                attempts=index + 1,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                failures=failures,
            )

        log_llm_exhausted(
            logger,
            task=opts.task.value,
            models=list(candidates),
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )
        raise ExhaustionError(opts.task.value, failures)

    async def ask(self, user_prompt: str, options: AskOptions | Mapping[str, Any]) -> str:
        """Route a prompt and return only the completion text."""
        result = await self.complete(user_prompt, options)
        return result.content

    async def close(self) -> None:
        """Release transport resources, if the transport holds any."""
        close = getattr(self._transport, "close", None)
        if close is not None:
            await close()

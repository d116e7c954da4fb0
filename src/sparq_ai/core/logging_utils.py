"""Event-style structured logging.

Every message starts with an upper-case event name followed by ``key=value``
fields, e.g.::

    LLM_FALLBACK from_model="openai/gpt-4o" to_model="anthropic/claude-3.5-haiku"

The raw fields are also attached to the log record (``record.event`` and
``record.fields``) so the JSON formatter can ship them unflattened.
"""

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from sparq_ai.core.config import get_settings
from sparq_ai.core.exceptions import ProviderError

MAX_STR_FIELD = 80
MAX_SEQ_ITEMS = 3


@dataclass(frozen=True)
class LogContext:
    """Correlation fields rendered ahead of every event's own fields."""

    request_id: str | None = None
    task: str | None = None
    action: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def items(self) -> Iterator[tuple[str, Any]]:
        if self.request_id:
            yield "req", self.request_id[:8]
        if self.task:
            yield "task", self.task
        if self.action:
            yield "action", self.action
        yield from self.extra.items()

    def merged(self, **updates: Any) -> "LogContext":
        known = {k: updates.pop(k) for k in ("request_id", "task", "action") if k in updates}
        return replace(self, **known, extra={**self.extra, **updates})


def preview(text: str | None, limit: int = 100) -> str:
    """Shorten free text for a log line."""
    if text is None:
        return "<none>"
    return text if len(text) <= limit else f"{text[:limit]}..."


def render_value(value: Any) -> str:
    if isinstance(value, str):
        return f'"{preview(value, MAX_STR_FIELD)}"'
    if isinstance(value, Mapping):
        return f"{{{len(value)} keys}}"
    if isinstance(value, list | tuple):
        shown = ", ".join(str(v) for v in value[:MAX_SEQ_ITEMS])
        hidden = len(value) - MAX_SEQ_ITEMS
        return f"[{shown}, +{hidden}]" if hidden > 0 else f"[{shown}]"
    return str(value)


def render_fields(fields: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> str:
    """Render fields as space-separated ``key=value`` pairs, skipping None."""
    pairs = fields.items() if isinstance(fields, Mapping) else fields
    return " ".join(f"{key}={render_value(value)}" for key, value in pairs if value is not None)


class StructuredLogger:
    """Thin wrapper over a stdlib logger that emits event lines."""

    def __init__(self, name: str, context: LogContext | None = None):
        self._logger = logging.getLogger(name)
        self._context = context or LogContext()

    @property
    def name(self) -> str:
        return self._logger.name

    def log(
        self, level: int, event: str, /, exc_info: bool | BaseException = False, **fields: Any
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return
        rendered = render_fields([*self._context.items(), *fields.items()])
        message = f"{event} {rendered}" if rendered else event
        self._logger.log(
            level,
            message,
            exc_info=exc_info,
            extra={"event": event, "fields": fields},
        )

    def debug(self, event: str, /, **fields: Any) -> None:
        self.log(logging.DEBUG, event, **fields)

    def info(self, event: str, /, **fields: Any) -> None:
        self.log(logging.INFO, event, **fields)

    def warning(self, event: str, /, **fields: Any) -> None:
        self.log(logging.WARNING, event, **fields)

    def error(self, event: str, /, **fields: Any) -> None:
        self.log(logging.ERROR, event, **fields)

    def critical(self, event: str, /, **fields: Any) -> None:
        self.log(logging.CRITICAL, event, **fields)

    def exception(self, event: str, /, **fields: Any) -> None:
        self.log(logging.ERROR, event, exc_info=True, **fields)

    def with_context(self, **updates: Any) -> "StructuredLogger":
        """Child logger whose lines carry extra correlation fields."""
        return StructuredLogger(self.name, self._context.merged(**updates))


def get_logger(name: str, context: LogContext | None = None) -> StructuredLogger:
    return StructuredLogger(name, context)


# Router events


def _preview_limit(short: int, long: int) -> int:
    return long if get_settings().debug else short


def log_llm_request(
    logger: StructuredLogger,
    model: str,
    task: str,
    attempt: int,
    messages: list[dict[str, Any]],
    temperature: float | None,
    max_tokens: int | None,
) -> None:
    prompt = messages[-1].get("content", "") if messages else ""
    logger.info(
        "LLM_REQUEST",
        task=task,
        model=model,
        attempt=attempt,
        messages=len(messages),
        prompt=preview(prompt, _preview_limit(50, 150)),
        temperature=temperature,
        max_tokens=max_tokens,
    )


def log_llm_response(
    logger: StructuredLogger,
    model: str,
    duration_ms: float,
    content: str,
) -> None:
    logger.info(
        "LLM_RESPONSE",
        model=model,
        duration_ms=round(duration_ms, 1),
        chars=len(content),
        content=preview(content, _preview_limit(80, 200)),
    )


def log_llm_error(
    logger: StructuredLogger,
    model: str,
    error: Exception,
    is_rate_limit: bool = False,
    will_fallback: bool = False,
) -> None:
    # A failure that falls through to another model is not yet an error
    level = logging.WARNING if will_fallback else logging.ERROR
    logger.log(
        level,
        "LLM_ERROR",
        # Anything but a ProviderError is a transport bug; keep its traceback
        exc_info=error if not isinstance(error, ProviderError) else False,
        model=model,
        error_type=type(error).__name__,
        error=str(error)[:200],
        rate_limited=is_rate_limit,
        will_fallback=will_fallback,
    )


def log_llm_fallback(
    logger: StructuredLogger,
    from_model: str,
    to_model: str,
    reason: str,
) -> None:
    logger.warning("LLM_FALLBACK", from_model=from_model, to_model=to_model, reason=reason)


def log_llm_exhausted(
    logger: StructuredLogger,
    task: str,
    models: list[str],
    duration_ms: float,
) -> None:
    logger.error(
        "LLM_EXHAUSTED",
        task=task,
        attempts=len(models),
        models=models,
        duration_ms=round(duration_ms, 1),
    )


# Rate-limit events


def log_rate_limit_decision(
    logger: StructuredLogger,
    action: str,
    strategy: str,
    allowed: bool,
    remaining: int,
    blocked: bool = False,
) -> None:
    """Allowed checks go to DEBUG; denials to WARNING."""
    logger.log(
        logging.DEBUG if allowed else logging.WARNING,
        "RATE_LIMIT_CHECK",
        action=action,
        strategy=strategy,
        allowed=allowed,
        remaining=remaining,
        blocked=blocked or None,
    )

"""LLM service package."""

from collections.abc import Mapping
from typing import Any

from sparq_ai.services.llm.models import (
    DEFAULT_MODEL_MAP,
    ModelMap,
    clear_model_map_cache,
    get_model_map,
    load_model_map,
    resolve,
    validate_model_map,
)
from sparq_ai.services.llm.router import ModelRouter, build_messages
from sparq_ai.services.llm.transport import ChatTransport, OpenRouterTransport
from sparq_ai.services.llm.types import (
    AskOptions,
    AskResult,
    ChatMessage,
    MessageRole,
    ModelMapping,
    TaskKind,
)

_default_router: ModelRouter | None = None


def get_model_router() -> ModelRouter:
    """Get the process-wide router (OpenRouter transport, configured model map)."""
    global _default_router
    if _default_router is None:
        _default_router = ModelRouter(OpenRouterTransport(), get_model_map())
    return _default_router


def set_model_router(router: ModelRouter | None) -> None:
    """Replace the process-wide router (application startup and tests)."""
    global _default_router
    _default_router = router


async def ask_model(user_prompt: str, options: AskOptions | Mapping[str, Any]) -> str:
    """Ask the default router; see ModelRouter.ask."""
    return await get_model_router().ask(user_prompt, options)


__all__ = [
    # Router
    "ModelRouter",
    "ask_model",
    "build_messages",
    "get_model_router",
    "set_model_router",
    # Transport
    "ChatTransport",
    "OpenRouterTransport",
    # Task map
    "DEFAULT_MODEL_MAP",
    "ModelMap",
    "clear_model_map_cache",
    "get_model_map",
    "load_model_map",
    "resolve",
    "validate_model_map",
    # Types
    "AskOptions",
    "AskResult",
    "ChatMessage",
    "MessageRole",
    "ModelMapping",
    "TaskKind",
]

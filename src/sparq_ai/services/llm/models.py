"""Task-to-model routing table.

The built-in table below covers every TaskKind and is checked at import, so an
unmapped task is caught before the first request. Deployments may override it
with a YAML file (``MODEL_MAP_PATH``) shaped like::

    tasks:
      creative_longform:
        primary: anthropic/claude-3.5-sonnet
        fallback: [openai/gpt-4o-mini]
      ...

An override is held to the same rules: every task present, no unknown tasks,
no repeated models.
"""

import logging
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from sparq_ai.core.config import get_settings
from sparq_ai.core.exceptions import ConfigurationError
from sparq_ai.core.yaml_loader import load_yaml_config
from sparq_ai.services.llm.types import ModelMapping, TaskKind

logger = logging.getLogger(__name__)

ModelMap = Mapping[TaskKind, ModelMapping]

# Model ids are OpenRouter identifiers.
DEFAULT_MODEL_MAP: ModelMap = MappingProxyType({
    TaskKind.CREATIVE_LONGFORM: ModelMapping(
        primary="anthropic/claude-3.5-sonnet",
        fallback=("openai/gpt-4o-mini", "meta-llama/llama-3.1-405b-instruct"),
    ),
    TaskKind.STRUCTURED_GENERATION: ModelMapping(
        primary="openai/gpt-4o-mini",
        fallback=("meta-llama/llama-3.1-405b-instruct",),
    ),
    TaskKind.CLASSIFICATION: ModelMapping(
        primary="openai/gpt-4o-mini",
        fallback=("meta-llama/llama-3.1-405b-instruct",),
    ),
    TaskKind.REASONING_SAFETY: ModelMapping(
        primary="anthropic/claude-3.5-sonnet",
        fallback=("openai/gpt-4o-mini",),
    ),
})


def validate_model_map(model_map: ModelMap) -> None:
    """Ensure the map has exactly one entry per TaskKind.

    Raises:
        ConfigurationError: If a task is missing or a key is not a TaskKind.
    """
    unknown = [key for key in model_map if not isinstance(key, TaskKind)]
    if unknown:
        raise ConfigurationError(f"Model map has keys that are not task kinds: {unknown}")

    missing = [task.value for task in TaskKind if task not in model_map]
    if missing:
        raise ConfigurationError(f"Model map is missing task kinds: {missing}")


validate_model_map(DEFAULT_MODEL_MAP)


class TaskModelsConfig(BaseModel):
    """YAML entry for one task."""

    primary: str = Field(min_length=1)
    fallback: list[str] = Field(default_factory=list)

    model_config = {"frozen": True, "extra": "forbid"}


class ModelMapConfig(BaseModel):
    """Root of the YAML override file."""

    tasks: dict[TaskKind, TaskModelsConfig]

    model_config = {"frozen": True, "extra": "forbid"}


def load_model_map(config_path: Path | None = None) -> ModelMap:
    """Load the task-to-model map, preferring an override file when present.

    Args:
        config_path: YAML file to read. Defaults to ``settings.model_map_path``.

    Returns:
        Read-only mapping covering every TaskKind.

    Raises:
        ConfigurationError: If the override file is invalid or incomplete.
    """
    if config_path is None:
        config_path = Path(get_settings().model_map_path)

    if not config_path.exists():
        logger.info(f"Model map not found at {config_path}, using built-in table")
        return DEFAULT_MODEL_MAP

    try:
        raw = load_yaml_config(config_path)
        parsed = ModelMapConfig.model_validate(raw)
    except (PydanticValidationError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Invalid model map at {config_path}: {e}") from e

    model_map = MappingProxyType({
        task: ModelMapping(primary=entry.primary, fallback=tuple(entry.fallback))
        for task, entry in parsed.tasks.items()
    })
    validate_model_map(model_map)

    logger.info(f"Loaded model map for {len(model_map)} tasks from {config_path}")
    return model_map


@lru_cache(maxsize=1)
def get_model_map() -> ModelMap:
    """Get the cached process-wide model map."""
    return load_model_map()


def clear_model_map_cache() -> None:
    """Clear the cached model map (useful for testing and hot reload)."""
    get_model_map.cache_clear()


def resolve(task: TaskKind | str, model_map: ModelMap | None = None) -> ModelMapping:
    """Look up the model preference list for a task.

    Args:
        task: Task kind, or its string value.
        model_map: Map to use instead of the process-wide one.

    Raises:
        ConfigurationError: If ``task`` is not a known task kind.
    """
    try:
        kind = TaskKind(task)
    except ValueError:
        raise ConfigurationError(f"Unknown task kind: {task!r}", field="task") from None

    table = model_map if model_map is not None else get_model_map()
    try:
        return table[kind]
    except KeyError:
        # Only reachable with a hand-built map that skipped validate_model_map
        raise ConfigurationError(f"No models configured for task '{kind.value}'", field="task") from None

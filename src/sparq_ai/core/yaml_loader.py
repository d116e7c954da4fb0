"""YAML loading for override files, with ${VAR} / ${VAR:-default} expansion."""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def _expand(match: re.Match[str]) -> str:
    name, default = match.group(1), match.group(2)
    value = os.environ.get(name)
    if value is not None:
        return value
    if default is not None:
        return default
    raise ValueError(f"Environment variable '{name}' is not set and no default provided")


def interpolate_env_vars(value: Any) -> Any:
    """Recursively expand environment variable references in parsed YAML.

    Raises:
        ValueError: If a referenced variable has no value and no default.
    """
    if isinstance(value, str):
        return ENV_VAR_PATTERN.sub(_expand, value)
    if isinstance(value, dict):
        return {k: interpolate_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Read a YAML mapping from disk and expand environment references.

    An empty file yields an empty dict.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: On a missing variable or a non-mapping document.
        yaml.YAMLError: If the document cannot be parsed.
    """
    logger.debug(f"Loading YAML from {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        logger.warning(f"YAML file {config_path} is empty")
        return {}

    if not isinstance(raw, dict):
        raise ValueError(f"Expected mapping in {config_path}, got {type(raw).__name__}")

    return interpolate_env_vars(raw)

"""Layered configuration for marketkit.

Sources, lowest priority first:
  1. Package defaults
  2. ~/.marketkit/config.yaml
  3. The nearest marketkit.yaml at or above the working directory
  4. MARKETKIT_* environment variables
  5. Keyword arguments passed to load_config_hierarchy()
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import yaml

from marketkit.config.defaults import get_defaults

logger = logging.getLogger(__name__)

_GLOBAL_CONFIG_PATH = Path.home() / ".marketkit" / "config.yaml"
_PROJECT_CONFIG_NAME = "marketkit.yaml"

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def _as_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUTHY


# (environment variable, config key, parser); parser None keeps the string
_ENV_VARS: tuple[tuple[str, str, Callable[[str], Any] | None], ...] = (
    ("MARKETKIT_CACHE_TTL", "cache_ttl_seconds", float),
    ("MARKETKIT_CHECK_PERIOD", "check_period_seconds", float),
    ("MARKETKIT_REVALIDATE", "revalidate_seconds", float),
    ("MARKETKIT_WARM_TTL", "warm_ttl_seconds", float),
    ("MARKETKIT_CACHE_DISABLED", "cache_disabled", _as_bool),
    ("MARKETKIT_INCLUDE_IDENTITY", "include_identity", _as_bool),
    ("MARKETKIT_TITLE_MAX_CHARS", "title_max_chars", int),
    ("MARKETKIT_IDEAL_RESPONSE_MS", "ideal_response_ms", float),
    ("MARKETKIT_FOLLOW_UP_HOURS", "follow_up_hours", float),
    ("MARKETKIT_KEYWORDS_FILE", "keywords_file", None),
    ("MARKETKIT_INVALIDATION_FILE", "invalidation_file", None),
    ("MARKETKIT_LOG_LEVEL", "log_level", None),
)

_ENV_MAP: dict[str, str] = {env: key for env, key, _ in _ENV_VARS}
_PARSERS: dict[str, Callable[[str], Any]] = {
    key: parser for _, key, parser in _ENV_VARS if parser is not None
}


def load_config_hierarchy(**runtime_overrides: Any) -> dict[str, Any]:
    """Merge every configuration source into one flat dict.

    Overrides whose value is None are treated as not given.
    """
    merged = get_defaults()
    for layer in _file_layers():
        merged.update(layer)
    merged.update(_load_env_vars())
    merged.update({k: v for k, v in runtime_overrides.items() if v is not None})
    return merged


def _file_layers() -> Iterator[dict[str, Any]]:
    candidates = [_GLOBAL_CONFIG_PATH, _find_project_config()]
    for path in candidates:
        if path is None:
            continue
        layer = _load_yaml_config(path)
        if layer:
            yield layer


def _load_yaml_config(path: Path) -> dict[str, Any] | None:
    """Mapping stored in path, or None if it is absent, unreadable or not a mapping."""
    if not path.is_file():
        return None
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Skipping config %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.warning("Skipping config %s: top level is not a mapping", path)
        return None
    return data


def _find_project_config() -> Path | None:
    here = Path.cwd()
    return next(
        (
            d / _PROJECT_CONFIG_NAME
            for d in (here, *here.parents)
            if (d / _PROJECT_CONFIG_NAME).exists()
        ),
        None,
    )


def _load_env_vars() -> dict[str, Any]:
    return {
        key: _coerce_env_value(key, os.environ[env])
        for env, key in _ENV_MAP.items()
        if env in os.environ
    }


def _coerce_env_value(key: str, value: str) -> Any:
    """Parse an environment string for key. Unparseable numbers stay strings."""
    parser = _PARSERS.get(key)
    if parser is None:
        return value
    try:
        return parser(value)
    except ValueError:
        logger.warning("Ignoring type for %s: cannot parse %r", key, value)
        return value

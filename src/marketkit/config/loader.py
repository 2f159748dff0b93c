"""YAML config loading and validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from marketkit.config.schema import InvalidationRule, KeywordConfig


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Load any YAML file safely."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError(f"Expected YAML mapping, got {type(raw).__name__} in {path}")

    return raw


def load_invalidation_yaml(path: str | Path) -> list[InvalidationRule]:
    """Load an event → invalidation table.

    Expected shape::

        invalidation:
          product:updated:
            tags: [products]
            patterns: [products]
    """
    raw = load_yaml(path)
    table = raw.get("invalidation")
    if not isinstance(table, dict):
        raise ValueError(f"Invalid invalidation YAML: missing 'invalidation' mapping in {path}")

    rules: list[InvalidationRule] = []
    for event, spec in table.items():
        spec = spec or {}
        if isinstance(spec, list):
            # Shorthand: a bare list of tags
            spec = {"tags": spec}
        rules.append(InvalidationRule(event=str(event), **spec))
    return rules


def load_keywords_yaml(path: str | Path) -> KeywordConfig:
    """Load keyword lists. Missing sections keep their defaults."""
    raw = load_yaml(path)
    if "keywords" not in raw:
        raise ValueError(f"Invalid keywords YAML: missing top-level 'keywords' key in {path}")
    return KeywordConfig(**(raw["keywords"] or {}))

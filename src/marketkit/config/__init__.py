"""Configuration: defaults, YAML/env hierarchy, and typed settings."""

from marketkit.config.hierarchy import load_config_hierarchy
from marketkit.config.schema import (
    AnalyticsSettings,
    CacheSettings,
    InvalidationRule,
    KeywordConfig,
    MarketkitConfig,
    SkipConditions,
)

__all__ = [
    "load_config_hierarchy",
    "AnalyticsSettings",
    "CacheSettings",
    "InvalidationRule",
    "KeywordConfig",
    "MarketkitConfig",
    "SkipConditions",
]

"""Dependency path resolution from the CMake build cache."""

from obs_plugin_helper.dependencies.cache_resolver import (
    CACHE_FILENAME,
    CACHE_KEY_MAP,
    CacheValidationResult,
    DependencyCacheResolver,
    DependencyComparison,
    parse_cache_text,
)

__all__ = [
    "CACHE_FILENAME",
    "CACHE_KEY_MAP",
    "CacheValidationResult",
    "DependencyCacheResolver",
    "DependencyComparison",
    "parse_cache_text",
]

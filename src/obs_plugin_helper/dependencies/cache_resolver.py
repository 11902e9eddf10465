"""
obs-plugin-helper — CMake cache dependency resolver.

File: src/obs_plugin_helper/dependencies/cache_resolver.py
Last updated: 2026-10-18

Purpose
- Read ``CMakeCache.txt`` from a build directory and map recognised entries
  onto semantic dependency names.
- Check that resolved paths exist and report differences against the paths
  stored in project configuration.

Functional requirements
- Parsing never raises for runtime conditions; failures are reported in the
  returned ``CacheValidationResult``.
- Comparison only reports. Persisting changes is the caller's decision.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

import structlog

from obs_plugin_helper.config.schema import DEPENDENCY_CACHE_KEYS

CACHE_FILENAME: Final[str] = "CMakeCache.txt"

# CMake cache variable -> semantic dependency key.
CACHE_KEY_MAP: Final[dict[str, str]] = {
    "OBS_STUDIO_DIR": "obs_studio_dir",
    "Qt6_DIR": "qt6_dir",
    "Qt6Core_DIR": "qt6_core_dir",
    "obs-frontend-api_DIR": "obs_frontend_api_dir",
    "libobs_DIR": "libobs_dir",
}

_NOTFOUND_SUFFIX: Final[str] = "-NOTFOUND"

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CacheValidationResult:
    success: bool
    dependencies: dict[str, str] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    def with_warnings(self, extra: tuple[str, ...]) -> CacheValidationResult:
        return CacheValidationResult(
            success=self.success,
            dependencies=dict(self.dependencies),
            warnings=(*self.warnings, *extra),
            errors=self.errors,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "success": self.success,
            "dependencies": dict(sorted(self.dependencies.items())),
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


@dataclass(frozen=True, slots=True)
class DependencyComparison:
    has_changes: bool
    differences: dict[str, dict[str, str | None]]


class DependencyCacheResolver:
    """Parse and reconcile dependency paths recorded by CMake."""

    def __init__(self, cache_filename: str = CACHE_FILENAME) -> None:
        self._cache_filename = cache_filename

    def parse_cache_file(self, build_dir: str | os.PathLike[str]) -> CacheValidationResult:
        cache_path = Path(build_dir) / self._cache_filename
        if not cache_path.is_file():
            logger.warning("cache_file_missing", path=str(cache_path))
            return CacheValidationResult(
                success=False,
                errors=(f"{self._cache_filename} not found in {Path(build_dir)}",),
            )

        try:
            content = cache_path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.warning("cache_file_unreadable", path=str(cache_path), error=str(exc))
            return CacheValidationResult(
                success=False,
                errors=(f"unable to read {cache_path}: {exc}",),
            )

        dependencies, warnings = parse_cache_text(content)
        logger.info(
            "cache_parsed",
            path=str(cache_path),
            dependencies=sorted(dependencies),
            warnings=len(warnings),
        )
        return CacheValidationResult(
            success=True,
            dependencies=dependencies,
            warnings=tuple(warnings),
        )

    def validate_dependency_paths(self, dependencies: Mapping[str, str]) -> list[str]:
        """One warning per path that is missing or not a directory."""

        warnings: list[str] = []
        for key in sorted(dependencies):
            value = dependencies[key]
            candidate = Path(value)
            if not candidate.exists():
                warnings.append(f"Dependency path for {key} does not exist: {value}")
            elif not candidate.is_dir():
                warnings.append(f"Dependency path for {key} is not a directory: {value}")
        return warnings

    def compare_dependencies(
        self,
        current: Mapping[str, str],
        cache: Mapping[str, str],
    ) -> DependencyComparison:
        differences: dict[str, dict[str, str | None]] = {}
        for config_key, cache_key in DEPENDENCY_CACHE_KEYS.items():
            current_value = current.get(config_key)
            cache_value = cache.get(cache_key)
            if current_value == cache_value:
                continue
            differences[config_key] = {"current": current_value, "cache": cache_value}
        return DependencyComparison(has_changes=bool(differences), differences=differences)

    def find_build_directories(self, root: str | os.PathLike[str]) -> list[Path]:
        root_path = Path(root)
        if not root_path.is_dir():
            return []
        found = [
            entry
            for entry in root_path.iterdir()
            if entry.is_dir()
            and "build" in entry.name.lower()
            and (entry / self._cache_filename).is_file()
        ]
        return sorted(found)


def parse_cache_text(content: str) -> tuple[dict[str, str], list[str]]:
    """Parse ``KEY:TYPE=VALUE`` cache lines; returns (dependencies, warnings)."""

    dependencies: dict[str, str] = {}
    warnings: list[str] = []
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or line.startswith("//"):
            continue
        entry, sep, value = line.partition("=")
        if not sep:
            continue
        name, colon, _type = entry.partition(":")
        if not colon:
            continue
        semantic = CACHE_KEY_MAP.get(name.strip())
        if semantic is None:
            continue
        value = value.strip()
        if not value:
            continue
        if value.endswith(_NOTFOUND_SUFFIX):
            warnings.append(f"{name.strip()} was not found by CMake ({value})")
            continue
        dependencies[semantic] = value
    return dependencies, warnings


__all__ = [
    "CACHE_FILENAME",
    "CACHE_KEY_MAP",
    "CacheValidationResult",
    "DependencyCacheResolver",
    "DependencyComparison",
    "parse_cache_text",
]

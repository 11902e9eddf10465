"""
obs-plugin-helper — configuration schema

File: src/obs_plugin_helper/config/schema.py
Last updated: 2026-10-18

Purpose
- Define the typed project configuration read from ``.obspluginrc.json``.
- Provide deterministic defaults, deep-merge, and structured validation issues.

Functional requirements
- Validation never stops at the first problem; every issue is reported with a
  dotted path.
- Unknown top-level sections are rejected so typos surface early.
- Dataclasses are frozen; updates produce new instances.
"""

from __future__ import annotations

import copy
import re
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Final

from obs_plugin_helper.errors import ConfigValidationError

CONFIG_FILENAME: Final[str] = ".obspluginrc.json"

SUPPORTED_PLATFORMS: Final[tuple[str, ...]] = ("macos", "windows", "linux")
BUILD_SYSTEMS: Final[tuple[str, ...]] = ("cmake", "meson", "make")
_TEMPLATE_NAME_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_]+$")

_DEFAULT_PLATFORM_BUILD_DIRS: Final[dict[str, str]] = {
    "macos": "build_macos",
    "windows": "build_x64",
    "linux": "build_linux",
}
_FALLBACK_BUILD_DIR: Final[str] = "build"

# Caller-facing dependency names mapped onto CMake cache semantic keys.
DEPENDENCY_CACHE_KEYS: Final[dict[str, str]] = {
    "obs": "obs_studio_dir",
    "qt6": "qt6_dir",
    "qt6_core": "qt6_core_dir",
    "frontend_api": "obs_frontend_api_dir",
    "libobs": "libobs_dir",
}

DEFAULT_CONFIG: Final[dict[str, Any]] = {
    "sdk_path": ".deps/obs-studio",
    "platform_build_dirs": dict(_DEFAULT_PLATFORM_BUILD_DIRS),
    "build_system": "cmake",
    "plugin_entry": "src/plugin.cpp",
    "platform_profiles": {
        "macos": {
            "build_dir": "build_macos",
            "cmake_preset": "macos",
            "build_command": "cmake --build --preset macos --config Debug",
            "configure_command": "cmake --preset macos",
            "output_dir": "build_macos",
            "compiler": "clang++",
        },
        "windows": {
            "build_dir": "build_x64",
            "cmake_preset": "windows-x64",
            "build_command": "cmake --build --preset windows-x64 --config Debug",
            "configure_command": "cmake --preset windows-x64",
            "output_dir": "build_x64",
            "compiler": "msvc",
        },
        "linux": {
            "build_dir": "build_linux",
            "cmake_preset": "linux",
            "build_command": "cmake --build --preset linux --config Debug",
            "configure_command": "cmake --preset linux",
            "output_dir": "build_linux",
            "compiler": "g++",
        },
    },
    "dependencies": {
        "obs": ".deps/obs-studio",
        "qt6": ".deps/qt6",
        "frontend_api": ".deps/obs-frontend-api",
    },
    "coding_conventions": {
        "header_extension": ".hpp",
        "use_pragma_once": True,
        "ui_components_dir": "ui",
        "qt6_moc_include": True,
        "english_comments": True,
        "auto_commit": True,
        "namespace": None,
    },
    "ai_prompts": {
        "system_template": "obs_plugin_expert",
        "include_conventions": True,
        "include_project_structure": True,
        "include_recent_errors": True,
        "custom_system_prompt": None,
    },
    "auto_features": {
        "auto_inject_ai_context": False,
        "auto_commit_on_success": False,
    },
}


@dataclass(frozen=True, slots=True)
class PlatformProfile:
    cmake_preset: str
    build_command: str
    configure_command: str
    output_dir: str
    compiler: str
    build_dir: str | None = None


@dataclass(frozen=True, slots=True)
class CodingConventions:
    header_extension: str = ".hpp"
    use_pragma_once: bool = True
    ui_components_dir: str = "ui"
    qt6_moc_include: bool = True
    english_comments: bool = True
    auto_commit: bool = True
    namespace: str | None = None


@dataclass(frozen=True, slots=True)
class AIPromptConfig:
    system_template: str = "obs_plugin_expert"
    include_conventions: bool = True
    include_project_structure: bool = True
    include_recent_errors: bool = True
    custom_system_prompt: str | None = None


@dataclass(frozen=True, slots=True)
class AutoFeatures:
    auto_inject_ai_context: bool = False
    auto_commit_on_success: bool = False


@dataclass(frozen=True, slots=True)
class PluginConfig:
    """Validated project configuration."""

    sdk_path: str
    build_system: str
    plugin_entry: str
    platform_profiles: Mapping[str, PlatformProfile]
    platform_build_dirs: Mapping[str, str] = field(default_factory=dict)
    dependencies: Mapping[str, str] = field(default_factory=dict)
    coding_conventions: CodingConventions = field(default_factory=CodingConventions)
    ai_prompts: AIPromptConfig = field(default_factory=AIPromptConfig)
    auto_features: AutoFeatures = field(default_factory=AutoFeatures)

    def platform_profile(self, platform: str | None = None) -> PlatformProfile | None:
        return self.platform_profiles.get(platform or current_platform())

    def build_directory(self, platform: str | None = None) -> str:
        """Resolve the build directory: platform map, then profile, then naming default."""

        target = platform or current_platform()
        configured = self.platform_build_dirs.get(target)
        if configured:
            return configured
        profile = self.platform_profiles.get(target)
        if profile is not None and profile.build_dir:
            return profile.build_dir
        return _DEFAULT_PLATFORM_BUILD_DIRS.get(target, _FALLBACK_BUILD_DIR)

    def effective_dependency_path(
        self, key: str, runtime: Mapping[str, str] | None = None
    ) -> str | None:
        """Prefer a path reported by the build cache; fall back to configured value."""

        cache_key = DEPENDENCY_CACHE_KEYS.get(key)
        if runtime and cache_key and runtime.get(cache_key):
            return runtime[cache_key]
        return self.dependencies.get(key)

    def dependency_root(self) -> str:
        """Directory that holds vendored dependencies (``.deps`` by convention)."""

        obs_path = self.dependencies.get("obs") or self.sdk_path
        head, sep, _tail = obs_path.replace("\\", "/").rpartition("/")
        return head if sep and head else ".deps"


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: PluginConfig | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def current_platform() -> str:
    """Map ``sys.platform`` onto a configuration platform name."""

    if sys.platform == "darwin":
        return "macos"
    if sys.platform.startswith("win") or sys.platform == "cygwin":
        return "windows"
    return "linux"


def default_config_payload() -> dict[str, Any]:
    return copy.deepcopy(DEFAULT_CONFIG)


def default_config() -> PluginConfig:
    return assert_valid_config(default_config_payload())


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto ``base``; nested mappings merge key by key."""

    merged: dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        existing = merged.get(key)
        if isinstance(existing, dict) and isinstance(value, Mapping):
            merged[key] = merge_config(existing, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validate_config(payload: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate a raw payload (already merged with defaults) into ``PluginConfig``."""

    issues = _IssueCollector()
    if not isinstance(payload, Mapping):
        issues.add("<root>", f"expected object, got {type(payload).__name__}")
        return ConfigValidationResult(config=None, issues=issues.items())

    allowed = set(DEFAULT_CONFIG)
    for key in sorted(str(item) for item in payload):
        if key not in allowed:
            issues.add(key, "unknown field")

    sdk_path = _as_str(payload.get("sdk_path"), "sdk_path", issues)
    build_system = _as_enum(
        payload.get("build_system"), "build_system", issues, allowed_values=BUILD_SYSTEMS
    )
    plugin_entry = _as_str(payload.get("plugin_entry"), "plugin_entry", issues)
    build_dirs = _as_str_map(payload.get("platform_build_dirs"), "platform_build_dirs", issues)
    dependencies = _as_str_map(payload.get("dependencies"), "dependencies", issues)
    profiles = _validate_profiles(payload.get("platform_profiles"), issues)
    conventions = _validate_conventions(payload.get("coding_conventions"), issues)
    prompts = _validate_prompts(payload.get("ai_prompts"), issues)
    features = _validate_features(payload.get("auto_features"), issues)

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())

    assert sdk_path is not None and build_system is not None and plugin_entry is not None
    config = PluginConfig(
        sdk_path=sdk_path,
        build_system=build_system,
        plugin_entry=plugin_entry,
        platform_profiles=profiles,
        platform_build_dirs=build_dirs,
        dependencies=dependencies,
        coding_conventions=conventions,
        ai_prompts=prompts,
        auto_features=features,
    )
    return ConfigValidationResult(config=config, issues=())


def assert_valid_config(payload: Mapping[str, object] | object) -> PluginConfig:
    result = validate_config(payload)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def config_to_payload(config: PluginConfig) -> dict[str, Any]:
    """Serialize a config back to its JSON document shape."""

    return {
        "sdk_path": config.sdk_path,
        "platform_build_dirs": dict(config.platform_build_dirs),
        "build_system": config.build_system,
        "plugin_entry": config.plugin_entry,
        "platform_profiles": {
            name: _drop_none(
                {
                    "build_dir": profile.build_dir,
                    "cmake_preset": profile.cmake_preset,
                    "build_command": profile.build_command,
                    "configure_command": profile.configure_command,
                    "output_dir": profile.output_dir,
                    "compiler": profile.compiler,
                }
            )
            for name, profile in config.platform_profiles.items()
        },
        "dependencies": dict(config.dependencies),
        "coding_conventions": _drop_none(
            {
                "header_extension": config.coding_conventions.header_extension,
                "use_pragma_once": config.coding_conventions.use_pragma_once,
                "ui_components_dir": config.coding_conventions.ui_components_dir,
                "qt6_moc_include": config.coding_conventions.qt6_moc_include,
                "english_comments": config.coding_conventions.english_comments,
                "auto_commit": config.coding_conventions.auto_commit,
                "namespace": config.coding_conventions.namespace,
            }
        ),
        "ai_prompts": _drop_none(
            {
                "system_template": config.ai_prompts.system_template,
                "include_conventions": config.ai_prompts.include_conventions,
                "include_project_structure": config.ai_prompts.include_project_structure,
                "include_recent_errors": config.ai_prompts.include_recent_errors,
                "custom_system_prompt": config.ai_prompts.custom_system_prompt,
            }
        ),
        "auto_features": {
            "auto_inject_ai_context": config.auto_features.auto_inject_ai_context,
            "auto_commit_on_success": config.auto_features.auto_commit_on_success,
        },
    }


def apply_dependency_updates(
    config: PluginConfig, differences: Mapping[str, Mapping[str, str | None]]
) -> PluginConfig:
    """Return a copy of ``config`` whose dependencies take the cache-side paths.

    ``differences`` has the shape produced by ``compare_dependencies``; entries
    without a cache value are left untouched.
    """

    updated = dict(config.dependencies)
    for key, pair in differences.items():
        cache_value = pair.get("cache")
        if cache_value:
            updated[key] = cache_value
    return replace(config, dependencies=updated)


def _validate_profiles(
    value: object, issues: _IssueCollector
) -> dict[str, PlatformProfile]:
    path = "platform_profiles"
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return {}
    profiles: dict[str, PlatformProfile] = {}
    for name in sorted(value):
        raw = value[name]
        item_path = f"{path}.{name}"
        if not isinstance(raw, Mapping):
            issues.add(item_path, "profile must be an object")
            continue
        fields = {
            key: _as_str(raw.get(key), f"{item_path}.{key}", issues)
            for key in (
                "cmake_preset",
                "build_command",
                "configure_command",
                "output_dir",
                "compiler",
            )
        }
        build_dir = raw.get("build_dir")
        if build_dir is not None:
            build_dir = _as_str(build_dir, f"{item_path}.build_dir", issues)
        if any(item is None for item in fields.values()):
            continue
        profiles[str(name)] = PlatformProfile(
            build_dir=build_dir, **fields  # type: ignore[arg-type]
        )
    return profiles


def _validate_conventions(value: object, issues: _IssueCollector) -> CodingConventions:
    path = "coding_conventions"
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return CodingConventions()
    header_extension = _as_str(value.get("header_extension"), f"{path}.header_extension", issues)
    if header_extension is not None and not header_extension.startswith("."):
        issues.add(f"{path}.header_extension", "must start with '.'")
    ui_dir = _as_str(value.get("ui_components_dir"), f"{path}.ui_components_dir", issues)
    namespace = value.get("namespace")
    if namespace is not None:
        namespace = _as_str(namespace, f"{path}.namespace", issues)
    return CodingConventions(
        header_extension=header_extension or ".hpp",
        use_pragma_once=_as_bool(value.get("use_pragma_once"), f"{path}.use_pragma_once", issues),
        ui_components_dir=ui_dir or "ui",
        qt6_moc_include=_as_bool(value.get("qt6_moc_include"), f"{path}.qt6_moc_include", issues),
        english_comments=_as_bool(
            value.get("english_comments"), f"{path}.english_comments", issues
        ),
        auto_commit=_as_bool(value.get("auto_commit"), f"{path}.auto_commit", issues),
        namespace=namespace,
    )


def _validate_prompts(value: object, issues: _IssueCollector) -> AIPromptConfig:
    path = "ai_prompts"
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return AIPromptConfig()
    template = _as_str(value.get("system_template"), f"{path}.system_template", issues)
    if template is not None and not _TEMPLATE_NAME_RE.fullmatch(template):
        issues.add(f"{path}.system_template", "must be a template name (letters, digits, _)")
        template = None
    custom = value.get("custom_system_prompt")
    if custom is not None and not isinstance(custom, str):
        issues.add(f"{path}.custom_system_prompt", f"expected string, got {type(custom).__name__}")
        custom = None
    return AIPromptConfig(
        system_template=template or "obs_plugin_expert",
        include_conventions=_as_bool(
            value.get("include_conventions"), f"{path}.include_conventions", issues
        ),
        include_project_structure=_as_bool(
            value.get("include_project_structure"), f"{path}.include_project_structure", issues
        ),
        include_recent_errors=_as_bool(
            value.get("include_recent_errors"), f"{path}.include_recent_errors", issues
        ),
        custom_system_prompt=custom or None,
    )


def _validate_features(value: object, issues: _IssueCollector) -> AutoFeatures:
    path = "auto_features"
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return AutoFeatures()
    return AutoFeatures(
        auto_inject_ai_context=_as_bool(
            value.get("auto_inject_ai_context"), f"{path}.auto_inject_ai_context", issues
        ),
        auto_commit_on_success=_as_bool(
            value.get("auto_commit_on_success"), f"{path}.auto_commit_on_success", issues
        ),
    )


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return False


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _as_str_map(value: object, path: str, issues: _IssueCollector) -> dict[str, str]:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return {}
    out: dict[str, str] = {}
    for key in sorted(value):
        parsed = _as_str(value[key], f"{path}.{key}", issues)
        if parsed is not None:
            out[str(key)] = parsed
    return out


def _drop_none(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


__all__ = [
    "AIPromptConfig",
    "AutoFeatures",
    "BUILD_SYSTEMS",
    "CONFIG_FILENAME",
    "CodingConventions",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEPENDENCY_CACHE_KEYS",
    "PlatformProfile",
    "PluginConfig",
    "SUPPORTED_PLATFORMS",
    "apply_dependency_updates",
    "assert_valid_config",
    "config_to_payload",
    "current_platform",
    "default_config",
    "default_config_payload",
    "merge_config",
    "validate_config",
]

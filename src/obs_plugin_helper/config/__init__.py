"""
obs-plugin-helper config package public API.

File: src/obs_plugin_helper/config/__init__.py
Last updated: 2026-10-18

Purpose
- Export config loading/validation entrypoints and the typed config model.
"""

from obs_plugin_helper.config.loader import (
    ENV_PREFIX,
    find_config_file,
    load_config,
    save_config,
)
from obs_plugin_helper.config.schema import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG,
    DEPENDENCY_CACHE_KEYS,
    SUPPORTED_PLATFORMS,
    AIPromptConfig,
    AutoFeatures,
    CodingConventions,
    ConfigValidationIssue,
    ConfigValidationResult,
    PlatformProfile,
    PluginConfig,
    apply_dependency_updates,
    assert_valid_config,
    config_to_payload,
    current_platform,
    default_config,
    default_config_payload,
    merge_config,
    validate_config,
)

__all__ = [
    "AIPromptConfig",
    "AutoFeatures",
    "CONFIG_FILENAME",
    "CodingConventions",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEPENDENCY_CACHE_KEYS",
    "ENV_PREFIX",
    "PlatformProfile",
    "PluginConfig",
    "SUPPORTED_PLATFORMS",
    "apply_dependency_updates",
    "assert_valid_config",
    "config_to_payload",
    "current_platform",
    "default_config",
    "default_config_payload",
    "find_config_file",
    "load_config",
    "merge_config",
    "save_config",
    "validate_config",
]

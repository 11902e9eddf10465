"""
obs-plugin-helper — error taxonomy

File: src/obs_plugin_helper/errors.py
Last updated: 2026-10-18

Purpose
- Typed exceptions for caller-contract violations.

Functional requirements
- Runtime failures of builds, cache parsing and patch application are reported
  through result objects, never through these exceptions.
- Exceptions here signal misuse (bad config, concurrent builds, unknown
  templates) that a caller must fix.
"""

from __future__ import annotations

from collections.abc import Sequence


class PluginHelperError(RuntimeError):
    """Base error for obs-plugin-helper."""


class ConfigError(PluginHelperError, ValueError):
    """Base error for configuration loading and validation."""


class ConfigLoadError(ConfigError):
    """Raised when a config file cannot be read or decoded."""


class ConfigValidationError(ConfigError):
    """Raised when a config payload fails schema validation."""

    def __init__(self, issues: Sequence[object]) -> None:
        self.issues = tuple(issues)
        rendered = "; ".join(str(issue) for issue in self.issues) or "invalid configuration"
        super().__init__(f"configuration validation failed: {rendered}")


class BuildInProgressError(PluginHelperError):
    """Raised when a build is started while another is still running."""

    def __init__(self, active_command: str) -> None:
        self.active_command = active_command
        super().__init__(
            f"a build process is already running ({active_command!r}); cancel it first"
        )


class PromptTemplateError(PluginHelperError):
    """Base error for prompt template loading and rendering."""


class PromptTemplateNotFoundError(PromptTemplateError, FileNotFoundError):
    """Raised when a template file does not exist."""


class PromptTemplateVariableError(PromptTemplateError, ValueError):
    """Raised for missing/extra template variables."""


class PatchError(PluginHelperError):
    """Raised when a patch is misused (unknown id, applied twice)."""


class EditInstructionError(PatchError, ValueError):
    """Raised when SEARCH/REPLACE edit instructions cannot be parsed or applied."""

    def __init__(self, message: str, *, step: int | None = None) -> None:
        self.step = step
        prefix = f"edit step {step}: " if step is not None else ""
        super().__init__(f"{prefix}{message}")


__all__ = [
    "BuildInProgressError",
    "ConfigError",
    "ConfigLoadError",
    "ConfigValidationError",
    "EditInstructionError",
    "PatchError",
    "PluginHelperError",
    "PromptTemplateError",
    "PromptTemplateNotFoundError",
    "PromptTemplateVariableError",
]

"""Shared utilities for obs-plugin-helper."""

from obs_plugin_helper.utils.fs import (
    atomic_write_text,
    is_within,
    normalize_relative_path,
    read_text,
)
from obs_plugin_helper.utils.process import CommandResult, CommandRunner, SubprocessRunner

__all__ = [
    "CommandResult",
    "CommandRunner",
    "SubprocessRunner",
    "atomic_write_text",
    "is_within",
    "normalize_relative_path",
    "read_text",
]

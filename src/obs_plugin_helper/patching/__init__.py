"""Patch classification, validation, application and convention auto-fixes."""

from obs_plugin_helper.patching.edits import (
    EditStep,
    apply_steps,
    looks_like_edit_instructions,
    parse_edit_instructions,
)
from obs_plugin_helper.patching.git import GitClient, diff_paths, unsafe_diff_path_reason
from obs_plugin_helper.patching.manager import (
    AutoFixResult,
    EditInstructions,
    PatchApplyResult,
    PatchManager,
    PatchOperation,
    PatchType,
    UnifiedDiff,
    ValidationOutcome,
    ValidationStatus,
    classify_patch,
    commit_message_for,
)

__all__ = [
    "AutoFixResult",
    "EditInstructions",
    "EditStep",
    "GitClient",
    "PatchApplyResult",
    "PatchManager",
    "PatchOperation",
    "PatchType",
    "UnifiedDiff",
    "ValidationOutcome",
    "ValidationStatus",
    "apply_steps",
    "classify_patch",
    "commit_message_for",
    "diff_paths",
    "looks_like_edit_instructions",
    "parse_edit_instructions",
    "unsafe_diff_path_reason",
]

"""
obs-plugin-helper — patch manager

File: src/obs_plugin_helper/patching/manager.py
Last updated: 2026-10-18

Purpose
- Classify, validate and apply AI-proposed patches against a plugin source
  tree, optionally committing the result.
- Apply auto-fixable convention violations as direct text transforms.

What should be included in this file
- ``PatchOperation`` lifecycle: pending -> valid | invalid, consumed once.
- A tagged payload (``UnifiedDiff`` | ``EditInstructions``) dispatched once per
  validate/apply.
- Commit message derivation from the kinds of touched files.

Functional requirements
- Validation precedes every write; a rejected patch mutates nothing.
- A diff may only touch declared target files, or create new files.
- Apply failures are reported through ``PatchApplyResult``; misuse (unknown
  or already consumed patch) raises ``PatchError``.
- Non-compliant patches are flagged and logged, never blocked.
- Convention fixes are idempotent and write only when content changed.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path, PurePosixPath
from typing import Final

import structlog

from obs_plugin_helper.config.schema import PluginConfig, default_config
from obs_plugin_helper.diagnostics.conventions import (
    HEADER_SUFFIXES,
    IMPLEMENTATION_SUFFIXES,
    has_include_guard,
    moc_include_for,
)
from obs_plugin_helper.diagnostics.extractor import ConventionViolation, ViolationKind
from obs_plugin_helper.errors import EditInstructionError, PatchError
from obs_plugin_helper.observability.logging import log_context
from obs_plugin_helper.patching.edits import (
    EditStep,
    apply_steps,
    parse_edit_instructions,
    resolve_step_paths,
)
from obs_plugin_helper.patching.git import (
    GitClient,
    created_paths,
    diff_paths,
    normalize_diff_path,
    unsafe_diff_path_reason,
)
from obs_plugin_helper.utils.fs import (
    atomic_write_text,
    is_within,
    normalize_relative_path,
    read_text,
)
from obs_plugin_helper.utils.process import CommandRunner

logger = structlog.get_logger(__name__)

PRAGMA_ONCE: Final[str] = "#pragma once"
PREVIEW_RULE: Final[str] = "=" * 50
COMMIT_TRAILER: Final[str] = (
    "- Applied AI-suggested fixes for build errors\n"
    "- Ensured compliance with OBS plugin conventions"
)

_DIFF_MARKERS: Final[tuple[str, ...]] = ("@@", "---", "+++")


class PatchType(StrEnum):
    UNIFIED_DIFF = "unified_diff"
    EDIT_INSTRUCTIONS = "edit_instructions"


class ValidationStatus(StrEnum):
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"


@dataclass(frozen=True, slots=True)
class UnifiedDiff:
    content: str
    paths: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class EditInstructions:
    steps: tuple[EditStep, ...]
    parse_error: str | None = None


PatchPayload = UnifiedDiff | EditInstructions


@dataclass(slots=True)
class PatchOperation:
    id: str
    type: PatchType
    content: str
    target_files: tuple[str, ...]
    payload: PatchPayload
    convention_compliant: bool = True
    auto_commit: bool = True
    validation_status: ValidationStatus = ValidationStatus.PENDING
    failure_reason: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "type": self.type.value,
            "target_files": list(self.target_files),
            "validation_status": self.validation_status.value,
            "convention_compliant": self.convention_compliant,
            "auto_commit": self.auto_commit,
            "failure_reason": self.failure_reason,
        }


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    valid: bool
    reason: str | None = None
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PatchApplyResult:
    patch_id: str
    success: bool
    status: ValidationStatus
    reason: str | None = None
    written_files: tuple[str, ...] = ()
    committed: bool = False
    commit_error: str | None = None
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class AutoFixResult:
    path: str
    changed: bool
    applied: tuple[ViolationKind, ...] = ()
    skipped: tuple[ViolationKind, ...] = ()
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class _ResolvedTarget:
    relative: str
    absolute: Path


@dataclass(slots=True)
class _Plan:
    targets: list[_ResolvedTarget] = field(default_factory=list)
    updates: dict[str, str] = field(default_factory=dict)
    diff_files: list[str] = field(default_factory=list)


def classify_patch(content: str) -> PatchType:
    """``unified_diff`` iff all three diff markers appear anywhere in ``content``."""

    if all(marker in content for marker in _DIFF_MARKERS):
        return PatchType.UNIFIED_DIFF
    return PatchType.EDIT_INSTRUCTIONS


def has_diff_structure(content: str) -> bool:
    lines = content.splitlines()
    return all(any(line.startswith(marker) for line in lines) for marker in _DIFF_MARKERS)


class PatchManager:
    """Owns pending patches for one source tree."""

    def __init__(
        self,
        root_dir: Path | str,
        *,
        config: PluginConfig | None = None,
        runner: CommandRunner | None = None,
        git: GitClient | None = None,
    ) -> None:
        self._root = Path(root_dir).resolve()
        self._config = config if config is not None else default_config()
        self._git = git if git is not None else GitClient(self._root, runner=runner)
        self._pending: dict[str, PatchOperation] = {}

    @property
    def root_dir(self) -> Path:
        return self._root

    @property
    def pending(self) -> Mapping[str, PatchOperation]:
        return dict(self._pending)

    def get(self, patch_id: str) -> PatchOperation:
        try:
            return self._pending[patch_id]
        except KeyError as exc:
            raise PatchError(f"unknown or already applied patch: {patch_id!r}") from exc

    def classify(self, content: str) -> PatchType:
        return classify_patch(content)

    def generate_patch(
        self,
        content: str,
        target_files: Sequence[str],
        convention_compliant: bool = True,
    ) -> PatchOperation:
        patch_type = classify_patch(content)
        patch = PatchOperation(
            id=f"patch_{uuid.uuid4().hex[:12]}",
            type=patch_type,
            content=content,
            target_files=tuple(target_files),
            payload=_build_payload(patch_type, content),
            convention_compliant=convention_compliant,
            auto_commit=convention_compliant and self._config.coding_conventions.auto_commit,
        )
        self._pending[patch.id] = patch
        logger.info(
            "patch_generated",
            patch_id=patch.id,
            patch_type=patch.type.value,
            target_count=len(patch.target_files),
        )
        return patch

    def validate(self, patch: PatchOperation) -> ValidationOutcome:
        """Run every pre-apply check without touching the tree."""

        outcome, _ = self._plan(patch)
        return outcome

    def apply(self, patch: PatchOperation) -> PatchApplyResult:
        if self._pending.get(patch.id) is not patch:
            raise PatchError(f"unknown or already applied patch: {patch.id!r}")
        if patch.validation_status is not ValidationStatus.PENDING:
            raise PatchError(f"patch {patch.id!r} was already applied")

        with log_context(patch_id=patch.id):
            del self._pending[patch.id]
            outcome, plan = self._plan(patch)
            if not outcome.valid or plan is None:
                logger.warning("patch_validation_failed", reason=outcome.reason)
                return self._fail(patch, outcome.reason or "validation failed", outcome.warnings)

            match patch.payload:
                case UnifiedDiff(content=content):
                    result = self._git.apply_diff(content)
                    if not result.ok:
                        reason = result.stderr.strip() or f"git apply exited {result.exit_code}"
                        return self._fail(patch, reason, outcome.warnings)
                    written = tuple(plan.diff_files)
                case EditInstructions():
                    try:
                        for target in plan.targets:
                            if target.relative in plan.updates:
                                atomic_write_text(target.absolute, plan.updates[target.relative])
                    except OSError as exc:
                        return self._fail(patch, f"write failed: {exc}", outcome.warnings)
                    written = tuple(sorted(plan.updates))

            patch.validation_status = ValidationStatus.VALID
            committed, commit_error = False, None
            if patch.auto_commit:
                committed, commit_error = self._commit(list(written))
            logger.info(
                "patch_applied",
                written_files=list(written),
                committed=committed,
                convention_compliant=patch.convention_compliant,
            )
            return PatchApplyResult(
                patch_id=patch.id,
                success=True,
                status=patch.validation_status,
                written_files=written,
                committed=committed,
                commit_error=commit_error,
                warnings=outcome.warnings,
            )

    def preview(self, patch: PatchOperation) -> str:
        match patch.payload:
            case UnifiedDiff():
                return f"Unified Diff Preview:\n{PREVIEW_RULE}\n{patch.content}"
            case EditInstructions(steps=steps):
                summary = [
                    f"Step {step.index}: {step.path or '<single target>'} "
                    f"({step.search_line_count} line(s) -> {step.replace_line_count} line(s))"
                    for step in steps
                ]
                body = "\n".join([*summary, "", patch.content]) if summary else patch.content
                return f"Edit Instructions Preview:\n{PREVIEW_RULE}\n{body}"

    def auto_fix_conventions(
        self, path: Path | str, violations: Iterable[ConventionViolation]
    ) -> AutoFixResult:
        """Apply the auto-fixable violations to one file."""

        target = Path(path)
        if not target.is_absolute():
            target = self._root / target
        display = target.as_posix()
        fixable = [violation.kind for violation in violations if violation.auto_fixable]
        if not fixable:
            return AutoFixResult(path=display, changed=False)

        try:
            original = read_text(target)
        except OSError as exc:
            logger.error("auto_fix_read_failed", path=display, error=str(exc))
            return AutoFixResult(path=display, changed=False, error=str(exc))

        content = original
        applied: list[ViolationKind] = []
        skipped: list[ViolationKind] = []
        for kind in fixable:
            updated = _apply_convention_fix(content, kind, target.name)
            if updated == content:
                skipped.append(kind)
                continue
            content = updated
            applied.append(kind)

        if content == original:
            return AutoFixResult(path=display, changed=False, skipped=tuple(skipped))
        try:
            atomic_write_text(target, content)
        except OSError as exc:
            logger.error("auto_fix_write_failed", path=display, error=str(exc))
            return AutoFixResult(path=display, changed=False, error=str(exc))
        logger.info("conventions_auto_fixed", path=display, kinds=[kind.value for kind in applied])
        return AutoFixResult(
            path=display, changed=True, applied=tuple(applied), skipped=tuple(skipped)
        )

    def commit_message(self, files: Sequence[str]) -> str:
        ui_dir = self._config.coding_conventions.ui_components_dir
        return commit_message_for(files, ui_components_dir=ui_dir)

    def _commit(self, files: Sequence[str]) -> tuple[bool, str | None]:
        added = self._git.add(files)
        if not added.ok:
            logger.warning("auto_commit_failed", step="add", stderr=added.stderr.strip())
            return False, added.stderr.strip() or f"git add exited {added.exit_code}"
        committed = self._git.commit(self.commit_message(files))
        if not committed.ok:
            logger.warning("auto_commit_failed", step="commit", stderr=committed.stderr.strip())
            return False, committed.stderr.strip() or f"git commit exited {committed.exit_code}"
        return True, None

    def _fail(
        self, patch: PatchOperation, reason: str, warnings: tuple[str, ...]
    ) -> PatchApplyResult:
        patch.validation_status = ValidationStatus.INVALID
        patch.failure_reason = reason
        logger.error("patch_apply_failed", reason=reason)
        return PatchApplyResult(
            patch_id=patch.id,
            success=False,
            status=patch.validation_status,
            reason=reason,
            warnings=warnings,
        )

    def _plan(self, patch: PatchOperation) -> tuple[ValidationOutcome, _Plan | None]:
        warnings: list[str] = []
        if not patch.convention_compliant:
            warnings.append("patch is not convention compliant; review before committing")
            logger.warning("patch_not_convention_compliant", patch_id=patch.id)

        def rejected(reason: str) -> tuple[ValidationOutcome, None]:
            return ValidationOutcome(valid=False, reason=reason, warnings=tuple(warnings)), None

        if not patch.target_files:
            return rejected("patch has no target files")

        plan = _Plan()
        for raw_target in patch.target_files:
            resolved = self._resolve_target(raw_target)
            if isinstance(resolved, str):
                return rejected(resolved)
            plan.targets.append(resolved)

        match patch.payload:
            case UnifiedDiff(content=content, paths=paths):
                if not has_diff_structure(content):
                    return rejected("invalid unified diff format: missing @@/---/+++ lines")
                for raw_path in paths:
                    reason = unsafe_diff_path_reason(raw_path)
                    if reason is not None:
                        return rejected(reason)
                declared = {target.relative for target in plan.targets}
                created = set(created_paths(content))
                for raw_path in paths:
                    relative = normalize_diff_path(raw_path)
                    if relative not in declared and relative not in created:
                        return rejected(f"diff touches undeclared file: {relative}")
                    if relative not in plan.diff_files:
                        plan.diff_files.append(relative)
            case EditInstructions(steps=steps, parse_error=parse_error):
                if parse_error is not None:
                    return rejected(parse_error)
                try:
                    plan.updates = self._apply_in_memory(steps, plan.targets)
                except (EditInstructionError, OSError) as exc:
                    return rejected(str(exc))

        return ValidationOutcome(valid=True, warnings=tuple(warnings)), plan

    def _apply_in_memory(
        self, steps: Sequence[EditStep], targets: Sequence[_ResolvedTarget]
    ) -> dict[str, str]:
        relatives = [target.relative for target in targets]
        normalized_steps: list[EditStep] = []
        for step in resolve_step_paths(steps, relatives):
            relative = normalize_relative_path(step.path or "")
            if relative is None:
                raise EditInstructionError(
                    f"unsafe target path {step.path!r}", step=step.index
                )
            normalized_steps.append(
                EditStep(index=step.index, path=relative, search=step.search, replace=step.replace)
            )
        originals = {target.relative: read_text(target.absolute) for target in targets}
        return apply_steps(originals, normalized_steps)

    def _resolve_target(self, raw_target: str) -> _ResolvedTarget | str:
        candidate = Path(raw_target)
        absolute = candidate if candidate.is_absolute() else self._root / candidate
        if not is_within(absolute, self._root):
            return f"Target file is outside the project root: {raw_target}"
        resolved = absolute.resolve()
        if not resolved.is_file():
            return f"Target file does not exist: {raw_target}"
        relative = resolved.relative_to(self._root).as_posix()
        return _ResolvedTarget(relative=relative, absolute=resolved)


def commit_message_for(files: Sequence[str], *, ui_components_dir: str = "ui") -> str:
    """Derive a commit title from the touched file kinds, plus the fixed trailer."""

    paths = [PurePosixPath(name.replace("\\", "/")) for name in files]
    suffixes = {path.suffix.lower() for path in paths}
    has_headers = bool(suffixes & HEADER_SUFFIXES)
    has_sources = bool(suffixes & IMPLEMENTATION_SUFFIXES)
    has_ui = any(ui_components_dir in path.parent.parts for path in paths)

    if has_ui:
        title = "Update UI components"
    elif has_headers and has_sources:
        title = "Update implementation and headers"
    elif has_headers:
        title = "Update header files"
    elif has_sources:
        title = "Update source files"
    else:
        title = "Update project files"
    return f"Fix: {title}\n\n{COMMIT_TRAILER}"


def insert_pragma_once(content: str) -> str:
    """Insert ``#pragma once`` after the leading comment block, unless a guard exists."""

    if has_include_guard(content):
        return content
    newline = "\r\n" if "\r\n" in content else "\n"
    lines = content.split(newline)
    index = 0
    in_block_comment = False
    while index < len(lines):
        stripped = lines[index].strip()
        if in_block_comment:
            in_block_comment = "*/" not in stripped
        elif stripped.startswith("/*"):
            in_block_comment = "*/" not in stripped[2:]
        elif stripped and not stripped.startswith("//"):
            break
        index += 1
    lines[index:index] = [PRAGMA_ONCE, ""]
    return newline.join(lines)


def append_moc_include(content: str, file_name: str) -> str:
    include = moc_include_for(file_name)
    if include in content:
        return content
    newline = "\r\n" if "\r\n" in content else "\n"
    separator = "" if not content or content.endswith(newline) else newline
    return f"{content}{separator}{include}{newline}"


def _apply_convention_fix(content: str, kind: ViolationKind, file_name: str) -> str:
    if kind is ViolationKind.MISSING_GUARD:
        return insert_pragma_once(content)
    if kind is ViolationKind.MOC_INCLUDE_MISSING:
        return append_moc_include(content, file_name)
    return content


def _build_payload(patch_type: PatchType, content: str) -> PatchPayload:
    if patch_type is PatchType.UNIFIED_DIFF:
        return UnifiedDiff(content=content, paths=diff_paths(content))
    try:
        return EditInstructions(steps=tuple(parse_edit_instructions(content)))
    except EditInstructionError as exc:
        return EditInstructions(steps=(), parse_error=str(exc))


__all__ = [
    "AutoFixResult",
    "COMMIT_TRAILER",
    "EditInstructions",
    "PRAGMA_ONCE",
    "PatchApplyResult",
    "PatchManager",
    "PatchOperation",
    "PatchPayload",
    "PatchType",
    "UnifiedDiff",
    "ValidationOutcome",
    "ValidationStatus",
    "append_moc_include",
    "classify_patch",
    "commit_message_for",
    "has_diff_structure",
    "insert_pragma_once",
]

"""
obs-plugin-helper — build/fix loop

File: src/obs_plugin_helper/pipeline.py
Last updated: 2026-10-18

Purpose
- Drive the diagnostics-to-patch loop: build, extract, assemble a fix request,
  ask the AI backend, apply the returned patch, rebuild.

What should be included in this file
- ``AIBackend`` protocol; the network call itself lives with the caller.
- ``FixLoop`` bounded by ``max_iterations`` patch attempts.
- Patch target inference from the backend response and the diagnostics.

Functional requirements
- Stops on the first successful build, a cancelled or timed-out build, a
  build without error diagnostics, a rejected patch, or the iteration bound.
- Every stop carries an explicit reason; backend exceptions propagate.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

from obs_plugin_helper.build.orchestrator import BuildOrchestrator, BuildResult
from obs_plugin_helper.config.schema import PlatformProfile
from obs_plugin_helper.context.assembler import ActiveFile, ContextAssembler, RequestEnvelope
from obs_plugin_helper.diagnostics.extractor import Diagnostic, Severity
from obs_plugin_helper.errors import EditInstructionError
from obs_plugin_helper.patching.edits import parse_edit_instructions
from obs_plugin_helper.patching.git import created_paths, diff_paths, normalize_diff_path
from obs_plugin_helper.patching.manager import (
    PatchApplyResult,
    PatchManager,
    PatchType,
    classify_patch,
)
from obs_plugin_helper.utils.fs import is_within

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ITERATIONS = 3


@runtime_checkable
class AIBackend(Protocol):
    async def complete(self, envelope: RequestEnvelope) -> str: ...


class StopReason(StrEnum):
    BUILD_SUCCEEDED = "build_succeeded"
    BUILD_INTERRUPTED = "build_interrupted"
    NO_DIAGNOSTICS = "no_diagnostics"
    EMPTY_RESPONSE = "empty_response"
    NO_TARGETS = "no_targets"
    PATCH_REJECTED = "patch_rejected"
    ITERATION_LIMIT = "iteration_limit"


@dataclass(frozen=True, slots=True)
class FixIteration:
    number: int
    build: BuildResult
    patch_id: str | None = None
    patch_type: PatchType | None = None
    apply_result: PatchApplyResult | None = None


@dataclass(frozen=True, slots=True)
class FixLoopResult:
    success: bool
    stop_reason: StopReason
    final_build: BuildResult
    iterations: tuple[FixIteration, ...]

    @property
    def patches_applied(self) -> int:
        return sum(
            1
            for item in self.iterations
            if item.apply_result is not None and item.apply_result.success
        )


class FixLoop:
    """Bounded build -> fix -> rebuild loop for one project."""

    def __init__(
        self,
        *,
        orchestrator: BuildOrchestrator,
        assembler: ContextAssembler,
        patches: PatchManager,
        backend: AIBackend,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self._orchestrator = orchestrator
        self._assembler = assembler
        self._patches = patches
        self._backend = backend
        self._max_iterations = max_iterations

    async def run(
        self, profile: PlatformProfile, *, active_file: ActiveFile | None = None
    ) -> FixLoopResult:
        root = self._patches.root_dir
        iterations: list[FixIteration] = []
        build = await self._orchestrator.build(profile, root)

        for number in range(1, self._max_iterations + 1):
            stop = _stop_reason_for(build)
            if stop is not None:
                # Rebuilds are recorded on the iteration that applied the patch.
                if not iterations:
                    iterations.append(FixIteration(number=number, build=build))
                return self._finish(stop, build, iterations)

            errors = [item for item in build.diagnostics if item.severity is Severity.ERROR]
            self._assembler.update_build_log(build.stderr or build.stdout)
            envelope = self._assembler.fix_request(
                errors, active_file=active_file, build_command=build.command
            )
            response = await self._backend.complete(envelope)
            if not response.strip():
                iterations.append(FixIteration(number=number, build=build))
                return self._finish(StopReason.EMPTY_RESPONSE, build, iterations)

            targets = infer_patch_targets(response, errors, root)
            if not targets:
                iterations.append(FixIteration(number=number, build=build))
                return self._finish(StopReason.NO_TARGETS, build, iterations)

            patch = self._patches.generate_patch(
                response, targets, convention_compliant=_is_compliant(errors, targets)
            )
            applied = self._patches.apply(patch)
            iterations.append(
                FixIteration(
                    number=number,
                    build=build,
                    patch_id=patch.id,
                    patch_type=patch.type,
                    apply_result=applied,
                )
            )
            if not applied.success:
                return self._finish(StopReason.PATCH_REJECTED, build, iterations)
            build = await self._orchestrator.build(profile, root)

        return self._finish(
            _stop_reason_for(build) or StopReason.ITERATION_LIMIT, build, iterations
        )

    def _finish(
        self, reason: StopReason, build: BuildResult, iterations: Sequence[FixIteration]
    ) -> FixLoopResult:
        logger.info(
            "fix_loop_finished",
            stop_reason=reason.value,
            iterations=len(iterations),
            success=build.success,
        )
        return FixLoopResult(
            success=build.success,
            stop_reason=reason,
            final_build=build,
            iterations=tuple(iterations),
        )


def infer_patch_targets(
    response: str, diagnostics: Sequence[Diagnostic], root: str | os.PathLike[str]
) -> list[str]:
    """Existing files a backend response touches, else files named by diagnostics.

    Files a diff creates are not targets; the patch manager accepts them as new files.
    """

    named: list[str] = []
    if classify_patch(response) is PatchType.UNIFIED_DIFF:
        created = set(created_paths(response))
        named = [
            path
            for path in (normalize_diff_path(raw) for raw in diff_paths(response))
            if path not in created
        ]
    else:
        try:
            named = [step.path for step in parse_edit_instructions(response) if step.path]
        except EditInstructionError:
            named = []
    if not named:
        named = [item.file for item in diagnostics]

    root_path = Path(root).resolve()
    targets: list[str] = []
    for name in named:
        candidate = Path(name)
        absolute = candidate if candidate.is_absolute() else root_path / candidate
        if not is_within(absolute, root_path):
            continue
        relative = absolute.resolve().relative_to(root_path).as_posix()
        if relative not in targets:
            targets.append(relative)
    return targets


def _stop_reason_for(build: BuildResult) -> StopReason | None:
    if build.success:
        return StopReason.BUILD_SUCCEEDED
    if build.cancelled or build.timed_out:
        return StopReason.BUILD_INTERRUPTED
    if not any(item.severity is Severity.ERROR for item in build.diagnostics):
        return StopReason.NO_DIAGNOSTICS
    return None


def _is_compliant(diagnostics: Sequence[Diagnostic], targets: Sequence[str]) -> bool:
    # Structural violations on a targeted file need a human decision.
    touched = set(targets)
    return not any(
        item.convention_violation is not None
        and not item.convention_violation.auto_fixable
        and item.file in touched
        for item in diagnostics
    )


__all__ = [
    "AIBackend",
    "DEFAULT_MAX_ITERATIONS",
    "FixIteration",
    "FixLoop",
    "FixLoopResult",
    "StopReason",
    "infer_patch_targets",
]

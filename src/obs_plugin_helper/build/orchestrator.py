"""
obs-plugin-helper — build process orchestrator.

File: src/obs_plugin_helper/build/orchestrator.py
Last updated: 2026-10-18

Purpose
- Run configure/build/clean commands from a platform profile, stream their
  output to an ``OutputSink`` and turn the outcome into a ``BuildResult``.

Functional requirements
- One active process per orchestrator; starting a second raises
  ``BuildInProgressError``.
- Every resolution path (exit, cancel, timeout, spawn failure) clears the
  active handle and returns a result instead of raising.
- A successful configure resolves dependency paths from the build cache and
  hands them to the optional callback.

Non-functional requirements
- Output is forwarded chunk by chunk while the process runs.
- No automatic retries.
"""

from __future__ import annotations

import asyncio
import codecs
import os
import shlex
import time
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Final

import structlog

from obs_plugin_helper.build.sinks import NullSink, OutputSink
from obs_plugin_helper.config.schema import CodingConventions, PlatformProfile, PluginConfig
from obs_plugin_helper.dependencies.cache_resolver import (
    CACHE_FILENAME,
    CacheValidationResult,
    DependencyCacheResolver,
)
from obs_plugin_helper.diagnostics.extractor import Diagnostic, extract, format_error_display
from obs_plugin_helper.errors import BuildInProgressError
from obs_plugin_helper.observability.logging import log_context

DEFAULT_TIMEOUT_SECONDS: Final[float] = 300.0
TERMINATE_GRACE_SECONDS: Final[float] = 5.0
DRAIN_TIMEOUT_SECONDS: Final[float] = 2.0
SPAWN_FAILURE_EXIT_CODE: Final[int] = -1
NO_DEPENDENCIES_WARNING: Final[str] = f"No dependency paths found in {CACHE_FILENAME}"

_READ_CHUNK_SIZE: Final[int] = 4096
_RULE: Final[str] = "-" * 80

DependencyCallback = Callable[[CacheValidationResult], None]

logger = structlog.get_logger(__name__)


class BuildOperation(StrEnum):
    CONFIGURE = "configure"
    BUILD = "build"
    CLEAN = "clean"


@dataclass(frozen=True, slots=True)
class BuildResult:
    """Outcome of one configure/build/clean invocation."""

    success: bool
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    diagnostics: tuple[Diagnostic, ...]
    preset: str
    command: str
    operation: BuildOperation
    timed_out: bool = False
    cancelled: bool = False
    dependency_validation: CacheValidationResult | None = None

    @property
    def error_count(self) -> int:
        return sum(1 for item in self.diagnostics if item.severity == "error")

    def to_dict(self) -> dict[str, object]:
        return {
            "operation": self.operation.value,
            "success": self.success,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
            "preset": self.preset,
            "command": self.command,
            "timed_out": self.timed_out,
            "cancelled": self.cancelled,
            "diagnostics": [item.to_dict() for item in self.diagnostics],
            "dependency_validation": (
                self.dependency_validation.to_dict()
                if self.dependency_validation is not None
                else None
            ),
        }


@dataclass(slots=True)
class BuildInvocation:
    """The single in-flight process owned by an orchestrator."""

    preset: str
    command: str
    cwd: Path
    timeout_seconds: float
    process: asyncio.subprocess.Process | None = None
    cancelled: bool = False
    started_ns: int = field(default_factory=time.monotonic_ns)


class BuildOrchestrator:
    """Spawn, stream, cancel and time-box plugin build commands."""

    def __init__(
        self,
        *,
        sink: OutputSink | None = None,
        config: PluginConfig | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        resolver: DependencyCacheResolver | None = None,
        on_dependencies: DependencyCallback | None = None,
        platform: str | None = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._sink: OutputSink = sink if sink is not None else NullSink()
        self._config = config
        self._timeout_seconds = float(timeout_seconds)
        self._resolver = resolver if resolver is not None else DependencyCacheResolver()
        self._on_dependencies = on_dependencies
        self._platform = platform
        self._active: BuildInvocation | None = None

    @property
    def is_running(self) -> bool:
        return self._active is not None

    @property
    def active_invocation(self) -> BuildInvocation | None:
        return self._active

    async def configure(
        self, profile: PlatformProfile, root_dir: str | os.PathLike[str]
    ) -> BuildResult:
        result = await self._execute(
            BuildOperation.CONFIGURE, profile, profile.configure_command, Path(root_dir)
        )
        if not result.success:
            return result
        validation = self._validate_dependencies(profile, Path(root_dir))
        return _with_dependency_validation(result, validation)

    async def build(
        self, profile: PlatformProfile, root_dir: str | os.PathLike[str]
    ) -> BuildResult:
        return await self._execute(
            BuildOperation.BUILD, profile, profile.build_command, Path(root_dir)
        )

    async def clean(
        self, profile: PlatformProfile, root_dir: str | os.PathLike[str]
    ) -> BuildResult:
        return await self._execute(
            BuildOperation.CLEAN, profile, clean_command(profile.cmake_preset), Path(root_dir)
        )

    def cancel(self) -> bool:
        """Terminate the active process; returns ``False`` when nothing was running."""

        invocation = self._active
        if invocation is None:
            return False
        invocation.cancelled = True
        self._active = None
        process = invocation.process
        if process is not None and process.returncode is None:
            with suppress(ProcessLookupError):
                process.terminate()
        logger.info("build_cancelled", preset=invocation.preset, command=invocation.command)
        self._sink.append_line("Build cancelled")
        return True

    async def _execute(
        self,
        operation: BuildOperation,
        profile: PlatformProfile,
        command: str,
        root_dir: Path,
    ) -> BuildResult:
        if self._active is not None:
            raise BuildInProgressError(self._active.command)

        invocation = BuildInvocation(
            preset=profile.cmake_preset,
            command=command,
            cwd=root_dir,
            timeout_seconds=self._timeout_seconds,
        )
        self._active = invocation
        try:
            with log_context(preset=profile.cmake_preset, operation=operation.value):
                return await self._run(operation, invocation)
        finally:
            if self._active is invocation:
                self._active = None

    async def _run(self, operation: BuildOperation, invocation: BuildInvocation) -> BuildResult:
        self._sink.clear()
        self._sink.append_line(f"{_HEADLINES[operation]} with preset: {invocation.preset}")
        self._sink.append_line(f"Command: {invocation.command}")
        self._sink.append_line(_RULE)
        logger.info("build_started", command=invocation.command, cwd=str(invocation.cwd))

        try:
            argv = shlex.split(invocation.command)
        except ValueError as exc:
            return self._spawn_failure(operation, invocation, f"invalid command: {exc}")
        if not argv:
            return self._spawn_failure(operation, invocation, "command is empty")

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(invocation.cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            return self._spawn_failure(operation, invocation, str(exc))

        invocation.process = process
        if invocation.cancelled:
            with suppress(ProcessLookupError):
                process.terminate()

        stdout_chunks: list[str] = []
        stderr_chunks: list[str] = []
        assert process.stdout is not None and process.stderr is not None
        readers = [
            asyncio.create_task(self._pump(process.stdout, stdout_chunks, invocation)),
            asyncio.create_task(self._pump(process.stderr, stderr_chunks, invocation)),
        ]

        timed_out = False
        try:
            await asyncio.wait_for(process.wait(), timeout=invocation.timeout_seconds)
        except TimeoutError:
            timed_out = True
            logger.warning("build_timed_out", timeout_seconds=invocation.timeout_seconds)
            await _terminate(process)
        except asyncio.CancelledError:
            with suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            for reader in readers:
                reader.cancel()
            raise
        finally:
            await _drain(readers)

        stdout = "".join(stdout_chunks)
        stderr = "".join(stderr_chunks)
        if timed_out:
            stderr += f"\nProcess timed out after {invocation.timeout_seconds:g}s"

        exit_code = process.returncode if process.returncode is not None else -1
        if timed_out or invocation.cancelled:
            exit_code = -1
        success = exit_code == 0 and not timed_out and not invocation.cancelled

        conventions = self._conventions()
        diagnostics = tuple(
            extract(
                stderr,
                invocation.preset,
                header_extension=conventions.header_extension,
                ui_components_dir=conventions.ui_components_dir,
            )
        )
        result = BuildResult(
            success=success,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration_ms=_elapsed_ms(invocation.started_ns),
            diagnostics=diagnostics,
            preset=invocation.preset,
            command=invocation.command,
            operation=operation,
            timed_out=timed_out,
            cancelled=invocation.cancelled,
        )
        logger.info(
            "build_completed",
            success=result.success,
            exit_code=result.exit_code,
            duration_ms=result.duration_ms,
            diagnostics=len(diagnostics),
            timed_out=timed_out,
            cancelled=invocation.cancelled,
        )
        if not invocation.cancelled:
            self._report(operation, result)
        return result

    async def _pump(
        self,
        stream: asyncio.StreamReader,
        chunks: list[str],
        invocation: BuildInvocation,
    ) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(_READ_CHUNK_SIZE)
            text = decoder.decode(data, final=not data)
            if text and not invocation.cancelled:
                chunks.append(text)
                self._sink.append(text)
            if not data:
                return

    def _report(self, operation: BuildOperation, result: BuildResult) -> None:
        if result.success:
            self._sink.append_line(
                f"{_DONE[operation]} completed successfully ({result.duration_ms}ms)"
            )
        elif result.timed_out:
            self._sink.append_line(f"{_DONE[operation]} timed out after {self._timeout_seconds:g}s")
        else:
            self._sink.append_line(f"{_DONE[operation]} failed with exit code {result.exit_code}")
        if result.diagnostics:
            self._sink.append_line("")
            self._sink.append_line("Build Errors:")
            self._sink.append_line(_RULE)
            for line in format_error_display(result.diagnostics):
                self._sink.append_line(line)

    def _spawn_failure(
        self, operation: BuildOperation, invocation: BuildInvocation, reason: str
    ) -> BuildResult:
        logger.error("build_spawn_failed", command=invocation.command, error=reason)
        self._sink.append_line(f"{_DONE[operation]} failed: {reason}")
        return BuildResult(
            success=False,
            exit_code=SPAWN_FAILURE_EXIT_CODE,
            stdout="",
            stderr=reason,
            duration_ms=_elapsed_ms(invocation.started_ns),
            diagnostics=(),
            preset=invocation.preset,
            command=invocation.command,
            operation=operation,
        )

    def _validate_dependencies(
        self, profile: PlatformProfile, root_dir: Path
    ) -> CacheValidationResult:
        build_dir = root_dir / self._build_directory(profile)
        validation = self._resolver.parse_cache_file(build_dir)
        if validation.success:
            if not validation.dependencies:
                validation = validation.with_warnings((NO_DEPENDENCIES_WARNING,))
            else:
                path_warnings = self._resolver.validate_dependency_paths(validation.dependencies)
                validation = validation.with_warnings(tuple(path_warnings))
        for warning in validation.warnings:
            self._sink.append_line(f"Warning: {warning}")
        for error in validation.errors:
            self._sink.append_line(f"Error: {error}")
        logger.info(
            "dependencies_validated",
            build_dir=str(build_dir),
            success=validation.success,
            dependencies=sorted(validation.dependencies),
            warnings=len(validation.warnings),
        )

        if self._on_dependencies is not None:
            try:
                self._on_dependencies(validation)
            except Exception:
                logger.exception("dependency_callback_failed", build_dir=str(build_dir))
        return validation

    def _build_directory(self, profile: PlatformProfile) -> str:
        if profile.build_dir:
            return profile.build_dir
        if self._config is not None:
            return self._config.build_directory(self._platform)
        return "build"

    def _conventions(self) -> CodingConventions:
        if self._config is not None:
            return self._config.coding_conventions
        return CodingConventions()


_HEADLINES: Final[dict[BuildOperation, str]] = {
    BuildOperation.CONFIGURE: "Configuring",
    BuildOperation.BUILD: "Building",
    BuildOperation.CLEAN: "Cleaning",
}
_DONE: Final[dict[BuildOperation, str]] = {
    BuildOperation.CONFIGURE: "Configuration",
    BuildOperation.BUILD: "Build",
    BuildOperation.CLEAN: "Clean",
}


def clean_command(preset: str) -> str:
    return shlex.join(["cmake", "--build", "--preset", preset, "--target", "clean"])


def _with_dependency_validation(
    result: BuildResult, validation: CacheValidationResult
) -> BuildResult:
    return BuildResult(
        success=result.success,
        exit_code=result.exit_code,
        stdout=result.stdout,
        stderr=result.stderr,
        duration_ms=result.duration_ms,
        diagnostics=result.diagnostics,
        preset=result.preset,
        command=result.command,
        operation=result.operation,
        timed_out=result.timed_out,
        cancelled=result.cancelled,
        dependency_validation=validation,
    )


async def _terminate(process: asyncio.subprocess.Process) -> None:
    with suppress(ProcessLookupError):
        process.terminate()
    try:
        await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
    except TimeoutError:
        with suppress(ProcessLookupError):
            process.kill()
        await process.wait()


async def _drain(readers: list[asyncio.Task[None]]) -> None:
    # Grandchildren may keep the pipes open after the direct child exits.
    _done, pending = await asyncio.wait(readers, timeout=DRAIN_TIMEOUT_SECONDS)
    for task in pending:
        task.cancel()
    for task in pending:
        with suppress(asyncio.CancelledError):
            await task


def _elapsed_ms(started_ns: int) -> int:
    delta_ns = time.monotonic_ns() - started_ns
    if delta_ns < 0:
        return 0
    return delta_ns // 1_000_000


__all__ = [
    "BuildInvocation",
    "BuildOperation",
    "BuildOrchestrator",
    "BuildResult",
    "DEFAULT_TIMEOUT_SECONDS",
    "NO_DEPENDENCIES_WARNING",
    "clean_command",
]

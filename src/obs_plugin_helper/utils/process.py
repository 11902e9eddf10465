"""
obs-plugin-helper — blocking command runner.

File: src/obs_plugin_helper/utils/process.py
Last updated: 2026-10-18

Purpose
- Narrow capability for short blocking commands (``git apply``, ``git commit``)
  so callers can be tested with a fake runner.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class CommandResult:
    argv: tuple[str, ...]
    cwd: str
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@runtime_checkable
class CommandRunner(Protocol):
    def run(self, argv: Sequence[str], cwd: str | os.PathLike[str]) -> CommandResult: ...


class SubprocessRunner:
    """Run commands with ``subprocess.run``; spawn failures become exit code -1."""

    def __init__(
        self,
        *,
        timeout_seconds: float | None = 60.0,
        env_overrides: Mapping[str, str] | None = None,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._env_overrides = dict(env_overrides or {})

    def run(self, argv: Sequence[str], cwd: str | os.PathLike[str]) -> CommandResult:
        command = tuple(argv)
        run_cwd = Path(cwd).resolve()
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.update(self._env_overrides)
        try:
            completed = subprocess.run(
                command,
                cwd=run_cwd,
                env=env,
                text=True,
                encoding="utf-8",
                errors="replace",
                capture_output=True,
                check=False,
                timeout=self._timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                argv=command,
                cwd=run_cwd.as_posix(),
                exit_code=-1,
                stdout="",
                stderr=f"command timed out after {self._timeout_seconds}s",
            )
        except OSError as exc:
            return CommandResult(
                argv=command, cwd=run_cwd.as_posix(), exit_code=-1, stdout="", stderr=str(exc)
            )
        return CommandResult(
            argv=command,
            cwd=run_cwd.as_posix(),
            exit_code=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )


__all__ = ["CommandResult", "CommandRunner", "SubprocessRunner"]

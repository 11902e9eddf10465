"""
obs-plugin-helper — git boundary

File: src/obs_plugin_helper/patching/git.py
Last updated: 2026-10-18

Purpose
- Thin wrapper over ``git apply``/``git add``/``git commit`` for the patch
  manager, plus diff path extraction and safety checks.

Functional requirements
- Every invocation goes through a ``CommandRunner``; results are returned,
  never raised. A zero exit code means success.
- A diff is written to a scratch file, checked with ``git apply --check`` and
  only then applied. The scratch file is removed on every path.
- Diff paths that are empty, absolute, traverse upwards or touch ``.git`` are
  unsafe.
"""

from __future__ import annotations

import contextlib
import os
import re
import tempfile
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Final

import structlog

from obs_plugin_helper.utils.process import CommandResult, CommandRunner, SubprocessRunner

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = structlog.get_logger(__name__)

_WINDOWS_ABSOLUTE_PATH_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z]:[\\/]")
_PATH_HEADER_PREFIXES: Final[tuple[str, ...]] = (
    "--- ",
    "+++ ",
    "rename from ",
    "rename to ",
    "copy from ",
    "copy to ",
)


class GitClient:
    """Blocking git calls rooted at one repository."""

    def __init__(self, repo_root: Path | str, *, runner: CommandRunner | None = None) -> None:
        self._repo_root = Path(repo_root).resolve()
        self._runner: CommandRunner = runner if runner is not None else SubprocessRunner()

    @property
    def repo_root(self) -> Path:
        return self._repo_root

    def is_repository(self) -> bool:
        result = self._git(["rev-parse", "--is-inside-work-tree"])
        return result.ok and result.stdout.strip() == "true"

    def apply_diff(self, unified_diff: str) -> CommandResult:
        """Check then apply ``unified_diff``; the first failing step is returned."""

        patch_text = unified_diff if unified_diff.endswith("\n") else f"{unified_diff}\n"
        fd, scratch_name = tempfile.mkstemp(prefix="obs-helper-", suffix=".patch")
        scratch = Path(scratch_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(patch_text)
            check = self._git(["apply", "--check", "--whitespace=nowarn", str(scratch)])
            if not check.ok:
                logger.info("git_apply_check_failed", stderr=check.stderr.strip())
                return check
            return self._git(["apply", "--whitespace=nowarn", str(scratch)])
        finally:
            with contextlib.suppress(OSError):
                scratch.unlink(missing_ok=True)

    def add(self, paths: Sequence[str]) -> CommandResult:
        return self._git(["add", "--", *paths])

    def commit(self, message: str) -> CommandResult:
        return self._git(["commit", "--no-gpg-sign", "-m", message])

    def _git(self, args: Sequence[str]) -> CommandResult:
        argv = ("git", *args)
        result = self._runner.run(argv, self._repo_root)
        logger.debug("git_command", argv=list(argv), exit_code=result.exit_code)
        return result


def diff_paths(unified_diff: str) -> tuple[str, ...]:
    """Raw paths named by ``---``/``+++``/rename/copy headers, ``/dev/null`` excluded."""

    paths: list[str] = []
    for line in unified_diff.splitlines():
        for prefix in _PATH_HEADER_PREFIXES:
            if not line.startswith(prefix):
                continue
            candidate = line[len(prefix) :]
            if prefix in {"--- ", "+++ "}:
                candidate = candidate.split("\t", 1)[0]
            candidate = candidate.strip()
            if candidate and candidate != "/dev/null":
                paths.append(candidate)
            break
    return tuple(paths)


def created_paths(unified_diff: str) -> tuple[str, ...]:
    """Normalized paths of files the diff creates (``--- /dev/null`` old side)."""

    created: list[str] = []
    old_side: str | None = None
    for line in unified_diff.splitlines():
        if line.startswith("--- "):
            old_side = line[4:].split("\t", 1)[0].strip()
        elif line.startswith("+++ "):
            new_side = line[4:].split("\t", 1)[0].strip()
            if old_side == "/dev/null" and new_side != "/dev/null":
                created.append(normalize_diff_path(new_side))
            old_side = None
    return tuple(created)


def normalize_diff_path(raw_path: str) -> str:
    normalized = raw_path.strip()
    if normalized.startswith('"') and normalized.endswith('"') and len(normalized) >= 2:
        normalized = normalized[1:-1]
    while normalized.startswith("./"):
        normalized = normalized[2:]
    if normalized.startswith("a/") or normalized.startswith("b/"):
        normalized = normalized[2:]
    return PurePosixPath(normalized).as_posix()


def unsafe_diff_path_reason(raw_path: str) -> str | None:
    """Why ``raw_path`` may not be patched, or ``None`` when it is safe."""

    normalized = normalize_diff_path(raw_path)
    if normalized in {"", "."}:
        return f"patch path {raw_path!r} is empty"
    if PurePosixPath(normalized).is_absolute() or _WINDOWS_ABSOLUTE_PATH_RE.match(normalized):
        return f"patch path {raw_path!r} is absolute"
    parts = PurePosixPath(normalized.replace("\\", "/")).parts
    if ".." in parts:
        return f"patch path {raw_path!r} escapes the repository"
    if ".git" in parts:
        return f"patch path {raw_path!r} targets .git"
    return None


__all__ = [
    "GitClient",
    "created_paths",
    "diff_paths",
    "normalize_diff_path",
    "unsafe_diff_path_reason",
]

"""
obs-plugin-helper — filesystem utilities

File: src/obs_plugin_helper/utils/fs.py
Last updated: 2026-10-18

Purpose
- Atomic writes for source-tree mutation and containment checks for paths
  proposed by patches.

Functional requirements
- Atomic writes use a temp file in the destination directory and replace the
  target in a single step, preserving the target's permission bits.
- Containment checks never require the child path to exist.
"""

from __future__ import annotations

import contextlib
import os
import stat
import tempfile
from pathlib import Path, PurePosixPath

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write_text",
    "is_within",
    "normalize_relative_path",
    "read_text",
]


def atomic_write_text(path: PathLike, text: str, *, encoding: str = "utf-8") -> None:
    """
    Atomically replace ``path`` with ``text``.

    The temp file lives next to the target so ``os.replace`` stays on one
    filesystem. Existing file modes are carried over.
    """

    target = Path(path)
    parent = target.parent.resolve(strict=True)

    mode: int | None = None
    with contextlib.suppress(FileNotFoundError):
        mode = stat.S_IMODE(target.stat().st_mode)

    fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(parent))
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        if mode is not None:
            os.chmod(temp_path, mode)
        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def read_text(path: PathLike, *, encoding: str = "utf-8") -> str:
    """Read a text file without newline translation."""

    with open(path, encoding=encoding, newline="") as handle:
        return handle.read()


def is_within(child: PathLike, parent: PathLike) -> bool:
    """Return ``True`` if ``child`` resolves inside ``parent``."""

    resolved_parent = Path(parent).resolve(strict=False)
    candidate = Path(child)
    if not candidate.is_absolute():
        candidate = resolved_parent / candidate
    try:
        candidate.resolve(strict=False).relative_to(resolved_parent)
    except ValueError:
        return False
    return True


def normalize_relative_path(value: str) -> str | None:
    """Normalize a repository-relative path; ``None`` for absolute or escaping paths."""

    candidate = value.replace("\\", "/").strip()
    if not candidate:
        return None

    pure = PurePosixPath(candidate)
    if pure.is_absolute() or any(part == ".." for part in pure.parts):
        return None

    cleaned = [part for part in pure.parts if part not in {"", "."}]
    if not cleaned:
        return None
    return "/".join(cleaned)

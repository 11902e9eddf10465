"""
obs-plugin-helper — source convention checks.

File: src/obs_plugin_helper/diagnostics/conventions.py
Last updated: 2026-10-18

Purpose
- Inspect a single source file's path and content for plugin coding
  convention violations (header suffix, include guards, UI placement, moc
  includes).

Functional requirements
- Pure function of (path, content, conventions); no filesystem access.
- Checks are gated by the matching ``CodingConventions`` flags.
"""

from __future__ import annotations

import re
from enum import StrEnum
from pathlib import PurePosixPath
from typing import Final

from obs_plugin_helper.config.schema import CodingConventions
from obs_plugin_helper.diagnostics.extractor import ConventionViolation, ViolationKind

HEADER_SUFFIXES: Final[frozenset[str]] = frozenset({".h", ".hpp", ".hh", ".hxx"})
IMPLEMENTATION_SUFFIXES: Final[frozenset[str]] = frozenset({".cpp", ".cc", ".cxx", ".c"})

UI_CONTENT_TOKENS: Final[tuple[str, ...]] = (
    "QWidget",
    "QDialog",
    "QMainWindow",
    "QFrame",
    "obs_frontend_",
)
UI_FILENAME_TOKENS: Final[tuple[str, ...]] = ("widget", "dialog")
QT_SIGNAL_TOKENS: Final[tuple[str, ...]] = (
    "Q_OBJECT",
    "signals:",
    "slots:",
    "emit ",
    "connect(",
    "QObject",
)

_PRAGMA_ONCE_RE: Final[re.Pattern[str]] = re.compile(r"^\s*#\s*pragma\s+once\b", re.MULTILINE)
_IFNDEF_GUARD_RE: Final[re.Pattern[str]] = re.compile(
    r"^\s*#\s*ifndef\s+(?P<name>\w+)\s*$\s*^\s*#\s*define\s+(?P=name)\b",
    re.MULTILINE,
)


class FileKind(StrEnum):
    HEADER = "header"
    IMPLEMENTATION = "implementation"
    UI = "ui"
    BUILD_SCRIPT = "build_script"
    OTHER = "other"


def classify_file(path: str) -> FileKind:
    """Infer the role of a project file from its name."""

    pure = PurePosixPath(path.replace("\\", "/"))
    suffix = pure.suffix.lower()
    if suffix in HEADER_SUFFIXES:
        return FileKind.HEADER
    if suffix in IMPLEMENTATION_SUFFIXES:
        return FileKind.IMPLEMENTATION
    if suffix == ".ui":
        return FileKind.UI
    if pure.name == "CMakeLists.txt" or suffix == ".cmake" or pure.name == "CMakePresets.json":
        return FileKind.BUILD_SCRIPT
    return FileKind.OTHER


def has_include_guard(content: str) -> bool:
    return bool(_PRAGMA_ONCE_RE.search(content) or _IFNDEF_GUARD_RE.search(content))


def is_ui_component(path: str, content: str) -> bool:
    name = PurePosixPath(path.replace("\\", "/")).name.lower()
    if any(token in name for token in UI_FILENAME_TOKENS):
        return True
    return any(token in content for token in UI_CONTENT_TOKENS)


def uses_qt_signals(content: str) -> bool:
    return any(token in content for token in QT_SIGNAL_TOKENS)


def moc_include_for(path: str) -> str:
    stem = PurePosixPath(path.replace("\\", "/")).stem
    return f'#include "moc_{stem}.cpp"'


def validate_conventions(
    path: str,
    content: str,
    conventions: CodingConventions | None = None,
) -> list[ConventionViolation]:
    """Return the convention violations found in one file."""

    rules = conventions if conventions is not None else CodingConventions()
    normalized = path.replace("\\", "/")
    pure = PurePosixPath(normalized)
    suffix = pure.suffix.lower()
    kind = classify_file(normalized)
    violations: list[ConventionViolation] = []

    if kind is FileKind.HEADER and suffix != rules.header_extension:
        violations.append(
            ConventionViolation(
                kind=ViolationKind.WRONG_HEADER_EXTENSION,
                suggestion=(
                    f"Use {rules.header_extension} instead of {suffix} for C++ headers "
                    f"(rename {pure.name} to {pure.stem}{rules.header_extension})"
                ),
            )
        )

    if kind is FileKind.HEADER and rules.use_pragma_once and not has_include_guard(content):
        violations.append(
            ConventionViolation(
                kind=ViolationKind.MISSING_GUARD,
                suggestion=f"Add '#pragma once' at the beginning of {pure.name}",
            )
        )

    if (
        kind in {FileKind.HEADER, FileKind.IMPLEMENTATION, FileKind.UI}
        and is_ui_component(normalized, content)
        and rules.ui_components_dir not in pure.parent.parts
    ):
        violations.append(
            ConventionViolation(
                kind=ViolationKind.UI_COMPONENT_LOCATION,
                suggestion=(
                    f"Move UI component '{pure.name}' to the "
                    f"'{rules.ui_components_dir}/' directory"
                ),
            )
        )

    if (
        kind is FileKind.IMPLEMENTATION
        and rules.qt6_moc_include
        and uses_qt_signals(content)
        and moc_include_for(normalized) not in content
    ):
        violations.append(
            ConventionViolation(
                kind=ViolationKind.MOC_INCLUDE_MISSING,
                suggestion=f"Include 'moc_{pure.stem}.cpp' for Qt6 signal support",
            )
        )

    return violations


__all__ = [
    "FileKind",
    "HEADER_SUFFIXES",
    "IMPLEMENTATION_SUFFIXES",
    "QT_SIGNAL_TOKENS",
    "UI_CONTENT_TOKENS",
    "UI_FILENAME_TOKENS",
    "classify_file",
    "has_include_guard",
    "is_ui_component",
    "moc_include_for",
    "uses_qt_signals",
    "validate_conventions",
]

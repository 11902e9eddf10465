"""
obs-plugin-helper — diagnostic extraction.

File: src/obs_plugin_helper/diagnostics/extractor.py
Last updated: 2026-10-18

Purpose
- Turn raw compiler, linker and CMake output into sorted ``Diagnostic`` records.
- Attach advisory convention violations recognised from diagnostic messages.

Functional requirements
- Rules are tried in table order; the first rule matching a line wins.
- Unmatched lines are dropped. Partial extraction is the normal case.
- Output is sorted by (file, line) with a stable sort.
"""

from __future__ import annotations

import posixpath
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

import structlog

logger = structlog.get_logger(__name__)


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Dialect(StrEnum):
    GCC = "gcc"
    MSVC = "msvc"
    CMAKE = "cmake"
    LINKER = "linker"


class ViolationKind(StrEnum):
    MISSING_GUARD = "missing-guard"
    WRONG_HEADER_EXTENSION = "wrong-header-extension"
    UI_COMPONENT_LOCATION = "ui-component-location"
    MOC_INCLUDE_MISSING = "moc-include-missing"


AUTO_FIXABLE_KINDS: Final[frozenset[ViolationKind]] = frozenset(
    {ViolationKind.MISSING_GUARD, ViolationKind.MOC_INCLUDE_MISSING}
)


@dataclass(frozen=True, slots=True)
class ConventionViolation:
    kind: ViolationKind
    suggestion: str

    @property
    def auto_fixable(self) -> bool:
        return self.kind in AUTO_FIXABLE_KINDS

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "suggestion": self.suggestion,
            "auto_fixable": self.auto_fixable,
        }


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """One structured finding from build output."""

    file: str
    line: int
    column: int
    severity: Severity
    message: str
    raw: str
    dialect: Dialect
    convention_violation: ConventionViolation | None = None

    @property
    def location(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "severity": self.severity.value,
            "message": self.message,
            "raw": self.raw,
            "dialect": self.dialect.value,
        }
        if self.convention_violation is not None:
            payload["convention_violation"] = self.convention_violation.to_dict()
        return payload


@dataclass(frozen=True, slots=True)
class _Match:
    file: str
    line: int | None
    column: int | None
    severity: str
    message: str


@dataclass(frozen=True, slots=True)
class ExtractionRule:
    """Line-oriented extraction rule: dialect tag, pattern, field extractor."""

    dialect: Dialect
    pattern: re.Pattern[str]
    extract: Callable[[re.Match[str]], _Match | None]


def _int_or_none(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _from_compiler(match: re.Match[str]) -> _Match:
    return _Match(
        file=match.group("file"),
        line=_int_or_none(match.group("line")),
        column=_int_or_none(match.group("column")),
        severity=match.group("severity"),
        message=match.group("message"),
    )


def _from_cmake(match: re.Match[str]) -> _Match:
    message = match.group("message").strip() or match.group("context").strip()
    return _Match(
        file=match.group("file"),
        line=_int_or_none(match.group("line")),
        column=None,
        severity=match.group("severity"),
        message=message,
    )


def _from_linker(match: re.Match[str]) -> _Match:
    groups = match.groupdict()
    return _Match(
        file=match.group("file"),
        line=_int_or_none(groups.get("line")),
        column=None,
        severity="error",
        message=f"undefined reference to {match.group('symbol').strip()}",
    )


EXTRACTION_RULES: Final[tuple[ExtractionRule, ...]] = (
    ExtractionRule(
        Dialect.GCC,
        re.compile(
            r"^(?P<file>.+?):(?P<line>\d+):(?P<column>\d+):\s*"
            r"(?P<severity>fatal error|error|warning|note):\s*(?P<message>.+)$"
        ),
        _from_compiler,
    ),
    ExtractionRule(
        Dialect.MSVC,
        re.compile(
            r"^(?P<file>.+?)\((?P<line>\d+)(?:,(?P<column>\d+))?\)\s*:\s*"
            r"(?P<severity>fatal error|error|warning)\s+C\d+\s*:\s*(?P<message>.+)$"
        ),
        _from_compiler,
    ),
    ExtractionRule(
        Dialect.CMAKE,
        re.compile(
            r"^CMake (?P<severity>Error|Warning)(?: \(dev\))? at (?P<file>.+?):(?P<line>\d+)\s*"
            r"\((?P<context>[^)]*)\):?\s*(?P<message>.*)$"
        ),
        _from_cmake,
    ),
    ExtractionRule(
        Dialect.LINKER,
        re.compile(
            r"^(?P<file>.+?):(?P<line>\d+):\s*undefined reference to\s*(?P<symbol>.+)$"
        ),
        _from_linker,
    ),
    ExtractionRule(
        Dialect.LINKER,
        re.compile(
            r"^(?P<file>[^:\s][^:]*?)(?::\([^)]*\))?:\s*undefined reference to\s*(?P<symbol>.+)$"
        ),
        _from_linker,
    ),
)

CONVENTION_PATTERNS: Final[tuple[tuple[ViolationKind, re.Pattern[str]], ...]] = (
    (
        ViolationKind.MISSING_GUARD,
        re.compile(r"(?i)\b(?:redefinition of|previous definition of)\b"),
    ),
    (
        ViolationKind.WRONG_HEADER_EXTENSION,
        re.compile(r"should use '\.[A-Za-z+]+' extension"),
    ),
    (
        ViolationKind.UI_COMPONENT_LOCATION,
        re.compile(r"UI component '(?P<name>.+?)' should be in"),
    ),
    (
        ViolationKind.MOC_INCLUDE_MISSING,
        re.compile(
            r"(?:undefined reference to|unresolved external symbol)"
            r".*(?:vtable for|staticMetaObject|metaObject|qt_metacall|qt_metacast)"
        ),
    ),
)


def normalize_path(value: str) -> str:
    """Backslashes to ``/`` and collapse ``.``/``..`` segments."""

    candidate = value.strip().replace("\\", "/")
    if not candidate:
        return candidate
    return posixpath.normpath(candidate)


def normalize_severity(value: str) -> Severity:
    lowered = value.lower()
    if "error" in lowered:
        return Severity.ERROR
    if "warning" in lowered:
        return Severity.WARNING
    return Severity.INFO


def detect_convention_violation(
    message: str,
    file: str,
    *,
    header_extension: str = ".hpp",
    ui_components_dir: str = "ui",
) -> ConventionViolation | None:
    """Map a diagnostic message onto a convention violation, if one is recognised."""

    name = posixpath.basename(file)
    stem = posixpath.splitext(name)[0]
    for kind, pattern in CONVENTION_PATTERNS:
        if not pattern.search(message):
            continue
        suggestion = {
            ViolationKind.MISSING_GUARD: f"Add '#pragma once' at the beginning of {name}",
            ViolationKind.WRONG_HEADER_EXTENSION: (
                f"Rename {name} to {stem}{header_extension}"
            ),
            ViolationKind.UI_COMPONENT_LOCATION: (
                f"Move {name} to the {ui_components_dir}/ directory"
            ),
            ViolationKind.MOC_INCLUDE_MISSING: (
                f'Add #include "moc_{stem}.cpp" at the end of the implementation file'
            ),
        }[kind]
        return ConventionViolation(kind=kind, suggestion=suggestion)
    return None


def extract_line(
    line: str,
    rules: Iterable[ExtractionRule] = EXTRACTION_RULES,
    *,
    header_extension: str = ".hpp",
    ui_components_dir: str = "ui",
) -> Diagnostic | None:
    text = line.rstrip("\r")
    for rule in rules:
        match = rule.pattern.match(text)
        if match is None:
            continue
        fields = rule.extract(match)
        if fields is None:
            continue
        file = normalize_path(fields.file)
        message = fields.message.strip()
        return Diagnostic(
            file=file,
            line=fields.line or 1,
            column=fields.column or 1,
            severity=normalize_severity(fields.severity),
            message=message,
            raw=text,
            dialect=rule.dialect,
            convention_violation=detect_convention_violation(
                message,
                file,
                header_extension=header_extension,
                ui_components_dir=ui_components_dir,
            ),
        )
    return None


def extract(
    text: str,
    preset: str = "",
    *,
    header_extension: str = ".hpp",
    ui_components_dir: str = "ui",
    rules: Iterable[ExtractionRule] = EXTRACTION_RULES,
) -> list[Diagnostic]:
    """Extract diagnostics from build output, sorted by (file, line)."""

    rule_table = tuple(rules)
    diagnostics: list[Diagnostic] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        diagnostic = extract_line(
            line,
            rule_table,
            header_extension=header_extension,
            ui_components_dir=ui_components_dir,
        )
        if diagnostic is not None:
            diagnostics.append(diagnostic)

    diagnostics.sort(key=lambda item: (item.file, item.line))
    logger.debug("diagnostics_extracted", preset=preset or None, count=len(diagnostics))
    return diagnostics


def count_by_severity(diagnostics: Iterable[Diagnostic]) -> Mapping[Severity, int]:
    counts = {severity: 0 for severity in Severity}
    for item in diagnostics:
        counts[item.severity] += 1
    return counts


def format_error_display(diagnostics: Iterable[Diagnostic]) -> list[str]:
    """Render numbered diagnostic blocks for an output panel."""

    lines: list[str] = []
    for index, item in enumerate(diagnostics, start=1):
        lines.append(f"{index}. {item.location}")
        lines.append(f"   {item.severity.value.upper()}: {item.message}")
        if item.convention_violation is not None:
            lines.append(f"   Convention: {item.convention_violation.suggestion}")
        lines.append("")
    return lines


__all__ = [
    "AUTO_FIXABLE_KINDS",
    "CONVENTION_PATTERNS",
    "ConventionViolation",
    "Diagnostic",
    "Dialect",
    "EXTRACTION_RULES",
    "ExtractionRule",
    "Severity",
    "ViolationKind",
    "count_by_severity",
    "detect_convention_violation",
    "extract",
    "extract_line",
    "format_error_display",
    "normalize_path",
    "normalize_severity",
]

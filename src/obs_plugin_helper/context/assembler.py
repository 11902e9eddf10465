"""
obs-plugin-helper — AI request context assembly

File: src/obs_plugin_helper/context/assembler.py
Last updated: 2026-10-18

Purpose
- Compose a ``RequestEnvelope`` for an AI backend from project configuration,
  coding conventions, the active file, recent diagnostics and the on-disk
  project layout.

What should be included in this file
- Intent-driven system prompt selection and rendering.
- Windowed snippets of the active file plus one header/implementation sibling.
- Project structure discovery (build directories, CMake configure presets).
- Text rendering of diagnostics and envelopes for the backend.

Functional requirements
- Envelopes are built fresh for every request; nothing is cached besides the
  most recent build log.
- This module never performs network calls.
- Secret-looking tokens in build logs and snippets are redacted.
"""

from __future__ import annotations

import json
import os
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path, PurePosixPath
from typing import Final

import structlog

from obs_plugin_helper.config.schema import CodingConventions, PluginConfig
from obs_plugin_helper.context.templates import (
    ALLOWED_VARIABLES,
    ERROR_FIX_TEMPLATE,
    PromptTemplateEngine,
)
from obs_plugin_helper.diagnostics.conventions import (
    HEADER_SUFFIXES,
    IMPLEMENTATION_SUFFIXES,
    FileKind,
    classify_file,
)
from obs_plugin_helper.diagnostics.extractor import Diagnostic
from obs_plugin_helper.security.redaction import redact_text

BASE_TEMPLATE: Final[str] = "obs-plugintemplate"
BUILD_DIR_CANDIDATES: Final[tuple[str, ...]] = (
    "build",
    "build_macos",
    "build_windows",
    "build_x64",
    "build_linux",
)
PRESETS_FILENAME: Final[str] = "CMakePresets.json"
SNIPPET_RADIUS: Final[int] = 10
RELATED_FILE_CHAR_LIMIT: Final[int] = 1000
FIX_USER_PROMPT_HEADER: Final[str] = "Please analyze and fix these build errors:"

_NOT_APPLICABLE: Final[str] = "n/a"
_IMPLEMENTATION_ORDER: Final[tuple[str, ...]] = (".cpp", ".cc", ".cxx", ".c")

logger = structlog.get_logger(__name__)


class Intent(StrEnum):
    COMPILE = "compile"
    FIX = "fix"
    ASSIST = "assist"


@dataclass(frozen=True, slots=True)
class ActiveFile:
    """File the developer is working in; ``cursor_line`` is zero-based."""

    path: str
    cursor_line: int = 0
    content: str | None = None


@dataclass(frozen=True, slots=True)
class FileContext:
    path: str
    snippet: str
    cursor_line: int
    kind: FileKind

    def to_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "snippet": self.snippet,
            "cursor_line": self.cursor_line,
            "kind": self.kind.value,
        }


@dataclass(frozen=True, slots=True)
class ProjectStructure:
    ui_components_dir: str
    deps_dir: str
    build_dirs: tuple[str, ...]
    cmake_presets: tuple[str, ...]
    base_template: str = BASE_TEMPLATE

    def to_dict(self) -> dict[str, object]:
        return {
            "base_template": self.base_template,
            "ui_components_dir": self.ui_components_dir,
            "deps_dir": self.deps_dir,
            "build_dirs": list(self.build_dirs),
            "cmake_presets": list(self.cmake_presets),
        }


@dataclass(frozen=True, slots=True)
class RequestEnvelope:
    """Everything an AI backend receives for one request."""

    intent: Intent
    system_prompt: str
    user_prompt: str
    file_contexts: tuple[FileContext, ...] = ()
    recent_build_log: str | None = None
    coding_conventions: CodingConventions | None = None
    project_structure: ProjectStructure | None = None

    def to_dict(self) -> dict[str, object]:
        conventions = self.coding_conventions
        return {
            "intent": self.intent.value,
            "system_prompt": self.system_prompt,
            "user_prompt": self.user_prompt,
            "file_contexts": [item.to_dict() for item in self.file_contexts],
            "recent_build_log": self.recent_build_log,
            "coding_conventions": (
                {
                    "header_extension": conventions.header_extension,
                    "use_pragma_once": conventions.use_pragma_once,
                    "ui_components_dir": conventions.ui_components_dir,
                    "qt6_moc_include": conventions.qt6_moc_include,
                    "english_comments": conventions.english_comments,
                    "auto_commit": conventions.auto_commit,
                    "namespace": conventions.namespace,
                }
                if conventions is not None
                else None
            ),
            "project_structure": (
                self.project_structure.to_dict() if self.project_structure is not None else None
            ),
        }


class ContextAssembler:
    """Build AI request envelopes for one project root."""

    def __init__(
        self,
        config: PluginConfig,
        root_dir: str | os.PathLike[str],
        *,
        engine: PromptTemplateEngine | None = None,
        platform: str | None = None,
        runtime_dependencies: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config
        self._root = Path(root_dir).resolve()
        self._engine = engine if engine is not None else PromptTemplateEngine()
        self._platform = platform
        self._runtime_dependencies = dict(runtime_dependencies or {})
        self._recent_build_log = ""

    @property
    def recent_build_log(self) -> str:
        return self._recent_build_log

    def update_build_log(self, build_log: str) -> None:
        self._recent_build_log = redact_text(build_log)
        logger.debug("build_log_updated", chars=len(self._recent_build_log))

    def set_runtime_dependencies(self, dependencies: Mapping[str, str]) -> None:
        """Record cache-resolved dependency paths; they win over configured ones."""

        self._runtime_dependencies = dict(dependencies)

    def build_envelope(
        self,
        intent: Intent | str,
        user_prompt: str,
        *,
        active_file: ActiveFile | None = None,
        diagnostics: Sequence[Diagnostic] = (),
        build_command: str | None = None,
    ) -> RequestEnvelope:
        resolved = Intent(intent)
        prompts = self._config.ai_prompts
        envelope = RequestEnvelope(
            intent=resolved,
            system_prompt=self.system_prompt(
                resolved, diagnostics=diagnostics, build_command=build_command
            ),
            user_prompt=user_prompt,
            file_contexts=tuple(self.file_contexts(active_file)) if active_file else (),
            recent_build_log=(
                self._recent_build_log
                if prompts.include_recent_errors and self._recent_build_log
                else None
            ),
            coding_conventions=(
                self._config.coding_conventions if prompts.include_conventions else None
            ),
            project_structure=(
                self.project_structure() if prompts.include_project_structure else None
            ),
        )
        logger.info(
            "envelope_created",
            intent=resolved.value,
            file_contexts=len(envelope.file_contexts),
            diagnostics=len(diagnostics),
        )
        return envelope

    def fix_request(
        self,
        diagnostics: Sequence[Diagnostic],
        *,
        active_file: ActiveFile | None = None,
        build_command: str | None = None,
    ) -> RequestEnvelope:
        """Fix-intent envelope whose user prompt lists the diagnostics."""

        user_prompt = f"{FIX_USER_PROMPT_HEADER}\n{format_errors_for_ai(diagnostics)}"
        return self.build_envelope(
            Intent.FIX,
            user_prompt,
            active_file=active_file,
            diagnostics=diagnostics,
            build_command=build_command,
        )

    def system_prompt(
        self,
        intent: Intent | str,
        *,
        diagnostics: Sequence[Diagnostic] = (),
        build_command: str | None = None,
    ) -> str:
        resolved = Intent(intent)
        custom = self._config.ai_prompts.custom_system_prompt
        if custom:
            return custom

        name = (
            ERROR_FIX_TEMPLATE
            if resolved is Intent.FIX
            else self._config.ai_prompts.system_template
        )
        rendered = self._engine.render(
            name,
            variables=self.template_variables(
                resolved, diagnostics=diagnostics, build_command=build_command
            ),
            allowed_variables=ALLOWED_VARIABLES,
        )
        return rendered.prompt

    def template_variables(
        self,
        intent: Intent,
        *,
        diagnostics: Sequence[Diagnostic] = (),
        build_command: str | None = None,
    ) -> dict[str, object]:
        conventions = self._config.coding_conventions
        profile = self._config.platform_profile(self._platform)
        variables: dict[str, object] = {
            "cmake_preset": profile.cmake_preset if profile is not None else "default",
            "build_dir": self._config.build_directory(self._platform),
            "deps_dir": self._config.effective_dependency_path("obs", self._runtime_dependencies)
            or self._config.dependency_root(),
            "ui_dir": conventions.ui_components_dir,
            "header_ext": conventions.header_extension,
            "error_message": _NOT_APPLICABLE,
            "file_path": _NOT_APPLICABLE,
            "line_number": _NOT_APPLICABLE,
            "build_command": build_command
            or (profile.build_command if profile is not None else _NOT_APPLICABLE),
        }
        if intent is Intent.FIX and diagnostics:
            first = diagnostics[0]
            variables["error_message"] = first.message
            variables["file_path"] = first.file
            variables["line_number"] = first.line
        return variables

    def file_contexts(self, active_file: ActiveFile) -> list[FileContext]:
        path = self._resolve(active_file.path)
        content = active_file.content
        if content is None:
            try:
                content = path.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                logger.warning("active_file_unreadable", path=str(path), error=str(exc))
                return []

        display = self._display_path(path)
        contexts = [
            FileContext(
                path=display,
                snippet=redact_text(window_snippet(content, active_file.cursor_line)),
                cursor_line=active_file.cursor_line,
                kind=self._context_kind(display),
            )
        ]
        sibling = self._find_sibling(path)
        if sibling is not None:
            try:
                sibling_text = sibling.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                logger.warning("related_file_unreadable", path=str(sibling), error=str(exc))
            else:
                sibling_display = self._display_path(sibling)
                contexts.append(
                    FileContext(
                        path=sibling_display,
                        snippet=redact_text(sibling_text[:RELATED_FILE_CHAR_LIMIT]),
                        cursor_line=0,
                        kind=self._context_kind(sibling_display),
                    )
                )
        return contexts

    def project_structure(self) -> ProjectStructure:
        return ProjectStructure(
            ui_components_dir=self._config.coding_conventions.ui_components_dir,
            deps_dir=self._config.dependency_root(),
            build_dirs=tuple(
                name for name in BUILD_DIR_CANDIDATES if (self._root / name).is_dir()
            ),
            cmake_presets=tuple(find_configure_presets(self._root)),
        )

    def _resolve(self, value: str) -> Path:
        candidate = Path(value)
        if not candidate.is_absolute():
            candidate = self._root / candidate
        return candidate

    def _display_path(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self._root).as_posix()
        except ValueError:
            return path.as_posix()

    def _context_kind(self, display_path: str) -> FileKind:
        kind = classify_file(display_path)
        if kind is not FileKind.OTHER:
            return kind
        ui_dir = self._config.coding_conventions.ui_components_dir
        if ui_dir in PurePosixPath(display_path).parent.parts:
            return FileKind.UI
        return FileKind.IMPLEMENTATION

    def _find_sibling(self, path: Path) -> Path | None:
        suffix = path.suffix.lower()
        if suffix in HEADER_SUFFIXES:
            candidates: Iterable[str] = _IMPLEMENTATION_ORDER
        elif suffix in IMPLEMENTATION_SUFFIXES:
            header_ext = self._config.coding_conventions.header_extension
            candidates = (header_ext, *sorted(HEADER_SUFFIXES - {header_ext}))
        else:
            return None
        for candidate_suffix in candidates:
            candidate = path.with_suffix(candidate_suffix)
            if candidate != path and candidate.is_file():
                return candidate
        return None


def window_snippet(content: str, cursor_line: int, radius: int = SNIPPET_RADIUS) -> str:
    """Lines ``cursor_line - radius`` through ``cursor_line + radius`` (zero-based)."""

    lines = content.splitlines()
    if not lines:
        return ""
    cursor = min(max(cursor_line, 0), len(lines) - 1)
    start = max(0, cursor - radius)
    end = min(len(lines) - 1, cursor + radius)
    return "\n".join(lines[start : end + 1]) + "\n"


def find_configure_presets(root: str | os.PathLike[str]) -> list[str]:
    presets_path = Path(root) / PRESETS_FILENAME
    if not presets_path.is_file():
        return []
    try:
        payload = json.loads(presets_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("presets_unreadable", path=str(presets_path), error=str(exc))
        return []
    presets = payload.get("configurePresets") if isinstance(payload, dict) else None
    if not isinstance(presets, list):
        return []
    return [
        item["name"]
        for item in presets
        if isinstance(item, dict) and isinstance(item.get("name"), str)
    ]


def format_errors_for_ai(diagnostics: Iterable[Diagnostic]) -> str:
    return "\n".join(
        f"{index}. {item.file}:{item.line}:{item.column} - {item.severity.value}: {item.message}"
        for index, item in enumerate(diagnostics, start=1)
    )


def format_request(envelope: RequestEnvelope) -> str:
    """Text form handed to the backend: system prompt, user request, JSON context."""

    context = json.dumps(envelope.to_dict(), indent=2, ensure_ascii=False)
    return (
        f"{envelope.system_prompt}\n\n"
        f"User Request: {envelope.user_prompt}\n\n"
        f"Context: {context}"
    )


__all__ = [
    "ActiveFile",
    "BUILD_DIR_CANDIDATES",
    "ContextAssembler",
    "FileContext",
    "Intent",
    "ProjectStructure",
    "RequestEnvelope",
    "find_configure_presets",
    "format_errors_for_ai",
    "format_request",
    "window_snippet",
]

"""
obs-plugin-helper — prompt templates

File: src/obs_plugin_helper/context/templates.py
Last updated: 2026-10-18

Purpose
- Load system prompt templates from ``prompt_templates/`` and render them with
  a strict placeholder whitelist.

What should be included in this file
- Template name resolution (``obs_error_fix`` -> ``OBS_ERROR_FIX.md``).
- Whitelist and missing-variable enforcement via jinja2 ``StrictUndefined``.
- Template hashing so a rendered prompt can be traced back to its source.

Functional requirements
- Must render prompts deterministically for same inputs.
- Adding a template file must not require code changes.
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Final

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, meta

from obs_plugin_helper.errors import (
    PromptTemplateError,
    PromptTemplateNotFoundError,
    PromptTemplateVariableError,
)
from obs_plugin_helper.security.redaction import redact_text

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping

PROJECT_EXPERT_TEMPLATE: Final[str] = "obs_plugin_expert"
ERROR_FIX_TEMPLATE: Final[str] = "obs_error_fix"

BASE_VARIABLES: Final[tuple[str, ...]] = (
    "build_dir",
    "cmake_preset",
    "deps_dir",
    "header_ext",
    "ui_dir",
)
FIX_VARIABLES: Final[tuple[str, ...]] = (
    "build_command",
    "error_message",
    "file_path",
    "line_number",
)
ALLOWED_VARIABLES: Final[tuple[str, ...]] = tuple(sorted((*BASE_VARIABLES, *FIX_VARIABLES)))

_TEMPLATE_NAME_RE = re.compile(r"^[A-Za-z0-9_]+(?:\.md)?$")
_LAST_UPDATED_RE = re.compile(r"(?im)^\s*Last updated:\s*(.+?)\s*$")


@dataclass(frozen=True, slots=True)
class RenderedPrompt:
    prompt: str
    template_name: str
    template_version: str
    template_hash: str
    declared_variables: tuple[str, ...]


class PromptTemplateEngine:
    """Deterministic system prompt loader + renderer."""

    def __init__(self, *, template_root: Path | str | None = None) -> None:
        root = Path(template_root) if template_root is not None else default_template_root()
        resolved_root = root.resolve()
        if not resolved_root.is_dir():
            raise PromptTemplateNotFoundError(f"template root does not exist: {resolved_root}")

        self._template_root = resolved_root
        self._environment = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=False,
            lstrip_blocks=False,
            newline_sequence="\n",
            keep_trailing_newline=False,
        )

    @property
    def template_root(self) -> Path:
        return self._template_root

    def available(self) -> tuple[str, ...]:
        """Template names found under the root, lower-cased without suffix."""

        names = (path.stem.lower() for path in self._template_root.glob("*.md") if path.is_file())
        return tuple(sorted(names))

    def render(
        self,
        name: str,
        *,
        variables: Mapping[str, object],
        allowed_variables: Collection[str] = ALLOWED_VARIABLES,
    ) -> RenderedPrompt:
        """Render one template; every placeholder must be whitelisted and supplied."""

        template_file = template_file_name(name)
        template_path = self._resolve_template_path(template_file)
        source = _normalize_newlines(template_path.read_text(encoding="utf-8"))

        try:
            parsed = self._environment.parse(source)
        except TemplateSyntaxError as exc:
            raise PromptTemplateError(
                f"{template_file}: {exc.message} (line {exc.lineno})"
            ) from exc
        declared = tuple(sorted(meta.find_undeclared_variables(parsed)))
        allowed = set(allowed_variables)

        not_allowed = sorted(set(declared) - allowed)
        if not_allowed:
            raise PromptTemplateVariableError(
                "template uses variables not allowed by whitelist: " + ", ".join(not_allowed)
            )
        unexpected = sorted(set(variables) - allowed)
        if unexpected:
            raise PromptTemplateVariableError(
                "unexpected variables were provided: " + ", ".join(unexpected)
            )
        missing = sorted(set(declared) - set(variables))
        if missing:
            raise PromptTemplateVariableError(
                "missing required template variables: " + ", ".join(missing)
            )

        values = {
            key: redact_text(_normalize_newlines(_serialize_variable_value(variables[key])))
            for key in sorted(variables)
        }
        prompt = _normalize_newlines(self._environment.from_string(source).render(**values))
        return RenderedPrompt(
            prompt=prompt.strip() + "\n",
            template_name=template_file,
            template_version=_extract_template_version(source),
            template_hash=hashlib.sha256(source.encode("utf-8")).hexdigest(),
            declared_variables=declared,
        )

    def _resolve_template_path(self, template_file: str) -> Path:
        candidate = (self._template_root / template_file).resolve()
        try:
            candidate.relative_to(self._template_root)
        except ValueError as exc:
            raise PromptTemplateError(
                f"template path escapes template root: {template_file!r}"
            ) from exc
        if not candidate.is_file():
            raise PromptTemplateNotFoundError(
                f"template not found: {template_file!r} under {self._template_root}"
            )
        return candidate


def default_template_root() -> Path:
    return Path(__file__).resolve().parent / "prompt_templates"


def template_file_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise ValueError("template name must not be empty")
    if not _TEMPLATE_NAME_RE.fullmatch(cleaned):
        raise ValueError(f"invalid template name: {name!r}")
    stem = cleaned[:-3] if cleaned.lower().endswith(".md") else cleaned
    return f"{stem.upper()}.md"


def _serialize_variable_value(value: object) -> str:
    if isinstance(value, str):
        return value
    if value is None or isinstance(value, (bool, int, float)):
        return json.dumps(value)
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), sort_keys=True)
    except TypeError:
        return str(value)


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _extract_template_version(source: str) -> str:
    match = _LAST_UPDATED_RE.search(source)
    if match is None:
        return "unversioned"
    return match.group(1).strip()


__all__ = [
    "ALLOWED_VARIABLES",
    "BASE_VARIABLES",
    "ERROR_FIX_TEMPLATE",
    "FIX_VARIABLES",
    "PROJECT_EXPERT_TEMPLATE",
    "PromptTemplateEngine",
    "RenderedPrompt",
    "default_template_root",
    "template_file_name",
]

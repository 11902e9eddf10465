"""
obs-plugin-helper — SEARCH/REPLACE edit instructions

File: src/obs_plugin_helper/patching/edits.py
Last updated: 2026-10-18

Purpose
- Parse AI-proposed edit instructions and apply them to file contents in
  memory.

Format
    FILE: src/plugin.cpp
    <<<<<<< SEARCH
    exact existing text
    =======
    replacement text
    >>>>>>> REPLACE

A ``FILE:`` line applies to every following block until the next ``FILE:``
line. Blocks before any ``FILE:`` line target the single patch target, when
there is exactly one.

Functional requirements
- Steps apply in order; each replaces the first occurrence of its search text
  in the content produced by the previous steps.
- Nothing touches the filesystem here.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Final

from obs_plugin_helper.errors import EditInstructionError

SEARCH_MARKER: Final[str] = "<<<<<<< SEARCH"
DIVIDER_MARKER: Final[str] = "======="
REPLACE_MARKER: Final[str] = ">>>>>>> REPLACE"

_FILE_LINE_RE: Final[re.Pattern[str]] = re.compile(
    r"^\s*(?:FILE|File|file)\s*:\s*(?P<path>.+?)\s*$"
)


@dataclass(frozen=True, slots=True)
class EditStep:
    index: int
    path: str | None
    search: str
    replace: str

    @property
    def search_line_count(self) -> int:
        return len(self.search.splitlines())

    @property
    def replace_line_count(self) -> int:
        return len(self.replace.splitlines())


def looks_like_edit_instructions(content: str) -> bool:
    return SEARCH_MARKER in content and REPLACE_MARKER in content


def parse_edit_instructions(content: str) -> list[EditStep]:
    """Parse SEARCH/REPLACE blocks; raises ``EditInstructionError`` on malformed input."""

    steps: list[EditStep] = []
    current_path: str | None = None
    lines = content.replace("\r\n", "\n").split("\n")
    cursor = 0
    while cursor < len(lines):
        line = lines[cursor]
        file_match = _FILE_LINE_RE.match(line)
        if file_match is not None:
            current_path = file_match.group("path").strip("`'\"")
            cursor += 1
            continue
        if line.strip() != SEARCH_MARKER:
            cursor += 1
            continue

        step_number = len(steps) + 1
        search_lines, cursor = _collect_until(lines, cursor + 1, DIVIDER_MARKER, step_number)
        replace_lines, cursor = _collect_until(lines, cursor + 1, REPLACE_MARKER, step_number)
        search = "\n".join(search_lines)
        if not search.strip():
            raise EditInstructionError("SEARCH section is empty", step=step_number)
        steps.append(
            EditStep(
                index=step_number,
                path=current_path,
                search=search,
                replace="\n".join(replace_lines),
            )
        )
        cursor += 1

    if not steps:
        raise EditInstructionError("no SEARCH/REPLACE blocks found")
    return steps


def resolve_step_paths(steps: Sequence[EditStep], target_files: Sequence[str]) -> list[EditStep]:
    """Fill in missing step paths from a single target; reject ambiguous steps."""

    resolved: list[EditStep] = []
    for step in steps:
        if step.path is not None:
            resolved.append(step)
            continue
        if len(target_files) != 1:
            raise EditInstructionError(
                "no FILE: line and the patch does not have exactly one target file",
                step=step.index,
            )
        resolved.append(replace(step, path=target_files[0]))
    return resolved


def apply_steps(originals: Mapping[str, str], steps: Sequence[EditStep]) -> dict[str, str]:
    """Apply steps in memory and return the updated contents of touched files."""

    contents = dict(originals)
    touched: dict[str, str] = {}
    for step in steps:
        if step.path is None:
            raise EditInstructionError("step has no target path", step=step.index)
        if step.path not in contents:
            raise EditInstructionError(f"unknown target file {step.path!r}", step=step.index)
        text = contents[step.path]
        newline = "\r\n" if "\r\n" in text else "\n"
        search = step.search.replace("\n", newline)
        replacement = step.replace.replace("\n", newline)
        position = text.find(search)
        if position < 0:
            raise EditInstructionError(
                f"search text not found in {step.path}", step=step.index
            )
        updated = text[:position] + replacement + text[position + len(search) :]
        contents[step.path] = updated
        touched[step.path] = updated
    return touched


def _collect_until(
    lines: Sequence[str], start: int, marker: str, step_number: int
) -> tuple[list[str], int]:
    collected: list[str] = []
    cursor = start
    while cursor < len(lines):
        line = lines[cursor]
        if line.strip() == marker:
            return collected, cursor
        if line.strip() == SEARCH_MARKER:
            break
        collected.append(line)
        cursor += 1
    raise EditInstructionError(f"missing {marker!r} marker", step=step_number)


__all__ = [
    "DIVIDER_MARKER",
    "EditStep",
    "REPLACE_MARKER",
    "SEARCH_MARKER",
    "apply_steps",
    "looks_like_edit_instructions",
    "parse_edit_instructions",
    "resolve_step_paths",
]

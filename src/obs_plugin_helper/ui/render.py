"""Output rendering for the obs-plugin-helper CLI.

File: src/obs_plugin_helper/ui/render.py
Last updated: 2026-10-18

Purpose
- Provide a thin plain-text rendering layer for CLI output.
- Respect the NO_COLOR environment variable and the --no-color CLI flag.

Functional requirements
- Output is deterministic plain text; nothing here requires a terminal.
- All public methods must be safe to call in any environment.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence

_ANSI_RED = "\x1b[31m"
_ANSI_GREEN = "\x1b[32m"
_ANSI_YELLOW = "\x1b[33m"
_ANSI_RESET = "\x1b[0m"


def _color_allowed(no_color_flag: bool, stream: TextIO) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class CLIRenderer:
    """Thin CLI output renderer.

    Produces clean, deterministic plain-text output. Status words are colored
    only on a TTY without ``NO_COLOR`` / ``--no-color``.
    """

    def __init__(
        self, *, no_color: bool = False, verbose: bool = False, stream: TextIO | None = None
    ) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout
        self._color = _color_allowed(no_color, self._stream)

    @property
    def color(self) -> bool:
        return self._color

    def heading(self, text: str) -> None:
        self._print(text)

    def kv(self, key: str, value: object) -> None:
        self._print(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._print(line)

    def lines(self, entries: Sequence[str]) -> None:
        for entry in entries:
            self._print(entry)

    def blank(self) -> None:
        self._print("")

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._print(f"\n{title}")

    def warning(self, text: str) -> None:
        self._print(f"  {self._paint('Warning', _ANSI_YELLOW)}: {text}")

    def error(self, text: str) -> None:
        self._print(f"  {self._paint('Error', _ANSI_RED)}: {text}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._print(f"  {prefix}{entry}")

    def ok(self, label: str) -> None:
        self._print(f"  {self._paint('OK', _ANSI_GREEN)}  {label}")

    def fail(self, label: str) -> None:
        self._print(f"  {self._paint('FAIL', _ANSI_RED)}  {label}")

    def _paint(self, word: str, code: str) -> str:
        if not self._color:
            return word
        return f"{code}{word}{_ANSI_RESET}"

    def _print(self, line: str) -> None:
        print(line, file=self._stream)


def create_renderer(
    *, no_color: bool = False, verbose: bool = False, stream: TextIO | None = None
) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, verbose=verbose, stream=stream)


__all__ = ["CLIRenderer", "create_renderer"]

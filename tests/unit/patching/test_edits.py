"""
obs-plugin-helper — unit tests for SEARCH/REPLACE edit instructions

File: tests/unit/patching/test_edits.py
Last updated: 2026-10-18
"""

from __future__ import annotations

import pytest

from obs_plugin_helper.errors import EditInstructionError
from obs_plugin_helper.patching.edits import (
    EditStep,
    apply_steps,
    looks_like_edit_instructions,
    parse_edit_instructions,
    resolve_step_paths,
)

TWO_FILES = """\
Here is the fix.

FILE: src/plugin.cpp
<<<<<<< SEARCH
obs_source_t *src = NULL
=======
obs_source_t *src = nullptr;
>>>>>>> REPLACE

FILE: `src/plugin.hpp`
<<<<<<< SEARCH
class Plugin {
=======
#pragma once

class Plugin {
>>>>>>> REPLACE
"""


def test_parse_blocks_with_file_lines() -> None:
    steps = parse_edit_instructions(TWO_FILES)

    assert steps == [
        EditStep(
            index=1,
            path="src/plugin.cpp",
            search="obs_source_t *src = NULL",
            replace="obs_source_t *src = nullptr;",
        ),
        EditStep(
            index=2,
            path="src/plugin.hpp",
            search="class Plugin {",
            replace="#pragma once\n\nclass Plugin {",
        ),
    ]
    assert steps[1].search_line_count == 1
    assert steps[1].replace_line_count == 3


def test_file_line_applies_to_following_blocks() -> None:
    content = (
        "FILE: a.cpp\n"
        "<<<<<<< SEARCH\none\n=======\n1\n>>>>>>> REPLACE\n"
        "<<<<<<< SEARCH\ntwo\n=======\n>>>>>>> REPLACE\n"
    )

    steps = parse_edit_instructions(content)

    assert [step.path for step in steps] == ["a.cpp", "a.cpp"]
    assert steps[1].replace == ""


def test_crlf_input_is_accepted() -> None:
    content = "FILE: a.cpp\r\n<<<<<<< SEARCH\r\nold\r\n=======\r\nnew\r\n>>>>>>> REPLACE\r\n"

    assert parse_edit_instructions(content)[0].search == "old"


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("just prose", "no SEARCH/REPLACE blocks found"),
        ("<<<<<<< SEARCH\nold\n>>>>>>> REPLACE\n", "edit step 1: missing '======='"),
        ("<<<<<<< SEARCH\nold\n=======\nnew\n", "edit step 1: missing '>>>>>>> REPLACE'"),
        ("<<<<<<< SEARCH\n\n=======\nnew\n>>>>>>> REPLACE\n", "edit step 1: SEARCH section"),
        (
            "<<<<<<< SEARCH\na\n<<<<<<< SEARCH\nb\n=======\nc\n>>>>>>> REPLACE\n",
            "edit step 1: missing '======='",
        ),
    ],
)
def test_malformed_instructions(content: str, message: str) -> None:
    with pytest.raises(EditInstructionError) as excinfo:
        parse_edit_instructions(content)

    assert str(excinfo.value).startswith(message)


def test_looks_like_edit_instructions() -> None:
    assert looks_like_edit_instructions(TWO_FILES)
    assert not looks_like_edit_instructions("--- a/x\n+++ b/x\n@@ -1 +1 @@\n")


def test_resolve_paths_from_single_target() -> None:
    steps = parse_edit_instructions("<<<<<<< SEARCH\na\n=======\nb\n>>>>>>> REPLACE\n")

    resolved = resolve_step_paths(steps, ["src/only.cpp"])

    assert resolved[0].path == "src/only.cpp"


def test_resolve_paths_is_ambiguous_with_several_targets() -> None:
    steps = parse_edit_instructions("<<<<<<< SEARCH\na\n=======\nb\n>>>>>>> REPLACE\n")

    with pytest.raises(EditInstructionError, match="exactly one target"):
        resolve_step_paths(steps, ["a.cpp", "b.cpp"])


def test_apply_steps_in_order() -> None:
    steps = [
        EditStep(1, "a.cpp", "int x = 1;", "int x = 2;"),
        EditStep(2, "a.cpp", "int x = 2;", "int x = 3;"),
    ]

    result = apply_steps({"a.cpp": "int x = 1;\nint y;\n", "b.cpp": "b\n"}, steps)

    assert result == {"a.cpp": "int x = 3;\nint y;\n"}


def test_apply_steps_replaces_first_occurrence_only() -> None:
    result = apply_steps({"a.cpp": "f();\nf();\n"}, [EditStep(1, "a.cpp", "f();", "g();")])

    assert result["a.cpp"] == "g();\nf();\n"


def test_apply_steps_preserves_crlf() -> None:
    step = EditStep(1, "a.cpp", "int a;\nint b;", "int a;\nint c;")

    result = apply_steps({"a.cpp": "int a;\r\nint b;\r\n"}, [step])

    assert result["a.cpp"] == "int a;\r\nint c;\r\n"


def test_apply_steps_errors() -> None:
    originals = {"a.cpp": "x\n"}

    with pytest.raises(EditInstructionError, match="search text not found in a.cpp"):
        apply_steps(originals, [EditStep(1, "a.cpp", "y", "z")])
    with pytest.raises(EditInstructionError, match="unknown target file 'b.cpp'"):
        apply_steps(originals, [EditStep(1, "b.cpp", "x", "z")])
    with pytest.raises(EditInstructionError, match="no target path"):
        apply_steps(originals, [EditStep(1, None, "x", "z")])
    assert originals == {"a.cpp": "x\n"}

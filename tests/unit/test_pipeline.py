"""
obs-plugin-helper — unit tests for fix loop helpers

File: tests/unit/test_pipeline.py
Last updated: 2026-10-18
"""

from __future__ import annotations

from pathlib import Path

import pytest

from obs_plugin_helper.diagnostics.extractor import extract
from obs_plugin_helper.pipeline import FixLoop, infer_patch_targets

DIFF = """\
diff --git a/src/plugin.cpp b/src/plugin.cpp
--- a/src/plugin.cpp
+++ b/src/plugin.cpp
@@ -1 +1 @@
-int a = 0
+int a = 0;
"""


def test_targets_from_unified_diff(tmp_path: Path) -> None:
    assert infer_patch_targets(DIFF, [], tmp_path) == ["src/plugin.cpp"]


def test_targets_from_edit_file_lines_deduplicated(tmp_path: Path) -> None:
    response = (
        "FILE: src/a.cpp\n<<<<<<< SEARCH\nx\n=======\ny\n>>>>>>> REPLACE\n"
        "<<<<<<< SEARCH\nz\n=======\nw\n>>>>>>> REPLACE\n"
        "FILE: src/b.hpp\n<<<<<<< SEARCH\nq\n=======\nr\n>>>>>>> REPLACE\n"
    )

    assert infer_patch_targets(response, [], tmp_path) == ["src/a.cpp", "src/b.hpp"]


def test_targets_fall_back_to_diagnostics_and_skip_outside_root(tmp_path: Path) -> None:
    diagnostics = extract(
        "src/dock.cpp:4:1: error: boom\n"
        "/usr/include/qt6/QtCore/qobject.h:9:2: error: elsewhere\n"
        "src/dock.cpp:8:1: error: again\n"
    )

    targets = infer_patch_targets("just prose, no patch", diagnostics, tmp_path)

    assert targets == ["src/dock.cpp"]


def test_max_iterations_must_be_positive() -> None:
    with pytest.raises(ValueError, match="max_iterations"):
        FixLoop(
            orchestrator=None,  # type: ignore[arg-type]
            assembler=None,  # type: ignore[arg-type]
            patches=None,  # type: ignore[arg-type]
            backend=None,  # type: ignore[arg-type]
            max_iterations=0,
        )


def test_created_files_are_not_targets(tmp_path: Path) -> None:
    response = DIFF + (
        "--- /dev/null\n"
        "+++ b/src/filters/blur.cpp\n"
        "@@ -0,0 +1 @@\n"
        "+int blur = 1;\n"
    )

    assert infer_patch_targets(response, [], tmp_path) == ["src/plugin.cpp"]


def test_diff_that_only_creates_files_falls_back_to_diagnostics(tmp_path: Path) -> None:
    response = "--- /dev/null\n+++ b/src/new.cpp\n@@ -0,0 +1 @@\n+int x = 1;\n"
    diagnostics = extract("src/plugin.cpp:2:1: error: missing symbol\n")

    assert infer_patch_targets(response, diagnostics, tmp_path) == ["src/plugin.cpp"]

"""
obs-plugin-helper — unit tests for the git boundary

File: tests/unit/patching/test_git.py
Last updated: 2026-10-18

Purpose
- Validate diff path extraction/safety and ``GitClient`` command sequencing
  with a scripted runner, then against a real temporary repository.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from obs_plugin_helper.patching.git import (
    GitClient,
    created_paths,
    diff_paths,
    normalize_diff_path,
    unsafe_diff_path_reason,
)
from obs_plugin_helper.utils.process import CommandResult, CommandRunner

if TYPE_CHECKING:
    from collections.abc import Sequence

HELLO_DIFF = """\
--- a/hello.txt
+++ b/hello.txt
@@ -1 +1 @@
-hello
+hello world
"""


class ScriptedRunner:
    """Records calls; ``git <verb>`` exit codes come from ``failures``."""

    def __init__(self, failures: dict[str, int] | None = None) -> None:
        self.failures = dict(failures or {})
        self.calls: list[tuple[str, ...]] = []
        self.patch_texts: list[str] = []

    def run(self, argv: Sequence[str], cwd: str | os.PathLike[str]) -> CommandResult:
        command = tuple(argv)
        self.calls.append(command)
        if command[1] == "apply":
            self.patch_texts.append(Path(command[-1]).read_text(encoding="utf-8"))
        key = "apply --check" if "--check" in command else command[1]
        exit_code = self.failures.get(key, 0)
        return CommandResult(
            argv=command,
            cwd=str(cwd),
            exit_code=exit_code,
            stdout="true\n" if command[1] == "rev-parse" else "",
            stderr="error: patch failed" if exit_code else "",
        )


def test_scripted_runner_satisfies_protocol() -> None:
    assert isinstance(ScriptedRunner(), CommandRunner)


def test_apply_diff_checks_before_applying(tmp_path: Path) -> None:
    runner = ScriptedRunner()
    client = GitClient(tmp_path, runner=runner)

    result = client.apply_diff(HELLO_DIFF.rstrip("\n"))

    assert result.ok
    assert [call[:3] for call in runner.calls] == [
        ("git", "apply", "--check"),
        ("git", "apply", "--whitespace=nowarn"),
    ]
    assert runner.patch_texts == [HELLO_DIFF, HELLO_DIFF]
    scratch = Path(runner.calls[0][-1])
    assert scratch.name.startswith("obs-helper-") and scratch.suffix == ".patch"
    assert not scratch.exists()


def test_failed_check_stops_before_apply(tmp_path: Path) -> None:
    runner = ScriptedRunner({"apply --check": 1})

    result = GitClient(tmp_path, runner=runner).apply_diff(HELLO_DIFF)

    assert not result.ok
    assert result.stderr == "error: patch failed"
    assert len(runner.calls) == 1
    assert not Path(runner.calls[0][-1]).exists()


def test_add_commit_and_repository_check(tmp_path: Path) -> None:
    runner = ScriptedRunner()
    client = GitClient(tmp_path, runner=runner)

    assert client.is_repository() is True
    client.add(["src/a.cpp", "src/a.hpp"])
    client.commit("Fix: Update source files")

    assert runner.calls == [
        ("git", "rev-parse", "--is-inside-work-tree"),
        ("git", "add", "--", "src/a.cpp", "src/a.hpp"),
        ("git", "commit", "--no-gpg-sign", "-m", "Fix: Update source files"),
    ]
    assert client.repo_root == tmp_path.resolve()


def test_diff_paths_reads_all_headers() -> None:
    diff = (
        "diff --git a/old.cpp b/new.cpp\n"
        "rename from old.cpp\n"
        "rename to new.cpp\n"
        "--- a/src/plugin.cpp\t2026-10-18 10:00:00\n"
        "+++ b/src/plugin.cpp\n"
        "@@ -1 +1 @@\n"
        "--- /dev/null\n"
        "+++ b/src/added.hpp\n"
    )

    assert diff_paths(diff) == (
        "old.cpp",
        "new.cpp",
        "a/src/plugin.cpp",
        "b/src/plugin.cpp",
        "b/src/added.hpp",
    )


def test_created_paths_only_lists_new_files() -> None:
    diff = (
        "--- a/src/plugin.cpp\n"
        "+++ b/src/plugin.cpp\n"
        "@@ -1 +1 @@\n"
        "--- /dev/null\n"
        "+++ b/src/added.hpp\t2026-10-18 10:00:00\n"
        "@@ -0,0 +1 @@\n"
        "--- a/src/gone.cpp\n"
        "+++ /dev/null\n"
    )

    assert created_paths(diff) == ("src/added.hpp",)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("a/src/plugin.cpp", "src/plugin.cpp"),
        ("b/src/plugin.cpp", "src/plugin.cpp"),
        ('"a/src/with space.cpp"', "src/with space.cpp"),
        ("./src/plugin.cpp", "src/plugin.cpp"),
        ("src/plugin.cpp", "src/plugin.cpp"),
    ],
)
def test_normalize_diff_path(raw: str, expected: str) -> None:
    assert normalize_diff_path(raw) == expected


@pytest.mark.parametrize(
    ("raw", "fragment"),
    [
        ("a/", "is empty"),
        ("/etc/passwd", "is absolute"),
        ("C:\\Windows\\win.ini", "is absolute"),
        ("a/../../outside.cpp", "escapes the repository"),
        ("b/.git/config", "targets .git"),
    ],
)
def test_unsafe_diff_paths(raw: str, fragment: str) -> None:
    reason = unsafe_diff_path_reason(raw)

    assert reason is not None
    assert fragment in reason


def test_safe_diff_path() -> None:
    assert unsafe_diff_path_reason("b/src/ui/dock.cpp") is None


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


@pytest.fixture
def isolated_git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "home"
    xdg = tmp_path / "xdg"
    home.mkdir()
    xdg.mkdir()

    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Plugin Dev")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "dev@example.invalid")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Plugin Dev")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "dev@example.invalid")


def run_git(cwd: Path, *args: str) -> str:
    completed = subprocess.run(
        ["git", *args], cwd=cwd, text=True, capture_output=True, check=False
    )
    if completed.returncode != 0:
        raise AssertionError(f"git {' '.join(args)} failed:\n{completed.stderr}")
    return completed.stdout


def init_repo(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    repo.mkdir()
    run_git(repo, "init", "--quiet")
    (repo / "hello.txt").write_text("hello\n", encoding="utf-8")
    run_git(repo, "add", "hello.txt")
    run_git(repo, "commit", "--quiet", "--no-gpg-sign", "-m", "initial")
    return repo


@requires_git
@pytest.mark.usefixtures("isolated_git_env")
def test_real_repository_apply_and_commit(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    client = GitClient(repo)

    assert client.is_repository() is True
    assert client.apply_diff(HELLO_DIFF).ok
    assert (repo / "hello.txt").read_text(encoding="utf-8") == "hello world\n"
    assert client.add(["hello.txt"]).ok
    assert client.commit("Fix: Update project files").ok
    assert run_git(repo, "log", "-1", "--format=%s").strip() == "Fix: Update project files"


@requires_git
@pytest.mark.usefixtures("isolated_git_env")
def test_real_repository_rejects_mismatched_context(tmp_path: Path) -> None:
    repo = init_repo(tmp_path)
    bad = HELLO_DIFF.replace("-hello\n", "-goodbye\n")

    result = GitClient(repo).apply_diff(bad)

    assert not result.ok
    assert (repo / "hello.txt").read_text(encoding="utf-8") == "hello\n"


@requires_git
@pytest.mark.usefixtures("isolated_git_env")
def test_plain_directory_is_not_a_repository(tmp_path: Path) -> None:
    plain = tmp_path / "plain"
    plain.mkdir()

    assert GitClient(plain).is_repository() is False

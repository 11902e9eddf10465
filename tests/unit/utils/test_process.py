"""
obs-plugin-helper — unit tests for the blocking command runner

File: tests/unit/utils/test_process.py
Last updated: 2026-10-18
"""

from __future__ import annotations

import sys
from pathlib import Path

from obs_plugin_helper.utils.process import CommandRunner, SubprocessRunner


def test_runner_captures_output_and_exit_code(tmp_path: Path) -> None:
    runner = SubprocessRunner()
    code = "import os, sys; print(os.getcwd()); sys.stderr.write('warn'); sys.exit(4)"

    result = runner.run([sys.executable, "-c", code], tmp_path)

    assert isinstance(runner, CommandRunner)
    assert result.exit_code == 4
    assert result.ok is False
    assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()
    assert result.stderr == "warn"
    assert result.cwd == tmp_path.resolve().as_posix()


def test_runner_applies_env_overrides(tmp_path: Path) -> None:
    runner = SubprocessRunner(env_overrides={"OBS_HELPER_PROBE": "on"})
    code = "import os; print(os.environ['OBS_HELPER_PROBE'], os.environ['GIT_TERMINAL_PROMPT'])"

    result = runner.run([sys.executable, "-c", code], tmp_path)

    assert result.ok
    assert result.stdout.split() == ["on", "0"]


def test_missing_binary_is_reported(tmp_path: Path) -> None:
    result = SubprocessRunner().run(["obs-helper-no-such-binary"], tmp_path)

    assert result.exit_code == -1
    assert result.stdout == ""
    assert result.stderr


def test_timeout_is_reported(tmp_path: Path) -> None:
    runner = SubprocessRunner(timeout_seconds=0.2)

    result = runner.run([sys.executable, "-c", "import time; time.sleep(10)"], tmp_path)

    assert result.exit_code == -1
    assert "timed out" in result.stderr

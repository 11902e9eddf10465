"""
obs-plugin-helper — unit tests for the process entrypoint

File: tests/unit/test_main.py
Last updated: 2026-10-18
"""

from __future__ import annotations

import pytest

from obs_plugin_helper import main as main_module
from obs_plugin_helper.errors import BuildInProgressError, ConfigLoadError, PatchError
from obs_plugin_helper.main import ExitCode, cli_entrypoint


def test_usage_error_exits_with_argparse_code() -> None:
    assert cli_entrypoint([]) == 2


def test_help_exits_cleanly(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["--help"]) == ExitCode.SUCCESS
    assert "obs-plugin-helper" in capsys.readouterr().out


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (ConfigLoadError("bad file"), ExitCode.CONFIG_ERROR),
        (FileNotFoundError("gone"), ExitCode.CONFIG_ERROR),
        (PatchError("consumed"), ExitCode.OPERATION_FAILED),
        (BuildInProgressError("cmake --build"), ExitCode.OPERATION_FAILED),
        (RuntimeError("bug"), ExitCode.INTERNAL_ERROR),
    ],
)
def test_exceptions_route_to_exit_codes(
    exc: Exception,
    expected: ExitCode,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    def explode(_argv: object) -> int:
        raise exc

    monkeypatch.setattr("obs_plugin_helper.ui.cli.run_cli", explode)

    assert cli_entrypoint(["build"]) == expected
    err = capsys.readouterr().err
    if expected is ExitCode.INTERNAL_ERROR:
        assert "Traceback" in err
    else:
        assert str(exc) in err


def test_wrapped_cause_is_followed() -> None:
    try:
        try:
            raise ConfigLoadError("inner")
        except ConfigLoadError as inner:
            raise RuntimeError("outer") from inner
    except RuntimeError as outer:
        assert main_module._route_exception(outer) is ExitCode.CONFIG_ERROR


def test_keyboard_interrupt(monkeypatch: pytest.MonkeyPatch) -> None:
    def interrupt(_argv: object) -> int:
        raise KeyboardInterrupt

    monkeypatch.setattr("obs_plugin_helper.ui.cli.run_cli", interrupt)

    assert cli_entrypoint(["build"]) == ExitCode.OPERATION_FAILED

"""
obs-plugin-helper — unit tests for the CLI router

File: tests/unit/ui/test_cli.py
Last updated: 2026-10-18

Purpose
- Drive ``run_cli`` end to end against temporary plugin projects and assert
  exit codes plus text/JSON output.

What this test file should cover
- Every subcommand in text mode and the JSON contract where scripts rely on it.
- Usage errors (bad root, bad config, missing files) exit with code 2.
"""

from __future__ import annotations

import io
import json
import shlex
import sys
from pathlib import Path

import pytest

from obs_plugin_helper.ui.cli import EXIT_FAILED, EXIT_OK, EXIT_USAGE, build_parser, run_cli

GCC_LOG = "src/plugin.cpp:3:5: error: 'obs_data_t' was not declared\n"
EDIT = """\
FILE: src/plugin.cpp
<<<<<<< SEARCH
obs_data_t *settings = NULL
=======
obs_data_t *settings = nullptr;
>>>>>>> REPLACE
"""


def _python(code: str) -> str:
    return shlex.join([sys.executable, "-c", code])


def _project(
    tmp_path: Path,
    *,
    build_code: str = "print('compiled')",
    auto_inject: bool = False,
) -> Path:
    root = tmp_path / "plugin"
    (root / "src").mkdir(parents=True)
    (root / "src" / "plugin.cpp").write_text(
        "#include <obs-module.h>\n\nobs_data_t *settings = NULL\n", encoding="utf-8"
    )
    config = {
        "platform_profiles": {
            "linux": {
                "build_command": _python(build_code),
                "configure_command": _python("pass"),
            }
        },
        "auto_features": {"auto_inject_ai_context": auto_inject},
    }
    (root / ".obspluginrc.json").write_text(json.dumps(config), encoding="utf-8")
    return root


def _run(root: Path, *args: str) -> int:
    command, *rest = args
    return run_cli([command, "--root", str(root), "--platform", "linux", "--no-color", *rest])


def _json_out(capsys: pytest.CaptureFixture[str]) -> dict[str, object]:
    return json.loads(capsys.readouterr().out.strip().splitlines()[-1])


def test_parser_requires_a_subcommand() -> None:
    with pytest.raises(SystemExit) as excinfo:
        build_parser().parse_args([])

    assert excinfo.value.code == 2


def test_parse_log_text_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = _project(tmp_path)
    log = root / "build.log"
    log.write_text("[ 10%] Building\n" + GCC_LOG, encoding="utf-8")

    exit_code = _run(root, "parse-log", str(log))

    out = capsys.readouterr().out
    assert exit_code == EXIT_FAILED
    assert "Found 1 diagnostic(s):" in out
    assert "1. src/plugin.cpp:3:5" in out
    assert "   ERROR: 'obs_data_t' was not declared" in out


def test_parse_log_json_from_stdin(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    root = _project(tmp_path)
    monkeypatch.setattr(sys, "stdin", io.StringIO("a.cpp:1:1: warning: unused\n"))

    exit_code = _run(root, "parse-log", "-", "--json")

    payload = _json_out(capsys)
    assert exit_code == EXIT_OK
    assert payload["command"] == "parse-log"
    diagnostics = payload["diagnostics"]
    assert isinstance(diagnostics, list)
    assert diagnostics[0]["severity"] == "warning"


def test_parse_log_without_diagnostics(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = _project(tmp_path)
    log = root / "clean.log"
    log.write_text("[100%] Built target plugin\n", encoding="utf-8")

    assert _run(root, "parse-log", str(log)) == EXIT_OK
    assert "No diagnostics found." in capsys.readouterr().out


def test_missing_log_file_is_usage_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    root = _project(tmp_path)

    exit_code = _run(root, "parse-log", str(root / "absent.log"))

    assert exit_code == EXIT_USAGE
    assert "error: file not found" in capsys.readouterr().err


def test_bad_root_and_bad_config_are_usage_errors(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    root = _project(tmp_path)
    (root / ".obspluginrc.json").write_text("{broken", encoding="utf-8")

    assert _run(tmp_path / "nope", "parse-log", "-") == EXIT_USAGE
    assert _run(root, "parse-log", "-") == EXIT_USAGE
    err = capsys.readouterr().err
    assert "project root is not a directory" in err
    assert "invalid JSON" in err


def test_check_conventions(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = _project(tmp_path)
    (root / "src" / "filter.h").write_text("struct Filter {};\n", encoding="utf-8")
    (root / "src" / "good.hpp").write_text("#pragma once\nstruct Good {};\n", encoding="utf-8")

    exit_code = _run(root, "check-conventions", "src/filter.h", "src/good.hpp")

    out = capsys.readouterr().out
    assert exit_code == EXIT_FAILED
    assert "FAIL  src/filter.h" in out
    assert "[wrong-header-extension]" in out
    assert "[missing-guard]" in out
    assert "OK  src/good.hpp" in out


def test_check_conventions_json(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = _project(tmp_path)
    (root / "src" / "good.hpp").write_text("#pragma once\n", encoding="utf-8")

    exit_code = _run(root, "check-conventions", "src/good.hpp", "--json")

    assert exit_code == EXIT_OK
    assert _json_out(capsys) == {"command": "check-conventions", "files": {"src/good.hpp": []}}


def test_fix_conventions_inserts_guard(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = _project(tmp_path)
    header = root / "src" / "filter.hpp"
    header.write_text("struct Filter {};\n", encoding="utf-8")

    exit_code = _run(root, "fix-conventions", "src/filter.hpp")

    assert exit_code == EXIT_OK
    assert header.read_text(encoding="utf-8") == "#pragma once\n\nstruct Filter {};\n"
    assert "fixed missing-guard" in capsys.readouterr().out


def test_build_success_streams_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = _project(tmp_path)

    exit_code = _run(root, "build")

    out = capsys.readouterr().out
    assert exit_code == EXIT_OK
    assert "Building with preset: linux" in out
    assert "compiled" in out
    assert "Build completed successfully" in out


def test_failed_build_with_auto_inject_prints_fix_request(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = f"import sys; sys.stderr.write({GCC_LOG!r}); sys.exit(2)"
    root = _project(tmp_path, build_code=code, auto_inject=True)

    exit_code = _run(root, "build", "--json")

    payload = _json_out(capsys)
    assert exit_code == EXIT_FAILED
    result = payload["result"]
    assert isinstance(result, dict)
    assert result["exit_code"] == 2
    assert result["diagnostics"][0]["file"] == "src/plugin.cpp"
    fix_request = payload["fix_request"]
    assert isinstance(fix_request, str)
    assert "Please analyze and fix these build errors:" in fix_request
    assert "Error context: 'obs_data_t' was not declared" in fix_request


def test_failed_build_without_auto_inject(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    root = _project(tmp_path, build_code="import sys; sys.exit(1)")

    exit_code = _run(root, "build")

    out = capsys.readouterr().out
    assert exit_code == EXIT_FAILED
    assert "Build failed with exit code 1" in out
    assert "AI fix request:" not in out


def test_configure_reports_missing_cache(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    root = _project(tmp_path)

    assert _run(root, "configure") == EXIT_OK
    assert "Error: CMakeCache.txt not found" in capsys.readouterr().out


def _write_cache(root: Path, qt_dir: Path) -> None:
    build_dir = root / "build_linux"
    build_dir.mkdir()
    (build_dir / "CMakeCache.txt").write_text(f"Qt6_DIR:PATH={qt_dir}\n", encoding="utf-8")


def test_deps_reports_differences(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = _project(tmp_path)
    qt_dir = tmp_path / "qt6"
    qt_dir.mkdir()
    _write_cache(root, qt_dir)

    exit_code = _run(root, "deps", "--json")

    payload = _json_out(capsys)
    assert exit_code == EXIT_OK
    differences = payload["differences"]
    assert isinstance(differences, dict)
    assert differences["qt6"] == {"current": ".deps/qt6", "cache": str(qt_dir)}
    assert payload["saved_to"] is None


def test_deps_update_writes_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = _project(tmp_path)
    qt_dir = tmp_path / "qt6"
    qt_dir.mkdir()
    _write_cache(root, qt_dir)

    exit_code = _run(root, "deps", "--update")

    out = capsys.readouterr().out
    assert exit_code == EXIT_OK
    assert f"qt6: .deps/qt6 -> {qt_dir}" in out
    saved = json.loads((root / ".obspluginrc.json").read_text(encoding="utf-8"))
    assert saved["dependencies"]["qt6"] == str(qt_dir)
    assert saved["platform_profiles"]["linux"]["configure_command"] == _python("pass")


def test_deps_without_cache_fails(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = _project(tmp_path)

    assert _run(root, "deps", "--build-dir", "missing") == EXIT_FAILED
    assert "CMakeCache.txt not found" in capsys.readouterr().out


def test_envelope_fix_from_log(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = _project(tmp_path)
    log = root / "build.log"
    log.write_text(GCC_LOG, encoding="utf-8")

    exit_code = _run(
        root, "envelope", "--intent", "fix", "--log", str(log), "--file", "src/plugin.cpp", "--json"
    )

    payload = _json_out(capsys)
    assert exit_code == EXIT_OK
    envelope = payload["envelope"]
    assert isinstance(envelope, dict)
    assert envelope["intent"] == "fix"
    assert envelope["user_prompt"].startswith("Please analyze and fix these build errors:")
    assert envelope["recent_build_log"] == GCC_LOG
    assert envelope["file_contexts"][0]["path"] == "src/plugin.cpp"


def test_envelope_text_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = _project(tmp_path)

    assert _run(root, "envelope", "--prompt", "Add a dock") == EXIT_OK
    out = capsys.readouterr().out
    assert "User Request: Add a dock" in out
    assert "Context: {" in out


def test_apply_patch_preview_does_not_write(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    root = _project(tmp_path)
    patch_file = tmp_path / "fix.txt"
    patch_file.write_text(EDIT, encoding="utf-8")
    before = (root / "src" / "plugin.cpp").read_text(encoding="utf-8")

    exit_code = _run(
        root, "apply-patch", str(patch_file), "--target", "src/plugin.cpp", "--preview"
    )

    assert exit_code == EXIT_OK
    assert "Edit Instructions Preview:" in capsys.readouterr().out
    assert (root / "src" / "plugin.cpp").read_text(encoding="utf-8") == before


def test_apply_patch_writes_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = _project(tmp_path)
    patch_file = tmp_path / "fix.txt"
    patch_file.write_text(EDIT, encoding="utf-8")

    exit_code = _run(
        root, "apply-patch", str(patch_file), "--target", "src/plugin.cpp", "--non-compliant"
    )

    out = capsys.readouterr().out
    assert exit_code == EXIT_OK
    assert "applied to 1 file(s)" in out
    assert "not convention compliant" in out
    assert "nullptr;" in (root / "src" / "plugin.cpp").read_text(encoding="utf-8")


def test_apply_patch_rejection_json(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    root = _project(tmp_path)
    patch_file = tmp_path / "fix.txt"
    patch_file.write_text(EDIT, encoding="utf-8")

    exit_code = _run(
        root, "apply-patch", str(patch_file), "--target", "src/missing.cpp", "--json"
    )

    payload = _json_out(capsys)
    assert exit_code == EXIT_FAILED
    assert payload["success"] is False
    assert payload["reason"] == "Target file does not exist: src/missing.cpp"
    patch = payload["patch"]
    assert isinstance(patch, dict)
    assert patch["validation_status"] == "invalid"

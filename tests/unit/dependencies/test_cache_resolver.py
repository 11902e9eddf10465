"""
obs-plugin-helper — unit tests for the CMake cache dependency resolver

File: tests/unit/dependencies/test_cache_resolver.py
Last updated: 2026-10-18

What this test file should cover
- Recognised cache keys are mapped; unrelated keys, comments and NOTFOUND
  values are not.
- Missing cache files are reported, never raised.
- Comparison against configured paths reports every difference.
"""

from __future__ import annotations

from pathlib import Path

from obs_plugin_helper.dependencies.cache_resolver import (
    DependencyCacheResolver,
    parse_cache_text,
)

CACHE_TEXT = """\
# This is the CMakeCache file.
// Path to a file.
OBS_STUDIO_DIR:PATH=/opt/obs-studio
Qt6_DIR:PATH=/opt/qt6/lib/cmake/Qt6
Qt6Core_DIR:PATH=/opt/qt6/lib/cmake/Qt6Core
obs-frontend-api_DIR:PATH=obs-frontend-api_DIR-NOTFOUND
libobs_DIR:PATH=
CMAKE_BUILD_TYPE:STRING=RelWithDebInfo
not a cache line
"""


def test_parse_cache_text_maps_known_keys() -> None:
    dependencies, warnings = parse_cache_text(CACHE_TEXT)

    assert dependencies == {
        "obs_studio_dir": "/opt/obs-studio",
        "qt6_dir": "/opt/qt6/lib/cmake/Qt6",
        "qt6_core_dir": "/opt/qt6/lib/cmake/Qt6Core",
    }
    assert warnings == [
        "obs-frontend-api_DIR was not found by CMake (obs-frontend-api_DIR-NOTFOUND)"
    ]


def test_parse_cache_file_reads_build_directory(tmp_path: Path) -> None:
    (tmp_path / "CMakeCache.txt").write_text(CACHE_TEXT, encoding="utf-8")

    result = DependencyCacheResolver().parse_cache_file(tmp_path)

    assert result.success is True
    assert result.dependencies["obs_studio_dir"] == "/opt/obs-studio"
    assert len(result.warnings) == 1
    assert result.errors == ()


def test_empty_cache_file_is_a_successful_parse(tmp_path: Path) -> None:
    (tmp_path / "CMakeCache.txt").write_text("", encoding="utf-8")

    result = DependencyCacheResolver().parse_cache_file(tmp_path)

    assert result.success is True
    assert result.dependencies == {}
    assert result.errors == ()
    assert result.warnings == ()


def test_missing_cache_file_is_reported(tmp_path: Path) -> None:
    result = DependencyCacheResolver().parse_cache_file(tmp_path / "build_x64")

    assert result.success is False
    assert result.dependencies == {}
    assert result.errors == (f"CMakeCache.txt not found in {tmp_path / 'build_x64'}",)


def test_validate_dependency_paths(tmp_path: Path) -> None:
    present = tmp_path / "qt6"
    present.mkdir()
    not_a_dir = tmp_path / "obs.txt"
    not_a_dir.write_text("x", encoding="utf-8")
    missing = tmp_path / "nowhere"

    warnings = DependencyCacheResolver().validate_dependency_paths(
        {"qt6_dir": str(present), "obs_studio_dir": str(not_a_dir), "libobs_dir": str(missing)}
    )

    assert warnings == [
        f"Dependency path for libobs_dir does not exist: {missing}",
        f"Dependency path for obs_studio_dir is not a directory: {not_a_dir}",
    ]


def test_compare_dependencies_reports_changed_and_missing_entries() -> None:
    comparison = DependencyCacheResolver().compare_dependencies(
        {"obs": "/old/obs", "qt6": "/opt/qt6", "libobs": "/opt/libobs"},
        {"obs_studio_dir": "/new/obs", "qt6_dir": "/opt/qt6", "qt6_core_dir": "/opt/core"},
    )

    assert comparison.has_changes is True
    assert comparison.differences == {
        "obs": {"current": "/old/obs", "cache": "/new/obs"},
        "qt6_core": {"current": None, "cache": "/opt/core"},
        "libobs": {"current": "/opt/libobs", "cache": None},
    }


def test_compare_dependencies_without_changes() -> None:
    comparison = DependencyCacheResolver().compare_dependencies({}, {})

    assert comparison.has_changes is False
    assert comparison.differences == {}


def test_find_build_directories(tmp_path: Path) -> None:
    for name in ("build_x64", "build_macos", "release-build", "src"):
        (tmp_path / name).mkdir()
    (tmp_path / "build_x64" / "CMakeCache.txt").write_text("", encoding="utf-8")
    (tmp_path / "release-build" / "CMakeCache.txt").write_text("", encoding="utf-8")
    (tmp_path / "src" / "CMakeCache.txt").write_text("", encoding="utf-8")

    found = DependencyCacheResolver().find_build_directories(tmp_path)

    assert found == [tmp_path / "build_x64", tmp_path / "release-build"]

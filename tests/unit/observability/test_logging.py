"""
obs-plugin-helper — unit tests for observability logging

File: tests/unit/observability/test_logging.py
Last updated: 2026-10-18

Purpose
- Validate structlog JSON output, redaction, correlation fields and handle
  lifecycle.

Non-functional requirements
- Deterministic and offline.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
import structlog

from obs_plugin_helper.observability.logging import (
    LoggingConfig,
    get_active_logging_handle,
    log_context,
    setup_logging,
    shutdown_logging,
)
from obs_plugin_helper.security.redaction import REDACTED_VALUE

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _logger_name() -> str:
    return f"obs_plugin_helper_tests_{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def _file_config(tmp_path: Path, name: str, **overrides: object) -> LoggingConfig:
    return LoggingConfig(
        log_file=tmp_path / "logs" / "helper.jsonl",
        log_to_stderr=False,
        logger_name=name,
        **overrides,  # type: ignore[arg-type]
    )


def test_json_lines_carry_context_and_redact_secrets(tmp_path: Path) -> None:
    name = _logger_name()
    handle = setup_logging(_file_config(tmp_path, name))
    logger = structlog.get_logger(f"{name}.build")

    with log_context(preset="linux", operation="build", patch_id=None):
        logger.info("build_started", command="cmake --build", api_key="sk-123", note="token=x")
    handle.flush()

    assert handle.log_path is not None
    records = _read_json_lines(handle.log_path)
    assert len(records) == 1
    record = records[0]
    assert record["event"] == "build_started"
    assert record["level"] == "info"
    assert record["logger"] == f"{name}.build"
    assert record["preset"] == "linux"
    assert record["operation"] == "build"
    assert "patch_id" not in record
    assert record["api_key"] == REDACTED_VALUE
    assert record["note"] == f"token={REDACTED_VALUE}"
    assert "timestamp" in record


def test_stdlib_records_share_the_pipeline(tmp_path: Path) -> None:
    name = _logger_name()
    handle = setup_logging(_file_config(tmp_path, name))

    logging.getLogger(name).warning("plain password=hunter2")
    handle.flush()

    assert handle.log_path is not None
    record = _read_json_lines(handle.log_path)[0]
    assert record["event"] == f"plain password={REDACTED_VALUE}"
    assert record["level"] == "warning"


def test_level_filters_records(tmp_path: Path) -> None:
    name = _logger_name()
    handle = setup_logging(_file_config(tmp_path, name, level="WARNING"))
    logger = structlog.get_logger(name)

    logger.info("quiet")
    logger.error("loud")
    handle.flush()

    assert handle.log_path is not None
    assert [record["event"] for record in _read_json_lines(handle.log_path)] == ["loud"]


def test_redaction_can_be_disabled(tmp_path: Path) -> None:
    name = _logger_name()
    handle = setup_logging(_file_config(tmp_path, name, redact_secrets=False))

    structlog.get_logger(name).info("raw", token="visible")
    handle.flush()

    assert handle.log_path is not None
    assert _read_json_lines(handle.log_path)[0]["token"] == "visible"


def test_log_context_rejects_unknown_fields() -> None:
    with pytest.raises(ValueError, match="unsupported log context field"):
        with log_context(run_id="x"):
            pass


def test_repeated_setup_closes_previous_handle(tmp_path: Path) -> None:
    name = _logger_name()
    first = setup_logging(_file_config(tmp_path, name))
    second = setup_logging(_file_config(tmp_path, name))

    assert first.closed is True
    assert second.closed is False
    assert get_active_logging_handle() is second
    assert len(logging.getLogger(name).handlers) == 1

    shutdown_logging()

    assert second.closed is True
    assert get_active_logging_handle() is None


@pytest.mark.parametrize("level", ["LOUD", True])
def test_invalid_level_is_rejected(level: object) -> None:
    with pytest.raises(ValueError):
        setup_logging(LoggingConfig(level=level, log_to_stderr=False))  # type: ignore[arg-type]

"""Structured logging setup: structlog over stdlib handlers with redaction support."""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import structlog

from obs_plugin_helper.security.redaction import redact_mapping

_DEFAULT_LOGGER_NAME: Final[str] = "obs_plugin_helper"
_CONTEXT_KEYS: Final[frozenset[str]] = frozenset({"preset", "operation", "patch_id", "intent"})

_ACTIVE_LOCK = threading.Lock()
_ACTIVE_HANDLE: LoggingHandle | None = None


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for structured logging."""

    level: int | str = "INFO"
    log_file: Path | str | None = None
    log_to_stderr: bool = True
    json_lines: bool = True
    logger_name: str = _DEFAULT_LOGGER_NAME
    redact_secrets: bool = True


class LoggingHandle:
    """Runtime handle for an active logging setup."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        handlers: tuple[logging.Handler, ...],
        log_path: Path | None,
    ) -> None:
        self.logger = logger
        self.log_path = log_path
        self._handlers = handlers
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def flush(self) -> None:
        for handler in self._handlers:
            handler.flush()

    def close(self) -> None:
        if self._closed:
            return
        for handler in self._handlers:
            self.logger.removeHandler(handler)
            handler.flush()
            handler.close()
        self._closed = True


def redact_event(
    _logger: object, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor masking credential-like keys and tokens in values."""

    return redact_mapping(event_dict)


def setup_logging(config: LoggingConfig | None = None) -> LoggingHandle:
    """Configure structlog + stdlib logging and return the active handle.

    Any handle from a previous call is closed first, so repeated setup (tests,
    CLI re-entry) never duplicates output.
    """

    cfg = config if config is not None else LoggingConfig()
    level = _parse_level(cfg.level)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if cfg.redact_secrets:
        shared_processors.append(redact_event)

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    renderer: Any = (
        structlog.processors.JSONRenderer(sort_keys=True)
        if cfg.json_lines
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=shared_processors,
    )

    handlers: list[logging.Handler] = []
    log_path: Path | None = None
    if cfg.log_file is not None:
        log_path = Path(cfg.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    if cfg.log_to_stderr:
        handlers.append(logging.StreamHandler(sys.stderr))

    logger = logging.getLogger(cfg.logger_name)

    with _ACTIVE_LOCK:
        global _ACTIVE_HANDLE
        if _ACTIVE_HANDLE is not None:
            _ACTIVE_HANDLE.close()

        logger.setLevel(level)
        logger.propagate = False
        for handler in handlers:
            handler.setLevel(level)
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        handle = LoggingHandle(logger=logger, handlers=tuple(handlers), log_path=log_path)
        _ACTIVE_HANDLE = handle
    return handle


def shutdown_logging() -> None:
    """Close the active logging handle, if any."""

    with _ACTIVE_LOCK:
        global _ACTIVE_HANDLE
        if _ACTIVE_HANDLE is not None:
            _ACTIVE_HANDLE.close()
            _ACTIVE_HANDLE = None


def get_active_logging_handle() -> LoggingHandle | None:
    with _ACTIVE_LOCK:
        return _ACTIVE_HANDLE


@contextmanager
def log_context(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields (preset, operation, patch_id, intent) for a block."""

    unknown = sorted(set(fields) - _CONTEXT_KEYS)
    if unknown:
        raise ValueError(f"unsupported log context field(s): {', '.join(unknown)}")
    bound = {key: value for key, value in fields.items() if value}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def _parse_level(level: int | str) -> int:
    if isinstance(level, bool):
        raise ValueError("log level must be an int or level name")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unknown log level: {level!r}")
    return resolved


__all__ = [
    "LoggingConfig",
    "LoggingHandle",
    "get_active_logging_handle",
    "log_context",
    "redact_event",
    "setup_logging",
    "shutdown_logging",
]

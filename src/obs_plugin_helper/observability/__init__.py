"""Public observability primitives: structured logging and correlation context."""

from obs_plugin_helper.observability.logging import (
    LoggingConfig,
    LoggingHandle,
    get_active_logging_handle,
    log_context,
    redact_event,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "LoggingConfig",
    "LoggingHandle",
    "get_active_logging_handle",
    "log_context",
    "redact_event",
    "setup_logging",
    "shutdown_logging",
]

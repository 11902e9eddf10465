"""Build process orchestration: spawn, stream, cancel and time-box build commands."""

from obs_plugin_helper.build.orchestrator import (
    DEFAULT_TIMEOUT_SECONDS,
    BuildInvocation,
    BuildOperation,
    BuildOrchestrator,
    BuildResult,
    clean_command,
)
from obs_plugin_helper.build.sinks import MemorySink, NullSink, OutputSink, StreamSink

__all__ = [
    "BuildInvocation",
    "BuildOperation",
    "BuildOrchestrator",
    "BuildResult",
    "DEFAULT_TIMEOUT_SECONDS",
    "MemorySink",
    "NullSink",
    "OutputSink",
    "StreamSink",
    "clean_command",
]

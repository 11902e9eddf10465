"""UI package exports for the CLI and its plain-text renderer."""

from obs_plugin_helper.ui.cli import CLIError, build_parser, main, run_cli
from obs_plugin_helper.ui.render import CLIRenderer, create_renderer

__all__ = [
    "CLIError",
    "CLIRenderer",
    "build_parser",
    "create_renderer",
    "main",
    "run_cli",
]

"""Command-line interface router for obs-plugin-helper."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from obs_plugin_helper.build import (
    DEFAULT_TIMEOUT_SECONDS,
    BuildOrchestrator,
    BuildResult,
    MemorySink,
    StreamSink,
)
from obs_plugin_helper.config import (
    PlatformProfile,
    PluginConfig,
    apply_dependency_updates,
    current_platform,
    load_config,
    save_config,
)
from obs_plugin_helper.context import ActiveFile, ContextAssembler, Intent, format_request
from obs_plugin_helper.dependencies import DependencyCacheResolver
from obs_plugin_helper.diagnostics import (
    Diagnostic,
    extract,
    format_error_display,
    validate_conventions,
)
from obs_plugin_helper.errors import ConfigError
from obs_plugin_helper.observability import LoggingConfig, setup_logging, shutdown_logging
from obs_plugin_helper.patching import PatchManager
from obs_plugin_helper.ui.render import CLIRenderer, create_renderer
from obs_plugin_helper.utils.fs import read_text

DEFAULT_LOG_LEVEL: Final[str] = "WARNING"
EXIT_OK: Final[int] = 0
EXIT_FAILED: Final[int] = 1
EXIT_USAGE: Final[int] = 2


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = EXIT_FAILED

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="obs-plugin-helper",
        description=(
            "obs-plugin-helper — build, diagnose and patch OBS Studio plugins.\n\n"
            "Common workflows:\n"
            "  obs-plugin-helper configure          Run the CMake configure preset\n"
            "  obs-plugin-helper build              Build and list diagnostics\n"
            "  obs-plugin-helper parse-log out.txt  Extract diagnostics from a log\n"
            "  obs-plugin-helper deps               Compare CMakeCache.txt with config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--root",
        default=".",
        help="Plugin project root (default: current working directory).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to the JSON config (default: <root>/.obspluginrc.json if present).",
    )
    common.add_argument(
        "--platform",
        default=None,
        choices=("macos", "windows", "linux"),
        help="Platform profile to use (default: detected from the host).",
    )
    common.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Emit machine-readable JSON instead of text.",
    )
    common.add_argument(
        "--log-level",
        default=DEFAULT_LOG_LEVEL,
        help=f"Structured log level written to stderr (default: {DEFAULT_LOG_LEVEL}).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # configure / build / clean -------------------------------------------
    for name, help_text, handler in (
        ("configure", "Run the configure command of the platform profile", _cmd_configure),
        ("build", "Run the build command and report diagnostics", _cmd_build),
        ("clean", "Run the clean target of the platform preset", _cmd_clean),
    ):
        sub = subparsers.add_parser(name, parents=[common], help=help_text)
        sub.add_argument(
            "--timeout",
            type=float,
            default=None,
            help="Seconds before the process is terminated (default: 300).",
        )
        sub.set_defaults(handler=handler)

    # parse-log -------------------------------------------------------------
    parse_parser = subparsers.add_parser(
        "parse-log",
        parents=[common],
        help="Extract diagnostics from a saved build log ('-' reads stdin)",
    )
    parse_parser.add_argument("log_path", help="Build log file, or '-' for stdin.")
    parse_parser.add_argument("--preset", default="", help="Preset label for log context.")
    parse_parser.set_defaults(handler=_cmd_parse_log)

    # check-conventions -----------------------------------------------------
    check_parser = subparsers.add_parser(
        "check-conventions",
        parents=[common],
        help="Report plugin convention violations in source files",
    )
    check_parser.add_argument("paths", nargs="+", help="Files to check.")
    check_parser.set_defaults(handler=_cmd_check_conventions)

    # fix-conventions -------------------------------------------------------
    fix_parser = subparsers.add_parser(
        "fix-conventions",
        parents=[common],
        help="Apply auto-fixable convention violations in place",
    )
    fix_parser.add_argument("paths", nargs="+", help="Files to fix.")
    fix_parser.set_defaults(handler=_cmd_fix_conventions)

    # deps --------------------------------------------------------------------
    deps_parser = subparsers.add_parser(
        "deps",
        parents=[common],
        help="Parse CMakeCache.txt and compare dependency paths with the config",
    )
    deps_parser.add_argument(
        "--build-dir",
        default=None,
        help="Build directory holding CMakeCache.txt (default: from the platform profile).",
    )
    deps_parser.add_argument(
        "--update",
        action="store_true",
        default=False,
        help="Write cache-reported dependency paths back to the config file.",
    )
    deps_parser.set_defaults(handler=_cmd_deps)

    # envelope ----------------------------------------------------------------
    envelope_parser = subparsers.add_parser(
        "envelope",
        parents=[common],
        help="Print the AI request that would be sent for a prompt",
    )
    envelope_parser.add_argument(
        "--intent",
        default=Intent.ASSIST.value,
        choices=[intent.value for intent in Intent],
        help="Request intent (default: assist).",
    )
    envelope_parser.add_argument("--prompt", default="", help="User prompt text.")
    envelope_parser.add_argument("--file", default=None, help="Active file for context.")
    envelope_parser.add_argument("--line", type=int, default=0, help="Cursor line (0-based).")
    envelope_parser.add_argument(
        "--log",
        dest="log_path",
        default=None,
        help="Build log to attach; for intent 'fix' its diagnostics drive the prompt.",
    )
    envelope_parser.set_defaults(handler=_cmd_envelope)

    # apply-patch -------------------------------------------------------------
    apply_parser = subparsers.add_parser(
        "apply-patch",
        parents=[common],
        help="Validate and apply an AI-proposed patch file",
    )
    apply_parser.add_argument("patch_path", help="Unified diff or SEARCH/REPLACE edit file.")
    apply_parser.add_argument(
        "--target",
        dest="targets",
        action="append",
        required=True,
        help="Target file (repeatable).",
    )
    apply_parser.add_argument(
        "--preview",
        action="store_true",
        default=False,
        help="Only validate and print a preview.",
    )
    apply_parser.add_argument(
        "--non-compliant",
        action="store_true",
        default=False,
        help="Mark the patch as not convention compliant (disables auto-commit).",
    )
    apply_parser.set_defaults(handler=_cmd_apply_patch)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return EXIT_USAGE

    setup_logging(LoggingConfig(level=namespace.log_level, log_to_stderr=True))
    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    finally:
        shutdown_logging()
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_configure(args: argparse.Namespace) -> int:
    return _run_build_operation(args, "configure")


def _cmd_build(args: argparse.Namespace) -> int:
    return _run_build_operation(args, "build")


def _cmd_clean(args: argparse.Namespace) -> int:
    return _run_build_operation(args, "clean")


def _cmd_parse_log(args: argparse.Namespace) -> int:
    config = _load(args)
    text = _read_input(args.log_path)
    conventions = config.coding_conventions
    diagnostics = extract(
        text,
        args.preset,
        header_extension=conventions.header_extension,
        ui_components_dir=conventions.ui_components_dir,
    )

    if args.json:
        _emit_json(
            {
                "command": "parse-log",
                "diagnostics": [item.to_dict() for item in diagnostics],
            }
        )
    else:
        renderer = _get_renderer(args)
        if diagnostics:
            renderer.heading(f"Found {len(diagnostics)} diagnostic(s):")
            renderer.blank()
            renderer.lines(format_error_display(diagnostics))
        else:
            renderer.text("No diagnostics found.")
    return EXIT_FAILED if any(item.severity == "error" for item in diagnostics) else EXIT_OK


def _cmd_check_conventions(args: argparse.Namespace) -> int:
    config = _load(args)
    root = _root(args)
    report: dict[str, list[dict[str, object]]] = {}
    for raw_path in args.paths:
        path = _resolve_file(raw_path, root)
        display = _display_path(path, root)
        violations = validate_conventions(display, read_text(path), config.coding_conventions)
        report[display] = [violation.to_dict() for violation in violations]

    if args.json:
        _emit_json({"command": "check-conventions", "files": report})
    else:
        renderer = _get_renderer(args)
        for display, violations in report.items():
            if not violations:
                renderer.ok(display)
                continue
            renderer.fail(display)
            renderer.items([f"[{item['kind']}] {item['suggestion']}" for item in violations])
    return EXIT_FAILED if any(report.values()) else EXIT_OK


def _cmd_fix_conventions(args: argparse.Namespace) -> int:
    config = _load(args)
    root = _root(args)
    manager = PatchManager(root, config=config)
    results = []
    for raw_path in args.paths:
        path = _resolve_file(raw_path, root)
        violations = validate_conventions(
            _display_path(path, root), read_text(path), config.coding_conventions
        )
        results.append(manager.auto_fix_conventions(path, violations))

    if args.json:
        _emit_json(
            {
                "command": "fix-conventions",
                "files": [
                    {
                        "path": result.path,
                        "changed": result.changed,
                        "applied": [kind.value for kind in result.applied],
                        "error": result.error,
                    }
                    for result in results
                ],
            }
        )
    else:
        renderer = _get_renderer(args)
        for result in results:
            if result.error is not None:
                renderer.fail(f"{result.path}: {result.error}")
            elif result.changed:
                kinds = ", ".join(kind.value for kind in result.applied)
                renderer.ok(f"{result.path}: fixed {kinds}")
            else:
                renderer.ok(f"{result.path}: nothing to fix")
    return EXIT_OK if all(result.success for result in results) else EXIT_FAILED


def _cmd_deps(args: argparse.Namespace) -> int:
    config = _load(args)
    root = _root(args)
    build_dir = (
        _resolve_dir(args.build_dir, root)
        if args.build_dir
        else root / config.build_directory(args.platform)
    )
    resolver = DependencyCacheResolver()
    validation = resolver.parse_cache_file(build_dir)
    if validation.success:
        path_warnings = resolver.validate_dependency_paths(validation.dependencies)
        validation = validation.with_warnings(tuple(path_warnings))
    comparison = resolver.compare_dependencies(config.dependencies, validation.dependencies)

    saved_to: Path | None = None
    if args.update and validation.success and comparison.has_changes:
        updated = apply_dependency_updates(config, comparison.differences)
        target = Path(args.config_path) if args.config_path else root
        saved_to = save_config(updated, target)

    if args.json:
        _emit_json(
            {
                "command": "deps",
                "build_dir": str(build_dir),
                "validation": validation.to_dict(),
                "differences": comparison.differences,
                "saved_to": str(saved_to) if saved_to is not None else None,
            }
        )
    else:
        renderer = _get_renderer(args)
        renderer.kv("Build directory", build_dir)
        for key, value in sorted(validation.dependencies.items()):
            renderer.kv(f"  {key}", value)
        for warning in validation.warnings:
            renderer.warning(warning)
        for error in validation.errors:
            renderer.error(error)
        if comparison.has_changes:
            renderer.section("Differences from config:")
            for key, pair in sorted(comparison.differences.items()):
                renderer.text(f"  {key}: {pair['current']} -> {pair['cache']}")
        elif validation.success:
            renderer.text("Config matches the build cache.")
        if saved_to is not None:
            renderer.kv("Updated config", saved_to)
    return EXIT_OK if validation.success else EXIT_FAILED


def _cmd_envelope(args: argparse.Namespace) -> int:
    config = _load(args)
    root = _root(args)
    assembler = ContextAssembler(config, root, platform=args.platform)
    intent = Intent(args.intent)

    active_file = None
    if args.file:
        active_file = ActiveFile(
            path=_display_path(_resolve_file(args.file, root), root), cursor_line=args.line
        )

    diagnostics: tuple[Diagnostic, ...] = ()
    if args.log_path:
        log_text = _read_input(args.log_path)
        assembler.update_build_log(log_text)
        conventions = config.coding_conventions
        diagnostics = tuple(
            extract(
                log_text,
                header_extension=conventions.header_extension,
                ui_components_dir=conventions.ui_components_dir,
            )
        )

    if intent is Intent.FIX and not args.prompt:
        envelope = assembler.fix_request(list(diagnostics), active_file=active_file)
    else:
        envelope = assembler.build_envelope(
            intent, args.prompt, active_file=active_file, diagnostics=diagnostics
        )

    if args.json:
        _emit_json({"command": "envelope", "envelope": envelope.to_dict()})
    else:
        _get_renderer(args).text(format_request(envelope))
    return EXIT_OK


def _cmd_apply_patch(args: argparse.Namespace) -> int:
    config = _load(args)
    root = _root(args)
    content = _read_input(args.patch_path)
    manager = PatchManager(root, config=config)
    patch = manager.generate_patch(
        content, list(args.targets), convention_compliant=not args.non_compliant
    )
    renderer = _get_renderer(args)

    if args.preview:
        outcome = manager.validate(patch)
        if args.json:
            _emit_json(
                {
                    "command": "apply-patch",
                    "preview": manager.preview(patch),
                    "valid": outcome.valid,
                    "reason": outcome.reason,
                    "warnings": list(outcome.warnings),
                }
            )
        else:
            renderer.text(manager.preview(patch))
            for warning in outcome.warnings:
                renderer.warning(warning)
            if not outcome.valid:
                renderer.error(outcome.reason or "patch is invalid")
        return EXIT_OK if outcome.valid else EXIT_FAILED

    result = manager.apply(patch)
    if args.json:
        _emit_json(
            {
                "command": "apply-patch",
                "patch": patch.to_dict(),
                "success": result.success,
                "reason": result.reason,
                "written_files": list(result.written_files),
                "committed": result.committed,
                "commit_error": result.commit_error,
                "warnings": list(result.warnings),
            }
        )
        return EXIT_OK if result.success else EXIT_FAILED

    for warning in result.warnings:
        renderer.warning(warning)
    if not result.success:
        renderer.fail(f"patch {patch.id} rejected: {result.reason}")
        return EXIT_FAILED
    renderer.ok(f"patch {patch.id} applied to {len(result.written_files)} file(s)")
    renderer.items(list(result.written_files))
    if result.committed:
        renderer.text("Changes committed.")
    elif result.commit_error is not None:
        renderer.warning(f"auto-commit failed: {result.commit_error}")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_build_operation(args: argparse.Namespace, operation: str) -> int:
    config = _load(args)
    root = _root(args)
    profile = _profile(config, args.platform)
    sink = MemorySink() if args.json else StreamSink(sys.stdout)
    assembler = ContextAssembler(config, root, platform=args.platform)
    orchestrator = BuildOrchestrator(
        sink=sink,
        config=config,
        platform=args.platform,
        on_dependencies=lambda validation: assembler.set_runtime_dependencies(
            validation.dependencies
        ),
        timeout_seconds=args.timeout or DEFAULT_TIMEOUT_SECONDS,
    )
    runner = getattr(orchestrator, operation)
    result: BuildResult = asyncio.run(runner(profile, root))

    fix_request: str | None = None
    auto_inject = config.auto_features.auto_inject_ai_context
    if operation == "build" and not result.success and auto_inject:
        assembler.update_build_log(result.stderr or result.stdout)
        errors = [item for item in result.diagnostics if item.severity == "error"]
        fix_request = format_request(
            assembler.fix_request(errors, build_command=result.command)
        )

    if args.json:
        payload: dict[str, object] = {"command": operation, "result": result.to_dict()}
        if fix_request is not None:
            payload["fix_request"] = fix_request
        _emit_json(payload)
    elif fix_request is not None:
        renderer = _get_renderer(args)
        renderer.section("AI fix request:")
        renderer.text(fix_request)
    return EXIT_OK if result.success else EXIT_FAILED


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=bool(args.no_color), verbose=bool(args.verbose))


def _root(args: argparse.Namespace) -> Path:
    candidate = Path(args.root).expanduser().resolve()
    if not candidate.is_dir():
        raise CLIError(f"project root is not a directory: {candidate}", exit_code=EXIT_USAGE)
    return candidate


def _load(args: argparse.Namespace) -> PluginConfig:
    try:
        return load_config(_root(args), config_path=args.config_path)
    except ConfigError as exc:
        raise CLIError(str(exc), exit_code=EXIT_USAGE) from exc


def _profile(config: PluginConfig, platform: str | None) -> PlatformProfile:
    profile = config.platform_profile(platform)
    if profile is None:
        name = platform or current_platform()
        raise CLIError(f"no platform profile configured for {name!r}", exit_code=EXIT_USAGE)
    return profile


def _resolve_file(raw: str, root: Path) -> Path:
    candidate = Path(raw).expanduser()
    resolved = candidate if candidate.is_absolute() else root / candidate
    if not resolved.is_file():
        raise CLIError(f"file not found: {raw}", exit_code=EXIT_USAGE)
    return resolved.resolve()


def _resolve_dir(raw: str, root: Path) -> Path:
    candidate = Path(raw).expanduser()
    return (candidate if candidate.is_absolute() else root / candidate).resolve()


def _display_path(path: Path, root: Path) -> str:
    try:
        return path.resolve().relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def _read_input(raw: str) -> str:
    if raw == "-":
        return sys.stdin.read()
    path = Path(raw).expanduser()
    if not path.is_file():
        raise CLIError(f"file not found: {raw}", exit_code=EXIT_USAGE)
    return read_text(path)


__all__ = ["CLIError", "build_parser", "main", "run_cli"]

"""
obs-plugin-helper — project config loader.

File: src/obs_plugin_helper/config/loader.py
Last updated: 2026-10-18

Purpose
- Load the effective project config from defaults, ``.obspluginrc.json`` and
  ``OBS_HELPER_`` environment variables.
- Persist a config back to disk when a caller chooses to.

Functional requirements
- Precedence: env (OBS_HELPER_) > file > defaults.
- A missing file is only an error when the path was given explicitly.
- Writes are atomic; the document keeps the schema's field order.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Literal

import structlog

from obs_plugin_helper.config.schema import (
    CONFIG_FILENAME,
    PluginConfig,
    assert_valid_config,
    config_to_payload,
    default_config_payload,
    merge_config,
)
from obs_plugin_helper.errors import ConfigLoadError
from obs_plugin_helper.utils.fs import atomic_write_text

ENV_PREFIX: Final[str] = "OBS_HELPER_"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

# Platform profiles are addressed by the config file only.
_ENV_EXCLUDED_SECTIONS: Final[frozenset[str]] = frozenset({"platform_profiles"})

_OPTIONAL_BINDINGS: Final[tuple[tuple[tuple[str, ...], Literal["str", "bool"]], ...]] = (
    (("coding_conventions", "namespace"), "str"),
    (("ai_prompts", "custom_system_prompt"), "str"),
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class _Binding:
    path: tuple[str, ...]
    value_type: Literal["str", "bool"]


def find_config_file(root_dir: str | Path) -> Path | None:
    candidate = Path(root_dir) / CONFIG_FILENAME
    return candidate if candidate.is_file() else None


def load_config(
    root_dir: str | Path | None = None,
    *,
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> PluginConfig:
    """Load the effective configuration for a project root."""

    explicit = config_path is not None
    resolved = Path(config_path) if explicit else Path(root_dir or ".") / CONFIG_FILENAME
    env_map = dict(os.environ if environ is None else environ)

    file_payload = _load_json_file(resolved, required=explicit)
    merged = merge_config(default_config_payload(), file_payload)
    assert_valid_config(merged)

    overrides = _collect_env_overrides(merged, env_map)
    if overrides:
        merged = merge_config(merged, overrides)
    config = assert_valid_config(merged)

    logger.debug(
        "config_loaded",
        path=str(resolved),
        from_file=bool(file_payload),
        env_overrides=sorted(_flatten_keys(overrides)),
    )
    return config


def save_config(config: PluginConfig, path: str | Path) -> Path:
    """Write ``config`` as indented JSON; returns the written path."""

    target = Path(path)
    if target.is_dir():
        target = target / CONFIG_FILENAME
    document = json.dumps(config_to_payload(config), indent=2, ensure_ascii=False) + "\n"
    atomic_write_text(target, document)
    logger.info("config_saved", path=str(target))
    return target


def _load_json_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigLoadError(
            f"invalid JSON in {path}: {exc.msg} (line {exc.lineno}, column {exc.colno})"
        ) from exc
    if not isinstance(payload, dict):
        raise ConfigLoadError(f"config root in {path} must be a JSON object")
    return payload


def _collect_env_overrides(
    config: Mapping[str, object], environ: Mapping[str, str]
) -> dict[str, Any]:
    bindings = _build_bindings(config)
    overrides: dict[str, Any] = {}
    for env_name in sorted(bindings):
        raw = environ.get(env_name)
        if raw is None:
            continue
        binding = bindings[env_name]
        value = _coerce_env(raw, binding.value_type, env_name, binding.path)
        _set_nested(overrides, binding.path, value)
    return overrides


def _build_bindings(config: Mapping[str, object]) -> dict[str, _Binding]:
    bindings: dict[str, _Binding] = {}
    for path, value in _iter_scalar_paths(config):
        if path[0] in _ENV_EXCLUDED_SECTIONS:
            continue
        if isinstance(value, bool):
            bindings[_env_name_for_path(path)] = _Binding(path, "bool")
        elif isinstance(value, str):
            bindings[_env_name_for_path(path)] = _Binding(path, "str")
    for path, kind in _OPTIONAL_BINDINGS:
        bindings.setdefault(_env_name_for_path(path), _Binding(path, kind))
    return bindings


def _iter_scalar_paths(
    payload: Mapping[str, object],
    prefix: tuple[str, ...] = (),
) -> list[tuple[tuple[str, ...], object]]:
    pairs: list[tuple[tuple[str, ...], object]] = []
    for key in sorted(payload):
        value = payload[key]
        path = (*prefix, key)
        if isinstance(value, Mapping):
            pairs.extend(_iter_scalar_paths(value, path))
        else:
            pairs.append((path, value))
    return pairs


def _coerce_env(
    raw: str,
    value_type: Literal["str", "bool"],
    env_name: str,
    path: tuple[str, ...],
) -> object:
    value = raw.strip()
    if value_type == "str":
        return value
    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(
        f"{env_name} -> {'.'.join(path)} must be a boolean (true/false/1/0/yes/no/on/off)"
    )


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[path[-1]] = value


def _flatten_keys(payload: Mapping[str, object]) -> list[str]:
    return [".".join(path) for path, _ in _iter_scalar_paths(payload)]


def _env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


__all__ = [
    "ENV_PREFIX",
    "find_config_file",
    "load_config",
    "save_config",
]

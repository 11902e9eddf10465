"""Module entrypoint for ``python -m obs_plugin_helper``."""

from __future__ import annotations

from obs_plugin_helper.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())

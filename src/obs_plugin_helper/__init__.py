"""
obs-plugin-helper — package root

File: src/obs_plugin_helper/__init__.py
Last updated: 2026-10-18

Purpose
- Package root for the OBS plugin build diagnostics and AI patch pipeline.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
- Subpackages are imported explicitly by callers; nothing heavy loads here.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]

"""
obs-plugin-helper — integration test package

File: tests/integration/__init__.py
Last updated: 2026-10-18
"""

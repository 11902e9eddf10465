"""Diagnostic extraction and convention checks for plugin build output."""

from obs_plugin_helper.diagnostics.conventions import (
    FileKind,
    classify_file,
    has_include_guard,
    moc_include_for,
    validate_conventions,
)
from obs_plugin_helper.diagnostics.extractor import (
    AUTO_FIXABLE_KINDS,
    EXTRACTION_RULES,
    ConventionViolation,
    Diagnostic,
    Dialect,
    ExtractionRule,
    Severity,
    ViolationKind,
    extract,
    format_error_display,
)

__all__ = [
    "AUTO_FIXABLE_KINDS",
    "ConventionViolation",
    "Diagnostic",
    "Dialect",
    "EXTRACTION_RULES",
    "ExtractionRule",
    "FileKind",
    "Severity",
    "ViolationKind",
    "classify_file",
    "extract",
    "format_error_display",
    "has_include_guard",
    "moc_include_for",
    "validate_conventions",
]

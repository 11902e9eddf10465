"""
obs-plugin-helper — redaction utilities

File: src/obs_plugin_helper/security/redaction.py
Last updated: 2026-10-18

Purpose
- Strip secret-looking tokens from build logs and log events before they leave
  the process (AI request envelopes, JSON log lines).

Functional requirements
- Deterministic: the same input always produces the same output.
- Mapping redaction masks values of sensitive keys regardless of content.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Final

REDACTED_VALUE: Final[str] = "***REDACTED***"

SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "private_key",
)

_ASSIGNMENT_RE: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|client_secret|authorization)\b(\s*[:=]\s*)([^\s,;]+)"
)
_BEARER_RE: Final[re.Pattern[str]] = re.compile(r"(?i)\b(bearer\s+)[A-Za-z0-9._~+/-]+=*")
_TOKEN_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\bsk-ant-[A-Za-z0-9_-]{12,}\b"),
    re.compile(r"\bsk-[A-Za-z0-9]{12,}\b"),
    re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"),
    re.compile(r"\bAKIA[0-9A-Z]{16}\b"),
)


def redact_text(text: str) -> str:
    """Mask secret-looking substrings inside free text."""

    redacted = _BEARER_RE.sub(lambda m: f"{m.group(1)}{REDACTED_VALUE}", text)
    redacted = _ASSIGNMENT_RE.sub(
        lambda m: f"{m.group(1)}{m.group(2)}{REDACTED_VALUE}", redacted
    )
    for pattern in _TOKEN_PATTERNS:
        redacted = pattern.sub(REDACTED_VALUE, redacted)
    return redacted


def is_sensitive_key(key: str) -> bool:
    """Return ``True`` when a mapping key names a credential-like value."""

    normalized = key.strip().lower().replace("-", "_")
    return any(term in normalized for term in SENSITIVE_KEY_TERMS)


def redact_value(value: object) -> object:
    """Recursively redact strings, mappings and sequences."""

    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, Mapping):
        return redact_mapping(value)
    if isinstance(value, (list, tuple)):
        return type(value)(redact_value(item) for item in value)
    return value


def redact_mapping(payload: Mapping[str, object]) -> dict[str, object]:
    """Return a copy of ``payload`` with sensitive keys masked and text redacted."""

    redacted: dict[str, object] = {}
    for key, value in payload.items():
        if isinstance(key, str) and is_sensitive_key(key) and value is not None:
            redacted[key] = REDACTED_VALUE
        else:
            redacted[key] = redact_value(value)
    return redacted


__all__ = [
    "REDACTED_VALUE",
    "SENSITIVE_KEY_TERMS",
    "is_sensitive_key",
    "redact_mapping",
    "redact_text",
    "redact_value",
]

"""Secret redaction for logs and AI request payloads."""

from obs_plugin_helper.security.redaction import (
    REDACTED_VALUE,
    is_sensitive_key,
    redact_mapping,
    redact_text,
    redact_value,
)

__all__ = [
    "REDACTED_VALUE",
    "is_sensitive_key",
    "redact_mapping",
    "redact_text",
    "redact_value",
]

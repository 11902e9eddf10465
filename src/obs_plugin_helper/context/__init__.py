"""AI request context: prompt templates and envelope assembly."""

from obs_plugin_helper.context.assembler import (
    ActiveFile,
    ContextAssembler,
    FileContext,
    Intent,
    ProjectStructure,
    RequestEnvelope,
    format_errors_for_ai,
    format_request,
)
from obs_plugin_helper.context.templates import PromptTemplateEngine, RenderedPrompt

__all__ = [
    "ActiveFile",
    "ContextAssembler",
    "FileContext",
    "Intent",
    "ProjectStructure",
    "PromptTemplateEngine",
    "RenderedPrompt",
    "RequestEnvelope",
    "format_errors_for_ai",
    "format_request",
]

"""Tooling layer for schema-validated execution."""

from taskchain_agent.tools.gateway import ToolExecutor
from taskchain_agent.tools.registry import (
    Tool,
    ToolCall,
    ToolSummary,
    build_registry,
    create_tool,
)
from taskchain_agent.tools.validation import (
    ObjectSchema,
    PropertySchema,
    ValidationFailure,
    ValidationResult,
    ValidationSuccess,
    normalize_schema,
    validate,
)

__all__ = [
    "ObjectSchema",
    "PropertySchema",
    "Tool",
    "ToolCall",
    "ToolExecutor",
    "ToolSummary",
    "ValidationFailure",
    "ValidationResult",
    "ValidationSuccess",
    "build_registry",
    "create_tool",
    "normalize_schema",
    "validate",
]

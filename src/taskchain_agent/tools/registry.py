"""Tool definitions and registry construction."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, Field

from taskchain_agent.errors import DuplicateToolError
from taskchain_agent.tools.validation import ObjectSchema, normalize_schema

ToolFn = Callable[[dict[str, Any]], Any]


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    parameters: ObjectSchema
    execute: ToolFn
    agentic: bool = False
    system_prompt: str | None = None


class ToolCall(BaseModel):
    """One request to invoke a tool, by explicit arguments or free-text context."""

    tool_name: str
    arguments: dict[str, Any] | None = None
    context: str | None = None


def create_tool(
    name: str,
    description: str,
    parameters: ObjectSchema | Mapping[str, Any],
    execute: ToolFn,
    *,
    agentic: bool = False,
    system_prompt: str | None = None,
) -> Tool:
    """Build a ``Tool``, normalizing ``parameters`` so schema mistakes fail here."""
    return Tool(
        name=name,
        description=description,
        parameters=normalize_schema(parameters),
        execute=execute,
        agentic=agentic,
        system_prompt=system_prompt or None,
    )


def build_registry(tools: Iterable[Tool]) -> dict[str, Tool]:
    registry: dict[str, Tool] = {}
    for tool in tools:
        if tool.name in registry:
            raise DuplicateToolError(
                f"Duplicate tool name detected: '{tool.name}'", tool_name=tool.name
            )
        registry[tool.name] = tool
    return registry


class ToolSummary(BaseModel):
    """Prompt-facing view of a tool: what a planner is allowed to see."""

    name: str
    description: str
    agentic: bool = False
    parameters: dict[str, str] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)

    @classmethod
    def from_tool(cls, tool: Tool) -> ToolSummary:
        return cls(
            name=tool.name,
            description=tool.description,
            agentic=tool.agentic,
            parameters={name: prop.type for name, prop in tool.parameters.properties.items()},
            required=list(tool.parameters.required),
        )

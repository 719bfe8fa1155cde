"""Natural-language argument extraction for agentic tools."""

from __future__ import annotations

import json
import logging
from typing import Any

from taskchain_agent.errors import ExtractionFailedError, GatewayError
from taskchain_agent.llm.base import GenerationOptions, LanguageModelGateway
from taskchain_agent.tools.registry import Tool
from taskchain_agent.tools.validation import ObjectSchema, PropertySchema, validate

logger = logging.getLogger(__name__)

DEFAULT_EXTRACTION_CONTEXT = "Generate arguments for the given tool."


def describe_parameters(schema: ObjectSchema) -> str:
    lines: list[str] = []
    for name, prop in schema.properties.items():
        type_name = "number" if prop.type == "integer" else prop.type
        required = " (required)" if name in schema.required else " (optional)"
        description = f" - {prop.description}" if prop.description else ""
        options = ""
        if prop.enum:
            options = " - one of: " + ", ".join(str(option) for option in prop.enum)
        lines.append(f"- {name}: {type_name}{required}{description}{options}")
    return "\n".join(lines)


def output_shape(schema: ObjectSchema) -> dict[str, Any]:
    """Simplified shape the gateway asks the model to fill in."""
    return {name: _shape_of(prop) for name, prop in schema.properties.items()}


def _shape_of(prop: PropertySchema) -> Any:
    if prop.type == "integer":
        return "number"
    if prop.type == "object" and prop.properties:
        return {name: _shape_of(nested) for name, nested in prop.properties.items()}
    return prop.type


def build_extraction_prompt(
    tool: Tool,
    context: str,
    *,
    previous_error: str | None = None,
) -> str:
    sections = [
        "Extract the following parameters from the provided context"
        + (
            ". A previous attempt failed with an error - use this information "
            "to generate better parameters:"
            if previous_error
            else ":"
        ),
        f"Required Parameters:\n{describe_parameters(tool.parameters)}",
    ]
    if tool.system_prompt:
        sections.append(f"SYSTEM PROMPT: {tool.system_prompt}")
    sections.append(f"Context:\n{context}")
    if previous_error:
        sections.append(f"Previous attempt failed with: {previous_error}")
    closing = (
        "Extract and return all parameters as JSON matching the strict schema. "
        "Ensure all required parameters are present and correctly typed."
    )
    if previous_error:
        closing += " Consider the error message to avoid similar issues."
    sections.append(closing)
    return "\n\n".join(sections)


def fallback_context(arguments: dict[str, Any] | None) -> str:
    if not arguments:
        return DEFAULT_EXTRACTION_CONTEXT
    return (
        f"{DEFAULT_EXTRACTION_CONTEXT}\n\nSuggested arguments:\n"
        f"{json.dumps(arguments, default=str)}"
    )


async def extract_arguments(
    gateway: LanguageModelGateway,
    tool: Tool,
    context: str,
    *,
    previous_error: str | None = None,
    temperature: float = 0.1,
    model_override: str | None = None,
) -> dict[str, Any]:
    """Ask the gateway for arguments and validate them against the tool schema.

    Raises ``ExtractionFailedError`` for gateway failures, unusable structured
    output, or data that fails validation. Nothing is retried here.
    """
    prompt = build_extraction_prompt(tool, context, previous_error=previous_error)
    description = (
        f"Regenerate parameters for {tool.name} with error feedback"
        if previous_error
        else f"Extract parameters for {tool.name}"
    )
    try:
        response = await gateway.get_structured(
            prompt,
            output_shape(tool.parameters),
            GenerationOptions(temperature_override=temperature, model_override=model_override),
            description=description,
        )
    except GatewayError as exc:
        raise ExtractionFailedError(
            f"LLM gateway error while extracting parameters for tool '{tool.name}': {exc}",
            tool_name=tool.name,
        ) from exc

    if not response.is_valid or response.structured_data is None:
        reasons = ", ".join(response.validation_errors) or "no structured data returned"
        raise ExtractionFailedError(
            f"Failed to generate valid structured data for tool '{tool.name}': {reasons}",
            tool_name=tool.name,
        )

    result = validate(response.structured_data, tool.parameters)
    if not result.ok:
        raise ExtractionFailedError(
            f"Extracted data failed strict validation for tool '{tool.name}': "
            + ", ".join(result.errors),
            tool_name=tool.name,
        )

    logger.debug(
        "Extracted parameters tool=%s regenerated=%s args=%s",
        tool.name,
        previous_error is not None,
        result.sanitized,
    )
    return result.sanitized

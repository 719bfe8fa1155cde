"""Contract for the language-model gateway used by the executor and orchestrator."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel, Field

_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)


@dataclass(frozen=True)
class GenerationOptions:
    """Per-request overrides; ``None`` means use the gateway default."""

    temperature_override: float | None = None
    max_tokens_override: int | None = None
    model_override: str | None = None


class LLMUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMResponse(BaseModel):
    content: str
    usage: LLMUsage | None = None


class StructuredLLMResponse(LLMResponse):
    structured_data: dict[str, Any] | None = None
    is_valid: bool = False
    validation_errors: list[str] = Field(default_factory=list)


class LanguageModelGateway(Protocol):
    """Interface for text and structured completions.

    Implementations raise ``GatewayError`` for transport, auth, or provider
    failures. Unparseable structured output is reported through
    ``StructuredLLMResponse.is_valid`` instead of an exception.
    """

    async def get_text(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
    ) -> LLMResponse: ...

    async def get_structured(
        self,
        prompt: str,
        output_shape: dict[str, Any],
        options: GenerationOptions | None = None,
        *,
        description: str | None = None,
    ) -> StructuredLLMResponse: ...


def parse_structured_content(
    content: str,
    output_shape: dict[str, Any],
) -> tuple[dict[str, Any] | None, list[str]]:
    """Parse model output into a dict and check the top-level keys of ``output_shape``.

    Returns ``(data, [])`` on success and ``(None, errors)`` otherwise.
    """
    cleaned = _FENCE_PATTERN.sub("", content).strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        return None, [f"Failed to parse structured output: {exc.msg}"]

    if not isinstance(parsed, dict):
        return None, ["Failed to parse structured output: expected a JSON object"]

    missing = [key for key in output_shape if key not in parsed]
    if missing:
        return None, [f"Failed to parse structured output: Missing required fields: {', '.join(missing)}"]
    return parsed, []


def structured_output_system_prompt(
    output_shape: dict[str, Any],
    description: str | None = None,
) -> str:
    subject = description or "structured data"
    return (
        f"You are a helpful assistant that generates {subject} in a consistent JSON format.\n\n"
        "SCHEMA REQUIREMENTS:\n"
        f"{json.dumps(output_shape, indent=2)}\n\n"
        "INSTRUCTIONS:\n"
        "1. Analyze the user's request carefully\n"
        "2. Generate data that matches the schema exactly\n"
        "3. Output ONLY valid JSON that conforms to the schema\n"
        "4. Do not include any explanations, comments, or additional text\n"
        "5. If the request cannot be fulfilled with the given schema, return an empty object {}\n\n"
        "Your response must be parseable JSON that matches the provided schema."
    )

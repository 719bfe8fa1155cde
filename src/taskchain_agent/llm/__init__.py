"""Language-model gateway contract and the OpenAI-compatible adapter."""

from taskchain_agent.llm.base import (
    GenerationOptions,
    LanguageModelGateway,
    LLMResponse,
    LLMUsage,
    StructuredLLMResponse,
    parse_structured_content,
)
from taskchain_agent.llm.openai_chat import OpenAIChatGateway

__all__ = [
    "GenerationOptions",
    "LLMResponse",
    "LLMUsage",
    "LanguageModelGateway",
    "OpenAIChatGateway",
    "StructuredLLMResponse",
    "parse_structured_content",
]

"""Schema-enforcing tool execution gateway with extraction and retries."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Iterable
from typing import Any

from taskchain_agent.errors import (
    AgentError,
    DuplicateToolError,
    ExtractionFailedError,
    MissingInputError,
    ToolExecutionFailedError,
    ToolNotFoundError,
    ValidationFailedError,
)
from taskchain_agent.llm.base import LanguageModelGateway
from taskchain_agent.outcomes import Fail, Outcome, Succeed
from taskchain_agent.tools.extraction import extract_arguments, fallback_context
from taskchain_agent.tools.registry import Tool, ToolCall, build_registry
from taskchain_agent.tools.validation import ValidationFailure, ValidationResult, validate

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Execute registered tools with strict validation, extraction, and retries."""

    def __init__(
        self,
        *,
        tools: Iterable[Tool],
        gateway: LanguageModelGateway,
        max_retries: int = 3,
        retry_delay_s: float = 1.0,
        extraction_temperature: float = 0.1,
        regeneration_model: str | None = None,
    ) -> None:
        registry = build_registry(tools)
        if not registry:
            raise AgentError("ToolExecutor requires at least one tool to be configured")
        self.registry = registry
        self.gateway = gateway
        self.max_retries = max(1, max_retries)
        self.retry_delay_s = max(0.0, retry_delay_s)
        self.extraction_temperature = extraction_temperature
        self.regeneration_model = regeneration_model

    async def call_tool(self, tool_call: ToolCall, *, force_extraction: bool = False) -> Any:
        """Run one tool call and return the tool's result.

        Explicit ``arguments`` win over ``context`` unless ``force_extraction``
        is set, in which case arguments are always re-derived by the model.
        Validation and input errors are raised immediately; only failures of
        the tool itself are retried.
        """
        started_at = time.perf_counter()
        tool = self.get_tool(tool_call.tool_name)
        has_arguments = bool(tool_call.arguments)
        has_context = bool(tool_call.context and tool_call.context.strip())
        logger.debug(
            "Tool call requested tool=%s has_arguments=%s has_context=%s force_extraction=%s",
            tool.name,
            has_arguments,
            has_context,
            force_extraction,
        )

        if not has_arguments and not has_context:
            raise MissingInputError(
                f"Tool call for '{tool.name}' requires either 'arguments' or 'context' to be provided",
                tool_name=tool.name,
            )

        extraction_context: str | None = None
        if force_extraction or (tool.agentic and not has_arguments):
            extraction_context = (
                tool_call.context if has_context else fallback_context(tool_call.arguments)
            )
            arguments = await self._extract(tool, extraction_context)
        elif has_arguments:
            arguments = dict(tool_call.arguments or {})
        else:
            arguments = {}

        validation = validate(arguments, tool.parameters)
        if isinstance(validation, ValidationFailure):
            raise ValidationFailedError(
                f"Tool call validation failed for '{tool.name}': {', '.join(validation.errors)}",
                tool_name=tool.name,
                errors=validation.errors,
            )
        arguments = validation.sanitized

        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            if attempt > 1 and extraction_context is not None and last_error is not None:
                arguments = await self._regenerate(tool, extraction_context, arguments, last_error)

            outcome = await self._attempt(tool, arguments, attempt)
            if isinstance(outcome, Succeed):
                logger.info(
                    "Tool call finished tool=%s status=ok attempts=%d duration_ms=%.2f",
                    tool.name,
                    attempt,
                    _duration_ms(started_at),
                )
                return outcome.value

            last_error = outcome.error
            if attempt < self.max_retries and self.retry_delay_s > 0:
                await asyncio.sleep(self.retry_delay_s)

        logger.error(
            "Tool call finished tool=%s status=failed attempts=%d duration_ms=%.2f",
            tool.name,
            self.max_retries,
            _duration_ms(started_at),
        )
        raise ToolExecutionFailedError(
            f"Tool '{tool.name}' failed after {self.max_retries} attempts: {last_error}",
            tool_name=tool.name,
            attempts=self.max_retries,
            last_error=str(last_error) if last_error is not None else None,
        )

    async def call_tools(self, tool_calls: Iterable[ToolCall]) -> list[Any]:
        results: list[Any] = []
        for tool_call in tool_calls:
            results.append(await self.call_tool(tool_call))
        return results

    def add_tool(self, tool: Tool) -> None:
        if tool.name in self.registry:
            raise DuplicateToolError(f"Tool '{tool.name}' already exists", tool_name=tool.name)
        self.registry[tool.name] = tool
        logger.info("Added tool name=%s", tool.name)

    def remove_tool(self, tool_name: str) -> bool:
        removed = self.registry.pop(tool_name, None) is not None
        if removed:
            logger.info("Removed tool name=%s", tool_name)
        return removed

    def get_tools(self) -> list[Tool]:
        return list(self.registry.values())

    def get_tool(self, tool_name: str) -> Tool:
        tool = self.registry.get(tool_name)
        if tool is None:
            raise ToolNotFoundError(f"Tool '{tool_name}' not found", tool_name=tool_name)
        return tool

    def validate_tool_call(self, tool_call: ToolCall) -> ValidationResult:
        """Check explicit arguments against the tool schema without executing anything."""
        tool = self.registry.get(tool_call.tool_name)
        if tool is None:
            return ValidationFailure([f"Tool '{tool_call.tool_name}' not found"])
        return validate(tool_call.arguments or {}, tool.parameters)

    async def _extract(self, tool: Tool, context: str) -> dict[str, Any]:
        try:
            return await extract_arguments(
                self.gateway,
                tool,
                context,
                temperature=self.extraction_temperature,
            )
        except ExtractionFailedError as exc:
            raise ExtractionFailedError(
                f"Failed to extract parameters for tool '{tool.name}': {exc}",
                tool_name=tool.name,
            ) from exc

    async def _regenerate(
        self,
        tool: Tool,
        context: str,
        previous_arguments: dict[str, Any],
        last_error: Exception,
    ) -> dict[str, Any]:
        try:
            return await extract_arguments(
                self.gateway,
                tool,
                context,
                previous_error=str(last_error) or type(last_error).__name__,
                temperature=self.extraction_temperature,
                model_override=self.regeneration_model,
            )
        except ExtractionFailedError as exc:
            logger.warning(
                "Argument regeneration failed tool=%s reason=%s action=reuse_previous_args",
                tool.name,
                exc,
            )
            return previous_arguments

    async def _attempt(self, tool: Tool, arguments: dict[str, Any], attempt: int) -> Outcome:
        logger.debug(
            "Calling tool=%s attempt=%d/%d agentic=%s",
            tool.name,
            attempt,
            self.max_retries,
            tool.agentic,
        )
        try:
            result = tool.execute(dict(arguments))
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Tool failed tool=%s attempt=%d/%d reason=%s",
                tool.name,
                attempt,
                self.max_retries,
                exc,
            )
            return Fail(exc)
        return Succeed(result)


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)

from __future__ import annotations

import json
from collections import deque
from typing import Any

import pytest

from taskchain_agent.llm.base import GenerationOptions, LLMResponse, StructuredLLMResponse
from taskchain_agent.tools.gateway import ToolExecutor
from taskchain_agent.tools.registry import Tool, create_tool


class FakeGateway:
    """Scripted gateway double.

    Structured requests are routed by output shape into plan, decision, or
    extraction queues. Each queued item is a dict (returned as valid data), a
    ``StructuredLLMResponse`` (returned as-is), or an exception (raised). The
    last item of a queue is reused once the queue is down to it.
    """

    def __init__(self) -> None:
        self.plans: deque[Any] = deque()
        self.decisions: deque[Any] = deque()
        self.extractions: deque[Any] = deque()
        self.texts: deque[Any] = deque()
        self.calls: list[dict[str, Any]] = []

    @staticmethod
    def invalid(*errors: str) -> StructuredLLMResponse:
        return StructuredLLMResponse(
            content="not json",
            structured_data=None,
            is_valid=False,
            validation_errors=list(errors),
        )

    def calls_of(self, kind: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["kind"] == kind]

    async def get_text(self, prompt: str, options: GenerationOptions | None = None) -> LLMResponse:
        self.calls.append({"kind": "text", "prompt": prompt, "options": options})
        item = _next(self.texts, "text")
        if isinstance(item, Exception):
            raise item
        return LLMResponse(content=str(item))

    async def get_structured(
        self,
        prompt: str,
        output_shape: dict[str, Any],
        options: GenerationOptions | None = None,
        *,
        description: str | None = None,
    ) -> StructuredLLMResponse:
        kind = _kind(output_shape)
        self.calls.append(
            {
                "kind": kind,
                "prompt": prompt,
                "shape": output_shape,
                "options": options,
                "description": description,
            }
        )
        queue = {"plan": self.plans, "decision": self.decisions, "extraction": self.extractions}[kind]
        item = _next(queue, kind)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, StructuredLLMResponse):
            return item
        return StructuredLLMResponse(
            content=json.dumps(item),
            structured_data=item,
            is_valid=True,
        )


def _kind(output_shape: dict[str, Any]) -> str:
    if "isComplete" in output_shape and "steps" in output_shape:
        return "plan"
    if "shouldContinue" in output_shape:
        return "decision"
    return "extraction"


def _next(queue: deque[Any], kind: str) -> Any:
    if not queue:
        raise AssertionError(f"Unexpected {kind} request to fake gateway")
    if len(queue) == 1:
        return queue[0]
    return queue.popleft()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def add_tool() -> Tool:
    return create_tool(
        "add",
        "Add two numbers",
        {"a": {"type": "number", "description": "First addend"}, "b": "number"},
        lambda args: args["a"] + args["b"],
        agentic=True,
    )


@pytest.fixture
def echo_tool() -> Tool:
    return create_tool(
        "echo",
        "Return the given text",
        {"text": "string"},
        lambda args: args["text"],
    )


@pytest.fixture
def make_executor(gateway: FakeGateway):
    def _make(*tools: Tool, **kwargs: Any) -> ToolExecutor:
        kwargs.setdefault("retry_delay_s", 0.0)
        return ToolExecutor(tools=list(tools), gateway=gateway, **kwargs)

    return _make

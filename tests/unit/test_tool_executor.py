from __future__ import annotations

import pytest

from taskchain_agent.errors import (
    AgentError,
    DuplicateToolError,
    ExtractionFailedError,
    MissingInputError,
    ToolExecutionFailedError,
    ToolNotFoundError,
    ValidationFailedError,
)
from taskchain_agent.tools import gateway as gateway_module
from taskchain_agent.tools.gateway import ToolExecutor
from taskchain_agent.tools.registry import ToolCall, create_tool
from taskchain_agent.tools.validation import ValidationFailure, ValidationSuccess


def test_executor_requires_tools(gateway) -> None:
    with pytest.raises(AgentError, match="at least one tool"):
        ToolExecutor(tools=[], gateway=gateway)


def test_executor_rejects_duplicate_registration(make_executor, echo_tool) -> None:
    with pytest.raises(DuplicateToolError):
        make_executor(echo_tool, echo_tool)


@pytest.mark.asyncio
async def test_explicit_arguments_never_touch_gateway(make_executor, echo_tool, gateway) -> None:
    executor = make_executor(echo_tool)

    result = await executor.call_tool(ToolCall(tool_name="echo", arguments={"text": "hi"}))

    assert result == "hi"
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_async_tools_are_awaited(make_executor) -> None:
    async def shout(args):
        return args["text"].upper()

    executor = make_executor(create_tool("shout", "Uppercase", {"text": "string"}, shout))

    assert await executor.call_tool(ToolCall(tool_name="shout", arguments={"text": "hey"})) == "HEY"


@pytest.mark.asyncio
async def test_unknown_tool_raises(make_executor, echo_tool) -> None:
    executor = make_executor(echo_tool)

    with pytest.raises(ToolNotFoundError, match="Tool 'missing' not found"):
        await executor.call_tool(ToolCall(tool_name="missing", arguments={"x": 1}))


@pytest.mark.asyncio
async def test_missing_arguments_and_context_raises(make_executor, echo_tool) -> None:
    executor = make_executor(echo_tool)

    with pytest.raises(MissingInputError):
        await executor.call_tool(ToolCall(tool_name="echo", context="   "))


@pytest.mark.asyncio
async def test_validation_errors_are_not_retried(make_executor) -> None:
    calls: list[dict] = []
    tool = create_tool("record", "Record", {"n": "number"}, calls.append)
    executor = make_executor(tool, max_retries=3)

    with pytest.raises(ValidationFailedError) as exc_info:
        await executor.call_tool(ToolCall(tool_name="record", arguments={"n": "one"}))

    assert exc_info.value.errors == ["Field 'n' must be a number, got string"]
    assert calls == []


@pytest.mark.asyncio
async def test_context_only_call_to_plain_tool_validates_empty_arguments(make_executor, echo_tool, gateway) -> None:
    executor = make_executor(echo_tool)

    with pytest.raises(ValidationFailedError, match="Missing required field: text"):
        await executor.call_tool(ToolCall(tool_name="echo", context="say hello"))

    assert gateway.calls == []


@pytest.mark.asyncio
async def test_always_failing_tool_uses_exactly_max_retries(make_executor) -> None:
    attempts: list[int] = []

    def explode(args):
        attempts.append(1)
        raise RuntimeError("backend unavailable")

    executor = make_executor(create_tool("flaky", "Flaky", {"x": "number"}, explode), max_retries=3)

    with pytest.raises(ToolExecutionFailedError) as exc_info:
        await executor.call_tool(ToolCall(tool_name="flaky", arguments={"x": 1}))

    assert len(attempts) == 3
    assert exc_info.value.attempts == 3
    assert "failed after 3 attempts" in str(exc_info.value)
    assert exc_info.value.last_error == "backend unavailable"


@pytest.mark.asyncio
async def test_transient_failure_recovers_on_retry(make_executor) -> None:
    state = {"calls": 0}

    def sometimes(args):
        state["calls"] += 1
        if state["calls"] == 1:
            raise RuntimeError("temporary")
        return "ok"

    executor = make_executor(create_tool("retry", "Retry", {"x": "number"}, sometimes), max_retries=2)

    assert await executor.call_tool(ToolCall(tool_name="retry", arguments={"x": 1})) == "ok"
    assert state["calls"] == 2


@pytest.mark.asyncio
async def test_retry_delay_is_slept_between_attempts_only(monkeypatch, make_executor) -> None:
    sleeps: list[float] = []

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    monkeypatch.setattr(gateway_module.asyncio, "sleep", fake_sleep)

    def explode(args):
        raise RuntimeError("backend unavailable")

    executor = make_executor(
        create_tool("flaky", "Flaky", {"x": "number"}, explode),
        max_retries=3,
        retry_delay_s=0.5,
    )

    with pytest.raises(ToolExecutionFailedError):
        await executor.call_tool(ToolCall(tool_name="flaky", arguments={"x": 1}))

    assert sleeps == [0.5, 0.5]


@pytest.mark.asyncio
async def test_agentic_tool_extracts_from_context(make_executor, add_tool, gateway) -> None:
    gateway.extractions.append({"a": 2, "b": 2})
    executor = make_executor(add_tool)

    result = await executor.call_tool(ToolCall(tool_name="add", context="What is 2 plus 2?"))

    assert result == 4
    assert "Context:\nWhat is 2 plus 2?" in gateway.calls_of("extraction")[0]["prompt"]


@pytest.mark.asyncio
async def test_forced_extraction_without_context_uses_planned_arguments(make_executor, add_tool, gateway) -> None:
    gateway.extractions.append({"a": 1, "b": 5})
    executor = make_executor(add_tool)

    result = await executor.call_tool(
        ToolCall(tool_name="add", arguments={"a": 1, "b": 4}),
        force_extraction=True,
    )

    assert result == 6
    prompt = gateway.calls_of("extraction")[0]["prompt"]
    assert "Suggested arguments:" in prompt
    assert '"b": 4' in prompt


@pytest.mark.asyncio
async def test_initial_extraction_failure_is_raised(make_executor, add_tool, gateway) -> None:
    gateway.extractions.append(gateway.invalid("Failed to parse structured output"))
    executor = make_executor(add_tool)

    with pytest.raises(ExtractionFailedError, match="Failed to extract parameters for tool 'add'"):
        await executor.call_tool(ToolCall(tool_name="add", context="add things"))


@pytest.mark.asyncio
async def test_retries_regenerate_arguments_with_error_feedback(make_executor, gateway) -> None:
    seen: list[dict] = []

    def divide(args):
        seen.append(dict(args))
        if args["b"] == 0:
            raise ZeroDivisionError("division by zero")
        return args["a"] / args["b"]

    tool = create_tool("divide", "Divide a by b", {"a": "number", "b": "number"}, divide, agentic=True)
    gateway.extractions.extend([{"a": 6, "b": 0}, {"a": 6, "b": 3}])
    executor = make_executor(tool, max_retries=2, regeneration_model="gpt-4o")

    result = await executor.call_tool(ToolCall(tool_name="divide", context="six divided by three"))

    assert result == 2
    assert seen == [{"a": 6, "b": 0}, {"a": 6, "b": 3}]
    regeneration = gateway.calls_of("extraction")[1]
    assert "Previous attempt failed with: division by zero" in regeneration["prompt"]
    assert regeneration["options"].model_override == "gpt-4o"


@pytest.mark.asyncio
async def test_failed_regeneration_reuses_previous_arguments(make_executor, gateway) -> None:
    seen: list[dict] = []

    def explode(args):
        seen.append(dict(args))
        raise RuntimeError("still broken")

    tool = create_tool("boom", "Boom", {"x": "number"}, explode, agentic=True)
    gateway.extractions.extend([{"x": 1}, gateway.invalid("Failed to parse structured output")])
    executor = make_executor(tool, max_retries=3)

    with pytest.raises(ToolExecutionFailedError):
        await executor.call_tool(ToolCall(tool_name="boom", context="go"))

    assert seen == [{"x": 1}, {"x": 1}, {"x": 1}]


def test_add_and_remove_tools(make_executor, echo_tool, add_tool) -> None:
    executor = make_executor(echo_tool)

    executor.add_tool(add_tool)
    assert [tool.name for tool in executor.get_tools()] == ["echo", "add"]
    with pytest.raises(DuplicateToolError, match="Tool 'add' already exists"):
        executor.add_tool(add_tool)

    assert executor.remove_tool("add") is True
    assert executor.remove_tool("add") is False
    with pytest.raises(ToolNotFoundError):
        executor.get_tool("add")


def test_validate_tool_call_does_not_execute(make_executor) -> None:
    calls: list[dict] = []
    executor = make_executor(create_tool("record", "Record", {"n": "number"}, calls.append))

    assert isinstance(
        executor.validate_tool_call(ToolCall(tool_name="record", arguments={"n": 1})),
        ValidationSuccess,
    )
    failure = executor.validate_tool_call(ToolCall(tool_name="nope", arguments={}))
    assert isinstance(failure, ValidationFailure)
    assert failure.errors == ["Tool 'nope' not found"]
    assert calls == []


@pytest.mark.asyncio
async def test_call_tools_runs_sequentially(make_executor, echo_tool) -> None:
    executor = make_executor(echo_tool)

    results = await executor.call_tools(
        [
            ToolCall(tool_name="echo", arguments={"text": "one"}),
            ToolCall(tool_name="echo", arguments={"text": "two"}),
        ]
    )

    assert results == ["one", "two"]

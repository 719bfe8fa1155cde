"""LLM-backed planning and completion decisions for the step orchestrator.

The planner never runs tools. It renders prompts from the tool catalog and
the current run state, asks the gateway for structured output, and turns the
answer into typed models. Anything unusable becomes an ``OrchestratorError``
subclass so the orchestrator decides whether it is fatal.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from taskchain_agent.errors import GatewayError, OrchestratorError, PlanningFailedError
from taskchain_agent.graph.state import (
    CompletionDecision,
    ExecutionStep,
    OrchestrationState,
    PlanningResponse,
)
from taskchain_agent.llm.base import GenerationOptions, LanguageModelGateway
from taskchain_agent.tools.registry import Tool, ToolSummary

logger = logging.getLogger(__name__)

PLAN_SHAPE: dict[str, Any] = {
    "plan": "string",
    "steps": "array",
    "isComplete": "boolean",
}

DECISION_SHAPE: dict[str, Any] = {
    "shouldContinue": "boolean",
    "nextStep": "object",
    "finalResponse": "string",
    "reasoning": "string",
}

_PLANNING_RULES = """IMPORTANT PLANNING RULES:

1. DEPENDENCIES: When steps depend on results from previous steps, you MUST specify dependencies:
   - If Step 2 needs data from Step 1, set dependsOn: [1] for Step 2
   - If Step 3 needs data from Steps 1 and 2, set dependsOn: [1, 2] for Step 3
   - Steps without dependencies can have dependsOn: [] or omit the field

2. ARGUMENTS FOR AGENTIC TOOLS:
   - If a tool is agentic (can extract parameters from natural language), you can:
     a) Leave arguments empty {} - the tool will extract from context
     b) Provide partial arguments if you know some values
     c) Provide a description in the step description that helps extraction
   - For non-agentic tools, you MUST provide complete arguments

3. STEP DESCRIPTIONS:
   - Be specific about what data to extract or use
   - If a step depends on previous results, mention what data to use
   - Example: "Calculate the sum of the numbers from Step 1" instead of just "Calculate sum\""""


def describe_tools(tools: Sequence[Tool]) -> str:
    if not tools:
        return "No tools available."
    lines: list[str] = []
    for tool in tools:
        summary = ToolSummary.from_tool(tool)
        params = ", ".join(
            f"{name}: {type_name}" + ("" if name in summary.required else " (optional)")
            for name, type_name in summary.parameters.items()
        )
        marker = " [agentic]" if summary.agentic else ""
        lines.append(f"- {summary.name}{marker}: {summary.description} (Parameters: {{{params}}})")
    return "\n".join(lines)


def describe_completed(steps: Sequence[ExecutionStep]) -> str:
    return "\n".join(
        f"Step {step.step_number}: {step.description} - Result: {_to_json(step.result)}"
        for step in steps
    )


def build_planning_prompt(
    goal: str,
    tools: Sequence[Tool],
    *,
    system_prompt: str | None = None,
    previous_plan: str | None = None,
    completed: Sequence[ExecutionStep] | None = None,
    next_number: int = 1,
) -> str:
    sections = [
        "You are an autonomous agent orchestrator. Your task is to break down the user's "
        "query into a step-by-step action plan using the available tools.",
        f'User Query: "{goal}"',
        f"Available Tools:\n{describe_tools(tools)}",
    ]

    if completed is not None:
        sections.append(
            "PREVIOUS PLAN (that encountered an error):\n"
            f"Plan: {previous_plan or 'No plan recorded'}"
        )
        sections.append(
            "COMPLETED STEPS (successfully executed):\n"
            f"{describe_completed(completed) or 'No steps completed'}"
        )
        sections.append(
            "The previous plan failed at some point. Generate a new plan that:\n"
            "1. Incorporates the results from completed steps\n"
            "2. Continues from where the previous plan left off\n"
            "3. Avoids the error that occurred\n"
            "4. Completes the remaining work needed to satisfy the user query\n"
            f"Number new steps starting from {next_number}. Completed steps keep their "
            "numbers and may be referenced in dependsOn."
        )
    else:
        sections.append(
            "Generate a detailed action plan. Break down the task into logical steps. "
            "Each step should use one of the available tools.\n"
            "If the task can be completed in a single step, return isComplete: true.\n"
            "If multiple steps are needed, return isComplete: false and provide all steps."
        )

    sections.append(_PLANNING_RULES)
    sections.append(
        "Return your response as structured data with:\n"
        "- plan: A high-level description of the overall plan\n"
        "- steps: An array of steps, each with:\n"
        f"  - stepNumber: Sequential number starting from {next_number}\n"
        "  - description: Clear description of what this step does and what data to use\n"
        "  - tool: Name of the tool to use\n"
        "  - arguments: Arguments object (can be empty {} for agentic tools - they will "
        "extract from context)\n"
        "  - dependsOn: Array of step numbers this step depends on (e.g., [1, 2])\n"
        "- isComplete: Whether this plan completes the entire task"
    )
    if system_prompt:
        sections.append(f"4. SYSTEM PROMPT: {system_prompt}")
    return "\n\n".join(sections)


def build_completion_prompt(state: OrchestrationState, tools: Sequence[Tool]) -> str:
    done = [step for step in state.steps if step.completed]
    pending = [step for step in state.steps if not step.completed]
    all_done = bool(state.steps) and not pending
    pending_text = "\n".join(
        f"Step {step.step_number}: {step.description} (Tool: {step.tool_call.tool_name})"
        for step in pending
    )
    return "\n\n".join(
        [
            "You are an autonomous agent orchestrator. Analyze the current state and "
            "determine the next action.",
            f'Original User Query: "{state.goal}"',
            f"Plan: {state.plan or 'No plan yet'}",
            f"Completed Steps ({len(done)}/{len(state.steps)}):\n"
            f"{describe_completed(done) or 'No steps completed yet'}",
            f"Pending Steps:\n{pending_text or 'No pending steps'}",
            f"IMPORTANT: All steps are {'COMPLETED' if all_done else 'NOT completed'}.",
            f"Available Tools:\n{describe_tools(tools)}",
            "Determine:\n"
            "1. If ALL steps are completed AND the user query has been fully satisfied, set "
            "shouldContinue: false and provide a finalResponse summarizing the results.\n"
            "2. If there are pending steps in the plan, set shouldContinue: true (without "
            "nextStep) to execute the next planned step.\n"
            "3. If the plan is incomplete and you need a NEW step not in the plan, set "
            "shouldContinue: true and provide nextStep with description, tool, arguments "
            "and dependsOn.\n"
            "4. CRITICAL: If all steps are completed and the task is done, you MUST set "
            "shouldContinue: false. Do not continue if the task is complete.",
            "Return your decision as structured data.",
        ]
    )


async def request_plan(
    gateway: LanguageModelGateway,
    *,
    goal: str,
    tools: Sequence[Tool],
    system_prompt: str | None = None,
    previous_plan: str | None = None,
    completed: Sequence[ExecutionStep] | None = None,
    next_number: int = 1,
    temperature: float = 0.7,
) -> PlanningResponse:
    """Ask the gateway for a plan; a non-None ``completed`` marks a replan."""
    regenerating = completed is not None
    prompt = build_planning_prompt(
        goal,
        tools,
        system_prompt=system_prompt,
        previous_plan=previous_plan,
        completed=completed,
        next_number=next_number,
    )
    description = (
        "Regenerated action plan for agent orchestrator"
        if regenerating
        else "Action plan for agent orchestrator"
    )
    try:
        response = await gateway.get_structured(
            prompt,
            PLAN_SHAPE,
            GenerationOptions(temperature_override=temperature),
            description=description,
        )
    except GatewayError as exc:
        raise PlanningFailedError(f"Planning failed: {exc}") from exc

    if not response.is_valid or response.structured_data is None:
        reasons = ", ".join(response.validation_errors) or "no structured data returned"
        raise PlanningFailedError(f"Planning failed: Failed to generate valid plan: {reasons}")

    try:
        plan = PlanningResponse.model_validate(response.structured_data)
    except ValidationError as exc:
        raise PlanningFailedError(
            f"Planning failed: Invalid plan structure: {_summarize(exc)}"
        ) from exc

    logger.info(
        "Plan %s steps=%d is_complete=%s",
        "regenerated" if regenerating else "generated",
        len(plan.steps),
        plan.is_complete,
    )
    return plan


async def request_completion_decision(
    gateway: LanguageModelGateway,
    state: OrchestrationState,
    tools: Sequence[Tool],
    *,
    temperature: float = 0.7,
) -> CompletionDecision:
    prompt = build_completion_prompt(state, tools)
    try:
        response = await gateway.get_structured(
            prompt,
            DECISION_SHAPE,
            GenerationOptions(temperature_override=temperature),
            description="Next step decision for agent orchestrator",
        )
    except GatewayError as exc:
        raise OrchestratorError(f"Next step decision failed: {exc}") from exc

    if not response.is_valid or response.structured_data is None:
        reasons = ", ".join(response.validation_errors) or "no structured data returned"
        raise OrchestratorError(f"Next step decision failed: {reasons}")

    try:
        decision = CompletionDecision.model_validate(response.structured_data)
    except ValidationError as exc:
        raise OrchestratorError(f"Next step decision failed: {_summarize(exc)}") from exc

    logger.debug(
        "Completion decision should_continue=%s has_next_step=%s reasoning=%s",
        decision.should_continue,
        decision.next_step is not None,
        decision.reasoning,
    )
    return decision


def _to_json(value: Any) -> str:
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)


def _summarize(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'root'}: {error['msg']}"
        for error in exc.errors()
    )

"""Pure state transitions for orchestration runs.

Every function here takes an ``OrchestrationState`` (plus an event payload)
and returns a new state or a derived value. Nothing mutates its input and
nothing performs I/O; the orchestrator sequences these around gateway and
tool calls.
"""

from __future__ import annotations

import json
from collections.abc import Collection, Sequence
from typing import Any

from pydantic import BaseModel

from taskchain_agent.graph.state import (
    ExecutionStep,
    OrchestrationState,
    OrchestrationStatus,
    PlannedStep,
    PlanningResponse,
)
from taskchain_agent.tools.registry import ToolCall


def with_status(state: OrchestrationState, status: OrchestrationStatus, **updates: Any) -> OrchestrationState:
    return state.model_copy(update={"status": status, **updates})


def append_history(state: OrchestrationState, entry: str) -> OrchestrationState:
    return state.model_copy(update={"history": [*state.history, entry]})


def next_step_number(state: OrchestrationState) -> int:
    numbers = [step.step_number for step in (*state.steps, *state.superseded_steps)]
    return max(numbers, default=0) + 1


def completed_steps(state: OrchestrationState) -> list[ExecutionStep]:
    return [step for step in state.steps if step.completed]


def attempted_step_count(state: OrchestrationState) -> int:
    """Steps that have run to success or terminal failure in this run."""
    return sum(
        1
        for step in (*state.steps, *state.superseded_steps)
        if step.completed or step.error is not None
    )


def steps_from_plan(
    planned: Sequence[PlannedStep],
    *,
    start: int,
    existing: Collection[int] = (),
) -> list[ExecutionStep]:
    """Turn planner output into executable steps.

    A first plan keeps the planner's numbering when it is usable (positive and
    unique). Otherwise, and always for replans, steps are numbered from
    ``start``. A ``depends_on`` entry that names an earlier step of the same plan
    is rewritten to that step's new number; anything else (typically a
    completed step from an earlier plan) is kept as given.
    """
    proposed = [step.step_number for step in planned]
    preserve = not existing and start == 1 and _usable_numbers(proposed)

    mapping: dict[int, int] = {}
    numbers: list[int] = []
    for idx, step in enumerate(planned):
        number = step.step_number if preserve and step.step_number is not None else start + idx
        if step.step_number is not None and step.step_number not in mapping:
            mapping[step.step_number] = number
        numbers.append(number)

    steps: list[ExecutionStep] = []
    for step, number in zip(planned, numbers):
        depends_on: list[int] = []
        for dependency in step.depends_on:
            target = mapping.get(dependency)
            if target is None or target >= number:
                target = dependency
            if target not in depends_on:
                depends_on.append(target)
        steps.append(
            ExecutionStep(
                step_number=number,
                description=step.description,
                tool_call=ToolCall(tool_name=step.tool_name, arguments=step.arguments or {}),
                depends_on=depends_on,
            )
        )
    return steps


def adopt_plan(state: OrchestrationState, plan: PlanningResponse) -> OrchestrationState:
    return state.model_copy(
        update={
            "plan": plan.plan,
            "steps": steps_from_plan(plan.steps, start=1),
            "history": [*state.history, f"Plan generated: {plan.plan}"],
        }
    )


def merge_replan(state: OrchestrationState, plan: PlanningResponse) -> OrchestrationState:
    """Keep completed steps, supersede incomplete ones, append the new plan's steps."""
    done = completed_steps(state)
    pending = [step for step in state.steps if not step.completed]
    new_steps = steps_from_plan(
        plan.steps,
        start=next_step_number(state),
        existing={step.step_number for step in done},
    )
    return state.model_copy(
        update={
            "plan": plan.plan or state.plan,
            "steps": [*done, *new_steps],
            "superseded_steps": [*state.superseded_steps, *pending],
            "history": [*state.history, f"Plan regenerated: {plan.plan}"],
        }
    )


def append_planned_step(state: OrchestrationState, planned: PlannedStep) -> OrchestrationState:
    number = next_step_number(state)
    step = ExecutionStep(
        step_number=number,
        description=planned.description,
        tool_call=ToolCall(tool_name=planned.tool_name, arguments=planned.arguments or {}),
        depends_on=list(planned.depends_on),
    )
    return state.model_copy(
        update={
            "steps": [*state.steps, step],
            "history": [*state.history, f"Step {number} added: {planned.description}"],
        }
    )


def select_next_step(state: OrchestrationState) -> ExecutionStep | None:
    """Lowest-numbered ready step; if none is ready, the first incomplete step.

    Returning a blocked step lets the dependency check fail loudly instead
    of the run stalling with nothing to do.
    """
    pending = [step for step in state.steps if not step.completed]
    if not pending:
        return None
    done = {step.step_number for step in state.steps if step.completed}
    ready = [step for step in pending if all(dep in done for dep in step.depends_on)]
    if not ready:
        return pending[0]
    return min(ready, key=lambda step: step.step_number)


def unmet_dependencies(state: OrchestrationState, step: ExecutionStep) -> list[int]:
    done = {item.step_number for item in state.steps if item.completed}
    return [dep for dep in step.depends_on if dep not in done]


def record_success(state: OrchestrationState, step_number: int, result: Any) -> OrchestrationState:
    steps = _replace_step(
        state.steps,
        step_number,
        completed=True,
        result=result,
        error=None,
    )
    description = _description(state, step_number)
    return state.model_copy(
        update={
            "steps": steps,
            "shared_context": {**state.shared_context, f"step_{step_number}_result": result},
            "history": [*state.history, f"Step {step_number} completed: {description}"],
        }
    )


def record_failure(state: OrchestrationState, step_number: int, message: str) -> OrchestrationState:
    steps = _replace_step(state.steps, step_number, error=message)
    return state.model_copy(
        update={
            "steps": steps,
            "history": [*state.history, f"Step {step_number} failed: {message}"],
        }
    )


def render_result(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, default=str)
    return str(value)


def distill_context(state: OrchestrationState, step: ExecutionStep) -> str:
    """Goal, current action, and only the results of the step's dependencies."""
    parts = [f"Task: {state.goal}", f"Current action: {step.description}"]

    by_number = {item.step_number: item for item in state.steps}
    data_points: list[str] = []
    for dependency in step.depends_on:
        upstream = by_number.get(dependency)
        if upstream is None or not upstream.completed or upstream.result is None:
            continue
        data_points.append(
            f"Step {upstream.step_number} ({upstream.description}):\n"
            f"{render_result(upstream.result)}"
        )
    if data_points:
        parts.append("Available data from previous steps:\n" + "\n\n".join(data_points))
    return "\n\n".join(parts)


def _replace_step(steps: list[ExecutionStep], step_number: int, **updates: Any) -> list[ExecutionStep]:
    return [
        step.model_copy(update=updates) if step.step_number == step_number else step
        for step in steps
    ]


def _description(state: OrchestrationState, step_number: int) -> str:
    for step in state.steps:
        if step.step_number == step_number:
            return step.description
    return ""


def _usable_numbers(numbers: list[int | None]) -> bool:
    concrete = [number for number in numbers if number is not None]
    return (
        len(concrete) == len(numbers)
        and all(number >= 1 for number in concrete)
        and len(set(concrete)) == len(concrete)
    )

"""Typed state contract for step orchestration runs."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from taskchain_agent.tools.registry import ToolCall

OrchestrationStatus = Literal["idle", "planning", "executing", "completed", "error"]


class PlannedStep(BaseModel):
    """One step as proposed by the planner, before numbering is settled."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    step_number: int | None = Field(default=None, alias="stepNumber")
    description: str = ""
    tool_name: str = Field(alias="tool", min_length=1)
    arguments: dict[str, Any] | None = None
    depends_on: list[int] = Field(default_factory=list, alias="dependsOn")

    @field_validator("depends_on", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class PlanningResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    plan: str = ""
    steps: list[PlannedStep] = Field(default_factory=list)
    is_complete: bool = Field(default=False, alias="isComplete")

    @field_validator("steps", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class CompletionDecision(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    should_continue: bool = Field(alias="shouldContinue")
    next_step: PlannedStep | None = Field(default=None, alias="nextStep")
    final_response: str | None = Field(default=None, alias="finalResponse")
    reasoning: str | None = None

    @field_validator("next_step", mode="before")
    @classmethod
    def _empty_as_none(cls, value: Any) -> Any:
        return value or None


class ExecutionStep(BaseModel):
    step_number: int = Field(ge=1)
    description: str
    tool_call: ToolCall
    depends_on: list[int] = Field(default_factory=list)
    completed: bool = False
    result: Any = None
    error: str | None = None


class OrchestrationState(BaseModel):
    goal: str = ""
    system_prompt: str | None = None
    plan: str | None = None
    # Creation order, not execution order.
    steps: list[ExecutionStep] = Field(default_factory=list)
    # Incomplete steps replaced by a replan; kept so step numbers are never reused.
    superseded_steps: list[ExecutionStep] = Field(default_factory=list)
    status: OrchestrationStatus = "idle"
    history: list[str] = Field(default_factory=list)
    shared_context: dict[str, Any] = Field(default_factory=dict)
    current_step_number: int | None = None
    regeneration_count: int = 0
    error: str | None = None


class OrchestrationResult(BaseModel):
    success: bool
    final_response: str
    steps: list[ExecutionStep] = Field(default_factory=list)
    state: OrchestrationState
    error: str | None = None
    failed_step_number: int | None = None


def initial_state(goal: str = "", system_prompt: str | None = None) -> OrchestrationState:
    return OrchestrationState(goal=goal, system_prompt=system_prompt)

"""Step orchestration: planning, dependency-ordered execution, replanning."""

from taskchain_agent.graph.orchestrator import StepOrchestrator
from taskchain_agent.graph.state import (
    CompletionDecision,
    ExecutionStep,
    OrchestrationResult,
    OrchestrationState,
    OrchestrationStatus,
    PlannedStep,
    PlanningResponse,
    initial_state,
)

__all__ = [
    "CompletionDecision",
    "ExecutionStep",
    "OrchestrationResult",
    "OrchestrationState",
    "OrchestrationStatus",
    "PlannedStep",
    "PlanningResponse",
    "StepOrchestrator",
    "initial_state",
]

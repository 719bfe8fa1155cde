"""Schema-validated tool execution and multi-step LLM orchestration."""

from taskchain_agent.errors import (
    AgentError,
    DuplicateToolError,
    ExtractionFailedError,
    GatewayError,
    MissingInputError,
    OrchestratorError,
    PlanningFailedError,
    RegenerationCeilingExceededError,
    SchemaError,
    StepExecutionError,
    ToolExecutionFailedError,
    ToolNotFoundError,
    UnmetDependencyError,
    ValidationFailedError,
)
from taskchain_agent.factory import build_executor, build_gateway, build_orchestrator
from taskchain_agent.graph import OrchestrationResult, OrchestrationState, StepOrchestrator
from taskchain_agent.tools import Tool, ToolCall, ToolExecutor, create_tool, validate

__all__ = [
    "AgentError",
    "DuplicateToolError",
    "ExtractionFailedError",
    "GatewayError",
    "MissingInputError",
    "OrchestrationResult",
    "OrchestrationState",
    "OrchestratorError",
    "PlanningFailedError",
    "RegenerationCeilingExceededError",
    "SchemaError",
    "StepExecutionError",
    "StepOrchestrator",
    "Tool",
    "ToolCall",
    "ToolExecutionFailedError",
    "ToolExecutor",
    "ToolNotFoundError",
    "UnmetDependencyError",
    "ValidationFailedError",
    "build_executor",
    "build_gateway",
    "build_orchestrator",
    "create_tool",
    "validate",
]

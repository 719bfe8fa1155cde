"""Exception hierarchy shared by the executor, orchestrator, and gateway."""

from __future__ import annotations


class SchemaError(ValueError):
    """Raised when a parameter schema itself is malformed."""


class GatewayError(RuntimeError):
    """Failure reported by a language-model gateway."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class AgentError(Exception):
    """Base class for tool execution errors."""

    def __init__(self, message: str, *, tool_name: str | None = None) -> None:
        super().__init__(message)
        self.tool_name = tool_name


class DuplicateToolError(AgentError):
    pass


class ToolNotFoundError(AgentError):
    pass


class MissingInputError(AgentError):
    pass


class ValidationFailedError(AgentError):
    def __init__(self, message: str, *, tool_name: str | None = None, errors: list[str]) -> None:
        super().__init__(message, tool_name=tool_name)
        self.errors = list(errors)


class ExtractionFailedError(AgentError):
    pass


class ToolExecutionFailedError(AgentError):
    def __init__(
        self,
        message: str,
        *,
        tool_name: str,
        attempts: int,
        last_error: str | None = None,
    ) -> None:
        super().__init__(message, tool_name=tool_name)
        self.attempts = attempts
        self.last_error = last_error


class OrchestratorError(Exception):
    """Base class for orchestration errors; carries the step number when known."""

    def __init__(self, message: str, *, step_number: int | None = None) -> None:
        super().__init__(message)
        self.step_number = step_number


class PlanningFailedError(OrchestratorError):
    pass


class UnmetDependencyError(OrchestratorError):
    def __init__(self, step_number: int, missing: list[int]) -> None:
        missing_text = ", ".join(str(number) for number in missing)
        super().__init__(
            f"Step {step_number} depends on steps {missing_text} which are not yet completed",
            step_number=step_number,
        )
        self.missing = list(missing)


class StepExecutionError(OrchestratorError):
    pass


class RegenerationCeilingExceededError(OrchestratorError):
    pass

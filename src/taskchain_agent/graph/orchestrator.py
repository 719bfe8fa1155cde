"""Multi-step orchestration: plan, execute in dependency order, replan on failure."""

from __future__ import annotations

import logging
import time

from taskchain_agent.errors import (
    AgentError,
    OrchestratorError,
    PlanningFailedError,
    RegenerationCeilingExceededError,
    StepExecutionError,
    UnmetDependencyError,
)
from taskchain_agent.graph import transitions
from taskchain_agent.graph.planner import request_completion_decision, request_plan
from taskchain_agent.graph.state import (
    CompletionDecision,
    ExecutionStep,
    OrchestrationResult,
    OrchestrationState,
    initial_state,
)
from taskchain_agent.llm.base import LanguageModelGateway
from taskchain_agent.outcomes import CONTINUE, Fail, Outcome, Succeed
from taskchain_agent.tools.gateway import ToolExecutor
from taskchain_agent.tools.registry import ToolCall

logger = logging.getLogger(__name__)

NO_TOOLS_RESPONSE = "Task completed successfully without requiring tool calls."
ALL_STEPS_RESPONSE = "All planned steps completed successfully."
MAX_STEPS_RESPONSE = "Execution completed (reached maximum steps limit)."
MAX_REGENERATIONS_RESPONSE = "Execution completed (reached maximum plan regenerations)."
MAX_ITERATIONS_RESPONSE = "Execution completed (reached maximum iterations)."
ALREADY_COMPLETED_RESPONSE = "Execution already completed."


class StepOrchestrator:
    """Drive a goal through planning, step execution, and bounded replanning.

    The orchestrator owns one ``OrchestrationState`` per run. State changes go
    through the pure functions in ``transitions``; this class only sequences
    them around gateway and tool calls.
    """

    def __init__(
        self,
        *,
        executor: ToolExecutor,
        gateway: LanguageModelGateway | None = None,
        max_steps: int = 10,
        max_iterations: int = 5,
        max_plan_regenerations: int = 3,
        planning_temperature: float = 0.7,
    ) -> None:
        self.executor = executor
        self.gateway = gateway or executor.gateway
        self.max_steps = max(1, max_steps)
        self.max_iterations = max(1, max_iterations)
        self.max_plan_regenerations = max(0, max_plan_regenerations)
        self.planning_temperature = planning_temperature
        self._state = initial_state()

    async def execute(self, goal: str, system_prompt: str | None = None) -> OrchestrationResult:
        """Plan ``goal`` from scratch and run it to completion or a ceiling."""
        started_at = time.perf_counter()
        self._state = transitions.with_status(
            initial_state(goal, system_prompt),
            "planning",
        )
        logger.info("Orchestration started goal=%r", goal)

        try:
            plan = await request_plan(
                self.gateway,
                goal=goal,
                tools=self.executor.get_tools(),
                system_prompt=system_prompt,
                temperature=self.planning_temperature,
            )
        except PlanningFailedError as exc:
            return self._failure(exc, started_at)

        self._state = transitions.adopt_plan(self._state, plan)
        if plan.is_complete and not self._state.steps:
            return self._success(NO_TOOLS_RESPONSE, started_at)

        return await self._drive(enforce_ceilings=True, started_at=started_at)

    async def continue_execution(self) -> OrchestrationResult:
        """Resume the current run without resetting it.

        Bounded by ``max_iterations`` only. Raises ``OrchestratorError`` when no
        run has been started.
        """
        started_at = time.perf_counter()
        if self._state.status == "completed":
            return self._result(success=True, final_response=ALREADY_COMPLETED_RESPONSE)
        if self._state.status == "idle":
            raise OrchestratorError("Cannot continue: No execution in progress. Call execute() first.")

        logger.info(
            "Orchestration resumed goal=%r status=%s",
            self._state.goal,
            self._state.status,
        )
        self._state = self._state.model_copy(update={"error": None})
        return await self._drive(enforce_ceilings=False, started_at=started_at)

    def get_state(self) -> OrchestrationState:
        return self._state.model_copy(deep=True)

    def reset(self) -> None:
        self._state = initial_state()
        logger.info("Orchestrator state reset")

    async def _drive(self, *, enforce_ceilings: bool, started_at: float) -> OrchestrationResult:
        iterations = 0
        while True:
            if not enforce_ceilings:
                if iterations >= self.max_iterations:
                    logger.warning("Reached iteration limit max_iterations=%d", self.max_iterations)
                    return self._success(MAX_ITERATIONS_RESPONSE, started_at)
                iterations += 1

            outcome = await self._advance(enforce_ceilings)
            if isinstance(outcome, Succeed):
                return self._success(outcome.value, started_at)
            if isinstance(outcome, Fail):
                return self._failure(outcome.error, started_at)

    async def _advance(self, enforce_ceilings: bool) -> Outcome:
        step = transitions.select_next_step(self._state)
        if step is None:
            return await self._conclude(enforce_ceilings)

        if enforce_ceilings and transitions.attempted_step_count(self._state) >= self.max_steps:
            logger.warning("Reached step limit max_steps=%d", self.max_steps)
            return Succeed(MAX_STEPS_RESPONSE)

        try:
            await self._run_step(step)
        except OrchestratorError as exc:
            return await self._recover(exc, enforce_ceilings)
        return CONTINUE

    async def _run_step(self, step: ExecutionStep) -> None:
        number = step.step_number
        self._state = transitions.with_status(self._state, "executing", current_step_number=number)
        logger.info("Executing step=%d tool=%s", number, step.tool_call.tool_name)

        missing = transitions.unmet_dependencies(self._state, step)
        if missing:
            error = UnmetDependencyError(number, missing)
            self._state = transitions.record_failure(self._state, number, str(error))
            raise error

        tool_call = self._prepare_call(step)
        try:
            result = await self.executor.call_tool(tool_call, force_extraction=True)
        except AgentError as exc:
            self._state = transitions.record_failure(self._state, number, str(exc))
            raise StepExecutionError(
                f"Step {number} execution failed: {exc}",
                step_number=number,
            ) from exc

        self._state = transitions.record_success(self._state, number, result)
        logger.info("Step completed step=%d tool=%s", number, step.tool_call.tool_name)

    def _prepare_call(self, step: ExecutionStep) -> ToolCall:
        tools = {tool.name: tool for tool in self.executor.get_tools()}
        tool = tools.get(step.tool_call.tool_name)
        context = None
        if tool is not None and tool.agentic and not step.tool_call.arguments:
            context = transitions.distill_context(self._state, step)
            logger.debug("Distilled context step=%d chars=%d", step.step_number, len(context))
        return step.tool_call.model_copy(update={"context": context})

    async def _recover(self, error: OrchestratorError, enforce_ceilings: bool) -> Outcome:
        logger.warning("Step failed step=%s reason=%s", error.step_number, error)
        if enforce_ceilings and self._state.regeneration_count >= self.max_plan_regenerations:
            return Fail(
                RegenerationCeilingExceededError(
                    f"Execution failed after {self.max_plan_regenerations} plan regenerations: {error}",
                    step_number=error.step_number,
                )
            )
        await self._replan()
        return CONTINUE

    async def _replan(self) -> None:
        count = self._state.regeneration_count + 1
        self._state = transitions.with_status(self._state, "planning", regeneration_count=count)
        logger.info("Regenerating plan attempt=%d", count)
        try:
            plan = await request_plan(
                self.gateway,
                goal=self._state.goal,
                tools=self.executor.get_tools(),
                system_prompt=self._state.system_prompt,
                previous_plan=self._state.plan,
                completed=transitions.completed_steps(self._state),
                next_number=transitions.next_step_number(self._state),
                temperature=self.planning_temperature,
            )
        except PlanningFailedError as exc:
            logger.warning(
                "Plan regeneration failed attempt=%d reason=%s action=keep_steps",
                count,
                exc,
            )
            self._state = transitions.append_history(self._state, f"Plan regeneration failed: {exc}")
            return
        self._state = transitions.merge_replan(self._state, plan)

    async def _conclude(self, enforce_ceilings: bool) -> Outcome:
        decision = await self._ask_completion()
        if decision is None or not decision.should_continue:
            final = decision.final_response if decision is not None else None
            return Succeed(final or ALL_STEPS_RESPONSE)

        if decision.next_step is not None:
            self._state = transitions.append_planned_step(self._state, decision.next_step)
            return CONTINUE

        if enforce_ceilings and self._state.regeneration_count >= self.max_plan_regenerations:
            logger.warning(
                "More work requested after regeneration limit max_plan_regenerations=%d",
                self.max_plan_regenerations,
            )
            return Succeed(MAX_REGENERATIONS_RESPONSE)
        await self._replan()
        return CONTINUE

    async def _ask_completion(self) -> CompletionDecision | None:
        try:
            return await request_completion_decision(
                self.gateway,
                self._state,
                self.executor.get_tools(),
                temperature=self.planning_temperature,
            )
        except OrchestratorError as exc:
            logger.warning("Completion decision failed reason=%s action=generic_response", exc)
            return None

    def _success(self, final_response: str, started_at: float) -> OrchestrationResult:
        self._state = transitions.with_status(self._state, "completed", current_step_number=None)
        logger.info(
            "Orchestration finished status=completed steps=%d regenerations=%d duration_ms=%.2f",
            len(transitions.completed_steps(self._state)),
            self._state.regeneration_count,
            _duration_ms(started_at),
        )
        return self._result(success=True, final_response=final_response)

    def _failure(self, error: OrchestratorError, started_at: float) -> OrchestrationResult:
        message = str(error)
        self._state = transitions.with_status(self._state, "error", error=message)
        logger.error(
            "Orchestration finished status=error step=%s duration_ms=%.2f reason=%s",
            error.step_number,
            _duration_ms(started_at),
            message,
        )
        final_response = (
            message
            if isinstance(error, RegenerationCeilingExceededError)
            else f"Execution failed: {message}"
        )
        return self._result(
            success=False,
            final_response=final_response,
            error=message,
            failed_step_number=error.step_number,
        )

    def _result(
        self,
        *,
        success: bool,
        final_response: str,
        error: str | None = None,
        failed_step_number: int | None = None,
    ) -> OrchestrationResult:
        snapshot = self.get_state()
        return OrchestrationResult(
            success=success,
            final_response=final_response,
            steps=transitions.completed_steps(snapshot),
            state=snapshot,
            error=error,
            failed_step_number=failed_step_number,
        )


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)

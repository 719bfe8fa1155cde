"""Build gateways, executors, and orchestrators from settings."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from taskchain_agent.config.settings import Settings, get_settings
from taskchain_agent.errors import GatewayError
from taskchain_agent.graph.orchestrator import StepOrchestrator
from taskchain_agent.llm.base import LanguageModelGateway
from taskchain_agent.llm.openai_chat import OpenAIChatGateway
from taskchain_agent.tools.gateway import ToolExecutor
from taskchain_agent.tools.registry import Tool

logger = logging.getLogger(__name__)


def build_gateway(settings: Settings | None = None) -> LanguageModelGateway | None:
    """Return the configured gateway, or ``None`` when no provider is usable."""
    settings = settings or get_settings()
    provider = settings.llm_provider.strip().lower()
    if provider != "openai":
        logger.warning("Unsupported LLM provider=%s", settings.llm_provider)
        return None
    api_key = settings.resolved_openai_api_key()
    if not api_key:
        logger.info("No OpenAI API key configured provider=%s", provider)
        return None
    return OpenAIChatGateway(
        api_key=api_key,
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout_s=settings.llm_timeout_s,
        max_retries=settings.llm_max_retries,
        backoff_s=settings.llm_backoff_s,
        trace=settings.llm_trace,
    )


def build_executor(
    tools: Iterable[Tool],
    *,
    gateway: LanguageModelGateway | None = None,
    settings: Settings | None = None,
) -> ToolExecutor:
    settings = settings or get_settings()
    gateway = gateway or build_gateway(settings)
    if gateway is None:
        raise GatewayError(
            "No LLM gateway configured; set TASKCHAIN_AGENT_OPENAI_API_KEY or OPENAI_API_KEY",
            operation="init",
        )
    return ToolExecutor(
        tools=tools,
        gateway=gateway,
        max_retries=settings.tool_max_retries,
        retry_delay_s=settings.tool_retry_delay_s,
        extraction_temperature=settings.extraction_temperature,
        regeneration_model=settings.regeneration_model or None,
    )


def build_orchestrator(executor: ToolExecutor, *, settings: Settings | None = None) -> StepOrchestrator:
    settings = settings or get_settings()
    return StepOrchestrator(
        executor=executor,
        max_steps=settings.orchestrator_max_steps,
        max_iterations=settings.orchestrator_max_iterations,
        max_plan_regenerations=settings.max_plan_regenerations,
        planning_temperature=settings.planning_temperature,
    )

from __future__ import annotations

import pytest

from taskchain_agent.config.settings import Settings, get_settings
from taskchain_agent.errors import GatewayError
from taskchain_agent.factory import build_executor, build_gateway, build_orchestrator
from taskchain_agent.llm.openai_chat import OpenAIChatGateway


@pytest.fixture(autouse=True)
def _clear_settings_cache(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("TASKCHAIN_AGENT_OPENAI_API_KEY", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.tool_max_retries == 3
    assert settings.orchestrator_max_steps == 10
    assert settings.orchestrator_max_iterations == 5
    assert settings.max_plan_regenerations == 3
    assert settings.planning_temperature == 0.7
    assert settings.extraction_temperature == 0.1


def test_settings_read_prefixed_environment(monkeypatch) -> None:
    monkeypatch.setenv("TASKCHAIN_AGENT_TOOL_MAX_RETRIES", "5")
    monkeypatch.setenv("TASKCHAIN_AGENT_LLM_MODEL", "gpt-4o")

    settings = get_settings()

    assert settings.tool_max_retries == 5
    assert settings.llm_model == "gpt-4o"


def test_api_key_falls_back_to_openai_env(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")

    assert Settings(_env_file=None).resolved_openai_api_key() == "sk-from-env"
    assert Settings(_env_file=None, openai_api_key="sk-explicit").resolved_openai_api_key() == "sk-explicit"


def test_build_gateway_without_key_returns_none() -> None:
    assert build_gateway(Settings(_env_file=None)) is None


def test_build_gateway_with_key() -> None:
    gateway = build_gateway(Settings(_env_file=None, openai_api_key="sk-test", llm_model="gpt-4o", llm_trace=True))

    assert isinstance(gateway, OpenAIChatGateway)
    assert gateway.model == "gpt-4o"
    assert gateway.trace is True


def test_build_gateway_rejects_unknown_provider() -> None:
    assert build_gateway(Settings(_env_file=None, openai_api_key="sk-test", llm_provider="other")) is None


def test_build_executor_requires_gateway(echo_tool) -> None:
    with pytest.raises(GatewayError, match="No LLM gateway configured"):
        build_executor([echo_tool], settings=Settings(_env_file=None))


def test_builders_apply_settings(echo_tool, gateway) -> None:
    settings = Settings(
        _env_file=None,
        tool_max_retries=2,
        tool_retry_delay_s=0.0,
        regeneration_model="gpt-4o",
        orchestrator_max_steps=4,
        max_plan_regenerations=1,
        planning_temperature=0.2,
    )

    executor = build_executor([echo_tool], gateway=gateway, settings=settings)
    orchestrator = build_orchestrator(executor, settings=settings)

    assert executor.max_retries == 2
    assert executor.regeneration_model == "gpt-4o"
    assert orchestrator.gateway is gateway
    assert orchestrator.max_steps == 4
    assert orchestrator.max_plan_regenerations == 1
    assert orchestrator.planning_temperature == 0.2

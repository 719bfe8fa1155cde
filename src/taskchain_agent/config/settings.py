"""Runtime settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    tool_max_retries: int = Field(default=3, ge=1)
    tool_retry_delay_s: float = Field(default=1.0, ge=0.0)
    extraction_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    regeneration_model: str = ""
    orchestrator_max_steps: int = Field(default=10, ge=1)
    orchestrator_max_iterations: int = Field(default=5, ge=1)
    max_plan_regenerations: int = Field(default=3, ge=0)
    planning_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_provider: str = "openai"
    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_timeout_s: float = Field(default=30.0, ge=0.5)
    llm_max_retries: int = Field(default=1, ge=0)
    llm_backoff_s: float = Field(default=0.2, ge=0.0)
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=1000, ge=1)
    llm_trace: bool = False
    openai_api_key: str = ""

    model_config = SettingsConfigDict(
        env_prefix="TASKCHAIN_AGENT_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_openai_api_key(self) -> str:
        return self.openai_api_key or os.getenv("OPENAI_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

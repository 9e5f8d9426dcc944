"""
Application settings for taskloop.

Security:
    API keys use SecretStr to prevent accidental logging.
    Access the value with `.get_secret_value()`.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr

DEFAULT_MISSION = (
    "Your decisions must always serve the current task's definition of done "
    "while keeping the whole task sequence in view."
)


class AppSettings(BaseModel):
    """
    Application settings model.

    Built from TASKLOOP_* environment variables by get_settings().
    """

    model_config = ConfigDict(extra="ignore")

    # Service identity
    service_name: str = "taskloop"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Session
    agent_name: str = "Agent"
    room_name: str = "default-room"
    agent_mission: str = DEFAULT_MISSION

    # LLM
    llm_provider: Literal["openai", "anthropic"] = "openai"
    openai_api_key: SecretStr | None = None
    anthropic_api_key: SecretStr | None = None
    small_model: str | None = Field(None, description="Model for judgments and reconciliation")
    large_model: str | None = Field(None, description="Model for next-action generation")
    temperature: float = Field(0.2, ge=0, le=2)

    # Storage
    store_backend: Literal["inmemory", "redis"] = "inmemory"
    redis_url: str = "redis://localhost:6379"

    # Loop
    iteration_mode: Literal["sleep", "manual"] = "sleep"
    iteration_interval_ms: int = Field(5000, ge=0)
    polling_interval_ms: int = Field(5000, ge=1000)
    recent_message_limit: int = Field(20, ge=0)


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(f"TASKLOOP_{name}", default)


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get application settings from environment.

    Uses lru_cache for singleton pattern.
    """
    return AppSettings(
        # Service
        service_name=_env("SERVICE_NAME", "taskloop"),
        environment=_env("ENVIRONMENT", "development"),
        debug=_env("DEBUG", "false").lower() == "true",
        log_level=_env("LOG_LEVEL", "INFO").upper(),
        # Session
        agent_name=_env("AGENT_NAME", "Agent"),
        room_name=_env("ROOM_NAME", "default-room"),
        agent_mission=_env("AGENT_MISSION", DEFAULT_MISSION),
        # LLM
        llm_provider=_env("LLM_PROVIDER", "openai"),
        openai_api_key=_env("OPENAI_API_KEY"),
        anthropic_api_key=_env("ANTHROPIC_API_KEY"),
        small_model=_env("SMALL_MODEL"),
        large_model=_env("LARGE_MODEL"),
        temperature=float(_env("TEMPERATURE", "0.2")),
        # Storage
        store_backend=_env("STORE_BACKEND", "inmemory"),
        redis_url=_env("REDIS_URL", "redis://localhost:6379"),
        # Loop
        iteration_mode=_env("ITERATION_MODE", "sleep"),
        iteration_interval_ms=int(_env("ITERATION_INTERVAL_MS", "5000")),
        polling_interval_ms=int(_env("POLLING_INTERVAL_MS", "5000")),
        recent_message_limit=int(_env("RECENT_MESSAGE_LIMIT", "20")),
    )

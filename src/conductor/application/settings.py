"""
Engine configuration.

Values come from (highest priority first) the ``engine`` section of a YAML
profile (passed as keyword arguments by the factory), ``CONDUCTOR_*``
environment variables, a ``.env`` file, and the defaults below.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

from conductor.core.interfaces.policy import PolicyMode


class EngineSettings(BaseSettings):
    """Engine settings with environment variable support."""

    # Tool-call loop
    max_iterations: int = Field(default=50, ge=1, le=200, description="Tool-call loop iteration cap")
    temperature: float = Field(default=0.2, description="Sampling temperature")
    max_tokens: int | None = Field(default=None, description="Completion token limit")

    # Sub-agents
    max_sub_agents: int = Field(default=3, ge=1, description="Concurrent sub-agents per parent")
    inactivity_timeout_seconds: float = Field(default=300.0, gt=0, description="Heartbeat timeout")
    activity_poll_seconds: float = Field(default=30.0, gt=0, description="Heartbeat poll interval")
    confirmation_timeout_seconds: float = Field(
        default=60.0, gt=0, description="Seconds to wait for a delegation decision"
    )

    # Circuit breaker
    circuit_failure_threshold: int = Field(default=3, ge=1)
    circuit_cooldown_seconds: float = Field(default=60.0, ge=0)

    # Workflows
    policy_mode: PolicyMode = Field(default=PolicyMode.CONFIRMATION_REQUIRED)
    permissive_max_concurrent: int = Field(default=3, ge=1)
    confirmation_max_concurrent: int = Field(default=1, ge=1)
    cleanup_after_seconds: float = Field(default=600.0, ge=0)
    live_view_buffer_size: int = Field(default=500, ge=1, description="Events kept for the viewed workflow")

    # Adapters
    model: str = Field(default="gpt-4.1-mini", description="LiteLLM model name")
    store: Literal["memory", "file"] = Field(default="memory", description="Record store backend")
    work_dir: str = Field(default=".conductor", description="Directory for file-based records")
    config_dir: str = Field(default="configs", description="Directory with profiles and agents")

    # Logging
    debug: bool = Field(default=False, description="Console logging at debug level")

    model_config = {
        "env_file": ".env",
        "env_prefix": "CONDUCTOR_",
        "case_sensitive": False,
        "extra": "ignore",
    }


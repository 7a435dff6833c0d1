"""Configuration settings for the agent pipeline.

Hierarchical configuration built on pydantic-settings:

- One settings class per pipeline stage (registry, probe, matching,
  negotiation, execution) plus workflow and service settings
- Environment variable support with PIPELINE_ prefix and ``__`` nesting
  (e.g. ``PIPELINE_PROBE__CONCURRENCY_LIMIT=8``)
- Optional YAML configuration file
- Global settings caching
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.retry import RetryPolicy
from .schemas import (
    AgentDescriptor,
    ExecutionMode,
    MatchPolicy,
    NegotiationPolicy,
    ProposalTemplate,
    WorkflowStep,
)


logger = logging.getLogger(__name__)


class StageCallSettings(BaseModel):
    """Shared per-call timeout, retry and backoff configuration.

    Base class for every stage that talks to remote agents.
    """

    timeout_seconds: float = Field(
        4.0, gt=0.0, le=600.0, description="Deadline for a single agent call"
    )
    retry_attempts: int = Field(
        1, ge=0, le=10, description="Retries after the first attempt"
    )
    backoff_min_seconds: float = Field(
        0.1, ge=0.0, le=10.0, description="Lower bound of the randomized backoff"
    )
    backoff_max_seconds: float = Field(
        0.3, ge=0.0, le=10.0, description="Upper bound of the randomized backoff"
    )

    @model_validator(mode="after")
    def validate_backoff(self) -> "StageCallSettings":
        """Ensure the backoff window is not inverted."""
        if self.backoff_min_seconds > self.backoff_max_seconds:
            raise ValueError("backoff_min_seconds must be <= backoff_max_seconds")
        return self

    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy used by the stage."""
        return RetryPolicy(
            retry_attempts=self.retry_attempts,
            timeout_seconds=self.timeout_seconds,
            backoff_min_seconds=self.backoff_min_seconds,
            backoff_max_seconds=self.backoff_max_seconds,
        )


class RegistrySettings(BaseModel):
    """Where candidate agents come from."""

    sources: list[str] = Field(
        default_factory=lambda: ["agents.json"],
        description="Registry URLs or file paths, tried in order",
    )
    timeout_seconds: float = Field(
        3.0, gt=0.0, le=120.0, description="Timeout for fetching a remote registry"
    )
    default_agents: list[AgentDescriptor] = Field(
        default_factory=list,
        description="Fallback population used when every source is empty",
    )


class ProbeSettings(StageCallSettings):
    """Capability probing configuration."""

    enabled: bool = Field(True, description="Query /capabilities on each agent")
    concurrency_limit: int = Field(
        4, ge=1, le=64, description="Maximum probes in flight at once"
    )
    timeout_seconds: float = Field(3.0, gt=0.0, le=600.0)


class MatchingSettings(BaseModel):
    """Capability matching configuration."""

    policy: MatchPolicy = Field(
        MatchPolicy.SHARED, description="Whether an agent may serve several steps"
    )
    prefer_agent_ids: list[str] = Field(
        default_factory=list, description="Preferred agent ids, in order"
    )


class NegotiationSettings(StageCallSettings):
    """Negotiation handshake configuration."""

    policy: NegotiationPolicy = Field(
        NegotiationPolicy.STRICT,
        description="strict requires an explicit accept; permissive also takes 2xx",
    )
    send_terms: bool = Field(
        True, description="Send a structured proposal instead of an empty one"
    )
    proposal: ProposalTemplate = Field(default_factory=ProposalTemplate)


class ExecutionSettings(StageCallSettings):
    """Workflow execution configuration."""

    mode: ExecutionMode = Field(ExecutionMode.SEQUENTIAL)
    timeout_seconds: float = Field(12.0, gt=0.0, le=600.0)


class WorkflowSettings(BaseModel):
    """The workflow the service runs for each request."""

    steps: list[WorkflowStep] = Field(
        default_factory=lambda: [
            WorkflowStep(step_id="wallet_scan", capability="wallet_scan"),
            WorkflowStep(
                step_id="generate_report",
                capability="generate_report",
                input_key="walletData",
            ),
        ]
    )

    @model_validator(mode="before")
    @classmethod
    def parse_step_shorthand(cls, data: Any) -> Any:
        """Allow steps to be given as bare capability names."""
        if isinstance(data, dict) and isinstance(data.get("steps"), list):
            data = {**data, "steps": [WorkflowStep.parse(s) for s in data["steps"]]}
        return data


class ServiceSettings(BaseModel):
    """Identity and bind address of the orchestrator service."""

    agent_id: str = "pipeline-orchestrator"
    name: str = "Agent Pipeline Orchestrator"
    capabilities: list[str] = Field(
        default_factory=lambda: ["orchestrate_workflow", "discover_agents"]
    )
    host: str = "127.0.0.1"
    port: int = Field(8080, ge=1, le=65535)


class PipelineSettings(BaseSettings):
    """Root configuration combining all stage settings."""

    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    probe: ProbeSettings = Field(default_factory=ProbeSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    negotiation: NegotiationSettings = Field(default_factory=NegotiationSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)
    service: ServiceSettings = Field(default_factory=ServiceSettings)

    # Development and debugging
    debug_mode: bool = Field(False, description="Enable debug logging")
    log_level: str = Field(
        "INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        env_prefix="PIPELINE_",
        extra="ignore",
        validate_default=True,
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_configuration(self) -> "PipelineSettings":
        """Perform cross-field consistency checks."""
        if self.debug_mode:
            self.log_level = "DEBUG"
        self.log_level = self.log_level.upper()
        if self.log_level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {self.log_level}")
        return self


def load_settings_file(config_path: str | Path | None = None) -> PipelineSettings:
    """Load settings from a YAML file, falling back to environment defaults.

    Values from the file take precedence over environment variables.

    Args:
        config_path: Path to a YAML configuration file

    Returns:
        PipelineSettings instance

    """
    if config_path is None:
        return PipelineSettings()

    try:
        with Path(config_path).open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.info(f"Configuration loaded from {config_path}")
    except FileNotFoundError:
        logger.warning(f"Configuration file not found at {config_path}, using defaults")
        return PipelineSettings()

    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")

    return PipelineSettings(**data)


@lru_cache(maxsize=1)
def get_settings() -> PipelineSettings:
    """Get cached global settings instance.

    Returns:
        Global PipelineSettings instance

    """
    return PipelineSettings()


__all__ = [
    "ExecutionSettings",
    "MatchingSettings",
    "NegotiationSettings",
    "PipelineSettings",
    "ProbeSettings",
    "RegistrySettings",
    "ServiceSettings",
    "StageCallSettings",
    "WorkflowSettings",
    "get_settings",
    "load_settings_file",
]

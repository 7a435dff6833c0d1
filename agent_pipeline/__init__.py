"""Agent Pipeline - capability-matched orchestration of remote agents.

Core Components:
- core.agent_registry: registry loading and capability index
- core.prober: bounded-concurrency capability probing
- core.matcher: capability matching and goal-driven planning
- core.negotiator: negotiation handshake with response normalization
- core.executor: sequential / parallel workflow execution
- core.orchestrator: facade composing the stages
- integrations: httpx client for remote agents
- api: FastAPI service exposing the orchestrator
"""

from .config import PipelineSettings, get_settings, load_settings_file
from .core.orchestrator import WorkflowOrchestrator
from .integrations import AgentClient
from .schemas import (
    AgentDescriptor,
    AggregateStatus,
    ExecutionMode,
    ExecutionResult,
    MatchPolicy,
    NegotiationPolicy,
    OrchestrationResult,
    WorkflowStep,
)

__version__ = "0.1.0"

__all__ = [
    "AgentClient",
    "AgentDescriptor",
    "AggregateStatus",
    "ExecutionMode",
    "ExecutionResult",
    "MatchPolicy",
    "NegotiationPolicy",
    "OrchestrationResult",
    "PipelineSettings",
    "WorkflowOrchestrator",
    "WorkflowStep",
    "get_settings",
    "load_settings_file",
]

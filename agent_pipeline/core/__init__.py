"""Core orchestration components.

This module provides the pipeline stages and the shared abstractions they
are built on.
"""

from .agent_protocol import AgentResponse, AgentTransport
from .agent_registry import AgentRegistry, RegistryLoader, parse_registry_entries
from .errors import (
    AgentCallError,
    AgentTimeoutError,
    CoverageError,
    NegotiationRejectedError,
    OrchestrationError,
    PipelineAbortError,
    ProtocolError,
    RegistryEmptyError,
    TransportError,
    UnmatchedStepsError,
)
from .executor import WorkflowExecutor
from .matcher import CapabilityMatcher, GoalPlanner, ensure_complete
from .negotiator import Negotiator, classify_negotiation_response
from .prober import CapabilityProber, deduplicate_agents
from .retry import RetryOutcome, RetryPolicy, call_with_retry

# WorkflowOrchestrator import kept out of this module to avoid circular imports


__all__ = [
    "AgentCallError",
    "AgentRegistry",
    "AgentResponse",
    "AgentTimeoutError",
    "AgentTransport",
    "CapabilityMatcher",
    "CapabilityProber",
    "CoverageError",
    "GoalPlanner",
    "Negotiator",
    "NegotiationRejectedError",
    "OrchestrationError",
    "PipelineAbortError",
    "ProtocolError",
    "RegistryEmptyError",
    "RegistryLoader",
    "RetryOutcome",
    "RetryPolicy",
    "TransportError",
    "UnmatchedStepsError",
    "WorkflowExecutor",
    "call_with_retry",
    "classify_negotiation_response",
    "deduplicate_agents",
    "ensure_complete",
    "parse_registry_entries",
]

"""Exception hierarchy for the agent pipeline.

Per-agent call failures (`AgentCallError` and subclasses) are resolved
inside each stage by the retrying call. Only coverage errors and pipeline
aborts reach the caller of the orchestrator.
"""

from typing import Any


class OrchestrationError(Exception):
    """Base class for all pipeline errors."""


class AgentCallError(OrchestrationError):
    """A single call to a remote agent did not produce a usable result."""

    def __init__(
        self,
        message: str,
        agent_id: str | None = None,
        url: str | None = None,
        status_code: int | None = None,
        response_body: Any = None,
    ):
        """Initialize with call context."""
        self.agent_id = agent_id
        self.url = url
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


class TransportError(AgentCallError):
    """Connection failure or other network-level error."""


class AgentTimeoutError(TransportError):
    """The agent did not answer within the configured deadline."""


class ProtocolError(AgentCallError):
    """The agent answered with an unexpected or negative response shape."""


class CoverageError(OrchestrationError):
    """The available agents cannot cover the requested workflow."""


class RegistryEmptyError(CoverageError):
    """No registry source and no fallback produced any agents."""

    def __init__(self, sources: list[str] | None = None):
        """Initialize with the sources that were tried."""
        self.sources = list(sources or [])
        tried = ", ".join(self.sources) or "none"
        super().__init__(f"No agents available (sources tried: {tried})")


class UnmatchedStepsError(CoverageError):
    """One or more required steps have no qualifying agent."""

    def __init__(self, step_ids: list[str]):
        """Initialize with the unmatched step ids."""
        self.step_ids = list(step_ids)
        super().__init__(f"Missing agents for steps: {', '.join(self.step_ids)}")


class NegotiationRejectedError(CoverageError):
    """A matched agent did not accept its assignment."""

    def __init__(self, agent_ids: list[str], outcomes: list[Any] | None = None):
        """Initialize with the rejecting agent ids and the full outcome list."""
        self.agent_ids = list(agent_ids)
        self.outcomes = list(outcomes or [])
        super().__init__(
            f"Negotiation failed for agents: {', '.join(self.agent_ids)}"
        )


class PipelineAbortError(OrchestrationError):
    """A sequential step exhausted its retry budget."""

    def __init__(
        self,
        message: str,
        step_id: str | None = None,
        agent_id: str | None = None,
        logs: list[Any] | None = None,
    ):
        """Initialize with the failing step and the log accumulated so far."""
        self.step_id = step_id
        self.agent_id = agent_id
        self.logs = list(logs or [])
        super().__init__(message)

"""Workflow orchestrator.

This module composes the pipeline stages: registry loading, capability
probing, capability matching, negotiation and workflow execution. Each stage
receives the previous stage's snapshot plus configuration.
"""

import logging
from typing import Any

from ..config import PipelineSettings, get_settings
from ..integrations.agent_client import AgentClient
from ..schemas import (
    AgentDescriptor,
    AggregateStatus,
    ExecutionMode,
    GoalPlan,
    MatchResult,
    OrchestrationResult,
    WorkflowStep,
)
from .agent_protocol import AgentTransport
from .agent_registry import RegistryLoader
from .errors import NegotiationRejectedError, PipelineAbortError
from .executor import WorkflowExecutor
from .matcher import CapabilityMatcher, GoalPlanner, ensure_complete
from .negotiator import Negotiator
from .prober import CapabilityProber


logger = logging.getLogger(__name__)


class WorkflowOrchestrator:
    """Coordinates discovery, matching, negotiation and execution.

    Raises only coverage errors (no agents, unmatched steps, rejected
    negotiation) and pipeline aborts; per-agent failures are resolved inside
    each stage.
    """

    def __init__(
        self,
        settings: PipelineSettings | None = None,
        transport: AgentTransport | None = None,
        default_agents: list[AgentDescriptor] | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            settings: Pipeline settings. If None, uses global settings.
            transport: Agent transport. If None, an AgentClient is created
                and owned by the orchestrator.
            default_agents: Fallback population. If None, uses
                ``settings.registry.default_agents``.

        """
        self.settings = settings or get_settings()
        self._owns_transport = transport is None
        self.transport = transport or AgentClient()
        self.default_agents = (
            list(default_agents)
            if default_agents is not None
            else list(self.settings.registry.default_agents)
        )

        self.loader = RegistryLoader(self.transport)
        self.prober = CapabilityProber(
            self.transport,
            policy=self.settings.probe.retry_policy(),
            concurrency_limit=self.settings.probe.concurrency_limit,
        )
        self.matcher = CapabilityMatcher(policy=self.settings.matching.policy)
        self.planner = GoalPlanner()
        self.negotiator = Negotiator(
            self.transport,
            policy=self.settings.negotiation.retry_policy(),
            negotiation_policy=self.settings.negotiation.policy,
        )
        self.executor = WorkflowExecutor(
            self.transport, policy=self.settings.execution.retry_policy()
        )

        logger.info("WorkflowOrchestrator initialized successfully")

    async def discover(self, sources: list[str] | None = None) -> list[AgentDescriptor]:
        """Load the population and, if enabled, refresh it by probing.

        Raises:
            RegistryEmptyError: If neither the sources nor the defaults
                yield any agent

        """
        registry = self.settings.registry
        agents = await self.loader.resolve_population(
            sources if sources is not None else registry.sources,
            self.default_agents,
            timeout=registry.timeout_seconds,
        )
        if not self.settings.probe.enabled:
            return agents
        return await self.prober.probe(agents)

    def match(
        self,
        agents: list[AgentDescriptor],
        steps: list[WorkflowStep | str],
        prefer_agent_ids: list[str] | None = None,
    ) -> MatchResult:
        """Resolve steps to agents without raising on unmatched steps."""
        return self.matcher.match(
            agents,
            steps,
            prefer_agent_ids
            if prefer_agent_ids is not None
            else self.settings.matching.prefer_agent_ids,
        )

    def plan(self, goal: str, agents: list[AgentDescriptor]) -> GoalPlan:
        """Derive a workflow from a free-text goal."""
        return self.planner.plan(goal, agents)

    async def run(
        self,
        initial_payload: Any,
        steps: list[WorkflowStep | str] | None = None,
        agents: list[AgentDescriptor] | None = None,
        mode: ExecutionMode | None = None,
        prefer_agent_ids: list[str] | None = None,
    ) -> OrchestrationResult:
        """Run the whole pipeline for one request.

        Args:
            initial_payload: Input of the first step (or of every step in
                parallel mode)
            steps: Required steps. If None, uses the configured workflow.
            agents: Pre-discovered population. If None, runs discovery.
            mode: Execution mode. If None, uses the configured mode.
            prefer_agent_ids: Agent ids to prefer during matching

        Returns:
            OrchestrationResult for successful (or, in parallel mode,
            partially successful) runs

        Raises:
            RegistryEmptyError: No agents available
            UnmatchedStepsError: A required step has no qualifying agent
            NegotiationRejectedError: A matched agent did not accept
            PipelineAbortError: A sequential step exhausted its retries

        """
        steps = steps if steps is not None else list(self.settings.workflow.steps)
        mode = mode or self.settings.execution.mode

        if agents is None:
            agents = await self.discover()

        assignments = ensure_complete(self.match(agents, steps, prefer_agent_ids))

        negotiation_settings = self.settings.negotiation
        report = await self.negotiator.negotiate(
            assignments,
            negotiation_settings.proposal if negotiation_settings.send_terms else None,
        )
        if not report.all_accepted:
            raise NegotiationRejectedError(report.rejected_agent_ids, report.outcomes)

        execution = await self.executor.execute(assignments, initial_payload, mode)

        if mode == ExecutionMode.SEQUENTIAL and not execution.success:
            raise PipelineAbortError(
                f"Step {execution.failed_step} failed on agent "
                f"{execution.failed_agent}: {execution.error}",
                step_id=execution.failed_step,
                agent_id=execution.failed_agent,
                logs=execution.logs,
            )

        result = OrchestrationResult(
            status=execution.status,
            assignments=assignments,
            negotiation=report,
            execution=execution,
        )
        if result.status != AggregateStatus.OK:
            logger.warning(f"Workflow finished with status {result.status}")
        else:
            logger.info(f"Workflow completed with {len(execution.logs)} steps")
        return result

    async def close(self) -> None:
        """Release the transport if the orchestrator created it."""
        if self._owns_transport and isinstance(self.transport, AgentClient):
            await self.transport.close()

    async def __aenter__(self) -> "WorkflowOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

"""Capability matching.

Two matchers resolve workflow steps to agents:

- `CapabilityMatcher` assigns each required capability to the first
  preferred agent advertising it, else to the first agent in population order.
- `GoalPlanner` derives roles from a free-text goal and scores every agent
  against each role's capability keywords.

Both honour a `MatchPolicy` deciding whether an agent may serve several steps.
"""

import logging
from collections.abc import Iterable

from ..schemas import (
    AgentDescriptor,
    GoalPlan,
    MatchAssignment,
    MatchPolicy,
    MatchResult,
    RequirementRule,
    WorkflowStep,
)
from .agent_registry import AgentRegistry
from .errors import UnmatchedStepsError


logger = logging.getLogger(__name__)


DEFAULT_RULES: tuple[RequirementRule, ...] = (
    RequirementRule(
        role="data_extractor",
        goal_keywords=["wallet", "balance", "transaction"],
        capability_keywords=["wallet_scan", "balance_data", "tx_history"],
    ),
    RequirementRule(
        role="report_generator",
        goal_keywords=["report", "pdf"],
        capability_keywords=["generate_report", "process_data", "pdf_export"],
    ),
    RequirementRule(
        role="uploader",
        goal_keywords=["ipfs", "publish", "upload"],
        capability_keywords=["ipfs_upload", "storage_upload"],
    ),
)

FALLBACK_ROLES = ("primary", "secondary")
FALLBACK_CONFIDENCE = 0.35


def ensure_complete(result: MatchResult) -> list[MatchAssignment]:
    """Return the assignments, or raise if any required step is unmatched."""
    if not result.is_complete:
        raise UnmatchedStepsError(result.unmatched_step_ids)
    return result.assignments


class CapabilityMatcher:
    """Resolves required steps to agents by exact capability name."""

    def __init__(self, policy: MatchPolicy = MatchPolicy.SHARED):
        self.policy = policy

    def match(
        self,
        agents: list[AgentDescriptor],
        steps: Iterable[WorkflowStep | str],
        prefer_agent_ids: list[str] | None = None,
    ) -> MatchResult:
        """Assign one agent per step.

        Args:
            agents: Probed population, in population order
            steps: Required steps (bare capability names are accepted)
            prefer_agent_ids: Agent ids to try first, in order

        Returns:
            MatchResult with assignments and unmatched steps

        """
        registry = AgentRegistry(agents)
        chosen: set[str] = set()
        result = MatchResult()

        for step in (WorkflowStep.parse(s) for s in steps):
            candidates = [
                agent
                for agent in registry.find_by_capability(step.capability)
                if self.policy == MatchPolicy.SHARED or agent.id not in chosen
            ]
            agent, reason = self._select(step, candidates, prefer_agent_ids or [])

            if agent is None:
                result.unmatched_steps.append(step)
                result.reasons.append(f"No agent advertises {step.capability}")
                continue

            chosen.add(agent.id)
            result.assignments.append(
                MatchAssignment(step=step, agent=agent, reason=reason)
            )
            result.reasons.append(reason)

        if result.unmatched_steps:
            logger.warning(f"Unmatched steps: {result.unmatched_step_ids}")
        return result

    def _select(
        self,
        step: WorkflowStep,
        candidates: list[AgentDescriptor],
        prefer_agent_ids: list[str],
    ) -> tuple[AgentDescriptor | None, str]:
        by_id = {agent.id: agent for agent in candidates}
        for preferred in prefer_agent_ids:
            if preferred in by_id:
                return by_id[preferred], f"Step {step.step_id} -> {preferred} (preferred)"

        if candidates:
            first = candidates[0]
            return first, f"Step {step.step_id} -> {first.id} (first fit)"
        return None, ""


class GoalPlanner:
    """Builds a workflow from a free-text goal by keyword scoring."""

    def __init__(
        self,
        rules: Iterable[RequirementRule] = DEFAULT_RULES,
        policy: MatchPolicy = MatchPolicy.EXCLUSIVE,
    ):
        self.rules = list(rules)
        self.policy = policy

    def requirements_for(self, goal: str) -> list[RequirementRule]:
        return [rule for rule in self.rules if rule.applies_to(goal or "")]

    @staticmethod
    def score(agent: AgentDescriptor, rule: RequirementRule) -> int:
        """Count the agent's capabilities containing any of the rule's keywords."""
        return sum(
            1
            for capability in agent.capabilities
            if any(keyword in capability for keyword in rule.capability_keywords)
        )

    def plan(self, goal: str, agents: list[AgentDescriptor]) -> GoalPlan:
        """Derive roles from the goal and pick an agent for each."""
        requirements = self.requirements_for(goal)
        if not requirements:
            return GoalPlan(goal=goal, match=self._fallback(agents))

        chosen: set[str] = set()
        result = MatchResult()

        for rule in requirements:
            step = WorkflowStep(step_id=rule.role, capability=rule.role)
            # sorted() is stable, so ties keep population order
            ranked = sorted(
                ((agent, self.score(agent, rule)) for agent in agents),
                key=lambda pair: pair[1],
                reverse=True,
            )
            available = [
                (agent, score)
                for agent, score in ranked
                if self.policy == MatchPolicy.SHARED or agent.id not in chosen
            ]

            best = next(((a, s) for a, s in available if s > 0), None)
            if best is not None:
                agent, score = best
                confidence = min(0.95, 0.5 + score * 0.15)
                reason = f"Requirement {rule.role} satisfied by {agent.id} (score={score})"
            elif available:
                agent, score = available[0]
                confidence = FALLBACK_CONFIDENCE
                reason = f"Requirement {rule.role} assigned to {agent.id} (fallback)"
            else:
                result.unmatched_steps.append(step)
                result.reasons.append(f"No agents available for role {rule.role}")
                continue

            chosen.add(agent.id)
            result.assignments.append(
                MatchAssignment(
                    step=step, agent=agent, confidence=confidence, reason=reason
                )
            )
            result.reasons.append(reason)

        logger.info(
            f"Planned {len(result.assignments)} steps for goal {goal!r}, "
            f"{len(result.unmatched_steps)} unsatisfied"
        )
        return GoalPlan(goal=goal, match=result)

    def _fallback(self, agents: list[AgentDescriptor]) -> MatchResult:
        """Pick the agents with the most capabilities when no rule applies."""
        ranked = sorted(agents, key=lambda a: len(a.capabilities), reverse=True)
        result = MatchResult(reasons=["fallback: highest-capability agents"])
        for index, (role, agent) in enumerate(zip(FALLBACK_ROLES, ranked)):
            result.assignments.append(
                MatchAssignment(
                    step=WorkflowStep(step_id=role, capability=role),
                    agent=agent,
                    confidence=0.8 - 0.1 * index,
                    reason=f"Role {role} assigned to {agent.id} (most capabilities)",
                )
            )
        return result

"""Data models shared by every stage of the agent pipeline.

The pipeline hands immutable snapshots from one stage to the next: registry
entries become `AgentDescriptor`s, matching produces `MatchAssignment`s,
negotiation produces `NegotiationOutcome`s and execution produces an ordered
list of `ExecutionLogEntry` records.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

# ============================================================================
# ENUMS
# ============================================================================


class AggregateStatus(StrEnum):
    """Overall status of a fan-out stage (negotiation or execution)."""

    OK = "ok"
    PARTIAL = "partial"
    FAILED = "failed"

    @classmethod
    def from_counts(cls, succeeded: int, total: int) -> "AggregateStatus":
        """Reduce per-item results to a single status."""
        if total > 0 and succeeded == total:
            return cls.OK
        if succeeded > 0:
            return cls.PARTIAL
        if total == 0:
            return cls.OK
        return cls.FAILED


class ExecutionMode(StrEnum):
    """How the executor schedules workflow steps."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class NegotiationVerdict(StrEnum):
    """Normalized reading of a negotiate response."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


class NegotiationPolicy(StrEnum):
    """Whether a bare success status code counts as acceptance."""

    STRICT = "strict"
    PERMISSIVE = "permissive"


class MatchPolicy(StrEnum):
    """Whether one agent may be assigned to more than one step."""

    SHARED = "shared"
    EXCLUSIVE = "exclusive"


# ============================================================================
# AGENTS AND STEPS
# ============================================================================


class AgentDescriptor(BaseModel):
    """A remote agent: identity, base address and advertised capabilities."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str | None = None
    address: str = Field(..., min_length=1)
    capabilities: frozenset[str] = Field(default_factory=frozenset)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("address")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Store base addresses without a trailing slash."""
        stripped = v.rstrip("/")
        if not stripped:
            raise ValueError("address must not be empty")
        return stripped

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def has_capability(self, capability: str) -> bool:
        return capability in self.capabilities

    def endpoint(self, operation: str) -> str:
        """Build the URL of one of the agent operations."""
        return f"{self.address}/{operation.lstrip('/')}"


class WorkflowStep(BaseModel):
    """One required step of a workflow, identified by the capability it needs.

    `fixed_input` replaces the pipelined payload entirely. `input_key` wraps
    the pipelined payload as ``{input_key: payload}`` for agents that expect
    the previous output under a named field.
    """

    model_config = ConfigDict(frozen=True)

    step_id: str = Field(..., min_length=1)
    capability: str = Field(..., min_length=1)
    fixed_input: dict[str, Any] | None = None
    input_key: str | None = None

    @classmethod
    def parse(cls, value: "str | dict[str, Any] | WorkflowStep") -> "WorkflowStep":
        """Accept a bare capability name, a mapping or an existing step."""
        if isinstance(value, WorkflowStep):
            return value
        if isinstance(value, str):
            return cls(step_id=value, capability=value)
        data = dict(value)
        data.setdefault("step_id", data.get("capability"))
        return cls.model_validate(data)


class MatchAssignment(BaseModel):
    """A workflow step paired with the agent chosen to perform it."""

    model_config = ConfigDict(frozen=True)

    step: WorkflowStep
    agent: AgentDescriptor
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    reason: str = ""


class MatchResult(BaseModel):
    """Output of a matcher: one assignment per satisfiable step."""

    assignments: list[MatchAssignment] = Field(default_factory=list)
    unmatched_steps: list[WorkflowStep] = Field(default_factory=list)
    reasons: list[str] = Field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.unmatched_steps

    @property
    def unmatched_step_ids(self) -> list[str]:
        return [step.step_id for step in self.unmatched_steps]


# ============================================================================
# NEGOTIATION
# ============================================================================


class ProposalTemplate(BaseModel):
    """Terms offered to an agent during negotiation."""

    price: str = "0.0001 ETH"
    deadline: str = "24h"
    details: str | None = None


class NegotiationOutcome(BaseModel):
    """Per-agent result of the negotiation handshake."""

    model_config = ConfigDict(frozen=True)

    agent_id: str
    step_id: str | None = None
    accepted: bool
    verdict: NegotiationVerdict = NegotiationVerdict.UNKNOWN
    status_code: int | None = None
    response_body: Any = None
    error: str | None = None
    attempts: int = 0


class NegotiationReport(BaseModel):
    """All negotiation outcomes plus their aggregate status."""

    outcomes: list[NegotiationOutcome] = Field(default_factory=list)

    @computed_field
    @property
    def status(self) -> AggregateStatus:
        accepted = sum(1 for o in self.outcomes if o.accepted)
        return AggregateStatus.from_counts(accepted, len(self.outcomes))

    @property
    def rejected_agent_ids(self) -> list[str]:
        return [o.agent_id for o in self.outcomes if not o.accepted]

    @property
    def all_accepted(self) -> bool:
        return all(o.accepted for o in self.outcomes)


# ============================================================================
# EXECUTION
# ============================================================================


class ExecutionLogEntry(BaseModel):
    """Timing and outcome of one workflow step (all attempts combined)."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    agent_id: str
    success: bool
    status_code: int | None = None
    duration_ms: float = 0.0
    attempts: int = 0
    error: str | None = None
    output: Any = None
    response_body: Any = None


class ExecutionResult(BaseModel):
    """Outcome of running a resolved workflow."""

    status: AggregateStatus
    mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    logs: list[ExecutionLogEntry] = Field(default_factory=list)
    final_output: Any = None
    failed_step: str | None = None
    failed_agent: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == AggregateStatus.OK

    def outputs_by_step(self) -> dict[str, Any]:
        return {entry.step_id: entry.output for entry in self.logs if entry.success}


class OrchestrationResult(BaseModel):
    """Everything the facade knows after a complete run."""

    status: AggregateStatus
    assignments: list[MatchAssignment] = Field(default_factory=list)
    negotiation: NegotiationReport = Field(default_factory=NegotiationReport)
    execution: ExecutionResult
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def logs(self) -> list[ExecutionLogEntry]:
        return self.execution.logs

    @property
    def final_output(self) -> Any:
        return self.execution.final_output

    @property
    def outputs(self) -> dict[str, Any]:
        return self.execution.outputs_by_step()

    def agents_used(self) -> list[dict[str, str]]:
        return [
            {"step": a.step.step_id, "id": a.agent.id, "address": a.agent.address}
            for a in self.assignments
        ]


# ============================================================================
# GOAL-DRIVEN PLANNING
# ============================================================================


class RequirementRule(BaseModel):
    """Maps goal keywords to a role and the capability keywords it needs."""

    role: str
    goal_keywords: list[str]
    capability_keywords: list[str]

    def applies_to(self, goal: str) -> bool:
        lowered = goal.lower()
        return any(keyword in lowered for keyword in self.goal_keywords)


class GoalPlan(BaseModel):
    """A workflow derived from a free-text goal."""

    goal: str
    match: MatchResult

    @property
    def assignments(self) -> list[MatchAssignment]:
        return self.match.assignments

    @property
    def steps(self) -> list[WorkflowStep]:
        return [a.step for a in self.match.assignments]

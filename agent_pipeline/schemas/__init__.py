"""Schemas for the agent pipeline."""

from .models import (
    AgentDescriptor,
    AggregateStatus,
    ExecutionLogEntry,
    ExecutionMode,
    ExecutionResult,
    GoalPlan,
    MatchAssignment,
    MatchPolicy,
    MatchResult,
    NegotiationOutcome,
    NegotiationPolicy,
    NegotiationReport,
    NegotiationVerdict,
    OrchestrationResult,
    ProposalTemplate,
    RequirementRule,
    WorkflowStep,
)

__all__ = [
    "AgentDescriptor",
    "AggregateStatus",
    "ExecutionLogEntry",
    "ExecutionMode",
    "ExecutionResult",
    "GoalPlan",
    "MatchAssignment",
    "MatchPolicy",
    "MatchResult",
    "NegotiationOutcome",
    "NegotiationPolicy",
    "NegotiationReport",
    "NegotiationVerdict",
    "OrchestrationResult",
    "ProposalTemplate",
    "RequirementRule",
    "WorkflowStep",
]

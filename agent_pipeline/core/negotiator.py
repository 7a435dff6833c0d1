"""Negotiation handshake with matched agents.

Each assigned agent receives a proposal on its ``/negotiate`` operation. Raw
replies come in several shapes (status token, boolean flag, bare status
code); `classify_negotiation_response` maps them all to a
`NegotiationVerdict` and nothing else in the pipeline inspects raw shapes.

Absence of a positive signal is a rejection (fail-closed). The permissive
policy additionally accepts any 2xx reply that carries no explicit answer.
"""

import asyncio
import logging
import time
from typing import Any

from ..schemas import (
    MatchAssignment,
    NegotiationOutcome,
    NegotiationPolicy,
    NegotiationReport,
    NegotiationVerdict,
    ProposalTemplate,
)
from .agent_protocol import AgentResponse, AgentTransport
from .errors import ProtocolError
from .retry import RetryPolicy, call_with_retry


logger = logging.getLogger(__name__)

ACCEPT_TOKENS = frozenset({"ACCEPT", "ACCEPTED", "OK"})
REJECT_TOKENS = frozenset({"REJECT", "REJECTED", "DECLINE", "DECLINED", "ERROR"})
ACCEPT_FLAGS = ("accept", "accepted")


def classify_negotiation_response(
    response: AgentResponse,
    policy: NegotiationPolicy = NegotiationPolicy.STRICT,
) -> NegotiationVerdict:
    """Map any negotiate reply to accepted / rejected / unknown."""
    body = response.body

    if isinstance(body, dict):
        status = body.get("status")
        if isinstance(status, str):
            token = status.strip().upper()
            if token in ACCEPT_TOKENS:
                return NegotiationVerdict.ACCEPTED
            if token in REJECT_TOKENS:
                return NegotiationVerdict.REJECTED
        for flag in ACCEPT_FLAGS:
            if body.get(flag) is True:
                return NegotiationVerdict.ACCEPTED
            if body.get(flag) is False:
                return NegotiationVerdict.REJECTED
    elif isinstance(body, str):
        token = body.strip().upper()
        if token in ACCEPT_TOKENS:
            return NegotiationVerdict.ACCEPTED
        if token in REJECT_TOKENS:
            return NegotiationVerdict.REJECTED

    if response.status_code >= 400:
        return NegotiationVerdict.REJECTED
    if policy == NegotiationPolicy.PERMISSIVE and response.ok:
        return NegotiationVerdict.ACCEPTED
    return NegotiationVerdict.UNKNOWN


def build_proposal(
    assignment: MatchAssignment, template: ProposalTemplate | None
) -> dict[str, Any]:
    """Build the negotiate body; no template means the minimal ``{}`` proposal."""
    if template is None:
        return {}

    role = assignment.step.step_id
    return {
        "proposal": {
            "proposalId": f"pipeline-{int(time.time() * 1000)}-{role}",
            "role": role,
            "agentId": assignment.agent.id,
            "terms": {
                "price": template.price,
                "deadline": template.deadline,
                "details": template.details or f"Perform role {role} for goal",
            },
        }
    }


class Negotiator:
    """Collects a participation decision from every assigned agent."""

    def __init__(
        self,
        transport: AgentTransport,
        policy: RetryPolicy | None = None,
        negotiation_policy: NegotiationPolicy = NegotiationPolicy.STRICT,
    ):
        """Initialize the negotiator.

        Args:
            transport: Transport used to reach agents
            policy: Per-call timeout, retry budget and backoff
            negotiation_policy: Whether a bare 2xx counts as acceptance

        """
        self.transport = transport
        self.policy = policy or RetryPolicy()
        self.negotiation_policy = negotiation_policy

    async def negotiate(
        self,
        assignments: list[MatchAssignment],
        proposal: ProposalTemplate | None = None,
    ) -> NegotiationReport:
        """Negotiate with every assignment; never stops at the first rejection."""
        outcomes = await asyncio.gather(
            *(self.negotiate_one(a, proposal) for a in assignments)
        )
        report = NegotiationReport(outcomes=list(outcomes))
        logger.info(
            f"Negotiation finished with status {report.status}: "
            f"{len(outcomes) - len(report.rejected_agent_ids)}/{len(outcomes)} accepted"
        )
        return report

    async def negotiate_one(
        self, assignment: MatchAssignment, proposal: ProposalTemplate | None = None
    ) -> NegotiationOutcome:
        """Negotiate with one agent, retrying until it accepts or the budget ends."""
        agent = assignment.agent
        body = build_proposal(assignment, proposal)

        async def attempt(_: int) -> AgentResponse:
            response = await self.transport.negotiate(agent, body)
            verdict = classify_negotiation_response(response, self.negotiation_policy)
            if verdict != NegotiationVerdict.ACCEPTED:
                raise ProtocolError(
                    f"Agent {agent.id} answered negotiation with {verdict}",
                    agent_id=agent.id,
                    status_code=response.status_code,
                    response_body=response.body,
                )
            return response

        outcome = await call_with_retry(
            attempt, self.policy, label=f"negotiate {agent.id}"
        )

        if outcome.succeeded:
            return NegotiationOutcome(
                agent_id=agent.id,
                step_id=assignment.step.step_id,
                accepted=True,
                verdict=NegotiationVerdict.ACCEPTED,
                status_code=outcome.value.status_code,
                response_body=outcome.value.body,
                attempts=outcome.attempts,
            )

        last_response = AgentResponse(
            status_code=outcome.last_status_code or 0,
            body=outcome.last_response_body,
        )
        verdict = (
            classify_negotiation_response(last_response, self.negotiation_policy)
            if outcome.last_status_code is not None
            else NegotiationVerdict.UNKNOWN
        )
        logger.warning(
            f"Agent {agent.id} did not accept step {assignment.step.step_id}: "
            f"{outcome.error_message}"
        )
        return NegotiationOutcome(
            agent_id=agent.id,
            step_id=assignment.step.step_id,
            accepted=False,
            verdict=verdict,
            status_code=outcome.last_status_code,
            response_body=outcome.last_response_body,
            error=outcome.error_message,
            attempts=outcome.attempts,
        )

"""Workflow execution.

Invokes each assigned agent's ``/execute`` operation.

- Sequential mode pipes each step's output into the next step and stops at
  the first step that exhausts its attempts.
- Parallel mode sends every step its own request derived from the initial
  payload, and never stops early.

A step's reply is accepted only when it carries the ``DONE`` status together
with an ``output`` field. One log entry is recorded per step, however many
attempts it took.
"""

import asyncio
import logging
from typing import Any

from ..schemas import (
    AggregateStatus,
    ExecutionLogEntry,
    ExecutionMode,
    ExecutionResult,
    MatchAssignment,
    WorkflowStep,
)
from .agent_protocol import AgentResponse, AgentTransport
from .errors import ProtocolError
from .retry import RetryPolicy, call_with_retry


logger = logging.getLogger(__name__)

DONE_STATUS = "DONE"


def is_done_response(response: AgentResponse) -> bool:
    """True when the reply has the done status and an output field."""
    body = response.body
    return (
        isinstance(body, dict)
        and isinstance(body.get("status"), str)
        and body["status"].strip().upper() == DONE_STATUS
        and "output" in body
    )


def build_step_request(step: WorkflowStep, payload: Any) -> Any:
    """Build the execute body for a step from the incoming payload."""
    if step.fixed_input is not None:
        return dict(step.fixed_input)
    if step.input_key:
        return {step.input_key: payload}
    if isinstance(payload, dict):
        return payload
    return {"input": payload}


class WorkflowExecutor:
    """Runs resolved workflows against remote agents."""

    def __init__(self, transport: AgentTransport, policy: RetryPolicy | None = None):
        """Initialize the executor.

        Args:
            transport: Transport used to reach agents
            policy: Per-call timeout, retry budget and backoff

        """
        self.transport = transport
        self.policy = policy or RetryPolicy()

    async def execute(
        self,
        assignments: list[MatchAssignment],
        initial_payload: Any,
        mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
    ) -> ExecutionResult:
        """Execute the workflow in the requested mode."""
        logger.info(f"Executing {len(assignments)} steps in {mode} mode")
        if mode == ExecutionMode.PARALLEL:
            return await self._execute_parallel(assignments, initial_payload)
        return await self._execute_sequential(assignments, initial_payload)

    async def _execute_sequential(
        self, assignments: list[MatchAssignment], initial_payload: Any
    ) -> ExecutionResult:
        logs: list[ExecutionLogEntry] = []
        payload = initial_payload

        for assignment in assignments:
            request = build_step_request(assignment.step, payload)
            entry = await self.run_step(assignment, request)
            logs.append(entry)

            if not entry.success:
                logger.error(
                    f"Step {entry.step_id} failed on agent {entry.agent_id}, "
                    f"aborting workflow: {entry.error}"
                )
                return ExecutionResult(
                    status=AggregateStatus.FAILED,
                    mode=ExecutionMode.SEQUENTIAL,
                    logs=logs,
                    failed_step=entry.step_id,
                    failed_agent=entry.agent_id,
                    error=entry.error,
                )
            payload = entry.output

        return ExecutionResult(
            status=AggregateStatus.OK,
            mode=ExecutionMode.SEQUENTIAL,
            logs=logs,
            final_output=payload,
        )

    async def _execute_parallel(
        self, assignments: list[MatchAssignment], initial_payload: Any
    ) -> ExecutionResult:
        logs = list(
            await asyncio.gather(
                *(
                    self.run_step(a, build_step_request(a.step, initial_payload))
                    for a in assignments
                )
            )
        )
        succeeded = [entry for entry in logs if entry.success]
        failed = [entry for entry in logs if not entry.success]
        status = AggregateStatus.from_counts(len(succeeded), len(logs))

        return ExecutionResult(
            status=status,
            mode=ExecutionMode.PARALLEL,
            logs=logs,
            final_output={entry.step_id: entry.output for entry in succeeded},
            failed_step=failed[0].step_id if failed else None,
            failed_agent=failed[0].agent_id if failed else None,
            error=failed[0].error if failed else None,
        )

    async def run_step(
        self, assignment: MatchAssignment, request: Any
    ) -> ExecutionLogEntry:
        """Call one agent with retries and summarize all attempts in one entry."""
        agent = assignment.agent
        step_id = assignment.step.step_id

        async def attempt(number: int) -> AgentResponse:
            logger.debug(f"Step {step_id} attempt {number} on agent {agent.id}")
            response = await self.transport.execute(agent, request)
            if not is_done_response(response):
                raise ProtocolError(
                    f"Agent {agent.id} returned no {DONE_STATUS} output "
                    f"(status {response.status_code})",
                    agent_id=agent.id,
                    status_code=response.status_code,
                    response_body=response.body,
                )
            return response

        outcome = await call_with_retry(
            attempt, self.policy, label=f"execute {step_id} on {agent.id}"
        )

        if outcome.succeeded:
            return ExecutionLogEntry(
                step_id=step_id,
                agent_id=agent.id,
                success=True,
                status_code=outcome.value.status_code,
                duration_ms=outcome.duration_ms,
                attempts=outcome.attempts,
                output=outcome.value.body["output"],
                response_body=outcome.value.body,
            )

        return ExecutionLogEntry(
            step_id=step_id,
            agent_id=agent.id,
            success=False,
            status_code=outcome.last_status_code,
            duration_ms=outcome.duration_ms,
            attempts=outcome.attempts,
            error=outcome.error_message,
            response_body=outcome.last_response_body,
        )

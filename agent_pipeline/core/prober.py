"""Capability probing.

Queries each candidate agent's ``/capabilities`` operation with a bounded
worker pool and refreshes the descriptors with what the agents report. A
probe that fails after all retries leaves the registry record unchanged.
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from ..schemas import AgentDescriptor
from .agent_protocol import AgentTransport
from .errors import ProtocolError
from .retry import RetryPolicy, call_with_retry


logger = logging.getLogger(__name__)


def normalize_capability_response(body: Any) -> dict[str, Any] | None:
    """Extract name, capabilities and metadata from a probe reply.

    Capabilities may be listed as strings or as objects with a ``name``.
    Returns None when the reply has no capability list.
    """
    if not isinstance(body, dict) or not isinstance(body.get("capabilities"), list):
        return None

    capabilities = set()
    for item in body["capabilities"]:
        if isinstance(item, str):
            capabilities.add(item)
        elif isinstance(item, dict) and isinstance(item.get("name"), str):
            capabilities.add(item["name"])

    metadata = body.get("metadata", body.get("meta"))
    return {
        "name": body.get("name") if isinstance(body.get("name"), str) else None,
        "capabilities": frozenset(capabilities),
        "metadata": metadata if isinstance(metadata, dict) else {},
    }


def deduplicate_agents(agents: Iterable[AgentDescriptor]) -> list[AgentDescriptor]:
    """Keep one record per id.

    The last record seen for an id wins and takes the position of the first.
    """
    unique: dict[str, AgentDescriptor] = {}
    for agent in agents:
        unique[agent.id] = agent
    return list(unique.values())


class CapabilityProber:
    """Refreshes agent capability sets under a concurrency cap."""

    def __init__(
        self,
        transport: AgentTransport,
        policy: RetryPolicy | None = None,
        concurrency_limit: int = 4,
    ):
        """Initialize the prober.

        Args:
            transport: Transport used to reach agents
            policy: Per-call timeout, retry budget and backoff
            concurrency_limit: Maximum number of probes in flight

        """
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be >= 1")
        self.transport = transport
        self.policy = policy or RetryPolicy()
        self.concurrency_limit = concurrency_limit

    async def probe(self, agents: list[AgentDescriptor]) -> list[AgentDescriptor]:
        """Probe every agent and return the refreshed, deduplicated population.

        Never raises for per-agent failures: each input agent yields exactly
        one record (probed or passed through) before deduplication.
        """
        queue: asyncio.Queue[AgentDescriptor] = asyncio.Queue()
        for agent in agents:
            queue.put_nowait(agent)

        results: list[AgentDescriptor] = []
        workers = min(self.concurrency_limit, len(agents))
        await asyncio.gather(*(self._worker(queue, results) for _ in range(workers)))

        probed = deduplicate_agents(results)
        logger.info(
            f"Probed {len(agents)} agents with concurrency {self.concurrency_limit}, "
            f"{len(probed)} unique agents"
        )
        return probed

    async def _worker(
        self, queue: "asyncio.Queue[AgentDescriptor]", results: list[AgentDescriptor]
    ) -> None:
        while True:
            try:
                agent = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results.append(await self.probe_agent(agent))

    async def probe_agent(self, agent: AgentDescriptor) -> AgentDescriptor:
        """Probe one agent; return the refreshed record or the original."""

        async def attempt(_: int) -> dict[str, Any]:
            response = await self.transport.fetch_capabilities(agent)
            report = normalize_capability_response(response.body) if response.ok else None
            if report is None:
                raise ProtocolError(
                    f"Malformed capability response from {agent.id}",
                    agent_id=agent.id,
                    status_code=response.status_code,
                    response_body=response.body,
                )
            return report

        outcome = await call_with_retry(
            attempt, self.policy, label=f"probe {agent.id}"
        )
        if not outcome.succeeded:
            logger.warning(
                f"Probe of agent {agent.id} failed after {outcome.attempts} "
                f"attempts, keeping registry capabilities: {outcome.error_message}"
            )
            return agent

        report = outcome.value
        return agent.model_copy(
            update={
                "name": report["name"] or agent.name,
                "capabilities": report["capabilities"],
                "metadata": {**agent.metadata, **report["metadata"]},
            }
        )

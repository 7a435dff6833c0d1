"""Transport protocol between the pipeline stages and remote agents.

Stages never talk HTTP directly; they depend on `AgentTransport`, which the
httpx-based `AgentClient` implements and tests can replace with a fake.
"""

from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel

from ..schemas import AgentDescriptor


class AgentResponse(BaseModel):
    """Status code and decoded body of an agent reply."""

    status_code: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@runtime_checkable
class AgentTransport(Protocol):
    """Operations every remote agent exposes.

    Implementations raise `TransportError` (or `AgentTimeoutError`) when no
    reply was received. Any reply, whatever its status code, is returned as
    an `AgentResponse` for the calling stage to interpret.
    """

    async def fetch_capabilities(self, agent: AgentDescriptor) -> AgentResponse:
        """GET <address>/capabilities."""
        ...

    async def negotiate(
        self, agent: AgentDescriptor, proposal: dict[str, Any]
    ) -> AgentResponse:
        """POST <address>/negotiate with a proposal body."""
        ...

    async def execute(
        self, agent: AgentDescriptor, payload: Any
    ) -> AgentResponse:
        """POST <address>/execute with a step payload."""
        ...

    async def fetch_json(self, url: str, timeout: float | None = None) -> AgentResponse:
        """GET an arbitrary JSON document (used for remote registries)."""
        ...

"""Async HTTP client for remote agents.

This module provides an httpx-based implementation of `AgentTransport`.
Retries are not handled here: each stage wraps calls in `call_with_retry`.
"""

import logging
from typing import Any

import httpx

from ..core.agent_protocol import AgentResponse
from ..core.errors import AgentTimeoutError, TransportError
from ..schemas import AgentDescriptor


logger = logging.getLogger(__name__)


class AgentClient:
    """HTTP client for the capabilities / negotiate / execute operations.

    Features:
    - Full async/await support with a lazily created shared AsyncClient
    - Network failures mapped to TransportError / AgentTimeoutError
    - Non-JSON bodies preserved as text for diagnostics
    - Injectable transport for tests
    """

    def __init__(
        self,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the agent client.

        Args:
            timeout: Default httpx timeout in seconds. Stage deadlines are
                enforced separately by the retrying call.
            headers: Extra headers sent with every request.
            transport: Optional httpx transport (e.g. httpx.MockTransport).

        """
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self.transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self.headers,
                timeout=self.timeout,
                transport=self.transport,
            )
        return self._client

    async def _make_request(
        self,
        method: str,
        url: str,
        data: Any = None,
        agent_id: str | None = None,
        timeout: float | None = None,
    ) -> AgentResponse:
        """Send one request and decode the reply."""
        client = await self._get_client()
        kwargs: dict[str, Any] = {}
        if data is not None:
            kwargs["json"] = data
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            response = await client.request(method=method, url=url, **kwargs)
        except httpx.TimeoutException as e:
            raise AgentTimeoutError(
                f"Request to {url} timed out", agent_id=agent_id, url=url
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(
                f"Request to {url} failed: {e!s}", agent_id=agent_id, url=url
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = response.text or None

        logger.debug(f"{method} {url} -> {response.status_code}")
        return AgentResponse(status_code=response.status_code, body=body)

    async def fetch_capabilities(self, agent: AgentDescriptor) -> AgentResponse:
        """Query the capability set an agent advertises."""
        return await self._make_request(
            "GET", agent.endpoint("capabilities"), agent_id=agent.id
        )

    async def negotiate(
        self, agent: AgentDescriptor, proposal: dict[str, Any]
    ) -> AgentResponse:
        """Send a proposal to an agent."""
        return await self._make_request(
            "POST", agent.endpoint("negotiate"), data=proposal, agent_id=agent.id
        )

    async def execute(self, agent: AgentDescriptor, payload: Any) -> AgentResponse:
        """Ask an agent to execute its step."""
        return await self._make_request(
            "POST", agent.endpoint("execute"), data=payload, agent_id=agent.id
        )

    async def fetch_json(self, url: str, timeout: float | None = None) -> AgentResponse:
        """Fetch an arbitrary JSON document."""
        return await self._make_request("GET", url, timeout=timeout)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "AgentClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

"""Agent registry loading and capability indexing.

This module obtains candidate agents from a registry source (remote URL or
local file), normalizes raw entries into `AgentDescriptor`s, and indexes a
population snapshot by capability for the matchers.
"""

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..schemas import AgentDescriptor
from .agent_protocol import AgentTransport
from .errors import AgentCallError, RegistryEmptyError


logger = logging.getLogger(__name__)

ADDRESS_KEYS = ("address", "endpoint", "url")


class AgentRegistry:
    """Capability index over an immutable population snapshot.

    Provides functionality for:
    - Lookup by agent id
    - Capability-based discovery in population order
    - Capability listing and summary status
    """

    def __init__(self, agents: Iterable[AgentDescriptor] = ()):
        """Build the index.

        A later agent with a duplicate id replaces the earlier record but keeps
        the position where that id first appeared.
        """
        self._agents: dict[str, AgentDescriptor] = {}
        self._capabilities: dict[str, list[str]] = {}  # capability -> agent ids
        for agent in agents:
            self._agents[agent.id] = agent
        self._reindex()

    def _reindex(self) -> None:
        self._capabilities.clear()
        for agent in self._agents.values():
            for capability in sorted(agent.capabilities):
                self._capabilities.setdefault(capability, []).append(agent.id)

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def get_agent(self, agent_id: str) -> AgentDescriptor | None:
        """Get agent by id.

        Args:
            agent_id: Id of agent to retrieve

        Returns:
            Agent descriptor or None if not found

        """
        return self._agents.get(agent_id)

    def find_by_capability(self, capability: str) -> list[AgentDescriptor]:
        """Find all agents advertising a capability, in population order."""
        return [self._agents[i] for i in self._capabilities.get(capability, [])]

    def list_agents(self) -> list[AgentDescriptor]:
        return list(self._agents.values())

    def list_capabilities(self) -> list[str]:
        return sorted(self._capabilities)

    def get_status(self) -> dict[str, Any]:
        """Summarize the population for diagnostics."""
        return {
            "total_agents": len(self._agents),
            "agents_without_capabilities": sum(
                1 for a in self._agents.values() if not a.capabilities
            ),
            "total_capabilities": len(self._capabilities),
            "capabilities": {
                name: list(ids) for name, ids in sorted(self._capabilities.items())
            },
        }


def parse_registry_entries(raw: Any) -> list[AgentDescriptor]:
    """Normalize a raw registry payload into agent descriptors.

    Accepts a bare list of entries or an object with an ``agents`` list.
    Entries without an id or an address are dropped.

    Args:
        raw: Decoded registry document

    Returns:
        Descriptors in registry order

    """
    if isinstance(raw, dict):
        raw = raw.get("agents")
    if not isinstance(raw, list):
        return []

    agents = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue

        agent_id = entry.get("id")
        address = next((entry[k] for k in ADDRESS_KEYS if entry.get(k)), None)
        if agent_id in (None, "") or not address:
            logger.debug(f"Dropping registry entry without id or address: {entry}")
            continue

        capabilities = entry.get("capabilities")
        metadata = entry.get("metadata", entry.get("meta"))
        try:
            agents.append(
                AgentDescriptor(
                    id=str(agent_id),
                    name=entry.get("name") or str(agent_id),
                    address=str(address),
                    capabilities=frozenset(
                        str(c) for c in capabilities if isinstance(c, str)
                    )
                    if isinstance(capabilities, list)
                    else frozenset(),
                    metadata=metadata if isinstance(metadata, dict) else {},
                )
            )
        except ValidationError as e:
            logger.debug(f"Dropping invalid registry entry {agent_id}: {e}")

    return agents


class RegistryLoader:
    """Loads candidate agents from a registry source.

    A source is either an ``http(s)://`` URL fetched through the transport or
    a local JSON/YAML file. Loading never raises: any failure yields an empty
    list and the caller decides on a fallback.
    """

    def __init__(self, transport: AgentTransport):
        """Initialize with the transport used for remote registries."""
        self.transport = transport

    async def load(self, source: str, timeout: float = 3.0) -> list[AgentDescriptor]:
        """Load agents from one source.

        Args:
            source: Registry URL or file path
            timeout: Timeout for remote registries, in seconds

        Returns:
            Descriptors found, or an empty list

        """
        if source.startswith(("http://", "https://")):
            raw = await self._fetch_remote(source, timeout)
        else:
            raw = self._read_local(Path(source))

        agents = parse_registry_entries(raw)
        logger.info(f"Loaded {len(agents)} agents from registry {source}")
        return agents

    async def _fetch_remote(self, url: str, timeout: float) -> Any:
        try:
            response = await self.transport.fetch_json(url, timeout=timeout)
        except AgentCallError as e:
            logger.warning(f"Registry fetch from {url} failed: {e}")
            return None

        if not response.ok:
            logger.warning(f"Registry {url} returned status {response.status_code}")
            return None
        return response.body

    def _read_local(self, path: Path) -> Any:
        if not path.exists():
            logger.debug(f"Registry file {path} does not exist")
            return None

        try:
            with path.open(encoding="utf-8") as f:
                if path.suffix in (".yaml", ".yml"):
                    return yaml.safe_load(f)
                return json.load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning(f"Invalid registry file {path}: {e}")
            return None

    async def resolve_population(
        self,
        sources: list[str],
        default_agents: list[AgentDescriptor],
        timeout: float = 3.0,
    ) -> list[AgentDescriptor]:
        """Load the first non-empty source, else fall back to the defaults.

        Args:
            sources: Registry sources, tried in order
            default_agents: Fallback population supplied by the caller
            timeout: Timeout for remote registries

        Returns:
            Non-empty list of agents

        Raises:
            RegistryEmptyError: If no source and no default yields an agent

        """
        for source in sources:
            agents = await self.load(source, timeout=timeout)
            if agents:
                return agents

        if default_agents:
            logger.warning(
                f"No agents from registry sources {sources}, "
                f"using {len(default_agents)} default agents"
            )
            return list(default_agents)

        raise RegistryEmptyError(sources)

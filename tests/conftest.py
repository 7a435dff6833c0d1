"""Pytest configuration and fixtures for agent pipeline tests."""

import pytest
import pytest_asyncio

from agent_pipeline.config import PipelineSettings
from agent_pipeline.core.retry import RetryPolicy
from agent_pipeline.schemas import AgentDescriptor, MatchAssignment, WorkflowStep

from tests.utils.agent_network import FakeAgent, FakeAgentNetwork


@pytest.fixture
def fast_policy():
    """Retry policy with one retry, a short deadline and no backoff."""
    return RetryPolicy(
        retry_attempts=1,
        timeout_seconds=0.5,
        backoff_min_seconds=0.0,
        backoff_max_seconds=0.0,
    )


@pytest.fixture
def network():
    """Empty fake agent network."""
    return FakeAgentNetwork()


@pytest.fixture
def scan_report_network(network):
    """Two agents: a1 scans wallets, a2 writes reports."""
    network.add(FakeAgent("a1", ["scan"])).script(
        "execute", {"status": "done", "output": {"balance": "1.5"}}
    )
    network.add(FakeAgent("a2", ["report"])).script(
        "execute", {"status": "done", "output": {"report": "wallet holds 1.5 ETH"}}
    )
    return network


@pytest_asyncio.fixture
async def agent_client(network):
    """AgentClient wired to the fake network."""
    client = network.client()
    yield client
    await client.close()


@pytest.fixture
def sample_agents():
    """Population covering several capabilities."""
    return [
        AgentDescriptor(
            id="wallet-1",
            name="Wallet Agent",
            address="http://wallet-1.agents.test",
            capabilities=frozenset({"wallet_scan", "balance_data"}),
        ),
        AgentDescriptor(
            id="report-1",
            name="Report Agent",
            address="http://report-1.agents.test",
            capabilities=frozenset({"generate_report", "pdf_export"}),
        ),
        AgentDescriptor(
            id="report-2",
            address="http://report-2.agents.test",
            capabilities=frozenset({"generate_report"}),
        ),
    ]


@pytest.fixture
def fast_settings():
    """Pipeline settings with fast timeouts and no backoff."""
    fast = {
        "timeout_seconds": 0.5,
        "retry_attempts": 1,
        "backoff_min_seconds": 0.0,
        "backoff_max_seconds": 0.0,
    }
    return PipelineSettings(
        registry={"sources": []},
        probe=fast,
        negotiation=fast,
        execution=fast,
    )


def make_assignment(agent: AgentDescriptor, step_id: str, **step_kwargs):
    """Pair an agent with a step using the step id as capability."""
    return MatchAssignment(
        step=WorkflowStep(step_id=step_id, capability=step_id, **step_kwargs),
        agent=agent,
    )

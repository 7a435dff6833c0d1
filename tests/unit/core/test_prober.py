"""Tests for bounded-concurrency capability probing."""

import asyncio

import pytest

from agent_pipeline.core.agent_protocol import AgentResponse
from agent_pipeline.core.prober import (
    CapabilityProber,
    deduplicate_agents,
    normalize_capability_response,
)
from agent_pipeline.core.retry import RetryPolicy
from agent_pipeline.schemas import AgentDescriptor
from tests.utils.agent_network import HANG, TIMEOUT, FakeAgent


class TestNormalizeCapabilityResponse:
    """Test probe reply normalization."""

    def test_string_and_object_capabilities(self):
        report = normalize_capability_response(
            {
                "id": "a1",
                "name": "Agent One",
                "capabilities": ["scan", {"name": "report"}, {"bad": 1}, 5],
                "meta": {"version": "2"},
            }
        )

        assert report["name"] == "Agent One"
        assert report["capabilities"] == frozenset({"scan", "report"})
        assert report["metadata"] == {"version": "2"}

    @pytest.mark.parametrize(
        "body", [None, "scan", [], {"capabilities": "scan"}, {"name": "x"}]
    )
    def test_malformed_reply(self, body):
        assert normalize_capability_response(body) is None


class TestDeduplicateAgents:
    def test_last_record_wins(self):
        agents = [
            AgentDescriptor(id="a", address="http://old"),
            AgentDescriptor(id="b", address="http://b"),
            AgentDescriptor(id="a", address="http://new"),
        ]

        unique = deduplicate_agents(agents)

        assert [a.id for a in unique] == ["a", "b"]
        assert unique[0].address == "http://new"


class TestCapabilityProber:
    """Test probing against a fake agent network."""

    @pytest.mark.asyncio
    async def test_probe_refreshes_capabilities(self, network, agent_client, fast_policy):
        network.add(FakeAgent("a1", ["scan", "extra"], registry_capabilities=[]))
        agent = network.agent("a1")
        agent.script(
            "capabilities",
            {
                "id": "a1",
                "name": "Scanner",
                "capabilities": ["scan", "extra"],
                "meta": {"v": 2},
            },
        )
        descriptor = agent.descriptor().model_copy(update={"metadata": {"v": 1, "k": 0}})

        [probed] = await CapabilityProber(agent_client, fast_policy).probe([descriptor])

        assert probed.capabilities == frozenset({"scan", "extra"})
        assert probed.name == "Scanner"
        assert probed.metadata == {"v": 2, "k": 0}
        assert probed.address == descriptor.address

    @pytest.mark.asyncio
    async def test_failed_probe_keeps_registry_record(
        self, network, agent_client, fast_policy
    ):
        agent = network.add(FakeAgent("a1", ["new"], registry_capabilities=["old"]))
        agent.script("capabilities", TIMEOUT)

        [probed] = await CapabilityProber(agent_client, fast_policy).probe(
            [agent.descriptor()]
        )

        assert probed.capabilities == frozenset({"old"})
        assert agent.calls["capabilities"] == fast_policy.max_attempts

    @pytest.mark.asyncio
    async def test_unparseable_address_keeps_registry_record(
        self, network, agent_client, fast_policy
    ):
        network.add(FakeAgent("a1", ["scan"], registry_capabilities=[]))
        bad = AgentDescriptor(
            id="bad", address="http://[::1", capabilities=frozenset({"old"})
        )

        probed = await CapabilityProber(agent_client, fast_policy).probe(
            [network.agent("a1").descriptor(), bad]
        )

        by_id = {a.id: a for a in probed}
        assert set(by_id) == {"a1", "bad"}
        assert by_id["a1"].capabilities == {"scan"}
        assert by_id["bad"] == bad

    @pytest.mark.asyncio
    async def test_malformed_reply_is_retried(self, network, agent_client, fast_policy):
        agent = network.add(FakeAgent("a1", ["scan"], registry_capabilities=[]))
        agent.script(
            "capabilities",
            {"unexpected": True},
            {"id": "a1", "capabilities": ["scan"]},
        )

        [probed] = await CapabilityProber(agent_client, fast_policy).probe(
            [agent.descriptor()]
        )

        assert probed.capabilities == frozenset({"scan"})
        assert agent.calls["capabilities"] == 2

    @pytest.mark.asyncio
    async def test_error_status_is_not_accepted(self, network, agent_client, fast_policy):
        agent = network.add(FakeAgent("a1", ["scan"], registry_capabilities=["old"]))
        agent.script("capabilities", (500, {"capabilities": ["scan"]}))

        [probed] = await CapabilityProber(agent_client, fast_policy).probe(
            [agent.descriptor()]
        )

        assert probed.capabilities == frozenset({"old"})

    @pytest.mark.asyncio
    async def test_every_agent_yields_one_record_and_ids_are_subset(
        self, network, agent_client, fast_policy
    ):
        for i in range(6):
            agent = network.add(FakeAgent(f"a{i}", [f"cap{i}"]))
            if i % 2:
                agent.script("capabilities", TIMEOUT)
        agents = network.descriptors()
        duplicated = [*agents, agents[0]]

        probed = await CapabilityProber(
            agent_client, fast_policy, concurrency_limit=2
        ).probe(duplicated)

        ids = [a.id for a in probed]
        assert len(ids) == len(set(ids)) == 6
        assert set(ids) <= {a.id for a in duplicated}

    @pytest.mark.asyncio
    async def test_hung_probe_does_not_block_others(self, network, agent_client):
        policy = RetryPolicy(
            retry_attempts=0,
            timeout_seconds=0.2,
            backoff_min_seconds=0.0,
            backoff_max_seconds=0.0,
        )
        network.add(FakeAgent("slow", ["x"], registry_capabilities=[])).script(
            "capabilities", HANG
        )
        for i in range(3):
            network.add(FakeAgent(f"fast{i}", ["y"], registry_capabilities=[]))

        probed = await asyncio.wait_for(
            CapabilityProber(agent_client, policy, concurrency_limit=2).probe(
                network.descriptors()
            ),
            timeout=2.0,
        )

        by_id = {a.id: a for a in probed}
        assert by_id["slow"].capabilities == frozenset()
        assert all(by_id[f"fast{i}"].capabilities == {"y"} for i in range(3))

    @pytest.mark.asyncio
    async def test_concurrency_limit_respected(self):
        in_flight = 0
        peak = 0

        class CountingTransport:
            async def fetch_capabilities(self, agent):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                in_flight -= 1
                return AgentResponse(
                    status_code=200, body={"capabilities": sorted(agent.capabilities)}
                )

        agents = [
            AgentDescriptor(id=f"a{i}", address=f"http://a{i}") for i in range(10)
        ]

        probed = await CapabilityProber(
            CountingTransport(), RetryPolicy(), concurrency_limit=3
        ).probe(agents)

        assert len(probed) == 10
        assert peak == 3

    @pytest.mark.asyncio
    async def test_empty_population(self, agent_client):
        assert await CapabilityProber(agent_client).probe([]) == []

    def test_invalid_concurrency_limit(self, agent_client):
        with pytest.raises(ValueError):
            CapabilityProber(agent_client, concurrency_limit=0)

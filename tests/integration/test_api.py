"""Integration tests for the HTTP service."""

import pytest
from fastapi.testclient import TestClient

from agent_pipeline.api import create_app
from agent_pipeline.config import PipelineSettings
from agent_pipeline.core.orchestrator import WorkflowOrchestrator
from agent_pipeline.schemas import ExecutionMode
from tests.utils.agent_network import REGISTRY_URL, TIMEOUT


FAST = {
    "timeout_seconds": 0.5,
    "retry_attempts": 1,
    "backoff_min_seconds": 0.0,
    "backoff_max_seconds": 0.0,
}


@pytest.fixture
def service_settings():
    return PipelineSettings(
        registry={"sources": [REGISTRY_URL]},
        workflow={"steps": ["scan", "report"]},
        probe=FAST,
        negotiation=FAST,
        execution=FAST,
    )


@pytest.fixture
def client(service_settings, scan_report_network):
    """Service client whose orchestrator talks to the fake network."""
    scan_report_network.serve_registry()
    app = create_app(
        service_settings,
        orchestrator_factory=lambda s: WorkflowOrchestrator(
            settings=s, transport=scan_report_network.client()
        ),
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.mark.integration
class TestAgentOperations:
    """The service answers the same operations as any other agent."""

    def test_root_help(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert "POST /execute" in response.text
        assert "scan -> report" in response.text

    def test_capabilities(self, client):
        body = client.get("/capabilities").json()

        assert body["id"] == "pipeline-orchestrator"
        assert "orchestrate_workflow" in body["capabilities"]

    def test_negotiate_always_accepts(self, client):
        body = client.post("/negotiate", json={"proposal": {}}).json()

        assert body["status"] == "ACCEPT"


@pytest.mark.integration
class TestExecuteEndpoint:
    """POST /execute runs the configured workflow."""

    def test_successful_run(self, client, scan_report_network):
        response = client.post("/execute", json={"address": "0xabc"})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "DONE"
        assert body["wallet"] == {"balance": "1.5"}
        assert body["report"] == {"report": "wallet holds 1.5 ETH"}
        assert [entry["agent_id"] for entry in body["logs"]] == ["a1", "a2"]
        assert [a["id"] for a in body["agents"]] == ["a1", "a2"]
        assert isinstance(body["timestamp"], int)
        assert scan_report_network.agent("a1").requests["execute"] == [
            {"address": "0xabc"}
        ]

    def test_wallet_alias(self, client):
        response = client.post("/execute", json={"wallet": "0xabc"})

        assert response.status_code == 200

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"json": {}},
            {"json": {"address": "   "}},
            {"json": ["0xabc"]},
            {"json": {"address": 123}},
            {"json": {"wallet": ["0xabc"]}},
            {"content": b"{not json", "headers": {"Content-Type": "application/json"}},
        ],
    )
    def test_bad_requests(self, client, scan_report_network, kwargs):
        response = client.post("/execute", **kwargs)

        assert response.status_code == 400
        assert response.json()["status"] == "ERROR"
        assert response.json()["message"]
        assert scan_report_network.total_calls("negotiate") == 0

    def test_unmatched_step(self, client, scan_report_network):
        scan_report_network.agent("a2").script(
            "capabilities", {"id": "a2", "capabilities": ["other"]}
        )

        response = client.post("/execute", json={"address": "0xabc"})

        assert response.status_code == 500
        assert "report" in response.json()["message"]

    def test_negotiation_rejected(self, client, scan_report_network):
        scan_report_network.agent("a2").script("negotiate", {"status": "REJECT"})

        response = client.post("/execute", json={"address": "0xabc"})

        assert response.status_code == 502
        assert response.json()["message"] == "Negotiation failed for agents: a2"
        assert scan_report_network.total_calls("execute") == 0

    def test_step_failure_returns_logs(self, client, scan_report_network):
        scan_report_network.agent("a2").script("execute", TIMEOUT)

        response = client.post("/execute", json={"address": "0xabc"})

        assert response.status_code == 502
        body = response.json()
        assert [entry["success"] for entry in body["logs"]] == [True, False]


@pytest.mark.integration
class TestParallelExecuteEndpoint:
    """A parallel workflow with a failing step answers with the error envelope."""

    @pytest.fixture
    def parallel_client(self, service_settings, scan_report_network):
        scan_report_network.serve_registry()
        settings = service_settings.model_copy(
            update={
                "execution": service_settings.execution.model_copy(
                    update={"mode": ExecutionMode.PARALLEL}
                )
            }
        )
        app = create_app(
            settings,
            orchestrator_factory=lambda s: WorkflowOrchestrator(
                settings=s, transport=scan_report_network.client()
            ),
        )
        with TestClient(app) as test_client:
            yield test_client

    def test_partial_run_reports_error(self, parallel_client, scan_report_network):
        scan_report_network.agent("a2").script("execute", TIMEOUT)

        response = parallel_client.post("/execute", json={"address": "0xabc"})

        assert response.status_code == 502
        body = response.json()
        assert body["status"] == "ERROR"
        assert "timed out" in body["message"]
        assert [entry["success"] for entry in body["logs"]] == [True, False]

    def test_parallel_success(self, parallel_client):
        response = parallel_client.post("/execute", json={"address": "0xabc"})

        assert response.status_code == 200
        assert response.json()["report"] == {
            "scan": {"balance": "1.5"},
            "report": {"report": "wallet holds 1.5 ETH"},
        }

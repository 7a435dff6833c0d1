"""Tests for pipeline configuration."""

import pytest
from pydantic import ValidationError

from agent_pipeline.config import (
    ExecutionSettings,
    PipelineSettings,
    ProbeSettings,
    StageCallSettings,
    WorkflowSettings,
    get_settings,
    load_settings_file,
)
from agent_pipeline.schemas import ExecutionMode, MatchPolicy, NegotiationPolicy


class TestStageSettings:
    """Test per-stage defaults and validation."""

    def test_defaults(self):
        settings = PipelineSettings()

        assert settings.registry.sources == ["agents.json"]
        assert settings.probe.enabled
        assert settings.probe.concurrency_limit == 4
        assert settings.probe.timeout_seconds == 3.0
        assert settings.negotiation.policy == NegotiationPolicy.STRICT
        assert settings.matching.policy == MatchPolicy.SHARED
        assert settings.execution.mode == ExecutionMode.SEQUENTIAL
        assert settings.execution.timeout_seconds == 12.0
        assert [s.capability for s in settings.workflow.steps] == [
            "wallet_scan",
            "generate_report",
        ]
        assert settings.workflow.steps[0].input_key is None
        assert settings.workflow.steps[1].input_key == "walletData"

    def test_retry_policy_from_stage(self):
        policy = ExecutionSettings(retry_attempts=3, timeout_seconds=2.0).retry_policy()

        assert policy.max_attempts == 4
        assert policy.timeout_seconds == 2.0

    def test_inverted_backoff_rejected(self):
        with pytest.raises(ValidationError):
            StageCallSettings(backoff_min_seconds=1.0, backoff_max_seconds=0.5)

    @pytest.mark.parametrize("limit", [0, 65])
    def test_concurrency_limit_bounds(self, limit):
        with pytest.raises(ValidationError):
            ProbeSettings(concurrency_limit=limit)

    def test_workflow_step_shorthand(self):
        workflow = WorkflowSettings(
            steps=["scan", {"capability": "report", "input_key": "data"}]
        )

        assert [s.step_id for s in workflow.steps] == ["scan", "report"]
        assert workflow.steps[1].input_key == "data"


class TestPipelineSettings:
    """Test environment overrides and logging options."""

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_PROBE__CONCURRENCY_LIMIT", "8")
        monkeypatch.setenv("PIPELINE_NEGOTIATION__POLICY", "permissive")
        monkeypatch.setenv("PIPELINE_EXECUTION__MODE", "parallel")

        settings = PipelineSettings()

        assert settings.probe.concurrency_limit == 8
        assert settings.negotiation.policy == NegotiationPolicy.PERMISSIVE
        assert settings.execution.mode == ExecutionMode.PARALLEL

    def test_debug_mode_forces_debug_level(self):
        assert PipelineSettings(debug_mode=True).log_level == "DEBUG"

    def test_log_level_normalized(self):
        assert PipelineSettings(log_level="warning").log_level == "WARNING"

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError):
            PipelineSettings(log_level="chatty")

    def test_get_settings_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestLoadSettingsFile:
    def test_yaml_file(self, tmp_path):
        path = tmp_path / "pipeline.yaml"
        path.write_text(
            "registry:\n"
            "  sources: [http://registry.test/agents.json]\n"
            "  default_agents:\n"
            "    - id: fallback\n"
            "      address: http://fallback/\n"
            "workflow:\n"
            "  steps: [scan, report]\n"
            "negotiation:\n"
            "  retry_attempts: 3\n"
            "  proposal:\n"
            "    price: 1 ETH\n"
        )

        settings = load_settings_file(path)

        assert settings.registry.sources == ["http://registry.test/agents.json"]
        assert settings.registry.default_agents[0].address == "http://fallback"
        assert [s.step_id for s in settings.workflow.steps] == ["scan", "report"]
        assert settings.negotiation.retry_attempts == 3
        assert settings.negotiation.proposal.price == "1 ETH"

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings_file(tmp_path / "missing.yaml")

        assert settings.registry.sources == ["agents.json"]

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_settings_file(path).probe.concurrency_limit == 4

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError):
            load_settings_file(path)

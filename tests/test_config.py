"""Tests for runtime configuration and logging helpers."""

import logging

import pytest

from action_pipeline.config import PipelineConfig
from action_pipeline.logs import get_component_logger, log_pipeline_event


class TestPipelineConfig:
    """Tests for PipelineConfig."""

    def test_defaults(self):
        config = PipelineConfig.from_env()
        assert config.finalization_max_attempts >= 1
        assert config.action_timeout_seconds > 0

    def test_env_and_overrides(self, monkeypatch):
        monkeypatch.setenv('ACTION_PIPELINE_ACTION_TIMEOUT_SECONDS', '12.5')
        monkeypatch.setenv('ACTION_PIPELINE_DEFAULT_ERROR_RETRYABLE', 'no')

        config = PipelineConfig.from_env(command_history_size=3)

        assert config.action_timeout_seconds == 12.5
        assert config.default_error_retryable is False
        assert config.command_history_size == 3

    def test_bad_env_value(self, monkeypatch):
        monkeypatch.setenv('ACTION_PIPELINE_FINALIZATION_MAX_ATTEMPTS', 'lots')
        with pytest.raises(ValueError):
            PipelineConfig.from_env()

    @pytest.mark.parametrize("field", [
        {'action_timeout_seconds': 0},
        {'finalization_max_attempts': 0},
        {'command_history_size': 0},
    ])
    def test_invalid_values(self, field):
        with pytest.raises(ValueError):
            PipelineConfig(**field)


class TestLogging:

    def test_component_prefix(self, caplog):
        logger = get_component_logger("Orchestrator", "action_pipeline.tests")
        with caplog.at_level(logging.INFO, logger="action_pipeline.tests"):
            logger.info("started")
        assert caplog.messages == ["[Orchestrator] started"]

    def test_event_details_are_json(self, caplog):
        logger = get_component_logger("Orchestrator", "action_pipeline.tests")
        with caplog.at_level(logging.INFO, logger="action_pipeline.tests"):
            log_pipeline_event(logger, "action_retried", action_id="sync", attempt=2, error=None)
            log_pipeline_event(logger, "execution_started")
        assert caplog.messages == [
            '[Orchestrator] action_retried {"action_id": "sync", "attempt": 2}',
            "[Orchestrator] execution_started",
        ]

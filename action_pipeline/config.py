"""
Runtime configuration for the execution pipeline.

Values are read from environment variables once at import time. Components
take a PipelineConfig so tests can override individual settings without
touching the environment.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Per-action executor timeout (seconds). A timeout counts as a retryable failure.
ACTION_TIMEOUT_SECONDS = _env_float("ACTION_PIPELINE_ACTION_TIMEOUT_SECONDS", 30.0)

# Fixed pause between commands of a command queue
COMMAND_QUEUE_DELAY_SECONDS = _env_float("ACTION_PIPELINE_COMMAND_QUEUE_DELAY_SECONDS", 1.0)

# Size of the recent-commands ring buffer
COMMAND_HISTORY_SIZE = _env_int("ACTION_PIPELINE_COMMAND_HISTORY_SIZE", 10)

# Execution ids kept on each statistics row to reject double counting
STATISTICS_RECENT_IDS_LIMIT = _env_int("ACTION_PIPELINE_STATISTICS_RECENT_IDS_LIMIT", 200)

# Finalization only retries the persistence write, never the actions
FINALIZATION_MAX_ATTEMPTS = _env_int("ACTION_PIPELINE_FINALIZATION_MAX_ATTEMPTS", 3)
FINALIZATION_RETRY_DELAY_SECONDS = _env_float("ACTION_PIPELINE_FINALIZATION_RETRY_DELAY_SECONDS", 0.5)

# Classification for exceptions the ErrorClassifier has no rule for
DEFAULT_ERROR_RETRYABLE = _env_bool("ACTION_PIPELINE_DEFAULT_ERROR_RETRYABLE", True)

# Timeout for outbound HTTP calls made by the webhook executor
WEBHOOK_TIMEOUT_SECONDS = _env_float("ACTION_PIPELINE_WEBHOOK_TIMEOUT_SECONDS", 15.0)

# Supabase persistence
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SUPABASE_SCHEMA = os.getenv("ACTION_PIPELINE_SUPABASE_SCHEMA", "automations")
EXECUTION_LOGS_TABLE = os.getenv("ACTION_PIPELINE_EXECUTION_LOGS_TABLE", "execution_logs")
STATISTICS_TABLE = os.getenv("ACTION_PIPELINE_STATISTICS_TABLE", "automation_statistics")
AUTOMATIONS_TABLE = os.getenv("ACTION_PIPELINE_AUTOMATIONS_TABLE", "automations")


@dataclass
class PipelineConfig:
    """Settings consumed by the orchestrator and command subsystem."""
    action_timeout_seconds: float = ACTION_TIMEOUT_SECONDS
    command_queue_delay_seconds: float = COMMAND_QUEUE_DELAY_SECONDS
    command_history_size: int = COMMAND_HISTORY_SIZE
    finalization_max_attempts: int = FINALIZATION_MAX_ATTEMPTS
    finalization_retry_delay_seconds: float = FINALIZATION_RETRY_DELAY_SECONDS
    default_error_retryable: bool = DEFAULT_ERROR_RETRYABLE
    webhook_timeout_seconds: float = WEBHOOK_TIMEOUT_SECONDS

    def __post_init__(self):
        if self.action_timeout_seconds <= 0:
            raise ValueError("action_timeout_seconds must be positive")
        if self.finalization_max_attempts < 1:
            raise ValueError("finalization_max_attempts must be at least 1")
        if self.command_history_size < 1:
            raise ValueError("command_history_size must be at least 1")

    @classmethod
    def from_env(cls, **overrides) -> "PipelineConfig":
        """Build a config from the current environment, applying overrides last."""
        values = {
            "action_timeout_seconds": _env_float("ACTION_PIPELINE_ACTION_TIMEOUT_SECONDS", 30.0),
            "command_queue_delay_seconds": _env_float("ACTION_PIPELINE_COMMAND_QUEUE_DELAY_SECONDS", 1.0),
            "command_history_size": _env_int("ACTION_PIPELINE_COMMAND_HISTORY_SIZE", 10),
            "finalization_max_attempts": _env_int("ACTION_PIPELINE_FINALIZATION_MAX_ATTEMPTS", 3),
            "finalization_retry_delay_seconds": _env_float(
                "ACTION_PIPELINE_FINALIZATION_RETRY_DELAY_SECONDS", 0.5
            ),
            "default_error_retryable": _env_bool("ACTION_PIPELINE_DEFAULT_ERROR_RETRYABLE", True),
            "webhook_timeout_seconds": _env_float("ACTION_PIPELINE_WEBHOOK_TIMEOUT_SECONDS", 15.0),
        }
        values.update(overrides)
        return cls(**values)


def supabase_credentials() -> Optional[tuple]:
    """Return (url, key) when both Supabase settings are present."""
    url = os.getenv("SUPABASE_URL", SUPABASE_URL or "")
    key = os.getenv("SUPABASE_KEY", SUPABASE_KEY or "")
    if url and key:
        return url, key
    return None

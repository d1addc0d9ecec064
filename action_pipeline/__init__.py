"""
action_pipeline - Command & automation execution pipeline

Turns a declared intent (an ad-hoc command or a stored automation) into an
ordered action plan, previews its impact, executes it against platform
executors with retries and fallbacks, and records an inspectable execution
log with a step-by-step trace.
"""

__version__ = "0.1.0"

# Core types
from .types import (
    ActionType,
    ActionSpec,
    ActionPlan,
    PlanSource,
    RetryStrategy,
    RetryPolicy,
    ActionStatus,
    ActionResult,
    TraceStepStatus,
    TraceStep,
    ExecutionTrace,
    ExecutionStatus,
    ExecutionLog,
    Statistics,
    RiskLevel,
    ActionImpact,
    Impact,
    Automation,
)

from .errors import (
    PipelineError,
    PlanRejectedError,
    PlanValidationError,
    ActionError,
    RetryableActionError,
    NonRetryableActionError,
    ActionTimeoutError,
    UpstreamBlockedError,
    ExecutorNotFoundError,
    PersistenceError,
    FinalizationError,
    DuplicateCompletionError,
    AutomationNotFoundError,
    ErrorClassifier,
)

from .config import PipelineConfig

# Template and condition utilities
from .templates import (
    get_nested_value,
    resolve_template,
    resolve_parameters,
)

from .conditions import (
    compare_values,
    evaluate_clause,
    evaluate_condition,
)

# Pipeline components
from .retry import RetryDecision, next_delay, should_retry, decide, delay_schedule, total_worst_case_wait
from .validation import validate_plan, ensure_valid_plan
from .risk import RiskEstimator, DEFAULT_RISK_TABLE
from .trace import TraceRecorder, step_from_result
from .statistics import StatisticsAggregator, apply_completion
from .preview import PreviewSummary, PreviewItem, render_preview, format_preview, format_delay_schedule
from .executors import ExecutorRegistry, DryRunExecutor, WaitExecutor, WebhookExecutor
from .orchestrator import ExecutionOrchestrator, ExecutionOptions, CancellationToken
from .commands import CommandRunner, CommandQueue, CommandHistory, CommandOutcome, QueuedCommand, QueueResult
from .automations import AutomationRunner
from .serialization import (
    execution_log_to_dict,
    execution_log_from_dict,
    dumps_execution_log,
    loads_execution_log,
    plan_from_dict,
)
from .stores import InMemoryExecutionStore
from .supabase_store import SupabaseExecutionStore

# Interfaces for extension
from .interfaces import (
    ActionExecutor,
    ExecutorPreview,
    ExecutionContext,
    IntentInterpreter,
    NotificationHandler,
    ExecutionObserver,
    ExecutionStore,
)

__all__ = [
    "__version__",
    # Types
    "ActionType",
    "ActionSpec",
    "ActionPlan",
    "PlanSource",
    "RetryStrategy",
    "RetryPolicy",
    "ActionStatus",
    "ActionResult",
    "TraceStepStatus",
    "TraceStep",
    "ExecutionTrace",
    "ExecutionStatus",
    "ExecutionLog",
    "Statistics",
    "RiskLevel",
    "ActionImpact",
    "Impact",
    "Automation",
    # Errors
    "PipelineError",
    "PlanRejectedError",
    "PlanValidationError",
    "ActionError",
    "RetryableActionError",
    "NonRetryableActionError",
    "ActionTimeoutError",
    "UpstreamBlockedError",
    "ExecutorNotFoundError",
    "PersistenceError",
    "FinalizationError",
    "DuplicateCompletionError",
    "AutomationNotFoundError",
    "ErrorClassifier",
    # Config
    "PipelineConfig",
    # Templates
    "get_nested_value",
    "resolve_template",
    "resolve_parameters",
    # Conditions
    "compare_values",
    "evaluate_clause",
    "evaluate_condition",
    # Retry
    "RetryDecision",
    "next_delay",
    "should_retry",
    "decide",
    "delay_schedule",
    "total_worst_case_wait",
    # Components
    "validate_plan",
    "ensure_valid_plan",
    "RiskEstimator",
    "DEFAULT_RISK_TABLE",
    "TraceRecorder",
    "step_from_result",
    "StatisticsAggregator",
    "apply_completion",
    "PreviewSummary",
    "PreviewItem",
    "render_preview",
    "format_preview",
    "format_delay_schedule",
    "ExecutorRegistry",
    "DryRunExecutor",
    "WaitExecutor",
    "WebhookExecutor",
    "ExecutionOrchestrator",
    "ExecutionOptions",
    "CancellationToken",
    "CommandRunner",
    "CommandQueue",
    "CommandHistory",
    "CommandOutcome",
    "QueuedCommand",
    "QueueResult",
    "AutomationRunner",
    # Serialization
    "execution_log_to_dict",
    "execution_log_from_dict",
    "dumps_execution_log",
    "loads_execution_log",
    "plan_from_dict",
    # Stores
    "InMemoryExecutionStore",
    "SupabaseExecutionStore",
    # Interfaces
    "ActionExecutor",
    "ExecutorPreview",
    "ExecutionContext",
    "IntentInterpreter",
    "NotificationHandler",
    "ExecutionObserver",
    "ExecutionStore",
]

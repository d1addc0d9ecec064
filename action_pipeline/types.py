"""
Data types for plans, retry policies and execution records.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .errors import FinalizationError


def utcnow() -> datetime:
    """Return current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ============================================================================
# Enums
# ============================================================================

class ActionType(str, Enum):
    """Kinds of action a plan can contain."""
    SEND_EMAIL = "send_email"
    SEND_ALERT = "send_alert"
    UPDATE_INVENTORY = "update_inventory"
    UPDATE_PRICE = "update_price"
    APPLY_DISCOUNT = "apply_discount"
    BULK_UPDATE_PRODUCTS = "bulk_update_products"
    SYNC_PLATFORM = "sync_platform"
    WEBHOOK = "webhook"
    WAIT = "wait"
    RUN_COMMAND = "run_command"
    GENERATE_REPORT = "generate_report"
    CONDITIONAL_BRANCH = "conditional_branch"


class RetryStrategy(str, Enum):
    """Backoff strategy between retries."""
    IMMEDIATE = "immediate"
    LINEAR_BACKOFF = "linear_backoff"
    EXPONENTIAL_BACKOFF = "exponential_backoff"


class ActionStatus(str, Enum):
    """Status of a single action within an execution."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TraceStepStatus(str, Enum):
    """Status of a trace step."""
    SUCCESS = "success"
    FAILED = "failed"
    ERROR = "error"
    RUNNING = "running"
    WARNING = "warning"


class ExecutionStatus(str, Enum):
    """Status of a whole execution."""
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


class RiskLevel(str, Enum):
    """Estimated risk of running a plan."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


class PlanSource(str, Enum):
    """Who owns a plan."""
    COMMAND = "command"
    AUTOMATION = "automation"


# ============================================================================
# Plans
# ============================================================================

@dataclass(frozen=True)
class ActionSpec:
    """
    One typed step of a plan.

    ``depends_on`` lists earlier action ids whose output this action consumes;
    when one of them fails, this action is blocked instead of executed.
    ``parameters`` is exposed read-only.
    """
    id: str
    type: ActionType
    order: int
    parameters: Mapping[str, Any] = field(default_factory=dict)
    platform_targets: FrozenSet[str] = frozenset()
    depends_on: Tuple[str, ...] = ()

    def __post_init__(self):
        # Accept plain strings and lists from decoded JSON
        if not isinstance(self.type, ActionType):
            object.__setattr__(self, "type", ActionType(self.type))
        if isinstance(self.parameters, Mapping):
            object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))
        if not isinstance(self.platform_targets, frozenset):
            object.__setattr__(self, "platform_targets", frozenset(self.platform_targets or ()))
        if not isinstance(self.depends_on, tuple):
            object.__setattr__(self, "depends_on", tuple(self.depends_on or ()))


@dataclass(frozen=True)
class ActionPlan:
    """Ordered list of actions for one invocation."""
    actions: Tuple[ActionSpec, ...] = ()
    source: PlanSource = PlanSource.COMMAND
    owner_id: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.actions, tuple):
            object.__setattr__(self, "actions", tuple(self.actions))
        if not isinstance(self.source, PlanSource):
            object.__setattr__(self, "source", PlanSource(self.source))

    def __len__(self) -> int:
        return len(self.actions)

    @property
    def ids(self) -> List[str]:
        return [a.id for a in self.actions]

    def get(self, action_id: str) -> Optional[ActionSpec]:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None

    def ordered(self) -> List[ActionSpec]:
        """Actions sorted by ascending ``order``."""
        return sorted(self.actions, key=lambda a: a.order)

    @classmethod
    def of(cls, actions: Iterable[ActionSpec], **kwargs) -> "ActionPlan":
        return cls(actions=tuple(actions), **kwargs)


# ============================================================================
# Retry policy
# ============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """Error-recovery settings owned by an automation."""
    enabled: bool = True
    max_retries: int = 3
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL_BACKOFF
    base_delay_seconds: int = 60
    fallback_action_id: Optional[str] = None
    alert_on_final_failure: bool = True

    def __post_init__(self):
        if not isinstance(self.strategy, RetryStrategy):
            object.__setattr__(self, "strategy", RetryStrategy(self.strategy))
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int):
            raise ValueError(f"max_retries must be an integer, got {self.max_retries!r}")
        if not 1 <= self.max_retries <= 10:
            raise ValueError(f"max_retries must be between 1 and 10, got {self.max_retries}")
        if isinstance(self.base_delay_seconds, bool) or not isinstance(self.base_delay_seconds, int):
            raise ValueError(f"base_delay_seconds must be an integer, got {self.base_delay_seconds!r}")
        if not 1 <= self.base_delay_seconds <= 3600:
            raise ValueError(f"base_delay_seconds must be between 1 and 3600, got {self.base_delay_seconds}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RetryPolicy":
        """
        Build a policy from a stored dict.

        Accepts both the canonical field names and the error_recovery names
        used by the automation settings screen (retry_strategy,
        retry_delay_seconds, alert_on_failure).
        """
        if not data:
            return cls()
        defaults = cls()
        return cls(
            enabled=bool(data.get("enabled", defaults.enabled)),
            max_retries=int(data.get("max_retries", defaults.max_retries)),
            strategy=data.get("strategy") or data.get("retry_strategy") or defaults.strategy,
            base_delay_seconds=int(
                data.get("base_delay_seconds", data.get("retry_delay_seconds", defaults.base_delay_seconds))
            ),
            fallback_action_id=data.get("fallback_action_id"),
            alert_on_final_failure=bool(
                data.get("alert_on_final_failure", data.get("alert_on_failure", defaults.alert_on_final_failure))
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "max_retries": self.max_retries,
            "strategy": self.strategy.value,
            "base_delay_seconds": self.base_delay_seconds,
            "fallback_action_id": self.fallback_action_id,
            "alert_on_final_failure": self.alert_on_final_failure,
        }


# ============================================================================
# Execution records
# ============================================================================

@dataclass
class ActionResult:
    """Result of a single action within an execution."""
    action_id: str
    action_type: ActionType
    status: ActionStatus = ActionStatus.PENDING
    attempt_count: int = 0
    output: Optional[Any] = None
    error: Optional[str] = None
    duration_ms: int = 0
    skipped: bool = False  # True if bypassed by a conditional branch
    fallback_for: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (ActionStatus.COMPLETED, ActionStatus.FAILED)


@dataclass(frozen=True)
class TraceStep:
    """One immutable entry of an execution trace."""
    index: int
    name: str
    status: TraceStepStatus
    duration_ms: int = 0
    timestamp: datetime = field(default_factory=utcnow)
    input: Optional[Any] = None
    output: Optional[Any] = None
    error: Optional[str] = None
    error_stack: Optional[str] = None
    warnings: Tuple[str, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.status, TraceStepStatus):
            object.__setattr__(self, "status", TraceStepStatus(self.status))
        if not isinstance(self.warnings, tuple):
            object.__setattr__(self, "warnings", tuple(self.warnings or ()))

    def with_index(self, index: int) -> "TraceStep":
        return replace(self, index=index)


@dataclass
class ExecutionTrace:
    """Ordered step log of one execution."""
    execution_id: str
    steps: List[TraceStep] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.steps)


@dataclass
class ExecutionLog:
    """
    Record of one command or automation invocation.

    Created in RUNNING state before any action runs; ``finalize`` moves it to
    a terminal state exactly once.
    """
    id: str = field(default_factory=new_id)
    automation_id: Optional[str] = None
    command_text: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)
    status: ExecutionStatus = ExecutionStatus.RUNNING
    trigger_data: Dict[str, Any] = field(default_factory=dict)
    actions_executed: List[ActionResult] = field(default_factory=list)
    execution_time_ms: int = 0
    error_message: Optional[str] = None
    test_mode: bool = False
    trace: Optional[ExecutionTrace] = None

    def __post_init__(self):
        if self.trace is None:
            self.trace = ExecutionTrace(execution_id=self.id)

    @property
    def is_finalized(self) -> bool:
        return self.status != ExecutionStatus.RUNNING

    @property
    def completed_count(self) -> int:
        return sum(1 for r in self.actions_executed if r.status == ActionStatus.COMPLETED)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.actions_executed if r.status == ActionStatus.FAILED)

    @property
    def was_retried(self) -> bool:
        return any(r.attempt_count > 1 for r in self.actions_executed)

    def finalize(
        self,
        status: ExecutionStatus,
        execution_time_ms: int,
        error_message: Optional[str] = None
    ) -> None:
        """Move the log out of RUNNING. A second call raises FinalizationError."""
        if self.is_finalized:
            raise FinalizationError(f"Execution {self.id} already finalized as {self.status.value}", log=self)
        if status == ExecutionStatus.RUNNING:
            raise ValueError("Cannot finalize an execution as running")
        self.status = status
        self.execution_time_ms = max(0, int(execution_time_ms))
        self.error_message = error_message


@dataclass
class Statistics:
    """Per-automation rollup of finalized executions."""
    automation_id: str
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    retried_runs: int = 0
    average_execution_time_ms: float = 0.0
    last_run: Optional[datetime] = None
    # Ids of the most recently counted executions, oldest first
    recent_execution_ids: Tuple[str, ...] = ()

    @property
    def success_rate(self) -> float:
        """Percentage of successful runs, 0 when there are none."""
        if not self.total_runs:
            return 0.0
        return round(self.successful_runs / self.total_runs * 100, 1)


# ============================================================================
# Impact
# ============================================================================

@dataclass(frozen=True)
class ActionImpact:
    """Estimated impact of one action."""
    action_id: str
    action_type: ActionType
    risk_level: RiskLevel
    count_estimate: Optional[int]
    reversible: bool


@dataclass(frozen=True)
class Impact:
    """Estimated impact of a whole plan. ``affected_items_estimate`` is None when unknown."""
    risk_level: RiskLevel
    affected_items_estimate: Optional[int]
    reversible: bool
    description: str
    per_action: Tuple[ActionImpact, ...] = ()

    @property
    def is_estimate_known(self) -> bool:
        return self.affected_items_estimate is not None


# ============================================================================
# Automations
# ============================================================================

@dataclass
class Automation:
    """A stored trigger + action chain + retry policy."""
    id: str
    name: str
    plan: ActionPlan
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    is_active: bool = True

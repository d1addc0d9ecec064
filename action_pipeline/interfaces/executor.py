"""
Action executor interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional


@dataclass(frozen=True)
class ExecutorPreview:
    """Answer to a read-only "what would this touch" query."""
    count_estimate: Optional[int]
    reversible: bool = True
    description: Optional[str] = None


@dataclass
class ExecutionContext:
    """
    Context handed to an executor for one attempt.

    ``outputs`` maps earlier action ids to their outputs; it is a snapshot and
    executors must not mutate it.
    """
    execution_id: str
    action_id: str
    action_type: Optional[str] = None
    attempt: int = 1
    test_mode: bool = False
    trigger_data: Dict[str, Any] = field(default_factory=dict)
    outputs: Dict[str, Any] = field(default_factory=dict)
    platform_targets: FrozenSet[str] = frozenset()


class ActionExecutor(ABC):
    """
    Capability that performs one kind of action.

    Implementations should provide:
    - execute: the mutating call that applies the action on a platform
    - preview: optional read-only count of affected items (never mutates)
    - sandbox: a non-committing variant used for test-mode runs
    """

    @abstractmethod
    async def execute(self, params: Dict[str, Any], context: ExecutionContext) -> Any:
        """
        Perform the action.

        Args:
            params: Resolved action parameters
            context: Execution context for this attempt

        Returns:
            Action output (any JSON-shaped value)

        Raises:
            ActionError: With the retryable flag set as appropriate. Any other
                exception is classified by the orchestrator's ErrorClassifier.
        """
        pass

    async def preview(self, params: Dict[str, Any]) -> Optional[ExecutorPreview]:
        """
        Estimate the items the action would affect, without side effects.

        Returns None when the executor cannot answer without side effects.
        """
        return None

    def sandbox(self) -> "ActionExecutor":
        """Return the non-committing variant used when test_mode is on."""
        from ..executors import DryRunExecutor
        return DryRunExecutor(self)

"""
Append-only execution trace recorder.

One recorder per execution. Steps are appended in the plan's declared order
as the orchestrator walks it; each step carries its own timestamp and
duration. An appended step is never changed.
"""

import logging
import traceback
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .types import ActionResult, ActionStatus, ExecutionTrace, TraceStep, TraceStepStatus, utcnow

logger = logging.getLogger(__name__)

StepListener = Callable[[str, TraceStep], None]


class TraceClosedError(RuntimeError):
    """Raised when recording into a trace that was already closed."""


class TraceRecorder:
    """
    Records the steps of one execution.

    Args:
        execution_id: Execution log ID the trace belongs to
        listeners: Callables invoked with (execution_id, step) after each append
    """

    def __init__(self, execution_id: str, listeners: Iterable[StepListener] = ()):
        self.execution_id = execution_id
        self._steps: List[TraceStep] = []
        self._listeners = list(listeners)
        self._closed = False

    @property
    def steps(self) -> Sequence[TraceStep]:
        return tuple(self._steps)

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._steps)

    def add_listener(self, listener: StepListener) -> None:
        self._listeners.append(listener)

    def record(self, step: TraceStep) -> TraceStep:
        """
        Append a step. The stored step gets the next index; the argument is
        left untouched.

        Returns:
            The step as stored
        """
        if self._closed:
            raise TraceClosedError(f"Trace for {self.execution_id} is closed")

        stored = step.with_index(len(self._steps))
        self._steps.append(stored)

        for listener in self._listeners:
            try:
                listener(self.execution_id, stored)
            except Exception as e:
                logger.warning(f"Trace listener failed for {self.execution_id}: {e}")

        return stored

    def close(self) -> ExecutionTrace:
        """Stop accepting steps and return the finished trace."""
        self._closed = True
        return self.trace

    @property
    def trace(self) -> ExecutionTrace:
        return ExecutionTrace(execution_id=self.execution_id, steps=list(self._steps))


def format_error_stack(error: BaseException) -> str:
    """Debug traceback for an exception, kept apart from the user-facing message."""
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


def step_from_result(
    name: str,
    result: ActionResult,
    started_at: datetime,
    params: Optional[Dict[str, Any]] = None,
    error: Optional[BaseException] = None,
    warnings: Iterable[str] = (),
    **metadata: Any
) -> TraceStep:
    """
    Build a trace step describing one attempt of an action.

    A failed attempt that will be retried is recorded as ``error``; a final
    failure as ``failed``; skipped actions as ``warning``.
    """
    warnings = list(warnings)
    if result.skipped:
        status = TraceStepStatus.WARNING
    elif result.status == ActionStatus.COMPLETED:
        status = TraceStepStatus.WARNING if warnings else TraceStepStatus.SUCCESS
    elif result.status == ActionStatus.FAILED:
        status = TraceStepStatus.FAILED
    elif error is not None:
        status = TraceStepStatus.ERROR
    else:
        status = TraceStepStatus.RUNNING

    metadata.setdefault("action_id", result.action_id)
    metadata.setdefault("action_type", result.action_type.value)
    metadata.setdefault("attempt", result.attempt_count)
    if result.fallback_for:
        metadata.setdefault("fallback_for", result.fallback_for)

    return TraceStep(
        index=0,
        name=name,
        status=status,
        duration_ms=result.duration_ms,
        timestamp=started_at,
        input=params,
        output=result.output if result.status == ActionStatus.COMPLETED else None,
        error=result.error,
        error_stack=format_error_stack(error) if error is not None else None,
        warnings=tuple(warnings),
        metadata=metadata,
    )


def simple_step(
    name: str,
    status: TraceStepStatus,
    error: Optional[str] = None,
    warnings: Iterable[str] = (),
    **metadata: Any
) -> TraceStep:
    """Trace step for events that are not action attempts (cancellation, rejection)."""
    return TraceStep(
        index=0,
        name=name,
        status=status,
        timestamp=utcnow(),
        error=error,
        warnings=tuple(warnings),
        metadata=metadata,
    )

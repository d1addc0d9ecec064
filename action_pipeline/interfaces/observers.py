"""
Observer interface for pushed execution updates.
"""

from abc import ABC

from ..types import ExecutionLog, TraceStep


class ExecutionObserver(ABC):
    """
    Receives execution updates as they happen.

    All hooks are optional. Exceptions raised by an observer are logged and
    never affect the execution.
    """

    async def on_execution_started(self, log: ExecutionLog) -> None:
        """Called once the log exists in RUNNING state."""
        pass

    async def on_trace_step(self, execution_id: str, step: TraceStep) -> None:
        """Called after each trace step is appended."""
        pass

    async def on_execution_finalized(self, log: ExecutionLog) -> None:
        """Called once the log reached its terminal status."""
        pass

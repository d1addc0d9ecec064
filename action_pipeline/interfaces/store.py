"""
Persistence interface for execution logs, statistics and automations.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..types import Automation, ExecutionLog, Statistics


class ExecutionStore(ABC):
    """
    Abstract interface for durable pipeline state.

    Implementations should handle:
    - Execution logs (created RUNNING, overwritten once when finalized)
    - Per-automation statistics (read-modify-write, keyed by automation id)
    - Automation lookup for trigger and sandbox runs

    Failures should be raised as PersistenceError.
    """

    @abstractmethod
    async def create_execution_log(self, log: ExecutionLog) -> None:
        """
        Store a new execution log in RUNNING state.

        Args:
            log: Execution log
        """
        pass

    @abstractmethod
    async def save_execution_log(self, log: ExecutionLog) -> None:
        """
        Insert or overwrite an execution log, keyed by its id.

        Args:
            log: Execution log
        """
        pass

    @abstractmethod
    async def get_execution_log(self, execution_id: str) -> Optional[ExecutionLog]:
        """
        Get an execution log by ID.

        Returns:
            ExecutionLog if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_execution_logs(
        self,
        automation_id: Optional[str] = None,
        limit: int = 50
    ) -> List[ExecutionLog]:
        """
        List execution logs, most recent first.

        Args:
            automation_id: Optional automation filter
            limit: Maximum number of logs
        """
        pass

    @abstractmethod
    async def get_statistics(self, automation_id: str) -> Optional[Statistics]:
        """Get the statistics rollup for an automation, None if it never ran."""
        pass

    @abstractmethod
    async def save_statistics(self, statistics: Statistics) -> None:
        """Insert or overwrite the statistics rollup of an automation."""
        pass

    @abstractmethod
    async def get_automation(self, automation_id: str) -> Optional[Automation]:
        """Get an automation by ID."""
        pass

    @abstractmethod
    async def save_automation(self, automation: Automation) -> None:
        """Insert or overwrite an automation."""
        pass

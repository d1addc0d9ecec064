"""
In-process execution store.

Keeps records in their serialized form, so what comes back out has been
through the same round trip as a durable store.
"""

import asyncio
from typing import Any, Dict, List, Optional

from .errors import PersistenceError
from .interfaces import ExecutionStore
from .serialization import (
    automation_from_dict,
    automation_to_dict,
    execution_log_from_dict,
    execution_log_to_dict,
    statistics_from_dict,
    statistics_to_dict,
)
from .types import Automation, ExecutionLog, Statistics


class InMemoryExecutionStore(ExecutionStore):
    """Dict-backed ExecutionStore for tests, sandbox runs and local tooling."""

    def __init__(self):
        self._logs: Dict[str, Dict[str, Any]] = {}
        self._statistics: Dict[str, Dict[str, Any]] = {}
        self._automations: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def create_execution_log(self, log: ExecutionLog) -> None:
        async with self._lock:
            if log.id in self._logs:
                raise PersistenceError(f"Execution log {log.id} already exists")
            self._logs[log.id] = execution_log_to_dict(log)

    async def save_execution_log(self, log: ExecutionLog) -> None:
        async with self._lock:
            self._logs[log.id] = execution_log_to_dict(log)

    async def get_execution_log(self, execution_id: str) -> Optional[ExecutionLog]:
        data = self._logs.get(execution_id)
        return execution_log_from_dict(data) if data else None

    async def list_execution_logs(self, automation_id: Optional[str] = None, limit: int = 50) -> List[ExecutionLog]:
        rows = [
            row for row in self._logs.values()
            if automation_id is None or row.get("automation_id") == automation_id
        ]
        rows.sort(key=lambda row: row["timestamp"], reverse=True)
        return [execution_log_from_dict(row) for row in rows[:limit]]

    async def get_statistics(self, automation_id: str) -> Optional[Statistics]:
        data = self._statistics.get(automation_id)
        return statistics_from_dict(data) if data else None

    async def save_statistics(self, statistics: Statistics) -> None:
        async with self._lock:
            self._statistics[statistics.automation_id] = statistics_to_dict(statistics)

    async def get_automation(self, automation_id: str) -> Optional[Automation]:
        data = self._automations.get(automation_id)
        return automation_from_dict(data) if data else None

    async def save_automation(self, automation: Automation) -> None:
        async with self._lock:
            self._automations[automation.id] = automation_to_dict(automation)

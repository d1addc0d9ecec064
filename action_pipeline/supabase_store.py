"""
Supabase-backed execution store.

Tables (in the configured schema):
- execution_logs: one row per execution, keyed by id; ``trace`` and
  ``actions_executed`` are JSON columns
- automation_statistics: one row per automation, keyed by automation_id;
  ``recent_execution_ids`` is a JSON column
- automations: id, name, plan (JSON), retry_policy (JSON), is_active

The supabase client is synchronous, so calls run in a worker thread.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional

from supabase import Client as SupabaseClient, create_client

from . import config
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

logger = logging.getLogger(__name__)


class SupabaseExecutionStore(ExecutionStore):
    """
    ExecutionStore on top of a supabase-py client.

    Args:
        supabase: Supabase client
        schema: Postgres schema holding the tables
        logs_table: Execution log table name
        statistics_table: Statistics table name
        automations_table: Automations table name
    """

    def __init__(
        self,
        supabase: SupabaseClient,
        schema: str = config.SUPABASE_SCHEMA,
        logs_table: str = config.EXECUTION_LOGS_TABLE,
        statistics_table: str = config.STATISTICS_TABLE,
        automations_table: str = config.AUTOMATIONS_TABLE,
    ):
        self.supabase = supabase
        self.schema = schema
        self.logs_table = logs_table
        self.statistics_table = statistics_table
        self.automations_table = automations_table

    @classmethod
    def from_env(cls) -> "SupabaseExecutionStore":
        """Create a store from SUPABASE_URL / SUPABASE_KEY."""
        credentials = config.supabase_credentials()
        if credentials is None:
            raise PersistenceError("SUPABASE_URL and SUPABASE_KEY must be set")
        url, key = credentials
        return cls(create_client(url, key))

    def _table(self, name: str):
        return self.supabase.schema(self.schema).table(name)

    async def _call(self, description: str, query: Callable[[], Any]) -> Any:
        try:
            result = await asyncio.to_thread(query)
        except Exception as e:
            logger.error(f"Supabase {description} failed: {e}")
            raise PersistenceError(f"{description} failed: {e}") from e
        return result.data

    async def create_execution_log(self, log: ExecutionLog) -> None:
        row = execution_log_to_dict(log)
        await self._call(
            f"insert execution {log.id}",
            lambda: self._table(self.logs_table).insert(row).execute(),
        )

    async def save_execution_log(self, log: ExecutionLog) -> None:
        row = execution_log_to_dict(log)
        await self._call(
            f"upsert execution {log.id}",
            lambda: self._table(self.logs_table).upsert(row, on_conflict="id").execute(),
        )

    async def get_execution_log(self, execution_id: str) -> Optional[ExecutionLog]:
        data = await self._call(
            f"fetch execution {execution_id}",
            lambda: self._table(self.logs_table).select("*").eq("id", execution_id).limit(1).execute(),
        )
        return execution_log_from_dict(data[0]) if data else None

    async def list_execution_logs(self, automation_id: Optional[str] = None, limit: int = 50) -> List[ExecutionLog]:
        def query():
            q = self._table(self.logs_table).select("*")
            if automation_id is not None:
                q = q.eq("automation_id", automation_id)
            return q.order("timestamp", desc=True).limit(limit).execute()

        data = await self._call("list executions", query)
        return [execution_log_from_dict(row) for row in data or []]

    async def get_statistics(self, automation_id: str) -> Optional[Statistics]:
        data = await self._call(
            f"fetch statistics {automation_id}",
            lambda: self._table(self.statistics_table).select("*").eq("automation_id", automation_id).limit(1).execute(),
        )
        return statistics_from_dict(data[0]) if data else None

    async def save_statistics(self, statistics: Statistics) -> None:
        row = statistics_to_dict(statistics)
        await self._call(
            f"upsert statistics {statistics.automation_id}",
            lambda: self._table(self.statistics_table).upsert(row, on_conflict="automation_id").execute(),
        )

    async def get_automation(self, automation_id: str) -> Optional[Automation]:
        data = await self._call(
            f"fetch automation {automation_id}",
            lambda: self._table(self.automations_table).select("*").eq("id", automation_id).limit(1).execute(),
        )
        return automation_from_dict(data[0]) if data else None

    async def save_automation(self, automation: Automation) -> None:
        row = automation_to_dict(automation)
        await self._call(
            f"upsert automation {automation.id}",
            lambda: self._table(self.automations_table).upsert(row, on_conflict="id").execute(),
        )

"""
Per-automation statistics rollup.

Statistics are a derived cache over finalized execution logs. Each log is
counted exactly once, with a streaming mean for the execution time so no run
history has to be kept.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Dict, Optional

from .config import STATISTICS_RECENT_IDS_LIMIT
from .errors import DuplicateCompletionError, PersistenceError
from .interfaces import ExecutionStore
from .types import ExecutionLog, ExecutionStatus, Statistics

logger = logging.getLogger(__name__)


def apply_completion(
    stats: Statistics,
    log: ExecutionLog,
    keep_ids: int = STATISTICS_RECENT_IDS_LIMIT
) -> Statistics:
    """
    Fold one finalized execution into a statistics record.

    Args:
        stats: Current statistics (not modified)
        log: Finalized execution log
        keep_ids: How many counted execution ids the record remembers

    Returns:
        New Statistics instance
    """
    total_runs = stats.total_runs + 1
    average = stats.average_execution_time_ms + (
        log.execution_time_ms - stats.average_execution_time_ms
    ) / total_runs
    recent = (stats.recent_execution_ids + (log.id,))[-keep_ids:] if keep_ids > 0 else ()

    return replace(
        stats,
        total_runs=total_runs,
        successful_runs=stats.successful_runs + (1 if log.status == ExecutionStatus.SUCCESS else 0),
        failed_runs=stats.failed_runs + (1 if log.status == ExecutionStatus.FAILED else 0),
        retried_runs=stats.retried_runs + (1 if log.was_retried else 0),
        average_execution_time_ms=average,
        last_run=log.timestamp,
        recent_execution_ids=recent,
    )


class StatisticsAggregator:
    """
    Rolls finalized executions into per-automation statistics.

    Updates for one automation are serialized with an asyncio.Lock, so
    concurrent executions of the same automation never lose an increment.
    When a store is given, each update is a read-modify-write against it.
    Counted execution ids travel with the statistics record, so a log is
    rejected as a duplicate by any aggregator sharing the same store.
    """

    def __init__(self, store: Optional[ExecutionStore] = None, keep_ids: int = STATISTICS_RECENT_IDS_LIMIT):
        self.store = store
        self.keep_ids = keep_ids
        self._stats: Dict[str, Statistics] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, automation_id: str) -> asyncio.Lock:
        lock = self._locks.get(automation_id)
        if lock is None:
            lock = self._locks[automation_id] = asyncio.Lock()
        return lock

    async def _load(self, automation_id: str) -> Statistics:
        if self.store is not None:
            stored = await self.store.get_statistics(automation_id)
            if stored is not None:
                return stored
        return self._stats.get(automation_id) or Statistics(automation_id=automation_id)

    async def record_completion(self, automation_id: str, log: ExecutionLog) -> Optional[Statistics]:
        """
        Count a finalized execution.

        Test-mode executions are ignored and return None.

        Raises:
            ValueError: If the log is still running
            DuplicateCompletionError: If this log was already counted
            PersistenceError: If the store read or write failed
        """
        if log.test_mode:
            logger.debug(f"Skipping statistics for test-mode execution {log.id}")
            return None
        if not log.is_finalized:
            raise ValueError(f"Execution {log.id} is still running")

        async with self._lock_for(automation_id):
            current = await self._load(automation_id)
            if log.id in current.recent_execution_ids:
                raise DuplicateCompletionError(f"Execution {log.id} already counted for {automation_id}")

            updated = apply_completion(current, log, self.keep_ids)

            if self.store is not None:
                try:
                    await self.store.save_statistics(updated)
                except PersistenceError:
                    raise
                except Exception as e:
                    raise PersistenceError(f"Failed to save statistics for {automation_id}: {e}") from e

            self._stats[automation_id] = updated

        logger.info(
            f"Statistics for {automation_id}: {updated.total_runs} runs, "
            f"{updated.successful_runs} ok, {updated.failed_runs} failed"
        )
        return updated

    async def get(self, automation_id: str) -> Statistics:
        """Current statistics for an automation (zeroed if it never ran)."""
        return await self._load(automation_id)

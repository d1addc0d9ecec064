"""Tests for the statistics aggregator."""

import asyncio
from datetime import datetime, timezone

import pytest

from action_pipeline.errors import DuplicateCompletionError
from action_pipeline.statistics import StatisticsAggregator, apply_completion
from action_pipeline.stores import InMemoryExecutionStore
from action_pipeline.types import (
    ActionResult,
    ActionStatus,
    ActionType,
    ExecutionLog,
    ExecutionStatus,
    Statistics,
)


def finalized_log(status=ExecutionStatus.SUCCESS, time_ms=100, attempts=1, test_mode=False, **kwargs):
    log = ExecutionLog(automation_id='auto-1', test_mode=test_mode, **kwargs)
    log.actions_executed.append(ActionResult(
        action_id='a1',
        action_type=ActionType.SYNC_PLATFORM,
        status=ActionStatus.COMPLETED if status == ExecutionStatus.SUCCESS else ActionStatus.FAILED,
        attempt_count=attempts,
    ))
    log.finalize(status, time_ms)
    return log


class TestApplyCompletion:
    """Tests for apply_completion function."""

    def test_first_run(self):
        ts = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        stats = apply_completion(Statistics('auto-1'), finalized_log(time_ms=250, timestamp=ts))

        assert stats.total_runs == 1
        assert stats.successful_runs == 1
        assert stats.failed_runs == 0
        assert stats.retried_runs == 0
        assert stats.average_execution_time_ms == 250
        assert stats.last_run == ts

    def test_streaming_mean(self):
        """avg + (t - avg) / n over several runs equals the plain mean."""
        stats = Statistics('auto-1')
        for t in (100, 200, 600):
            stats = apply_completion(stats, finalized_log(time_ms=t))
        assert stats.total_runs == 3
        assert stats.average_execution_time_ms == pytest.approx(300)

    def test_mean_from_existing_rollup(self):
        stats = Statistics('auto-1', total_runs=4, successful_runs=4, average_execution_time_ms=1000)
        stats = apply_completion(stats, finalized_log(time_ms=2000))
        assert stats.average_execution_time_ms == pytest.approx(1200)

    def test_status_counters(self):
        stats = Statistics('auto-1')
        stats = apply_completion(stats, finalized_log(ExecutionStatus.SUCCESS))
        stats = apply_completion(stats, finalized_log(ExecutionStatus.FAILED))
        stats = apply_completion(stats, finalized_log(ExecutionStatus.PARTIAL_SUCCESS))
        assert (stats.total_runs, stats.successful_runs, stats.failed_runs) == (3, 1, 1)
        assert stats.success_rate == pytest.approx(33.3)

    def test_retried_runs(self):
        stats = apply_completion(Statistics('auto-1'), finalized_log(attempts=3))
        assert stats.retried_runs == 1

    def test_input_not_modified(self):
        original = Statistics('auto-1')
        apply_completion(original, finalized_log())
        assert original.total_runs == 0

    def test_remembers_recent_execution_ids(self):
        stats = Statistics('auto-1')
        logs = [finalized_log() for _ in range(4)]
        for log in logs:
            stats = apply_completion(stats, log, keep_ids=3)
        assert stats.recent_execution_ids == tuple(log.id for log in logs[1:])
        assert stats.total_runs == 4


@pytest.mark.asyncio
async def test_record_completion_persists():
    store = InMemoryExecutionStore()
    aggregator = StatisticsAggregator(store)

    await aggregator.record_completion('auto-1', finalized_log(time_ms=300))

    stored = await store.get_statistics('auto-1')
    assert stored.total_runs == 1
    assert stored.average_execution_time_ms == 300


@pytest.mark.asyncio
async def test_duplicate_completion_rejected():
    aggregator = StatisticsAggregator()
    log = finalized_log()

    await aggregator.record_completion('auto-1', log)
    with pytest.raises(DuplicateCompletionError):
        await aggregator.record_completion('auto-1', log)

    assert (await aggregator.get('auto-1')).total_runs == 1


@pytest.mark.asyncio
async def test_test_mode_logs_ignored():
    aggregator = StatisticsAggregator()

    assert await aggregator.record_completion('auto-1', finalized_log(test_mode=True)) is None
    assert (await aggregator.get('auto-1')).total_runs == 0


@pytest.mark.asyncio
async def test_running_log_rejected():
    aggregator = StatisticsAggregator()

    with pytest.raises(ValueError):
        await aggregator.record_completion('auto-1', ExecutionLog(automation_id='auto-1'))


@pytest.mark.asyncio
async def test_concurrent_completions_lose_nothing():
    """Concurrent executions of one automation are all counted."""
    store = InMemoryExecutionStore()
    aggregator = StatisticsAggregator(store)
    logs = [finalized_log(time_ms=t) for t in range(10, 210, 10)]

    await asyncio.gather(*(aggregator.record_completion('auto-1', log) for log in logs))

    stats = await aggregator.get('auto-1')
    assert stats.total_runs == 20
    assert stats.successful_runs == 20
    assert stats.average_execution_time_ms == pytest.approx(105)


@pytest.mark.asyncio
async def test_duplicate_rejected_across_aggregators():
    """A second aggregator over the same store sees the log was counted."""
    store = InMemoryExecutionStore()
    log = finalized_log()

    await StatisticsAggregator(store).record_completion('auto-1', log)
    with pytest.raises(DuplicateCompletionError):
        await StatisticsAggregator(store).record_completion('auto-1', log)

    stored = await store.get_statistics('auto-1')
    assert stored.total_runs == 1
    assert stored.recent_execution_ids == (log.id,)

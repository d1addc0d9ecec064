"""Tests for triggered automation runs and the test sandbox."""

from typing import Any, Dict

import pytest

from action_pipeline.automations import AutomationRunner
from action_pipeline.errors import AutomationNotFoundError
from action_pipeline.executors import ExecutorRegistry
from action_pipeline.interfaces import ActionExecutor, ExecutionContext
from action_pipeline.orchestrator import ExecutionOrchestrator
from action_pipeline.statistics import StatisticsAggregator
from action_pipeline.stores import InMemoryExecutionStore
from action_pipeline.types import (
    ActionPlan,
    ActionSpec,
    ActionType,
    Automation,
    ExecutionStatus,
    PlanSource,
    RetryPolicy,
)


class InventoryExecutor(ActionExecutor):

    def __init__(self):
        self.calls = []

    async def execute(self, params: Dict[str, Any], context: ExecutionContext) -> Any:
        self.calls.append(params)
        return {'restocked': params.get('sku')}


async def _no_sleep(seconds):
    pass


def low_stock_automation(**kwargs) -> Automation:
    plan = ActionPlan.of([
        ActionSpec('gate', ActionType.CONDITIONAL_BRANCH, 1, parameters={
            'condition': {'path': 'quantity', 'op': 'less_than', 'value': 5},
        }),
        ActionSpec('restock', ActionType.UPDATE_INVENTORY, 2, parameters={'sku': '{{sku}}', 'add': 50}),
    ], source=PlanSource.AUTOMATION, owner_id='auto-1')
    return Automation(id='auto-1', name='Low stock restock', plan=plan, **kwargs)


async def make_runner(automation: Automation):
    store = InMemoryExecutionStore()
    await store.save_automation(automation)
    executor = InventoryExecutor()
    orchestrator = ExecutionOrchestrator(
        ExecutorRegistry({ActionType.UPDATE_INVENTORY: executor}),
        store=store,
        statistics=StatisticsAggregator(store),
        sleep=_no_sleep,
    )
    return AutomationRunner(orchestrator, store), executor, store


@pytest.mark.asyncio
async def test_triggered_run_executes_and_counts():
    runner, executor, store = await make_runner(low_stock_automation())

    log = await runner.run_triggered(low_stock_automation(), {'sku': 'A-1', 'quantity': 2})

    assert log.status == ExecutionStatus.SUCCESS
    assert log.automation_id == 'auto-1'
    assert executor.calls == [{'sku': 'A-1', 'add': 50}]
    stats = await store.get_statistics('auto-1')
    assert stats.total_runs == 1


@pytest.mark.asyncio
async def test_run_by_id_loads_from_store():
    runner, executor, _ = await make_runner(low_stock_automation())

    log = await runner.run_by_id('auto-1', {'sku': 'B-7', 'quantity': 40})

    assert log.status == ExecutionStatus.SUCCESS
    assert executor.calls == []
    assert log.actions_executed[1].skipped is True


@pytest.mark.asyncio
async def test_inactive_automation_is_rejected():
    automation = low_stock_automation(is_active=False)
    runner, executor, _ = await make_runner(automation)

    log = await runner.run_triggered(automation, {'sku': 'A-1', 'quantity': 2})

    assert log.status == ExecutionStatus.FAILED
    assert log.actions_executed == []
    assert "inactive" in log.error_message
    assert executor.calls == []


@pytest.mark.asyncio
async def test_invalid_fallback_is_rejected():
    automation = low_stock_automation(retry_policy=RetryPolicy(fallback_action_id='missing'))
    runner, executor, _ = await make_runner(automation)

    log = await runner.run_triggered(automation, {'sku': 'A-1', 'quantity': 2})

    assert log.status == ExecutionStatus.FAILED
    assert "Fallback action 'missing'" in log.error_message
    assert executor.calls == []


@pytest.mark.asyncio
async def test_sandbox_run_returns_full_log_without_side_effects():
    runner, executor, store = await make_runner(low_stock_automation(is_active=False))

    log = await runner.run_test('auto-1', {'sku': 'A-1', 'quantity': 1})

    assert log.test_mode is True
    assert log.status == ExecutionStatus.SUCCESS
    assert executor.calls == []
    assert log.actions_executed[1].output['dry_run'] is True
    assert log.actions_executed[1].output['parameters'] == {'sku': 'A-1', 'add': 50}
    assert [s.name for s in log.trace.steps] == ['gate', 'restock']
    assert (await store.get_statistics('auto-1')) is None


@pytest.mark.asyncio
async def test_sandbox_unknown_automation():
    runner, _, _ = await make_runner(low_stock_automation())

    with pytest.raises(AutomationNotFoundError):
        await runner.run_test('nope', {})

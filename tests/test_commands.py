"""Tests for ad-hoc commands, command queues and history."""

from typing import Any, Dict, List, Optional

import pytest

from action_pipeline.commands import (
    CommandHistory,
    CommandQueue,
    CommandRunner,
    QueuedCommand,
)
from action_pipeline.config import PipelineConfig
from action_pipeline.errors import PlanRejectedError
from action_pipeline.executors import ExecutorRegistry
from action_pipeline.interfaces import (
    ActionExecutor,
    ExecutionContext,
    ExecutorPreview,
    IntentInterpreter,
    NotificationHandler,
)
from action_pipeline.orchestrator import ExecutionOrchestrator
from action_pipeline.risk import RiskEstimator
from action_pipeline.stores import InMemoryExecutionStore
from action_pipeline.types import (
    ActionPlan,
    ActionSpec,
    ActionType,
    ExecutionStatus,
    PlanSource,
    RiskLevel,
)


# Mock implementations for testing

class MockInterpreter(IntentInterpreter):
    """Maps known command texts to fixed plans."""

    def __init__(self, plans: Dict[str, ActionPlan]):
        self.plans = plans
        self.calls = []

    async def interpret(self, command_text: str, available_platforms: List[str]) -> ActionPlan:
        self.calls.append((command_text, available_platforms))
        if command_text not in self.plans:
            raise RuntimeError("Could not understand command")
        return self.plans[command_text]


class PriceExecutor(ActionExecutor):

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    async def execute(self, params: Dict[str, Any], context: ExecutionContext) -> Any:
        self.calls.append(params)
        if self.fail:
            raise ValueError("Price below cost")
        return {'updated': 24}

    async def preview(self, params: Dict[str, Any]) -> Optional[ExecutorPreview]:
        return ExecutorPreview(count_estimate=24, reversible=True)


class RecordingNotifications(NotificationHandler):

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.custom = []

    async def notify_action_failed(self, execution_id, action_id, error, automation_id=None, attempts=1):
        pass

    async def notify_execution_finished(self, execution_id, status, automation_id=None, error_summary=None):
        pass

    async def notify_custom(self, title, body, **kwargs):
        if self.fail:
            raise RuntimeError("push service down")
        self.custom.append((title, body, kwargs))


class FakeSleep:

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


DISCOUNT_PLAN = ActionPlan.of([
    ActionSpec('discount', ActionType.UPDATE_PRICE, 1, parameters={'percent': 20, 'collection': 'summer'}),
])

BROKEN_PLAN = ActionPlan.of([
    ActionSpec('a', ActionType.UPDATE_PRICE, 2),
    ActionSpec('b', ActionType.UPDATE_PRICE, 1),
])


def make_runner(executor: Optional[PriceExecutor] = None, history: Optional[CommandHistory] = None, sleep=None):
    store = InMemoryExecutionStore()
    registry = ExecutorRegistry({ActionType.UPDATE_PRICE: executor or PriceExecutor()})
    orchestrator = ExecutionOrchestrator(registry, store=store, sleep=sleep or FakeSleep())
    interpreter = MockInterpreter({
        'discount summer by 20%': DISCOUNT_PLAN,
        'broken': BROKEN_PLAN,
    })
    runner = CommandRunner(interpreter, orchestrator, RiskEstimator(registry), history=history)
    return runner, store


def approve(impact):
    return True


def decline(impact):
    return False


# Tests

class TestCommandHistory:
    """Tests for CommandHistory."""

    def test_most_recent_first(self):
        history = CommandHistory(maxlen=3)
        for text in ('a', 'b', 'c'):
            history.add(text)
        assert history.recent() == ['c', 'b', 'a']

    def test_bounded(self):
        history = CommandHistory(maxlen=2)
        for text in ('a', 'b', 'c'):
            history.add(text)
        assert history.recent() == ['c', 'b']
        assert len(history) == 2

    def test_deduplicates(self):
        history = CommandHistory()
        for text in ('a', 'b', ' a '):
            history.add(text)
        assert history.recent() == ['a', 'b']

    def test_ignores_blank_and_limits(self):
        history = CommandHistory()
        history.add('   ')
        history.add('x')
        history.add('y')
        assert history.recent(limit=1) == ['y']
        history.clear()
        assert len(history) == 0

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            CommandHistory(maxlen=0)


@pytest.mark.asyncio
async def test_run_confirmed_command():
    executor = PriceExecutor()
    history = CommandHistory()
    runner, store = make_runner(executor, history)
    seen = []

    async def confirm(impact):
        seen.append(impact)
        return True

    outcome = await runner.run('discount summer by 20%', ['shopify'], confirm)

    assert outcome.succeeded is True
    assert outcome.declined is False
    assert outcome.plan.source == PlanSource.COMMAND
    assert seen[0].risk_level == RiskLevel.MEDIUM
    assert seen[0].affected_items_estimate == 24
    assert executor.calls == [{'percent': 20, 'collection': 'summer'}]
    assert outcome.log.command_text == 'discount summer by 20%'
    assert outcome.log.trigger_data == {'command_text': 'discount summer by 20%', 'platforms': ['shopify']}
    assert (await store.get_execution_log(outcome.log.id)).status == ExecutionStatus.SUCCESS
    assert history.recent() == ['discount summer by 20%']


@pytest.mark.asyncio
async def test_declined_command_runs_nothing():
    executor = PriceExecutor()
    runner, store = make_runner(executor)

    outcome = await runner.run('discount summer by 20%', [], decline)

    assert outcome.declined is True
    assert outcome.log is None
    assert outcome.impact.affected_items_estimate == 24
    assert executor.calls == []
    assert await store.list_execution_logs() == []


@pytest.mark.asyncio
async def test_uninterpretable_command_creates_no_log():
    runner, store = make_runner()

    with pytest.raises(PlanRejectedError):
        await runner.run('make me a sandwich', [], approve)

    with pytest.raises(PlanRejectedError):
        await runner.interpret('   ', [])

    assert await store.list_execution_logs() == []


@pytest.mark.asyncio
async def test_invalid_plan_is_rejected_with_log():
    executor = PriceExecutor()
    runner, store = make_runner(executor)

    outcome = await runner.run('broken', [], approve)

    assert executor.calls == []
    assert outcome.log.status == ExecutionStatus.FAILED
    assert outcome.log.actions_executed == []
    assert 'strictly increasing' in outcome.error
    assert (await store.get_execution_log(outcome.log.id)).status == ExecutionStatus.FAILED


@pytest.mark.asyncio
async def test_preview_is_a_dry_run():
    executor = PriceExecutor()
    runner, _ = make_runner(executor)

    preview = await runner.preview('discount summer by 20%', ['shopify'])

    assert executor.calls == []
    assert preview.validation_errors == []
    assert preview.impact.affected_items_estimate == 24
    assert preview.summary.would_succeed == 1
    assert preview.summary.can_proceed is True
    assert preview.summary.items[0].summary == 'Would update price on 24 items'


@pytest.mark.asyncio
async def test_queue_runs_commands_in_sequence():
    sleep = FakeSleep()
    executor = PriceExecutor()
    runner, store = make_runner(executor, sleep=sleep)
    queue = CommandQueue(runner, delay_seconds=1, sleep=sleep)

    result = await queue.run('Morning routine', [
        QueuedCommand('c1', 'discount summer by 20%'),
        QueuedCommand('c2', ''),
        QueuedCommand('c3', 'nonsense'),
        QueuedCommand('c4', 'discount summer by 20%', ['shopify']),
    ], approve)

    assert len(result.outcomes) == 4
    assert [o.succeeded for o in result.outcomes] == [True, False, False, True]
    assert result.outcomes[1].error == 'Empty command text'
    assert 'Could not interpret command' in result.outcomes[2].error
    assert result.success_count == 2
    assert result.failure_count == 2
    assert sleep.delays == [1, 1, 1]
    assert len(executor.calls) == 2
    assert len(await store.list_execution_logs()) == 2


@pytest.mark.asyncio
async def test_queue_failure_does_not_stop_later_commands():
    executor = PriceExecutor(fail=True)
    runner, _ = make_runner(executor)
    queue = CommandQueue(runner, sleep=FakeSleep())

    result = await queue.run('Retry prices', [
        QueuedCommand('c1', 'discount summer by 20%'),
        QueuedCommand('c2', 'discount summer by 20%'),
    ], approve)

    assert [o.log.status for o in result.outcomes] == [ExecutionStatus.FAILED, ExecutionStatus.FAILED]
    assert len(executor.calls) == 2


@pytest.mark.asyncio
async def test_queue_requires_name():
    runner, _ = make_runner()
    with pytest.raises(ValueError):
        await CommandQueue(runner, sleep=FakeSleep()).run('  ', [], approve)


@pytest.mark.asyncio
async def test_queue_settings_follow_orchestrator():
    """Delay, history size, sleep and notifications come from the orchestrator."""
    sleep = FakeSleep()
    notifications = RecordingNotifications()
    registry = ExecutorRegistry({ActionType.UPDATE_PRICE: PriceExecutor()})
    orchestrator = ExecutionOrchestrator(
        registry,
        notifications=notifications,
        config=PipelineConfig(command_queue_delay_seconds=2.5, command_history_size=2),
        sleep=sleep,
    )
    runner = CommandRunner(MockInterpreter({'discount summer by 20%': DISCOUNT_PLAN}), orchestrator,
                           RiskEstimator(registry))

    result = await CommandQueue(runner).run('Morning routine', [
        QueuedCommand('c1', 'discount summer by 20%'),
        QueuedCommand('c2', 'make me a sandwich'),
        QueuedCommand('c3', 'discount summer by 20%'),
    ], approve)

    assert sleep.delays == [2.5, 2.5]
    assert runner.history.recent() == ['discount summer by 20%', 'make me a sandwich']
    assert notifications.custom == [(
        'Queue "Morning routine" completed',
        '2 succeeded, 1 failed',
        {'queue_name': 'Morning routine'},
    )]
    assert result.success_count == 2


@pytest.mark.asyncio
async def test_queue_notice_failure_is_ignored():
    runner, _ = make_runner()
    queue = CommandQueue(runner, sleep=FakeSleep(), notifications=RecordingNotifications(fail=True))

    result = await queue.run('Nightly', [QueuedCommand('c1', 'discount summer by 20%')], approve)

    assert result.success_count == 1

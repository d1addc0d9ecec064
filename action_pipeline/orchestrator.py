"""
Execution Orchestrator

Runs an ActionPlan against the registered executors: strictly in declared
order, with per-action retries, fallback and alerts, upstream-failure
blocking, conditional skips, cancellation at action boundaries, and a
trace of every attempt. Each invocation produces exactly one ExecutionLog.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

from . import retry
from .conditions import evaluate_condition
from .config import PipelineConfig
from .errors import (
    ActionTimeoutError,
    ErrorClassifier,
    FinalizationError,
    NonRetryableActionError,
    PersistenceError,
    UpstreamBlockedError,
    error_message,
)
from .executors import ExecutorRegistry
from .interfaces import (
    ActionExecutor,
    ExecutionContext,
    ExecutionObserver,
    ExecutionStore,
    NotificationHandler,
)
from .logs import get_component_logger, log_pipeline_event
from .retry import RetryDecision
from .statistics import StatisticsAggregator
from .templates import resolve_parameters
from .trace import TraceRecorder, simple_step, step_from_result
from .types import (
    ActionPlan,
    ActionResult,
    ActionSpec,
    ActionStatus,
    ActionType,
    ExecutionLog,
    ExecutionStatus,
    RetryPolicy,
    TraceStep,
    TraceStepStatus,
    new_id,
    utcnow,
)

logger = get_component_logger("Orchestrator", __name__)


class CancellationToken:
    """
    Cooperative stop request for an in-flight execution.

    The orchestrator checks it between actions and after each retry wait;
    an action call that already started is never interrupted.
    """

    def __init__(self):
        self._cancelled = False
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Cancelled by user") -> None:
        if not self._cancelled:
            self._cancelled = True
            self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class ExecutionOptions:
    """Per-invocation options."""
    test_mode: bool = False
    retry_policy: Optional[RetryPolicy] = None
    automation_id: Optional[str] = None
    command_text: Optional[str] = None
    cancellation: Optional[CancellationToken] = None
    execution_id: Optional[str] = None


@dataclass
class _Run:
    """Mutable state of one execution while the plan is walked."""
    log: ExecutionLog
    recorder: TraceRecorder
    plan: ActionPlan
    policy: RetryPolicy
    options: ExecutionOptions
    context: Dict[str, Any]
    outputs: Dict[str, Any] = field(default_factory=dict)
    failed: Set[str] = field(default_factory=set)
    skipped: Set[str] = field(default_factory=set)
    skip_by: Dict[str, str] = field(default_factory=dict)
    not_started: List[str] = field(default_factory=list)
    cancelled: bool = False
    aborted: Optional[str] = None

    @property
    def fallback_id(self) -> Optional[str]:
        if self.policy.enabled and self.policy.fallback_action_id:
            return self.policy.fallback_action_id
        return None


def build_context(trigger_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Initial template/condition context.

    Trigger fields are spread at root for direct access ({{sku}}), and kept
    nested under ``trigger_data``. Action outputs are added under their
    action id as the plan runs.
    """
    return {
        **trigger_data,
        'trigger_data': trigger_data,
    }


def determine_status(results: List[ActionResult], cancelled: bool, plan_size: int) -> ExecutionStatus:
    """
    Terminal status from the action results.

    Skipped actions and branch evaluations are not counted as completed work.
    """
    worked = [
        r for r in results
        if not r.skipped and r.action_type != ActionType.CONDITIONAL_BRANCH
    ]
    completed = [r for r in worked if r.status == ActionStatus.COMPLETED]
    failed = [r for r in results if r.status == ActionStatus.FAILED]

    if cancelled:
        if failed or len(results) < plan_size:
            return ExecutionStatus.PARTIAL_SUCCESS if completed else ExecutionStatus.FAILED
        return ExecutionStatus.SUCCESS
    if not failed:
        return ExecutionStatus.SUCCESS
    if completed:
        return ExecutionStatus.PARTIAL_SUCCESS
    return ExecutionStatus.FAILED


class ExecutionOrchestrator:
    """
    Drives plans through their executors.

    Args:
        registry: Executors per action type
        store: Optional persistence collaborator
        notifications: Optional notification handler for alerts
        observers: Receivers of pushed execution updates
        statistics: Optional aggregator, fed once per finalized live execution
        config: Timeouts and finalization retry settings
        classifier: Retryable/non-retryable error classification
        sleep: Awaitable used for every wait (retry backoff, finalization retry)
    """

    def __init__(
        self,
        registry: ExecutorRegistry,
        store: Optional[ExecutionStore] = None,
        notifications: Optional[NotificationHandler] = None,
        observers: Iterable[ExecutionObserver] = (),
        statistics: Optional[StatisticsAggregator] = None,
        config: Optional[PipelineConfig] = None,
        classifier: Optional[ErrorClassifier] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.registry = registry
        self.store = store
        self.notifications = notifications
        self.observers: List[ExecutionObserver] = list(observers)
        self.statistics = statistics
        self.config = config or PipelineConfig()
        self.classifier = classifier or ErrorClassifier(default_retryable=self.config.default_error_retryable)
        self.sleep = sleep

    def subscribe(self, observer: ExecutionObserver) -> None:
        self.observers.append(observer)

    def unsubscribe(self, observer: ExecutionObserver) -> None:
        if observer in self.observers:
            self.observers.remove(observer)

    # ========================================================================
    # Entry points
    # ========================================================================

    async def execute(
        self,
        plan: ActionPlan,
        trigger_data: Optional[Dict[str, Any]] = None,
        options: Optional[ExecutionOptions] = None
    ) -> ExecutionLog:
        """
        Execute a plan.

        Args:
            plan: Plan to run
            trigger_data: Data from the trigger event or command
            options: Test mode, retry policy, ownership and cancellation

        Returns:
            The finalized ExecutionLog

        Raises:
            FinalizationError: If the finalized log could not be persisted;
                the exception carries the log
        """
        options = options or ExecutionOptions()
        started = time.monotonic()
        run = await self._start(plan, trigger_data, options)

        try:
            await self._run_plan(run)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Unexpected orchestration bug: keep whatever was recorded
            logger.exception(f"Execution {run.log.id} aborted")
            run.aborted = f"Execution aborted: {error_message(e)}"

        return await self._finalize(run, started)

    async def reject(
        self,
        reason: str,
        trigger_data: Optional[Dict[str, Any]] = None,
        options: Optional[ExecutionOptions] = None,
        plan: Optional[ActionPlan] = None
    ) -> ExecutionLog:
        """
        Record a plan rejected before execution: a failed log with no actions.
        """
        options = options or ExecutionOptions()
        started = time.monotonic()
        run = await self._start(plan or ActionPlan(), trigger_data, options)
        await self._record(run, simple_step("Plan rejected", TraceStepStatus.FAILED, error=reason))
        run.aborted = reason
        return await self._finalize(run, started)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def _start(
        self,
        plan: ActionPlan,
        trigger_data: Optional[Dict[str, Any]],
        options: ExecutionOptions
    ) -> _Run:
        trigger_data = dict(trigger_data or {})
        log = ExecutionLog(
            id=options.execution_id or new_id(),
            automation_id=options.automation_id,
            command_text=options.command_text,
            trigger_data=trigger_data,
            test_mode=options.test_mode,
        )
        run = _Run(
            log=log,
            recorder=TraceRecorder(log.id),
            plan=plan,
            policy=options.retry_policy or RetryPolicy(),
            options=options,
            context=build_context(trigger_data),
        )

        log_pipeline_event(
            logger, "execution_started",
            execution_id=log.id, automation_id=log.automation_id,
            actions=len(plan), test_mode=log.test_mode,
        )

        if self.store is not None:
            try:
                await self.store.create_execution_log(log)
            except Exception as e:
                # The finalization write is an upsert and will retry
                logger.warning(f"Could not store running execution {log.id}: {e}")

        await self._notify("on_execution_started", log)
        return run

    async def _finalize(self, run: _Run, started: float) -> ExecutionLog:
        log = run.log
        status = determine_status(log.actions_executed, run.cancelled, self._runnable_count(run))
        if run.aborted and status == ExecutionStatus.SUCCESS:
            status = ExecutionStatus.PARTIAL_SUCCESS if log.completed_count else ExecutionStatus.FAILED

        messages = []
        if run.aborted:
            messages.append(run.aborted)
        if run.cancelled:
            reason = run.options.cancellation.reason if run.options.cancellation else None
            messages.append(f"Cancelled: {reason or 'stop requested'}")
        messages.extend(
            f"{r.action_id}: {r.error}" for r in log.actions_executed
            if r.status == ActionStatus.FAILED and r.error
        )

        log.finalize(
            status,
            int((time.monotonic() - started) * 1000),
            '; '.join(messages) if messages else None,
        )
        log.trace = run.recorder.close()

        log_pipeline_event(
            logger, "execution_finalized",
            level=logging.INFO if status == ExecutionStatus.SUCCESS else logging.WARNING,
            execution_id=log.id, status=status.value,
            completed=log.completed_count, failed=log.failed_count,
            execution_time_ms=log.execution_time_ms,
        )

        persist_error = await self._persist_final(log)

        if self.statistics is not None and log.automation_id and not log.test_mode:
            try:
                await self.statistics.record_completion(log.automation_id, log)
            except Exception as e:
                logger.error(f"Failed to update statistics for {log.automation_id}: {e}")

        if (
            status != ExecutionStatus.SUCCESS
            and not log.test_mode
            and run.policy.alert_on_final_failure
        ):
            await self._send_notification(
                "notify_execution_finished",
                execution_id=log.id,
                status=status.value,
                automation_id=log.automation_id,
                error_summary=log.error_message,
            )

        await self._notify("on_execution_finalized", log)

        if persist_error is not None:
            raise FinalizationError(
                f"Execution {log.id} finalized as {status.value} but could not be stored: {persist_error}",
                log=log,
            )
        return log

    async def _persist_final(self, log: ExecutionLog) -> Optional[BaseException]:
        """Write the finalized log, retrying only this write."""
        if self.store is None:
            return None

        last_error: Optional[BaseException] = None
        for attempt in range(1, self.config.finalization_max_attempts + 1):
            try:
                await self.store.save_execution_log(log)
                return None
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Storing execution {log.id} failed "
                    f"(attempt {attempt}/{self.config.finalization_max_attempts}): {e}"
                )
                if attempt < self.config.finalization_max_attempts:
                    await self.sleep(self.config.finalization_retry_delay_seconds)

        logger.error(f"Giving up storing execution {log.id}")
        return last_error if isinstance(last_error, PersistenceError) else PersistenceError(str(last_error))

    def _runnable_count(self, run: _Run) -> int:
        return sum(1 for a in run.plan.actions if a.id != run.fallback_id)

    # ========================================================================
    # Plan walk
    # ========================================================================

    async def _run_plan(self, run: _Run) -> None:
        actions = run.plan.ordered()
        token = run.options.cancellation

        for index, action in enumerate(actions):
            if action.id == run.fallback_id:
                continue

            if token is not None and token.cancelled:
                await self._stop(run, actions[index:])
                return

            if action.id in run.skip_by:
                await self._skip(run, action, f"Skipped by branch '{run.skip_by[action.id]}'")
                continue

            blocked_by = next((dep for dep in action.depends_on if dep in run.failed), None)
            if blocked_by is not None:
                await self._block(run, action, blocked_by)
                continue

            skipped_dep = next((dep for dep in action.depends_on if dep in run.skipped), None)
            if skipped_dep is not None:
                await self._skip(run, action, f"Upstream action '{skipped_dep}' was skipped")
                continue

            if run.fallback_id in action.depends_on and run.fallback_id not in run.outputs:
                await self._skip(run, action, f"Fallback action '{run.fallback_id}' did not run")
                continue

            if action.type == ActionType.CONDITIONAL_BRANCH:
                await self._run_branch(run, action, actions[index + 1:])
                continue

            result, decision = await self._run_action(run, action)
            if result.status != ActionStatus.FAILED:
                continue

            run.failed.add(action.id)
            if run.cancelled:
                await self._stop(run, actions[index + 1:])
                return
            await self._handle_final_failure(run, action, result, decision)

    async def _stop(self, run: _Run, remaining: List[ActionSpec]) -> None:
        token = run.options.cancellation
        run.cancelled = True
        run.not_started = [a.id for a in remaining if a.id != run.fallback_id]
        await self._record(run, simple_step(
            "Execution cancelled",
            TraceStepStatus.WARNING,
            warnings=[f"Not started: {', '.join(run.not_started)}"] if run.not_started else [],
            reason=token.reason if token else None,
            not_started=run.not_started,
        ))
        logger.info(f"Execution {run.log.id} cancelled, {len(run.not_started)} action(s) not started")

    async def _handle_final_failure(
        self,
        run: _Run,
        action: ActionSpec,
        result: ActionResult,
        decision: RetryDecision
    ) -> None:
        if run.policy.alert_on_final_failure and not run.log.test_mode:
            await self._send_notification(
                "notify_action_failed",
                execution_id=run.log.id,
                action_id=action.id,
                error=result.error or "Unknown error",
                automation_id=run.log.automation_id,
                attempts=result.attempt_count,
            )

        if decision == RetryDecision.FALLBACK:
            fallback = run.plan.get(run.fallback_id)
            if fallback is None:
                logger.error(f"Fallback action '{run.fallback_id}' not found in plan")
                return
            log_pipeline_event(
                logger, "fallback_scheduled",
                execution_id=run.log.id, action_id=action.id, fallback_id=fallback.id,
            )
            await self._run_action(run, fallback, fallback_for=action.id)

    async def _skip(self, run: _Run, action: ActionSpec, reason: str) -> None:
        result = ActionResult(
            action_id=action.id,
            action_type=action.type,
            status=ActionStatus.COMPLETED,
            skipped=True,
        )
        run.log.actions_executed.append(result)
        run.skipped.add(action.id)
        await self._record(run, step_from_result(
            action.id, result, utcnow(), warnings=[reason], reason="skipped",
        ))
        logger.info(f"Action {action.id} skipped: {reason}")

    async def _block(self, run: _Run, action: ActionSpec, upstream_id: str) -> None:
        error = UpstreamBlockedError(upstream_id)
        result = ActionResult(
            action_id=action.id,
            action_type=action.type,
            status=ActionStatus.FAILED,
            error=error.message,
        )
        run.log.actions_executed.append(result)
        run.failed.add(action.id)
        await self._record(run, step_from_result(
            action.id, result, utcnow(), reason="upstream_blocked", upstream=upstream_id,
        ))
        logger.warning(f"Action {action.id} blocked by failed upstream {upstream_id}")

    async def _run_branch(self, run: _Run, action: ActionSpec, remaining: List[ActionSpec]) -> None:
        started_at = utcnow()
        t0 = time.monotonic()
        result = ActionResult(
            action_id=action.id,
            action_type=action.type,
            status=ActionStatus.RUNNING,
            attempt_count=1,
        )
        run.log.actions_executed.append(result)

        condition = action.parameters.get("condition") or {}
        skip_when = bool(action.parameters.get("skip_when", False))
        skip_to = action.parameters.get("skip_to")

        try:
            passed = evaluate_condition(condition, run.context)
        except Exception as e:
            result.status = ActionStatus.FAILED
            result.error = f"Condition evaluation failed: {error_message(e)}"
            result.duration_ms = int((time.monotonic() - t0) * 1000)
            run.failed.add(action.id)
            await self._record(run, step_from_result(action.id, result, started_at, dict(action.parameters), error=e))
            return

        skipped: List[str] = []
        if passed == skip_when:
            for later in remaining:
                if skip_to is not None and later.id == skip_to:
                    break
                if later.id == run.fallback_id:
                    continue
                run.skip_by[later.id] = action.id
                skipped.append(later.id)

        result.status = ActionStatus.COMPLETED
        result.output = {"condition_result": passed, "skipped": skipped}
        result.duration_ms = int((time.monotonic() - t0) * 1000)
        run.outputs[action.id] = result.output
        run.context[action.id] = result.output

        await self._record(run, step_from_result(action.id, result, started_at, dict(action.parameters)))
        logger.info(f"Branch {action.id} evaluated to {passed}, skipping {len(skipped)} action(s)")

    # ========================================================================
    # Single action
    # ========================================================================

    def _resolve_executor(self, action_type: ActionType, test_mode: bool) -> ActionExecutor:
        executor = self.registry.require(action_type)
        return executor.sandbox() if test_mode else executor

    def _timeout_for(self, action: ActionSpec) -> Optional[float]:
        explicit = action.parameters.get("timeout_seconds")
        if explicit is not None:
            try:
                seconds = float(explicit)
            except (TypeError, ValueError):
                raise NonRetryableActionError(f"Invalid timeout_seconds: {explicit!r}")
            if seconds <= 0:
                raise NonRetryableActionError(f"timeout_seconds must be positive, got {explicit!r}")
            return seconds
        if action.type == ActionType.WAIT:
            return None
        return self.config.action_timeout_seconds

    async def _run_action(
        self,
        run: _Run,
        action: ActionSpec,
        fallback_for: Optional[str] = None
    ) -> Tuple[ActionResult, RetryDecision]:
        """
        Run one action through its retry loop.

        Fallback actions run exactly once: they are never retried and never
        trigger another fallback.
        """
        is_fallback = fallback_for is not None
        name = f"{action.id} (fallback for {fallback_for})" if is_fallback else action.id
        result = ActionResult(action_id=action.id, action_type=action.type, fallback_for=fallback_for)
        run.log.actions_executed.append(result)

        action_t0 = time.monotonic()
        attempt = 0

        while True:
            attempt += 1
            result.status = ActionStatus.RUNNING
            result.attempt_count = attempt
            started_at = utcnow()
            params: Dict[str, Any] = dict(action.parameters)
            context = ExecutionContext(
                execution_id=run.log.id,
                action_id=action.id,
                action_type=action.type.value,
                attempt=attempt,
                test_mode=run.log.test_mode,
                trigger_data=run.log.trigger_data,
                outputs=dict(run.outputs),
                platform_targets=action.platform_targets,
            )

            logger.info(f"Executing action {action.id}: {action.type.value} (attempt {attempt})")

            error: Optional[BaseException] = None
            output: Any = None
            timeout: Optional[float] = None
            try:
                timeout = self._timeout_for(action)
                params = resolve_parameters(params, run.context)
                executor = self._resolve_executor(action.type, run.log.test_mode)
                output = await asyncio.wait_for(executor.execute(params, context), timeout=timeout)
            except asyncio.TimeoutError:
                error = ActionTimeoutError(f"Action timed out after {timeout}s")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = e
                if not hasattr(e, "retryable"):
                    logger.exception(f"Action execution error: {action.id}")

            result.duration_ms = int((time.monotonic() - action_t0) * 1000)

            if error is None:
                result.status = ActionStatus.COMPLETED
                result.output = output
                result.error = None
                run.outputs[action.id] = output
                run.context[action.id] = output
                await self._record(run, step_from_result(name, result, started_at, params))
                logger.info(f"Action {action.id} completed")
                return result, RetryDecision.GIVE_UP

            result.error = error_message(error)
            decision = retry.decide(run.policy, attempt, error, self.classifier, is_fallback=is_fallback)

            if decision == RetryDecision.RETRY:
                delay = retry.next_delay(run.policy, attempt)
                await self._record(run, step_from_result(
                    name, result, started_at, params, error=error,
                    retryable=True, retry_in_seconds=delay,
                ))
                log_pipeline_event(
                    logger, "action_retry_scheduled", level=logging.WARNING,
                    execution_id=run.log.id, action_id=action.id,
                    attempt=attempt, delay_seconds=delay, error=result.error,
                )
                await self.sleep(delay)

                token = run.options.cancellation
                if token is not None and token.cancelled:
                    run.cancelled = True
                    result.status = ActionStatus.FAILED
                    result.error = f"{result.error} (cancelled before retry)"
                    result.duration_ms = int((time.monotonic() - action_t0) * 1000)
                    await self._record(run, step_from_result(
                        name, result, started_at, params, reason="cancelled",
                    ))
                    return result, RetryDecision.GIVE_UP
                continue

            result.status = ActionStatus.FAILED
            await self._record(run, step_from_result(
                name, result, started_at, params, error=error,
                retryable=self.classifier.is_retryable(error), decision=decision.value,
            ))
            logger.warning(f"Action {action.id} failed after {attempt} attempt(s): {result.error}")
            return result, decision

    # ========================================================================
    # Collaborators
    # ========================================================================

    async def _record(self, run: _Run, step: TraceStep) -> None:
        stored = run.recorder.record(step)
        await self._notify("on_trace_step", run.log.id, stored)

    async def _notify(self, hook: str, *args) -> None:
        for observer in list(self.observers):
            try:
                await getattr(observer, hook)(*args)
            except Exception as e:
                logger.warning(f"Observer {observer.__class__.__name__}.{hook} failed: {e}")

    async def _send_notification(self, method: str, **kwargs) -> None:
        if self.notifications is None:
            return
        try:
            await getattr(self.notifications, method)(**kwargs)
            logger.info(f"Sent {method} for execution {kwargs.get('execution_id')}")
        except Exception as e:
            logger.error(f"Failed to send {method}: {e}")

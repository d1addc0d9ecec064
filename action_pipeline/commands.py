"""
Ad-hoc commands: interpret, estimate, confirm, execute.

Manual commands always get an impact estimate that the caller must
confirm before the orchestrator runs anything. Command queues run their
commands one at a time with a fixed pause in between.
"""

import inspect
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Sequence, Union

from .config import COMMAND_HISTORY_SIZE
from .errors import FinalizationError, PlanRejectedError, error_message
from .interfaces import IntentInterpreter, NotificationHandler
from .orchestrator import ExecutionOptions, ExecutionOrchestrator
from .preview import PreviewSummary, render_preview
from .risk import RiskEstimator
from .types import ActionPlan, ExecutionLog, ExecutionStatus, Impact, PlanSource, RetryPolicy
from .validation import validate_plan

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[Impact], Union[bool, Awaitable[bool]]]


class CommandHistory:
    """Bounded ring buffer of recent command texts, most recent first."""

    def __init__(self, maxlen: int = COMMAND_HISTORY_SIZE):
        if maxlen < 1:
            raise ValueError("maxlen must be at least 1")
        self._items: Deque[str] = deque(maxlen=maxlen)

    def add(self, command_text: str) -> None:
        text = command_text.strip()
        if not text:
            return
        try:
            self._items.remove(text)
        except ValueError:
            pass
        self._items.appendleft(text)

    def recent(self, limit: Optional[int] = None) -> List[str]:
        items = list(self._items)
        return items if limit is None else items[:limit]

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


@dataclass
class CommandOutcome:
    """Result of running one command."""
    command_text: str
    plan: Optional[ActionPlan] = None
    impact: Optional[Impact] = None
    log: Optional[ExecutionLog] = None
    declined: bool = False
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.log is not None and self.log.status == ExecutionStatus.SUCCESS


@dataclass
class CommandPreview:
    """Impact estimate plus dry-run summary for a command."""
    command_text: str
    plan: ActionPlan
    impact: Impact
    summary: PreviewSummary
    validation_errors: List[str] = field(default_factory=list)


class CommandRunner:
    """
    Runs natural-language commands through the pipeline.

    Args:
        interpreter: Intent interpreter turning text into a plan
        orchestrator: Orchestrator that executes the plan
        estimator: Risk estimator run before every manual command
        history: Ring buffer recording issued commands; defaults to one
            sized by the orchestrator's config
        retry_policy: Policy applied to command actions
    """

    def __init__(
        self,
        interpreter: IntentInterpreter,
        orchestrator: ExecutionOrchestrator,
        estimator: RiskEstimator,
        history: Optional[CommandHistory] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.interpreter = interpreter
        self.orchestrator = orchestrator
        self.estimator = estimator
        self.history = history if history is not None else CommandHistory(
            orchestrator.config.command_history_size
        )
        self.retry_policy = retry_policy or RetryPolicy()

    async def interpret(self, command_text: str, platforms: Sequence[str]) -> ActionPlan:
        """
        Interpret a command into a plan.

        Raises:
            PlanRejectedError: If the text is empty or the interpreter failed
        """
        if not command_text or not command_text.strip():
            raise PlanRejectedError("Empty command text")
        try:
            plan = await self.interpreter.interpret(command_text, list(platforms))
        except PlanRejectedError:
            raise
        except Exception as e:
            logger.warning(f"Interpretation failed for command: {command_text[:80]}")
            raise PlanRejectedError(f"Could not interpret command: {error_message(e)}") from e
        if plan.source != PlanSource.COMMAND:
            plan = ActionPlan(actions=plan.actions, source=PlanSource.COMMAND, owner_id=plan.owner_id)
        return plan

    def _options(self, command_text: str, test_mode: bool = False) -> ExecutionOptions:
        return ExecutionOptions(
            test_mode=test_mode,
            retry_policy=self.retry_policy,
            command_text=command_text,
        )

    @staticmethod
    def _trigger_data(command_text: str, platforms: Sequence[str]) -> Dict[str, Any]:
        return {"command_text": command_text, "platforms": list(platforms)}

    async def preview(self, command_text: str, platforms: Sequence[str]) -> CommandPreview:
        """
        Estimate impact and dry-run the command without committing anything.
        """
        plan = await self.interpret(command_text, platforms)
        errors = validate_plan(plan, self.retry_policy, self.orchestrator.registry)
        impact = await self.estimator.estimate(plan)

        if errors:
            log = await self.orchestrator.reject(
                "; ".join(errors),
                self._trigger_data(command_text, platforms),
                self._options(command_text, test_mode=True),
                plan=plan,
            )
        else:
            log = await self.orchestrator.execute(
                plan,
                self._trigger_data(command_text, platforms),
                self._options(command_text, test_mode=True),
            )

        return CommandPreview(
            command_text=command_text,
            plan=plan,
            impact=impact,
            summary=render_preview(log, impact),
            validation_errors=errors,
        )

    async def run(
        self,
        command_text: str,
        platforms: Sequence[str],
        confirm: ConfirmCallback
    ) -> CommandOutcome:
        """
        Interpret, validate, estimate, confirm and execute a command.

        Args:
            command_text: Command as typed
            platforms: Connected platform identifiers
            confirm: Receives the Impact; the command runs only if it returns
                True (may be a coroutine function)

        Returns:
            CommandOutcome; ``declined`` is set when confirmation was refused

        Raises:
            PlanRejectedError: If interpretation failed (no log is created)
        """
        self.history.add(command_text)

        plan = await self.interpret(command_text, platforms)

        errors = validate_plan(plan, self.retry_policy, self.orchestrator.registry)
        if errors:
            reason = "; ".join(errors)
            logger.warning(f"Rejected plan for command: {reason}")
            log = await self.orchestrator.reject(
                reason,
                self._trigger_data(command_text, platforms),
                self._options(command_text),
                plan=plan,
            )
            return CommandOutcome(command_text=command_text, plan=plan, log=log, error=reason)

        impact = await self.estimator.estimate(plan)

        approved = confirm(impact)
        if inspect.isawaitable(approved):
            approved = await approved
        if not approved:
            logger.info(f"Command declined at {impact.risk_level.value} risk")
            return CommandOutcome(command_text=command_text, plan=plan, impact=impact, declined=True)

        log = await self.orchestrator.execute(
            plan,
            self._trigger_data(command_text, platforms),
            self._options(command_text),
        )
        return CommandOutcome(
            command_text=command_text,
            plan=plan,
            impact=impact,
            log=log,
            error=log.error_message,
        )


@dataclass
class QueuedCommand:
    id: str
    command_text: str
    platform_targets: List[str] = field(default_factory=list)


@dataclass
class QueueResult:
    """Outcomes of a command queue, in queue order."""
    name: str
    outcomes: List[CommandOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.outcomes) - self.success_count


class CommandQueue:
    """
    Runs a named list of commands one at a time.

    Each command produces its own execution log. A failing command never
    stops the commands after it. When the queue is done a summary goes to
    the notification handler (the orchestrator's unless one is given).
    """

    def __init__(
        self,
        runner: CommandRunner,
        delay_seconds: Optional[float] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        notifications: Optional[NotificationHandler] = None,
    ):
        orchestrator = runner.orchestrator
        self.runner = runner
        self.delay_seconds = (
            delay_seconds if delay_seconds is not None else orchestrator.config.command_queue_delay_seconds
        )
        self.sleep = sleep or orchestrator.sleep
        self.notifications = notifications if notifications is not None else orchestrator.notifications

    async def run(self, name: str, commands: Sequence[QueuedCommand], confirm: ConfirmCallback) -> QueueResult:
        if not name or not name.strip():
            raise ValueError("Command queue needs a name")

        result = QueueResult(name=name)
        for i, command in enumerate(commands):
            if not command.command_text.strip():
                result.outcomes.append(CommandOutcome(command_text=command.command_text, error="Empty command text"))
            else:
                try:
                    outcome = await self.runner.run(command.command_text, command.platform_targets, confirm)
                except FinalizationError as e:
                    outcome = CommandOutcome(command_text=command.command_text, log=e.log, error=str(e))
                except Exception as e:
                    logger.warning(f"Queued command {command.id} failed: {e}")
                    outcome = CommandOutcome(command_text=command.command_text, error=error_message(e))
                result.outcomes.append(outcome)

            if i < len(commands) - 1:
                await self.sleep(self.delay_seconds)

        logger.info(f"Queue '{name}' done: {result.success_count} ok, {result.failure_count} failed")
        await self._announce(result)
        return result

    async def _announce(self, result: QueueResult) -> None:
        if self.notifications is None:
            return
        try:
            await self.notifications.notify_custom(
                title=f"Queue \"{result.name}\" completed",
                body=f"{result.success_count} succeeded, {result.failure_count} failed",
                queue_name=result.name,
            )
        except Exception as e:
            logger.error(f"Failed to send completion notice for queue '{result.name}': {e}")

"""
Stored automations: triggered runs and the test sandbox.
"""

import logging
from typing import Any, Dict, Optional

from .errors import AutomationNotFoundError
from .interfaces import ExecutionStore
from .orchestrator import CancellationToken, ExecutionOptions, ExecutionOrchestrator
from .types import Automation, ExecutionLog
from .validation import validate_plan

logger = logging.getLogger(__name__)


class AutomationRunner:
    """
    Runs automations through the orchestrator.

    Triggered runs skip impact estimation: the automation was reviewed when
    it was saved, and the trigger has already fired.

    Args:
        orchestrator: Orchestrator executing the plans
        store: Store the automations are loaded from
    """

    def __init__(self, orchestrator: ExecutionOrchestrator, store: ExecutionStore):
        self.orchestrator = orchestrator
        self.store = store

    def _options(
        self,
        automation: Automation,
        test_mode: bool,
        cancellation: Optional[CancellationToken] = None
    ) -> ExecutionOptions:
        return ExecutionOptions(
            test_mode=test_mode,
            retry_policy=automation.retry_policy,
            automation_id=automation.id,
            cancellation=cancellation,
        )

    async def _execute(
        self,
        automation: Automation,
        trigger_data: Optional[Dict[str, Any]],
        options: ExecutionOptions
    ) -> ExecutionLog:
        errors = validate_plan(automation.plan, automation.retry_policy, self.orchestrator.registry)
        if errors:
            logger.warning(f"Automation {automation.id} has an invalid plan: {errors}")
            return await self.orchestrator.reject("; ".join(errors), trigger_data, options, plan=automation.plan)
        return await self.orchestrator.execute(automation.plan, trigger_data, options)

    async def run_triggered(
        self,
        automation: Automation,
        trigger_data: Optional[Dict[str, Any]] = None,
        cancellation: Optional[CancellationToken] = None
    ) -> ExecutionLog:
        """
        Execute an automation because its trigger fired.

        Args:
            automation: Automation to run
            trigger_data: Payload of the trigger event
            cancellation: Optional stop request for this run

        Returns:
            The finalized ExecutionLog (a rejected, failed log if the
            automation is inactive or its plan is invalid)
        """
        options = self._options(automation, test_mode=False, cancellation=cancellation)
        if not automation.is_active:
            logger.info(f"Automation {automation.id} is inactive, not running")
            return await self.orchestrator.reject(
                f"Automation '{automation.name}' is inactive",
                trigger_data, options, plan=automation.plan,
            )

        logger.info(f"Running automation {automation.id} ({automation.name})")
        return await self._execute(automation, trigger_data, options)

    async def run_by_id(self, automation_id: str, trigger_data: Optional[Dict[str, Any]] = None) -> ExecutionLog:
        """Load an automation and run it as triggered."""
        return await self.run_triggered(await self._load(automation_id), trigger_data)

    async def run_test(self, automation_id: str, trigger_data: Optional[Dict[str, Any]] = None) -> ExecutionLog:
        """
        Test sandbox: run an automation in test mode and return the full log.

        The run is awaited directly (no queuing). Inactive automations can
        still be tested.

        Raises:
            AutomationNotFoundError: If no automation has this id
        """
        automation = await self._load(automation_id)
        logger.info(f"Testing automation {automation.id} with {len(trigger_data or {})} trigger field(s)")
        return await self._execute(automation, trigger_data, self._options(automation, test_mode=True))

    async def _load(self, automation_id: str) -> Automation:
        automation = await self.store.get_automation(automation_id)
        if automation is None:
            raise AutomationNotFoundError(f"Automation {automation_id} not found")
        return automation

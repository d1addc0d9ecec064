"""
Executor registry and the generic executors shipped with the pipeline.

Platform connectors (inventory, pricing, email...) live outside this package
and are registered per action type.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlparse

import requests

from .config import WEBHOOK_TIMEOUT_SECONDS, PipelineConfig
from .errors import ExecutorNotFoundError, NonRetryableActionError, RetryableActionError
from .interfaces import ActionExecutor, ExecutionContext, ExecutorPreview
from .types import ActionType

logger = logging.getLogger(__name__)


# ============================================================================
# Registry
# ============================================================================

class ExecutorRegistry:
    """Maps each action type to the executor that performs it."""

    def __init__(self, executors: Optional[Dict[ActionType, ActionExecutor]] = None):
        self._executors: Dict[ActionType, ActionExecutor] = {}
        for action_type, executor in (executors or {}).items():
            self.register(action_type, executor)

    def register(self, action_type: ActionType, executor: ActionExecutor) -> None:
        action_type = ActionType(action_type)
        if action_type == ActionType.CONDITIONAL_BRANCH:
            raise ValueError("conditional_branch is evaluated by the orchestrator and takes no executor")
        if action_type in self._executors:
            logger.info(f"Replacing executor for {action_type.value}")
        self._executors[action_type] = executor

    def get(self, action_type: ActionType) -> Optional[ActionExecutor]:
        return self._executors.get(ActionType(action_type))

    def require(self, action_type: ActionType) -> ActionExecutor:
        executor = self.get(action_type)
        if executor is None:
            raise ExecutorNotFoundError(f"No executor registered for action type: {ActionType(action_type).value}")
        return executor

    def types(self) -> List[ActionType]:
        return list(self._executors)

    def __contains__(self, action_type) -> bool:
        try:
            return ActionType(action_type) in self._executors
        except ValueError:
            return False

    @classmethod
    def with_defaults(cls, config: Optional[PipelineConfig] = None, **kwargs) -> "ExecutorRegistry":
        """Registry preloaded with the wait and webhook executors."""
        config = config or PipelineConfig()
        registry = cls(**kwargs)
        registry.register(ActionType.WAIT, WaitExecutor())
        registry.register(ActionType.WEBHOOK, WebhookExecutor(timeout=config.webhook_timeout_seconds))
        return registry


# ============================================================================
# Sandbox
# ============================================================================

class DryRunExecutor(ActionExecutor):
    """
    Non-committing stand-in for an executor during test-mode runs.

    Only the wrapped executor's read-only ``preview`` is consulted; its
    ``execute`` is never called.
    """

    def __init__(
        self,
        inner: ActionExecutor,
        validator: Optional[Callable[[Dict[str, Any]], None]] = None
    ):
        self.inner = inner
        self.validator = validator

    async def execute(self, params: Dict[str, Any], context: ExecutionContext) -> Any:
        if self.validator:
            self.validator(params)

        output: Dict[str, Any] = {
            "dry_run": True,
            "action_type": context.action_type,
            "parameters": params,
            "platform_targets": sorted(context.platform_targets),
        }
        try:
            preview = await self.inner.preview(params)
        except Exception as e:
            logger.warning(f"Preview failed for {context.action_id} during dry run: {e}")
            output["preview_error"] = str(e)
            preview = None

        if preview is None:
            output["count_estimate"] = None
            output["reversible"] = False
        else:
            output["count_estimate"] = preview.count_estimate
            output["reversible"] = preview.reversible
            if preview.description:
                output["description"] = preview.description
        return output

    async def preview(self, params: Dict[str, Any]) -> Optional[ExecutorPreview]:
        return await self.inner.preview(params)

    def sandbox(self) -> ActionExecutor:
        return self


# ============================================================================
# Wait
# ============================================================================

class WaitExecutor(ActionExecutor):
    """
    Pauses the execution for ``seconds`` (or ``minutes``/``hours``).

    The pause is an awaitable suspension, so other executions keep running.
    """

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._sleep = sleep

    @staticmethod
    def duration_seconds(params: Dict[str, Any]) -> float:
        try:
            seconds = float(params.get("seconds", 0))
            seconds += float(params.get("minutes", 0)) * 60
            seconds += float(params.get("hours", 0)) * 3600
        except (TypeError, ValueError):
            raise NonRetryableActionError(f"Invalid wait duration: {params}")
        if seconds < 0:
            raise NonRetryableActionError("Wait duration cannot be negative")
        return seconds

    async def execute(self, params: Dict[str, Any], context: ExecutionContext) -> Any:
        seconds = self.duration_seconds(params)
        await self._sleep(seconds)
        return {"waited_seconds": seconds}

    async def preview(self, params: Dict[str, Any]) -> Optional[ExecutorPreview]:
        return ExecutorPreview(count_estimate=0, reversible=True, description="Pause execution")

    def sandbox(self) -> ActionExecutor:
        return DryRunExecutor(self, validator=self.duration_seconds)


# ============================================================================
# Webhook
# ============================================================================

class WebhookExecutor(ActionExecutor):
    """
    Calls an external URL with a JSON payload.

    Parameters: ``url`` (required), ``method`` (default POST), ``headers``,
    ``payload``. Rate limits (429), server errors and transport failures are
    retryable; other 4xx responses are not.
    """

    def __init__(self, timeout: float = WEBHOOK_TIMEOUT_SECONDS, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session

    @staticmethod
    def validate(params: Dict[str, Any]) -> None:
        url = params.get("url")
        if not url or not isinstance(url, str):
            raise NonRetryableActionError("Webhook url is required")
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise NonRetryableActionError(f"Invalid webhook url: {url}")
        method = str(params.get("method", "POST")).upper()
        if method not in ("GET", "POST", "PUT", "PATCH", "DELETE"):
            raise NonRetryableActionError(f"Unsupported webhook method: {method}")

    def _send(self, method: str, url: str, headers: Dict[str, str], payload: Any) -> requests.Response:
        http = self.session or requests
        if method == "GET":
            return http.request(method, url, headers=headers, params=payload, timeout=self.timeout)
        return http.request(method, url, headers=headers, json=payload, timeout=self.timeout)

    async def execute(self, params: Dict[str, Any], context: ExecutionContext) -> Any:
        self.validate(params)
        url = params["url"]
        method = str(params.get("method", "POST")).upper()
        headers = {"Content-Type": "application/json", **(params.get("headers") or {})}
        headers.setdefault("X-Execution-Id", context.execution_id)
        payload = params.get("payload", {})

        try:
            response = await asyncio.to_thread(self._send, method, url, headers, payload)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise RetryableActionError(f"Webhook request failed: {e.__class__.__name__}", detail=str(e))
        except requests.RequestException as e:
            raise NonRetryableActionError(f"Webhook request rejected: {e}", detail=str(e))

        if response.status_code == 429 or response.status_code >= 500:
            raise RetryableActionError(
                f"Webhook returned {response.status_code}",
                detail=response.text[:500]
            )
        if response.status_code >= 400:
            raise NonRetryableActionError(
                f"Webhook returned {response.status_code}",
                detail=response.text[:500]
            )

        try:
            body = response.json()
        except ValueError:
            body = response.text[:2000]

        logger.debug(f"Webhook {method} {url} returned {response.status_code}")
        return {"status_code": response.status_code, "body": body}

    async def preview(self, params: Dict[str, Any]) -> Optional[ExecutorPreview]:
        return ExecutorPreview(count_estimate=1, reversible=False, description=f"Call {params.get('url')}")

    def sandbox(self) -> ActionExecutor:
        return DryRunExecutor(self, validator=self.validate)

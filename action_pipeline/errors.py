"""
Error taxonomy for the execution pipeline.

Plan-level problems are raised as exceptions. Action-level failures are
captured in ActionResult.error and the trace; the exception classes below
only carry the retryable/non-retryable classification through the
orchestrator.
"""

import asyncio
from typing import Iterable, List, Optional, Tuple, Type

import requests


class PipelineError(Exception):
    """Base class for all pipeline errors."""


# ============================================================================
# Plan-level errors
# ============================================================================

class PlanRejectedError(PipelineError):
    """The intent could not be turned into an executable plan."""


class PlanValidationError(PlanRejectedError):
    """The plan violates a structural invariant."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) if self.errors else "Invalid plan")


# ============================================================================
# Action-level errors
# ============================================================================

class ActionError(PipelineError):
    """
    Failure raised by an action executor.

    Args:
        message: Human-readable message shown in logs and the trace
        retryable: Whether the retry policy may try the action again
        detail: Optional debug detail kept out of the user-facing message
    """

    retryable = True

    def __init__(self, message: str, retryable: Optional[bool] = None, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable
        self.detail = detail


class RetryableActionError(ActionError):
    """Transient failure: rate limit, timeout, flaky network or API."""

    retryable = True


class NonRetryableActionError(ActionError):
    """Validation, permission or malformed-parameter failure."""

    retryable = False


class ActionTimeoutError(RetryableActionError):
    """The executor did not answer within the action timeout."""


class UpstreamBlockedError(NonRetryableActionError):
    """A dependency of the action failed, so the action was never run."""

    def __init__(self, upstream_id: str):
        super().__init__(f"Blocked by upstream failure: {upstream_id}")
        self.upstream_id = upstream_id


class ExecutorNotFoundError(NonRetryableActionError):
    """No executor is registered for the action type."""


# ============================================================================
# Orchestration / persistence errors
# ============================================================================

class PersistenceError(PipelineError):
    """The execution store rejected a read or write."""


class FinalizationError(PipelineError):
    """
    The execution log could not be finalized.

    Raised for a second finalization of the same log, or when persisting the
    finalized log kept failing. ``log`` holds the finalized record when there
    is one, so callers can still inspect it.
    """

    def __init__(self, message: str, log=None):
        super().__init__(message)
        self.log = log


class DuplicateCompletionError(PipelineError):
    """An execution log was reported to the statistics aggregator twice."""


class AutomationNotFoundError(PipelineError):
    """The requested automation does not exist in the store."""


# ============================================================================
# Classification
# ============================================================================

DEFAULT_RETRYABLE_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
    requests.ConnectionError,
    requests.Timeout,
)

DEFAULT_NON_RETRYABLE_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    ValueError,
    TypeError,
    KeyError,
    PermissionError,
)


class ErrorClassifier:
    """
    Decides whether a failure is retryable.

    ActionError instances carry their own flag. Other exceptions are matched
    against the configured exception types, checking retryable types first;
    anything unmatched falls back to ``default_retryable``.
    """

    def __init__(
        self,
        retryable: Iterable[Type[BaseException]] = DEFAULT_RETRYABLE_EXCEPTIONS,
        non_retryable: Iterable[Type[BaseException]] = DEFAULT_NON_RETRYABLE_EXCEPTIONS,
        default_retryable: bool = True,
    ):
        self.retryable = tuple(retryable)
        self.non_retryable = tuple(non_retryable)
        self.default_retryable = default_retryable

    def is_retryable(self, error: Optional[BaseException]) -> bool:
        if error is None:
            return self.default_retryable
        if isinstance(error, ActionError):
            return bool(error.retryable)
        if self.retryable and isinstance(error, self.retryable):
            return True
        if self.non_retryable and isinstance(error, self.non_retryable):
            return False
        return self.default_retryable


def error_message(error: BaseException) -> str:
    """Human-readable message for an exception, never empty."""
    if isinstance(error, ActionError):
        return error.message
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)) and not str(error):
        return "Action timed out"
    text = str(error)
    return text if text else error.__class__.__name__

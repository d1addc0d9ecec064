"""
Retry/backoff policy engine.

Pure functions from a RetryPolicy and a retry number to a delay or a
decision. Attempts are 1-indexed retry numbers: attempt 1 is the first
retry after the initial failed execution, so an action runs at most
``max_retries + 1`` times.
"""

from enum import Enum
from typing import List, Optional

from .errors import ErrorClassifier
from .types import RetryPolicy, RetryStrategy

_DEFAULT_CLASSIFIER = ErrorClassifier()


class RetryDecision(str, Enum):
    """What the orchestrator should do after a failed attempt."""
    RETRY = "retry"
    FALLBACK = "fallback"
    GIVE_UP = "give_up"


def next_delay(policy: RetryPolicy, attempt: int) -> float:
    """
    Delay in seconds before retry number ``attempt``.

    - immediate: 0
    - linear_backoff: base_delay_seconds * attempt
    - exponential_backoff: base_delay_seconds * 2^(attempt-1)
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")

    if policy.strategy == RetryStrategy.IMMEDIATE:
        return 0.0
    if policy.strategy == RetryStrategy.LINEAR_BACKOFF:
        return float(policy.base_delay_seconds * attempt)
    return float(policy.base_delay_seconds * 2 ** (attempt - 1))


def should_retry(
    policy: RetryPolicy,
    attempt: int,
    error: Optional[BaseException],
    classifier: Optional[ErrorClassifier] = None
) -> bool:
    """
    True iff retry number ``attempt`` is within budget and the error is retryable.

    Non-retryable errors never retry, whatever budget is left.
    """
    if not policy.enabled:
        return False
    if attempt > policy.max_retries:
        return False
    return (classifier or _DEFAULT_CLASSIFIER).is_retryable(error)


def decide(
    policy: RetryPolicy,
    attempt: int,
    error: Optional[BaseException],
    classifier: Optional[ErrorClassifier] = None,
    is_fallback: bool = False
) -> RetryDecision:
    """
    Decide what follows a failed attempt.

    Args:
        policy: Retry policy in effect
        attempt: Retry number that would run next (1 after the first failure)
        error: The failure
        classifier: Retryable/non-retryable classification
        is_fallback: Fallback actions are never retried and never chain

    Returns:
        RETRY, FALLBACK (budget exhausted and a fallback is configured) or GIVE_UP
    """
    if is_fallback:
        return RetryDecision.GIVE_UP
    if should_retry(policy, attempt, error, classifier):
        return RetryDecision.RETRY
    if policy.enabled and policy.fallback_action_id:
        return RetryDecision.FALLBACK
    return RetryDecision.GIVE_UP


def delay_schedule(policy: RetryPolicy) -> List[float]:
    """Delays for every retry the policy allows, e.g. [60, 120, 240]."""
    return [next_delay(policy, attempt) for attempt in range(1, policy.max_retries + 1)]


def total_worst_case_wait(policy: RetryPolicy) -> float:
    """Total seconds spent waiting if every retry fails."""
    return sum(delay_schedule(policy))


def max_executions(policy: RetryPolicy) -> int:
    """Upper bound on how often one action runs under the policy."""
    return policy.max_retries + 1 if policy.enabled else 1

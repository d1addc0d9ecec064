"""
Structural validation of action plans.

Validation collects every problem it finds instead of stopping at the first,
so a rejected plan can be reported in full.
"""

import logging
from typing import Dict, List, Mapping, Optional

from .errors import PlanValidationError
from .types import ActionPlan, ActionSpec, ActionType, RetryPolicy

logger = logging.getLogger(__name__)


def _check_order(actions: List[ActionSpec]) -> List[str]:
    errors = []
    previous: Optional[int] = None
    for action in actions:
        if isinstance(action.order, bool) or not isinstance(action.order, int):
            errors.append(f"Action '{action.id}' has a non-integer order: {action.order!r}")
            continue
        if previous is not None and action.order <= previous:
            errors.append(
                f"Action '{action.id}' has order {action.order}, "
                f"orders must be unique and strictly increasing (previous: {previous})"
            )
        previous = action.order
    return errors


def _check_ids(actions: List[ActionSpec]) -> List[str]:
    errors = []
    seen = set()
    for i, action in enumerate(actions):
        if not action.id or not str(action.id).strip():
            errors.append(f"Action at position {i} has no id")
            continue
        if action.id in seen:
            errors.append(f"Duplicate action id: '{action.id}'")
        seen.add(action.id)
    return errors


def _check_dependencies(actions: List[ActionSpec], positions: Dict[str, int]) -> List[str]:
    errors = []
    for i, action in enumerate(actions):
        for dep in action.depends_on:
            if dep == action.id:
                errors.append(f"Action '{action.id}' depends on itself")
            elif dep not in positions:
                errors.append(f"Action '{action.id}' depends on unknown action '{dep}'")
            elif positions[dep] > i:
                errors.append(f"Action '{action.id}' depends on later action '{dep}'")
    return errors


def _check_branches(actions: List[ActionSpec], positions: Dict[str, int]) -> List[str]:
    errors = []
    for i, action in enumerate(actions):
        if action.type != ActionType.CONDITIONAL_BRANCH:
            continue
        if not isinstance(action.parameters.get("condition"), dict):
            errors.append(f"Branch '{action.id}' requires a 'condition' object")
        skip_to = action.parameters.get("skip_to")
        if skip_to is None:
            continue
        if skip_to not in positions:
            errors.append(f"Branch '{action.id}' skips to unknown action '{skip_to}'")
        elif positions[skip_to] <= i:
            errors.append(f"Branch '{action.id}' can only skip forward, '{skip_to}' is not after it")
    return errors


def validate_plan(plan: ActionPlan, policy: Optional[RetryPolicy] = None, registry=None) -> List[str]:
    """
    Check a plan for structural problems.

    Args:
        plan: Plan to check (actions in their declared sequence)
        policy: Retry policy the plan will run under, if any
        registry: Optional ExecutorRegistry; when given, every non-branch
            action type must have an executor

    Returns:
        List of error messages, empty when the plan is valid
    """
    actions = list(plan.actions)
    errors: List[str] = []

    errors.extend(_check_ids(actions))
    errors.extend(_check_order(actions))

    positions = {a.id: i for i, a in enumerate(actions) if a.id}
    errors.extend(_check_dependencies(actions, positions))
    errors.extend(_check_branches(actions, positions))

    for action in actions:
        if not isinstance(action.parameters, Mapping):
            errors.append(f"Action '{action.id}' parameters must be an object")

    if policy is not None and policy.fallback_action_id:
        fallback = plan.get(policy.fallback_action_id)
        if fallback is None:
            errors.append(f"Fallback action '{policy.fallback_action_id}' is not part of the plan")
        elif fallback.type == ActionType.CONDITIONAL_BRANCH:
            errors.append("A conditional branch cannot be used as the fallback action")
        else:
            for action in actions:
                if fallback.id in action.depends_on:
                    errors.append(
                        f"Action '{action.id}' depends on fallback action '{fallback.id}', "
                        f"which only runs after another action fails"
                    )

    if registry is not None:
        for action in actions:
            if action.type != ActionType.CONDITIONAL_BRANCH and action.type not in registry:
                errors.append(f"No executor registered for action type '{action.type.value}' (action '{action.id}')")

    if errors:
        logger.info(f"Plan validation found {len(errors)} problem(s)")
    return errors


def ensure_valid_plan(plan: ActionPlan, policy: Optional[RetryPolicy] = None, registry=None) -> None:
    """Raise PlanValidationError if the plan is invalid."""
    errors = validate_plan(plan, policy, registry)
    if errors:
        raise PlanValidationError(errors)

"""
Predicate evaluation for conditional_branch actions.
"""

import logging
from typing import Any, Dict

from .templates import get_nested_value, resolve_template

logger = logging.getLogger(__name__)

# Word operators used by stored command filters, mapped to symbolic ones
OPERATOR_ALIASES = {
    'eq': '==',
    'equals': '==',
    'neq': '!=',
    'not_equals': '!=',
    'greater_than': '>',
    'less_than': '<',
    'greater_than_or_equal': '>=',
    'less_than_or_equal': '<=',
}


def compare_values(actual: Any, op: str, expected: Any) -> bool:
    """
    Compare two values using the specified operator.

    Supported operators:
    - Comparison: <, >, <=, >=, ==, != (and the word aliases in OPERATOR_ALIASES)
    - String: contains, not_contains, starts_with, ends_with (case-insensitive)
    - Existence: exists, not_exists
    """
    op = OPERATOR_ALIASES.get(op, op)

    if op == 'exists':
        return actual is not None
    if op == 'not_exists':
        return actual is None

    if actual is None:
        return False

    if op in ('<', '>', '<=', '>='):
        try:
            actual = float(actual)
            expected = float(expected)
        except (TypeError, ValueError):
            logger.warning(f"Cannot compare non-numeric values: {actual} {op} {expected}")
            return False
        if op == '<':
            return actual < expected
        if op == '>':
            return actual > expected
        if op == '<=':
            return actual <= expected
        return actual >= expected

    if op == '==':
        return actual == expected
    if op == '!=':
        return actual != expected

    if op == 'contains':
        return str(expected).lower() in str(actual).lower()
    if op == 'not_contains':
        return str(expected).lower() not in str(actual).lower()
    if op == 'starts_with':
        return str(actual).lower().startswith(str(expected).lower())
    if op == 'ends_with':
        return str(actual).lower().endswith(str(expected).lower())

    logger.warning(f"Unknown comparison operator: {op}")
    return False


def _coerce_number(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return float(value) if '.' in value else int(value)
    except ValueError:
        return value


def evaluate_clause(clause: Dict[str, Any], context: Dict[str, Any]) -> bool:
    """
    Evaluate a single clause.

    Clause format:
    {"path": "inventory.quantity", "op": "<", "value": 10}
    """
    path = clause.get('path', '')
    op = clause.get('op', '==')
    expected = clause.get('value')

    if isinstance(expected, str):
        expected = _coerce_number(resolve_template(expected, context))

    actual = get_nested_value(context, path)

    return compare_values(actual, op, expected)


def evaluate_condition(condition: Dict[str, Any], context: Dict[str, Any]) -> bool:
    """
    Evaluate a structured condition against the execution context.

    Condition formats:

    1. Single clause:
       {"path": "order.total", "op": ">", "value": 100}

    2. Multi-clause with operator:
       {
           "operator": "OR",
           "clauses": [
               {"path": "product.stock", "op": "<", "value": 5},
               {"path": "product.status", "op": "==", "value": "draft"}
           ]
       }

    An empty condition passes.

    Args:
        condition: Condition dict
        context: Execution context with trigger data and action outputs

    Returns:
        True if condition passes, False otherwise
    """
    if not condition:
        return True

    if 'path' in condition:
        return evaluate_clause(condition, context)

    operator = str(condition.get('operator', 'AND')).upper()
    clauses = condition.get('clauses', [])

    if not clauses:
        return True

    if operator == 'AND':
        return all(evaluate_clause(c, context) for c in clauses)
    if operator == 'OR':
        return any(evaluate_clause(c, context) for c in clauses)

    logger.warning(f"Unknown logical operator: {operator}")
    return False

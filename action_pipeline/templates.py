"""
Template resolution for action parameters.

Parameters can reference trigger data and the output of earlier actions:
``{{sku}}``, ``{{trigger_data.order.id}}``, ``{{fetch_products.items[0].id}}``.
"""

import json
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

logger = logging.getLogger(__name__)

# Substituted when a reference cannot be resolved
MISSING_VALUE = "[No available data]"

TEMPLATE_PATTERN = re.compile(r'\{\{([^}]+)\}\}')
_FULL_TEMPLATE = re.compile(r'^\s*\{\{([^}]+)\}\}\s*$')


def get_nested_value(data: Any, path: str) -> Any:
    """
    Get a nested value from a dict/list using dot notation.
    Supports array indexing: 'items[0].price' or 'items.0.price', and
    negative indexes ('items.-1').

    Examples:
        get_nested_value({'a': {'b': 1}}, 'a.b') -> 1
        get_nested_value({'items': [{'price': 7}]}, 'items[0].price') -> 7
        get_nested_value({'items': [1, 2, 3]}, 'items.-1') -> 3
    """
    if data is None or not path:
        return None

    path = re.sub(r'\[(-?\d+)\]', r'.\1', path)

    current = data
    for part in path.split('.'):
        if current is None:
            return None
        if isinstance(current, list):
            try:
                idx = int(part)
            except ValueError:
                return None
            if -len(current) <= idx < len(current):
                current = current[idx]
            else:
                return None
        elif isinstance(current, dict):
            current = current.get(part)
        else:
            return None

    return current


def _builtin_value(name: str) -> Any:
    now = datetime.now(timezone.utc)
    today = now.date()
    if name == 'now':
        return now.strftime('%Y-%m-%dT%H:%M:%SZ')
    if name == 'today':
        return today.isoformat()
    if name == 'yesterday':
        return (today - timedelta(days=1)).isoformat()
    if name == 'tomorrow':
        return (today + timedelta(days=1)).isoformat()
    return None


def lookup(var_path: str, context: Dict[str, Any]) -> Any:
    """Resolve a single reference against built-ins then the context."""
    var_path = var_path.strip()
    value = get_nested_value(context, var_path)
    if value is None:
        value = _builtin_value(var_path)
    return value


def resolve_template(template: Any, context: Dict[str, Any]) -> Any:
    """
    Resolve {{variable}} placeholders in a template string.

    A string that is exactly one placeholder resolves to the referenced value
    with its type intact (so ``"{{product.price}}"`` stays a number).
    Placeholders embedded in text are rendered as strings, with dicts and
    lists rendered as JSON.

    Built-in variables (UTC): {{now}}, {{today}}, {{yesterday}}, {{tomorrow}}.

    Args:
        template: Value that may contain {{variable}} placeholders
        context: Dict containing variable values

    Returns:
        Resolved value; non-string input is returned unchanged
    """
    if not isinstance(template, str):
        return template

    full = _FULL_TEMPLATE.match(template)
    if full:
        value = lookup(full.group(1), context)
        if value is None:
            logger.warning(f"Template variable not found: {full.group(1).strip()}")
            return MISSING_VALUE
        return value

    def replace_var(match):
        var_path = match.group(1).strip()
        value = lookup(var_path, context)

        if value is None:
            logger.warning(f"Template variable not found: {var_path}")
            return MISSING_VALUE

        if isinstance(value, (dict, list)):
            return json.dumps(value, default=str)

        return str(value)

    return TEMPLATE_PATTERN.sub(replace_var, template)


def resolve_parameters(params: Dict[str, Any], context: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively resolve all template variables in a parameters dict."""
    resolved = {}

    for key, value in params.items():
        resolved[key] = _resolve_value(value, context)

    return resolved


def _resolve_value(value: Any, context: Dict[str, Any]) -> Any:
    if isinstance(value, str):
        return resolve_template(value, context)
    if isinstance(value, dict):
        return resolve_parameters(value, context)
    if isinstance(value, list):
        return [_resolve_value(item, context) for item in value]
    return value


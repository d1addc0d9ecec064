"""
Logging helpers for pipeline components.
"""

import json
import logging
from typing import Any, Dict, MutableMapping, Tuple


class ComponentLogger(logging.LoggerAdapter):
    """Prefixes every message with the component name, e.g. ``[Orchestrator] ...``."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['component']}] {msg}", kwargs


def get_component_logger(component: str, name: str) -> ComponentLogger:
    """
    Get a logger for a pipeline component.

    Args:
        component: Human-readable component name used as message prefix
        name: Logger name, normally the calling module's ``__name__``

    Returns:
        LoggerAdapter bound to the component
    """
    return ComponentLogger(logging.getLogger(name), {"component": component})


def log_pipeline_event(logger: logging.LoggerAdapter, event: str, level: int = logging.INFO, **details: Any) -> None:
    """
    Log a structured lifecycle event (execution started, action retried, ...).

    Details are rendered as compact JSON after the event name so log lines
    stay greppable by event.
    """
    payload: Dict[str, Any] = {k: v for k, v in details.items() if v is not None}
    if payload:
        logger.log(level, f"{event} {json.dumps(payload, default=str, sort_keys=True)}")
    else:
        logger.log(level, event)

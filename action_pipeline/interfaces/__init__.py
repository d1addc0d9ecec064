"""
Abstract interfaces for the pipeline's external collaborators.
"""

from .executor import ActionExecutor, ExecutorPreview, ExecutionContext
from .interpreter import IntentInterpreter
from .notifications import NotificationHandler
from .observers import ExecutionObserver
from .store import ExecutionStore

__all__ = [
    'ActionExecutor',
    'ExecutorPreview',
    'ExecutionContext',
    'IntentInterpreter',
    'NotificationHandler',
    'ExecutionObserver',
    'ExecutionStore',
]

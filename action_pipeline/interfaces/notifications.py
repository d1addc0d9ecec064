"""
Notification handler interface for alerts and status messages.
"""

from abc import ABC, abstractmethod
from typing import Optional


class NotificationHandler(ABC):
    """
    Abstract interface for sending notifications.

    Used when:
    - An action fails for good and its policy asks for an alert
    - An execution finishes in a failed or partially failed state
    - A command queue has run all of its commands

    Delivery is fire-and-forget: callers log and ignore any exception
    raised here.
    """

    @abstractmethod
    async def notify_action_failed(
        self,
        execution_id: str,
        action_id: str,
        error: str,
        automation_id: Optional[str] = None,
        attempts: int = 1
    ) -> None:
        """
        Notify that an action failed after its retries were exhausted.

        Args:
            execution_id: Execution log ID
            action_id: Failed action
            error: Human-readable error message
            automation_id: Owning automation, None for ad-hoc commands
            attempts: Number of times the action ran
        """
        pass

    @abstractmethod
    async def notify_execution_finished(
        self,
        execution_id: str,
        status: str,
        automation_id: Optional[str] = None,
        error_summary: Optional[str] = None
    ) -> None:
        """
        Notify that an execution ended in a non-success state.

        Args:
            execution_id: Execution log ID
            status: Terminal status value
            automation_id: Owning automation, None for ad-hoc commands
            error_summary: Optional error description
        """
        pass

    @abstractmethod
    async def notify_custom(
        self,
        title: str,
        body: str,
        **kwargs
    ) -> None:
        """
        Send a free-form notification (e.g. a command queue finished).

        Args:
            title: Notification title
            body: Notification body
            **kwargs: Provider-specific parameters (priority, channel, etc.)
        """
        pass

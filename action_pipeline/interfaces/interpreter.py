"""
Intent interpreter interface.
"""

from abc import ABC, abstractmethod
from typing import List

from ..types import ActionPlan


class IntentInterpreter(ABC):
    """
    Turns a natural-language command into a structured action plan.

    The interpreter runs once, before orchestration. Any exception it raises
    is surfaced to the caller as a rejected plan; no execution log is created.
    """

    @abstractmethod
    async def interpret(self, command_text: str, available_platforms: List[str]) -> ActionPlan:
        """
        Interpret a command.

        Args:
            command_text: Command as typed by the user
            available_platforms: Platform identifiers the user has connected

        Returns:
            ActionPlan for the command
        """
        pass

"""Observer interfaces for scheduler events."""

from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Any


class SchedulerEvent(Enum):
    """Events emitted by the scheduler during a task's lifecycle."""

    TASK_STARTED = auto()
    TASK_RETRYING = auto()
    RATE_LIMIT_HIT = auto()
    TASK_SUCCEEDED = auto()
    TASK_FAILED = auto()


class SchedulerObserver(ABC):
    """Receives scheduler events. Errors raised here are logged and ignored."""

    @abstractmethod
    async def on_event(self, event: SchedulerEvent, data: dict[str, Any]) -> None:
        """
        Handle a scheduler event.

        Args:
            event: Which event occurred
            data: Event payload (always contains ``task_id`` and ``priority``)
        """
        pass


class BaseObserver(SchedulerObserver):
    """No-op observer to subclass when only some events matter."""

    async def on_event(self, event: SchedulerEvent, data: dict[str, Any]) -> None:
        pass

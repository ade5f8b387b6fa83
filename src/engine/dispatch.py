"""
Notification dispatchers.

The orchestrator hands every AutoAction of a result to a dispatcher once
scoring and persistence are done. Delivery (email, push, ticketing) lives
behind this interface.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Sequence, Tuple

from src.core.schema import ActionKind, AutoAction

logger = logging.getLogger(__name__)


class ActionDispatcher(ABC):

    @abstractmethod
    def dispatch(self, agent_id: str, actions: Sequence[AutoAction]) -> None:
        """Deliver actions for one scored event."""


class LoggingDispatcher(ActionDispatcher):
    """Writes each action to the log. Default when nothing else is wired in."""

    def dispatch(self, agent_id: str, actions: Sequence[AutoAction]) -> None:
        for action in actions:
            if action.action == ActionKind.LOG_INCIDENT:
                logger.info(f"[{agent_id}] {action.action.value}: {action.reason}")
            else:
                logger.warning(f"⚠️  [{agent_id}] {action.action.value}: {action.reason}")


class InMemoryDispatcher(ActionDispatcher):
    """Collects dispatched actions; used by tests and embedders."""

    def __init__(self):
        self._lock = threading.Lock()
        self.dispatched: List[Tuple[str, AutoAction]] = []

    def dispatch(self, agent_id: str, actions: Sequence[AutoAction]) -> None:
        with self._lock:
            self.dispatched.extend((agent_id, a) for a in actions)

    def actions_for(self, agent_id: str) -> List[AutoAction]:
        with self._lock:
            return [a for aid, a in self.dispatched if aid == agent_id]

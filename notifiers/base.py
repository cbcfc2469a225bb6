# notifiers/base.py
"""
notifiers/base.py
-----------------
The port the core emits lifecycle events through, and the single-method
interface every delivery backend implements.
"""
from __future__ import annotations
from abc import ABC, abstractmethod

from models.events import Event

class NotificationPort(ABC):
    """Best-effort sink for lifecycle events; must never raise into the core."""

    @abstractmethod
    def notify(self, event: Event) -> None:
        raise NotImplementedError


class BaseNotifier(ABC):
    """Every concrete backend must implement send()."""

    @abstractmethod
    async def send(self, text: str) -> None:
        """Deliver one message; raise on failure so the bus can retry."""
        raise NotImplementedError

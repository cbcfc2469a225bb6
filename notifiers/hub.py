"""
notifiers/hub.py
----------------
Fan-out layer that owns the delivery backends and exposes the core's
NotificationPort.  Events are formatted and queued on an EventBus so a
slow or failing chat API never blocks a state transition.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from models.events import Event, EventType
from notifiers.base import BaseNotifier, NotificationPort
from notifiers.formatting import format_event
from utils.event_bus import EventBus


class NotifierHub(NotificationPort):
    """Collects active back-ends based on config and broadcasts events."""

    def __init__(
        self,
        cfg: Dict,
        bus: Optional[EventBus] = None,
        backends: Optional[List[BaseNotifier]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.bus = bus or EventBus(
            max_retries=int(cfg.get("NOTIFY_RETRIES", 3)),
            delay_between=float(cfg.get("NOTIFY_DELAY", 1.0)),
            logger=self.logger,
        )

        if backends is not None:
            self.backends: List[BaseNotifier] = list(backends)
        else:
            self.backends = []
            tg_cfg = cfg.get("TELEGRAM", {}) or {}
            if tg_cfg.get("token") and tg_cfg.get("chat_id"):
                from notifiers.telegram import TelegramNotifier

                self.backends.append(
                    TelegramNotifier(token=tg_cfg["token"], chat_id=tg_cfg["chat_id"])
                )
            else:
                self.logger.info("Telegram disabled – TELEGRAM_TOKEN/TELEGRAM_CHAT_ID missing")

        for event_type in EventType:
            for backend in self.backends:
                self.bus.subscribe(event_type.value, self._handler_for(backend))

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def notify(self, event: Event) -> None:
        """Queue an event for delivery; never raises into the caller."""
        try:
            self.logger.info("Event %s %s", event.type.value, event.instrument or "")
            if self.backends:
                self.bus.publish(event.type.value, event)
        except Exception:  # noqa: BLE001 (notifications are best effort)
            self.logger.exception("Failed to queue %s event", event.type.value)

    async def flush(self) -> None:
        await self.bus.drain()

    async def close(self) -> None:
        await self.bus.close(flush=True)
        for backend in self.backends:
            closer = getattr(backend, "close", None)
            if closer is not None:
                await closer()

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    @staticmethod
    def _handler_for(backend: BaseNotifier):
        async def handle(event: Event) -> None:
            await backend.send(format_event(event))

        return handle

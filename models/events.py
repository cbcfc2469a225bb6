# --------------------------------------------------------------------
# models/events.py
# Lifecycle events emitted by the core towards the notification port.
# --------------------------------------------------------------------
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class EventType(str, Enum):
    ANOMALY_DETECTED = "anomaly_detected"
    WATCHLIST_ARMED = "watchlist_armed"
    WATCHLIST_CANCELLED = "watchlist_cancelled"
    WATCHLIST_TIMED_OUT = "watchlist_timed_out"
    TRADE_OPENED = "trade_opened"
    TRADE_BREAKEVEN = "trade_breakeven"
    TRADE_CLOSED = "trade_closed"
    PERIODIC_STATUS = "periodic_status"


@dataclass
class Event:
    type: EventType
    instrument: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

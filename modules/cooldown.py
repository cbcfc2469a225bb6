"""
cooldown.py
-----------
Per-instrument suppression window after an anomaly decision.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional


class CooldownTracker:
    """Remembers when each instrument was last decided on."""

    def __init__(self, window_seconds: float, clock: Callable[[], float] = time.time) -> None:
        self.window_seconds = float(window_seconds)
        self.clock = clock
        self._triggered: Dict[str, float] = {}

    def register(self, instrument: str, at: Optional[float] = None) -> None:
        self._triggered[instrument] = self.clock() if at is None else at

    def is_active(self, instrument: str, now: Optional[float] = None) -> bool:
        triggered_at = self._triggered.get(instrument)
        if triggered_at is None:
            return False
        now = self.clock() if now is None else now
        return now - triggered_at < self.window_seconds

    def remaining(self, instrument: str, now: Optional[float] = None) -> float:
        triggered_at = self._triggered.get(instrument)
        if triggered_at is None:
            return 0.0
        now = self.clock() if now is None else now
        return max(0.0, triggered_at + self.window_seconds - now)

    def purge_expired(self, now: Optional[float] = None) -> int:
        now = self.clock() if now is None else now
        expired = [s for s, t in self._triggered.items() if now - t >= self.window_seconds]
        for symbol in expired:
            del self._triggered[symbol]
        return len(expired)

    def __len__(self) -> int:
        return len(self._triggered)

    def __contains__(self, instrument: str) -> bool:
        return self.is_active(instrument)

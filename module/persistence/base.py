"""
persistence/base.py
-------------------
Port for durable snapshots of the core state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List

from models.anomaly import WatchlistEntry
from models.trade import Trade


@dataclass
class PersistedState:
    trades: List[Trade] = field(default_factory=list)
    watchlist: List[WatchlistEntry] = field(default_factory=list)
    history: List[Trade] = field(default_factory=list)
    leads: List[Dict[str, Any]] = field(default_factory=list)
    statistics: Dict[str, Any] = field(default_factory=dict)


class PersistencePort(ABC):
    """Whole-snapshot load/save; the last writer wins."""

    @abstractmethod
    def load_state(self) -> PersistedState:
        raise NotImplementedError

    @abstractmethod
    def save_state(self, state: PersistedState) -> bool:
        """Write every document; returns False (after logging) on I/O failure."""
        raise NotImplementedError


class MemoryPersistence(PersistencePort):
    """Keeps the last snapshot in memory; used for dry runs and tests."""

    def __init__(self, state: PersistedState | None = None) -> None:
        self.state = state or PersistedState()
        self.saves = 0

    def load_state(self) -> PersistedState:
        return self.state

    def save_state(self, state: PersistedState) -> bool:
        self.state = state
        self.saves += 1
        return True

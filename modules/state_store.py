"""
state_store.py
--------------
In-memory source of truth for watchlist entries, open trades, closed
trade history and permanently excluded instruments.

Every instrument is in exactly one of: free, watchlisted, traded.  The
store refuses any insert that would break that rule, so components never
touch the underlying dicts directly.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Set

from models.anomaly import WatchlistEntry
from models.trade import Trade

logger = logging.getLogger(__name__)


class InstrumentBusyError(ValueError):
    """Raised on an insert for an instrument that is already watchlisted or traded."""


class StateStore:
    def __init__(self) -> None:
        self._watchlist: Dict[str, WatchlistEntry] = {}  # insertion ordered
        self._trades: Dict[str, Trade] = {}
        self._history: List[Trade] = []
        self._excluded: Set[str] = set()

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    def is_watchlisted(self, instrument: str) -> bool:
        return instrument in self._watchlist

    def is_traded(self, instrument: str) -> bool:
        return instrument in self._trades

    def is_busy(self, instrument: str) -> bool:
        return instrument in self._watchlist or instrument in self._trades

    def is_excluded(self, instrument: str) -> bool:
        return instrument in self._excluded

    def get_entry(self, instrument: str) -> Optional[WatchlistEntry]:
        return self._watchlist.get(instrument)

    def get_trade(self, instrument: str) -> Optional[Trade]:
        return self._trades.get(instrument)

    def watchlist(self) -> List[WatchlistEntry]:
        return list(self._watchlist.values())

    def trades(self) -> List[Trade]:
        return list(self._trades.values())

    def history(self) -> List[Trade]:
        return list(self._history)

    @property
    def excluded(self) -> Set[str]:
        return set(self._excluded)

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #
    def add_entry(self, entry: WatchlistEntry) -> None:
        if self.is_busy(entry.instrument):
            raise InstrumentBusyError(f"{entry.instrument} is already watchlisted or traded")
        self._watchlist[entry.instrument] = entry

    def remove_entry(self, instrument: str) -> Optional[WatchlistEntry]:
        return self._watchlist.pop(instrument, None)

    def add_trade(self, trade: Trade) -> None:
        if self.is_busy(trade.instrument):
            raise InstrumentBusyError(f"{trade.instrument} is already watchlisted or traded")
        self._trades[trade.instrument] = trade

    def promote(self, trade: Trade) -> Optional[WatchlistEntry]:
        """Replace the instrument's watchlist entry with ``trade`` in one step."""
        if trade.instrument in self._trades:
            raise InstrumentBusyError(f"{trade.instrument} already has an open trade")
        entry = self._watchlist.pop(trade.instrument, None)
        self._trades[trade.instrument] = trade
        return entry

    def close_trade(self, instrument: str) -> Optional[Trade]:
        """Move a trade to the history, which is never trimmed (trading statistics span all of it)."""
        trade = self._trades.pop(instrument, None)
        if trade is not None:
            self._history.append(trade)
        return trade

    def exclude(self, instrument: str) -> None:
        self._excluded.add(instrument)
        self._watchlist.pop(instrument, None)

    # ------------------------------------------------------------------ #
    # Restore
    # ------------------------------------------------------------------ #
    def restore(self, trades: Iterable[Trade], watchlist: Iterable[WatchlistEntry],
                history: Iterable[Trade]) -> None:
        """Load persisted state; conflicting records are dropped, trades win."""
        self._trades.clear()
        self._watchlist.clear()
        self._history = list(history)
        for trade in trades:
            if trade.instrument in self._trades:
                logger.warning("Dropping duplicate persisted trade for %s", trade.instrument)
                continue
            self._trades[trade.instrument] = trade
        for entry in watchlist:
            if self.is_busy(entry.instrument):
                logger.warning("Dropping persisted watchlist entry for %s (already active)",
                               entry.instrument)
                continue
            self._watchlist[entry.instrument] = entry

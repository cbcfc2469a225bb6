"""
watchlist.py
------------
Confirmation process between an anomaly and a trade.

    Consolidating --(anomaly candle range ok)--> Armed --(entry level crossed)--> Entered
          |                                        |--(cancel level crossed)--> Cancelled
          +--(range too wide)--> Cancelled         +--(no decision in time)---> TimedOut

Terminal states remove the entry from the store.  Every transition emits
one event and every terminal outcome records one lead.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from models.anomaly import AnomalyRecord, Direction, WatchlistEntry, WatchlistState
from models.events import Event, EventType
from modules.market_data import MarketDataPort, TransientFetchError, UnknownInstrumentError
from modules.state_store import StateStore
from modules.statistics import SignalStatistics
from modules.trade_tracker import TradeTracker
from notifiers.base import NotificationPort
from utils.config_manager import ConfigManager


class WatchlistStateMachine:
    def __init__(
        self,
        store: StateStore,
        market_data: MarketDataPort,
        trade_tracker: TradeTracker,
        notifier: NotificationPort,
        statistics: SignalStatistics,
        config: Dict,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.market_data = market_data
        self.trade_tracker = trade_tracker
        self.notifier = notifier
        self.statistics = statistics
        self.config = ConfigManager(config)
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.clock = clock

        self.timeframe = self.config.get_timeframe()
        self.consolidation_threshold = self.config.get_float("CONSOLIDATION_THRESHOLD")
        self.entry_level_percent = self.config.get_float("ENTRY_LEVEL_PERCENT")
        self.cancel_level_percent = self.config.get_float("CANCEL_LEVEL_PERCENT")
        self.timeout_seconds = (
            self.config.get_int("ENTRY_CONFIRMATION_TFS") * self.config.get_cycle_seconds()
        )
        self.batch_size = max(1, self.config.get_int("WATCHLIST_BATCH_SIZE"))
        self.batch_delay = self.config.get_float("WATCHLIST_BATCH_DELAY")

    # ------------------------------------------------------------------ #
    # Intake
    # ------------------------------------------------------------------ #
    def accept(self, record: AnomalyRecord) -> Optional[WatchlistEntry]:
        """Put a fresh anomaly on the watchlist in the Consolidating state."""
        if self.store.is_busy(record.instrument):
            self.logger.info("%s already active, anomaly %s ignored", record.instrument, record.id)
            return None
        entry = WatchlistEntry.from_record(record)
        self.store.add_entry(entry)
        self.logger.info("👀 %s added to watchlist (%s, %.2fx)",
                         entry.instrument, entry.direction.value, entry.volume_leverage)
        self._emit(EventType.ANOMALY_DETECTED, entry)
        return entry

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #
    def consolidation_range(self, entry: WatchlistEntry) -> Optional[float]:
        if entry.anomaly_high is None or not entry.anomaly_low:
            return None
        return (entry.anomaly_high - entry.anomaly_low) / entry.anomaly_low

    def levels(self, direction: Direction, close_price: float) -> Tuple[float, float]:
        """(entry_level, cancel_level) around ``close_price``."""
        sign = direction.sign
        entry_level = close_price * (1 + sign * self.entry_level_percent)
        cancel_level = close_price * (1 - sign * self.cancel_level_percent)
        return entry_level, cancel_level

    def is_timed_out(self, entry: WatchlistEntry, now: float) -> bool:
        return now - entry.watchlist_entered_at.timestamp() >= self.timeout_seconds

    def advance(self, entry: WatchlistEntry, price: float, now: Optional[float] = None,
                fallback_range: Optional[float] = None) -> WatchlistState:
        """Apply one tick at ``price`` and return the resulting state.

        ``fallback_range`` is used by the consolidation check when the
        entry does not carry the anomaly candle range (legacy records).
        """
        now = self.clock() if now is None else now
        entry.observe(price)

        if not entry.is_consolidated:
            candle_range = self.consolidation_range(entry)
            if candle_range is None:
                candle_range = fallback_range if fallback_range is not None else 0.0
            if not candle_range < self.consolidation_threshold:
                self.logger.info("❌ %s consolidation failed (range %.2f%%)",
                                 entry.instrument, candle_range * 100)
                return self._finish(entry, WatchlistState.CANCELLED, "consolidation", now)
            entry.close_price = price
            entry.entry_level, entry.cancel_level = self.levels(entry.direction, price)
            entry.is_consolidated = True
            self.logger.info("🎯 %s armed: entry %.6f cancel %.6f",
                             entry.instrument, entry.entry_level, entry.cancel_level)
            self._emit(EventType.WATCHLIST_ARMED, entry)
            return WatchlistState.ARMED

        if entry.direction is Direction.LONG:
            entered = price > entry.entry_level
            cancelled = price < entry.cancel_level
        else:
            entered = price < entry.entry_level
            cancelled = price > entry.cancel_level

        if entered:
            self.trade_tracker.open_trade(
                entry.instrument, entry.direction, price,
                volume_leverage=entry.volume_leverage, anomaly_id=entry.id, now=now,
            )
            self.statistics.record(entry, "entry", True, now=self._utc(now))
            return WatchlistState.ENTERED
        if cancelled:
            self.logger.info("❌ %s cancel level crossed at %.6f", entry.instrument, price)
            return self._finish(entry, WatchlistState.CANCELLED, "cancel", now)
        if self.is_timed_out(entry, now):
            self.logger.info("⏰ %s entry confirmation timed out", entry.instrument)
            return self._finish(entry, WatchlistState.TIMED_OUT, "timeout", now)

        self.logger.debug("⏳ %s waiting: price %.6f entry %.6f cancel %.6f",
                          entry.instrument, price, entry.entry_level, entry.cancel_level)
        return WatchlistState.ARMED

    def drop_unknown(self, entry: WatchlistEntry, now: Optional[float] = None) -> None:
        now = self.clock() if now is None else now
        self._finish(entry, WatchlistState.CANCELLED, "unknown_instrument", now)
        self.store.exclude(entry.instrument)

    # ------------------------------------------------------------------ #
    # Monitoring
    # ------------------------------------------------------------------ #
    async def tick(self, instrument: str) -> Optional[WatchlistState]:
        entry = self.store.get_entry(instrument)
        if entry is None:
            return None
        try:
            df = await self.market_data.fetch_samples(instrument, self.timeframe, limit=2)
        except UnknownInstrumentError as exc:
            self.logger.warning("🚫 %s unknown to the exchange, dropping from watchlist: %s",
                                instrument, exc)
            self.drop_unknown(entry)
            return WatchlistState.CANCELLED
        except TransientFetchError as exc:
            self.logger.warning("Skipping watchlist check for %s: %s", instrument, exc)
            return None
        if df is None or df.empty:
            return None

        last = df.iloc[-1]
        low = float(last["low"])
        fallback = (float(last["high"]) - low) / low if low > 0 else None
        return self.advance(entry, float(last["close"]), fallback_range=fallback)

    async def run_cycle(self) -> List[Optional[WatchlistState]]:
        """Tick every entry in insertion order, ``batch_size`` at a time."""
        instruments = [e.instrument for e in self.store.watchlist()]
        results: List[Optional[WatchlistState]] = []
        for i in range(0, len(instruments), self.batch_size):
            batch = instruments[i:i + self.batch_size]
            results.extend(await asyncio.gather(*(self.tick(s) for s in batch)))
            if i + self.batch_size < len(instruments):
                await asyncio.sleep(self.batch_delay)
        return results

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _finish(self, entry: WatchlistEntry, state: WatchlistState, reason: str,
                now: float) -> WatchlistState:
        self.store.remove_entry(entry.instrument)
        self.statistics.record(entry, reason, False, now=self._utc(now))
        event_type = (
            EventType.WATCHLIST_TIMED_OUT if state is WatchlistState.TIMED_OUT
            else EventType.WATCHLIST_CANCELLED
        )
        self._emit(event_type, entry, reason=reason)
        return state

    def _emit(self, event_type: EventType, entry: WatchlistEntry, **extra) -> None:
        payload = entry.model_dump(mode="json")
        payload.update(extra)
        self.notifier.notify(Event(event_type, entry.instrument, payload))

    @staticmethod
    def _utc(ts: float) -> datetime:
        return datetime.fromtimestamp(ts, tz=timezone.utc)

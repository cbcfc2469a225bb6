"""
core/engine.py
--------------
``TradingCore`` composes the scanner, the watchlist state machine and the
trade tracker around one StateStore, and exposes the three monitoring jobs
the scheduler runs.  State is flushed through the persistence port after
every job that may have mutated it.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from models.events import Event, EventType
from module.persistence.base import PersistedState, PersistencePort
from modules.anomaly_scanner import AnomalyScanner
from modules.cooldown import CooldownTracker
from modules.market_data import MarketDataPort
from modules.scheduler import PriorityScheduler, Priority
from modules.state_store import StateStore
from modules.statistics import SignalStatistics, TradingStatistics
from modules.trade_tracker import TradeTracker
from modules.watchlist import WatchlistStateMachine
from notifiers.base import NotificationPort
from utils.config_manager import ConfigManager


class TradingCore:
    def __init__(
        self,
        config: Dict,
        universe: List[str],
        market_data: MarketDataPort,
        store: StateStore,
        cooldowns: CooldownTracker,
        scanner: AnomalyScanner,
        watchlist: WatchlistStateMachine,
        trade_tracker: TradeTracker,
        scheduler: PriorityScheduler,
        notifier: NotificationPort,
        persistence: PersistencePort,
        signal_stats: SignalStatistics,
        trading_stats: TradingStatistics,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = ConfigManager(config)
        self.universe = list(universe)
        self.market_data = market_data
        self.store = store
        self.cooldowns = cooldowns
        self.scanner = scanner
        self.watchlist = watchlist
        self.trade_tracker = trade_tracker
        self.scheduler = scheduler
        self.notifier = notifier
        self.persistence = persistence
        self.signal_stats = signal_stats
        self.trading_stats = trading_stats
        self.logger = logger or logging.getLogger(self.__class__.__name__)

        self.scan_batch_size = max(1, self.config.get_int("SCAN_BATCH_SIZE"))
        self.scan_batch_delay = self.config.get_float("SCAN_BATCH_DELAY")
        self._stopping = False

        if self.scheduler.scan_factory is None:
            self.scheduler.scan_factory = self.run_anomaly_scan

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #
    def load_state(self) -> None:
        state = self.persistence.load_state()
        self.store.restore(state.trades, state.watchlist, state.history)
        self.signal_stats.restore(state.leads)
        self.logger.info("♻️ Restored %d open trades, %d watchlist entries",
                         len(self.store.trades()), len(self.store.watchlist()))

    def save_state(self) -> bool:
        state = PersistedState(
            trades=self.store.trades(),
            watchlist=self.store.watchlist(),
            history=self.store.history(),
            leads=self.signal_stats.to_dict()["leads"],
            statistics={
                "trading": self.trading_stats.summary(self.store.history()),
                "signals": self.signal_stats.to_dict(),
            },
        )
        return self.persistence.save_state(state)

    # ------------------------------------------------------------------ #
    # Jobs
    # ------------------------------------------------------------------ #
    async def run_trade_monitor(self) -> None:
        if not self.store.trades():
            return
        await self.trade_tracker.run_cycle()
        self.save_state()

    async def run_watchlist_monitor(self) -> None:
        if not self.store.watchlist():
            return
        await self.watchlist.run_cycle()
        self.save_state()

    async def run_anomaly_scan(self) -> int:
        """Scan every eligible instrument in batches; returns anomalies accepted."""
        self.cooldowns.purge_expired()
        eligible = [s for s in self.universe if self.scanner.is_eligible(s)]
        self.logger.info("🔍 Anomaly scan over %d/%d instruments", len(eligible), len(self.universe))

        accepted = 0
        for i in range(0, len(eligible), self.scan_batch_size):
            if self._stopping:
                break
            batch = eligible[i:i + self.scan_batch_size]
            records = await asyncio.gather(*(self.scanner.scan(s) for s in batch))
            for record in records:
                if record is not None and self.watchlist.accept(record) is not None:
                    accepted += 1
            if i + self.scan_batch_size < len(eligible):
                await asyncio.sleep(self.scan_batch_delay)

        if accepted:
            self.save_state()
        self.logger.info("🔍 Anomaly scan finished, %d new watchlist entries", accepted)
        log_metrics = getattr(self.market_data, "log_metrics", None)
        if log_metrics is not None:
            log_metrics()
        return accepted

    async def publish_status(self) -> None:
        self.notifier.notify(Event(EventType.PERIODIC_STATUS, None, self.status()))

    # ------------------------------------------------------------------ #
    # Read-only views
    # ------------------------------------------------------------------ #
    def status(self) -> Dict[str, Any]:
        return {
            "open_trades": len(self.store.trades()),
            "watchlist": len(self.store.watchlist()),
            "queue_depth": len(self.scheduler),
            "excluded": len(self.store.excluded),
            "trading": self.trading_stats.summary(self.store.history()),
            "signals": self.signal_stats.summary(),
            "scheduler": self.scheduler.snapshot(),
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }

    def snapshot(self) -> Dict[str, Any]:
        """Plain-data copy of the state for status/watchlist/trades consumers."""
        return {
            "trades": [t.model_dump(mode="json") for t in self.store.trades()],
            "watchlist": [e.model_dump(mode="json") for e in self.store.watchlist()],
            "history": [t.model_dump(mode="json") for t in self.store.history()],
            "status": self.status(),
        }

    # ------------------------------------------------------------------ #
    # Run loop
    # ------------------------------------------------------------------ #
    def register_producers(self) -> None:
        cfg = self.config
        self.scheduler.add_producer(Priority.TRADES, "trade-monitor",
                                    cfg.get_float("TRADE_MONITOR_INTERVAL"), self.run_trade_monitor)
        self.scheduler.add_producer(Priority.WATCHLIST, "watchlist-monitor",
                                    cfg.get_float("WATCHLIST_MONITOR_INTERVAL"), self.run_watchlist_monitor)
        self.scheduler.add_producer(Priority.SCAN, "anomaly-scan",
                                    cfg.get_float("ANOMALY_SCAN_INTERVAL"), self.run_anomaly_scan)
        status_interval = cfg.get_float("STATUS_INTERVAL")
        if status_interval > 0:
            self.scheduler.add_producer(Priority.WATCHLIST, "periodic-status",
                                        status_interval, self.publish_status, delay_first=True)

    async def run(self) -> None:
        self.logger.info("🚀 TradingCore starting: %d instruments, timeframe %s",
                         len(self.universe), self.config.get_timeframe())
        self.load_state()
        if self.store.trades():
            await self.publish_status()
        self.register_producers()
        try:
            await self.scheduler.run_forever()
        finally:
            await self.stop()

    async def stop(self) -> None:
        if self._stopping:
            return
        self._stopping = True
        self.logger.info("🛑 TradingCore stopping")
        await self.scheduler.stop()
        self.save_state()
        closer = getattr(self.notifier, "close", None)
        if closer is not None:
            await closer()
        await self.market_data.close()

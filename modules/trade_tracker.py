"""
trade_tracker.py
----------------
Owns the open simulated positions: opens them from confirmed watchlist
entries, re-prices them on every monitoring tick, moves the stop to
breakeven once and closes them on target, stop or timeout.  A trade on an
instrument the venue no longer quotes is closed at its last known price.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from models.anomaly import Direction
from models.events import Event, EventType
from models.trade import ExitReason, Trade, TradeStatus
from modules.market_data import MarketDataPort, TransientFetchError, UnknownInstrumentError
from modules.sl_tp_planner import SLTPPlanner
from modules.state_store import StateStore
from notifiers.base import NotificationPort
from utils.config_manager import ConfigManager


def _utc(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class TradeTracker:
    def __init__(
        self,
        store: StateStore,
        notifier: NotificationPort,
        planner: SLTPPlanner,
        config: Dict,
        market_data: Optional[MarketDataPort] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.planner = planner
        self.config = ConfigManager(config)
        self.market_data = market_data
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.clock = clock

        self.timeframe = self.config.get_timeframe()
        self.breakeven_enabled = self.config.get_bool("BREAKEVEN_ENABLED")
        self.max_trade_seconds = self.config.get_float("MAX_TRADE_HOURS") * 3600
        self.batch_size = max(1, self.config.get_int("TRADE_BATCH_SIZE"))
        self.batch_delay = self.config.get_float("TRADE_BATCH_DELAY")

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def open_trade(
        self,
        instrument: str,
        direction: Direction,
        entry_price: float,
        volume_leverage: Optional[float] = None,
        anomaly_id: Optional[str] = None,
        now: Optional[float] = None,
    ) -> Trade:
        """Create a trade and atomically replace the instrument's watchlist entry with it."""
        now = self.clock() if now is None else now
        levels = self.planner.plan(direction, entry_price, volume_leverage)
        opened_at = _utc(now)
        trade = Trade(
            id=f"{instrument}_{int(now * 1000)}",
            instrument=instrument,
            direction=direction,
            entry_price=entry_price,
            stop_loss=levels["stop_loss"],
            take_profit=levels["take_profit"],
            take_profit_percent=levels["take_profit_percent"],
            volume_leverage=volume_leverage,
            anomaly_id=anomaly_id,
            opened_at=opened_at,
            last_price=entry_price,
            last_updated_at=opened_at,
        )
        self.store.promote(trade)
        self.logger.info("💰 Opened %s %s @ %.6f  SL %.6f  TP %.6f (%.1f%%)",
                         trade.direction.value, instrument, entry_price,
                         trade.stop_loss, trade.take_profit, trade.take_profit_percent * 100)
        self._emit(EventType.TRADE_OPENED, trade)
        return trade

    def update(self, trade: Trade, price: float, now: Optional[float] = None) -> Optional[ExitReason]:
        """Re-price ``trade``; returns the exit reason when it was closed."""
        if not trade.is_open:
            return None
        now = self.clock() if now is None else now
        trade.last_price = price
        trade.last_updated_at = _utc(now)

        if self.breakeven_enabled and not trade.breakeven:
            if trade.target_progress(price) >= self.planner.breakeven_progress:
                trade.stop_loss = self.planner.breakeven_stop(
                    trade.direction, trade.entry_price, trade.stop_loss
                )
                trade.breakeven = True
                self.logger.info("🛡 %s breakeven armed, stop -> %.6f", trade.instrument, trade.stop_loss)
                self._emit(EventType.TRADE_BREAKEVEN, trade)

        reason = self.exit_reason(trade, price, now)
        if reason is not None:
            self.close_trade(trade, price, reason, now)
        return reason

    def exit_reason(self, trade: Trade, price: float, now: float) -> Optional[ExitReason]:
        if trade.direction is Direction.LONG:
            if price >= trade.take_profit:
                return ExitReason.TARGET
            if price <= trade.stop_loss:
                return ExitReason.STOP
        else:
            if price <= trade.take_profit:
                return ExitReason.TARGET
            if price >= trade.stop_loss:
                return ExitReason.STOP
        if self.max_trade_seconds > 0:
            if now - trade.opened_at.timestamp() >= self.max_trade_seconds:
                return ExitReason.TIMEOUT
        return None

    def close_trade(self, trade: Trade, price: float, reason: ExitReason,
                    now: Optional[float] = None) -> Trade:
        now = self.clock() if now is None else now
        trade.exit_price = price
        trade.exit_reason = reason
        trade.closed_at = _utc(now)
        trade.status = TradeStatus.CLOSED
        trade.profit_loss = round(trade.pnl_percent(price), 4)
        trade.duration_seconds = max(0.0, now - trade.opened_at.timestamp())
        self.store.close_trade(trade.instrument)
        self.logger.info("Closed %s %s @ %.6f (%s) %+.2f%%", trade.direction.value,
                         trade.instrument, price, reason.value, trade.profit_loss)
        self._emit(EventType.TRADE_CLOSED, trade)
        return trade

    # ------------------------------------------------------------------ #
    # Monitoring
    # ------------------------------------------------------------------ #
    async def check(self, instrument: str) -> Optional[ExitReason]:
        trade = self.store.get_trade(instrument)
        if trade is None or self.market_data is None:
            return None
        try:
            df = await self.market_data.fetch_samples(instrument, self.timeframe, limit=2)
        except UnknownInstrumentError as exc:
            self.logger.warning("%s no longer quoted, closing at last price: %s", instrument, exc)
            self.store.exclude(instrument)
            self.close_trade(trade, trade.last_price, ExitReason.DELISTED)
            return ExitReason.DELISTED
        except TransientFetchError as exc:
            self.logger.warning("Skipping trade update for %s: %s", instrument, exc)
            return None
        if df is None or df.empty:
            return None
        return self.update(trade, float(df["close"].iloc[-1]))

    async def run_cycle(self) -> List[Optional[ExitReason]]:
        """Update every open trade, ``batch_size`` instruments at a time."""
        instruments = [t.instrument for t in self.store.trades()]
        results: List[Optional[ExitReason]] = []
        for i in range(0, len(instruments), self.batch_size):
            batch = instruments[i:i + self.batch_size]
            results.extend(await asyncio.gather(*(self.check(s) for s in batch)))
            if i + self.batch_size < len(instruments):
                await asyncio.sleep(self.batch_delay)
        return results

    def _emit(self, event_type: EventType, trade: Trade) -> None:
        self.notifier.notify(Event(event_type, trade.instrument, trade.model_dump(mode="json")))

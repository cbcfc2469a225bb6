"""
anomaly_scanner.py
------------------
Looks at one instrument's most recent candles and decides whether the
second-to-last candle carried an abnormal volume spike.

Frame layout (oldest first, ``HISTORICAL_WINDOW + 2`` rows)::

    [ trailing window ........ ] [ anomaly candle ] [ following candle ]

Baseline volume and baseline price come from the trailing window only.
The direction is contrarian: a spike that pushed price above the baseline
is traded Short, one that pushed it below is traded Long.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

import pandas as pd

from models.anomaly import AnomalyRecord, Direction
from modules.cooldown import CooldownTracker
from modules.market_data import MarketDataPort, TransientFetchError, UnknownInstrumentError
from modules.state_store import StateStore
from utils.config_manager import ConfigManager


class AnomalyScanner:
    def __init__(
        self,
        market_data: MarketDataPort,
        cooldowns: CooldownTracker,
        store: StateStore,
        config: Dict,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.market_data = market_data
        self.cooldowns = cooldowns
        self.store = store
        self.config = ConfigManager(config)
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.clock = clock

        self.timeframe = self.config.get_timeframe()
        self.window = self.config.get_int("HISTORICAL_WINDOW")
        self.volume_threshold = self.config.get_float("VOLUME_THRESHOLD")
        self.price_threshold = self.config.get_float("PRICE_THRESHOLD")
        # looser price filter for very strong spikes
        self.high_leverage_threshold = self.config.get_float("HIGH_LEVERAGE_THRESHOLD")
        self.high_leverage_price_threshold = self.config.get_float("HIGH_LEVERAGE_PRICE_THRESHOLD")

    @property
    def required_samples(self) -> int:
        return self.window + 2

    # ------------------------------------------------------------------ #
    # Eligibility
    # ------------------------------------------------------------------ #
    def is_eligible(self, instrument: str, now: Optional[float] = None) -> bool:
        if self.store.is_excluded(instrument) or self.store.is_busy(instrument):
            return False
        return not self.cooldowns.is_active(instrument, now)

    # ------------------------------------------------------------------ #
    # Scan
    # ------------------------------------------------------------------ #
    async def scan(self, instrument: str) -> Optional[AnomalyRecord]:
        """Fetch the latest candles for ``instrument`` and evaluate them.

        Returns an :class:`AnomalyRecord` or ``None``.  Unknown instruments
        are excluded for good; transient failures skip this tick.
        """
        if not self.is_eligible(instrument):
            return None
        try:
            df = await self.market_data.fetch_samples(
                instrument, self.timeframe, limit=self.required_samples
            )
        except UnknownInstrumentError as exc:
            self.logger.warning("🚫 %s unknown to the exchange, excluding: %s", instrument, exc)
            self.store.exclude(instrument)
            return None
        except TransientFetchError as exc:
            self.logger.warning("Skipping %s this tick: %s", instrument, exc)
            return None
        return self.evaluate(instrument, df, self.clock())

    def evaluate(self, instrument: str, df: pd.DataFrame, now: float) -> Optional[AnomalyRecord]:
        if df is None or len(df) < self.required_samples:
            self.logger.debug("%s: %s samples, need %s", instrument,
                              0 if df is None else len(df), self.required_samples)
            return None

        frame = df.tail(self.required_samples).reset_index(drop=True)
        trailing = frame.iloc[: self.window]
        anomaly = frame.iloc[self.window]

        baseline_volume = float(trailing["volume"].mean())
        if baseline_volume <= 0:
            return None
        baseline_price = float(((trailing["open"] + trailing["close"]) / 2).mean())
        anomaly_volume = float(anomaly["volume"])

        # strict: exactly threshold x baseline is not an anomaly
        if not anomaly_volume > baseline_volume * self.volume_threshold:
            return None

        leverage = anomaly_volume / baseline_volume
        anomaly_price = (float(anomaly["open"]) + float(anomaly["close"])) / 2

        direction = self.determine_direction(anomaly_price, baseline_price, self.price_threshold)
        if direction is None and leverage > self.high_leverage_threshold:
            direction = self.determine_direction(
                anomaly_price, baseline_price, self.high_leverage_price_threshold
            )
            if direction is not None:
                self.logger.info("%s: direction %s found on high-leverage pass (%.1fx)",
                                 instrument, direction.value, leverage)

        # cool down either way so an undetermined spike is not re-read every tick
        self.cooldowns.register(instrument, now)

        if direction is None:
            self.logger.info("%s: volume spike %.1fx but direction undetermined", instrument, leverage)
            return None

        detected_at = datetime.fromtimestamp(now, tz=timezone.utc)
        record = AnomalyRecord(
            id=f"{instrument.split('/')[0]}_{int(now * 1000)}",
            instrument=instrument,
            direction=direction,
            detected_at=detected_at,
            anomaly_price=anomaly_price,
            baseline_price=baseline_price,
            volume_leverage=round(leverage, 2),
            watchlist_entered_at=detected_at,
            anomaly_volume=anomaly_volume,
            baseline_volume=baseline_volume,
            anomaly_high=float(anomaly["high"]),
            anomaly_low=float(anomaly["low"]),
        )
        self.logger.info("🚨 Anomaly %s %s: volume %.2fx, price %.6f vs %.6f",
                         instrument, direction.value, leverage, anomaly_price, baseline_price)
        return record

    @staticmethod
    def determine_direction(anomaly_price: float, baseline_price: float,
                            threshold: float) -> Optional[Direction]:
        """Short above the baseline, Long below it, ``None`` inside the band."""
        if baseline_price <= 0:
            return None
        change = (anomaly_price - baseline_price) / baseline_price
        if change > threshold:
            return Direction.SHORT
        if change < -threshold:
            return Direction.LONG
        return None

# --------------------------------------------------------------------
# models/sample.py
# One OHLCV candle as returned by the market-data port.
# --------------------------------------------------------------------
from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class Sample:
    timestamp: int  # epoch-ms, candle open time
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def mid_price(self) -> float:
        """Mean of open and close, the price used for anomaly direction."""
        return (self.open + self.close) / 2

from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Direction(str, Enum):
    LONG = "Long"
    SHORT = "Short"

    @property
    def sign(self) -> int:
        """+1 for Long, -1 for Short."""
        return 1 if self is Direction.LONG else -1


class WatchlistState(str, Enum):
    CONSOLIDATING = "Consolidating"
    ARMED = "Armed"
    ENTERED = "Entered"
    CANCELLED = "Cancelled"
    TIMED_OUT = "TimedOut"

    @property
    def is_terminal(self) -> bool:
        return self in (WatchlistState.ENTERED, WatchlistState.CANCELLED, WatchlistState.TIMED_OUT)


class AnomalyRecord(BaseModel):
    """A volume spike that passed direction classification."""

    id: str = Field(..., min_length=1)
    instrument: str = Field(..., min_length=1)
    direction: Direction
    detected_at: datetime
    anomaly_price: float = Field(..., gt=0)
    baseline_price: float = Field(..., gt=0)
    volume_leverage: float = Field(..., gt=0)
    watchlist_entered_at: datetime
    anomaly_volume: Optional[float] = None
    baseline_volume: Optional[float] = None
    anomaly_high: Optional[float] = None
    anomaly_low: Optional[float] = None

    @field_validator("instrument")
    @classmethod
    def normalize_instrument(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def price_change(self) -> float:
        """Relative drift of the anomaly price from the baseline."""
        return (self.anomaly_price - self.baseline_price) / self.baseline_price


class WatchlistEntry(AnomalyRecord):
    """AnomalyRecord plus the fields the confirmation process fills in."""

    is_consolidated: bool = False
    close_price: Optional[float] = None
    entry_level: Optional[float] = None
    cancel_level: Optional[float] = None
    max_price_seen: Optional[float] = None
    min_price_seen: Optional[float] = None

    @classmethod
    def from_record(cls, record: AnomalyRecord) -> "WatchlistEntry":
        return cls(**record.model_dump())

    @property
    def state(self) -> WatchlistState:
        return WatchlistState.ARMED if self.is_consolidated else WatchlistState.CONSOLIDATING

    def observe(self, price: float) -> None:
        if self.max_price_seen is None or price > self.max_price_seen:
            self.max_price_seen = price
        if self.min_price_seen is None or price < self.min_price_seen:
            self.min_price_seen = price

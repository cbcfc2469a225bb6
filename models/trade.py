from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from models.anomaly import Direction


class TradeStatus(str, Enum):
    OPEN = "Open"
    CLOSED = "Closed"


class ExitReason(str, Enum):
    TARGET = "target"
    STOP = "stop"
    TIMEOUT = "timeout"
    DELISTED = "delisted"


class Trade(BaseModel):
    """Simulated position. Mutated only by the TradeTracker."""

    id: str = Field(..., min_length=1)
    instrument: str = Field(..., min_length=1)
    direction: Direction
    entry_price: float = Field(..., gt=0)
    stop_loss: float = Field(..., gt=0)
    take_profit: float = Field(..., gt=0)
    take_profit_percent: float = Field(..., gt=0)
    volume_leverage: Optional[float] = None
    anomaly_id: Optional[str] = None
    opened_at: datetime
    last_price: float
    last_updated_at: datetime
    status: TradeStatus = TradeStatus.OPEN
    breakeven: bool = False
    exit_price: Optional[float] = None
    exit_reason: Optional[ExitReason] = None
    closed_at: Optional[datetime] = None
    profit_loss: Optional[float] = None  # percent
    duration_seconds: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.status is TradeStatus.OPEN

    def pnl_percent(self, price: float) -> float:
        """Signed percentage result at ``price`` relative to entry."""
        return (price - self.entry_price) / self.entry_price * 100 * self.direction.sign

    def target_progress(self, price: float) -> float:
        """Fraction of the entry->target distance covered at ``price`` (clamped 0..1)."""
        distance = self.take_profit - self.entry_price
        if distance == 0:
            return 0.0
        progress = (price - self.entry_price) / distance
        return max(0.0, min(1.0, progress))

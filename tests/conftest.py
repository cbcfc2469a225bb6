import logging
from typing import Dict, List, Optional

import pandas as pd
import pytest

from models.events import Event
from modules.market_data import MarketDataPort
from notifiers.base import NotificationPort

TF_MS = 15 * 60 * 1000
T0 = 1_700_000_000.0

# ------------------------- Helpers ------------------------- #


def make_frame(rows) -> pd.DataFrame:
    """rows: iterable of (open, high, low, close, volume), oldest first."""
    rows = list(rows)
    return pd.DataFrame(
        {
            "timestamp": [i * TF_MS for i in range(len(rows))],
            "open": [float(r[0]) for r in rows],
            "high": [float(r[1]) for r in rows],
            "low": [float(r[2]) for r in rows],
            "close": [float(r[3]) for r in rows],
            "volume": [float(r[4]) for r in rows],
        }
    )


def anomaly_frame(window=8, base_volume=100.0, base_price=100.0, anomaly_volume=310.0,
                  anomaly_price=105.0, anomaly_high=None, anomaly_low=None) -> pd.DataFrame:
    high = anomaly_high if anomaly_high is not None else anomaly_price * 1.005
    low = anomaly_low if anomaly_low is not None else anomaly_price * 0.995
    rows = [(base_price, base_price, base_price, base_price, base_volume)] * window
    rows.append((anomaly_price, high, low, anomaly_price, anomaly_volume))
    rows.append((anomaly_price, anomaly_price, anomaly_price, anomaly_price, base_volume))
    return make_frame(rows)


def price_frame(price: float, high: Optional[float] = None, low: Optional[float] = None) -> pd.DataFrame:
    return make_frame([(price, high or price, low or price, price, 100.0)])


class FakeMarketData(MarketDataPort):
    """Serves canned frames; a list value is consumed one frame per call."""

    def __init__(self) -> None:
        self.frames: Dict[str, object] = {}
        self.errors: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.closed = False

    async def fetch_samples(self, instrument, timeframe, since=None, limit=100):
        self.calls.append((instrument, timeframe, since, limit))
        if instrument in self.errors:
            raise self.errors[instrument]
        frame = self.frames.get(instrument)
        if isinstance(frame, list):
            frame = frame.pop(0) if len(frame) > 1 else frame[0]
        if frame is None:
            return make_frame([])
        return frame.tail(limit).reset_index(drop=True)

    def instruments_called(self) -> List[str]:
        return [c[0] for c in self.calls]

    async def close(self) -> None:
        self.closed = True


class RecordingNotifier(NotificationPort):
    def __init__(self) -> None:
        self.events: List[Event] = []

    def notify(self, event: Event) -> None:
        self.events.append(event)

    def types(self) -> List[str]:
        return [e.type.value for e in self.events]


class FakeClock:
    def __init__(self, start: float = T0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


# ------------------------- Fixtures ------------------------- #


@pytest.fixture
def config():
    return {
        "SYMBOLS": ["BTC/USDT", "ETH/USDT"],
        "TIMEFRAME": "15m",
        "VOLUME_THRESHOLD": 3,
        "HISTORICAL_WINDOW": 8,
        "PRICE_THRESHOLD": 0.01,
        "HIGH_LEVERAGE_THRESHOLD": 20,
        "HIGH_LEVERAGE_PRICE_THRESHOLD": 0.005,
        "WATCHLIST_CYCLE_SECONDS": 60,
        "ENTRY_CONFIRMATION_TFS": 6,
        "SCAN_BATCH_DELAY": 0,
        "WATCHLIST_BATCH_DELAY": 0,
        "TRADE_BATCH_DELAY": 0,
        "STATUS_INTERVAL": 0,
        "TELEGRAM": {},
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def market():
    return FakeMarketData()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def logger():
    return logging.getLogger("tests")


@pytest.fixture
def frames():
    """Frame builders, exposed as a fixture so test modules need no imports from here."""

    class _Frames:
        make = staticmethod(make_frame)
        anomaly = staticmethod(anomaly_frame)
        price = staticmethod(price_frame)

    return _Frames

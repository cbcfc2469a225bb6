"""
rest_client.py
--------------
Market-data adapter that fetches OHLCV via the Binance REST API
(/api/v3/klines), maps HTTP failures onto the MarketDataPort error
taxonomy and normalises rows through the DataProvider.
"""

from __future__ import annotations

import asyncio
import logging
import statistics
import time
from collections import deque
from typing import Dict, Optional

import aiohttp
import pandas as pd

from modules.data_provider import DataProvider
from modules.market_data import (
    MarketDataPort,
    TransientFetchError,
    UnknownInstrumentError,
)
from utils.timeframe import normalize_tf

# Binance error code for "Invalid symbol."
BINANCE_INVALID_SYMBOL = -1121
TRANSIENT_STATUSES = {418, 429, 500, 502, 503, 504}


# ---------------------------- rate limiter -------------------------------- #
class RateLimiter:
    """Simple sliding-window limiter (max N requests per window)."""

    def __init__(self, max_requests_per_10s: int, window: float = 10.0) -> None:
        self.max_requests = max_requests_per_10s
        self.window = window
        self.timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            while self.timestamps and now - self.timestamps[0] > self.window:
                self.timestamps.popleft()
            if len(self.timestamps) >= self.max_requests:
                await asyncio.sleep(self.window - (now - self.timestamps[0]))
                self.timestamps.popleft()
            self.timestamps.append(time.monotonic())


# ---------------------------- REST adapter -------------------------------- #
class BinanceRestMarketData(MarketDataPort):
    """Asynchronous kline reader for the Binance spot REST API."""

    KLINES_PATH = "/api/v3/klines"
    MAX_LIMIT = 1000

    def __init__(
        self,
        base_url: str = "https://api.binance.com",
        logger: Optional[logging.Logger] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        data_provider: Optional[DataProvider] = None,
        rate_limiter: Optional[RateLimiter] = None,
        timeout: float = 10.0,
    ) -> None:
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        self._session = session
        self._owns_session = session is None
        self.data_provider = data_provider or DataProvider()
        self.rate_limiter = rate_limiter or RateLimiter(max_requests_per_10s=200)

        self.metrics: Dict[str, object] = {
            "requests_sent": 0,
            "errors": 0,
            "latencies": [],
        }

    @staticmethod
    def to_exchange_symbol(instrument: str) -> str:
        """'BTC/USDT' -> 'BTCUSDT'."""
        return instrument.replace("/", "").replace("_", "").replace("-", "").upper()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    # -------------------------------------------------------------------- #
    async def fetch_samples(
        self,
        instrument: str,
        timeframe: str,
        since: Optional[int] = None,
        limit: int = 100,
    ) -> pd.DataFrame:
        """Fetch klines for one instrument; raises MarketDataError subclasses."""
        await self.rate_limiter.acquire()

        params = {
            "symbol": self.to_exchange_symbol(instrument),
            "interval": normalize_tf(timeframe),
            "limit": max(1, min(int(limit), self.MAX_LIMIT)),
        }
        if since is not None:
            params["startTime"] = int(since)

        url = f"{self.base_url}{self.KLINES_PATH}"
        session = self._get_session()

        # --- HTTP request
        try:
            t0 = time.monotonic()
            async with session.get(url, params=params) as resp:
                self.metrics["requests_sent"] += 1
                payload = await resp.json(content_type=None)
                self.metrics["latencies"].append(time.monotonic() - t0)
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            self.metrics["errors"] += 1
            raise TransientFetchError(f"{instrument}: {exc!r}") from exc

        if status == 200:
            return self.data_provider.create_dataframe_from_kline(payload)

        self.metrics["errors"] += 1
        code = payload.get("code") if isinstance(payload, dict) else None
        message = payload.get("msg") if isinstance(payload, dict) else payload
        if status == 400 and code == BINANCE_INVALID_SYMBOL:
            raise UnknownInstrumentError(f"{instrument}: {message}")
        if status in TRANSIENT_STATUSES:
            raise TransientFetchError(f"{instrument}: HTTP {status} {message}")
        self.logger.warning("Unexpected response for %s: HTTP %s %s", instrument, status, message)
        raise TransientFetchError(f"{instrument}: HTTP {status} {message}")

    # -------------------------------------------------------------------- #
    def log_metrics(self) -> None:
        latencies = self.metrics["latencies"]
        avg = statistics.mean(latencies) if latencies else 0
        self.logger.info(
            "📊 Requests: %s | Errors: %s | Avg latency: %.3fs",
            self.metrics["requests_sent"],
            self.metrics["errors"],
            avg,
        )
        # keep the latency list from growing for the whole process lifetime
        del latencies[:-500]

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

"""
market_data.py
--------------
The narrow interface the core uses to read candles, plus the error
taxonomy every adapter must map its failures onto.

``UnknownInstrumentError`` means the instrument will never resolve (delisted
or misspelt) and callers drop it for good.  ``TransientFetchError`` covers
timeouts, 5xx and rate-limit responses; it is retried by
:func:`retry_transient` and, once attempts are exhausted, the caller simply
skips that instrument for the current tick.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, TypeVar

import pandas as pd

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MarketDataError(Exception):
    """Base class for failures raised by a MarketDataPort."""


class UnknownInstrumentError(MarketDataError):
    """The venue does not know the instrument."""


class TransientFetchError(MarketDataError):
    """Network, timeout or throttling failure; safe to retry."""


class MarketDataPort(ABC):
    """Supplies recent OHLCV samples, oldest first."""

    @abstractmethod
    async def fetch_samples(
        self,
        instrument: str,
        timeframe: str,
        since: Optional[int] = None,
        limit: int = 100,
    ) -> pd.DataFrame:
        """
        Return a DataFrame with columns ``timestamp, open, high, low, close,
        volume`` ordered by ascending timestamp (epoch-ms).

        ``since`` is an epoch-ms lower bound for the first candle.
        """
        raise NotImplementedError

    async def close(self) -> None:  # pragma: no cover - optional hook
        return None


def retry_transient(
    attempts: int = 3,
    delay: float = 2.0,
    log: Optional[logging.Logger] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Retry an async callable on ``TransientFetchError`` with a fixed delay.

    ``UnknownInstrumentError`` and any other exception propagate at once.
    After the last attempt the final ``TransientFetchError`` is re-raised.
    """
    attempts = max(1, int(attempts))
    log = log or logger

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs) -> T:
            for attempt in range(1, attempts + 1):
                try:
                    return await fn(*args, **kwargs)
                except TransientFetchError as exc:
                    if attempt >= attempts:
                        log.warning("Giving up after %d attempts: %s", attempts, exc)
                        raise
                    log.info("Transient fetch error (attempt %d/%d), retrying in %.1fs: %s",
                             attempt, attempts, delay, exc)
                    await asyncio.sleep(delay)
            raise AssertionError("unreachable")  # pragma: no cover

        return wrapper

    return decorator


class RetryingMarketData(MarketDataPort):
    """Wraps any port so every fetch goes through :func:`retry_transient`."""

    def __init__(self, inner: MarketDataPort, attempts: int = 3, delay: float = 2.0,
                 logger: Optional[logging.Logger] = None) -> None:
        self.inner = inner
        self.attempts = attempts
        self.delay = delay
        self._fetch = retry_transient(attempts, delay, logger)(inner.fetch_samples)

    async def fetch_samples(self, instrument, timeframe, since=None, limit=100) -> pd.DataFrame:
        return await self._fetch(instrument, timeframe, since=since, limit=limit)

    async def close(self) -> None:
        await self.inner.close()

    def log_metrics(self) -> None:
        log_metrics = getattr(self.inner, "log_metrics", None)
        if log_metrics is not None:
            log_metrics()

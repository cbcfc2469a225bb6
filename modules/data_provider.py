"""
data_provider.py
-----------------

This module provides a simple `DataProvider` class responsible for
normalising raw kline responses into clean Pandas DataFrames.  The
Binance REST API returns a bare list of lists::

    [
        [open_time, "open", "high", "low", "close", "volume",
         close_time, quote_volume, trades, ...],
        ...
    ]

Some gateways wrap the same rows in ``{"data": [...]}`` or send a list of
dictionaries with named attributes.  The `DataProvider` hides these
details from the rest of the system so callers can work with consistent
column names.

If the payload is malformed or missing, an empty DataFrame is returned
to allow the caller to handle the failure gracefully.  Callers should
inspect the DataFrame size to determine if any rows were returned.

Example usage::

    provider = DataProvider()
    raw = await resp.json()
    df = provider.create_dataframe_from_kline(raw)
    if len(df) >= needed:
        # do something with df

"""

from __future__ import annotations

from typing import Any, Iterable, List

import pandas as pd

from models.sample import Sample


class DataProvider:
    """Convert raw kline JSON into a Pandas DataFrame.

    The resulting DataFrame will have the following columns with
    standardised names, sorted by ascending ``timestamp``:

    - ``timestamp``: integer UNIX timestamp in milliseconds
    - ``open``: float open price
    - ``high``: float high price
    - ``low``: float low price
    - ``close``: float close price
    - ``volume``: float traded volume
    """

    columns: List[str] = ["timestamp", "open", "high", "low", "close", "volume"]

    _dtypes = {
        "timestamp": "int64",
        "open": "float64",
        "high": "float64",
        "low": "float64",
        "close": "float64",
        "volume": "float64",
    }

    def empty(self) -> pd.DataFrame:
        return pd.DataFrame(columns=self.columns)

    def create_dataframe_from_kline(self, data: Any) -> pd.DataFrame:
        """Return a DataFrame from a raw kline response.

        Parameters
        ----------
        data: Any
            The decoded JSON response: either the row list itself or a
            dict carrying it under ``data``.

        Returns
        -------
        pd.DataFrame
            A DataFrame with the standard columns.  An empty DataFrame
            is returned if the input does not match the expected shape.
        """
        raw = data.get("data") if isinstance(data, dict) else data
        if not isinstance(raw, list) or not raw:
            return self.empty()

        # Rows of lists: first six fields are [ts, open, high, low, close, volume]
        if isinstance(raw[0], (list, tuple)):
            try:
                rows = [row[:6] for row in raw]
                df = pd.DataFrame(rows, columns=self.columns).astype(self._dtypes)
            except (TypeError, ValueError):
                return self.empty()
            return self._finalise(df)

        # Rows of dicts, normalise key names to the standard
        if isinstance(raw[0], dict):
            rows = []
            for row in raw:
                try:
                    rows.append({
                        "timestamp": int(row.get("timestamp") or row.get("openTime") or row.get("date")),
                        "open": float(row.get("open")),
                        "high": float(row.get("high")),
                        "low": float(row.get("low")),
                        "close": float(row.get("close")),
                        "volume": float(row.get("volume")),
                    })
                except (TypeError, ValueError):
                    # skip malformed rows silently
                    continue
            if not rows:
                return self.empty()
            return self._finalise(pd.DataFrame(rows, columns=self.columns).astype(self._dtypes))

        return self.empty()

    def frame_from_samples(self, samples: Iterable[Sample]) -> pd.DataFrame:
        rows = [
            (s.timestamp, s.open, s.high, s.low, s.close, s.volume)
            for s in samples
        ]
        if not rows:
            return self.empty()
        return self._finalise(pd.DataFrame(rows, columns=self.columns).astype(self._dtypes))

    @staticmethod
    def to_samples(df: pd.DataFrame) -> List[Sample]:
        return [
            Sample(int(r.timestamp), float(r.open), float(r.high), float(r.low),
                   float(r.close), float(r.volume))
            for r in df.itertuples(index=False)
        ]

    @staticmethod
    def _finalise(df: pd.DataFrame) -> pd.DataFrame:
        return (
            df.drop_duplicates(subset="timestamp", keep="last")
            .sort_values("timestamp")
            .reset_index(drop=True)
        )

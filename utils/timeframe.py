# utils/timeframe.py
from typing import Dict

SECONDS_PER_TF: Dict[str, int] = {
    "1m": 60,
    "3m": 3 * 60,
    "5m": 5 * 60,
    "15m": 15 * 60,
    "30m": 30 * 60,
    "1h": 60 * 60,
    "2h": 2 * 60 * 60,
    "4h": 4 * 60 * 60,
    "8h": 8 * 60 * 60,
    "12h": 12 * 60 * 60,
    "1d": 24 * 60 * 60,
    "1w": 7 * 24 * 60 * 60,
}


def normalize_tf(tf: str) -> str:
    """
    Map a bunch of aliases to a canonical key ('1h', '4h', ...).
    Canonical keys double as Binance kline intervals.
    """
    t = tf.strip().lower()
    aliases = {
        "1m": ["1m", "1min", "minute1"],
        "3m": ["3m", "3min", "minute3"],
        "5m": ["5m", "5min", "minute5"],
        "15m": ["15m", "15min", "minute15"],
        "30m": ["30m", "30min", "minute30"],
        "1h": ["1h", "h1", "hour1", "60m"],
        "2h": ["2h", "h2", "hour2"],
        "4h": ["4h", "h4", "hour4"],
        "8h": ["8h", "hour8"],
        "12h": ["12h", "hour12"],
        "1d": ["1d", "day1", "24h"],
        "1w": ["1w", "week1"],
    }
    for canon, alts in aliases.items():
        if t in alts:
            return canon
    return t


def timeframe_seconds(tf: str) -> int:
    """Length of one candle in seconds; raises ValueError for unknown codes."""
    canon = normalize_tf(tf)
    try:
        return SECONDS_PER_TF[canon]
    except KeyError:
        raise ValueError(f"Unknown timeframe: {tf!r}") from None

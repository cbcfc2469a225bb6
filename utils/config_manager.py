from typing import Any, Dict, List

from utils.timeframe import normalize_tf, timeframe_seconds

DEFAULTS: Dict[str, Any] = {
    # universe
    "SYMBOLS": [],
    "COINS_FILE": "data/binance-coins.json",
    "QUOTE_ASSET": "USDT",
    "TIMEFRAME": "15m",
    # anomaly detection
    "VOLUME_THRESHOLD": 8.0,
    "HISTORICAL_WINDOW": 8,
    "PRICE_THRESHOLD": 0.005,
    "HIGH_LEVERAGE_THRESHOLD": 20.0,
    "HIGH_LEVERAGE_PRICE_THRESHOLD": 0.005,
    "ANOMALY_COOLDOWN_TFS": 4,
    # watchlist
    "CONSOLIDATION_THRESHOLD": 0.015,
    "ENTRY_LEVEL_PERCENT": 0.004,
    "CANCEL_LEVEL_PERCENT": 0.006,
    "ENTRY_CONFIRMATION_TFS": 6,
    "WATCHLIST_CYCLE_SECONDS": None,  # None -> one timeframe
    # trades
    "STOP_LOSS_PERCENT": 0.005,
    "TAKE_PROFIT_PERCENT": 0.025,
    "BREAKEVEN_ENABLED": True,
    "BREAKEVEN_PROGRESS": 0.2,
    "BREAKEVEN_LOCK_PERCENT": 0.0,
    "MAX_TRADE_HOURS": 0.0,
    # scheduler
    "TRADE_MONITOR_INTERVAL": 30.0,
    "WATCHLIST_MONITOR_INTERVAL": 30.0,
    "ANOMALY_SCAN_INTERVAL": 300.0,
    "STATUS_INTERVAL": 7200.0,
    "SCAN_MIN_INTERVAL": 300.0,
    "SCAN_MAX_DURATION": 300.0,
    "QUEUE_MAX_DEPTH": 50,
    "SCAN_BATCH_SIZE": 10,
    "SCAN_BATCH_DELAY": 1.0,
    "WATCHLIST_BATCH_SIZE": 5,
    "WATCHLIST_BATCH_DELAY": 0.5,
    "TRADE_BATCH_SIZE": 3,
    "TRADE_BATCH_DELAY": 0.3,
    # market data
    "FETCH_RETRIES": 3,
    "FETCH_RETRY_DELAY": 2.0,
    "REQUESTS_PER_10S": 200,
    "BINANCE_BASE_URL": "https://api.binance.com",
    # persistence / notifications
    "DATA_DIR": "data",
    "TELEGRAM": {},
    "NOTIFY_RETRIES": 3,
    "NOTIFY_DELAY": 1.0,
}

_TRUE = {"1", "true", "yes", "on", "y"}


class ConfigManager:
    """Typed, defaulted view over the flat config dict."""

    def __init__(self, config: Dict[str, Any]):
        # allow ConfigManager(ConfigManager(...))
        self.config = config.config if isinstance(config, ConfigManager) else dict(config or {})

    def get(self, key: str, default: Any = None) -> Any:
        value = self.config.get(key)
        if value is None or value == "":
            return DEFAULTS.get(key, default) if default is None else default
        return value

    def get_int(self, key: str, default: Any = None) -> int:
        return int(float(self.get(key, default)))

    def get_float(self, key: str, default: Any = None) -> float:
        return float(self.get(key, default))

    def get_bool(self, key: str, default: Any = None) -> bool:
        value = self.get(key, default)
        if isinstance(value, str):
            return value.strip().lower() in _TRUE
        return bool(value)

    def get_symbols(self) -> List[str]:
        symbols = self.config.get("SYMBOLS") or self.config.get("symbols") or []
        if isinstance(symbols, str):
            symbols = [s for s in symbols.split(",")]
        return [s.strip().upper() for s in symbols if s and s.strip()]

    def get_timeframe(self) -> str:
        return normalize_tf(str(self.get("TIMEFRAME")))

    def get_timeframe_seconds(self) -> int:
        return timeframe_seconds(self.get_timeframe())

    def get_cycle_seconds(self) -> float:
        """Length of one watchlist check cycle (defaults to one candle)."""
        value = self.config.get("WATCHLIST_CYCLE_SECONDS")
        if value in (None, ""):
            return float(self.get_timeframe_seconds())
        return float(value)

    def get_telegram(self) -> Dict[str, Any]:
        return self.config.get("TELEGRAM") or {}

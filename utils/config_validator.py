from utils.config_manager import ConfigManager
from utils.timeframe import SECONDS_PER_TF

_POSITIVE_FLOATS = [
    "VOLUME_THRESHOLD",
    "PRICE_THRESHOLD",
    "CONSOLIDATION_THRESHOLD",
    "ENTRY_LEVEL_PERCENT",
    "CANCEL_LEVEL_PERCENT",
    "STOP_LOSS_PERCENT",
    "TAKE_PROFIT_PERCENT",
    "TRADE_MONITOR_INTERVAL",
    "WATCHLIST_MONITOR_INTERVAL",
    "ANOMALY_SCAN_INTERVAL",
]

_POSITIVE_INTS = [
    "HISTORICAL_WINDOW",
    "ENTRY_CONFIRMATION_TFS",
    "QUEUE_MAX_DEPTH",
    "SCAN_BATCH_SIZE",
    "WATCHLIST_BATCH_SIZE",
    "TRADE_BATCH_SIZE",
    "FETCH_RETRIES",
    "REQUESTS_PER_10S",
]


def validate_config(config: dict, universe: list = None):
    """Raise ValueError/TypeError when the configuration cannot run the bot."""
    cfg = ConfigManager(config)

    symbols = universe if universe is not None else cfg.get_symbols()
    if not isinstance(symbols, list):
        raise TypeError("SYMBOLS must be a list.")
    if not symbols:
        raise ValueError("The instrument universe is empty (set SYMBOLS or COINS_FILE).")

    tf = cfg.get_timeframe()
    if tf not in SECONDS_PER_TF:
        raise ValueError(f"Unsupported TIMEFRAME: {tf}")

    bad = []
    for key in _POSITIVE_FLOATS:
        try:
            if cfg.get_float(key) <= 0:
                bad.append(key)
        except (TypeError, ValueError):
            bad.append(key)
    for key in _POSITIVE_INTS:
        try:
            if cfg.get_int(key) < 1:
                bad.append(key)
        except (TypeError, ValueError):
            bad.append(key)
    if bad:
        raise ValueError(f"Configuration keys must be positive: {bad}")

    telegram = cfg.get_telegram()
    if not isinstance(telegram, dict):
        raise TypeError("TELEGRAM must be a dictionary.")

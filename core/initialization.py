"""
core/initialization.py
----------------------
Loads configuration from .env, resolves the instrument universe, and wires
all runtime components with simple dependency‑injection (DI) overrides.
"""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from core.engine import TradingCore
from module.persistence.json_store import JsonStatePersistence
from modules.anomaly_scanner import AnomalyScanner
from modules.cooldown import CooldownTracker
from modules.market_data import RetryingMarketData
from modules.rest_client import BinanceRestMarketData, RateLimiter
from modules.scheduler import PriorityScheduler, ScanRateLimiter
from modules.sl_tp_planner import SLTPPlanner
from modules.state_store import StateStore
from modules.statistics import SignalStatistics, TradingStatistics
from modules.trade_tracker import TradeTracker
from modules.watchlist import WatchlistStateMachine
from notifiers.hub import NotifierHub
from utils.config_manager import DEFAULTS, ConfigManager
from utils.config_validator import validate_config
from utils.logger import setup_logger

FILTERED_COINS_FILE = "data/filtered-coins.json"


def load_configuration(env_path: str = "config.env") -> Dict:
    """
    Load settings from an .env-style file and return a flat config dict.
    Keys that are not set in the environment are left out so the
    ConfigManager defaults apply.
    """
    log = logging.getLogger(__name__)
    load_dotenv(dotenv_path=env_path)

    conf: Dict[str, object] = {}
    for key in DEFAULTS:
        if key in ("SYMBOLS", "TELEGRAM"):
            continue
        value = os.getenv(key)
        if value not in (None, ""):
            conf[key] = value

    symbols_raw = os.getenv("SYMBOLS", "")
    conf["SYMBOLS"] = [s.strip().upper() for s in symbols_raw.split(",") if s.strip()]
    conf["TELEGRAM"] = {
        "token": os.getenv("TELEGRAM_TOKEN"),
        "chat_id": os.getenv("TELEGRAM_CHAT_ID"),
    }

    log.debug("Parsed SYMBOLS: %s", conf["SYMBOLS"])
    log.debug("Parsed TIMEFRAME: %s", conf.get("TIMEFRAME", DEFAULTS["TIMEFRAME"]))
    return conf


def _read_coins(path: Path, quote: str) -> List[str]:
    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    coins = data.get("coins", []) if isinstance(data, dict) else data
    universe = []
    for coin in coins:
        symbol = coin.get("symbol") if isinstance(coin, dict) else coin
        if not symbol:
            continue
        symbol = str(symbol).strip().upper()
        universe.append(symbol if "/" in symbol else f"{symbol}/{quote}")
    return universe


def load_universe(config: Dict, logger: Optional[logging.Logger] = None) -> List[str]:
    """SYMBOLS when given, otherwise the first readable coin-list file."""
    log = logger or logging.getLogger(__name__)
    cfg = ConfigManager(config)
    symbols = cfg.get_symbols()
    if symbols:
        return list(dict.fromkeys(symbols))

    quote = str(cfg.get("QUOTE_ASSET")).upper()
    for candidate in (cfg.get("COINS_FILE"), FILTERED_COINS_FILE):
        path = Path(candidate)
        if not path.exists():
            continue
        try:
            universe = _read_coins(path, quote)
        except (OSError, ValueError, AttributeError) as exc:
            log.warning("Could not read coin list %s: %s", path, exc)
            continue
        if universe:
            log.info("📋 Loaded %d instruments from %s", len(universe), path)
            return list(dict.fromkeys(universe))
    return []


def initialize_components(
    config: Dict,
    overrides: Optional[Dict[str, object]] = None,
    logger: Optional[logging.Logger] = None,
    ) -> Dict[str, object]:
    """
    Construct and wire together all runtime components (supports DI via overrides).

    Keys you can override:
    {"logger", "clock", "universe", "market_data", "store", "cooldowns",
     "notifier", "persistence", "planner", "scheduler"}
    """
    overrides = overrides or {}
    cfg = ConfigManager(config)

    # 1) Logger
    logger = overrides.get("logger") or logger or setup_logger("AnomalyBot")
    clock = overrides.get("clock") or time.time

    # 2) Universe + validation
    universe = overrides.get("universe")
    if universe is None:
        universe = load_universe(cfg.config, logger)
    validate_config(cfg.config, universe)

    # 3) Market data, wrapped in the transient-retry policy
    market_data = overrides.get("market_data")
    if market_data is None:
        rest = BinanceRestMarketData(
            base_url=cfg.get("BINANCE_BASE_URL"),
            logger=logger.getChild("rest"),
            rate_limiter=RateLimiter(max_requests_per_10s=cfg.get_int("REQUESTS_PER_10S")),
        )
        market_data = RetryingMarketData(
            rest,
            attempts=cfg.get_int("FETCH_RETRIES"),
            delay=cfg.get_float("FETCH_RETRY_DELAY"),
            logger=logger.getChild("rest"),
        )

    # 4) State, cooldowns, statistics
    store = overrides.get("store") or StateStore()
    cooldowns = overrides.get("cooldowns") or CooldownTracker(
        cfg.get_int("ANOMALY_COOLDOWN_TFS") * cfg.get_timeframe_seconds(), clock=clock
    )
    signal_stats = SignalStatistics()
    trading_stats = TradingStatistics()

    # 5) Ports
    notifier = overrides.get("notifier") or NotifierHub(cfg.config, logger=logger.getChild("notify"))
    persistence = overrides.get("persistence") or JsonStatePersistence(
        cfg.get("DATA_DIR"), logger=logger.getChild("persistence")
    )

    # 6) Domain components
    planner = overrides.get("planner") or SLTPPlanner(
        stop_loss_percent=cfg.get_float("STOP_LOSS_PERCENT"),
        base_take_profit_percent=cfg.get_float("TAKE_PROFIT_PERCENT"),
        breakeven_progress=cfg.get_float("BREAKEVEN_PROGRESS"),
        breakeven_lock_percent=cfg.get_float("BREAKEVEN_LOCK_PERCENT"),
    )
    scanner = AnomalyScanner(market_data, cooldowns, store, cfg.config,
                             logger=logger.getChild("scanner"), clock=clock)
    trade_tracker = TradeTracker(store, notifier, planner, cfg.config, market_data=market_data,
                                 logger=logger.getChild("trades"), clock=clock)
    watchlist = WatchlistStateMachine(store, market_data, trade_tracker, notifier, signal_stats,
                                      cfg.config, logger=logger.getChild("watchlist"), clock=clock)

    # 7) Scheduler (the scan factory is bound by TradingCore)
    scheduler = overrides.get("scheduler") or PriorityScheduler(
        max_depth=cfg.get_int("QUEUE_MAX_DEPTH"),
        scan_limiter=ScanRateLimiter(cfg.get_float("SCAN_MIN_INTERVAL"),
                                     cfg.get_float("SCAN_MAX_DURATION"), clock=clock),
        logger=logger.getChild("scheduler"),
        clock=clock,
    )

    core = TradingCore(
        cfg.config, universe, market_data, store, cooldowns, scanner, watchlist,
        trade_tracker, scheduler, notifier, persistence, signal_stats, trading_stats,
        logger=logger,
    )

    logger.info("✅ Universe: %d instruments", len(universe))
    logger.info("✅ Market data: %s", market_data.__class__.__name__)
    logger.info("✅ Notifier: %s", notifier.__class__.__name__)
    logger.info("✅ Persistence: %s", persistence.__class__.__name__)

    return {
        "logger": logger,
        "universe": universe,
        "market_data": market_data,
        "store": store,
        "cooldowns": cooldowns,
        "scanner": scanner,
        "watchlist": watchlist,
        "trade_tracker": trade_tracker,
        "scheduler": scheduler,
        "notifier": notifier,
        "persistence": persistence,
        "core": core,
    }

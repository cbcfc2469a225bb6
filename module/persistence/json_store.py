"""
persistence/json_store.py
-------------------------
JSON snapshot store for trades, watchlist entries, trade history and
statistics.

Current list-document schema::

    {"meta": {"version": "2.0", "lastModified": "...", "count": n},
     "records": [ {...}, ... ]}

A bare list is the legacy schema.  It is read, its camelCase records are
mapped onto the current field names, and the file is rewritten in place.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from models.anomaly import WatchlistEntry
from models.trade import Trade
from module.persistence.base import PersistedState, PersistencePort

SCHEMA_VERSION = "2.0"

ACTIVE_TRADES = "active-trades.json"
PENDING_ANOMALIES = "pending-anomalies.json"
TRADE_HISTORY = "trade-history.json"
STATISTICS = "trading-statistics.json"

M = TypeVar("M", bound=BaseModel)

# legacy camelCase keys -> current field names
_LEGACY_KEYS = {
    "symbol": "instrument",
    "tradeType": "direction",
    "type": "direction",
    "anomalyTime": "detected_at",
    "anomalyPrice": "anomaly_price",
    "historicalPrice": "baseline_price",
    "volumeLeverage": "volume_leverage",
    "watchlistTime": "watchlist_entered_at",
    "currentVolume": "anomaly_volume",
    "isConsolidated": "is_consolidated",
    "closePrice": "close_price",
    "entryLevel": "entry_level",
    "cancelLevel": "cancel_level",
    "maxPrice": "max_price_seen",
    "minPrice": "min_price_seen",
    "anomalyId": "anomaly_id",
    "entryPrice": "entry_price",
    "stopLoss": "stop_loss",
    "takeProfit": "take_profit",
    "entryTime": "opened_at",
    "lastPrice": "last_price",
    "lastUpdateTime": "last_updated_at",
    "exitPrice": "exit_price",
    "exitTime": "closed_at",
    "closeReason": "exit_reason",
    "profitLoss": "profit_loss",
    "bezubitok": "breakeven",
}

_LEGACY_REASONS = {"take_profit": "target", "stop_loss": "stop"}


def _migrate_record(raw: Dict[str, Any], model: Type[BaseModel]) -> Dict[str, Any]:
    out = {_LEGACY_KEYS.get(k, k): v for k, v in raw.items() if v is not None}

    if model is WatchlistEntry:
        # anomalyId is the watchlist entry's own id
        if "id" not in out and "anomaly_id" in out:
            out["id"] = out.pop("anomaly_id")
        out.setdefault("detected_at", out.get("watchlist_entered_at"))
        out.setdefault("watchlist_entered_at", out.get("detected_at"))
    else:
        if isinstance(out.get("status"), str):
            out["status"] = out["status"].capitalize()
        if out.get("exit_reason") in _LEGACY_REASONS:
            out["exit_reason"] = _LEGACY_REASONS[out["exit_reason"]]
        out.setdefault("last_price", out.get("entry_price"))
        out.setdefault("last_updated_at", out.get("opened_at"))
        if "take_profit_percent" not in out and out.get("entry_price") and out.get("take_profit"):
            out["take_profit_percent"] = abs(out["take_profit"] / out["entry_price"] - 1)
        if isinstance(out.get("duration"), (int, float)):
            out["duration_seconds"] = out.pop("duration") / 1000
    return out


class JsonStatePersistence(PersistencePort):
    def __init__(self, data_dir: str = "data", logger: Optional[logging.Logger] = None):
        self.data_dir = Path(data_dir)
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    # ------------------------------------------------------------------ #
    # Load
    # ------------------------------------------------------------------ #
    def load_state(self) -> PersistedState:
        trades = self._load_models(ACTIVE_TRADES, Trade)
        watchlist = self._load_models(PENDING_ANOMALIES, WatchlistEntry)
        history = self._load_models(TRADE_HISTORY, Trade)
        stats = self._read_json(STATISTICS)
        stats = stats if isinstance(stats, dict) else {}
        leads = stats.get("signals", {}).get("leads", [])
        self.logger.info("📂 Loaded %d trades, %d watchlist entries, %d closed trades",
                         len(trades), len(watchlist), len(history))
        return PersistedState(trades, watchlist, history, list(leads), stats)

    def _load_models(self, filename: str, model: Type[M]) -> List[M]:
        records, legacy = self._read_records(filename)
        items: List[M] = []
        for raw in records:
            if not isinstance(raw, dict):
                self.logger.warning("Skipping non-object record in %s", filename)
                continue
            data = _migrate_record(raw, model) if legacy else raw
            try:
                items.append(model.model_validate(data))
            except ValidationError as exc:
                self.logger.warning("Skipping malformed record in %s: %s", filename,
                                    exc.errors()[0].get("msg") if exc.errors() else exc)
        if legacy:
            self.logger.info("Migrating %s from the legacy list schema", filename)
            self._write_records(filename, items)
        return items

    def _read_records(self, filename: str) -> Tuple[List[Any], bool]:
        data = self._read_json(filename)
        if data is None:
            return [], False
        if isinstance(data, list):
            return data, True
        if isinstance(data, dict) and isinstance(data.get("records"), list):
            return data["records"], False
        self.logger.warning("Unrecognised layout in %s, ignoring it", filename)
        return [], False

    def _read_json(self, filename: str) -> Any:
        path = self.data_dir / filename
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            self.logger.warning("Could not read %s: %s", path, exc)
            return None

    # ------------------------------------------------------------------ #
    # Save
    # ------------------------------------------------------------------ #
    def save_state(self, state: PersistedState) -> bool:
        ok = self._write_records(ACTIVE_TRADES, state.trades)
        ok = self._write_records(PENDING_ANOMALIES, state.watchlist) and ok
        ok = self._write_records(TRADE_HISTORY, state.history) and ok
        stats = dict(state.statistics)
        stats["lastUpdated"] = datetime.now(timezone.utc).isoformat()
        ok = self._write_json(STATISTICS, stats) and ok
        return ok

    def _write_records(self, filename: str, items: List[BaseModel]) -> bool:
        doc = {
            "meta": {
                "version": SCHEMA_VERSION,
                "lastModified": datetime.now(timezone.utc).isoformat(),
                "count": len(items),
            },
            "records": [item.model_dump(mode="json") for item in items],
        }
        return self._write_json(filename, doc)

    def _write_json(self, filename: str, doc: Any) -> bool:
        path = self.data_dir / filename
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{filename}.", dir=self.data_dir)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(doc, fh, indent=2, ensure_ascii=False)
                os.replace(tmp, path)
            except BaseException:
                if os.path.exists(tmp):
                    os.remove(tmp)
                raise
        except OSError as exc:
            self.logger.warning("💾 Could not write %s: %s", path, exc)
            return False
        return True

import json
from unittest.mock import patch

import pytest

from core.initialization import load_configuration, load_universe
from utils.config_manager import ConfigManager
from utils.config_validator import validate_config
from utils.timeframe import normalize_tf, timeframe_seconds

# ------------------------- Tests ------------------------- #


def test_load_configuration_reads_environment(monkeypatch):
    monkeypatch.setenv("SYMBOLS", "btc/usdt, eth/usdt ,")
    monkeypatch.setenv("VOLUME_THRESHOLD", "5")
    monkeypatch.setenv("TELEGRAM_TOKEN", "123:abc")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "42")
    monkeypatch.delenv("TIMEFRAME", raising=False)

    with patch("core.initialization.load_dotenv") as load_dotenv:
        conf = load_configuration("custom.env")

    load_dotenv.assert_called_once_with(dotenv_path="custom.env")
    assert conf["SYMBOLS"] == ["BTC/USDT", "ETH/USDT"]
    assert conf["VOLUME_THRESHOLD"] == "5"
    assert conf["TELEGRAM"] == {"token": "123:abc", "chat_id": "42"}
    assert "TIMEFRAME" not in conf
    assert ConfigManager(conf).get_float("VOLUME_THRESHOLD") == 5.0


def test_config_manager_defaults_and_types():
    cfg = ConfigManager({"SCAN_BATCH_SIZE": "7", "BREAKEVEN_ENABLED": "no",
                         "SYMBOLS": "sol/usdt,ada/usdt", "TIMEFRAME": "1H", "PRICE_THRESHOLD": ""})

    assert cfg.get_int("SCAN_BATCH_SIZE") == 7
    assert cfg.get_bool("BREAKEVEN_ENABLED") is False
    assert cfg.get_symbols() == ["SOL/USDT", "ADA/USDT"]
    assert cfg.get_timeframe() == "1h"
    assert cfg.get_timeframe_seconds() == 3600
    assert cfg.get_cycle_seconds() == 3600.0
    assert cfg.get_float("PRICE_THRESHOLD") == 0.005
    assert cfg.get_int("QUEUE_MAX_DEPTH") == 50


def test_unknown_timeframe_raises():
    assert normalize_tf("15M") == "15m"
    assert timeframe_seconds("4h") == 14400
    with pytest.raises(ValueError):
        timeframe_seconds("7m")


@pytest.mark.parametrize(
    "overrides, error",
    [
        ({"SYMBOLS": []}, ValueError),
        ({"VOLUME_THRESHOLD": 0}, ValueError),
        ({"SCAN_BATCH_SIZE": "0"}, ValueError),
        ({"TELEGRAM": "token"}, TypeError),
    ],
)
def test_validate_config_rejects(config, overrides, error):
    config.update(overrides)
    with pytest.raises(error):
        validate_config(config)


def test_validate_config_accepts_fixture(config):
    validate_config(config)


def test_load_universe_prefers_symbols(config):
    config["SYMBOLS"] = ["BTC/USDT", "BTC/USDT", "ETH/USDT"]
    assert load_universe(config) == ["BTC/USDT", "ETH/USDT"]


def test_load_universe_from_coins_file(tmp_path):
    coins = tmp_path / "binance-coins.json"
    coins.write_text(json.dumps({"coins": [{"symbol": "btc"}, {"symbol": "ETH"}, {"name": "x"}],
                                 "meta": {"source": "test"}}))

    universe = load_universe({"SYMBOLS": [], "COINS_FILE": str(coins), "QUOTE_ASSET": "usdt"})

    assert universe == ["BTC/USDT", "ETH/USDT"]


def test_load_universe_skips_unreadable_file(tmp_path, caplog, monkeypatch):
    broken = tmp_path / "coins.json"
    broken.write_text("{not json")
    monkeypatch.chdir(tmp_path)

    assert load_universe({"COINS_FILE": str(broken)}) == []
    assert "Could not read coin list" in caplog.text

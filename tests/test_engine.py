import asyncio
from unittest.mock import patch

import pytest

from core.initialization import initialize_components
from models.anomaly import Direction, WatchlistState
from models.trade import ExitReason
from module.persistence.base import MemoryPersistence, PersistedState
from modules.market_data import UnknownInstrumentError

# ------------------------- Fixtures ------------------------- #


@pytest.fixture
def persistence():
    return MemoryPersistence()


@pytest.fixture
def components(config, market, notifier, persistence, clock, logger):
    return initialize_components(
        config,
        overrides={
            "logger": logger,
            "clock": clock,
            "market_data": market,
            "notifier": notifier,
            "persistence": persistence,
        },
    )


@pytest.fixture
def core(components):
    return components["core"]

# ------------------------- Tests ------------------------- #


@pytest.mark.asyncio
async def test_anomaly_to_closed_trade(core, market, notifier, persistence, frames, clock):
    market.frames["BTC/USDT"] = frames.anomaly()

    assert await core.run_anomaly_scan() == 1
    entry = core.store.get_entry("BTC/USDT")
    assert entry is not None and entry.volume_leverage == pytest.approx(3.1)
    assert persistence.saves == 1

    # three flat ticks: armed on the first, waiting on the others
    market.frames["BTC/USDT"] = frames.price(105.0)
    for _ in range(3):
        clock.advance(60)
        await core.run_watchlist_monitor()
    assert entry.state is WatchlistState.ARMED

    market.frames["BTC/USDT"] = frames.price(104.0)
    clock.advance(60)
    await core.run_watchlist_monitor()
    trade = core.store.get_trade("BTC/USDT")
    assert trade is not None
    assert trade.take_profit_percent == pytest.approx(0.025)

    market.frames["BTC/USDT"] = frames.price(trade.take_profit * 0.99)
    clock.advance(60)
    await core.run_trade_monitor()

    assert core.store.get_trade("BTC/USDT") is None
    assert core.store.history()[0].exit_reason is ExitReason.TARGET
    assert notifier.types() == [
        "anomaly_detected", "watchlist_armed", "trade_opened", "trade_breakeven", "trade_closed",
    ]
    saved = persistence.state.statistics
    assert saved["trading"]["totalTrades"] == 1
    assert saved["signals"]["convertedToTrade"] == 1


@pytest.mark.asyncio
async def test_scan_skips_cooling_and_busy_instruments(core, market, frames):
    market.frames["BTC/USDT"] = frames.anomaly()
    market.frames["ETH/USDT"] = frames.anomaly(anomaly_volume=150.0)

    await core.run_anomaly_scan()
    assert sorted(market.instruments_called()) == ["BTC/USDT", "ETH/USDT"]

    market.calls.clear()
    await core.run_anomaly_scan()
    # BTC is watchlisted; ETH had no anomaly and is still eligible
    assert market.instruments_called() == ["ETH/USDT"]


@pytest.mark.asyncio
async def test_unknown_instrument_leaves_the_universe(core, market, frames):
    market.errors["ETH/USDT"] = UnknownInstrumentError("Invalid symbol.")
    market.frames["BTC/USDT"] = frames.anomaly(anomaly_volume=150.0)

    await core.run_anomaly_scan()
    market.calls.clear()
    await core.run_anomaly_scan()

    assert market.instruments_called() == ["BTC/USDT"]
    assert "ETH/USDT" in core.store.excluded


@pytest.mark.asyncio
async def test_scan_batches_respect_batch_size(config, market, notifier, persistence, clock,
                                               logger, frames):
    config["SYMBOLS"] = [f"C{i}/USDT" for i in range(23)]
    config["SCAN_BATCH_SIZE"] = 10
    core = initialize_components(config, overrides={
        "logger": logger, "clock": clock, "market_data": market,
        "notifier": notifier, "persistence": persistence,
    })["core"]

    sleeps = []
    real_sleep = asyncio.sleep

    async def fake_sleep(delay):
        sleeps.append(delay)
        await real_sleep(0)

    with patch("core.engine.asyncio.sleep", fake_sleep):
        await core.run_anomaly_scan()

    assert len(market.calls) == 23
    assert sleeps == [0.0, 0.0]


def test_load_state_restores_and_snapshot(core, persistence, market, frames, clock):
    record = core.scanner.evaluate("BTC/USDT", frames.anomaly(), clock())
    core.watchlist.accept(record)
    core.save_state()

    restored = initialize_components(core.config.config, overrides={
        "logger": core.logger, "clock": clock, "market_data": market,
        "persistence": persistence, "notifier": core.notifier,
    })["core"]
    restored.load_state()

    snap = restored.snapshot()
    assert [e["instrument"] for e in snap["watchlist"]] == ["BTC/USDT"]
    assert snap["trades"] == []
    assert snap["status"]["watchlist"] == 1
    assert snap["status"]["signals"]["totalLeads"] == 0


@pytest.mark.asyncio
async def test_publish_status_event(core, notifier):
    await core.publish_status()

    event = notifier.events[-1]
    assert event.type.value == "periodic_status"
    assert event.payload["open_trades"] == 0
    assert "queueDepth" in event.payload["scheduler"]


@pytest.mark.asyncio
async def test_stop_saves_and_closes(core, market, persistence):
    await core.stop()
    await core.stop()

    assert persistence.saves == 1
    assert market.closed


@pytest.mark.asyncio
async def test_startup_restore_emits_status_when_trades_exist(core, persistence, notifier):
    core.trade_tracker.open_trade("BTC/USDT", Direction.LONG, 100.0)
    persistence.state = PersistedState(trades=core.store.trades())
    core.store.restore([], [], [])

    async def stop_soon():
        await asyncio.sleep(0.05)
        await core.scheduler.stop()

    stopper = asyncio.create_task(stop_soon())
    await asyncio.wait_for(core.run(), timeout=2)
    await stopper

    assert core.store.is_traded("BTC/USDT")
    assert "periodic_status" in notifier.types()

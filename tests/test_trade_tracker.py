import pytest

from models.anomaly import Direction
from models.trade import ExitReason, TradeStatus
from modules.market_data import UnknownInstrumentError
from modules.sl_tp_planner import SLTPPlanner
from modules.state_store import InstrumentBusyError, StateStore
from modules.trade_tracker import TradeTracker

# ------------------------- Fixtures ------------------------- #


@pytest.fixture
def store():
    return StateStore()


@pytest.fixture
def tracker(store, notifier, config, market, clock, logger):
    return TradeTracker(store, notifier, SLTPPlanner(), config, market_data=market,
                        logger=logger, clock=clock)

# ------------------------- Tests ------------------------- #


def test_take_profit_is_monotonic_in_leverage():
    planner = SLTPPlanner()
    percents = [planner.take_profit_percent(lev) for lev in (3.1, 8, 10, 12, 16, 20, 40)]

    assert percents == sorted(percents)
    assert percents == pytest.approx([0.025, 0.03, 0.035, 0.04, 0.045, 0.05, 0.05])
    assert planner.take_profit_percent(9.99) == pytest.approx(0.03)


def test_open_long_levels(tracker, store, notifier):
    trade = tracker.open_trade("BTC/USDT", Direction.LONG, 100.0, volume_leverage=12.5)

    assert trade.stop_loss == pytest.approx(99.5)
    assert trade.take_profit == pytest.approx(104.0)
    assert trade.status is TradeStatus.OPEN
    assert store.get_trade("BTC/USDT") is trade
    assert notifier.types() == ["trade_opened"]


def test_open_short_levels(tracker):
    trade = tracker.open_trade("ETH/USDT", Direction.SHORT, 200.0, volume_leverage=3.0)

    assert trade.stop_loss == pytest.approx(201.0)
    assert trade.take_profit == pytest.approx(195.0)


def test_second_trade_for_instrument_is_rejected(tracker):
    tracker.open_trade("BTC/USDT", Direction.LONG, 100.0)
    with pytest.raises(InstrumentBusyError):
        tracker.open_trade("BTC/USDT", Direction.SHORT, 100.0)


@pytest.mark.parametrize(
    "direction, price, reason, sign",
    [
        (Direction.LONG, 103.0, ExitReason.TARGET, 1),
        (Direction.LONG, 99.4, ExitReason.STOP, -1),
        (Direction.SHORT, 97.0, ExitReason.TARGET, 1),
        (Direction.SHORT, 100.6, ExitReason.STOP, -1),
    ],
)
def test_exit_conditions(tracker, store, notifier, clock, direction, price, reason, sign):
    trade = tracker.open_trade("BTC/USDT", direction, 100.0)
    clock.advance(120)

    assert tracker.update(trade, price) is reason
    assert trade.status is TradeStatus.CLOSED
    assert trade.exit_price == price
    assert trade.duration_seconds == pytest.approx(120)
    assert (trade.profit_loss > 0) == (sign > 0)
    assert store.get_trade("BTC/USDT") is None
    assert store.history() == [trade]
    assert notifier.types()[-1] == "trade_closed"


def test_price_between_levels_keeps_trade_open(tracker, store):
    trade = tracker.open_trade("BTC/USDT", Direction.LONG, 100.0)

    assert tracker.update(trade, 100.3) is None
    assert trade.last_price == 100.3
    assert store.is_traded("BTC/USDT")


def test_breakeven_ratchet(tracker, notifier):
    trade = tracker.open_trade("BTC/USDT", Direction.LONG, 100.0)

    # past 20% of the 2.5 target distance
    tracker.update(trade, 100.6)
    assert trade.breakeven
    assert trade.stop_loss == pytest.approx(100.0)
    assert notifier.types().count("trade_breakeven") == 1

    tracker.update(trade, 100.4)
    assert trade.stop_loss == pytest.approx(100.0)
    assert notifier.types().count("trade_breakeven") == 1

    assert tracker.update(trade, 100.0) is ExitReason.STOP
    assert trade.profit_loss == pytest.approx(0.0)


def test_breakeven_short(tracker):
    trade = tracker.open_trade("BTC/USDT", Direction.SHORT, 100.0)

    tracker.update(trade, 99.4)

    assert trade.breakeven
    assert trade.stop_loss == pytest.approx(100.0)


def test_breakeven_disabled(store, notifier, config, clock, logger):
    config["BREAKEVEN_ENABLED"] = "false"
    tracker = TradeTracker(store, notifier, SLTPPlanner(), config, logger=logger, clock=clock)
    trade = tracker.open_trade("BTC/USDT", Direction.LONG, 100.0)

    tracker.update(trade, 101.0)

    assert not trade.breakeven
    assert trade.stop_loss == pytest.approx(99.5)


def test_trade_timeout(store, notifier, config, clock, logger):
    config["MAX_TRADE_HOURS"] = 1
    tracker = TradeTracker(store, notifier, SLTPPlanner(), config, logger=logger, clock=clock)
    trade = tracker.open_trade("BTC/USDT", Direction.LONG, 100.0)

    clock.advance(3599)
    assert tracker.update(trade, 100.1) is None
    clock.advance(1)
    assert tracker.update(trade, 100.1) is ExitReason.TIMEOUT


@pytest.mark.asyncio
async def test_delisted_instrument_closes_trade_at_last_price(store, notifier, config, market,
                                                              clock, logger):
    config["MAX_TRADE_HOURS"] = 1
    tracker = TradeTracker(store, notifier, SLTPPlanner(), config, market_data=market,
                           logger=logger, clock=clock)
    trade = tracker.open_trade("BTC/USDT", Direction.LONG, 100.0)
    tracker.update(trade, 100.2)
    market.errors["BTC/USDT"] = UnknownInstrumentError("Invalid symbol.")

    clock.advance(3600)
    assert await tracker.run_cycle() == [ExitReason.DELISTED]

    assert not store.is_traded("BTC/USDT")
    assert store.is_excluded("BTC/USDT")
    closed = store.history()[-1]
    assert closed.exit_price == pytest.approx(100.2)
    assert closed.profit_loss == pytest.approx(0.2)
    assert notifier.types()[-1] == "trade_closed"

    # nothing left to re-fetch on later ticks
    market.calls.clear()
    clock.advance(3600)
    assert await tracker.run_cycle() == []
    assert market.calls == []


@pytest.mark.asyncio
async def test_run_cycle_closes_on_latest_close(tracker, market, store, frames):
    tracker.open_trade("BTC/USDT", Direction.LONG, 100.0)
    tracker.open_trade("ETH/USDT", Direction.SHORT, 100.0)
    market.frames["BTC/USDT"] = frames.price(103.0)
    market.frames["ETH/USDT"] = frames.price(100.1)

    results = await tracker.run_cycle()

    assert results == [ExitReason.TARGET, None]
    assert not store.is_traded("BTC/USDT")
    assert store.is_traded("ETH/USDT")

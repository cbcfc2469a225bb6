import pytest

from models.anomaly import Direction, WatchlistEntry
from modules.anomaly_scanner import AnomalyScanner
from modules.cooldown import CooldownTracker
from modules.market_data import TransientFetchError, UnknownInstrumentError
from modules.state_store import StateStore

# ------------------------- Fixtures ------------------------- #


@pytest.fixture
def store():
    return StateStore()


@pytest.fixture
def cooldowns(clock):
    return CooldownTracker(4 * 900, clock=clock)


@pytest.fixture
def scanner(market, cooldowns, store, config, clock, logger):
    return AnomalyScanner(market, cooldowns, store, config, logger=logger, clock=clock)

# ------------------------- Tests ------------------------- #


def test_reference_scenario_is_short_with_leverage(scanner, frames, clock):
    record = scanner.evaluate("BTC/USDT", frames.anomaly(), clock())

    assert record is not None
    assert record.direction is Direction.SHORT
    assert record.volume_leverage == pytest.approx(3.1)
    assert record.anomaly_price == pytest.approx(105.0)
    assert record.baseline_price == pytest.approx(100.0)
    assert record.id == f"BTC_{int(clock() * 1000)}"
    assert record.detected_at == record.watchlist_entered_at


def test_volume_exactly_at_threshold_does_not_trigger(scanner, frames, clock, cooldowns):
    assert scanner.evaluate("BTC/USDT", frames.anomaly(anomaly_volume=300.0), clock()) is None
    assert not cooldowns.is_active("BTC/USDT")

    record = scanner.evaluate("BTC/USDT", frames.anomaly(anomaly_volume=300.01), clock())
    assert record is not None


def test_price_below_baseline_is_long(scanner, frames, clock):
    record = scanner.evaluate("BTC/USDT", frames.anomaly(anomaly_price=95.0), clock())
    assert record.direction is Direction.LONG


def test_undetermined_direction_still_cools_down(scanner, frames, clock, cooldowns):
    frame = frames.anomaly(anomaly_volume=500.0, anomaly_price=100.5)

    assert scanner.evaluate("BTC/USDT", frame, clock()) is None
    assert cooldowns.is_active("BTC/USDT")


def test_high_leverage_uses_lowered_threshold(scanner, frames, clock):
    # +0.8%: inside the normal 1% band, outside the 0.5% secondary band
    weak = frames.anomaly(anomaly_volume=500.0, anomaly_price=100.8)
    strong = frames.anomaly(anomaly_volume=2500.0, anomaly_price=100.8)

    assert scanner.evaluate("ETH/USDT", weak, clock()) is None
    record = scanner.evaluate("BTC/USDT", strong, clock())
    assert record is not None
    assert record.direction is Direction.SHORT
    assert record.volume_leverage == pytest.approx(25.0)


def test_insufficient_samples_skip_without_cooldown(scanner, frames, clock, cooldowns):
    short = frames.anomaly().tail(5)
    assert scanner.evaluate("BTC/USDT", short, clock()) is None
    assert not cooldowns.is_active("BTC/USDT")


def test_determine_direction_is_pure():
    results = {AnomalyScanner.determine_direction(105.0, 100.0, 0.01) for _ in range(5)}
    assert results == {Direction.SHORT}
    assert AnomalyScanner.determine_direction(100.5, 100.0, 0.01) is None
    assert AnomalyScanner.determine_direction(98.0, 100.0, 0.01) is Direction.LONG
    # the band edge itself is undetermined
    assert AnomalyScanner.determine_direction(101.0, 100.0, 0.01) is None


@pytest.mark.asyncio
async def test_scan_fetches_window_plus_two(scanner, market, frames):
    market.frames["BTC/USDT"] = frames.anomaly()

    record = await scanner.scan("BTC/USDT")

    assert record is not None
    assert market.calls == [("BTC/USDT", "15m", None, 10)]


@pytest.mark.asyncio
async def test_cooling_instrument_is_not_rescanned(scanner, market, frames, clock):
    market.frames["BTC/USDT"] = frames.anomaly()
    assert await scanner.scan("BTC/USDT") is not None

    clock.advance(4 * 900 - 1)
    assert await scanner.scan("BTC/USDT") is None
    assert len(market.calls) == 1

    clock.advance(1)
    assert await scanner.scan("BTC/USDT") is not None
    assert len(market.calls) == 2


@pytest.mark.asyncio
async def test_busy_instrument_is_skipped(scanner, market, store, frames, clock):
    record = scanner.evaluate("BTC/USDT", frames.anomaly(), clock())
    store.add_entry(WatchlistEntry.from_record(record))
    clock.advance(10_000)

    assert await scanner.scan("BTC/USDT") is None
    assert market.calls == []


@pytest.mark.asyncio
async def test_unknown_instrument_is_excluded(scanner, market, store):
    market.errors["XYZ/USDT"] = UnknownInstrumentError("Invalid symbol.")

    assert await scanner.scan("XYZ/USDT") is None
    assert store.is_excluded("XYZ/USDT")

    assert await scanner.scan("XYZ/USDT") is None
    assert len(market.calls) == 1


@pytest.mark.asyncio
async def test_transient_error_skips_tick(scanner, market, store, cooldowns):
    market.errors["BTC/USDT"] = TransientFetchError("timeout")

    assert await scanner.scan("BTC/USDT") is None
    assert not store.is_excluded("BTC/USDT")
    assert not cooldowns.is_active("BTC/USDT")

"""
notifiers/formatting.py
-----------------------
Plain-text captions for lifecycle events.  Payloads are the JSON dumps of
the records involved, so every lookup tolerates a missing key.
"""
from __future__ import annotations

from typing import Any, Callable, Dict

from models.events import Event, EventType


def _price(value: Any) -> str:
    return f"{value:.6f}" if isinstance(value, (int, float)) else "N/A"


def _leverage(value: Any) -> str:
    return f"{value:.1f}x" if isinstance(value, (int, float)) else "N/A"


def _emoji(direction: Any) -> str:
    return "🟢" if direction == "Long" else "🔴"


def _anomaly(e: Event) -> str:
    p = e.payload
    anomaly, baseline = p.get("anomaly_price"), p.get("baseline_price")
    change = (anomaly - baseline) / baseline * 100 if anomaly and baseline else 0.0
    return (
        f"🚨 ANOMALY {e.instrument} → {p.get('direction')} {_emoji(p.get('direction'))}\n"
        f"Volume {_leverage(p.get('volume_leverage'))}   Price {_price(anomaly)} ({change:+.2f}%)\n"
        f"ID {p.get('id', 'N/A')}\n"
        f"Added to watchlist"
    )


def _armed(e: Event) -> str:
    p = e.payload
    return (
        f"🎯 ARMED {e.instrument} → {p.get('direction')}\n"
        f"Entry {_price(p.get('entry_level'))}   Cancel {_price(p.get('cancel_level'))}"
    )


def _cancelled(e: Event) -> str:
    p = e.payload
    return (
        f"❌ WATCHLIST CANCELLED {e.instrument} ({p.get('reason', 'n/a')})\n"
        f"Direction {p.get('direction')}   Volume {_leverage(p.get('volume_leverage'))}"
    )


def _timed_out(e: Event) -> str:
    p = e.payload
    return (
        f"⏰ WATCHLIST TIMEOUT {e.instrument}\n"
        f"Direction {p.get('direction')}   Volume {_leverage(p.get('volume_leverage'))}"
    )


def _opened(e: Event) -> str:
    p = e.payload
    tp_pct = p.get("take_profit_percent")
    tp_text = f" ({tp_pct * 100:.1f}%)" if isinstance(tp_pct, (int, float)) else ""
    return (
        f"💰 NEW TRADE {e.instrument} → {p.get('direction')} {_emoji(p.get('direction'))}\n"
        f"Entry {_price(p.get('entry_price'))}\n"
        f"SL {_price(p.get('stop_loss'))}   TP {_price(p.get('take_profit'))}{tp_text}\n"
        f"Volume {_leverage(p.get('volume_leverage'))}"
    )


def _breakeven(e: Event) -> str:
    p = e.payload
    return (
        f"🛡 BREAKEVEN {e.instrument} → {p.get('direction')}\n"
        f"Last {_price(p.get('last_price'))}   New SL {_price(p.get('stop_loss'))}"
    )


def _closed(e: Event) -> str:
    p = e.payload
    pnl = p.get("profit_loss")
    pnl_text = f"{pnl:+.2f}%" if isinstance(pnl, (int, float)) else "N/A"
    emoji = "🟢" if isinstance(pnl, (int, float)) and pnl >= 0 else "🔴"
    return (
        f"{emoji} CLOSED {e.instrument} → {p.get('direction')} ({p.get('exit_reason')})\n"
        f"Entry {_price(p.get('entry_price'))}   Exit {_price(p.get('exit_price'))}\n"
        f"Result {pnl_text}"
    )


def _status(e: Event) -> str:
    p = e.payload
    trading = p.get("trading", {})
    signals = p.get("signals", {})
    return (
        f"📊 STATUS\n"
        f"Open trades {p.get('open_trades', 0)}   Watchlist {p.get('watchlist', 0)}   "
        f"Queue {p.get('queue_depth', 0)}\n"
        f"Trades {trading.get('totalTrades', 0)}   Win rate {trading.get('winRate', 0)}%   "
        f"Total {trading.get('totalProfit', 0)}%\n"
        f"Leads {signals.get('totalLeads', 0)}   Converted {signals.get('convertedToTrade', 0)}"
    )


_FORMATTERS: Dict[EventType, Callable[[Event], str]] = {
    EventType.ANOMALY_DETECTED: _anomaly,
    EventType.WATCHLIST_ARMED: _armed,
    EventType.WATCHLIST_CANCELLED: _cancelled,
    EventType.WATCHLIST_TIMED_OUT: _timed_out,
    EventType.TRADE_OPENED: _opened,
    EventType.TRADE_BREAKEVEN: _breakeven,
    EventType.TRADE_CLOSED: _closed,
    EventType.PERIODIC_STATUS: _status,
}


def format_event(event: Event) -> str:
    formatter = _FORMATTERS.get(event.type)
    if formatter is None:
        return f"{event.type.value} {event.instrument or ''}".strip()
    return formatter(event)

"""
statistics.py
-------------
Lead (watchlist outcome) and trading statistics.  Pure bookkeeping: the
state machine and trade tracker report into it, persistence and the
periodic status read snapshots out of it.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from models.anomaly import WatchlistEntry
from models.trade import Trade

logger = logging.getLogger(__name__)

# upper bounds of the leverage histogram buckets; the last bucket is open
LEVERAGE_BUCKETS = [8, 10, 12, 16, 20]


def leverage_bucket(leverage: Optional[float]) -> str:
    if leverage is None:
        return "n/a"
    lower = 0
    for upper in LEVERAGE_BUCKETS:
        if leverage < upper:
            return f"{lower}-{upper}x"
        lower = upper
    return f">={LEVERAGE_BUCKETS[-1]}x"


@dataclass
class LeadRecord:
    instrument: str
    anomaly_id: str
    direction: str
    volume_leverage: Optional[float]
    outcome: str  # consolidation | cancel | timeout | entry | unknown_instrument
    converted: bool
    watchlist_entered_at: str
    lifetime_minutes: float
    created_at: str


class SignalStatistics:
    """Conversion counters, direction counters and leverage distribution.

    Every lead is kept for the life of the data directory: the summary is
    recomputed from the full list, so trimming it would change the figures.
    """

    def __init__(self, leads: Optional[Iterable[Dict[str, Any]]] = None) -> None:
        self.leads: List[LeadRecord] = []
        self.restore(leads or [])

    def restore(self, leads: Iterable[Dict[str, Any]]) -> None:
        """Replace the lead list with persisted records."""
        self.leads = []
        for raw in leads:
            try:
                self.leads.append(LeadRecord(**raw))
            except TypeError as exc:
                logger.warning("Skipping malformed lead record: %s", exc)

    def record(self, entry: WatchlistEntry, outcome: str, converted: bool,
               now: Optional[datetime] = None) -> LeadRecord:
        now = now or datetime.now(timezone.utc)
        lifetime = (now - entry.watchlist_entered_at).total_seconds() / 60
        lead = LeadRecord(
            instrument=entry.instrument,
            anomaly_id=entry.id,
            direction=entry.direction.value,
            volume_leverage=entry.volume_leverage,
            outcome=outcome,
            converted=converted,
            watchlist_entered_at=entry.watchlist_entered_at.isoformat(),
            lifetime_minutes=round(lifetime, 1),
            created_at=now.isoformat(),
        )
        self.leads.append(lead)
        logger.debug("Lead %s recorded: %s (converted=%s)", entry.instrument, outcome, converted)
        return lead

    def summary(self) -> Dict[str, Any]:
        total = len(self.leads)
        converted = sum(1 for lead in self.leads if lead.converted)
        outcomes: Dict[str, int] = {}
        directions: Dict[str, int] = {}
        leverage: Dict[str, int] = {}
        for lead in self.leads:
            outcomes[lead.outcome] = outcomes.get(lead.outcome, 0) + 1
            directions[lead.direction] = directions.get(lead.direction, 0) + 1
            bucket = leverage_bucket(lead.volume_leverage)
            leverage[bucket] = leverage.get(bucket, 0) + 1
        avg_lifetime = sum(lead.lifetime_minutes for lead in self.leads) / total if total else 0.0
        return {
            "totalLeads": total,
            "convertedToTrade": converted,
            "conversionRate": round(converted / total * 100, 1) if total else 0.0,
            "averageLeadLifetimeMinutes": round(avg_lifetime, 1),
            "outcomes": outcomes,
            "directions": directions,
            "leverageDistribution": leverage,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {**self.summary(), "leads": [asdict(lead) for lead in self.leads]}


class TradingStatistics:
    """Figures derived from the closed-trade history."""

    def __init__(self, started_at: Optional[datetime] = None) -> None:
        self.started_at = started_at or datetime.now(timezone.utc)

    def summary(self, history: List[Trade]) -> Dict[str, Any]:
        closed = [t for t in history if t.profit_loss is not None]
        total = len(closed)
        wins = sum(1 for t in closed if t.profit_loss > 0)
        losses = sum(1 for t in closed if t.profit_loss < 0)
        total_profit = sum(t.profit_loss for t in closed)
        best = max(closed, key=lambda t: t.profit_loss, default=None)
        worst = min(closed, key=lambda t: t.profit_loss, default=None)

        def brief(trade: Optional[Trade]) -> Optional[Dict[str, Any]]:
            if trade is None:
                return None
            return {
                "instrument": trade.instrument,
                "direction": trade.direction.value,
                "profitLoss": round(trade.profit_loss, 2),
                "openedAt": trade.opened_at.isoformat(),
            }

        return {
            "totalTrades": total,
            "winningTrades": wins,
            "losingTrades": losses,
            "winRate": round(wins / total * 100, 1) if total else 0.0,
            "totalProfit": round(total_profit, 2),
            "averageProfit": round(total_profit / total, 2) if total else 0.0,
            "bestTrade": brief(best),
            "worstTrade": brief(worst),
            "systemStartTime": self.started_at.isoformat(),
        }

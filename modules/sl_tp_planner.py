# sl_tp_planner.py

from typing import Dict, List, Optional, Tuple

from models.anomaly import Direction

# (minimum leverage, take-profit percent), strongest band first.
DEFAULT_TP_BANDS: List[Tuple[float, float]] = [
    (20.0, 0.05),
    (16.0, 0.045),
    (12.0, 0.04),
    (10.0, 0.035),
    (8.0, 0.03),
]


class SLTPPlanner:
    """
    Stop-loss / take-profit planning for simulated trades.
    Fixed-percent stop, leverage-banded target and the breakeven ratchet.
    """

    def __init__(self,
        stop_loss_percent: float = 0.005,
        base_take_profit_percent: float = 0.025,
        bands: Optional[List[Tuple[float, float]]] = None,
        breakeven_progress: float = 0.2,
        breakeven_lock_percent: float = 0.0,
        ):
        """
        :param stop_loss_percent: stop distance as a fraction of entry
        :param base_take_profit_percent: target used below the first band
        :param bands: [(min_leverage, tp_percent), ...] in any order
        :param breakeven_progress: fraction of the target distance that arms breakeven
        :param breakeven_lock_percent: stop moves to entry * (1 ± lock) once armed
        """
        self.stop_loss_percent = stop_loss_percent
        self.base_take_profit_percent = base_take_profit_percent
        self.bands = sorted(bands or DEFAULT_TP_BANDS, key=lambda b: b[0], reverse=True)
        self.breakeven_progress = breakeven_progress
        self.breakeven_lock_percent = breakeven_lock_percent

    def take_profit_percent(self, volume_leverage: Optional[float]) -> float:
        """Step function of leverage, non-decreasing by construction."""
        if not volume_leverage:
            return self.base_take_profit_percent
        for min_leverage, percent in self.bands:
            if volume_leverage >= min_leverage:
                return max(percent, self.base_take_profit_percent)
        return self.base_take_profit_percent

    def plan(self, direction: Direction, entry_price: float,
             volume_leverage: Optional[float] = None) -> Dict[str, float]:
        """
        Returns stop_loss, take_profit and the take_profit_percent used.
        """
        tp_percent = self.take_profit_percent(volume_leverage)
        sign = direction.sign
        return {
            "stop_loss": entry_price * (1 - sign * self.stop_loss_percent),
            "take_profit": entry_price * (1 + sign * tp_percent),
            "take_profit_percent": tp_percent,
        }

    def breakeven_stop(self, direction: Direction, entry_price: float, current_stop: float) -> float:
        """
        Stop after breakeven is armed.  Never retreats: a Long stop only
        moves up, a Short stop only moves down.
        """
        candidate = entry_price * (1 + direction.sign * self.breakeven_lock_percent)
        if direction is Direction.LONG:
            return max(current_stop, candidate)
        return min(current_stop, candidate)

"""Stop-distance based position sizing.

The core formula is ``qty = floor(risk_budget / stop_distance)``, capped by the
per-symbol allocation limit. Signals whose edge cannot pay for round-trip costs
are rejected before any sizing happens.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from swing_trader.trade_engine.config import SizerConfig
from swing_trader.trade_engine.types import Position, Signal, SizedPosition
from swing_trader.utils import safe_div

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SizingResult:
    symbol: str
    accepted: bool
    reason: str = ""
    position: Optional[SizedPosition] = None


@dataclass(frozen=True)
class PortfolioSummary:
    position_count: int = 0
    total_invest: float = 0.0
    total_risk: float = 0.0
    total_invest_pct: float = 0.0
    total_risk_pct: float = 0.0
    avg_risk_per_position: float = 0.0


class PositionSizer:
    def __init__(self, config: Optional[SizerConfig] = None):
        self.config = config or SizerConfig()

    def _reject(self, signal: Signal, reason: str) -> SizingResult:
        logger.debug("sizer: skip %s (%s)", signal.symbol, reason)
        return SizingResult(symbol=signal.symbol, accepted=False, reason=reason)

    def round_trip_costs(self, invest_amount: float) -> float:
        """Estimated commission, slippage and tax for buying and selling ``invest_amount``."""
        return invest_amount * self.config.round_trip_cost_rate

    def size(self, signal: Signal) -> SizingResult:
        cfg = self.config
        entry = signal.entry_price

        stop_distance = entry - signal.stop_price
        if stop_distance <= 0:
            return self._reject(signal, "invalid stop distance")

        risk_reward = (signal.target2 - entry) / stop_distance
        if risk_reward < cfg.min_risk_reward:
            return self._reject(signal, "risk/reward too low")

        expected_return = safe_div(signal.target1 - entry, entry)
        if expected_return < cfg.min_expected_return:
            return self._reject(signal, "expected return too low (below costs)")

        max_position_value = cfg.total_capital * cfg.max_position_pct
        if entry > max_position_value:
            return self._reject(signal, "price exceeds max position value")

        risk_budget = cfg.total_capital * cfg.risk_per_trade
        qty_by_risk = math.floor(risk_budget / stop_distance)
        qty_by_allocation = math.floor(max_position_value / entry)
        qty = max(1, min(qty_by_risk, qty_by_allocation))

        invest = qty * entry
        costs = self.round_trip_costs(invest)
        risk = qty * stop_distance + costs
        sized = SizedPosition(
            signal=signal,
            quantity=qty,
            invest_amount=invest,
            risk_amount=risk,
            cost_amount=costs,
            stop_distance=stop_distance,
            risk_reward=risk_reward,
            allocation_pct=invest / cfg.total_capital * 100,
            risk_pct=risk / cfg.total_capital * 100,
        )
        return SizingResult(symbol=signal.symbol, accepted=True, reason="sized", position=sized)

    def size_portfolio(self, signals: Sequence[Signal]) -> Tuple[List[SizingResult], PortfolioSummary]:
        """Size up to ``max_positions`` signals and summarise the combined exposure."""
        results = [self.size(sig) for sig in list(signals)[: self.config.max_positions]]
        accepted = [r.position for r in results if r.accepted and r.position is not None]

        total_invest = sum(p.invest_amount for p in accepted)
        total_risk = sum(p.risk_amount for p in accepted)
        capital = self.config.total_capital
        total_risk_pct = total_risk / capital * 100
        summary = PortfolioSummary(
            position_count=len(accepted),
            total_invest=total_invest,
            total_risk=total_risk,
            total_invest_pct=total_invest / capital * 100,
            total_risk_pct=total_risk_pct,
            avg_risk_per_position=safe_div(total_risk_pct, len(accepted)),
        )
        return results, summary


def build_trade_guide(
    entry_price: float,
    stop_price: float,
    target1_r: float = 1.5,
    target2_r: float = 2.5,
) -> Optional[Dict[str, float]]:
    """Return R-multiple targets and the breakeven win rate for an entry/stop pair."""
    risk_per_share = entry_price - stop_price
    if risk_per_share <= 0:
        return None

    target1 = entry_price + risk_per_share * target1_r
    target2 = entry_price + risk_per_share * target2_r
    return {
        "entry_price": entry_price,
        "stop_loss": stop_price,
        "stop_loss_pct": risk_per_share / entry_price * 100,
        "target1": target1,
        "target1_pct": (target1 - entry_price) / entry_price * 100,
        "target2": target2,
        "target2_pct": (target2 - entry_price) / entry_price * 100,
        "risk_reward": target2_r,
        # At 2R you need to win 1/(1+2) = 33% of trades to break even
        "breakeven_win_rate": 1 / (1 + target2_r),
    }


def open_position(sized: SizedPosition, entry_time: pd.Timestamp, max_hold_days: int = 0) -> Position:
    """Turn a sized signal into an open position."""
    sig = sized.signal
    return Position(
        symbol=sig.symbol,
        quantity=sized.quantity,
        entry_price=sig.entry_price,
        stop_price=sig.stop_price,
        initial_stop=sig.stop_price,
        target1=sig.target1,
        target2=sig.target2,
        entry_time=pd.Timestamp(entry_time),
        strategy=sig.strategy,
        max_hold_days=max_hold_days,
        last_price=sig.entry_price,
    )

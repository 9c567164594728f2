"""Exit state machine shared by the backtesters and the live monitor.

A position moves OPEN_FULL -> OPEN_HALF (after target1) -> CLOSED. Each
observation is checked in a fixed order: stop, target2, target1, time stop.
The stop always wins when a single bar spans both the stop and a target.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from typing import Optional

import pandas as pd

from swing_trader.trade_engine.types import (
    ExitAction,
    ExitDecision,
    ExitReason,
    Observation,
    Position,
    Trade,
)


def trading_days_since(entry: pd.Timestamp, now: Optional[pd.Timestamp] = None) -> int:
    """Count weekdays after ``entry`` up to and including ``now``.

    Market holidays are not consulted.
    """
    entry = pd.Timestamp(entry)
    now = pd.Timestamp.now(tz=entry.tz) if now is None else pd.Timestamp(now)
    if now <= entry:
        return 0

    days = 0
    current = entry
    while current < now:
        current = current + timedelta(days=1)
        if current.weekday() < 5:
            days += 1
    return days


def build_trade(
    position: Position,
    exit_time: pd.Timestamp,
    exit_price: float,
    shares: int,
    reason: ExitReason,
    commission: float = 0.0,
) -> Trade:
    """Close ``shares`` of ``position`` into a Trade, net of entry and exit commission."""
    gross = shares * (exit_price - position.entry_price)
    fees = shares * position.entry_price * commission + shares * exit_price * commission
    pnl = gross - fees
    cost_basis = shares * position.entry_price
    risk_per_share = position.risk_per_share
    return Trade(
        symbol=position.symbol,
        entry_date=position.entry_time,
        exit_date=pd.Timestamp(exit_time),
        entry_price=position.entry_price,
        exit_price=exit_price,
        stop_loss=position.initial_stop,
        target1=position.target1,
        target2=position.target2,
        shares=shares,
        pnl=pnl,
        pnl_pct=pnl / cost_basis * 100 if cost_basis else 0.0,
        r_multiple=(exit_price - position.entry_price) / risk_per_share if risk_per_share > 0 else 0.0,
        is_win=pnl > 0,
        exit_reason=reason.value,
        strategy=position.strategy,
    )


class ExitEngine:
    """Evaluate exit rules for one position against one observation."""

    def __init__(self, slippage: float = 0.0):
        self.slippage = slippage

    def _fill(self, price: float) -> float:
        return price * (1 - self.slippage)

    def _full_exit(self, position: Position, price: float, reason: ExitReason, last_price: float) -> ExitDecision:
        closed = replace(position, quantity=0, last_price=last_price)
        return ExitDecision(
            action=ExitAction.FULL,
            position=closed,
            reason=reason,
            quantity=position.quantity,
            price=self._fill(price),
        )

    def evaluate(self, position: Position, observation: Observation, days_held: int) -> ExitDecision:
        """Return the transition triggered by ``observation``, if any."""
        if position.quantity <= 0:
            raise ValueError(f"position {position.symbol} is already closed")

        close = observation.close

        if observation.low <= position.stop_price:
            return self._full_exit(position, position.stop_price, ExitReason.STOP, close)

        if position.target1_hit and observation.high >= position.target2:
            return self._full_exit(position, position.target2, ExitReason.TARGET2, close)

        if not position.target1_hit and observation.high >= position.target1 and position.quantity > 1:
            sold = position.quantity // 2
            updated = replace(
                position,
                quantity=position.quantity - sold,
                stop_price=position.entry_price,  # move to breakeven
                target1_hit=True,
                last_price=close,
            )
            return ExitDecision(
                action=ExitAction.PARTIAL,
                position=updated,
                reason=ExitReason.TARGET1,
                quantity=sold,
                price=self._fill(position.target1),
            )

        if position.max_hold_days > 0 and days_held >= position.max_hold_days:
            return self._full_exit(position, close, ExitReason.TIMEOUT, close)

        return ExitDecision(action=ExitAction.NONE, position=replace(position, last_price=close))

    def close_at(self, position: Position, price: float, reason: ExitReason = ExitReason.END) -> ExitDecision:
        """Force a full exit, e.g. at the end of a simulated period."""
        return self._full_exit(position, price, reason, price)

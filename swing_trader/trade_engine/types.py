"""Dataclasses used by the trade engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

import pandas as pd

from swing_trader.utils import iso_date


class ExitReason(str, Enum):
    STOP = "stop"
    TARGET1 = "target1"
    TARGET2 = "target2"
    TIMEOUT = "timeout"
    END = "end"


class ExitAction(str, Enum):
    NONE = "none"
    PARTIAL = "partial"
    FULL = "full"


class PositionState(str, Enum):
    OPEN_FULL = "open_full"
    OPEN_HALF = "open_half"
    CLOSED = "closed"


@dataclass(frozen=True)
class Signal:
    symbol: str
    entry_price: float
    stop_price: float
    target1: float
    target2: float
    probability: float = 50.0  # success estimate, 0-100
    strategy: str = ""
    reason: str = ""

    @property
    def stop_distance(self) -> float:
        return self.entry_price - self.stop_price


@dataclass(frozen=True)
class SizedPosition:
    signal: Signal
    quantity: int
    invest_amount: float
    risk_amount: float  # includes round-trip costs
    cost_amount: float
    stop_distance: float
    risk_reward: float
    allocation_pct: float
    risk_pct: float

    @property
    def symbol(self) -> str:
        return self.signal.symbol


@dataclass(frozen=True)
class Position:
    """An open position. Only ExitEngine transitions produce modified copies."""

    symbol: str
    quantity: int
    entry_price: float
    stop_price: float
    initial_stop: float
    target1: float
    target2: float
    entry_time: pd.Timestamp
    target1_hit: bool = False
    strategy: str = ""
    max_hold_days: int = 0
    last_price: float = 0.0

    @property
    def state(self) -> PositionState:
        return PositionState.OPEN_HALF if self.target1_hit else PositionState.OPEN_FULL

    @property
    def risk_per_share(self) -> float:
        return self.entry_price - self.initial_stop

    def market_value(self) -> float:
        price = self.last_price or self.entry_price
        return self.quantity * price


@dataclass(frozen=True)
class Trade:
    symbol: str
    entry_date: pd.Timestamp
    exit_date: pd.Timestamp
    entry_price: float
    exit_price: float
    stop_loss: float  # stop at entry, used for the R-multiple
    target1: float
    target2: float
    shares: int
    pnl: float
    pnl_pct: float
    r_multiple: float
    is_win: bool
    exit_reason: str
    strategy: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["entry_date"] = iso_date(self.entry_date)
        data["exit_date"] = iso_date(self.exit_date)
        return data


@dataclass(frozen=True)
class DailySnapshot:
    date: pd.Timestamp
    equity: float
    cash: float
    position_value: float
    positions: int
    day_pnl: float
    day_return: float  # percent

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date"] = iso_date(self.date)
        return data


@dataclass(frozen=True)
class Observation:
    """A price observation: a daily bar or a live quote."""

    low: float
    high: float
    close: float
    time: Optional[pd.Timestamp] = None

    @classmethod
    def from_quote(cls, price: float, time: Optional[pd.Timestamp] = None) -> "Observation":
        return cls(low=price, high=price, close=price, time=time)

    @classmethod
    def from_bar(cls, bar: pd.Series, time: Optional[pd.Timestamp] = None) -> "Observation":
        return cls(low=float(bar["Low"]), high=float(bar["High"]), close=float(bar["Close"]), time=time)


@dataclass(frozen=True)
class ExitDecision:
    action: ExitAction
    position: Position  # resulting position (quantity 0 once closed)
    reason: Optional[ExitReason] = None
    quantity: int = 0  # shares sold by this transition
    price: float = 0.0  # fill price, slippage included

    @property
    def closed(self) -> bool:
        return self.action == ExitAction.FULL

    @property
    def state(self) -> PositionState:
        return PositionState.CLOSED if self.closed else self.position.state

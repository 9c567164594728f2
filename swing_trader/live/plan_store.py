"""Persistence of open position plans so monitoring survives a restart."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd

from swing_trader.config import PLAN_STORE_FILE
from swing_trader.strategy.base import max_hold_days_for
from swing_trader.trade_engine.types import Position

logger = logging.getLogger(__name__)


@dataclass
class PositionPlan:
    """Serializable mirror of an open Position."""

    symbol: str
    strategy: str
    entry_price: float
    stop_loss: float
    target1: float
    target2: float
    quantity: int
    entry_time: str  # ISO timestamp
    target1_hit: bool = False
    max_hold_days: int = 0
    initial_stop: float = 0.0

    @classmethod
    def from_position(cls, position: Position) -> "PositionPlan":
        return cls(
            symbol=position.symbol,
            strategy=position.strategy,
            entry_price=position.entry_price,
            stop_loss=position.stop_price,
            target1=position.target1,
            target2=position.target2,
            quantity=position.quantity,
            entry_time=pd.Timestamp(position.entry_time).isoformat(),
            target1_hit=position.target1_hit,
            max_hold_days=position.max_hold_days,
            initial_stop=position.initial_stop,
        )

    def to_position(self) -> Position:
        return Position(
            symbol=self.symbol,
            quantity=self.quantity,
            entry_price=self.entry_price,
            stop_price=self.stop_loss,
            initial_stop=self.initial_stop or self.stop_loss,
            target1=self.target1,
            target2=self.target2,
            entry_time=pd.Timestamp(self.entry_time),
            target1_hit=self.target1_hit,
            strategy=self.strategy,
            max_hold_days=self.max_hold_days or max_hold_days_for(self.strategy),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PositionPlan":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class PlanStore:
    """Storage interface for position plans, keyed by symbol."""

    def save(self, plan: PositionPlan) -> None:
        raise NotImplementedError

    def get(self, symbol: str) -> Optional[PositionPlan]:
        raise NotImplementedError

    def delete(self, symbol: str) -> None:
        raise NotImplementedError

    def update_partial_exit(self, symbol: str, remaining_qty: int, new_stop: float) -> bool:
        """Record a target1 partial exit. Returns False when no plan exists for ``symbol``."""
        raise NotImplementedError

    def all(self) -> Dict[str, PositionPlan]:
        raise NotImplementedError


class InMemoryPlanStore(PlanStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._plans: Dict[str, PositionPlan] = {}

    def save(self, plan: PositionPlan) -> None:
        with self._lock:
            self._plans[plan.symbol] = plan

    def get(self, symbol: str) -> Optional[PositionPlan]:
        with self._lock:
            return self._plans.get(symbol)

    def delete(self, symbol: str) -> None:
        with self._lock:
            self._plans.pop(symbol, None)

    def update_partial_exit(self, symbol: str, remaining_qty: int, new_stop: float) -> bool:
        with self._lock:
            plan = self._plans.get(symbol)
            if plan is None:
                return False
            plan.quantity = remaining_qty
            plan.stop_loss = new_stop
            plan.target1_hit = True
            return True

    def all(self) -> Dict[str, PositionPlan]:
        with self._lock:
            return dict(self._plans)


class JsonPlanStore(InMemoryPlanStore):
    """Plans kept in memory and written through to an indented JSON file."""

    def __init__(self, path: Optional[Path] = None):
        super().__init__()
        self.path = Path(path) if path is not None else PLAN_STORE_FILE
        self._plans = self._load()

    def _load(self) -> Dict[str, PositionPlan]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text())
            plans = {symbol: PositionPlan.from_dict(data) for symbol, data in raw.items()}
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning("plans: could not read %s (%s), starting empty", self.path, exc)
            return {}
        logger.info("plans: loaded %d plans from %s", len(plans), self.path)
        return plans

    def _write(self) -> None:
        # Caller holds the lock
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps({s: p.to_dict() for s, p in self._plans.items()}, indent=2))
        tmp.replace(self.path)

    def save(self, plan: PositionPlan) -> None:
        with self._lock:
            self._plans[plan.symbol] = plan
            self._write()

    def delete(self, symbol: str) -> None:
        with self._lock:
            if self._plans.pop(symbol, None) is not None:
                self._write()

    def update_partial_exit(self, symbol: str, remaining_qty: int, new_stop: float) -> bool:
        with self._lock:
            plan = self._plans.get(symbol)
            if plan is None:
                logger.warning("plans: no plan for %s to update", symbol)
                return False
            plan.quantity = remaining_qty
            plan.stop_loss = new_stop
            plan.target1_hit = True
            self._write()
            return True

"""Live driver of the exit state machine.

The monitor owns the set of open positions. Each poll copies that set under
the lock, queries quotes without holding it, and applies each resulting
transition only if the position was not replaced in the meantime. A sell that
fills after a replacement is taken out of the replacement instead.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

import pandas as pd

from swing_trader.live.broker import Broker, BrokerError, Order, OrderSide
from swing_trader.live.plan_store import PlanStore, PositionPlan
from swing_trader.trade_engine.exits import ExitEngine, trading_days_since
from swing_trader.trade_engine.types import ExitAction, ExitDecision, Observation, Position

logger = logging.getLogger(__name__)


@dataclass
class MonitorConfig:
    poll_interval: float = 30.0  # seconds between checks
    quote_timeout: float = 5.0  # seconds per quote request
    slippage: float = 0.0  # live fills are reported by the broker


class PositionMonitor:
    def __init__(
        self,
        broker: Broker,
        engine: Optional[ExitEngine] = None,
        plan_store: Optional[PlanStore] = None,
        config: Optional[MonitorConfig] = None,
    ):
        self.config = config or MonitorConfig()
        self.broker = broker
        self.engine = engine or ExitEngine(slippage=self.config.slippage)
        self.plan_store = plan_store
        self._lock = threading.Lock()
        self._positions: Dict[str, Position] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._positions)

    def register(self, position: Position, persist: bool = True) -> None:
        with self._lock:
            self._positions[position.symbol] = position
        if persist and self.plan_store is not None:
            self.plan_store.save(PositionPlan.from_position(position))
        logger.info(
            "monitor: registered %s x%d (stop %.2f, t1 %.2f, t2 %.2f)",
            position.symbol,
            position.quantity,
            position.stop_price,
            position.target1,
            position.target2,
        )

    def unregister(self, symbol: str) -> Optional[Position]:
        with self._lock:
            position = self._positions.pop(symbol, None)
        if position is not None and self.plan_store is not None:
            self.plan_store.delete(symbol)
        return position

    def get(self, symbol: str) -> Optional[Position]:
        with self._lock:
            return self._positions.get(symbol)

    def snapshot(self) -> Dict[str, Position]:
        with self._lock:
            return dict(self._positions)

    def apply_transition(self, expected: Position, decision: ExitDecision) -> bool:
        """Store ``decision`` if ``expected`` is still the registered position."""
        with self._lock:
            if self._positions.get(expected.symbol) is not expected:
                return False
            if decision.closed:
                del self._positions[expected.symbol]
            else:
                self._positions[expected.symbol] = decision.position
        return True

    def _persist(self, decision: ExitDecision) -> None:
        if self.plan_store is None:
            return
        position = decision.position
        if decision.closed:
            self.plan_store.delete(position.symbol)
        elif decision.action == ExitAction.PARTIAL:
            self.plan_store.update_partial_exit(position.symbol, position.quantity, position.stop_price)

    def _reconcile_fill(self, symbol: str, sold: int) -> None:
        """Take ``sold`` shares out of a position registered while its sell was in flight."""
        with self._lock:
            current = self._positions.get(symbol)
            if current is None:
                return
            remaining = max(current.quantity - sold, 0)
            updated = replace(current, quantity=remaining)
            if remaining:
                self._positions[symbol] = updated
            else:
                del self._positions[symbol]
        logger.warning("monitor: %s replaced while selling %d, %d left", symbol, sold, remaining)
        if self.plan_store is None:
            return
        if remaining:
            self.plan_store.save(PositionPlan.from_position(updated))
        else:
            self.plan_store.delete(symbol)

    def check_positions(
        self,
        now: Optional[pd.Timestamp] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> List[ExitDecision]:
        """Run one monitoring cycle and return the exits that were executed."""
        executed: List[ExitDecision] = []
        for symbol, position in self.snapshot().items():
            if stop_event is not None and stop_event.is_set():
                logger.info("monitor: cycle cancelled before %s", symbol)
                break

            try:
                price = self.broker.get_quote(symbol, timeout=self.config.quote_timeout)
            except (BrokerError, TimeoutError, ConnectionError) as exc:
                logger.warning("monitor: quote failed for %s: %s", symbol, exc)
                continue

            days_held = trading_days_since(position.entry_time, now)
            decision = self.engine.evaluate(position, Observation.from_quote(price, now), days_held)
            if decision.action == ExitAction.NONE:
                self.apply_transition(position, decision)
                continue

            if self.get(symbol) is not position:
                logger.info("monitor: %s replaced during the quote, re-evaluated next cycle", symbol)
                continue

            order = Order(symbol=symbol, side=OrderSide.SELL, quantity=decision.quantity, reason=decision.reason.value)
            try:
                result = self.broker.place_order(order)
            except (BrokerError, TimeoutError, ConnectionError) as exc:
                logger.error("monitor: sell %s x%d failed: %s", symbol, decision.quantity, exc)
                continue
            if not result.success:
                logger.error("monitor: sell %s x%d rejected: %s", symbol, decision.quantity, result.message)
                continue

            if self.apply_transition(position, decision):
                self._persist(decision)
            else:
                self._reconcile_fill(symbol, decision.quantity)
            executed.append(decision)
            logger.info(
                "monitor: %s %s x%d @ %.2f (%s)",
                decision.reason.value,
                symbol,
                decision.quantity,
                result.price,
                decision.action.value,
            )
        return executed

    def run(self, stop_event: threading.Event) -> None:
        """Poll until ``stop_event`` is set."""
        logger.info("monitor: started, polling every %.0fs", self.config.poll_interval)
        while not stop_event.is_set():
            self.check_positions(stop_event=stop_event)
            stop_event.wait(self.config.poll_interval)
        logger.info("monitor: stopped")

    def sync_with_broker(self) -> List[str]:
        """Drop positions the broker no longer holds; return their symbols."""
        held = {p.symbol for p in self.broker.get_positions() if p.quantity > 0}
        removed = [symbol for symbol in self.snapshot() if symbol not in held]
        for symbol in removed:
            self.unregister(symbol)
            logger.info("monitor: %s no longer held at broker, removed", symbol)
        return removed

    def restore_from_store(self) -> int:
        """Register every persisted plan; return how many were restored."""
        if self.plan_store is None:
            return 0
        plans = self.plan_store.all()
        for plan in plans.values():
            self.register(plan.to_position(), persist=False)
        return len(plans)

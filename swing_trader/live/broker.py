"""Broker interface used by the live monitor, plus an in-memory paper broker."""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from swing_trader.errors import SwingTraderError

logger = logging.getLogger(__name__)


class BrokerError(SwingTraderError):
    """Raised when a broker cannot serve a quote or an order."""


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True)
class Order:
    symbol: str
    side: OrderSide
    quantity: int
    price: Optional[float] = None  # None means market
    reason: str = ""


@dataclass(frozen=True)
class OrderResult:
    order_id: str
    symbol: str
    side: OrderSide
    quantity: int
    price: float
    success: bool = True
    message: str = ""


@dataclass(frozen=True)
class BrokerPosition:
    symbol: str
    quantity: int
    avg_price: float


class Broker:
    def get_quote(self, symbol: str, timeout: Optional[float] = None) -> float:
        """Return the latest price, raising BrokerError (or TimeoutError) on failure."""
        raise NotImplementedError

    def place_order(self, order: Order) -> OrderResult:
        raise NotImplementedError

    def get_positions(self) -> List[BrokerPosition]:
        raise NotImplementedError


class PaperBroker(Broker):
    """Fill every order immediately at the current quote."""

    def __init__(self, prices: Optional[Dict[str, float]] = None, cash: float = 0.0):
        self._lock = threading.Lock()
        self._prices: Dict[str, float] = dict(prices or {})
        self._holdings: Dict[str, BrokerPosition] = {}
        self._ids = itertools.count(1)
        self.cash = cash
        self.orders: List[OrderResult] = []

    def set_price(self, symbol: str, price: float) -> None:
        with self._lock:
            self._prices[symbol] = price

    def get_quote(self, symbol: str, timeout: Optional[float] = None) -> float:
        with self._lock:
            price = self._prices.get(symbol)
        if price is None:
            raise BrokerError(f"no quote for {symbol}")
        return price

    def place_order(self, order: Order) -> OrderResult:
        if order.quantity <= 0:
            raise BrokerError(f"invalid quantity {order.quantity} for {order.symbol}")
        price = order.price if order.price is not None else self.get_quote(order.symbol)

        with self._lock:
            held = self._holdings.get(order.symbol)
            held_qty = held.quantity if held else 0
            if order.side == OrderSide.SELL:
                if order.quantity > held_qty:
                    result = OrderResult(
                        order_id="",
                        symbol=order.symbol,
                        side=order.side,
                        quantity=order.quantity,
                        price=price,
                        success=False,
                        message=f"holding {held_qty}, cannot sell {order.quantity}",
                    )
                    self.orders.append(result)
                    return result
                remaining = held_qty - order.quantity
                if remaining:
                    self._holdings[order.symbol] = BrokerPosition(order.symbol, remaining, held.avg_price)
                else:
                    del self._holdings[order.symbol]
                self.cash += order.quantity * price
            else:
                total = held_qty + order.quantity
                avg = ((held.avg_price * held_qty) if held else 0.0) + price * order.quantity
                self._holdings[order.symbol] = BrokerPosition(order.symbol, total, avg / total)
                self.cash -= order.quantity * price

            result = OrderResult(
                order_id=f"paper-{next(self._ids)}",
                symbol=order.symbol,
                side=order.side,
                quantity=order.quantity,
                price=price,
            )
            self.orders.append(result)
        logger.info("broker: %s %s x%d @ %.2f (%s)", order.side.value, order.symbol, order.quantity, price, order.reason)
        return result

    def get_positions(self) -> List[BrokerPosition]:
        with self._lock:
            return list(self._holdings.values())

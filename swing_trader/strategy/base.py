"""Strategy interface, the pullback strategy and the explicit strategy table."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from swing_trader.strategy.rules import PullbackConfig, evaluate_pullback
from swing_trader.trade_engine.sizing import PositionSizer
from swing_trader.trade_engine.types import Signal, SizedPosition

logger = logging.getLogger(__name__)

# Trading days a position may be held, per strategy
MAX_HOLD_DAYS: Dict[str, int] = {
    "pullback": 7,
    "mean-reversion": 5,
    "breakout": 15,
}
DEFAULT_MAX_HOLD_DAYS = 7


def max_hold_days_for(strategy: str) -> int:
    return MAX_HOLD_DAYS.get(strategy, DEFAULT_MAX_HOLD_DAYS)


class BaseStrategy:
    """Interface for signal generators."""

    name = "base"

    @property
    def max_hold_days(self) -> int:
        return max_hold_days_for(self.name)

    def analyze(self, symbol: str, bars: pd.DataFrame) -> Optional[Signal]:
        raise NotImplementedError

    def as_predicate(self) -> Callable[[pd.DataFrame], float]:
        """Adapt the strategy to the backtesters: score = probability, 0 means no entry."""

        def predicate(history: pd.DataFrame) -> float:
            signal = self.analyze("", history)
            return signal.probability if signal else 0.0

        return predicate


class PullbackStrategy(BaseStrategy):
    """Buy an uptrending stock that pulls back to its MA20 on light volume."""

    name = "pullback"

    def __init__(self, config: Optional[PullbackConfig] = None):
        self.config = config or PullbackConfig()

    def analyze(self, symbol: str, bars: pd.DataFrame) -> Optional[Signal]:
        if bars is None or len(bars) < self.config.min_bars:
            return None

        details = evaluate_pullback(bars, self.config)
        if details is None:
            return None

        reason = (
            f"Uptrend pullback to MA20 ({details['price_vs_ma50_pct']:.1f}% above MA50), "
            f"volume {details['volume_ratio']:.1f}x"
        )
        return Signal(
            symbol=symbol,
            entry_price=details["close"],
            stop_price=details["stop"],
            target1=details["target1"],
            target2=details["target2"],
            probability=details["probability"],
            strategy=self.name,
            reason=reason,
        )


STRATEGIES: Mapping[str, Callable[[], BaseStrategy]] = {
    "pullback": PullbackStrategy,
}


def build_strategies(names: Iterable[str], table: Mapping[str, Callable[[], BaseStrategy]] = STRATEGIES) -> List[BaseStrategy]:
    """Instantiate strategies by name from an explicit table."""
    strategies = []
    for name in names:
        factory = table.get(name)
        if factory is None:
            raise KeyError(f"unknown strategy: {name} (available: {sorted(table)})")
        strategies.append(factory())
    return strategies


def scan(
    strategies: Sequence[BaseStrategy],
    data: Mapping[str, pd.DataFrame],
    sizer: PositionSizer,
) -> List[SizedPosition]:
    """Run every strategy over every symbol and return accepted, sized signals.

    Results are ordered by signal probability, highest first, and hold at most one
    entry per symbol.
    """
    signals: List[Signal] = []
    for strategy in strategies:
        for symbol, bars in data.items():
            signal = strategy.analyze(symbol, bars)
            if signal is not None:
                signals.append(signal)

    signals.sort(key=lambda s: (-s.probability, s.symbol))
    sized: List[SizedPosition] = []
    seen = set()
    for signal in signals:
        if signal.symbol in seen:
            continue
        result = sizer.size(signal)
        if not result.accepted or result.position is None:
            logger.info("scan: rejected %s from %s (%s)", signal.symbol, signal.strategy, result.reason)
            continue
        seen.add(signal.symbol)
        sized.append(result.position)
    return sized

"""Single-symbol trade backtester driven by a signal predicate."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import pandas as pd

from swing_trader.config import MIN_HISTORY_BARS
from swing_trader.evaluation.metrics import (
    TradeStats,
    compute_drawdown_details,
    compute_returns,
    compute_sharpe,
    compute_sortino,
    compute_trade_stats,
)
from swing_trader.strategy.rules import pullback_signal
from swing_trader.trade_engine.config import BacktestConfig
from swing_trader.trade_engine.exits import ExitEngine, build_trade
from swing_trader.trade_engine.types import ExitAction, ExitReason, Observation, Position, Trade
from swing_trader.utils import iso_date

logger = logging.getLogger(__name__)

# Receives the bars up to and including the decision day; truthy means enter.
Predicate = Callable[[pd.DataFrame], Union[bool, float]]


@dataclass
class BacktestResult:
    symbol: str
    strategy: str
    start: str
    end: str
    initial_capital: float
    final_capital: float
    trades: List[Trade] = field(default_factory=list)
    equity_curve: pd.Series = field(default_factory=lambda: pd.Series(dtype=float))
    stats: TradeStats = field(default_factory=TradeStats)
    total_return: float = 0.0
    total_return_pct: float = 0.0
    max_drawdown_pct: float = 0.0
    max_drawdown_days: int = 0
    sharpe: float = 0.0
    sortino: float = 0.0

    def trades_frame(self) -> pd.DataFrame:
        if not self.trades:
            return pd.DataFrame()
        return pd.DataFrame.from_records([t.to_dict() for t in self.trades])

    def equity_frame(self) -> pd.DataFrame:
        return self.equity_curve.rename("equity").to_frame()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "strategy": self.strategy,
            "start": self.start,
            "end": self.end,
            "initial_capital": self.initial_capital,
            "final_capital": self.final_capital,
            "total_return": self.total_return,
            "total_return_pct": self.total_return_pct,
            "max_drawdown_pct": self.max_drawdown_pct,
            "max_drawdown_days": self.max_drawdown_days,
            "sharpe": self.sharpe,
            "sortino": self.sortino,
            "stats": self.stats.to_dict(),
            "trades": [t.to_dict() for t in self.trades],
            "equity_curve": [float(v) for v in self.equity_curve.values],
        }


def _open_trade(symbol: str, entry_bar: pd.Series, entry_time: pd.Timestamp, capital: float, cfg: BacktestConfig, strategy: str) -> Optional[Position]:
    entry_price = float(entry_bar["Open"]) * (1 + cfg.slippage)
    stop = entry_price * (1 - cfg.stop_loss_pct)
    risk_per_share = entry_price - stop
    shares = int(capital * cfg.risk_per_trade / risk_per_share)
    if shares <= 0:
        return None
    return Position(
        symbol=symbol,
        quantity=shares,
        entry_price=entry_price,
        stop_price=stop,
        initial_stop=stop,
        target1=entry_price + risk_per_share * cfg.target1_r_multiple,
        target2=entry_price + risk_per_share * cfg.target2_r_multiple,
        entry_time=entry_time,
        strategy=strategy,
        max_hold_days=cfg.max_hold_days,
        last_price=entry_price,
    )


def run_trade_backtest(
    symbol: str,
    bars: pd.DataFrame,
    predicate: Predicate = pullback_signal,
    config: Optional[BacktestConfig] = None,
    strategy: str = "pullback",
) -> Optional[BacktestResult]:
    """Walk ``bars`` one day at a time, trading whenever ``predicate`` fires.

    Args:
        symbol: ticker the bars belong to.
        bars: ascending daily OHLCV frame.
        predicate: entry rule; it only ever sees bars up to the decision day.
        config: BacktestConfig overrides (optional).
        strategy: label stored on each trade.

    Returns:
        BacktestResult, or None when there are fewer than 60 bars.
    """
    cfg = config or BacktestConfig()
    n = len(bars)
    if n < MIN_HISTORY_BARS:
        logger.debug("backtest: %s has %d bars, need %d", symbol, n, MIN_HISTORY_BARS)
        return None

    engine = ExitEngine(slippage=cfg.slippage)
    dates = bars.index
    capital = cfg.initial_capital
    trades: List[Trade] = []
    equity: List[float] = []
    last_signal_idx = n - cfg.max_hold_days

    i = MIN_HISTORY_BARS
    while i < n:
        if i >= last_signal_idx or not predicate(bars.iloc[: i + 1]):
            equity.append(capital)
            i += 1
            continue

        position = _open_trade(symbol, bars.iloc[i + 1], dates[i + 1], capital, cfg, strategy)
        equity.append(capital)
        if position is None:
            i += 1
            continue

        exit_idx = i + cfg.max_hold_days
        for j in range(i + 1, i + cfg.max_hold_days + 1):
            bar = bars.iloc[j]
            decision = engine.evaluate(position, Observation.from_bar(bar, dates[j]), days_held=j - i)
            if decision.action != ExitAction.NONE:
                trade = build_trade(position, dates[j], decision.price, decision.quantity, decision.reason, cfg.commission)
                trades.append(trade)
                capital += trade.pnl
            position = decision.position
            if decision.closed:
                equity.append(capital)
                exit_idx = j
                break
            equity.append(capital + position.quantity * (float(bar["Close"]) - position.entry_price))
        else:
            # a target1 partial on the last hold day leaves the remainder open
            decision = engine.close_at(position, float(bar["Close"]), ExitReason.TIMEOUT)
            trade = build_trade(position, dates[exit_idx], decision.price, decision.quantity, decision.reason, cfg.commission)
            trades.append(trade)
            capital += trade.pnl
            equity[-1] = capital
        i = exit_idx + 1

    equity_curve = pd.Series(equity, index=dates[MIN_HISTORY_BARS:], name="equity")
    returns = compute_returns(equity_curve)
    max_dd, max_dd_days = compute_drawdown_details(equity_curve)
    total_return = capital - cfg.initial_capital
    result = BacktestResult(
        symbol=symbol,
        strategy=strategy,
        start=iso_date(dates[0]),
        end=iso_date(dates[-1]),
        initial_capital=cfg.initial_capital,
        final_capital=capital,
        trades=trades,
        equity_curve=equity_curve,
        stats=compute_trade_stats(trades),
        total_return=total_return,
        total_return_pct=total_return / cfg.initial_capital * 100,
        max_drawdown_pct=max_dd * 100,
        max_drawdown_days=max_dd_days,
        sharpe=compute_sharpe(returns),
        sortino=compute_sortino(returns),
    )
    logger.info(
        "backtest: %s %d trades, return %.2f%%, max drawdown %.2f%%",
        symbol,
        len(trades),
        result.total_return_pct,
        result.max_drawdown_pct,
    )
    return result

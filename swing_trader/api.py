"""Public Python API for running backtests and robustness checks."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Union

import pandas as pd

from swing_trader.config import DEFAULT_LOOKBACK_DAYS
from swing_trader.evaluation.monte_carlo import run_monte_carlo
from swing_trader.main_backtest import load_bars
from swing_trader.trade_engine import (
    BacktestConfig,
    PortfolioBacktestConfig,
    PortfolioBacktester,
    Trade,
    run_trade_backtest,
)


def backtest_symbol(
    symbol: str,
    days: int = DEFAULT_LOOKBACK_DAYS,
    config: Optional[BacktestConfig] = None,
    bars: Optional[pd.DataFrame] = None,
) -> Dict[str, Any]:
    """Backtest one symbol and return results + metrics.

    Returns:
        {
            "result": BacktestResult or None,
            "metrics": {"total_return_pct", "max_drawdown_pct", "sharpe", "sortino", "win_rate", "trades"},
        }
    """
    if bars is None:
        bars = load_bars([symbol], days).get(symbol, pd.DataFrame())
    result = run_trade_backtest(symbol, bars, config=config)
    metrics: Dict[str, Any] = {}
    if result is not None:
        metrics = {
            "total_return_pct": result.total_return_pct,
            "max_drawdown_pct": result.max_drawdown_pct,
            "sharpe": result.sharpe,
            "sortino": result.sortino,
            "win_rate": result.stats.win_rate,
            "trades": result.stats.total_trades,
        }
    return {"result": result, "metrics": metrics}


def backtest_portfolio(
    symbols: Iterable[str],
    days: int = DEFAULT_LOOKBACK_DAYS,
    config: Optional[PortfolioBacktestConfig] = None,
    data: Optional[Mapping[str, pd.DataFrame]] = None,
) -> Dict[str, Any]:
    """Run the portfolio simulation and return results + metrics.

    Raises:
        InsufficientDataError: when the symbols share too few trading days.
    """
    symbols = list(symbols)
    if data is None:
        data = load_bars(symbols, days)
    else:
        data = {s: data[s] for s in symbols if s in data}
    result = PortfolioBacktester(config).run(data, days=days)
    metrics = {
        "cagr": result.cagr,
        "sharpe": result.sharpe,
        "sortino": result.sortino,
        "max_dd": result.max_drawdown_pct / 100,
        "final_equity": result.final_equity,
        "trades": result.stats.total_trades,
        "signals_skipped": result.signals_skipped,
    }
    return {"result": result, "metrics": metrics}


def monte_carlo(
    trades: Sequence[Union[Trade, float]],
    initial_capital: float,
    simulations: int = 1000,
    seed: Optional[int] = None,
) -> Dict[str, Any]:
    """Monte Carlo summary as a plain dict; empty when there are no trades."""
    result = run_monte_carlo(trades, initial_capital, simulations=simulations, seed=seed)
    return result.to_dict() if result is not None else {}

"""Parameter sweep utilities for the portfolio backtester."""

from __future__ import annotations

from dataclasses import replace
from itertools import product
from typing import Any, Dict, List, Mapping

import pandas as pd

from swing_trader.errors import ConfigError, InsufficientDataError
from swing_trader.strategy.rules import pullback_signal
from swing_trader.trade_engine.backtest_trades import Predicate
from swing_trader.trade_engine.config import PortfolioBacktestConfig
from swing_trader.trade_engine.portfolio import PortfolioBacktester, PortfolioBacktestResult
from swing_trader.evaluation.metrics import compute_daily_volatility


def _default_param_grid() -> Dict[str, List[Any]]:
    """Return a compact default sweep grid."""
    return {
        "stop_loss_pct": [0.02, 0.03],
        "target1_r_multiple": [1.0, 1.5],
        "target2_r_multiple": [2.0, 3.0],
        "max_hold_days": [5, 7],
        "max_positions": [3, 5],
    }


def _compute_metrics(result: PortfolioBacktestResult) -> Dict[str, Any]:
    """Summary metrics for a single portfolio run."""
    returns = pd.Series([s.day_return for s in result.snapshots])
    return {
        "cagr": result.cagr,
        "sharpe": result.sharpe,
        "max_dd": result.max_drawdown_pct / 100,
        "daily_vol": compute_daily_volatility(returns),
        "trades": len(result.trades),
        "win_rate": result.stats.win_rate,
        "expectancy_r": result.stats.expectancy_r,
        "final_equity": result.final_equity,
        "start": result.start[:10],
        "end": result.end[:10],
    }


def run_param_sweep(
    data: Mapping[str, pd.DataFrame],
    base_config: PortfolioBacktestConfig,
    param_grid: Dict[str, List[Any]] | None = None,
    max_runs: int | None = None,
    predicate: Predicate = pullback_signal,
    days: int | None = None,
) -> pd.DataFrame:
    """Sweep over provided parameters and collect performance metrics.

    Args:
        data: ``{symbol: bars}`` frames shared by every run.
        base_config: Starting configuration to clone per run.
        param_grid: Dict of parameter -> list of values. Uses defaults if None.
        max_runs: Optional cap on number of combinations (for quick smoke tests).
        predicate: Entry rule handed to every backtester.
        days: Trading days to simulate; all common days when None.

    Returns:
        DataFrame with one row per run, including parameters and metrics.
    """
    grid = param_grid or _default_param_grid()
    keys = list(grid.keys())
    combos = list(product(*[grid[k] for k in keys]))
    if max_runs is not None:
        combos = combos[:max_runs]

    rows: List[Dict[str, Any]] = []
    for idx, values in enumerate(combos):
        params = dict(zip(keys, values))
        try:
            cfg = replace(base_config, **params)
        except ConfigError as exc:
            rows.append({"run": idx, **params, "error": f"invalid_config: {exc}"})
            continue

        try:
            result = PortfolioBacktester(cfg, predicate).run(data, days=days)
        except InsufficientDataError as exc:
            rows.append({"run": idx, **params, "error": f"insufficient_data: {exc}"})
            continue

        rows.append({"run": idx, **params, **_compute_metrics(result), "error": ""})

    result_df = pd.DataFrame(rows)
    if not result_df.empty:
        sort_cols = [c for c in ["cagr", "sharpe", "max_dd", "daily_vol"] if c in result_df.columns]
        asc = [False, False, True, True][: len(sort_cols)]
        if sort_cols:
            result_df.sort_values(by=sort_cols, ascending=asc, inplace=True)

        ordered_params = [col for col in keys if col in result_df.columns]
        metric_cols = ["cagr", "sharpe", "max_dd", "daily_vol", "trades", "win_rate", "expectancy_r", "final_equity"]
        bookkeeping = ["start", "end", "error"]
        col_order = ["run"] + ordered_params + metric_cols + bookkeeping
        result_df = result_df[[col for col in col_order if col in result_df.columns]]
    return result_df

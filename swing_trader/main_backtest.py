"""CLI entrypoint for a single-symbol backtest with a Monte Carlo robustness check."""

from __future__ import annotations

import argparse
import logging
from typing import Dict, Iterable, Optional

import pandas as pd

from swing_trader.config import DATA_CACHE_FILE, DEFAULT_INITIAL_CAPITAL, DEFAULT_LOOKBACK_DAYS, MIN_HISTORY_BARS
from swing_trader.data.loader import YahooDataSource, load_from_cache, load_universe, save_to_cache
from swing_trader.evaluation.metrics import plot_equity_curve
from swing_trader.evaluation.monte_carlo import run_monte_carlo
from swing_trader.trade_engine import BacktestConfig, run_trade_backtest


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backtest the pullback strategy on one symbol.")
    parser.add_argument("symbol", help="Ticker to backtest, e.g. AAPL")
    parser.add_argument("--days", type=int, default=DEFAULT_LOOKBACK_DAYS, help="Number of daily bars to load.")
    parser.add_argument("--end-date", default=None, help="Ignore bars after this date (YYYY-MM-DD).")
    parser.add_argument("--initial-capital", type=float, default=DEFAULT_INITIAL_CAPITAL, help="Starting capital.")
    parser.add_argument("--stop-loss-pct", type=float, default=0.02, help="Stop distance below the entry fill.")
    parser.add_argument("--max-hold-days", type=int, default=5, help="Time stop in trading days.")
    parser.add_argument("--simulations", type=int, default=1000, help="Monte Carlo permutations.")
    parser.add_argument("--seed", type=int, default=None, help="Monte Carlo seed (default: clock-derived).")
    parser.add_argument("--refresh", action="store_true", help="Ignore cached bars and download again.")
    parser.add_argument("--plot", default=None, help="Optional path to save the equity curve PNG.")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING).")
    return parser.parse_args()


def _parse_date_arg(label: Optional[str]) -> Optional[str]:
    """Convert CLI date arg to ISO string or None, raising on invalid input."""
    if label in (None, "", "None"):
        return None
    try:
        return pd.to_datetime(label).date().isoformat()
    except (ValueError, TypeError) as exc:
        raise SystemExit(f"Invalid date '{label}': {exc}") from exc


def load_bars(symbols: Iterable[str], days: int, refresh: bool = False, max_workers: int = 8) -> Dict[str, pd.DataFrame]:
    """Return ``{symbol: bars}``, serving from the pickle cache when it covers the request."""
    symbols = list(symbols)
    count = days + MIN_HISTORY_BARS
    cached = None if refresh else load_from_cache(DATA_CACHE_FILE)
    if cached is not None and all(s in cached and len(cached[s]) >= count for s in symbols):
        return {s: cached[s].tail(count) for s in symbols}

    data = load_universe(YahooDataSource(), symbols, count, max_workers=max_workers)
    if data:
        merged = dict(cached or {})
        merged.update(data)
        save_to_cache(merged, DATA_CACHE_FILE)
    return data


def run(symbol: str, bars: pd.DataFrame, cfg: BacktestConfig, simulations: int, seed: Optional[int], plot_path: Optional[str] = None):
    result = run_trade_backtest(symbol, bars, config=cfg)
    if result is None:
        print(f"No backtest results for {symbol} (need at least {MIN_HISTORY_BARS} bars, got {len(bars)}).")
        return None

    stats = result.stats
    print(f"Backtest {symbol} {result.start[:10]} -> {result.end[:10]}")
    print(f"Trades: {stats.total_trades} (win rate {stats.win_rate:.1%})")
    print(f"Total return: {result.total_return:,.2f} ({result.total_return_pct:.2f}%)")
    print(f"Max drawdown: {result.max_drawdown_pct:.2f}% over {result.max_drawdown_days} bars")
    print(f"Sharpe: {result.sharpe:.2f}  Sortino: {result.sortino:.2f}")
    print(f"Profit factor: {stats.profit_factor:.2f}  Expectancy: {stats.expectancy_r:.2f}R")
    print(f"Kelly: {stats.kelly_optimal:.1%} (half-Kelly {stats.kelly_half:.1%})")

    mc = run_monte_carlo(result.trades, cfg.initial_capital, simulations=simulations, seed=seed)
    if mc is not None:
        print(
            f"Monte Carlo ({mc.simulations} runs, seed {mc.seed}): median {mc.median_return:.2f}%, "
            f"5th pct {mc.worst_case:.2f}%, 95th pct {mc.best_case:.2f}%, ruin {mc.ruin_probability:.1f}%"
        )

    if plot_path:
        plt = plot_equity_curve(result.equity_curve, result.trades, title=f"{symbol} equity")
        plt.savefig(plot_path)
        plt.close()
        print(f"Saved equity curve to {plot_path}")
    return result, mc


def main():
    args = parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    end_date = _parse_date_arg(args.end_date)
    symbol = args.symbol.upper()

    data = load_bars([symbol], args.days, refresh=args.refresh)
    if symbol not in data:
        raise SystemExit(f"No data for {symbol}")
    bars = data[symbol]
    if end_date:
        bars = bars.loc[:end_date]

    cfg = BacktestConfig(
        initial_capital=args.initial_capital,
        stop_loss_pct=args.stop_loss_pct,
        max_hold_days=args.max_hold_days,
    )
    run(symbol, bars, cfg, args.simulations, args.seed, plot_path=args.plot)


if __name__ == "__main__":
    main()

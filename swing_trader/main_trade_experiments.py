"""CLI to sweep portfolio backtest parameters and log results to CSV."""

from __future__ import annotations

import argparse
import logging

from swing_trader.config import DEFAULT_LOOKBACK_DAYS, DEFAULT_SYMBOLS
from swing_trader.main_backtest import load_bars
from swing_trader.trade_engine import PortfolioBacktestConfig
from swing_trader.trade_engine.experiments import run_param_sweep


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run parameter sweeps for the portfolio backtester.")
    parser.add_argument("symbols", nargs="*", default=DEFAULT_SYMBOLS, help="Tickers to include.")
    parser.add_argument("--days", type=int, default=DEFAULT_LOOKBACK_DAYS, help="Trading days to simulate.")
    parser.add_argument("--output", default="trade_experiments.csv", help="Path to save CSV results.")
    parser.add_argument(
        "--max-runs",
        type=int,
        default=None,
        help="Optional cap on number of parameter combinations (useful for quick tests).",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING).")
    return parser.parse_args()


def main():
    args = parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    data = load_bars([s.upper() for s in args.symbols], args.days)
    if not data:
        raise SystemExit("No data loaded for the requested symbols")
    results = run_param_sweep(data, PortfolioBacktestConfig(), param_grid=None, max_runs=args.max_runs, days=args.days)
    results.to_csv(args.output, index=False)

    print(f"Completed {len(results)} runs. Saved results to {args.output}")
    if not results.empty:
        print("Top 5 by CAGR/Sharpe:")
        print(results.head().to_string(index=False))


if __name__ == "__main__":
    main()

"""CLI entrypoint for the multi-symbol portfolio backtest."""

from __future__ import annotations

import argparse
import logging

from swing_trader.config import DEFAULT_INITIAL_CAPITAL, DEFAULT_LOOKBACK_DAYS, DEFAULT_SYMBOLS
from swing_trader.errors import InsufficientDataError
from swing_trader.main_backtest import load_bars
from swing_trader.trade_engine import PortfolioBacktestConfig, PortfolioBacktester


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Simulate the pullback strategy across a symbol universe.")
    parser.add_argument("symbols", nargs="*", default=DEFAULT_SYMBOLS, help="Tickers to include.")
    parser.add_argument("--days", type=int, default=DEFAULT_LOOKBACK_DAYS, help="Trading days to simulate.")
    parser.add_argument("--initial-capital", type=float, default=DEFAULT_INITIAL_CAPITAL, help="Starting capital.")
    parser.add_argument("--max-positions", type=int, default=5, help="Maximum concurrent positions.")
    parser.add_argument("--max-hold-days", type=int, default=5, help="Time stop in trading days.")
    parser.add_argument("--workers", type=int, default=8, help="Concurrent downloads.")
    parser.add_argument("--refresh", action="store_true", help="Ignore cached bars and download again.")
    parser.add_argument("--save-trades", default=None, help="Optional CSV path for the trade list.")
    parser.add_argument("--save-snapshots", default=None, help="Optional CSV path for daily snapshots.")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING).")
    return parser.parse_args()


def main():
    args = parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    symbols = [s.upper() for s in args.symbols]

    cfg = PortfolioBacktestConfig(
        initial_capital=args.initial_capital,
        max_positions=args.max_positions,
        max_hold_days=args.max_hold_days,
    )
    data = load_bars(symbols, args.days, refresh=args.refresh, max_workers=args.workers)
    try:
        result = PortfolioBacktester(cfg).run(data, days=args.days)
    except InsufficientDataError as exc:
        raise SystemExit(f"Portfolio backtest failed: {exc}") from exc

    stats = result.stats
    print(f"Portfolio {len(result.symbols)} symbols, {result.start[:10]} -> {result.end[:10]} ({result.trading_days} days)")
    print(f"Final equity: {result.final_equity:,.2f} ({result.total_return_pct:.2f}%)")
    print(f"CAGR: {result.cagr:.2%}")
    print(f"Sharpe: {result.sharpe:.2f}  Sortino: {result.sortino:.2f}")
    print(f"Max drawdown: {result.max_drawdown_pct:.2f}% over {result.max_drawdown_days} days")
    print(f"Trades: {stats.total_trades} (win rate {stats.win_rate:.1%}, expectancy {stats.expectancy_r:.2f}R)")
    print(f"Avg positions: {result.avg_positions:.2f}  Days at capacity: {result.max_positions_hit}")
    print(f"Signals skipped at capacity: {result.signals_skipped}")

    if args.save_trades:
        result.trades_frame().to_csv(args.save_trades, index=False)
        print(f"Saved trades to {args.save_trades}")
    if args.save_snapshots:
        result.snapshots_frame().to_csv(args.save_snapshots, index=True, date_format="%Y-%m-%d")
        print(f"Saved snapshots to {args.save_snapshots}")


if __name__ == "__main__":
    main()

"""Position sizing, exit rules and backtesters for the swing trading engine."""

from swing_trader.trade_engine.backtest_trades import BacktestResult, run_trade_backtest
from swing_trader.trade_engine.config import BacktestConfig, PortfolioBacktestConfig, SizerConfig
from swing_trader.trade_engine.exits import ExitEngine
from swing_trader.trade_engine.portfolio import PortfolioBacktester, PortfolioBacktestResult
from swing_trader.trade_engine.sizing import PositionSizer
from swing_trader.trade_engine.types import Position, Signal, Trade

__all__ = [
    "run_trade_backtest",
    "BacktestResult",
    "PortfolioBacktester",
    "PortfolioBacktestResult",
    "ExitEngine",
    "PositionSizer",
    "SizerConfig",
    "BacktestConfig",
    "PortfolioBacktestConfig",
    "Position",
    "Signal",
    "Trade",
]

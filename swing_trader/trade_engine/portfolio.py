"""Day-by-day portfolio simulation over a shared multi-symbol calendar.

Every simulated day runs three passes in a fixed order: exits for open
positions, entries while there is free capacity, then a snapshot. A symbol
without a bar on a given day is skipped for that day.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd

from swing_trader.config import MIN_HISTORY_BARS
from swing_trader.data.loader import DataSource, load_universe, normalize_bars
from swing_trader.errors import InsufficientDataError
from swing_trader.evaluation.metrics import (
    TradeStats,
    compute_cagr,
    compute_drawdown_details,
    compute_sharpe,
    compute_sortino,
    compute_trade_stats,
)
from swing_trader.strategy.rules import pullback_signal
from swing_trader.trade_engine.backtest_trades import Predicate
from swing_trader.trade_engine.config import PortfolioBacktestConfig
from swing_trader.trade_engine.exits import ExitEngine, build_trade
from swing_trader.trade_engine.types import DailySnapshot, ExitAction, Observation, Position, Trade
from swing_trader.utils import iso_date

logger = logging.getLogger(__name__)


@dataclass
class PortfolioBacktestResult:
    start: str
    end: str
    trading_days: int
    symbols: List[str]
    initial_capital: float
    final_equity: float
    trades: List[Trade] = field(default_factory=list)
    snapshots: List[DailySnapshot] = field(default_factory=list)
    stats: TradeStats = field(default_factory=TradeStats)
    total_return: float = 0.0
    total_return_pct: float = 0.0
    cagr: float = 0.0
    max_drawdown_pct: float = 0.0
    max_drawdown_days: int = 0
    sharpe: float = 0.0
    sortino: float = 0.0
    avg_positions: float = 0.0
    max_positions_hit: int = 0  # days that began the entry pass at capacity
    signals_skipped: int = 0  # candidates left out because capacity was reached

    @property
    def equity_curve(self) -> pd.Series:
        return pd.Series(
            [s.equity for s in self.snapshots],
            index=pd.DatetimeIndex([s.date for s in self.snapshots]),
            name="equity",
        )

    def snapshots_frame(self) -> pd.DataFrame:
        if not self.snapshots:
            return pd.DataFrame()
        records = [{**s.to_dict(), "date": s.date} for s in self.snapshots]
        return pd.DataFrame.from_records(records).set_index("date")

    def trades_frame(self) -> pd.DataFrame:
        if not self.trades:
            return pd.DataFrame()
        return pd.DataFrame.from_records([t.to_dict() for t in self.trades])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start,
            "end": self.end,
            "trading_days": self.trading_days,
            "symbols": list(self.symbols),
            "initial_capital": self.initial_capital,
            "final_equity": self.final_equity,
            "total_return": self.total_return,
            "total_return_pct": self.total_return_pct,
            "cagr": self.cagr,
            "max_drawdown_pct": self.max_drawdown_pct,
            "max_drawdown_days": self.max_drawdown_days,
            "sharpe": self.sharpe,
            "sortino": self.sortino,
            "avg_positions": self.avg_positions,
            "max_positions_hit": self.max_positions_hit,
            "signals_skipped": self.signals_skipped,
            "stats": self.stats.to_dict(),
            "trades": [t.to_dict() for t in self.trades],
            "snapshots": [s.to_dict() for s in self.snapshots],
        }


def build_calendar(data: Mapping[str, pd.DataFrame], days: Optional[int] = None) -> pd.DatetimeIndex:
    """Dates present in at least half of the symbols, ascending, trimmed to the last ``days``."""
    counts: Counter = Counter()
    for frame in data.values():
        counts.update(pd.to_datetime(frame.index))
    min_coverage = max(1, len(data) // 2)
    dates = pd.DatetimeIndex(sorted(ts for ts, count in counts.items() if count >= min_coverage))
    if days is not None and len(dates) > days:
        dates = dates[-days:]
    return dates


class PortfolioBacktester:
    """Simulate a capped set of concurrent positions across many symbols."""

    def __init__(
        self,
        config: Optional[PortfolioBacktestConfig] = None,
        predicate: Predicate = pullback_signal,
        strategy: str = "pullback",
    ):
        self.config = config or PortfolioBacktestConfig()
        self.predicate = predicate
        self.strategy = strategy
        self.engine = ExitEngine(slippage=self.config.slippage)

    def run_from_source(self, source: DataSource, symbols: Iterable[str], days: int, max_workers: int = 8) -> PortfolioBacktestResult:
        """Load ``days`` plus warm-up bars per symbol, then simulate the last ``days`` sessions."""
        data = load_universe(source, symbols, days + MIN_HISTORY_BARS, min_bars=MIN_HISTORY_BARS, max_workers=max_workers)
        return self.run(data, days=days)

    def _score(self, history: pd.DataFrame) -> float:
        signal = self.predicate(history)
        if signal is None or signal is False:
            return 0.0
        return 1.0 if signal is True else float(signal)

    def _open(self, symbol: str, close: float, date: pd.Timestamp, cash: float, equity: float) -> Optional[Tuple[Position, float]]:
        cfg = self.config
        entry = close * (1 + cfg.slippage)
        stop = entry * (1 - cfg.stop_loss_pct)
        risk_per_share = entry - stop
        shares = int(equity * cfg.risk_per_trade / risk_per_share)
        if shares <= 0:
            return None

        unit_cost = entry * (1 + cfg.commission)
        if shares * unit_cost > cash:
            shares = int((cash - cfg.cash_buffer) / unit_cost)
            if shares <= 0:
                logger.debug("portfolio: %s unaffordable on %s", symbol, date.date())
                return None

        position = Position(
            symbol=symbol,
            quantity=shares,
            entry_price=entry,
            stop_price=stop,
            initial_stop=stop,
            target1=entry + risk_per_share * cfg.target1_r_multiple,
            target2=entry + risk_per_share * cfg.target2_r_multiple,
            entry_time=date,
            strategy=self.strategy,
            max_hold_days=cfg.max_hold_days,
            last_price=close,
        )
        return position, shares * unit_cost

    def run(self, data: Mapping[str, pd.DataFrame], days: Optional[int] = None) -> PortfolioBacktestResult:
        """Simulate ``data`` (``{symbol: bars}``) over its shared calendar.

        Raises:
            InsufficientDataError: no symbols, or fewer common days than ``min_common_days``.
        """
        cfg = self.config
        if not data:
            raise InsufficientDataError("no symbol data loaded")
        data = {symbol: normalize_bars(frame) for symbol, frame in data.items()}

        calendar = build_calendar(data, days)
        if len(calendar) < cfg.min_common_days:
            raise InsufficientDataError(
                f"only {len(calendar)} common trading days across {len(data)} symbols, need {cfg.min_common_days}"
            )

        symbols = sorted(data)

        cash = cfg.initial_capital
        positions: Dict[str, Position] = {}
        held_days: Dict[str, int] = {}
        last_close: Dict[str, float] = {}
        trades: List[Trade] = []
        snapshots: List[DailySnapshot] = []
        prev_equity = cfg.initial_capital
        signals_skipped = 0
        max_positions_hit = 0

        def position_value() -> float:
            return sum(p.quantity * last_close.get(s, p.entry_price) for s, p in positions.items())

        for date in calendar:
            bars_today = {s: data[s].loc[date] for s in symbols if date in data[s].index}
            for symbol, bar in bars_today.items():
                last_close[symbol] = float(bar["Close"])

            # 1. Exits
            for symbol in list(positions):
                bar = bars_today.get(symbol)
                if bar is None:
                    continue
                held_days[symbol] += 1
                position = positions[symbol]
                decision = self.engine.evaluate(position, Observation.from_bar(bar, date), held_days[symbol])
                if decision.action != ExitAction.NONE:
                    trades.append(build_trade(position, date, decision.price, decision.quantity, decision.reason, cfg.commission))
                    cash += decision.quantity * decision.price * (1 - cfg.commission)
                if decision.closed:
                    del positions[symbol]
                    del held_days[symbol]
                else:
                    positions[symbol] = decision.position

            # 2. Entries
            if len(positions) >= cfg.max_positions:
                max_positions_hit += 1
            else:
                candidates = []
                for symbol in symbols:
                    if symbol in positions or symbol not in bars_today:
                        continue
                    history = data[symbol].loc[:date]
                    if len(history) < cfg.min_signal_history:
                        continue
                    score = self._score(history)
                    if score > 0:
                        candidates.append((score, symbol))
                candidates.sort(key=lambda c: (-c[0], c[1]))

                for idx, (_, symbol) in enumerate(candidates):
                    if len(positions) >= cfg.max_positions:
                        signals_skipped += len(candidates) - idx
                        break
                    opened = self._open(symbol, last_close[symbol], date, cash, cash + position_value())
                    if opened is None:
                        continue
                    position, cost = opened
                    positions[symbol] = position
                    held_days[symbol] = 0
                    cash -= cost
                    logger.debug("portfolio: %s open %s x%d @ %.2f", date.date(), symbol, position.quantity, position.entry_price)

            # 3. Snapshot
            value = position_value()
            equity = cash + value
            day_pnl = equity - prev_equity
            snapshots.append(
                DailySnapshot(
                    date=date,
                    equity=equity,
                    cash=cash,
                    position_value=value,
                    positions=len(positions),
                    day_pnl=day_pnl,
                    day_return=day_pnl / prev_equity * 100 if prev_equity else 0.0,
                )
            )
            prev_equity = equity

        avg_positions = sum(s.positions for s in snapshots) / len(snapshots)

        last_date = calendar[-1]
        for symbol in sorted(positions):
            position = positions[symbol]
            decision = self.engine.close_at(position, last_close.get(symbol, position.entry_price))
            trades.append(build_trade(position, last_date, decision.price, decision.quantity, decision.reason, cfg.commission))
            cash += decision.quantity * decision.price * (1 - cfg.commission)
        if positions:
            positions.clear()
            before = snapshots[-2].equity if len(snapshots) > 1 else cfg.initial_capital
            snapshots[-1] = replace(
                snapshots[-1],
                equity=cash,
                cash=cash,
                position_value=0.0,
                positions=0,
                day_pnl=cash - before,
                day_return=(cash - before) / before * 100 if before else 0.0,
            )

        equity_curve = pd.Series([s.equity for s in snapshots], index=calendar)
        returns = pd.Series([s.day_return for s in snapshots], index=calendar)
        max_dd, max_dd_days = compute_drawdown_details(equity_curve)
        total_return = cash - cfg.initial_capital
        result = PortfolioBacktestResult(
            start=iso_date(calendar[0]),
            end=iso_date(last_date),
            trading_days=len(calendar),
            symbols=symbols,
            initial_capital=cfg.initial_capital,
            final_equity=cash,
            trades=trades,
            snapshots=snapshots,
            stats=compute_trade_stats(trades),
            total_return=total_return,
            total_return_pct=total_return / cfg.initial_capital * 100,
            cagr=compute_cagr(equity_curve, initial=cfg.initial_capital),
            max_drawdown_pct=max_dd * 100,
            max_drawdown_days=max_dd_days,
            sharpe=compute_sharpe(returns),
            sortino=compute_sortino(returns),
            avg_positions=avg_positions,
            max_positions_hit=max_positions_hit,
            signals_skipped=signals_skipped,
        )
        logger.info(
            "portfolio: %d days, %d trades, final equity %.2f (%.2f%%), skipped %d signals",
            result.trading_days,
            len(trades),
            result.final_equity,
            result.total_return_pct,
            signals_skipped,
        )
        return result

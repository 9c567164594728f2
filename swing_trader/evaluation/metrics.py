"""Performance metrics and visualization helpers."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, Sequence, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from swing_trader.config import TRADING_DAYS_PER_YEAR

if TYPE_CHECKING:
    from swing_trader.trade_engine.types import Trade


@dataclass(frozen=True)
class TradeStats:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0  # 0-1
    avg_win: float = 0.0
    avg_loss: float = 0.0  # positive magnitude
    avg_win_pct: float = 0.0
    avg_loss_pct: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    net_profit: float = 0.0
    risk_reward_ratio: float = 0.0
    profit_factor: float = 0.0
    expectancy: float = 0.0
    expectancy_r: float = 0.0
    kelly_optimal: float = 0.0
    kelly_half: float = 0.0
    max_win_streak: int = 0
    max_lose_streak: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _mean(values: Sequence[float]) -> float:
    return float(np.mean(values)) if len(values) else 0.0


def compute_kelly(win_rate: float, avg_win: float, avg_loss: float) -> float:
    """Kelly fraction ``(W*B - (1-W)) / B`` clamped to [0, 1].

    A non-positive result means the edge does not support sizing.
    """
    if avg_loss <= 0 or avg_win <= 0:
        return 0.0
    payoff = avg_win / avg_loss
    kelly = (win_rate * payoff - (1 - win_rate)) / payoff
    if math.isnan(kelly):
        return 0.0
    return max(0.0, min(kelly, 1.0))


def _streaks(wins: Iterable[bool]) -> Tuple[int, int]:
    max_win = max_lose = win = lose = 0
    for is_win in wins:
        if is_win:
            win, lose = win + 1, 0
            max_win = max(max_win, win)
        else:
            win, lose = 0, lose + 1
            max_lose = max(max_lose, lose)
    return max_win, max_lose


def compute_trade_stats(trades: Sequence[Trade]) -> TradeStats:
    """Aggregate win/loss, expectancy and Kelly statistics for closed trades."""
    if not trades:
        return TradeStats()

    wins = [t for t in trades if t.is_win]
    losses = [t for t in trades if not t.is_win]
    gross_profit = sum(t.pnl for t in wins)
    gross_loss = sum(abs(t.pnl) for t in losses)

    total = len(trades)
    win_rate = len(wins) / total
    avg_win = gross_profit / len(wins) if wins else 0.0
    avg_loss = gross_loss / len(losses) if losses else 0.0
    kelly = compute_kelly(win_rate, avg_win, avg_loss)
    max_win_streak, max_lose_streak = _streaks(t.is_win for t in trades)

    return TradeStats(
        total_trades=total,
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=win_rate,
        avg_win=avg_win,
        avg_loss=avg_loss,
        avg_win_pct=_mean([t.pnl_pct for t in wins]),
        avg_loss_pct=_mean([t.pnl_pct for t in losses]),
        largest_win=max([t.pnl for t in wins], default=0.0),
        largest_loss=min([t.pnl for t in losses], default=0.0),
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        net_profit=gross_profit - gross_loss,
        risk_reward_ratio=avg_win / avg_loss if avg_loss > 0 else 0.0,
        profit_factor=gross_profit / gross_loss if gross_loss > 0 else 0.0,
        expectancy=win_rate * avg_win - (1 - win_rate) * avg_loss,
        expectancy_r=_mean([t.r_multiple for t in trades]),
        kelly_optimal=kelly,
        kelly_half=kelly / 2,
        max_win_streak=max_win_streak,
        max_lose_streak=max_lose_streak,
    )


def compute_cagr(equity: pd.Series, periods_per_year: int = TRADING_DAYS_PER_YEAR, initial: float | None = None) -> float:
    """Compound annual growth as a fraction; 0.0 for empty or wiped-out curves."""
    if equity.empty:
        return 0.0
    start = equity.iloc[0] if initial is None else initial
    final = equity.iloc[-1]
    if start <= 0 or final <= 0:
        return 0.0
    return float((final / start) ** (periods_per_year / len(equity)) - 1)


def compute_returns(equity: pd.Series) -> pd.Series:
    """Period-over-period percentage returns of an equity curve."""
    return equity.pct_change().replace([np.inf, -np.inf], np.nan).fillna(0.0) * 100


def compute_sharpe(returns: pd.Series, periods_per_year: int = TRADING_DAYS_PER_YEAR) -> float:
    if len(returns) < 2:
        return 0.0
    std = returns.std()
    if not std or np.isnan(std):
        return 0.0
    return float(np.sqrt(periods_per_year) * returns.mean() / std)


def compute_sortino(returns: pd.Series, periods_per_year: int = TRADING_DAYS_PER_YEAR) -> float:
    """Like Sharpe, but scaled by the deviation of losing periods only."""
    downside = returns[returns < 0]
    if len(returns) < 2 or len(downside) < 2:
        return 0.0
    std = downside.std()
    if not std or np.isnan(std):
        return 0.0
    return float(np.sqrt(periods_per_year) * returns.mean() / std)


def compute_drawdown_details(equity: Sequence[float] | pd.Series) -> Tuple[float, int]:
    """Return (max drawdown as a fraction >= 0, periods from its peak to its trough)."""
    values = np.asarray(equity, dtype=float)
    if values.size == 0:
        return 0.0, 0

    peak = values[0]
    peak_idx = 0
    max_dd = 0.0
    max_dd_days = 0
    for idx, value in enumerate(values):
        if value > peak:
            peak, peak_idx = value, idx
        if peak <= 0:
            continue
        dd = (peak - value) / peak
        if dd > max_dd:
            max_dd = dd
            max_dd_days = idx - peak_idx
    return float(max_dd), int(max_dd_days)


def compute_max_drawdown(equity: Sequence[float] | pd.Series) -> float:
    return compute_drawdown_details(equity)[0]


def compute_daily_volatility(returns: pd.Series) -> float:
    if len(returns) < 2:
        return 0.0
    return float(returns.std())


def plot_equity_curve(equity: pd.Series, trades: Sequence[Trade] = (), title: str = "Equity Curve"):
    """Plot an equity curve, marking the exit date of every trade."""
    plt.figure(figsize=(10, 6))
    plt.plot(equity.index, equity.values, label="Equity")
    if trades:
        exits = [t.exit_date for t in trades if t.exit_date in equity.index]
        plt.scatter(exits, equity.loc[exits], marker="x", color="black", label="Exits", zorder=3)
    plt.legend()
    plt.title(title)
    plt.xlabel("Date")
    plt.ylabel("Portfolio Value")
    plt.tight_layout()
    return plt

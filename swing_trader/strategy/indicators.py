"""Indicator helpers evaluated on a trailing window of daily bars."""

from __future__ import annotations

from dataclasses import dataclass

import pandas as pd


def compute_rsi(close: pd.Series, period: int = 14) -> pd.Series:
    """Compute RSI using Wilder's smoothing."""
    delta = close.diff()
    gain = delta.where(delta > 0, 0.0)
    loss = -delta.where(delta < 0, 0.0)

    avg_gain = gain.ewm(alpha=1 / period, min_periods=period, adjust=False).mean()
    avg_loss = loss.ewm(alpha=1 / period, min_periods=period, adjust=False).mean()

    rs = avg_gain / avg_loss.where(avg_loss != 0)
    rsi = 100 - (100 / (1 + rs))
    # No losses in the window means maximum strength
    rsi = rsi.where(avg_loss != 0, 100.0)
    return rsi.fillna(50.0)


def trailing_mean(values: pd.Series, period: int) -> float:
    """Mean of the last ``period`` values, 0.0 when there are not enough."""
    if len(values) < period:
        return 0.0
    return float(values.iloc[-period:].mean())


@dataclass(frozen=True)
class BarIndicators:
    ma20: float
    ma50: float
    avg_volume: float
    rsi14: float


def compute_bar_indicators(bars: pd.DataFrame) -> BarIndicators:
    """Summarise the trailing window ending at the last bar."""
    close = bars["Close"]
    return BarIndicators(
        ma20=trailing_mean(close, 20),
        ma50=trailing_mean(close, 50),
        avg_volume=trailing_mean(bars["Volume"].astype(float), 20),
        rsi14=float(compute_rsi(close, 14).iloc[-1]) if len(close) else 50.0,
    )

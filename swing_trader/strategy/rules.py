"""Rule set for the pullback-in-uptrend entry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import pandas as pd

from swing_trader.strategy.indicators import compute_bar_indicators


@dataclass
class PullbackConfig:
    min_bars: int = 50  # MA50 needs 50 closes
    ma20_touch_tolerance: float = 0.02  # low within 2% of MA20 counts as a touch
    max_volume_ratio: float = 1.2  # heavier volume than this means selling pressure
    low_volume_ratio: float = 0.8  # below this the pullback is considered quiet
    shadow_body_ratio: float = 1.5

    # Levels
    stop_loss_pct: float = 0.02
    ma20_stop_buffer: float = 0.98  # stop never sits above 98% of MA20
    target1_r: float = 1.5
    target2_r: float = 2.5

    # Quality filters
    min_price: float = 5.0
    min_dollar_volume: float = 500_000.0


def _reversal_sign(bar: pd.Series, config: PullbackConfig) -> Tuple[bool, bool]:
    open_, close, low = bar["Open"], bar["Close"], bar["Low"]
    body = abs(close - open_)
    lower_shadow = min(open_, close) - low
    return bool(close > open_), bool(lower_shadow > body * config.shadow_body_ratio)


def pullback_signal(history: pd.DataFrame, config: Optional[PullbackConfig] = None) -> bool:
    """Return True when the last bar of ``history`` is a pullback entry.

    Only ``history`` is consulted, so callers control look-ahead by slicing.
    """
    cfg = config or PullbackConfig()
    if len(history) < cfg.min_bars:
        return False

    ind = compute_bar_indicators(history)
    latest = history.iloc[-1]

    # Uptrend
    if latest["Close"] <= ind.ma50:
        return False

    # Low touched MA20
    tolerance = ind.ma20 * cfg.ma20_touch_tolerance
    if latest["Low"] > ind.ma20 + tolerance or latest["Low"] < ind.ma20 - tolerance * 2:
        return False

    bullish, long_shadow = _reversal_sign(latest, cfg)
    if not bullish and not long_shadow:
        return False

    if ind.avg_volume > 0 and float(latest["Volume"]) > ind.avg_volume * cfg.max_volume_ratio:
        return False
    return True


def pullback_strength(
    above_ma50: bool,
    touched_ma20: bool,
    low_volume: bool,
    has_reversal: bool,
    rsi_ok: bool,
    bouncing: bool,
    price_vs_ma50_pct: float,
) -> float:
    """Score a pullback setup on a 0-100 scale."""
    score = 0.0
    if above_ma50:
        score += 20
        if price_vs_ma50_pct > 5:
            score += 5
    if touched_ma20:
        score += 20
    if has_reversal:
        score += 20

    if low_volume:
        score += 15
    if rsi_ok:
        score += 10
    if bouncing:
        score += 15
    return min(score, 100.0)


def pullback_probability(strength: float, rsi: float, volume_ratio: float, bouncing: bool) -> float:
    """Estimate success probability, kept within a realistic 45-65% band."""
    prob = 45.0 + strength * 0.10

    if rsi < 40:
        prob += 3
    elif rsi < 50:
        prob += 1
    elif rsi > 70:
        prob -= 5
    elif rsi > 60:
        prob -= 2

    if volume_ratio < 0.5:
        prob += 2
    elif volume_ratio > 1.2:
        prob -= 3

    if bouncing:
        prob += 2
    return max(45.0, min(prob, 65.0))


def compute_pullback_levels(close: float, ma20: float, config: PullbackConfig) -> Tuple[float, float, float]:
    """Return stop, target1, target2 for a pullback entry at ``close``."""
    stop = close * (1 - config.stop_loss_pct)
    stop = min(stop, ma20 * config.ma20_stop_buffer)
    risk_per_share = close - stop
    return stop, close + risk_per_share * config.target1_r, close + risk_per_share * config.target2_r


def evaluate_pullback(history: pd.DataFrame, config: Optional[PullbackConfig] = None) -> Optional[Dict[str, float]]:
    """Return setup details (levels, strength, probability) or None when there is no entry."""
    cfg = config or PullbackConfig()
    if not pullback_signal(history, cfg):
        return None

    ind = compute_bar_indicators(history)
    today = history.iloc[-1]
    yesterday = history.iloc[-2]
    close = float(today["Close"])

    if close < cfg.min_price or close * float(today["Volume"]) < cfg.min_dollar_volume:
        return None

    volume_ratio = float(today["Volume"]) / ind.avg_volume if ind.avg_volume > 0 else 0.0
    bullish, long_shadow = _reversal_sign(today, cfg)
    bouncing = bool(today["Low"] > yesterday["Low"])
    price_vs_ma50_pct = (close - ind.ma50) / ind.ma50 * 100 if ind.ma50 else 0.0

    low_volume = volume_ratio < cfg.low_volume_ratio
    strength = pullback_strength(True, True, low_volume, True, ind.rsi14 < 70, bouncing, price_vs_ma50_pct)
    if not low_volume:
        strength *= 0.7

    stop, target1, target2 = compute_pullback_levels(close, ind.ma20, cfg)
    return {
        "close": close,
        "ma20": ind.ma20,
        "ma50": ind.ma50,
        "rsi14": ind.rsi14,
        "volume_ratio": volume_ratio,
        "bullish_candle": float(bullish),
        "long_lower_shadow": float(long_shadow),
        "price_vs_ma50_pct": price_vs_ma50_pct,
        "strength": strength,
        "probability": pullback_probability(strength, ind.rsi14, volume_ratio, bouncing),
        "stop": stop,
        "target1": target1,
        "target2": target2,
    }

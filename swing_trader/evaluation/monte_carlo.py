"""Monte Carlo robustness testing over realized R-multiples."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from swing_trader.errors import ConfigError
from swing_trader.trade_engine.types import Trade

logger = logging.getLogger(__name__)


@dataclass
class MonteCarloConfig:
    simulations: int = 1000
    risk_fraction: float = 0.01  # of the initial capital, risked on every trade
    seed: Optional[int] = None  # None -> derived from the clock

    def __post_init__(self) -> None:
        if self.simulations < 1:
            raise ConfigError("simulations must be at least 1")
        if not 0.0 < self.risk_fraction <= 1.0:
            raise ConfigError("risk_fraction must be in (0, 1]")


@dataclass(frozen=True)
class MonteCarloResult:
    simulations: int
    seed: int
    median_return: float  # percent
    worst_case: float  # 5th percentile, percent
    best_case: float  # 95th percentile, percent
    ruin_probability: float  # percent of simulations that hit zero
    max_drawdowns: List[float] = field(default_factory=list)  # percent, ascending

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _r_multiples(trades: Sequence[Union[Trade, float]]) -> np.ndarray:
    return np.array([t.r_multiple if isinstance(t, Trade) else float(t) for t in trades], dtype=float)


def run_monte_carlo(
    trades: Sequence[Union[Trade, float]],
    initial_capital: float,
    simulations: int = 1000,
    risk_fraction: float = 0.01,
    seed: Optional[int] = None,
) -> Optional[MonteCarloResult]:
    """Replay random permutations of the trade sequence.

    Every trade risks ``initial_capital * risk_fraction`` regardless of the running
    balance, so ruin estimates are not mixed up with compounding. A path stops at
    the first trade that takes capital to zero or below.

    Args:
        trades: closed trades, or their R-multiples.
        initial_capital: starting balance of every path.
        simulations: number of permutations to replay.
        risk_fraction: fraction of the initial capital risked per trade.
        seed: PRNG seed; a clock-derived seed is used (and reported) when None.

    Returns:
        MonteCarloResult, or None when there are no trades.
    """
    cfg = MonteCarloConfig(simulations=simulations, risk_fraction=risk_fraction, seed=seed)
    r_multiples = _r_multiples(trades)
    if r_multiples.size == 0:
        return None
    if initial_capital <= 0:
        raise ConfigError("initial_capital must be positive")

    seed_value = cfg.seed if cfg.seed is not None else time.time_ns() % (2**32)
    rng = np.random.default_rng(seed_value)

    risk_amount = initial_capital * cfg.risk_fraction
    paths = np.empty((cfg.simulations, r_multiples.size), dtype=float)
    for sim in range(cfg.simulations):
        paths[sim] = initial_capital + np.cumsum(rng.permutation(r_multiples) * risk_amount)

    ruined_at = paths <= 0
    ruined = ruined_at.any(axis=1)
    for sim in np.flatnonzero(ruined):
        first = int(np.argmax(ruined_at[sim]))
        paths[sim, first + 1 :] = paths[sim, first]

    with_start = np.hstack([np.full((cfg.simulations, 1), initial_capital), paths])
    peaks = np.maximum.accumulate(with_start, axis=1)
    drawdowns = ((peaks - with_start) / peaks).max(axis=1) * 100

    final_returns = np.sort((paths[:, -1] - initial_capital) / initial_capital * 100)
    n = cfg.simulations
    result = MonteCarloResult(
        simulations=n,
        seed=int(seed_value),
        median_return=float(final_returns[n // 2]),
        worst_case=float(final_returns[n // 20]),
        best_case=float(final_returns[min(n * 19 // 20, n - 1)]),
        ruin_probability=float(ruined.sum()) / n * 100,
        max_drawdowns=sorted(float(dd) for dd in drawdowns),
    )
    logger.debug(
        "monte_carlo: %d sims, median=%.2f%%, ruin=%.2f%%", n, result.median_return, result.ruin_probability
    )
    return result

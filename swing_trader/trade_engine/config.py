"""Configuration for position sizing and the backtesters."""

from __future__ import annotations

from dataclasses import dataclass

from swing_trader.config import DEFAULT_INITIAL_CAPITAL
from swing_trader.errors import ConfigError


def _check_fraction(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ConfigError(f"{name} must be between 0 and 1, got {value}")


@dataclass
class SizerConfig:
    """Parameters controlling stop-distance based position sizing."""

    total_capital: float = DEFAULT_INITIAL_CAPITAL
    risk_per_trade: float = 0.01  # 1% of capital at risk per trade
    max_position_pct: float = 0.20  # max 20% of capital in a single symbol
    max_positions: int = 5
    min_risk_reward: float = 1.5  # reward to target2 over stop distance
    min_expected_return: float = 0.01  # move to target1 must beat costs

    # Costs, per side unless noted
    commission: float = 0.00015
    slippage: float = 0.001
    tax_rate: float = 0.0018  # sell side only

    def __post_init__(self) -> None:
        if self.total_capital <= 0:
            raise ConfigError("total_capital must be positive")
        if self.max_positions < 1:
            raise ConfigError("max_positions must be at least 1")
        for name in ("risk_per_trade", "max_position_pct", "commission", "slippage", "tax_rate"):
            _check_fraction(name, getattr(self, name))
        if self.min_expected_return <= self.round_trip_cost_rate:
            raise ConfigError(
                f"min_expected_return ({self.min_expected_return:.4f}) must exceed the "
                f"round-trip cost drag ({self.round_trip_cost_rate:.4f})"
            )

    @property
    def round_trip_cost_rate(self) -> float:
        return 2 * self.commission + 2 * self.slippage + self.tax_rate


def adjust_config_for_balance(balance: float) -> SizerConfig:
    """Return a sizer config tuned to the account size."""
    if balance < 500:
        # Small accounts: a higher rate still means a tiny absolute risk
        return SizerConfig(
            total_capital=balance,
            risk_per_trade=0.02,
            max_positions=3,
            min_risk_reward=1.5,
            min_expected_return=0.015,
        )
    if balance < 5000:
        return SizerConfig(total_capital=balance, risk_per_trade=0.01, max_positions=5, min_risk_reward=1.5)
    return SizerConfig(total_capital=balance, risk_per_trade=0.01, max_positions=5, min_risk_reward=2.0)


@dataclass
class BacktestConfig:
    """Parameters for the single-asset backtester."""

    initial_capital: float = DEFAULT_INITIAL_CAPITAL
    risk_per_trade: float = 0.01
    stop_loss_pct: float = 0.02  # stop 2% under the entry fill
    target1_r_multiple: float = 1.0  # partial exit at 1R
    target2_r_multiple: float = 2.0  # full exit at 2R
    max_hold_days: int = 5  # trading days
    commission: float = 0.00015  # per side, on traded value
    slippage: float = 0.001

    def __post_init__(self) -> None:
        if self.initial_capital <= 0:
            raise ConfigError("initial_capital must be positive")
        if self.max_hold_days < 1:
            raise ConfigError("max_hold_days must be at least 1")
        if not 0.0 < self.stop_loss_pct < 1.0:
            raise ConfigError("stop_loss_pct must be between 0 and 1")
        if self.target2_r_multiple < self.target1_r_multiple:
            raise ConfigError("target2_r_multiple must not be below target1_r_multiple")
        for name in ("risk_per_trade", "commission", "slippage"):
            _check_fraction(name, getattr(self, name))


@dataclass
class PortfolioBacktestConfig(BacktestConfig):
    """Parameters for the multi-symbol portfolio backtester."""

    max_positions: int = 5  # simultaneous open positions
    cash_buffer: float = 100.0  # cash left over when a full-size entry is unaffordable
    min_common_days: int = 20
    min_signal_history: int = 50  # bars needed before a symbol can signal

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.max_positions < 1:
            raise ConfigError("max_positions must be at least 1")
        if self.cash_buffer < 0:
            raise ConfigError("cash_buffer must not be negative")

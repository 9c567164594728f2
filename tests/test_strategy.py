import pandas as pd
import pytest

from swing_trader.strategy.base import (
    PullbackStrategy,
    build_strategies,
    max_hold_days_for,
    scan,
)
from swing_trader.strategy.indicators import compute_bar_indicators, compute_rsi
from swing_trader.strategy.rules import pullback_probability, pullback_signal
from swing_trader.trade_engine.config import SizerConfig
from swing_trader.trade_engine.sizing import PositionSizer
from tests.test_core import make_bars


def make_pullback_bars(volume: float = 800_000) -> pd.DataFrame:
    """Steady uptrend whose last bar dips to the MA20 and closes green."""
    bars = make_bars(60, start=100.0, step=0.5)
    bars.loc[bars.index[-1], ["Open", "High", "Low", "Close", "Volume"]] = [126.5, 128.0, 125.0, 127.5, volume]
    return bars


def test_pullback_signal_fires_on_ma20_touch():
    bars = make_pullback_bars()
    assert pullback_signal(bars)
    assert not pullback_signal(bars.iloc[:-1])
    assert not pullback_signal(bars.iloc[:40])


def test_pullback_signal_rejects_heavy_volume():
    assert not pullback_signal(make_pullback_bars(volume=5_000_000))


def test_indicators_on_trailing_window():
    ind = compute_bar_indicators(make_pullback_bars())
    assert ind.ma20 == pytest.approx(124.65)
    assert ind.ma50 == pytest.approx(117.21)
    assert ind.avg_volume == pytest.approx(990_000)

    rising = pd.Series([float(i) for i in range(30)])
    assert compute_rsi(rising).iloc[-1] == pytest.approx(100.0)


def test_pullback_strategy_levels():
    signal = PullbackStrategy().analyze("AAA", make_pullback_bars())

    assert signal is not None
    assert signal.symbol == "AAA"
    assert signal.strategy == "pullback"
    assert signal.entry_price == pytest.approx(127.5)
    assert signal.stop_price == pytest.approx(124.65 * 0.98)
    risk = signal.entry_price - signal.stop_price
    assert signal.target1 == pytest.approx(127.5 + 1.5 * risk)
    assert signal.target2 == pytest.approx(127.5 + 2.5 * risk)
    assert 45.0 <= signal.probability <= 65.0


def test_strategy_abstains_without_history():
    assert PullbackStrategy().analyze("AAA", make_bars(30)) is None


def test_as_predicate_scores_by_probability():
    predicate = PullbackStrategy().as_predicate()
    assert predicate(make_pullback_bars()) >= 45.0
    assert predicate(make_bars(60, step=0.5).iloc[:-1]) == 0.0


def test_probability_band():
    assert pullback_probability(100.0, 30.0, 0.3, True) == pytest.approx(62.0)
    assert pullback_probability(100.0, 30.0, 0.3, True) <= 65.0
    assert pullback_probability(0.0, 80.0, 2.0, False) == 45.0


def test_strategy_table():
    strategies = build_strategies(["pullback"])
    assert isinstance(strategies[0], PullbackStrategy)
    assert strategies[0].max_hold_days == 7
    assert max_hold_days_for("breakout") == 15
    assert max_hold_days_for("mean-reversion") == 5
    assert max_hold_days_for("unknown") == 7
    with pytest.raises(KeyError):
        build_strategies(["momentum"])


def test_scan_returns_sized_signals():
    data = {"AAA": make_pullback_bars(), "BBB": make_bars(60, step=0.5).iloc[:-1], "CCC": make_bars(20)}
    sized = scan([PullbackStrategy()], data, PositionSizer(SizerConfig(total_capital=100_000)))

    assert [p.symbol for p in sized] == ["AAA"]
    assert sized[0].quantity > 0
    assert sized[0].risk_amount > 0

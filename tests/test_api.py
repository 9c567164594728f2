import pytest

from swing_trader import api
from swing_trader.errors import InsufficientDataError
from swing_trader.trade_engine import PortfolioBacktestConfig
from tests.test_core import make_bars


def test_backtest_symbol_with_bars():
    output = api.backtest_symbol("AAA", bars=make_bars(120, step=0.2))
    assert output["result"].symbol == "AAA"
    assert {"total_return_pct", "max_drawdown_pct", "sharpe", "sortino", "win_rate", "trades"} <= set(output["metrics"])


def test_backtest_symbol_short_history():
    output = api.backtest_symbol("AAA", bars=make_bars(30))
    assert output["result"] is None
    assert output["metrics"] == {}


def test_backtest_portfolio_with_data():
    data = {"AAA": make_bars(120), "BBB": make_bars(120, start=50.0), "CCC": make_bars(120)}
    output = api.backtest_portfolio(["AAA", "BBB"], days=40, config=PortfolioBacktestConfig(max_positions=2), data=data)

    assert output["result"].symbols == ["AAA", "BBB"]
    assert output["result"].trading_days == 40
    assert output["metrics"]["final_equity"] == pytest.approx(output["result"].final_equity)

    with pytest.raises(InsufficientDataError):
        api.backtest_portfolio(["ZZZ"], days=40, data=data)


def test_monte_carlo_dict():
    summary = api.monte_carlo([1.0, -1.0, 2.0], 10_000, simulations=20, seed=3)
    assert summary["simulations"] == 20
    assert summary["median_return"] == pytest.approx(2.0)
    assert api.monte_carlo([], 10_000) == {}

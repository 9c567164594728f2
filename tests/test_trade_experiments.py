from tests.test_core import make_bars
from swing_trader.trade_engine import PortfolioBacktestConfig
from swing_trader.trade_engine.experiments import run_param_sweep


def _universe():
    return {sym: make_bars(120, start=40.0 + 15 * i, step=0.1 * (i - 1)) for i, sym in enumerate(["AAA", "BBB", "CCC"])}


def test_run_param_sweep_produces_metrics():
    data = _universe()
    cfg = PortfolioBacktestConfig()
    param_grid = {
        "stop_loss_pct": [0.02],
        "target2_r_multiple": [2.0, 3.0],
        "max_positions": [2],
    }

    results = run_param_sweep(data, cfg, param_grid=param_grid, predicate=lambda h: len(h) % 5 == 0)

    assert len(results) == 2
    expected_cols = {"cagr", "sharpe", "max_dd", "daily_vol", "trades", "final_equity"}
    assert expected_cols.issubset(set(results.columns))
    assert (results["trades"] > 0).all()
    assert list(results.columns[:4]) == ["run", "stop_loss_pct", "target2_r_multiple", "max_positions"]


def test_run_param_sweep_records_invalid_combinations():
    data = _universe()
    param_grid = {"target1_r_multiple": [1.0, 4.0], "target2_r_multiple": [2.0]}

    results = run_param_sweep(data, PortfolioBacktestConfig(), param_grid=param_grid, max_runs=5)

    assert len(results) == 2
    errors = sorted(results["error"].fillna(""))
    assert errors[0] == ""
    assert errors[1].startswith("invalid_config")


def test_run_param_sweep_respects_max_runs():
    results = run_param_sweep(_universe(), PortfolioBacktestConfig(), max_runs=1)
    assert len(results) == 1

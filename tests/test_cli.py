import sys

import pytest

from swing_trader import main_backtest, main_portfolio
from swing_trader.trade_engine import BacktestConfig
from tests.test_core import make_bars


def test_parse_date_arg():
    assert main_backtest._parse_date_arg("2024-01-05") == "2024-01-05"
    assert main_backtest._parse_date_arg("None") is None
    with pytest.raises(SystemExit):
        main_backtest._parse_date_arg("not-a-date")


def test_backtest_run_prints_summary(tmp_path, capsys):
    import matplotlib

    matplotlib.use("Agg")
    plot_path = tmp_path / "equity.png"
    result, _ = main_backtest.run("AAA", make_bars(120, step=0.2), BacktestConfig(), 50, 1, plot_path=str(plot_path))

    out = capsys.readouterr().out
    assert "Backtest AAA" in out
    assert result.symbol == "AAA"
    assert plot_path.exists()


def test_backtest_run_short_history(capsys):
    assert main_backtest.run("AAA", make_bars(30), BacktestConfig(), 10, 1) is None
    assert "No backtest results" in capsys.readouterr().out


def test_portfolio_main_saves_outputs(tmp_path, monkeypatch, capsys):
    data = {"AAA": make_bars(120), "BBB": make_bars(120, start=60.0)}
    monkeypatch.setattr(main_portfolio, "load_bars", lambda symbols, days, refresh=False, max_workers=8: data)
    trades_path = tmp_path / "trades.csv"
    snaps_path = tmp_path / "snapshots.csv"
    monkeypatch.setattr(
        sys,
        "argv",
        ["main_portfolio", "aaa", "bbb", "--days", "40", "--save-trades", str(trades_path), "--save-snapshots", str(snaps_path)],
    )

    main_portfolio.main()

    out = capsys.readouterr().out
    assert "Portfolio 2 symbols" in out
    assert trades_path.exists()
    assert snaps_path.exists()


def test_portfolio_main_reports_insufficient_data(monkeypatch):
    monkeypatch.setattr(main_portfolio, "load_bars", lambda symbols, days, refresh=False, max_workers=8: {})
    monkeypatch.setattr(sys, "argv", ["main_portfolio", "AAA"])
    with pytest.raises(SystemExit):
        main_portfolio.main()

import pandas as pd
import pytest

from swing_trader.data.loader import FrameDataSource
from swing_trader.errors import InsufficientDataError
from swing_trader.trade_engine import PortfolioBacktestConfig, PortfolioBacktester
from swing_trader.trade_engine.portfolio import build_calendar
from tests.test_core import make_bars


def fires_at(length):
    def predicate(history):
        return len(history) == length

    return predicate


def never(history):
    return False


def assert_invariants(result, max_positions):
    for snap in result.snapshots:
        assert snap.cash + snap.position_value == pytest.approx(snap.equity)
        assert snap.positions <= max_positions


def test_one_slot_two_candidates():
    data = {"AAA": make_bars(80), "BBB": make_bars(80)}
    cfg = PortfolioBacktestConfig(max_positions=1)

    result = PortfolioBacktester(cfg, fires_at(60)).run(data)

    assert result.signals_skipped == 1
    assert [t.symbol for t in result.trades] == ["AAA"]
    assert result.trades[0].exit_reason == "timeout"
    assert result.max_positions_hit == 4
    assert result.snapshots[59].positions == 1
    assert_invariants(result, 1)


def test_candidates_ranked_by_score():
    data = {"AAA": make_bars(80, start=100.0), "BBB": make_bars(80, start=200.0)}

    def score(history):
        return float(history["Close"].iloc[-1]) if len(history) == 60 else 0.0

    result = PortfolioBacktester(PortfolioBacktestConfig(max_positions=1), score).run(data)

    assert result.trades[0].symbol == "BBB"
    assert result.signals_skipped == 1


def test_capacity_and_conservation_hold_every_day():
    data = {sym: make_bars(120, start=50.0 + 10 * i, step=0.1 * (i - 2)) for i, sym in enumerate("ABCDEFG")}
    cfg = PortfolioBacktestConfig(max_positions=3)

    result = PortfolioBacktester(cfg, lambda h: len(h) % 7 == 0).run(data)

    assert result.trades
    assert result.signals_skipped > 0
    assert_invariants(result, 3)
    assert result.snapshots[-1].equity == pytest.approx(result.final_equity)
    assert 0 < result.avg_positions <= 3


def test_open_positions_closed_at_end():
    data = {"AAA": make_bars(80)}
    cfg = PortfolioBacktestConfig(max_hold_days=10, slippage=0.0, commission=0.0)

    result = PortfolioBacktester(cfg, fires_at(76)).run(data)

    assert len(result.trades) == 1
    trade = result.trades[0]
    assert trade.exit_reason == "end"
    assert trade.exit_date == data["AAA"].index[-1]
    assert result.snapshots[-1].positions == 0
    assert result.final_equity == pytest.approx(100_000.0)
    assert_invariants(result, cfg.max_positions)


def test_missing_bar_skips_symbol_for_the_day():
    full = make_bars(80)
    gappy = make_bars(80).drop(full.index[[61, 62]])
    data = {"AAA": full, "BBB": gappy}

    result = PortfolioBacktester(PortfolioBacktestConfig(), fires_at(60)).run(data)

    exits = {t.symbol: t.exit_date for t in result.trades}
    assert exits["AAA"] == full.index[64]
    assert exits["BBB"] == full.index[66]


def test_duplicate_and_unsorted_dates_are_normalized():
    clean = {"AAA": make_bars(80), "BBB": make_bars(80, start=50.0)}
    messy = dict(clean)
    messy["AAA"] = pd.concat([clean["AAA"], clean["AAA"].iloc[[30, 70]]]).iloc[::-1]
    cfg = PortfolioBacktestConfig(max_positions=2)

    expected = PortfolioBacktester(cfg, fires_at(60)).run(clean)
    result = PortfolioBacktester(cfg, fires_at(60)).run(messy)

    assert result.trading_days == expected.trading_days
    assert [(t.symbol, t.exit_date, t.shares) for t in result.trades] == [
        (t.symbol, t.exit_date, t.shares) for t in expected.trades
    ]
    assert result.final_equity == pytest.approx(expected.final_equity)
    assert_invariants(result, 2)


def test_unaffordable_entry_retries_with_cash_buffer():
    cfg = PortfolioBacktestConfig(risk_per_trade=0.05, cash_buffer=100.0)
    result = PortfolioBacktester(cfg, fires_at(60)).run({"AAA": make_bars(80)})

    snap = result.snapshots[59]
    assert snap.positions == 1
    assert 100.0 <= snap.cash < 300.0


def test_calendar_uses_dates_shared_by_half_the_symbols():
    data = {
        "AAA": make_bars(31),
        "BBB": make_bars(30),
        "CCC": make_bars(30),
        "DDD": make_bars(30),
    }
    calendar = build_calendar(data)
    assert len(calendar) == 30
    assert calendar[-1] == data["BBB"].index[-1]
    assert calendar.is_monotonic_increasing

    assert len(build_calendar(data, days=20)) == 20
    assert build_calendar(data, days=20)[-1] == calendar[-1]


def test_too_few_common_days_is_fatal():
    with pytest.raises(InsufficientDataError):
        PortfolioBacktester(PortfolioBacktestConfig(), never).run({"AAA": make_bars(15)})
    with pytest.raises(InsufficientDataError):
        PortfolioBacktester(PortfolioBacktestConfig(), never).run({})


def test_run_from_source_skips_missing_symbols():
    source = FrameDataSource({"AAA": make_bars(100), "BBB": make_bars(100)})
    result = PortfolioBacktester(PortfolioBacktestConfig(), never).run_from_source(source, ["AAA", "BBB", "ZZZ"], days=30)

    assert result.symbols == ["AAA", "BBB"]
    assert result.trading_days == 30
    assert result.trades == []
    assert result.final_equity == pytest.approx(100_000.0)
    assert result.cagr == 0.0

    with pytest.raises(InsufficientDataError):
        PortfolioBacktester(PortfolioBacktestConfig(), never).run_from_source(source, ["ZZZ"], days=30)


def test_result_frames_and_dict():
    result = PortfolioBacktester(PortfolioBacktestConfig(), fires_at(60)).run({"AAA": make_bars(80)})

    frame = result.snapshots_frame()
    assert len(frame) == result.trading_days
    assert {"equity", "cash", "position_value", "day_return"} <= set(frame.columns)
    assert len(result.trades_frame()) == len(result.trades)
    data = result.to_dict()
    assert data["signals_skipped"] == 0
    assert len(data["snapshots"]) == 80
    assert len(result.equity_curve) == 80

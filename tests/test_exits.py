import pandas as pd
import pytest

from swing_trader.trade_engine.exits import ExitEngine, build_trade, trading_days_since
from swing_trader.trade_engine.types import ExitAction, ExitReason, Observation, Position, PositionState


def make_position(quantity=100, max_hold_days=7) -> Position:
    return Position(
        symbol="AAA",
        quantity=quantity,
        entry_price=100.0,
        stop_price=98.0,
        initial_stop=98.0,
        target1=103.0,
        target2=106.0,
        entry_time=pd.Timestamp("2024-01-02"),
        strategy="pullback",
        max_hold_days=max_hold_days,
    )


def bar(low, high, close=None) -> Observation:
    return Observation(low=low, high=high, close=close if close is not None else (low + high) / 2)


def test_stop_wins_when_bar_spans_stop_and_target():
    engine = ExitEngine(slippage=0.001)
    decision = engine.evaluate(make_position(), bar(low=97.0, high=107.0), days_held=1)

    assert decision.action == ExitAction.FULL
    assert decision.reason == ExitReason.STOP
    assert decision.quantity == 100
    assert decision.price == pytest.approx(98.0 * 0.999)
    assert decision.state == PositionState.CLOSED
    assert decision.position.quantity == 0


def test_partial_exit_then_target2():
    engine = ExitEngine()
    position = make_position()

    first = engine.evaluate(position, bar(low=101.0, high=103.0), days_held=1)
    assert first.action == ExitAction.PARTIAL
    assert first.reason == ExitReason.TARGET1
    assert first.quantity == 50
    assert first.price == pytest.approx(103.0)
    assert first.position.quantity == 50
    assert first.position.stop_price == 100.0
    assert first.position.target1_hit
    assert first.state == PositionState.OPEN_HALF

    second = engine.evaluate(first.position, bar(low=100.5, high=102.0), days_held=2)
    assert second.action == ExitAction.NONE
    assert second.position.quantity == 50

    third = engine.evaluate(second.position, bar(low=101.0, high=106.0), days_held=3)
    assert third.action == ExitAction.FULL
    assert third.reason == ExitReason.TARGET2
    assert third.quantity == 50
    assert third.price == pytest.approx(106.0)


def test_low_touching_breakeven_stop_exits():
    engine = ExitEngine()
    half = engine.evaluate(make_position(), bar(low=101.0, high=103.0), days_held=1).position

    decision = engine.evaluate(half, bar(low=100.0, high=106.0), days_held=2)

    assert decision.reason == ExitReason.STOP
    assert decision.quantity == 50
    assert decision.price == pytest.approx(100.0)


def test_quantity_never_increases_after_partial():
    engine = ExitEngine()
    position = make_position(quantity=101)
    quantities = [position.quantity]
    for low, high in [(101.0, 104.0), (101.0, 104.0), (100.5, 105.0), (101.0, 106.5)]:
        decision = engine.evaluate(position, bar(low, high), days_held=1)
        position = decision.position
        quantities.append(position.quantity)
        if decision.closed:
            break

    assert quantities == [101, 51, 51, 51, 0]
    assert all(a >= b for a, b in zip(quantities, quantities[1:]))


def test_single_share_skips_partial_exit():
    engine = ExitEngine()
    decision = engine.evaluate(make_position(quantity=1), bar(low=101.0, high=104.0), days_held=1)

    assert decision.action == ExitAction.NONE
    assert not decision.position.target1_hit


def test_time_stop_exits_at_close():
    engine = ExitEngine(slippage=0.001)
    position = make_position(max_hold_days=5)

    assert engine.evaluate(position, bar(99.0, 101.0, close=100.5), days_held=4).action == ExitAction.NONE

    decision = engine.evaluate(position, bar(99.0, 101.0, close=100.5), days_held=5)
    assert decision.reason == ExitReason.TIMEOUT
    assert decision.price == pytest.approx(100.5 * 0.999)


def test_no_action_tracks_last_price():
    decision = ExitEngine().evaluate(make_position(), bar(99.0, 101.0, close=100.7), days_held=1)
    assert decision.action == ExitAction.NONE
    assert decision.position.last_price == 100.7
    assert decision.state == PositionState.OPEN_FULL


def test_quote_observation_uses_same_rules():
    engine = ExitEngine()
    assert engine.evaluate(make_position(), Observation.from_quote(97.5), 1).reason == ExitReason.STOP
    assert engine.evaluate(make_position(), Observation.from_quote(103.2), 1).reason == ExitReason.TARGET1


def test_closed_position_cannot_be_evaluated():
    closed = ExitEngine().close_at(make_position(), 101.0).position
    with pytest.raises(ValueError):
        ExitEngine().evaluate(closed, bar(99.0, 101.0), days_held=1)


def test_close_at_marks_end_of_period():
    decision = ExitEngine(slippage=0.001).close_at(make_position(), 102.0)
    assert decision.reason == ExitReason.END
    assert decision.quantity == 100
    assert decision.price == pytest.approx(102.0 * 0.999)


def test_trading_days_since_counts_weekdays():
    friday = pd.Timestamp("2024-01-05")
    assert trading_days_since(friday, pd.Timestamp("2024-01-08")) == 1
    assert trading_days_since(friday, pd.Timestamp("2024-01-12")) == 5
    assert trading_days_since(friday, friday) == 0
    assert trading_days_since(friday, pd.Timestamp("2024-01-01")) == 0


def test_build_trade_uses_initial_risk():
    position = make_position()
    trade = build_trade(position, pd.Timestamp("2024-01-05"), 106.0, 50, ExitReason.TARGET2)

    assert trade.pnl == pytest.approx(300.0)
    assert trade.pnl_pct == pytest.approx(6.0)
    assert trade.r_multiple == pytest.approx(3.0)
    assert trade.is_win
    assert trade.exit_reason == "target2"

    with_fees = build_trade(position, pd.Timestamp("2024-01-05"), 106.0, 50, ExitReason.TARGET2, commission=0.001)
    assert with_fees.pnl == pytest.approx(300.0 - 50 * 100 * 0.001 - 50 * 106 * 0.001)
    assert with_fees.to_dict()["exit_date"].startswith("2024-01-05")

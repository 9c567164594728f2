import pandas as pd

from swing_trader.data.loader import (
    DataSource,
    FrameDataSource,
    load_from_cache,
    load_universe,
    normalize_bars,
    save_to_cache,
)
from tests.test_core import make_bars


class FailingSource(DataSource):
    def get_daily_bars(self, symbol, count):
        if symbol == "ERR":
            raise ConnectionError("boom")
        return make_bars(count)


def test_normalize_bars_sorts_and_drops_missing_closes():
    bars = make_bars(5)
    shuffled = bars.iloc[[3, 1, 4, 0, 2]].copy()
    shuffled.index = shuffled.index.strftime("%Y-%m-%d")
    shuffled.iloc[0, shuffled.columns.get_loc("Close")] = float("nan")

    out = normalize_bars(shuffled)

    assert isinstance(out.index, pd.DatetimeIndex)
    assert out.index.is_monotonic_increasing
    assert len(out) == 4
    assert list(out.columns) == ["Open", "High", "Low", "Close", "Volume"]
    assert normalize_bars(pd.DataFrame()).empty


def test_frame_source_returns_most_recent_bars():
    source = FrameDataSource({"AAA": make_bars(100)})
    bars = source.get_daily_bars("AAA", 30)
    assert len(bars) == 30
    assert bars.index[-1] == make_bars(100).index[-1]
    assert source.get_daily_bars("ZZZ", 30).empty


def test_load_universe_skips_errors_and_short_history():
    data = load_universe(FailingSource(), ["AAA", "ERR", "BBB", "AAA"], 80, max_workers=2)
    assert list(data) == ["AAA", "BBB"]

    short = load_universe(FailingSource(), ["AAA"], 30)
    assert short == {}
    assert load_universe(FailingSource(), [], 80) == {}


def test_cache_round_trip(tmp_path):
    path = tmp_path / "bars.pkl"
    assert load_from_cache(path) is None

    save_to_cache({"AAA": make_bars(10)}, path)
    cached = load_from_cache(path)
    assert list(cached) == ["AAA"]
    pd.testing.assert_frame_equal(cached["AAA"], make_bars(10))

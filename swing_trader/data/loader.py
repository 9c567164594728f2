"""Daily bar sources and helpers to load and cache a symbol universe."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

import pandas as pd

from swing_trader.config import DATA_CACHE_FILE, MIN_HISTORY_BARS, ensure_cache_dir

logger = logging.getLogger(__name__)

BAR_COLUMNS = ["Open", "High", "Low", "Close", "Volume"]


def normalize_bars(df: pd.DataFrame) -> pd.DataFrame:
    """Return bars sorted ascending on a DatetimeIndex, without rows lacking a close."""
    if df is None or df.empty:
        return pd.DataFrame(columns=BAR_COLUMNS)
    df = df.copy()
    df.index = pd.to_datetime(df.index)
    df.sort_index(inplace=True)
    df = df[~df.index.duplicated(keep="last")]
    df = df.dropna(subset=["Close"])
    return df[[col for col in BAR_COLUMNS if col in df.columns]]


class DataSource:
    """Provides ascending daily bars for a symbol."""

    def get_daily_bars(self, symbol: str, count: int) -> pd.DataFrame:
        """Return up to ``count`` most recent bars; fewer, or none, when history is short."""
        raise NotImplementedError


class FrameDataSource(DataSource):
    """Serve bars from frames already in memory."""

    def __init__(self, frames: Mapping[str, pd.DataFrame]):
        self.frames = {symbol: normalize_bars(frame) for symbol, frame in frames.items()}

    def get_daily_bars(self, symbol: str, count: int) -> pd.DataFrame:
        frame = self.frames.get(symbol)
        if frame is None:
            return pd.DataFrame(columns=BAR_COLUMNS)
        return frame.tail(count)


class YahooDataSource(DataSource):
    """Download daily bars with yfinance."""

    def __init__(self, auto_adjust: bool = False):
        self.auto_adjust = auto_adjust

    def get_daily_bars(self, symbol: str, count: int) -> pd.DataFrame:
        try:
            import yfinance as yf
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError("yfinance is required to download data") from exc

        # Calendar days covering ``count`` sessions, weekends and holidays included
        start = pd.Timestamp.today().normalize() - pd.Timedelta(days=int(count * 1.5) + 10)
        data = yf.download(
            tickers=symbol,
            start=start.strftime("%Y-%m-%d"),
            auto_adjust=self.auto_adjust,
            progress=False,
        )
        if isinstance(data.columns, pd.MultiIndex):
            data.columns = data.columns.get_level_values(0)
        return normalize_bars(data).tail(count)


def load_universe(
    source: DataSource,
    symbols: Iterable[str],
    count: int,
    min_bars: int = MIN_HISTORY_BARS,
    max_workers: int = 8,
) -> Dict[str, pd.DataFrame]:
    """Fetch bars for many symbols concurrently.

    Symbols whose source raises, or that return fewer than ``min_bars`` rows, are
    logged and left out of the result.
    """
    symbols = list(dict.fromkeys(symbols))
    data: Dict[str, pd.DataFrame] = {}
    if not symbols:
        return data

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(symbols)))) as pool:
        futures = {pool.submit(source.get_daily_bars, symbol, count): symbol for symbol in symbols}
        for future in as_completed(futures):
            symbol = futures[future]
            try:
                bars = normalize_bars(future.result())
            except Exception as exc:
                logger.warning("loader: skipping %s (%s)", symbol, exc)
                continue
            if len(bars) < min_bars:
                logger.info("loader: skipping %s, %d bars < %d", symbol, len(bars), min_bars)
                continue
            data[symbol] = bars

    logger.info("loader: loaded %d/%d symbols", len(data), len(symbols))
    return {symbol: data[symbol] for symbol in symbols if symbol in data}


def save_to_cache(data: Mapping[str, pd.DataFrame], path: Optional[Path] = None) -> Path:
    """Cache a ``{symbol: bars}`` mapping to disk."""
    if path is None:
        ensure_cache_dir()
    target = path or DATA_CACHE_FILE
    target.parent.mkdir(parents=True, exist_ok=True)
    pd.to_pickle(dict(data), target)
    return target


def load_from_cache(path: Path = DATA_CACHE_FILE) -> Optional[Dict[str, pd.DataFrame]]:
    """Load cached bars if the file exists."""
    if path.exists():
        return pd.read_pickle(path)
    return None

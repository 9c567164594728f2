"""Global configuration for the swing trading engine."""

from __future__ import annotations

from pathlib import Path
from typing import List

ROOT = Path(__file__).resolve().parent
DATA_CACHE_DIR = ROOT / "cache"
DATA_CACHE_FILE = DATA_CACHE_DIR / "bars.pkl"
PLAN_STORE_FILE = DATA_CACHE_DIR / "plans.json"

DEFAULT_SYMBOLS: List[str] = ["AAPL", "MSFT", "NVDA", "AMZN", "GOOGL", "META", "AMD", "AVGO"]
DEFAULT_LOOKBACK_DAYS = 250
DEFAULT_INITIAL_CAPITAL = 100_000.0

# Bars required before the first signal can be evaluated (MA50 + buffer).
MIN_HISTORY_BARS = 60
TRADING_DAYS_PER_YEAR = 252


def ensure_cache_dir() -> Path:
    DATA_CACHE_DIR.mkdir(parents=True, exist_ok=True)
    return DATA_CACHE_DIR

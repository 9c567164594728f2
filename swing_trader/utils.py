from __future__ import annotations

from typing import Optional

import pandas as pd


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Divide, returning ``default`` instead of raising on a zero denominator."""
    if denominator == 0:
        return default
    return numerator / denominator


def iso_date(value: Optional[pd.Timestamp]) -> Optional[str]:
    if value is None:
        return None
    return pd.Timestamp(value).isoformat()

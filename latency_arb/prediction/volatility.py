"""
Realized volatility estimation.

Uses log returns: σ = std(ln(S_t / S_{t-1}))
Annualized: σ_annual = σ_interval × √(seconds_per_year / interval)
"""
import math
from typing import Iterable

import numpy as np

from .fair_value import SECONDS_PER_YEAR

DEFAULT_VOLATILITY = 0.50  # Mid-range for BTC when history is too short
MIN_VOLATILITY = 0.20
MAX_VOLATILITY = 1.50


def estimate_volatility(
    prices: Iterable[float],
    interval_seconds: float = 60,
    default: float = DEFAULT_VOLATILITY,
    floor: float = MIN_VOLATILITY,
    ceiling: float = MAX_VOLATILITY
) -> float:
    """
    Annualized volatility from evenly spaced price samples.

    Args:
        prices: Samples, oldest first, one per interval
        interval_seconds: Sampling interval
        default: Returned when fewer than 3 usable samples exist
        floor: Lower clamp (a flat series returns this)
        ceiling: Upper clamp

    Returns:
        Volatility in [floor, ceiling], or default
    """
    samples = np.array([p for p in prices if p > 0 and math.isfinite(p)], dtype=float)
    if len(samples) < 3 or interval_seconds <= 0:
        return default

    returns = np.diff(np.log(samples))
    std = float(np.std(returns, ddof=1))
    if not math.isfinite(std):
        return default

    annualized = std * math.sqrt(SECONDS_PER_YEAR / interval_seconds)
    return max(floor, min(ceiling, annualized))

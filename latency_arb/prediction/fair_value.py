"""
Fair Value Models

Theoretical probability that BTC finishes the window above its open price.

1. Black-Scholes binary (cash-or-nothing) call with zero risk-free rate:
       z = (ln(S/K) - σ²/2 · T) / (σ · √T)
       P(up) = Φ(z)
2. Calibrated linear approximation in |delta %|, used when no usable
   volatility estimate is wanted.
"""
import math
from dataclasses import dataclass
from enum import Enum
from scipy.stats import norm


SECONDS_PER_YEAR = 365.25 * 24 * 3600
MIN_YEARS = 1e-10  # Floor for T as the deadline is reached


class InvalidInputError(ValueError):
    """Non-positive price, strike or volatility passed to a fair value model."""


class FairValueModel(Enum):
    """Interchangeable fair value strategies."""
    BLACK_SCHOLES = "black_scholes"
    LINEAR = "linear"


@dataclass(frozen=True)
class FairValue:
    """Model output for both outcomes. fair_up + fair_down == 1."""
    fair_up: float
    fair_down: float
    d2: float
    volatility: float
    seconds_remaining: float

    def for_up(self, is_up: bool) -> float:
        return self.fair_up if is_up else self.fair_down


def binary_option_fair_value(
    current_price: float,
    strike_price: float,
    seconds_remaining: float,
    volatility: float
) -> FairValue:
    """
    Price a binary up/down outcome.

    Args:
        current_price: Live BTC price (S)
        strike_price: Window open price (K)
        seconds_remaining: Seconds until the window closes
        volatility: Annualized volatility (σ)

    Returns:
        FairValue with P(up) and P(down) = 1 - P(up)

    Raises:
        InvalidInputError: If S, K or σ is not positive
    """
    if current_price <= 0 or strike_price <= 0:
        raise InvalidInputError(
            f"Prices must be positive (current={current_price}, strike={strike_price})"
        )
    if volatility <= 0:
        raise InvalidInputError(f"Volatility must be positive, got {volatility}")

    years = max(seconds_remaining / SECONDS_PER_YEAR, MIN_YEARS)

    # At the money the outcome is a coin flip
    if current_price == strike_price:
        return FairValue(0.5, 0.5, 0.0, volatility, seconds_remaining)

    sigma_sqrt_t = volatility * math.sqrt(years)
    d2 = (math.log(current_price / strike_price) - (volatility ** 2 / 2) * years) / sigma_sqrt_t

    fair_up = float(norm.cdf(d2))
    return FairValue(
        fair_up=fair_up,
        fair_down=1.0 - fair_up,
        d2=d2,
        volatility=volatility,
        seconds_remaining=seconds_remaining
    )


def linear_fair_value(
    delta_percent: float,
    seconds_into_window: float,
    window_seconds: float = 300,
    base: float = 0.50,
    multiplier: float = 1.5,
    cap: float = 0.75
) -> float:
    """
    Linear approximation of the winning side's probability.

    Grows with |delta %| and with time elapsed (time factor 0.5 at the
    open, 1.0 at the close), capped below 1.

    Example: 0.10% move at 150s -> 0.5 + 0.10 * 1.5 * 0.75 = 0.6125
    """
    if window_seconds <= 0:
        raise InvalidInputError(f"Window length must be positive, got {window_seconds}")
    elapsed = min(max(seconds_into_window, 0.0), window_seconds)
    time_factor = 0.5 + elapsed / (2 * window_seconds)
    return min(base + abs(delta_percent) * multiplier * time_factor, cap)


def time_weighted(probability: float, seconds_into_window: float, window_seconds: float = 300) -> float:
    """
    Pull a probability toward 0.5 early in the window.

    Weight grows from 0.5 at the open to 1.0 at the close; late moves have
    less time to reverse.
    """
    elapsed = min(max(seconds_into_window, 0.0), window_seconds)
    weight = 0.5 + 0.5 * elapsed / window_seconds
    return 0.5 + (probability - 0.5) * weight

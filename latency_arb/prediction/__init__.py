"""Fair value models, volatility and edge evaluation."""
from .fair_value import (
    FairValue,
    FairValueModel,
    InvalidInputError,
    binary_option_fair_value,
    linear_fair_value,
    time_weighted,
)
from .volatility import estimate_volatility
from .edge import EdgeEvaluator

__all__ = [
    "FairValue",
    "FairValueModel",
    "InvalidInputError",
    "binary_option_fair_value",
    "linear_fair_value",
    "time_weighted",
    "estimate_volatility",
    "EdgeEvaluator",
]

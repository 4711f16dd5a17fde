"""Position sizing and circuit breaker."""
from .manager import (
    CircuitBreaker,
    RiskManager,
    SizingResult,
    kelly_bet_size,
    kelly_fraction,
    limit_price,
    share_count,
)

__all__ = [
    "CircuitBreaker",
    "RiskManager",
    "SizingResult",
    "kelly_bet_size",
    "kelly_fraction",
    "limit_price",
    "share_count",
]

# Polymarket clients
from .clob_client import CLOBClient, OrderResult, BookTop
from .gamma_client import GammaClient, MarketUnavailableError, parse_market, parse_outcome

__all__ = [
    "CLOBClient",
    "OrderResult",
    "BookTop",
    "GammaClient",
    "MarketUnavailableError",
    "parse_market",
    "parse_outcome",
]

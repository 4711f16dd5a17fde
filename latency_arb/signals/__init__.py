"""
Signal generation and data feeds.

This module provides:
- BybitPriceFeed: WebSocket BTC trade feed (primary source)
- CoinGeckoPoller: REST price polling (secondary confirmation source)
- PriceHistory / WindowTracker: Bounded close history and window opens
- SignalController: Per-tick gating, evaluation and sizing
"""
from .buffers import PriceHistory, WindowTracker
from .price_feed import BybitPriceFeed, CoinGeckoPoller
from .controller import ControllerState, SignalController

__all__ = [
    "PriceHistory",
    "WindowTracker",
    "BybitPriceFeed",
    "CoinGeckoPoller",
    "ControllerState",
    "SignalController",
]

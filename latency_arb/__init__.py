"""
BTC 5-Minute Latency Arbitrage Bot

Watches a BTC spot feed and the Polymarket "BTC up/down 5m" binary market,
and bets when the spot move since the window open has not yet been priced
into the venue's odds.

Entry points:
- python -m latency_arb.main    (bot + control API)

Key Modules:
- latency_arb.prediction: Fair value, volatility and edge evaluation
- latency_arb.risk: Kelly sizing and circuit breaker
- latency_arb.signals: Price feeds, window tracking, signal controller
- latency_arb.execution: Order execution and settlement
- latency_arb.clients: Gamma and CLOB API clients
- latency_arb.api: FastAPI control surface
"""

__version__ = "0.5.0"

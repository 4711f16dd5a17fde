"""
Risk Management Module

Implements the bot's risk controls:
- Position sizing (fractional Kelly, bounded by floor/ceiling/balance)
- Limit price and share count at the venue's tick size
- P&L circuit breaker
"""
import math
from dataclasses import dataclass
from typing import Optional

from ..config import RiskConfig
from ..models import BankrollState
from ..utils.logger import get_logger, TradeLogger

logger = get_logger("risk")


def kelly_fraction(fair_value: float, venue_price: float) -> float:
    """
    Full Kelly fraction for a binary contract paying $1.

    f* = (p - price) / (1 - price), clamped to >= 0.
    A price at or above 1 has no defined odds; callers treat it as the
    ceiling case.
    """
    if venue_price >= 1:
        return 1.0
    return max(0.0, (fair_value - venue_price) / (1 - venue_price))


def kelly_bet_size(
    fair_value: float,
    venue_price: float,
    bankroll: float,
    kelly_fraction_applied: float = 0.25,
    floor: float = 10.0,
    ceiling: float = 50.0,
    available_balance: Optional[float] = None,
    min_viable: float = 5.0
) -> float:
    """
    Calculate bet size in USD.

    Args:
        fair_value: Model probability for the side being bought
        venue_price: Venue price for that side
        bankroll: Sizing bankroll
        kelly_fraction_applied: Fraction of full Kelly to bet
        floor: Minimum bet
        ceiling: Maximum bet
        available_balance: Cash on hand (defaults to bankroll)
        min_viable: Below this the trade is skipped (returns 0)

    Returns:
        Size in [floor, min(ceiling, available)], a smaller affordable size
        when the balance is under the floor, or 0
    """
    available = bankroll if available_balance is None else available_balance

    if venue_price >= 1:
        raw = ceiling
    else:
        raw = bankroll * kelly_fraction(fair_value, venue_price) * kelly_fraction_applied

    # Degrade to what is affordable when the balance is under the floor
    size = min(max(raw, floor), min(ceiling, available))
    if size < min_viable:
        return 0.0
    return size


def limit_price(venue_price: float, slippage: float = 0.02, max_price: float = 0.65, tick: float = 0.01) -> float:
    """Quote plus slippage, on the tick grid, capped at max_price."""
    decimals = max(0, round(-math.log10(tick)))
    return min(round(venue_price + slippage, decimals), max_price)


def share_count(size_usd: float, price: float) -> int:
    """Whole shares affordable at price."""
    if price <= 0:
        return 0
    return int(math.floor(size_usd / price + 1e-9))


@dataclass
class SizingResult:
    """Order sizing for one signal."""
    size_usd: float
    limit_price: float
    shares: int

    @property
    def cost(self) -> float:
        return round(self.shares * self.limit_price, 2)


class CircuitBreaker:
    """Halts trading once cumulative P&L reaches the floor."""

    def __init__(self, pnl_floor: float = -100.0):
        self.pnl_floor = pnl_floor
        self.trade_logger = TradeLogger()

    def check(self, state: BankrollState) -> bool:
        """
        Returns True if trading must stop.

        Trips on cumulative_pnl <= pnl_floor: sets paused and logs at ERROR
        the first time. Only an explicit resume clears the pause.
        """
        if state.cumulative_pnl > self.pnl_floor:
            return False

        if not state.paused:
            state.paused = True
            state.pause_reason = (
                f"Circuit breaker: P&L ${state.cumulative_pnl:.2f} <= ${self.pnl_floor:.2f}"
            )
            self.trade_logger.circuit_breaker_tripped(state.cumulative_pnl, self.pnl_floor)
        return True


class RiskManager:
    """Sizing and circuit breaker bound to a RiskConfig."""

    def __init__(self, config: Optional[RiskConfig] = None):
        self.config = config or RiskConfig()
        self.circuit_breaker = CircuitBreaker(self.config.pnl_floor)

    def update_config(self, config: RiskConfig):
        self.config = config
        self.circuit_breaker.pnl_floor = config.pnl_floor

    def effective_bankroll(self, state: BankrollState) -> float:
        return max(self.config.bankroll + state.cumulative_pnl, self.config.min_bet)

    def size(self, fair_value: float, venue_price: float, state: BankrollState) -> SizingResult:
        """
        Size a bet and convert it to a limit order.

        Kelly is applied to the effective bankroll (starting bankroll plus
        cumulative P&L, never below min_bet), so size compounds with wins
        and shrinks after losses.
        """
        cfg = self.config
        size_usd = kelly_bet_size(
            fair_value,
            venue_price,
            bankroll=self.effective_bankroll(state),
            kelly_fraction_applied=cfg.kelly_fraction,
            floor=cfg.min_bet,
            ceiling=cfg.max_bet,
            available_balance=state.available_balance,
            min_viable=cfg.min_viable_bet
        )
        price = limit_price(venue_price, cfg.price_slippage, cfg.max_price, cfg.price_tick)
        shares = share_count(size_usd, price) if size_usd > 0 else 0

        logger.debug(
            f"Sizing: fair={fair_value:.3f} venue={venue_price:.2f} -> "
            f"${size_usd:.2f} @ {price:.2f} = {shares} shares"
        )
        return SizingResult(size_usd=size_usd, limit_price=price, shares=shares)

    def check_circuit_breaker(self, state: BankrollState) -> bool:
        return self.circuit_breaker.check(state)

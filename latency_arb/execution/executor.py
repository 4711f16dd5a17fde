"""
Order execution for latency arbitrage signals.
Places (or simulates) a single limit buy per actionable signal.
"""

import time
from typing import Callable, Optional

from ..clients.clob_client import CLOBClient
from ..database import TradeDatabase
from ..models import BankrollState, MarketQuote, Signal, TradeRecord
from ..risk.manager import SizingResult
from ..utils.logger import get_logger, TradeLogger

logger = get_logger("executor")
trade_logger = TradeLogger()


class OrderExecutor:
    """
    Turns signals into trades.

    Key responsibilities:
    - Build the TradeRecord with full entry context for post-mortems
    - Dry run: record with status "dry-run", no order, no balance change
    - Live: place a GTC limit buy, debit the cost from the bankroll
    - Persist every trade, and the bankroll after a live debit
    """

    def __init__(
        self,
        bankroll: BankrollState,
        db: Optional[TradeDatabase] = None,
        clob_client: Optional[CLOBClient] = None,
        dry_run: bool = True,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize order executor.

        Args:
            bankroll: Shared bankroll state (debited on live fills)
            db: Trade store
            clob_client: CLOB client, required unless dry_run
            dry_run: Simulate orders
            clock: Time source for placed_at
        """
        if not dry_run and clob_client is None:
            raise ValueError("Live execution requires a CLOB client")
        self.bankroll = bankroll
        self.db = db
        self.clob_client = clob_client
        self.dry_run = dry_run
        self._clock = clock

    async def execute(self, signal: Signal, quote: MarketQuote, sizing: SizingResult) -> Optional[TradeRecord]:
        """
        Execute an actionable signal.

        Returns:
            The recorded trade, or None if the signal is not actionable or
            the order failed
        """
        if not signal.is_actionable or sizing.shares < 1:
            logger.warning(f"Refusing to execute non-actionable signal for {signal.window_start}")
            return None

        token_id = quote.token_for(signal.direction)
        trade = TradeRecord(
            window_start=signal.window_start,
            direction=signal.direction,
            limit_price=sizing.limit_price,
            shares=sizing.shares,
            cost=sizing.cost,
            confidence=signal.confidence,
            fair_value=signal.fair_value,
            venue_price=signal.venue_price,
            entry_price=signal.current_price,
            window_open_price=signal.window_open_price,
            delta=signal.delta,
            seconds_into_window=signal.seconds_into_window,
            market_slug=quote.slug,
            token_id=token_id,
            reasons=signal.reasons,
            placed_at=self._clock(),
        )

        if self.dry_run:
            trade.status = "dry-run"
            logger.info(
                f"DRY RUN: {signal.direction.value} {trade.shares} @ {trade.limit_price:.2f} "
                f"= ${trade.cost:.2f} ({signal.seconds_into_window:.0f}s into window)"
            )
        else:
            if trade.cost > self.bankroll.available_balance:
                logger.warning(
                    f"Cost ${trade.cost:.2f} exceeds available ${self.bankroll.available_balance:.2f}"
                )
                return None

            result = await self.clob_client.place_order(token_id, float(trade.shares), trade.limit_price)
            if not result.success:
                trade_logger.order_failed(signal.window_start, signal.direction.value, result.error)
                return None

            trade.order_id = result.order_id
            trade.status = "pending"
            self.bankroll.available_balance -= trade.cost

        if self.db is not None:
            self.db.add_trade(trade)
            if not self.dry_run:
                # Debit must survive a crash before settlement
                self.db.save_state("bankroll", self.bankroll.to_dict())

        trade_logger.order_placed(
            trade.id or 0,
            trade.window_start,
            trade.direction.value,
            trade.shares,
            trade.limit_price,
            self.dry_run
        )
        return trade

"""
Settlement of placed trades.

Runs on a timer alongside tick evaluation. Each pass resolves pending
trades whose window has closed (plus a grace period), books P&L into the
shared bankroll, writes a post-mortem line for every loss, and stops as
soon as the circuit breaker trips.
"""
import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Union

from ..database import TradeDatabase
from ..models import Direction, TradeRecord
from ..utils.logger import get_logger, TradeLogger

logger = get_logger("settlement")
trade_logger = TradeLogger()

# Loss patterns, checked in order
ARB_TOO_EARLY = "ARB_TOO_EARLY"
ARB_MID_WINDOW = "ARB_MID_WINDOW"
ARB_SMALL_MOVE = "ARB_SMALL_MOVE"
ARB_MARKET_KNEW = "ARB_MARKET_KNEW"
ARB_REVERSAL = "ARB_REVERSAL"


def categorize_loss(trade: TradeRecord) -> str:
    """Bucket a losing trade by what most likely went wrong."""
    if trade.seconds_into_window < 120:
        return ARB_TOO_EARLY
    if trade.seconds_into_window < 200:
        return ARB_MID_WINDOW
    if abs(trade.delta) < 50:
        return ARB_SMALL_MOVE
    if trade.venue_price > 0.52:
        return ARB_MARKET_KNEW
    return ARB_REVERSAL


class Settler:
    """
    Resolves pending trades against venue outcomes.

    Args:
        db: Trade store
        outcome_provider: Object with async fetch_outcome(window_start) -> Direction | None
        controller: SignalController whose bankroll and circuit breaker are updated
        post_mortem_path: JSONL file for losing-trade records
        grace_seconds: Wait after the window closes before checking
        clock: Time source
    """

    def __init__(
        self,
        db: TradeDatabase,
        outcome_provider,
        controller,
        post_mortem_path: Union[str, Path] = "data/post-mortems.jsonl",
        grace_seconds: float = 60,
        clock: Callable[[], float] = time.time
    ):
        self.db = db
        self.outcome_provider = outcome_provider
        self.controller = controller
        self.post_mortem_path = Path(post_mortem_path)
        self.grace_seconds = grace_seconds
        self._clock = clock

    @property
    def bankroll(self):
        return self.controller.state.bankroll

    async def settle_pending(self) -> list[TradeRecord]:
        """
        One settlement pass. Safe to call repeatedly.

        Returns:
            Trades settled in this pass
        """
        settled = []
        now = self._clock()
        window_seconds = self.controller.config.signal.window_seconds

        for trade in self.db.get_pending_trades():
            if now < trade.window_start + window_seconds + self.grace_seconds:
                continue

            try:
                winner = await self.outcome_provider.fetch_outcome(trade.window_start)
            except Exception as e:
                logger.warning(f"Outcome check failed for {trade.window_start}: {e}")
                continue
            if winner is None:
                continue

            self._book(trade, winner, now)
            settled.append(trade)

            if self.controller.risk.check_circuit_breaker(self.bankroll):
                logger.error("Circuit breaker tripped after settlement; stopping this pass")
                break

        if settled:
            self.db.save_state("bankroll", self.bankroll.to_dict())
        return settled

    def _book(self, trade: TradeRecord, winner: Direction, now: float):
        bankroll = self.bankroll
        won = trade.direction == winner

        if won:
            trade.status = "win"
            trade.pnl = round(trade.shares * 1.0 - trade.cost, 2)
            bankroll.win_count += 1
            bankroll.available_balance += trade.shares * 1.0
        else:
            trade.status = "loss"
            trade.pnl = -trade.cost
            bankroll.loss_count += 1

        trade.settled_at = now
        bankroll.cumulative_pnl = round(bankroll.cumulative_pnl + trade.pnl, 2)

        self.db.update_trade(trade)
        self.controller.record_settlement(trade.window_start)

        trade_logger.trade_settled(
            trade.id or 0,
            trade.window_start,
            trade.direction.value,
            trade.status,
            trade.pnl,
            bankroll.cumulative_pnl
        )

        if not won:
            self.write_post_mortem(trade, winner)

    def write_post_mortem(self, trade: TradeRecord, winner: Direction) -> dict:
        """Append one JSON line describing a losing trade."""
        bankroll = self.bankroll
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "trade": {
                "id": trade.id,
                "market": trade.market_slug,
                "window_start": trade.window_start,
                "direction": trade.direction.value,
                "cost": trade.cost,
                "confidence": trade.confidence,
                "entry_price": trade.entry_price,
                "window_open_price": trade.window_open_price,
                "delta": trade.delta,
                "seconds_into_window": trade.seconds_into_window,
                "venue_price": trade.venue_price,
                "fair_value": trade.fair_value,
                "reasons": list(trade.reasons),
            },
            "outcome": winner.value,
            "pattern": categorize_loss(trade),
            "total_pnl": bankroll.cumulative_pnl,
            "record": f"{bankroll.win_count}W/{bankroll.loss_count}L",
        }

        self.post_mortem_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.post_mortem_path, "a") as f:
            f.write(json.dumps(record) + "\n")

        logger.info(
            f"Post-mortem {record['pattern']}: {trade.direction.value} ${trade.cost:.2f} "
            f"delta ${trade.delta:.0f} @ {trade.seconds_into_window:.0f}s"
        )
        return record


def read_post_mortems(path: Union[str, Path], limit: Optional[int] = None) -> list[dict]:
    """Most recent post-mortem records first."""
    path = Path(path)
    if not path.exists():
        return []
    with open(path) as f:
        records = [json.loads(line) for line in f if line.strip()]
    records.reverse()
    return records[:limit] if limit else records

"""
Shared data models for the latency arbitrage bot.
"""
import math
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class PriceSource(Enum):
    PRIMARY = "primary"      # Exchange trade stream
    SECONDARY = "secondary"  # Independent confirmation feed


class Direction(Enum):
    UP = "UP"
    DOWN = "DOWN"
    NONE = "NONE"

    @property
    def outcome(self) -> str:
        """Venue outcome label ("Up"/"Down")."""
        return self.value.capitalize()


def window_start_for(timestamp: float, duration: int = 300) -> int:
    """Deterministic window id: floor(t / duration) * duration."""
    return int(math.floor(timestamp / duration)) * duration


@dataclass(frozen=True)
class PriceObservation:
    """Single price tick from a feed."""
    price: float
    source: PriceSource
    observed_at: float  # unix seconds


@dataclass(frozen=True)
class Window:
    """Fixed-duration betting period with its open price."""
    window_start: int
    open_price: float
    duration: int = 300

    @property
    def deadline(self) -> int:
        return self.window_start + self.duration

    def seconds_into(self, timestamp: float) -> float:
        return timestamp - self.window_start

    def seconds_remaining(self, timestamp: float) -> float:
        return self.deadline - timestamp


@dataclass(frozen=True)
class MarketQuote:
    """Venue snapshot for one window. Up and down are quoted independently."""
    window_start: int
    up_price: float
    down_price: float
    up_best_bid: Optional[float] = None
    up_best_ask: Optional[float] = None
    down_best_bid: Optional[float] = None
    down_best_ask: Optional[float] = None
    up_ask_depth: Optional[float] = None
    down_ask_depth: Optional[float] = None
    slug: str = ""
    up_token_id: str = ""
    down_token_id: str = ""
    accepting_orders: bool = True

    def token_for(self, direction: Direction) -> str:
        return self.up_token_id if direction == Direction.UP else self.down_token_id


@dataclass(frozen=True)
class Signal:
    """Output of one evaluation. Never mutated after creation."""
    direction: Direction
    edge_cents: float
    confidence: float
    fair_value: float
    recommended_size: float
    reasons: Tuple[str, ...]
    evaluated_at: float

    # Context for execution and post-mortems
    window_start: int = 0
    seconds_into_window: float = 0.0
    current_price: float = 0.0
    window_open_price: float = 0.0
    delta: float = 0.0
    delta_percent: float = 0.0
    venue_price: float = 0.0
    volatility: float = 0.0

    @property
    def is_actionable(self) -> bool:
        return self.direction != Direction.NONE and self.recommended_size > 0

    @classmethod
    def no_trade(cls, reasons, evaluated_at: float, **context) -> "Signal":
        """Create a no-trade signal. Size and confidence are always zero."""
        context.pop("recommended_size", None)
        context.pop("confidence", None)
        return cls(
            direction=Direction.NONE,
            edge_cents=context.pop("edge_cents", 0.0),
            confidence=0.0,
            fair_value=context.pop("fair_value", 0.0),
            recommended_size=0.0,
            reasons=tuple(reasons),
            evaluated_at=evaluated_at,
            **context
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d['direction'] = self.direction.value
        d['reasons'] = list(self.reasons)
        return d


@dataclass
class BankrollState:
    """Bankroll counters. Mutated by execution and settlement only."""
    available_balance: float = 500.0
    cumulative_pnl: float = 0.0
    win_count: int = 0
    loss_count: int = 0
    paused: bool = False
    pause_reason: str = ""

    @property
    def win_rate(self) -> float:
        total = self.win_count + self.loss_count
        return self.win_count / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TradeRecord:
    """A placed (or simulated) order and its settlement."""
    window_start: int
    direction: Direction
    limit_price: float
    shares: int
    cost: float
    confidence: float
    fair_value: float
    venue_price: float
    entry_price: float  # BTC at entry
    window_open_price: float
    delta: float
    seconds_into_window: float
    market_slug: str = ""
    token_id: str = ""
    order_id: Optional[str] = None
    status: str = "pending"  # pending, win, loss, dry-run
    pnl: float = 0.0
    reasons: Tuple[str, ...] = field(default_factory=tuple)
    placed_at: float = 0.0
    settled_at: Optional[float] = None
    id: Optional[int] = None

    @property
    def hour_utc(self) -> int:
        return datetime.fromtimestamp(self.placed_at, tz=timezone.utc).hour

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d['direction'] = self.direction.value
        d['reasons'] = list(self.reasons)
        d['hour_utc'] = self.hour_utc
        return d

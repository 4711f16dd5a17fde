"""
Edge Evaluator

Decides whether the BTC move since the window open is a tradeable
mispricing against the venue quote:

1. Time-scaled minimum move (stricter early in the window)
2. Fair value for the side the move points to
3. Venue filters: no market, already priced in, market disagrees
4. Minimum edge in cents
"""
import math
from typing import Optional

from ..config import SignalConfig
from ..models import Direction, Signal
from ..utils.logger import get_logger
from .fair_value import (
    FairValueModel,
    InvalidInputError,
    binary_option_fair_value,
    linear_fair_value,
    time_weighted,
)

logger = get_logger("edge")


class EdgeEvaluator:
    """
    Scores a price delta against a venue quote.

    Pure given its inputs: the same arguments always produce the same Signal.
    The returned Signal never carries a size; sizing is done by the caller.
    """

    def __init__(self, config: Optional[SignalConfig] = None):
        self.config = config or SignalConfig()

    @property
    def model(self) -> FairValueModel:
        return FairValueModel(self.config.fair_value_model)

    def threshold_scale(self, seconds_into_window: float) -> float:
        """
        Multiplier on the minimum move.

        early_scale at the window open, falling linearly to 1.0 at
        late_window_mark and staying there.
        """
        cfg = self.config
        if cfg.late_window_mark <= 0:
            return 1.0
        remaining = max(0.0, 1.0 - seconds_into_window / cfg.late_window_mark)
        return 1.0 + (cfg.early_scale - 1.0) * remaining

    def fair_value(
        self,
        direction: Direction,
        window_open_price: float,
        current_price: float,
        delta_percent: float,
        seconds_into_window: float,
        volatility: float
    ) -> float:
        """Fair probability for the given side, optionally time-weighted."""
        cfg = self.config
        if self.model == FairValueModel.LINEAR:
            return linear_fair_value(
                delta_percent,
                seconds_into_window,
                cfg.window_seconds,
                base=cfg.fair_value_base,
                multiplier=cfg.fair_value_multiplier,
                cap=cfg.fair_value_cap
            )

        seconds_remaining = max(cfg.window_seconds - seconds_into_window, 0.0)
        fv = binary_option_fair_value(current_price, window_open_price, seconds_remaining, volatility)
        probability = fv.for_up(direction == Direction.UP)
        if cfg.time_weighting:
            probability = time_weighted(probability, seconds_into_window, cfg.window_seconds)
        return probability

    def evaluate(
        self,
        window_open_price: float,
        current_price: float,
        quote_up: Optional[float],
        quote_down: Optional[float],
        seconds_into_window: float,
        volatility: Optional[float] = None,
        evaluated_at: float = 0.0,
        window_start: int = 0
    ) -> Signal:
        """
        Evaluate one tick.

        Args:
            window_open_price: Strike for this window
            current_price: Live BTC price
            quote_up: Venue price of the Up token (None if no market)
            quote_down: Venue price of the Down token (None if no market)
            seconds_into_window: Elapsed seconds since window_start
            volatility: Annualized volatility, config default if None
            evaluated_at: Timestamp stamped onto the Signal
            window_start: Window id stamped onto the Signal

        Returns:
            Signal; direction NONE with a reason when any filter fails

        Raises:
            InvalidInputError: On non-positive prices or volatility
        """
        cfg = self.config
        if window_open_price <= 0 or current_price <= 0:
            raise InvalidInputError(
                f"Prices must be positive (open={window_open_price}, current={current_price})"
            )
        sigma = cfg.default_volatility if volatility is None else volatility
        if sigma <= 0:
            raise InvalidInputError(f"Volatility must be positive, got {sigma}")

        delta = current_price - window_open_price
        delta_percent = abs(delta) * 100 / window_open_price
        if delta < 0:
            delta_percent = -delta_percent

        context = dict(
            window_start=window_start,
            seconds_into_window=seconds_into_window,
            current_price=current_price,
            window_open_price=window_open_price,
            delta=delta,
            delta_percent=delta_percent,
            volatility=sigma,
        )
        reasons = [
            f"Delta {delta:+.2f} ({delta_percent:+.4f}%) at {seconds_into_window:.0f}s"
        ]

        # 1. Time-scaled minimum move
        scale = self.threshold_scale(seconds_into_window)
        min_pct = cfg.min_delta_percent * scale
        min_abs = cfg.min_delta_absolute * scale
        if abs(delta_percent) < min_pct or abs(delta) < min_abs:
            reasons.append(
                f"Move too small: need {min_pct:.4f}% and ${min_abs:.2f} (scale {scale:.2f}x)"
            )
            return Signal.no_trade(reasons, evaluated_at, **context)
        reasons.append(f"Move clears {min_pct:.4f}% / ${min_abs:.2f} (scale {scale:.2f}x)")

        # 2. Direction and fair value
        direction = Direction.UP if delta > 0 else Direction.DOWN
        fair = self.fair_value(
            direction, window_open_price, current_price, delta_percent, seconds_into_window, sigma
        )
        reasons.append(
            f"Fair value {direction.value} {fair:.3f} ({self.model.value}, vol {sigma:.0%})"
        )
        context["fair_value"] = fair

        # 3. Venue filters
        quote = quote_up if direction == Direction.UP else quote_down
        if quote is None or not math.isfinite(quote) or quote <= 0:
            reasons.append(f"No market quote for {direction.value}")
            return Signal.no_trade(reasons, evaluated_at, **context)
        context["venue_price"] = quote

        if quote >= cfg.max_token_price:
            reasons.append(
                f"{direction.value} already priced in at {quote:.2f} (ceiling {cfg.max_token_price:.2f})"
            )
            return Signal.no_trade(reasons, evaluated_at, **context)

        if quote < cfg.market_disagree_price:
            if abs(delta) < cfg.override_delta_absolute:
                reasons.append(
                    f"Market disagrees: {direction.value} at {quote:.2f}, "
                    f"move ${abs(delta):.2f} under ${cfg.override_delta_absolute:.0f} override"
                )
                return Signal.no_trade(reasons, evaluated_at, **context)
            reasons.append(
                f"Override: move ${abs(delta):.2f} >= ${cfg.override_delta_absolute:.0f} "
                f"despite {direction.value} at {quote:.2f}"
            )

        # 4. Edge
        edge = fair - quote
        edge_cents = edge * 100
        context["edge_cents"] = edge_cents
        if edge_cents < cfg.min_edge_cents:
            reasons.append(f"Edge {edge_cents:.1f}c below {cfg.min_edge_cents:.0f}c minimum")
            return Signal.no_trade(reasons, evaluated_at, **context)

        confidence = min(cfg.confidence_cap, cfg.confidence_base + edge)
        reasons.append(
            f"Edge {edge_cents:.1f}c vs quote {quote:.2f}, confidence {confidence:.2f}"
        )
        context.pop("edge_cents")
        context.pop("fair_value")

        return Signal(
            direction=direction,
            edge_cents=edge_cents,
            confidence=confidence,
            fair_value=fair,
            recommended_size=0.0,
            reasons=tuple(reasons),
            evaluated_at=evaluated_at,
            **context
        )

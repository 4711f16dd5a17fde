"""
Signal Controller

Per-tick state machine driven by the price feed:

    Idle -> Evaluating -> Idle
                       -> Cooling (after a trade, until the cooldown lapses)

Only one evaluation runs at a time. A primary tick that arrives while an
evaluation is in flight still updates the price history and window opens,
but is otherwise dropped, never queued: only the latest price matters.

Gates, in order (each a routine skip with a reason):
 1. Circuit breaker / paused
 2. Outside the trading range within the window
 3. Window already traded
 4. Trade pending settlement
 5. Cooldown since the last trade
 6. Cheap unscaled move pre-check (before any venue call)
 7. Venue quote (errors count as no market)
 8. Edge evaluation
 9. Secondary-source confirmation (when required)
10. Sizing
"""
import dataclasses
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Set

from ..config import Config, apply_overrides
from ..models import BankrollState, Direction, MarketQuote, PriceObservation, PriceSource, Signal, Window
from ..prediction import EdgeEvaluator, InvalidInputError, estimate_volatility
from ..risk import RiskManager
from ..utils.logger import get_logger, TradeLogger
from .buffers import PriceHistory, WindowTracker

logger = get_logger("controller")

RETENTION_SECONDS = 3600


@dataclass
class ControllerState:
    """All mutable controller state. Owned by one SignalController."""
    bankroll: BankrollState = field(default_factory=BankrollState)
    traded_windows: Set[int] = field(default_factory=set)
    pending_windows: Set[int] = field(default_factory=set)
    last_trade_at: Optional[float] = None
    windows: WindowTracker = field(default_factory=WindowTracker)
    secondary_windows: WindowTracker = field(default_factory=WindowTracker)
    history: PriceHistory = field(default_factory=PriceHistory)
    latest: Dict[PriceSource, PriceObservation] = field(default_factory=dict)
    last_signal: Optional[Signal] = None

    # Counters
    ticks: int = 0
    evaluations: int = 0
    dropped: int = 0
    skips: int = 0
    signals: int = 0

    def prune(self, now: float):
        cutoff = now - RETENTION_SECONDS
        self.traded_windows = {ws for ws in self.traded_windows if ws >= cutoff}


class SignalController:
    """
    Turns price ticks into trade decisions.

    Args:
        config: Full bot config (signal and risk sections are used)
        quote_provider: Object with async fetch_quote(window_start) -> MarketQuote | None
        executor: Optional object with async execute(signal, quote, sizing) -> TradeRecord | None
        state: Existing state to resume from
        clock: Time source for status reporting
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        quote_provider=None,
        executor=None,
        state: Optional[ControllerState] = None,
        clock: Callable[[], float] = time.time
    ):
        self.config = config or Config()
        self.quote_provider = quote_provider
        self.executor = executor
        self._clock = clock

        if state is None:
            state = ControllerState(
                bankroll=BankrollState(available_balance=self.config.risk.bankroll),
                windows=WindowTracker(self.config.signal.window_seconds, RETENTION_SECONDS),
                secondary_windows=WindowTracker(self.config.signal.window_seconds, RETENTION_SECONDS),
                history=PriceHistory(self.config.signal.volatility_interval_seconds),
            )
        self.state = state

        self.evaluator = EdgeEvaluator(self.config.signal)
        self.risk = RiskManager(self.config.risk)
        self.trade_logger = TradeLogger()

        self._busy = False
        self._last_skip_gate: Optional[str] = None

    @property
    def busy(self) -> bool:
        """True while an evaluation is in flight."""
        return self._busy

    # ── Tick entry point ─────────────────────────────────────

    async def evaluate(self, tick: PriceObservation) -> Optional[Signal]:
        """
        Evaluate one price tick.

        Returns:
            A Signal (possibly no-trade), or None for secondary ticks, ticks
            dropped while busy, and evaluations aborted on invalid input
        """
        state = self.state

        if tick.source == PriceSource.SECONDARY:
            state.latest[PriceSource.SECONDARY] = tick
            state.secondary_windows.observe(tick.price, tick.observed_at)
            return None

        state.ticks += 1
        state.latest[PriceSource.PRIMARY] = tick
        state.history.record(tick.price, tick.observed_at)
        window = state.windows.observe(tick.price, tick.observed_at)

        if self._busy:
            state.dropped += 1
            return None

        self._busy = True
        try:
            state.evaluations += 1
            signal = await self._evaluate(tick, window)
        finally:
            self._busy = False

        if signal is not None:
            state.last_signal = signal
        return signal

    async def _evaluate(self, tick: PriceObservation, window: Window) -> Optional[Signal]:
        state = self.state
        sig_cfg = self.config.signal
        risk_cfg = self.config.risk
        now = tick.observed_at
        seconds_in = window.seconds_into(now)
        delta = tick.price - window.open_price
        delta_percent = delta * 100 / window.open_price if window.open_price > 0 else 0.0

        context = dict(
            window_start=window.window_start,
            seconds_into_window=seconds_in,
            current_price=tick.price,
            window_open_price=window.open_price,
            delta=delta,
            delta_percent=delta_percent,
        )
        state.prune(now)

        # 1. Circuit breaker and pause
        if self.risk.check_circuit_breaker(state.bankroll):
            return self._skip("circuit_breaker", state.bankroll.pause_reason, now, context)
        if state.bankroll.paused:
            return self._skip("paused", f"Paused: {state.bankroll.pause_reason or 'operator'}", now, context)

        # 2. Trading range within the window
        if seconds_in < risk_cfg.trade_window_start or seconds_in > risk_cfg.trade_window_end:
            return self._skip(
                "time_range",
                f"Outside trading range: {seconds_in:.0f}s not in "
                f"[{risk_cfg.trade_window_start:.0f}s, {risk_cfg.trade_window_end:.0f}s]",
                now, context
            )

        # 3. One trade per window
        if window.window_start in state.traded_windows:
            return self._skip("traded", f"Window {window.window_start} already traded", now, context)

        # 4. Unsettled trade
        if risk_cfg.block_while_pending and state.pending_windows:
            return self._skip(
                "pending",
                f"Trade pending settlement ({len(state.pending_windows)} open)",
                now, context
            )

        # 5. Cooldown
        if state.last_trade_at is not None:
            since = now - state.last_trade_at
            if since < risk_cfg.cooldown_seconds:
                return self._skip(
                    "cooldown",
                    f"Cooldown: {since:.0f}s since last trade (need {risk_cfg.cooldown_seconds:.0f}s)",
                    now, context
                )

        # 6. Cheap pre-check before touching the venue
        if abs(delta) < sig_cfg.min_delta_absolute or abs(delta_percent) < sig_cfg.min_delta_percent:
            return self._skip(
                "precheck",
                f"Move too small: ${delta:+.2f} ({delta_percent:+.4f}%)",
                now, context
            )

        # 7. Venue quote
        quote = await self._fetch_quote(window.window_start)
        if quote is None:
            return self._skip("no_market", f"No market quote for window {window.window_start}", now, context)
        if not quote.accepting_orders:
            return self._skip("no_market", "Market not accepting orders", now, context)

        # 8. Edge
        volatility = estimate_volatility(
            state.history.closes(),
            interval_seconds=sig_cfg.volatility_interval_seconds,
            default=sig_cfg.default_volatility,
            floor=sig_cfg.min_volatility,
            ceiling=sig_cfg.max_volatility
        )
        try:
            signal = self.evaluator.evaluate(
                window.open_price,
                tick.price,
                quote.up_price,
                quote.down_price,
                seconds_in,
                volatility=volatility,
                evaluated_at=now,
                window_start=window.window_start
            )
        except InvalidInputError as e:
            logger.error(f"Evaluation aborted: {e}", extra={"window_start": window.window_start})
            return None

        if signal.direction == Direction.NONE:
            return self._skip("edge", signal.reasons[-1], now, signal=signal)

        # 9. Secondary confirmation
        if risk_cfg.require_confirmation:
            rejection = self._confirmation_rejection(signal.direction, window.window_start, now)
            if rejection:
                return self._skip(
                    "confirmation", rejection, now,
                    signal=dataclasses.replace(signal, reasons=signal.reasons + (rejection,))
                )
            signal = dataclasses.replace(signal, reasons=signal.reasons + ("Secondary source confirms",))

        # 10. Sizing
        sizing = self.risk.size(signal.fair_value, signal.venue_price, state.bankroll)
        if sizing.shares < 1:
            reason = f"Size ${sizing.size_usd:.2f} rounds to zero shares at {sizing.limit_price:.2f}"
            return self._skip(
                "size", reason, now,
                signal=dataclasses.replace(signal, reasons=signal.reasons + (reason,))
            )

        signal = dataclasses.replace(
            signal,
            recommended_size=sizing.size_usd,
            reasons=signal.reasons + (
                f"Size ${sizing.size_usd:.2f}: {sizing.shares} shares @ {sizing.limit_price:.2f}",
            )
        )
        self._last_skip_gate = None
        state.signals += 1
        self.trade_logger.signal_generated(
            window.window_start,
            signal.direction.value,
            signal.edge_cents,
            signal.fair_value,
            signal.venue_price,
            signal.recommended_size
        )

        if self.executor is not None:
            trade = await self.executor.execute(signal, quote, sizing)
            if trade is not None:
                state.traded_windows.add(window.window_start)
                state.last_trade_at = now
                if trade.status == "pending":
                    state.pending_windows.add(window.window_start)

        return signal

    async def _fetch_quote(self, window_start: int) -> Optional[MarketQuote]:
        if self.quote_provider is None:
            return None
        try:
            return await self.quote_provider.fetch_quote(window_start)
        except Exception as e:
            logger.warning(f"Quote fetch failed for {window_start}, treating as no market: {e}")
            return None

    def _confirmation_rejection(self, direction: Direction, window_start: int, now: float) -> Optional[str]:
        """Reason the secondary source fails to confirm, or None if it agrees."""
        secondary = self.state.latest.get(PriceSource.SECONDARY)
        if secondary is None:
            return "No confirmation price"

        age = now - secondary.observed_at
        if age > self.config.risk.confirmation_max_age_seconds:
            return f"Confirmation stale: {age:.0f}s old"

        sec_window = self.state.secondary_windows.get(window_start)
        if sec_window is None:
            return "No confirmation open price for this window"

        sec_delta = secondary.price - sec_window.open_price
        agrees = sec_delta > 0 if direction == Direction.UP else sec_delta < 0
        if not agrees:
            return f"Confirmation disagrees: secondary delta {sec_delta:+.2f} vs {direction.value}"
        return None

    def _skip(
        self,
        gate: str,
        reason: str,
        evaluated_at: float,
        context: Optional[Dict[str, Any]] = None,
        signal: Optional[Signal] = None
    ) -> Signal:
        """Build (or downgrade to) a no-trade Signal and log the skip."""
        self.state.skips += 1
        if signal is None:
            signal = Signal.no_trade((reason,), evaluated_at, **(context or {}))
        elif signal.direction != Direction.NONE:
            signal = Signal.no_trade(
                signal.reasons,
                evaluated_at,
                **{k: v for k, v in dataclasses.asdict(signal).items()
                   if k not in ("direction", "reasons", "evaluated_at")}
            )

        # Same gate tick after tick is noise
        if gate != self._last_skip_gate:
            self.trade_logger.evaluation_skipped(signal.window_start, reason)
        else:
            logger.debug(f"Skip [{gate}]: {reason}")
        self._last_skip_gate = gate
        return signal

    # ── Operator controls ────────────────────────────────────

    def pause(self, reason: str = "Paused by operator"):
        self.state.bankroll.paused = True
        self.state.bankroll.pause_reason = reason
        logger.warning(f"Trading paused: {reason}")

    def resume(self):
        self.state.bankroll.paused = False
        self.state.bankroll.pause_reason = ""
        logger.info("Trading resumed")

    def update_config(self, **changes) -> Dict[str, Any]:
        """
        Apply runtime config changes.

        Raises:
            ValueError: On an unknown key or invalid value
        """
        signal_cfg, risk_cfg, applied = apply_overrides(self.config.signal, self.config.risk, changes)
        self.config.signal = signal_cfg
        self.config.risk = risk_cfg
        self.evaluator.config = signal_cfg
        self.risk.update_config(risk_cfg)
        logger.info("Config updated", extra={"changes": applied})
        return applied

    def record_settlement(self, window_start: int):
        """Called by settlement once a window's trade has resolved."""
        self.state.pending_windows.discard(window_start)

    def status(self) -> Dict[str, Any]:
        state = self.state
        now = self._clock()
        primary = state.latest.get(PriceSource.PRIMARY)
        secondary = state.latest.get(PriceSource.SECONDARY)

        current = None
        if primary is not None:
            window = state.windows.get(
                int(now // self.config.signal.window_seconds) * self.config.signal.window_seconds
            )
            if window is not None:
                current = {
                    "window_start": window.window_start,
                    "open_price": window.open_price,
                    "delta": primary.price - window.open_price,
                    "seconds_into_window": window.seconds_into(now),
                    "seconds_remaining": window.seconds_remaining(now),
                }

        return {
            "paused": state.bankroll.paused,
            "pause_reason": state.bankroll.pause_reason,
            "busy": self._busy,
            "bankroll": state.bankroll.to_dict(),
            "win_rate": state.bankroll.win_rate,
            "price": {
                "primary": primary.price if primary else None,
                "secondary": secondary.price if secondary else None,
                "window": current,
            },
            "counters": {
                "ticks": state.ticks,
                "evaluations": state.evaluations,
                "dropped": state.dropped,
                "skips": state.skips,
                "signals": state.signals,
            },
            "traded_windows": sorted(state.traded_windows),
            "pending_windows": sorted(state.pending_windows),
            "last_trade_at": state.last_trade_at,
            "last_signal": state.last_signal.to_dict() if state.last_signal else None,
            "config": {
                "signal": dataclasses.asdict(self.config.signal),
                "risk": dataclasses.asdict(self.config.risk),
            },
        }

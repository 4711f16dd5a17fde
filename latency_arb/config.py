"""
Configuration module for the latency arbitrage bot.
Loads settings from environment variables with validation.
"""

import dataclasses
import os
from dataclasses import dataclass, field
from typing import Any, Optional
from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


@dataclass
class SignalConfig:
    """Edge evaluation thresholds and fair-value model parameters."""
    # Minimum move from the window open (unscaled)
    min_delta_percent: float = 0.06
    min_delta_absolute: float = 40.0

    # Early-window threshold scaling: early_scale at 0s, 1x from late_window_mark on
    early_scale: float = 2.0
    late_window_mark: float = 180.0

    min_edge_cents: float = 8.0
    max_token_price: float = 0.55  # "already priced in" ceiling
    market_disagree_price: float = 0.50
    override_delta_absolute: float = 150.0

    # "black_scholes" or "linear"
    fair_value_model: str = "black_scholes"
    time_weighting: bool = True
    fair_value_base: float = 0.50
    fair_value_multiplier: float = 1.5
    fair_value_cap: float = 0.75

    default_volatility: float = 0.50
    min_volatility: float = 0.20
    max_volatility: float = 1.50
    volatility_interval_seconds: int = 60

    confidence_base: float = 0.60
    confidence_cap: float = 0.95

    window_seconds: int = 300


@dataclass
class RiskConfig:
    """Sizing, gating and circuit breaker settings."""
    bankroll: float = 500.0
    kelly_fraction: float = 0.25
    min_bet: float = 10.0
    max_bet: float = 50.0
    min_viable_bet: float = 5.0

    cooldown_seconds: float = 90.0
    trade_window_start: float = 30.0
    trade_window_end: float = 240.0
    block_while_pending: bool = True

    require_confirmation: bool = False
    confirmation_max_age_seconds: float = 60.0

    pnl_floor: float = -100.0

    # Limit price = min(quote + price_slippage, max_price), on a price_tick grid
    price_slippage: float = 0.02
    max_price: float = 0.65
    price_tick: float = 0.01

    dry_run: bool = True


@dataclass
class VenueConfig:
    """Polymarket endpoints and credentials."""
    gamma_url: str = "https://gamma-api.polymarket.com"
    clob_url: str = "https://clob.polymarket.com"
    slug_prefix: str = "btc-updown-5m"
    settlement_grace_seconds: int = 60
    request_timeout_seconds: float = 5.0

    api_key: str = ""
    api_secret: str = ""
    api_passphrase: str = ""
    private_key: str = ""
    chain_id: int = 137

    @property
    def has_credentials(self) -> bool:
        return bool(self.private_key and self.api_key)


@dataclass
class FeedConfig:
    """Price feed endpoints."""
    bybit_ws_url: str = "wss://stream.bybit.com/v5/public/spot"
    symbol: str = "BTCUSDT"
    bootstrap_url: str = "https://api.binance.us/api/v3/klines"
    coingecko_url: str = "https://api.coingecko.com/api/v3/simple/price"
    coingecko_poll_seconds: float = 30.0
    enable_secondary: bool = True


@dataclass
class ControlConfig:
    """HTTP control API and persistence."""
    api_host: str = "127.0.0.1"
    api_port: int = 3847
    db_path: str = "data/latency_arb.db"
    post_mortem_path: str = "data/post-mortems.jsonl"
    settlement_interval_seconds: float = 30.0


@dataclass
class LogConfig:
    """Logging configuration."""
    log_level: str = "INFO"
    json_logging: bool = True


@dataclass
class Config:
    """Main configuration container."""
    signal: SignalConfig = field(default_factory=SignalConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    venue: VenueConfig = field(default_factory=VenueConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)
    control: ControlConfig = field(default_factory=ControlConfig)
    logging: LogConfig = field(default_factory=LogConfig)


def get_env(key: str, default: Optional[str] = None, required: bool = True) -> str:
    """Get environment variable with validation."""
    value = os.getenv(key, default)
    if required and not value:
        raise ValueError(f"Required environment variable {key} is not set")
    return value or ""


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes")


def get_env_int(key: str, default: int) -> int:
    """Get integer environment variable."""
    value = os.getenv(key, str(default))
    return int(value)


def get_env_float(key: str, default: float) -> float:
    """Get float environment variable."""
    value = os.getenv(key, str(default))
    return float(value)


def load_config() -> Config:
    """Load and validate configuration from environment."""
    signal = SignalConfig(
        min_delta_percent=get_env_float("MIN_DELTA_PERCENT", 0.06),
        min_delta_absolute=get_env_float("MIN_DELTA_ABSOLUTE", 40.0),
        min_edge_cents=get_env_float("MIN_EDGE_CENTS", 8.0),
        max_token_price=get_env_float("MAX_TOKEN_PRICE", 0.55),
        override_delta_absolute=get_env_float("OVERRIDE_DELTA_ABSOLUTE", 150.0),
        fair_value_model=get_env("FAIR_VALUE_MODEL", "black_scholes", required=False),
        time_weighting=get_env_bool("TIME_WEIGHTING", True),
    )
    risk = RiskConfig(
        bankroll=get_env_float("BANKROLL", 500.0),
        kelly_fraction=get_env_float("KELLY_FRACTION", 0.25),
        min_bet=get_env_float("MIN_BET", 10.0),
        max_bet=get_env_float("MAX_BET", 50.0),
        min_viable_bet=get_env_float("MIN_VIABLE_BET", 5.0),
        cooldown_seconds=get_env_float("COOLDOWN_SECONDS", 90.0),
        trade_window_start=get_env_float("TRADE_WINDOW_START", 30.0),
        trade_window_end=get_env_float("TRADE_WINDOW_END", 240.0),
        require_confirmation=get_env_bool("REQUIRE_CONFIRMATION", False),
        confirmation_max_age_seconds=get_env_float("CONFIRMATION_MAX_AGE", 60.0),
        pnl_floor=get_env_float("PNL_FLOOR", -100.0),
        max_price=get_env_float("MAX_PRICE", 0.65),
        dry_run=get_env_bool("DRY_RUN", True),  # Default to dry run
    )
    venue = VenueConfig(
        gamma_url=get_env("GAMMA_URL", "https://gamma-api.polymarket.com", required=False),
        clob_url=get_env("CLOB_URL", "https://clob.polymarket.com", required=False),
        slug_prefix=get_env("MARKET_SLUG_PREFIX", "btc-updown-5m", required=False),
        api_key=get_env("POLYMARKET_API_KEY", required=False),
        api_secret=get_env("POLYMARKET_API_SECRET", required=False),
        api_passphrase=get_env("POLYMARKET_API_PASSPHRASE", required=False),
        private_key=get_env("PRIVATE_KEY", required=False),
    )
    feed = FeedConfig(
        symbol=get_env("FEED_SYMBOL", "BTCUSDT", required=False),
        enable_secondary=get_env_bool("ENABLE_SECONDARY_FEED", True),
    )
    control = ControlConfig(
        api_host=get_env("BOT_HOST", "127.0.0.1", required=False),
        api_port=get_env_int("BOT_PORT", 3847),
        db_path=get_env("DB_PATH", "data/latency_arb.db", required=False),
        post_mortem_path=get_env("POST_MORTEM_PATH", "data/post-mortems.jsonl", required=False),
    )
    config = Config(
        signal=signal,
        risk=risk,
        venue=venue,
        feed=feed,
        control=control,
        logging=LogConfig(
            log_level=get_env("LOG_LEVEL", "INFO", required=False),
            json_logging=get_env_bool("JSON_LOGGING", True),
        ),
    )

    if not risk.dry_run and not venue.has_credentials:
        raise ValueError("Live trading requires PRIVATE_KEY and POLYMARKET_API_KEY")

    return config


# The window and history buffers are built from these at startup
RESTART_ONLY_KEYS = frozenset({"window_seconds", "volatility_interval_seconds"})


def _coerce(value: Any, target_type: type) -> Any:
    """Coerce a JSON value to the type of a dataclass field."""
    if target_type is bool:
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes")
        return bool(value)
    if target_type in (int, float):
        if isinstance(value, bool):
            raise ValueError(f"Expected a number, got {value!r}")
        return target_type(value)
    return str(value)


def apply_overrides(
    signal: SignalConfig,
    risk: RiskConfig,
    changes: dict[str, Any]
) -> tuple[SignalConfig, RiskConfig, dict[str, Any]]:
    """
    Apply runtime config changes to the tunable sections.

    Args:
        signal: Current signal config
        risk: Current risk config
        changes: Field name -> new value

    Returns:
        (new_signal, new_risk, applied) where applied holds the coerced values

    Raises:
        ValueError: On an unknown key or a value that cannot be coerced
    """
    signal_fields = {f.name: f for f in dataclasses.fields(SignalConfig)}
    risk_fields = {f.name: f for f in dataclasses.fields(RiskConfig)}

    signal_changes: dict[str, Any] = {}
    risk_changes: dict[str, Any] = {}

    for key, value in changes.items():
        if key in signal_fields:
            ftype = type(getattr(signal, key))
            signal_changes[key] = _coerce(value, ftype)
        elif key in risk_fields:
            ftype = type(getattr(risk, key))
            risk_changes[key] = _coerce(value, ftype)
        else:
            raise ValueError(f"Unknown config key: {key}")

    restart_only = RESTART_ONLY_KEYS.intersection(changes)
    if restart_only:
        raise ValueError(f"Cannot change at runtime (restart required): {', '.join(sorted(restart_only))}")

    new_signal = dataclasses.replace(signal, **signal_changes)
    new_risk = dataclasses.replace(risk, **risk_changes)
    validate_config(new_signal, new_risk)

    applied = {**signal_changes, **risk_changes}
    return new_signal, new_risk, applied


def validate_config(signal: SignalConfig, risk: RiskConfig) -> None:
    """
    Reject settings the evaluator or sizer cannot run with.

    Raises:
        ValueError: On the first invalid setting
    """
    if signal.fair_value_model not in ("black_scholes", "linear"):
        raise ValueError(f"Unknown fair value model: {signal.fair_value_model}")

    for name in ("window_seconds", "late_window_mark", "volatility_interval_seconds"):
        if getattr(signal, name) <= 0:
            raise ValueError(f"{name} must be positive")
    if not 0 < signal.min_volatility <= signal.max_volatility:
        raise ValueError("Volatility bounds must satisfy 0 < min_volatility <= max_volatility")

    for name in ("price_tick", "kelly_fraction", "min_bet"):
        if getattr(risk, name) <= 0:
            raise ValueError(f"{name} must be positive")
    if risk.min_bet > risk.max_bet:
        raise ValueError(f"min_bet ({risk.min_bet}) exceeds max_bet ({risk.max_bet})")
    if risk.trade_window_start > risk.trade_window_end:
        raise ValueError("trade_window_start must not exceed trade_window_end")

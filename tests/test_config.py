"""
Tests for configuration loading and runtime overrides.
"""

import pytest

from latency_arb.config import RiskConfig, SignalConfig, apply_overrides, load_config, validate_config


class TestLoadConfig:
    """Tests for environment-driven config."""

    def test_defaults(self, monkeypatch):
        for key in ("MIN_EDGE_CENTS", "BANKROLL", "DRY_RUN", "FAIR_VALUE_MODEL", "BOT_PORT"):
            monkeypatch.delenv(key, raising=False)

        config = load_config()

        assert config.signal.min_edge_cents == 8.0
        assert config.signal.fair_value_model == "black_scholes"
        assert config.risk.bankroll == 500.0
        assert config.risk.dry_run is True
        assert config.control.api_port == 3847

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("MIN_EDGE_CENTS", "12")
        monkeypatch.setenv("KELLY_FRACTION", "0.1")
        monkeypatch.setenv("REQUIRE_CONFIRMATION", "yes")
        monkeypatch.setenv("FAIR_VALUE_MODEL", "linear")
        monkeypatch.delenv("DRY_RUN", raising=False)

        config = load_config()

        assert config.signal.min_edge_cents == 12.0
        assert config.risk.kelly_fraction == 0.1
        assert config.risk.require_confirmation is True
        assert config.signal.fair_value_model == "linear"

    def test_live_requires_credentials(self, monkeypatch):
        monkeypatch.setenv("DRY_RUN", "false")
        monkeypatch.delenv("PRIVATE_KEY", raising=False)
        monkeypatch.delenv("POLYMARKET_API_KEY", raising=False)

        with pytest.raises(ValueError):
            load_config()


class TestApplyOverrides:
    """Tests for apply_overrides."""

    def test_routes_keys_to_sections(self):
        signal, risk, applied = apply_overrides(
            SignalConfig(), RiskConfig(), {"min_edge_cents": 10, "max_bet": 40}
        )
        assert signal.min_edge_cents == 10.0
        assert risk.max_bet == 40.0
        assert applied == {"min_edge_cents": 10.0, "max_bet": 40.0}

    def test_inputs_untouched(self):
        signal = SignalConfig()
        apply_overrides(signal, RiskConfig(), {"min_edge_cents": 10})
        assert signal.min_edge_cents == 8.0

    def test_coercion(self):
        signal, risk, _ = apply_overrides(
            SignalConfig(), RiskConfig(),
            {"time_weighting": "false", "late_window_mark": "120", "require_confirmation": 1}
        )
        assert signal.time_weighting is False
        assert signal.late_window_mark == 120.0
        assert risk.require_confirmation is True

    @pytest.mark.parametrize("changes", [
        {"unknown": 1},
        {"min_edge_cents": "ten"},
        {"max_bet": True},
        {"fair_value_model": "neural"},
        {"late_window_mark": 0},
        {"price_tick": 0},
        {"kelly_fraction": -0.25},
        {"min_bet": 0},
        {"min_bet": 60},
        {"max_bet": 5},
        {"trade_window_start": 300},
        {"min_volatility": 2.0},
    ])
    def test_rejected(self, changes):
        with pytest.raises(ValueError):
            apply_overrides(SignalConfig(), RiskConfig(), changes)

    @pytest.mark.parametrize("key", ["window_seconds", "volatility_interval_seconds"])
    def test_restart_only_keys_rejected(self, key):
        with pytest.raises(ValueError, match="restart required"):
            apply_overrides(SignalConfig(), RiskConfig(), {key: 60})

    def test_bet_bounds_checked_together(self):
        _, risk, applied = apply_overrides(SignalConfig(), RiskConfig(), {"min_bet": 60, "max_bet": 80})
        assert (risk.min_bet, risk.max_bet) == (60.0, 80.0)
        assert applied == {"min_bet": 60.0, "max_bet": 80.0}


class TestValidateConfig:
    """Tests for validate_config."""

    def test_defaults_valid(self):
        validate_config(SignalConfig(), RiskConfig())

    @pytest.mark.parametrize("signal", [
        SignalConfig(window_seconds=0),
        SignalConfig(volatility_interval_seconds=-60),
        SignalConfig(late_window_mark=0.0),
    ])
    def test_non_positive_durations(self, signal):
        with pytest.raises(ValueError, match="must be positive"):
            validate_config(signal, RiskConfig())

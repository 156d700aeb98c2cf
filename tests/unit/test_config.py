"""Tests for configuration loading, validation and per-request tolerance."""

from pathlib import Path

import pytest
import yaml

from riskeval_app.config.defaults import get_default_config
from riskeval_app.config.delivery import DeliveryMethod, create_file_destination
from riskeval_app.config.loader import ConfigLoader
from riskeval_app.config.tolerance import RiskToleranceConfig, ToleranceLevel
from riskeval_app.config.validation import ConfigValidator
from riskeval_app.errors import ConfigurationError, ValidationError

REPO_CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


class TestDefaultConfig:
    """Test default configuration values."""

    def test_weights_sum_to_one(self):
        """Both default weight vectors are normalized."""
        defaults = get_default_config()
        assert sum(defaults.signal_weights.as_mapping().values()) == pytest.approx(1.0)
        assert sum(defaults.risk_weights.as_mapping().values()) == pytest.approx(1.0)

    def test_default_thresholds(self):
        defaults = get_default_config()
        assert defaults.recommendation.strong_buy == 0.8
        assert defaults.recommendation.sell == 0.2
        assert defaults.risk_levels.critical == 0.75
        assert defaults.signal_evaluation.min_quorum == 2

    def test_defaults_pass_validation(self):
        """The built-in defaults are a valid tolerance config."""
        config = RiskToleranceConfig()
        assert ConfigValidator.validate_config(config.to_dict()) == []


class TestConfigValidator:
    """Test configuration validation."""

    def test_weights_must_sum_to_one(self):
        issues = ConfigValidator.validate_weights(
            "risk_weights",
            {"market": 0.5, "liquidity": 0.5, "concentration": 0.5, "volatility": 0.0, "regulatory": 0.0},
            ["market", "liquidity", "concentration", "volatility", "regulatory"],
        )
        assert len(issues) == 1
        assert issues[0].message == "Weights must sum to 1"

    def test_unknown_weight_dimension(self):
        issues = ConfigValidator.validate_weights("signal_weights", {"sentiment": 1.0}, ["performance"])
        fields = {issue.field for issue in issues}
        assert "signal_weights.sentiment" in fields
        assert "signal_weights.performance" in fields

    def test_thresholds_must_decrease(self):
        issues = ConfigValidator.validate_descending_thresholds(
            "risk_levels", {"critical": 0.5, "high": 0.6, "moderate": 0.2}, ["critical", "high", "moderate"]
        )
        assert [issue.field for issue in issues] == ["risk_levels.high"]

    def test_threshold_bounds(self):
        issues = ConfigValidator.validate_descending_thresholds(
            "recommendation", {"strong_buy": 1.0, "buy": 0.6, "hold": 0.4, "sell": 0.2},
            ["strong_buy", "buy", "hold", "sell"]
        )
        assert issues[0].field == "recommendation.strong_buy"

    def test_invalid_quorum(self):
        issues = ConfigValidator.validate_signal_evaluation({"min_quorum": 0})
        assert issues[0].field == "signal_evaluation.min_quorum"

    def test_bool_is_not_a_number(self):
        issues = ConfigValidator.validate_risk_engine({"fallback_severity": True})
        assert issues[0].field == "risk_engine.fallback_severity"

    def test_hhi_bounds_must_be_ordered(self):
        issues = ConfigValidator.validate_risk_analyzers({"hhi_floor": 0.3, "hhi_ceiling": 0.3})
        assert [issue.field for issue in issues] == ["risk_analyzers.hhi_ceiling"]

    def test_analyzer_divisors_must_be_positive(self):
        issues = ConfigValidator.validate_risk_analyzers(
            {"max_participation": 0, "drawdown_limit": -0.1, "volatility_ceiling": 0.0}
        )
        assert {issue.field for issue in issues} == {
            "risk_analyzers.max_participation",
            "risk_analyzers.drawdown_limit",
            "risk_analyzers.volatility_ceiling",
        }

    def test_analyzer_severity_bounds(self):
        issues = ConfigValidator.validate_risk_analyzers({"unknown_liquidity_severity": 1.5})
        assert issues[0].field == "risk_analyzers.unknown_liquidity_severity"

    def test_reported_exposures_must_be_positive(self):
        for value in (0, -1, 2.5, True):
            issues = ConfigValidator.validate_risk_engine({"max_reported_exposures": value})
            assert [issue.field for issue in issues] == ["risk_engine.max_reported_exposures"]

    def test_planner_fractions(self):
        issues = ConfigValidator.validate_planner_params({"stop_loss_pct": 0.0, "allow_hedging": "yes"})
        assert {issue.field for issue in issues} == {"planner.stop_loss_pct", "planner.allow_hedging"}


class TestRiskToleranceConfig:
    """Test per-request tolerance construction."""

    def test_level_presets_apply_to_planner(self):
        conservative = RiskToleranceConfig.for_level(ToleranceLevel.CONSERVATIVE)
        aggressive = RiskToleranceConfig.for_level(ToleranceLevel.AGGRESSIVE)

        assert conservative.planner.stop_loss_pct == 0.03
        assert aggressive.planner.stop_loss_pct == 0.08
        assert aggressive.planner.allow_hedging is False

    def test_explicit_planner_values_win_over_preset(self):
        config = RiskToleranceConfig.from_dict({
            "tolerance_level": "aggressive",
            "planner": {"stop_loss_pct": 0.1},
        })
        assert config.planner.stop_loss_pct == 0.1
        assert config.planner.max_position_weight == 0.35

    def test_request_shape(self):
        """The inbound dimension_weights/thresholds shape maps onto sections."""
        config = RiskToleranceConfig.from_dict({
            "tolerance_level": "moderate",
            "dimension_weights": {
                "risk": {"market": 0.2, "liquidity": 0.2, "concentration": 0.2,
                         "volatility": 0.2, "regulatory": 0.2},
            },
            "thresholds": {"risk_levels": {"critical": 0.9, "high": 0.6, "moderate": 0.3}},
        })
        assert config.risk_weights.regulatory == 0.2
        assert config.risk_levels.critical == 0.9
        assert config.recommendation.strong_buy == 0.8

    def test_unknown_level_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            RiskToleranceConfig.from_dict({"tolerance_level": "reckless"})
        assert exc_info.value.field == "tolerance_level"

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            RiskToleranceConfig.from_dict({"planner": {"leverage": 3}})
        assert exc_info.value.field == "planner.leverage"

    def test_invalid_values_collect_issues(self):
        with pytest.raises(ValidationError) as exc_info:
            RiskToleranceConfig.from_dict({"signal_weights": {"performance": 0.9}})
        assert exc_info.value.field == "signal_weights"
        assert exc_info.value.context["issues"]

    def test_degenerate_concentration_band_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            RiskToleranceConfig.from_dict({"risk_analyzers": {"hhi_floor": 0.3, "hhi_ceiling": 0.3}})
        assert exc_info.value.field == "risk_analyzers.hhi_ceiling"

    def test_zero_reported_exposures_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            RiskToleranceConfig.from_dict({"risk_engine": {"max_reported_exposures": 0}})
        assert exc_info.value.field == "risk_engine.max_reported_exposures"

    def test_fingerprint_tracks_parameters(self):
        base = RiskToleranceConfig()
        same = RiskToleranceConfig.from_dict({})
        changed = RiskToleranceConfig.from_dict({"signal_evaluation": {"min_quorum": 3}})

        assert base.fingerprint() == same.fingerprint()
        assert base.fingerprint() != changed.fingerprint()


class TestConfigLoader:
    """Test 3-tier configuration loading."""

    def _write(self, directory: Path, filename: str, data) -> None:
        with open(directory / filename, "w") as f:
            yaml.safe_dump(data, f)

    def test_missing_files_use_defaults(self, tmp_path):
        loader = ConfigLoader.create(tmp_path)
        assert loader.portfolio_ids() == []
        assert loader.tolerance_for("anything") == RiskToleranceConfig()
        assert loader.coordinator_params().workers == 4
        assert loader.delivery_config().destinations == []

    def test_portfolio_tier_overrides_defaults(self, tmp_path):
        self._write(tmp_path, "portfolios.yaml", {
            "portfolios": {"pf-1": {"signal_evaluation": {"min_quorum": 3}}},
        })
        loader = ConfigLoader.create(tmp_path)

        assert loader.tolerance_for("pf-1").signal_evaluation.min_quorum == 3
        assert loader.tolerance_for("pf-2").signal_evaluation.min_quorum == 2

    def test_request_shape_layers_over_portfolio(self, tmp_path):
        """A request threshold override keeps the portfolio's other thresholds."""
        self._write(tmp_path, "portfolios.yaml", {
            "portfolios": {"pf-1": {"risk_levels": {"moderate": 0.2, "high": 0.45, "critical": 0.7}}},
        })
        loader = ConfigLoader.create(tmp_path)

        config = loader.tolerance_for("pf-1", {"thresholds": {"risk_levels": {"critical": 0.8}}})
        assert config.risk_levels.critical == 0.8
        assert config.risk_levels.high == 0.45

    def test_request_level_replaces_portfolio_planner(self, tmp_path):
        self._write(tmp_path, "portfolios.yaml", {
            "portfolios": {"pf-1": {"tolerance_level": "aggressive",
                                    "planner": {"max_position_weight": 0.4}}},
        })
        loader = ConfigLoader.create(tmp_path)

        assert loader.tolerance_for("pf-1").planner.max_position_weight == 0.4
        config = loader.tolerance_for("pf-1", {"tolerance_level": "conservative"})
        assert config.planner.max_position_weight == 0.20

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "portfolios.yaml").write_text("portfolios: [unclosed")
        loader = ConfigLoader.create(tmp_path)
        with pytest.raises(ConfigurationError):
            loader.load_portfolio_config("pf-1")

    def test_unknown_engine_key(self, tmp_path):
        self._write(tmp_path, "engine.yaml", {"coordinator": {"threads": 2}})
        loader = ConfigLoader.create(tmp_path)
        with pytest.raises(ConfigurationError):
            loader.coordinator_params()

    def test_delivery_section(self, tmp_path):
        self._write(tmp_path, "engine.yaml", {"delivery": {
            "retry_attempts": 1,
            "destinations": [
                {"name": "plans", "method": "file_output", "output_path": "out.jsonl",
                 "event_types": ["mitigation_plan"]},
                {"name": "console", "method": "stdout", "statuses": ["rejected"], "enabled": False},
            ],
        }})
        config = ConfigLoader.create(tmp_path).delivery_config()

        assert config.retry_attempts == 1
        plans, console = config.destinations
        assert plans.method == DeliveryMethod.FILE_OUTPUT
        assert plans.accepts("mitigation_plan", "complete")
        assert not plans.accepts("risk_score", "complete")
        assert not console.accepts("mitigation_plan", "rejected")

    def test_bad_delivery_method(self, tmp_path):
        self._write(tmp_path, "engine.yaml", {"delivery": {"destinations": [{"name": "x", "method": "carrier_pigeon"}]}})
        with pytest.raises(ConfigurationError):
            ConfigLoader.create(tmp_path).delivery_config()

    def test_shipped_configuration_is_valid(self):
        loader = ConfigLoader.create(REPO_CONFIG_DIR)

        assert set(loader.portfolio_ids()) == {"retirement-core", "growth-alpha", "desk-hedged"}
        for portfolio_id in loader.portfolio_ids():
            loader.tolerance_for(portfolio_id)

        growth = loader.tolerance_for("growth-alpha")
        assert growth.tolerance_level == ToleranceLevel.AGGRESSIVE
        assert growth.planner.max_position_weight == 0.4
        assert loader.tolerance_for("desk-hedged").planner.hedge_ratio == 0.75


class TestDeliveryDestination:
    """Test destination filtering."""

    def test_status_filter(self):
        destination = create_file_destination("f", "out.jsonl", status_filter=["degraded"])
        assert destination.accepts("signal_score", "degraded")
        assert not destination.accepts("signal_score", "complete")

    def test_disabled_destination_accepts_nothing(self):
        destination = create_file_destination("f", "out.jsonl", enabled=False)
        assert not destination.accepts("signal_score", "complete")

"""Configuration validation utilities."""

import math
from dataclasses import dataclass
from typing import Any

from ..models.risk import RiskDimension
from ..models.signals import SignalDimension

WEIGHT_SUM_TOLERANCE = 1e-9


@dataclass(frozen=True)
class ConfigIssue:
    """Represents a configuration validation problem."""
    field: str
    message: str
    value: Any


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class ConfigValidator:
    """Validates configuration parameters."""

    @staticmethod
    def validate_weights(section: str, params: dict[str, Any], dimensions: list[str]) -> list[ConfigIssue]:
        """Validate a weight vector: known keys, values in [0, 1], sum of 1."""
        errors = []

        for key in params:
            if key not in dimensions:
                errors.append(ConfigIssue(
                    field=f"{section}.{key}",
                    message="Unknown dimension",
                    value=params[key]
                ))

        total = 0.0
        for key in dimensions:
            value = params.get(key)
            if not _is_number(value) or value < 0 or value > 1:
                errors.append(ConfigIssue(
                    field=f"{section}.{key}",
                    message="Must be a number between 0 and 1",
                    value=value
                ))
                continue
            total += value

        if not errors and abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            errors.append(ConfigIssue(
                field=section,
                message="Weights must sum to 1",
                value=total
            ))

        return errors

    @staticmethod
    def validate_descending_thresholds(section: str, params: dict[str, Any],
                                       order: list[str]) -> list[ConfigIssue]:
        """Validate thresholds lie in (0, 1) and strictly decrease in the given order."""
        errors = []

        values = []
        for key in order:
            value = params.get(key)
            if not _is_number(value) or value <= 0 or value >= 1:
                errors.append(ConfigIssue(
                    field=f"{section}.{key}",
                    message="Must be a number strictly between 0 and 1",
                    value=value
                ))
            values.append(value)

        if not errors:
            for higher, lower, key in zip(values, values[1:], order[1:]):
                if lower >= higher:
                    errors.append(ConfigIssue(
                        field=f"{section}.{key}",
                        message="Thresholds must be strictly decreasing",
                        value=lower
                    ))

        return errors

    @staticmethod
    def validate_signal_evaluation(params: dict[str, Any]) -> list[ConfigIssue]:
        """Validate signal evaluator parameters."""
        errors = []

        if "min_quorum" in params:
            value = params["min_quorum"]
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                errors.append(ConfigIssue(
                    field="signal_evaluation.min_quorum",
                    message="Must be a positive integer",
                    value=value
                ))

        if "dimension_timeout_ms" in params:
            value = params["dimension_timeout_ms"]
            if not _is_number(value) or value <= 0:
                errors.append(ConfigIssue(
                    field="signal_evaluation.dimension_timeout_ms",
                    message="Must be a positive number",
                    value=value
                ))

        for key in ("uncertainty_scale", "dispersion_scale"):
            if key in params:
                value = params[key]
                if not _is_number(value) or value < 0:
                    errors.append(ConfigIssue(
                        field=f"signal_evaluation.{key}",
                        message="Must be a non-negative number",
                        value=value
                    ))

        if "max_half_width" in params:
            value = params["max_half_width"]
            if not _is_number(value) or value < 0 or value > 1:
                errors.append(ConfigIssue(
                    field="signal_evaluation.max_half_width",
                    message="Must be a number between 0 and 1",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_risk_analyzers(params: dict[str, Any]) -> list[ConfigIssue]:
        """Validate risk dimension analyzer parameters."""
        errors = []

        for key in ("drawdown_limit", "max_participation", "volatility_ceiling"):
            if key in params:
                value = params[key]
                if not _is_number(value) or value <= 0:
                    errors.append(ConfigIssue(
                        field=f"risk_analyzers.{key}",
                        message="Must be a positive number",
                        value=value
                    ))

        for key in ("unknown_liquidity_severity", "hhi_floor", "hhi_ceiling"):
            if key in params:
                value = params[key]
                if not _is_number(value) or value < 0 or value > 1:
                    errors.append(ConfigIssue(
                        field=f"risk_analyzers.{key}",
                        message="Must be a number between 0 and 1",
                        value=value
                    ))

        if "default_volatility" in params:
            value = params["default_volatility"]
            if not _is_number(value) or value < 0:
                errors.append(ConfigIssue(
                    field="risk_analyzers.default_volatility",
                    message="Must be a non-negative number",
                    value=value
                ))

        if not errors and "hhi_floor" in params and "hhi_ceiling" in params:
            if params["hhi_floor"] >= params["hhi_ceiling"]:
                errors.append(ConfigIssue(
                    field="risk_analyzers.hhi_ceiling",
                    message="Must be greater than hhi_floor",
                    value=params["hhi_ceiling"]
                ))

        return errors

    @staticmethod
    def validate_planner_params(params: dict[str, Any]) -> list[ConfigIssue]:
        """Validate mitigation planner parameters."""
        errors = []

        if "max_snapshot_version_lag" in params:
            value = params["max_snapshot_version_lag"]
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                errors.append(ConfigIssue(
                    field="planner.max_snapshot_version_lag",
                    message="Must be a non-negative integer",
                    value=value
                ))

        for key in ("stop_loss_pct", "max_position_weight", "hedge_ratio", "sell_partial_fraction"):
            if key in params:
                value = params[key]
                if not _is_number(value) or value <= 0 or value >= 1:
                    errors.append(ConfigIssue(
                        field=f"planner.{key}",
                        message="Must be a number strictly between 0 and 1",
                        value=value
                    ))

        if "allow_hedging" in params and not isinstance(params["allow_hedging"], bool):
            errors.append(ConfigIssue(
                field="planner.allow_hedging",
                message="Must be a boolean",
                value=params["allow_hedging"]
            ))

        return errors

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ConfigIssue]:
        """Validate the per-request sections of a merged configuration."""
        errors = []

        if "signal_weights" in config:
            errors.extend(ConfigValidator.validate_weights(
                "signal_weights", config["signal_weights"], [d.value for d in SignalDimension]
            ))

        if "risk_weights" in config:
            errors.extend(ConfigValidator.validate_weights(
                "risk_weights", config["risk_weights"], [d.value for d in RiskDimension]
            ))

        if "recommendation" in config:
            errors.extend(ConfigValidator.validate_descending_thresholds(
                "recommendation", config["recommendation"], ["strong_buy", "buy", "hold", "sell"]
            ))

        if "risk_levels" in config:
            errors.extend(ConfigValidator.validate_descending_thresholds(
                "risk_levels", config["risk_levels"], ["critical", "high", "moderate"]
            ))

        if "signal_evaluation" in config:
            errors.extend(ConfigValidator.validate_signal_evaluation(config["signal_evaluation"]))

        if "risk_analyzers" in config:
            errors.extend(ConfigValidator.validate_risk_analyzers(config["risk_analyzers"]))

        if "risk_engine" in config:
            errors.extend(ConfigValidator.validate_risk_engine(config["risk_engine"]))

        if "planner" in config:
            errors.extend(ConfigValidator.validate_planner_params(config["planner"]))

        return errors

    @staticmethod
    def validate_risk_engine(params: dict[str, Any]) -> list[ConfigIssue]:
        """Validate risk assessment engine parameters."""
        errors = []

        for key in ("dimension_timeout_ms", "coarse_tick_ms"):
            if key in params:
                value = params[key]
                if not _is_number(value) or value <= 0:
                    errors.append(ConfigIssue(
                        field=f"risk_engine.{key}",
                        message="Must be a positive number",
                        value=value
                    ))

        if "fallback_severity" in params:
            value = params["fallback_severity"]
            if not _is_number(value) or value < 0 or value > 1:
                errors.append(ConfigIssue(
                    field="risk_engine.fallback_severity",
                    message="Must be a number between 0 and 1",
                    value=value
                ))

        if "max_reported_exposures" in params:
            value = params["max_reported_exposures"]
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                errors.append(ConfigIssue(
                    field="risk_engine.max_reported_exposures",
                    message="Must be a positive integer",
                    value=value
                ))

        return errors

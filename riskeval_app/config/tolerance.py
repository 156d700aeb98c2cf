"""
Per-request risk tolerance configuration.

Every evaluation call carries its own RiskToleranceConfig. The core never
reads weights or thresholds from global state, so two requests for the same
portfolio may legitimately be scored under different tolerances.
"""

import hashlib
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any

import orjson

from ..errors.rejections import ValidationError
from .defaults import (
    PlannerParams,
    RecommendationThresholds,
    RiskAnalyzerParams,
    RiskEngineParams,
    RiskLevelThresholds,
    RiskWeights,
    SignalEvaluationParams,
    SignalWeights,
)
from .validation import ConfigValidator


class ToleranceLevel(str, Enum):
    """How much drawdown a portfolio owner is prepared to accept."""
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


# Planner parameters selected by the tolerance level; explicit planner
# overrides still win over these.
TOLERANCE_PRESETS: dict[ToleranceLevel, dict[str, Any]] = {
    ToleranceLevel.CONSERVATIVE: {
        "stop_loss_pct": 0.03,
        "max_position_weight": 0.20,
        "allow_hedging": True,
        "sell_partial_fraction": 0.5,
    },
    ToleranceLevel.MODERATE: {
        "stop_loss_pct": 0.05,
        "max_position_weight": 0.25,
        "allow_hedging": True,
        "sell_partial_fraction": 0.25,
    },
    ToleranceLevel.AGGRESSIVE: {
        "stop_loss_pct": 0.08,
        "max_position_weight": 0.35,
        "allow_hedging": False,
        "sell_partial_fraction": 0.15,
    },
}

_SECTIONS: dict[str, type] = {
    "signal_weights": SignalWeights,
    "recommendation": RecommendationThresholds,
    "signal_evaluation": SignalEvaluationParams,
    "risk_weights": RiskWeights,
    "risk_levels": RiskLevelThresholds,
    "risk_analyzers": RiskAnalyzerParams,
    "risk_engine": RiskEngineParams,
    "planner": PlannerParams,
}


@dataclass(frozen=True)
class RiskToleranceConfig:
    """Weights, thresholds and planner parameters for one evaluation request."""
    tolerance_level: ToleranceLevel = ToleranceLevel.MODERATE
    signal_weights: SignalWeights = field(default_factory=SignalWeights)
    recommendation: RecommendationThresholds = field(default_factory=RecommendationThresholds)
    signal_evaluation: SignalEvaluationParams = field(default_factory=SignalEvaluationParams)
    risk_weights: RiskWeights = field(default_factory=RiskWeights)
    risk_levels: RiskLevelThresholds = field(default_factory=RiskLevelThresholds)
    risk_analyzers: RiskAnalyzerParams = field(default_factory=RiskAnalyzerParams)
    risk_engine: RiskEngineParams = field(default_factory=RiskEngineParams)
    planner: PlannerParams = field(default_factory=PlannerParams)

    @classmethod
    def for_level(cls, level: ToleranceLevel) -> "RiskToleranceConfig":
        return cls.from_dict({"tolerance_level": level.value})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RiskToleranceConfig":
        """
        Build a validated config from a (possibly partial) mapping.

        Accepts the section names used by ConfigLoader as well as the inbound
        request shape ``{tolerance_level, dimension_weights, thresholds}``.
        Sections not supplied fall back to defaults.

        Raises:
            ValidationError: If any value is out of range or unknown.
        """
        data = normalize_request_shape(data or {})

        raw_level = data.get("tolerance_level", ToleranceLevel.MODERATE.value)
        try:
            level = ToleranceLevel(raw_level)
        except ValueError:
            raise ValidationError(
                f"Unknown tolerance level: {raw_level}",
                field="tolerance_level", value=raw_level
            ) from None

        merged: dict[str, dict[str, Any]] = {}
        for section, section_cls in _SECTIONS.items():
            values = asdict(section_cls())
            if section == "planner":
                values.update(TOLERANCE_PRESETS[level])
            supplied = data.get(section) or {}
            if not isinstance(supplied, dict):
                raise ValidationError(
                    f"Config section {section} must be a mapping",
                    field=section, value=supplied
                )
            unknown = set(supplied) - {f.name for f in fields(section_cls)}
            if unknown:
                key = sorted(unknown)[0]
                raise ValidationError(
                    f"Unknown config key {section}.{key}",
                    field=f"{section}.{key}", value=supplied[key]
                )
            values.update(supplied)
            merged[section] = values

        issues = ConfigValidator.validate_config(merged)
        if issues:
            first = issues[0]
            raise ValidationError(
                f"Invalid risk tolerance config: {first.field}: {first.message}",
                field=first.field,
                value=first.value,
                context={"issues": [f"{i.field}: {i.message}" for i in issues]},
            )

        return cls(
            tolerance_level=level,
            **{section: _SECTIONS[section](**values) for section, values in merged.items()},
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["tolerance_level"] = self.tolerance_level.value
        return data

    def fingerprint(self) -> str:
        """Stable hash of every parameter that can influence a decision."""
        payload = orjson.dumps(self.to_dict(), option=orjson.OPT_SORT_KEYS)
        return hashlib.sha256(payload).hexdigest()[:16]


def normalize_request_shape(data: dict[str, Any]) -> dict[str, Any]:
    """Map the inbound ``dimension_weights``/``thresholds`` shape onto section names."""
    if "dimension_weights" not in data and "thresholds" not in data:
        return data

    result = {k: v for k, v in data.items() if k not in ("dimension_weights", "thresholds")}

    weights = data.get("dimension_weights") or {}
    if "signal" in weights:
        result["signal_weights"] = weights["signal"]
    if "risk" in weights:
        result["risk_weights"] = weights["risk"]

    thresholds = data.get("thresholds") or {}
    if "recommendation" in thresholds:
        result["recommendation"] = thresholds["recommendation"]
    if "risk_levels" in thresholds:
        result["risk_levels"] = thresholds["risk_levels"]

    return result

"""Schema validation for emitted event records."""

import math
import re
from typing import Any

import structlog

from ..models.mitigation import ActionType
from ..models.risk import RiskLevel
from ..models.signals import Recommendation
from ..models.status import EvaluationStatus

logger = structlog.get_logger(__name__)

# Integers above this are not exactly representable as doubles
MAX_SAFE_INTEGER = 2 ** 53 - 1

EVENT_SCHEMA = {
    "required": ["schema_version", "event_type", "event_id", "portfolio_id",
                 "request_id", "emitted_at_ms", "status", "flags", "payload"],
    "schema_version_pattern": r"^riskeval-v\d+(\.\d+)*$",
    "event_id_pattern": r"^[0-9a-f]{32}$",
    "payload_required": {
        "signal_score": ["signal_id", "symbol", "overall_score", "recommendation",
                         "confidence_interval", "dimension_scores", "snapshot_version"],
        "risk_score": ["portfolio_id", "snapshot_version", "overall_score", "risk_level",
                       "dimension_scores"],
        "mitigation_plan": ["plan_id", "portfolio_id", "signal_id", "snapshot_version",
                            "risk_level", "actions", "created_at"],
        "evaluation_rejected": ["request_id", "error_type", "message"],
    },
}


class EventValidationError(Exception):
    """Event record does not match the published schema."""
    pass


class EventValidator:
    """Validates event records before they leave the process."""

    def __init__(self):
        self.schema = EVENT_SCHEMA

    def validate_event(self, event: dict[str, Any]) -> bool:
        """
        Validate an event dictionary.

        Raises:
            EventValidationError: If validation fails
        """
        try:
            self._validate_envelope(event)
            self._validate_numbers(event["payload"], "payload")
            self._validate_payload(event["event_type"], event["payload"])
            return True
        except ValueError as e:
            logger.error(
                "event_validation_failed",
                event_type=event.get("event_type"),
                event_id=event.get("event_id"),
                error=str(e),
            )
            raise EventValidationError(f"Event validation failed: {e}") from e

    def _validate_envelope(self, event: dict[str, Any]) -> None:
        missing = [f for f in self.schema["required"] if f not in event]
        if missing:
            raise ValueError(f"Missing required fields: {missing}")

        if not re.match(self.schema["schema_version_pattern"], str(event["schema_version"])):
            raise ValueError(f"Invalid schema_version: {event['schema_version']}")

        if event["event_type"] not in self.schema["payload_required"]:
            raise ValueError(f"Unknown event_type: {event['event_type']}")

        if not re.match(self.schema["event_id_pattern"], str(event["event_id"])):
            raise ValueError(f"Invalid event_id: {event['event_id']}")

        if not isinstance(event["portfolio_id"], str) or not event["portfolio_id"]:
            raise ValueError("portfolio_id must be a non-empty string")

        self._validate_epoch_ms(event["emitted_at_ms"], "emitted_at_ms")

        if event["status"] not in {s.value for s in EvaluationStatus}:
            raise ValueError(f"Invalid status: {event['status']}")

        if not isinstance(event["flags"], list):
            raise ValueError("flags must be a list")

        if not isinstance(event["payload"], dict):
            raise ValueError("payload must be an object")

    def _validate_payload(self, event_type: str, payload: dict[str, Any]) -> None:
        missing = [f for f in self.schema["payload_required"][event_type] if f not in payload]
        if missing:
            raise ValueError(f"Missing {event_type} payload fields: {missing}")

        if event_type == "signal_score":
            score = self._unit(payload["overall_score"], "overall_score")
            if payload["recommendation"] not in {r.value for r in Recommendation}:
                raise ValueError(f"Invalid recommendation: {payload['recommendation']}")
            interval = payload["confidence_interval"]
            if not isinstance(interval, list) or len(interval) != 2:
                raise ValueError("confidence_interval must be a [low, high] pair")
            low, high = (self._unit(v, "confidence_interval") for v in interval)
            if not low <= score <= high:
                raise ValueError(f"overall_score {score} outside confidence interval {interval}")

        elif event_type == "risk_score":
            self._unit(payload["overall_score"], "overall_score")
            if payload["risk_level"] not in {level.value for level in RiskLevel}:
                raise ValueError(f"Invalid risk_level: {payload['risk_level']}")

        elif event_type == "mitigation_plan":
            if payload["risk_level"] not in {level.value for level in RiskLevel}:
                raise ValueError(f"Invalid risk_level: {payload['risk_level']}")
            self._validate_epoch_ms(payload["created_at"], "created_at")
            if not isinstance(payload["actions"], list):
                raise ValueError("actions must be a list")
            action_types = {a.value for a in ActionType}
            for action in payload["actions"]:
                if action.get("type") not in action_types:
                    raise ValueError(f"Invalid action type: {action.get('type')}")
                if not isinstance(action.get("asset_id"), str) or not action["asset_id"]:
                    raise ValueError("action asset_id must be a non-empty string")
                self._validate_epoch_ms(action.get("timestamp"), "action.timestamp")

    def _validate_numbers(self, value: Any, path: str) -> None:
        """Every number must be finite and exactly representable as a double."""
        if isinstance(value, bool) or value is None or isinstance(value, str):
            return
        if isinstance(value, int):
            if abs(value) > MAX_SAFE_INTEGER:
                raise ValueError(f"{path} is not exactly representable as a double: {value}")
        elif isinstance(value, float):
            if not math.isfinite(value):
                raise ValueError(f"{path} must be finite")
        elif isinstance(value, dict):
            for key, item in value.items():
                self._validate_numbers(item, f"{path}.{key}")
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                self._validate_numbers(item, f"{path}[{index}]")

    @staticmethod
    def _unit(value: Any, name: str) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
            raise ValueError(f"{name} must be a number within [0, 1]: {value}")
        return float(value)

    @staticmethod
    def _validate_epoch_ms(value: Any, name: str) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_SAFE_INTEGER:
            raise ValueError(f"{name} must be a non-negative epoch-millisecond integer: {value}")

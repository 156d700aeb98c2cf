"""
Versioned, timestamped records emitted downstream.

Every record carries a schema version, an epoch-millisecond UTC emission
timestamp, a status and a deterministic event id. The id hashes only the
event type, portfolio and payload, so replaying the same decision produces
the same id and downstream consumers (and the emitter) can deduplicate.
"""

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import orjson

from ..models.mitigation import ExecutionReport, MitigationPlan
from ..models.risk import RiskScore
from ..models.signals import SignalScore
from ..models.status import EvaluationStatus

SCHEMA_VERSION = "riskeval-v1"


class EventType(str, Enum):
    """Kinds of records the engine emits."""
    SIGNAL_SCORE = "signal_score"
    RISK_SCORE = "risk_score"
    MITIGATION_PLAN = "mitigation_plan"
    EVALUATION_REJECTED = "evaluation_rejected"


@dataclass(frozen=True)
class EventRecord:
    """One emitted record."""
    event_type: EventType
    event_id: str
    portfolio_id: str
    request_id: str
    emitted_at_ms: int
    status: EvaluationStatus
    payload: dict[str, Any]
    flags: tuple[str, ...] = ()
    schema_version: str = SCHEMA_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "event_type": self.event_type.value,
            "event_id": self.event_id,
            "portfolio_id": self.portfolio_id,
            "request_id": self.request_id,
            "emitted_at_ms": self.emitted_at_ms,
            "status": self.status.value,
            "flags": list(self.flags),
            "payload": self.payload,
        }

    def to_json(self) -> bytes:
        return orjson.dumps(self.to_dict(), option=orjson.OPT_SORT_KEYS)


def event_id_for(event_type: EventType, portfolio_id: str, payload: dict[str, Any]) -> str:
    key = orjson.dumps(
        {"event_type": event_type.value, "portfolio_id": portfolio_id, "payload": payload},
        option=orjson.OPT_SORT_KEYS,
    )
    return hashlib.sha256(key).hexdigest()[:32]


def _record(event_type: EventType, portfolio_id: str, request_id: str, emitted_at_ms: int,
            status: EvaluationStatus, payload: dict[str, Any], flags: tuple[str, ...]) -> EventRecord:
    return EventRecord(
        event_type=event_type,
        event_id=event_id_for(event_type, portfolio_id, payload),
        portfolio_id=portfolio_id,
        request_id=request_id,
        emitted_at_ms=emitted_at_ms,
        status=status,
        payload=payload,
        flags=flags,
    )


def signal_score_record(score: SignalScore, portfolio_id: str, request_id: str,
                        emitted_at_ms: int) -> EventRecord:
    return _record(
        EventType.SIGNAL_SCORE, portfolio_id, request_id, emitted_at_ms,
        score.status, score.to_dict(), tuple(f.value for f in score.flags),
    )


def risk_score_record(score: RiskScore, request_id: str, emitted_at_ms: int) -> EventRecord:
    return _record(
        EventType.RISK_SCORE, score.portfolio_id, request_id, emitted_at_ms,
        score.status, score.to_dict(), tuple(f.value for f in score.flags),
    )


def mitigation_plan_record(plan: MitigationPlan, request_id: str, emitted_at_ms: int,
                           status: EvaluationStatus, flags: tuple[str, ...] = (),
                           execution: Optional[ExecutionReport] = None) -> EventRecord:
    payload = plan.to_dict()
    payload["execution"] = execution.to_dict() if execution is not None else None
    return _record(
        EventType.MITIGATION_PLAN, plan.portfolio_id, request_id, emitted_at_ms,
        status, payload, flags,
    )


def rejection_record(portfolio_id: str, request_id: str, emitted_at_ms: int,
                     error: BaseException, status: EvaluationStatus = EvaluationStatus.REJECTED) -> EventRecord:
    payload = {
        "request_id": request_id,
        "error_type": type(error).__name__,
        "message": str(error),
        "context": {k: str(v) for k, v in getattr(error, "context", {}).items()},
    }
    return _record(
        EventType.EVALUATION_REJECTED, portfolio_id, request_id, emitted_at_ms,
        status, payload, (),
    )

"""
Centralized logging configuration for the RiskEval engine.

This module provides standardized logging configuration using structlog
for all components. All logging throughout the system should use this
configuration to ensure consistent formatting and structured logging.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import FilteringBoundLogger


def configure_logging(
    level: str = "INFO",
    format_json: bool = False,
    include_timestamp: bool = True,
    include_caller: bool = False,
    extra_processors: Optional[list] = None
) -> None:
    """
    Configure structlog for the entire application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_json: If True, output JSON format; otherwise human-readable
        include_timestamp: Include timestamp in log output
        include_caller: Include caller information (filename, line number)
        extra_processors: Additional structlog processors to include
    """
    log_level = getattr(logging, level.upper())

    logging.basicConfig(
        level=log_level,
        stream=sys.stdout,
        format="%(message)s"  # structlog will handle formatting
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    if include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.FILENAME,
                        structlog.processors.CallsiteParameter.LINENO]
        ))

    if extra_processors:
        processors.extend(extra_processors)

    if format_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


def get_decision_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger for scoring and risk-level decisions.

    Decision logs are part of the audit trail, so every entry is bound
    with the subsystem and an audit marker.
    """
    return get_logger(name).bind(
        subsystem="risk_decision",
        audit_trail=True
    )


def get_planner_logger(name: str) -> FilteringBoundLogger:
    """Get a logger for mitigation planner state transitions."""
    return get_logger(name).bind(
        subsystem="mitigation_planner",
        audit_trail=True
    )


def log_risk_decision(
    logger: FilteringBoundLogger,
    portfolio_id: str,
    risk_level: str,
    overall_score: float,
    reason: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a risk classification decision with standardized format.

    Args:
        logger: Structlog logger instance
        portfolio_id: Portfolio being assessed
        risk_level: Resulting discrete risk level
        overall_score: Weighted overall score the level was derived from
        reason: Short description of what drove the decision
        context: Additional context data
    """
    bound_logger = logger.bind(
        portfolio_id=portfolio_id,
        risk_level=risk_level,
        overall_score=round(overall_score, 6),
        reason=reason,
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    if risk_level in ("high", "critical"):
        bound_logger.warning("risk_decision")
    else:
        bound_logger.info("risk_decision")


def log_plan_transition(
    logger: FilteringBoundLogger,
    cycle_id: str,
    from_state: str,
    to_state: str,
    trigger: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a planner state transition with standardized format.

    Args:
        logger: Structlog logger instance
        cycle_id: ID of the planning cycle transitioning
        from_state: Current state
        to_state: Target state
        trigger: What triggered the transition
        context: Additional context data
    """
    bound_logger = logger.bind(
        cycle_id=cycle_id,
        from_state=from_state,
        to_state=to_state,
        trigger=trigger,
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    bound_logger.info("plan_transition")

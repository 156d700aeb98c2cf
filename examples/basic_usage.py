#!/usr/bin/env python3
"""
Basic Usage Example - RiskEval Signal Evaluation and Mitigation Engine

This script runs one evaluation cycle end to end:
- Build a request from raw JSON-shaped payloads
- Score the signals and assess portfolio risk concurrently
- Plan mitigation actions and apply the binding ones to an in-memory store
- Print the emitted event records

Run: python examples/basic_usage.py
"""

import asyncio
from typing import Any

from riskeval_app.config.delivery import EventDeliveryConfig, create_stdout_destination
from riskeval_app.config.loader import ConfigLoader
from riskeval_app.engine import EvaluationCoordinator, EvaluationRequest
from riskeval_app.events.emitter import EventEmitter
from riskeval_app.logging.config import configure_logging
from riskeval_app.portfolio.store import InMemoryPortfolioStore
from riskeval_app.utils.time import now_ms


def create_request_payload(timestamp_ms: int) -> dict[str, Any]:
    """A stressed market, a concentrated portfolio and two agreeing sources."""
    return {
        "request_id": "example-1",
        "snapshot": {
            "portfolio_id": "growth-alpha",
            "version": 7,
            "captured_at": timestamp_ms - 500,
            "positions": [
                {"symbol": "BTC", "quantity": 2.0, "purchase_price": 40000.0},
                {"symbol": "ETH", "quantity": 10.0, "purchase_price": 2000.0},
            ],
        },
        "predictions": [
            {"source_id": "momentum-net", "symbol": "BTC", "direction": "short",
             "confidence": 0.72, "timestamp": timestamp_ms - 200, "sequence_number": 101},
            {"source_id": "orderflow-gbm", "symbol": "BTC", "direction": "sell",
             "confidence": 0.64, "timestamp": timestamp_ms - 150, "sequence_number": 102},
        ],
        "market": {
            "timestamp": timestamp_ms,
            "ticks": [
                {"symbol": "BTC", "price": 31000.0, "volume": 120.0, "timestamp": timestamp_ms - 50,
                 "exchange": "example"},
                {"symbol": "ETH", "price": 1900.0, "volume": 900.0, "timestamp": timestamp_ms - 50,
                 "exchange": "example"},
            ],
            "volatility": {"BTC": 0.9, "ETH": 0.7},
            "liquidity": {"BTC": 5_000_000.0, "ETH": 2_000_000.0},
            "momentum": {"BTC": -0.6, "ETH": -0.2},
            "market_stress": 0.8,
        },
    }


async def main() -> None:
    configure_logging(level="WARNING")

    loader = ConfigLoader.create()
    request = EvaluationRequest.from_payload(create_request_payload(now_ms()), loader=loader)

    store = InMemoryPortfolioStore([request.snapshot])
    coordinator = EvaluationCoordinator.create(loader=loader, store=store)
    coordinator.emitter = EventEmitter(
        EventDeliveryConfig(destinations=[create_stdout_destination("console", format="pretty")])
    )

    result = await coordinator.evaluate(request)

    print()
    print(f"Status:         {result.status.value}")
    print(f"Recommendation: {result.signal_score.recommendation.value} "
          f"({result.signal_score.overall_score:.3f}, CI {result.signal_score.confidence_interval[0]:.3f}"
          f"-{result.signal_score.confidence_interval[1]:.3f})")
    print(f"Risk level:     {result.risk_score.risk_level.value} ({result.risk_score.overall_score:.3f})")
    print(f"Plan {result.plan.plan_id}:")
    for action in result.plan.actions:
        kind = "binding" if action.binding else "optional"
        print(f"  - {action.action_type.value} {action.asset_id} {action.action_value:.4f} [{kind}]")
    for advisory in result.plan.advisories:
        print(f"  - advisory: {advisory}")
    if result.execution is not None:
        print(f"Execution: applied={result.execution.applied} "
              f"committed_version={result.execution.committed_version}")


if __name__ == "__main__":
    asyncio.run(main())

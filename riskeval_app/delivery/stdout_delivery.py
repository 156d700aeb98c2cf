"""Standard output event delivery mechanism."""

import sys
from typing import Any

import orjson

from ..config.delivery import StdoutDeliveryConfig
from .base import BaseEventDelivery, DeliveryResult, DeliveryStatus


class StdoutEventDelivery(BaseEventDelivery):
    """Prints events to stdout."""

    def __init__(self, name: str, config: StdoutDeliveryConfig):
        super().__init__(name, config)
        self.config: StdoutDeliveryConfig = config

    def deliver(self, events: list[dict[str, Any]]) -> list[DeliveryResult]:
        results = []

        for event in events:
            try:
                print(self._format_event(event), file=sys.stdout, flush=True)
                results.append(DeliveryResult(
                    status=DeliveryStatus.SUCCESS,
                    message="Printed to stdout"
                ))
            except (OSError, orjson.JSONEncodeError) as e:
                self.logger.error(
                    "event_print_failed",
                    event_id=event.get("event_id"),
                    error=str(e)
                )
                results.append(DeliveryResult(
                    status=DeliveryStatus.FAILED,
                    message=f"Stdout error: {e}",
                    error=e
                ))

        return results

    def _format_event(self, event: dict[str, Any]) -> str:
        if self.config.format == "pretty":
            payload = event.get("payload", {})
            detail = (payload.get("recommendation") or payload.get("risk_level")
                      or payload.get("error_type") or "")
            return (f"[{event.get('emitted_at_ms')}] {event.get('event_type')} "
                    f"{event.get('portfolio_id')} {event.get('status')} {detail}").rstrip()
        return orjson.dumps(event, option=orjson.OPT_SORT_KEYS).decode()

    def health_check(self) -> bool:
        try:
            return sys.stdout.writable()
        except (OSError, ValueError):
            return False

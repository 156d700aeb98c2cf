"""Base classes for event delivery mechanisms."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import structlog


class DeliveryStatus(Enum):
    """Event delivery status."""
    SUCCESS = "success"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"


@dataclass
class DeliveryResult:
    """Result of an event delivery attempt."""
    status: DeliveryStatus
    message: Optional[str] = None
    attempt_count: int = 1
    delivery_time_ms: Optional[int] = None
    error: Optional[Exception] = None


class EventDeliveryRetryableError(Exception):
    """Delivery failed but may succeed on a later attempt."""


class EventDeliveryPermanentError(Exception):
    """Delivery failed and must not be retried."""


RETRYABLE_ERRORS = (EventDeliveryRetryableError, OSError)


class BaseEventDelivery(ABC):
    """
    Base class for event delivery mechanisms.

    Sinks are synchronous; the emitter runs them off the event loop. A sink
    reports a transient failure with a FAILED result or by raising
    EventDeliveryRetryableError (an OSError counts as one), and a failure that
    retrying cannot fix by raising EventDeliveryPermanentError.
    """

    def __init__(self, name: str, config: Any):
        self.name = name
        self.config = config
        self.logger = structlog.get_logger(__name__).bind(delivery_name=name)
        self._delivery_count = 0
        self._error_count = 0

    @abstractmethod
    def deliver(self, events: list[dict[str, Any]]) -> list[DeliveryResult]:
        """
        Deliver events to the configured destination.

        Args:
            events: Serialized event records

        Returns:
            One delivery result per event
        """

    @abstractmethod
    def health_check(self) -> bool:
        """Check if delivery mechanism is healthy."""

    def deliver_with_retry(
        self,
        events: list[dict[str, Any]],
        max_retries: int = 3,
        retry_delay: float = 0.05
    ) -> list[DeliveryResult]:
        """
        Deliver events one at a time with bounded retries.

        A FAILED result or a retryable error is tried again after
        ``retry_delay`` seconds, and an event still failing after
        ``max_retries`` retries is dead-lettered. Permanent errors, and errors
        not known to be transient, fail the event without a retry.
        """
        return [self._deliver_one(event, max_retries, retry_delay) for event in events]

    def _deliver_one(self, event: dict[str, Any], max_retries: int, retry_delay: float) -> DeliveryResult:
        last_error: Optional[Exception] = None
        last_message: Optional[str] = None

        for attempt in range(1, max_retries + 2):
            if attempt > 1:
                self.logger.warning(
                    "delivery_retry",
                    attempt=attempt - 1,
                    retry_delay_s=retry_delay,
                    event_id=event.get("event_id"),
                    error=last_message,
                )
                time.sleep(retry_delay)

            started = time.monotonic()
            try:
                results = self.deliver([event])
            except RETRYABLE_ERRORS as e:
                last_error, last_message = e, str(e)
                continue
            except Exception as e:
                self._error_count += 1
                return DeliveryResult(
                    status=DeliveryStatus.FAILED,
                    message=f"Permanent error: {e}",
                    attempt_count=attempt,
                    error=e,
                )

            result = results[0] if results else DeliveryResult(DeliveryStatus.FAILED, message="no delivery result")
            if result.status == DeliveryStatus.SUCCESS:
                result.delivery_time_ms = int((time.monotonic() - started) * 1000)
                result.attempt_count = attempt
                self._delivery_count += 1
                return result
            last_error, last_message = result.error, result.message

        self._error_count += 1
        return DeliveryResult(
            status=DeliveryStatus.DEAD_LETTER,
            message=f"Max retries exceeded: {last_message}",
            attempt_count=max_retries + 1,
            error=last_error,
        )

    def get_stats(self) -> dict[str, Any]:
        """Get delivery statistics."""
        total = self._delivery_count + self._error_count
        return {
            "name": self.name,
            "delivery_count": self._delivery_count,
            "error_count": self._error_count,
            "success_rate": self._delivery_count / total if total > 0 else 0.0,
        }

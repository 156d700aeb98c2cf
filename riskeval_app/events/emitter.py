"""Idempotent emission of event records to retention and delivery sinks."""

import asyncio
from collections.abc import Iterable
from typing import Any, Optional

import structlog

from ..config.delivery import (
    DeliveryMethod,
    EventDeliveryConfig,
    get_default_delivery_config,
)
from ..delivery.base import BaseEventDelivery, DeliveryStatus
from ..delivery.file_delivery import FileEventDelivery
from ..delivery.stdout_delivery import StdoutEventDelivery
from ..errors import DeliveryError
from ..persistence.event_store import EventStore
from ..validation.event_schema import EventValidationError, EventValidator
from .records import EventRecord

logger = structlog.get_logger(__name__)


class EventEmitter:
    """
    Emits event records at most once per event id.

    Each record is validated against the published schema, optionally retained
    in the audit store, then handed to every delivery destination whose
    filters accept it. Sinks are synchronous, so ``emit`` runs a batch on a
    worker thread to keep the event loop free.
    """

    def __init__(
        self,
        delivery_config: Optional[EventDeliveryConfig] = None,
        store: Optional[EventStore] = None,
        handlers: Optional[dict[str, BaseEventDelivery]] = None,
    ):
        self.logger = logger
        self.delivery_config = delivery_config or get_default_delivery_config()
        self.store = store
        self.validator = EventValidator()
        self.delivery_handlers: dict[str, BaseEventDelivery] = {}
        self.emitted_ids: set[str] = set()
        self.history: list[EventRecord] = []

        self._init_delivery_handlers()
        # Injected handlers accept every record
        self._extra_handlers: dict[str, BaseEventDelivery] = dict(handlers or {})

    def _init_delivery_handlers(self) -> None:
        """Initialize delivery handlers based on configuration."""
        if not self.delivery_config.enabled:
            return

        for destination in self.delivery_config.destinations:
            if not destination.enabled:
                continue

            if destination.method == DeliveryMethod.FILE_OUTPUT:
                handler: BaseEventDelivery = FileEventDelivery(destination.name, destination.config)
            elif destination.method == DeliveryMethod.STDOUT:
                handler = StdoutEventDelivery(destination.name, destination.config)
            else:
                self.logger.warning("unsupported_delivery_method", method=str(destination.method))
                continue

            self.delivery_handlers[destination.name] = handler
            self.logger.info("delivery_handler_initialized", destination=destination.name)

    def already_emitted(self, event_id: str) -> bool:
        if event_id in self.emitted_ids:
            return True
        return self.store is not None and self.store.has_event(event_id)

    async def emit(self, records: Iterable[EventRecord]) -> list[EventRecord]:
        """Emit records in order. Returns the records that were newly emitted."""
        return await asyncio.to_thread(self.emit_batch, list(records))

    def emit_batch(self, records: list[EventRecord]) -> list[EventRecord]:
        emitted = []
        failures: list[DeliveryError] = []
        for record in records:
            try:
                if self.emit_record(record):
                    emitted.append(record)
            except DeliveryError as e:
                emitted.append(record)
                failures.append(e)
        if failures:
            raise failures[0]
        return emitted

    def emit_record(self, record: EventRecord) -> bool:
        """
        Emit one record.

        Returns:
            False if the record was already emitted, True otherwise.

        Raises:
            DeliveryError: If the record fails schema validation, or if any
                destination could not deliver it after retries. The record
                counts as emitted once it has passed validation.
        """
        if self.already_emitted(record.event_id):
            self.logger.warning(
                "duplicate_event_skipped",
                event_id=record.event_id,
                event_type=record.event_type.value,
                portfolio_id=record.portfolio_id,
            )
            return False

        event = record.to_dict()
        try:
            self.validator.validate_event(event)
        except EventValidationError as e:
            raise DeliveryError(
                str(e),
                delivery_method="validation",
                event_id=record.event_id,
                context={"event_type": record.event_type.value},
            ) from e

        if self.store is not None:
            self.store.store_event(record)

        self.emitted_ids.add(record.event_id)
        self.history.append(record)

        failed = self._deliver_event(event)

        self.logger.info(
            "event_emitted",
            event_id=record.event_id,
            event_type=record.event_type.value,
            portfolio_id=record.portfolio_id,
            status=record.status.value,
            flags=list(record.flags),
        )

        if failed:
            raise DeliveryError(
                f"Delivery failed for {', '.join(failed)}",
                delivery_method="sink",
                event_id=record.event_id,
                context={"destinations": failed},
            )
        return True

    def _deliver_event(self, event: dict[str, Any]) -> list[str]:
        """Deliver to all accepting destinations. Returns the names that failed."""
        failed = []
        for name, handler in self._handlers_for(event):
            results = handler.deliver_with_retry(
                [event],
                max_retries=self.delivery_config.retry_attempts,
                retry_delay=self.delivery_config.retry_delay_seconds,
            )
            result_status = DeliveryStatus.SUCCESS
            for result in results:
                if result.status != DeliveryStatus.SUCCESS:
                    result_status = result.status
                    self.logger.error(
                        "event_delivery_failed",
                        destination=name,
                        event_id=event["event_id"],
                        status=result.status.value,
                        message=result.message,
                        attempts=result.attempt_count,
                    )
            if result_status != DeliveryStatus.SUCCESS:
                failed.append(name)
            if self.store is not None:
                self.store.update_delivery_status(event["event_id"], result_status.value)
        return failed

    def _handlers_for(self, event: dict[str, Any]) -> list[tuple[str, BaseEventDelivery]]:
        selected = []
        if self.delivery_config.enabled:
            for destination in self.delivery_config.destinations:
                handler = self.delivery_handlers.get(destination.name)
                if handler and destination.accepts(event["event_type"], event["status"]):
                    selected.append((destination.name, handler))
        selected.extend(self._extra_handlers.items())
        return selected

    def get_stats(self) -> dict[str, Any]:
        return {
            "emitted_count": len(self.emitted_ids),
            "handlers": [h.get_stats() for h in
                         [*self.delivery_handlers.values(), *self._extra_handlers.values()]],
        }

"""File-based event delivery mechanism."""

import fcntl
from pathlib import Path
from typing import Any

import orjson

from ..config.delivery import FileDeliveryConfig
from .base import (
    BaseEventDelivery,
    DeliveryResult,
    DeliveryStatus,
    EventDeliveryPermanentError,
)


class FileEventDelivery(BaseEventDelivery):
    """Appends events to a JSON or JSONL file."""

    def __init__(self, name: str, config: FileDeliveryConfig):
        super().__init__(name, config)
        self.config: FileDeliveryConfig = config
        self.output_path = Path(config.output_path)

        if config.format not in ("json", "jsonl"):
            raise EventDeliveryPermanentError(f"Unsupported format: {config.format}")

        if config.create_dirs:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)

    def deliver(self, events: list[dict[str, Any]]) -> list[DeliveryResult]:
        try:
            if self.config.format == "json":
                self._write_json_format(events)
            else:
                self._write_jsonl_format(events)
        except OSError as e:
            self.logger.warning(
                "event_file_write_failed",
                output_path=str(self.output_path),
                error=str(e)
            )
            return [DeliveryResult(
                status=DeliveryStatus.FAILED,
                message=f"File system error: {e}",
                error=e
            ) for _ in events]
        except orjson.JSONEncodeError as e:
            raise EventDeliveryPermanentError(f"JSON encoding error: {e}") from e

        for event in events:
            self.logger.debug(
                "event_written",
                event_id=event.get("event_id"),
                output_path=str(self.output_path)
            )
        return [DeliveryResult(
            status=DeliveryStatus.SUCCESS,
            message=f"Written to {self.output_path}"
        ) for _ in events]

    def _write_json_format(self, events: list[dict[str, Any]]) -> None:
        """Rewrite the file as one JSON array."""
        existing: list[Any] = []
        if self.config.append_mode and self.output_path.exists():
            try:
                existing = orjson.loads(self.output_path.read_bytes())
            except orjson.JSONDecodeError:
                existing = []
            if not isinstance(existing, list):
                existing = []

        with open(self.output_path, "wb") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            f.write(orjson.dumps(existing + events, option=orjson.OPT_INDENT_2))

    def _write_jsonl_format(self, events: list[dict[str, Any]]) -> None:
        """One JSON object per line."""
        mode = "ab" if self.config.append_mode else "wb"

        with open(self.output_path, mode) as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            for event in events:
                f.write(orjson.dumps(event, option=orjson.OPT_SORT_KEYS | orjson.OPT_APPEND_NEWLINE))

    def health_check(self) -> bool:
        """Check the output directory is writable."""
        directory = self.output_path.parent
        return directory.exists() and directory.is_dir()

"""Configuration for event delivery destinations."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class DeliveryMethod(Enum):
    """Supported event delivery methods."""
    FILE_OUTPUT = "file_output"
    STDOUT = "stdout"


@dataclass(frozen=True)
class FileDeliveryConfig:
    """Configuration for file-based delivery."""
    output_path: str
    format: str = "jsonl"  # json, jsonl
    append_mode: bool = True
    create_dirs: bool = True


@dataclass(frozen=True)
class StdoutDeliveryConfig:
    """Configuration for stdout delivery."""
    format: str = "json"  # json, pretty


@dataclass(frozen=True)
class DeliveryDestination:
    """Single event delivery destination."""
    name: str
    method: DeliveryMethod
    config: Union[FileDeliveryConfig, StdoutDeliveryConfig]
    enabled: bool = True

    # Filtering options
    event_types_filter: Optional[list[str]] = None   # e.g. ["mitigation_plan"]
    status_filter: Optional[list[str]] = None        # e.g. ["degraded", "rejected"]

    def accepts(self, event_type: str, status: str) -> bool:
        if not self.enabled:
            return False
        if self.event_types_filter and event_type not in self.event_types_filter:
            return False
        if self.status_filter and status not in self.status_filter:
            return False
        return True


@dataclass(frozen=True)
class EventDeliveryConfig:
    """Complete event delivery configuration."""
    destinations: list[DeliveryDestination] = field(default_factory=list)
    enabled: bool = True

    # Error handling
    retry_attempts: int = 3
    retry_delay_seconds: float = 0.05


def get_default_delivery_config() -> EventDeliveryConfig:
    """Default delivery: nothing leaves the process unless configured."""
    return EventDeliveryConfig(destinations=[], enabled=True)


def create_file_destination(
    name: str,
    output_path: str,
    format: str = "jsonl",
    enabled: bool = True,
    event_types_filter: Optional[list[str]] = None,
    status_filter: Optional[list[str]] = None,
    **kwargs
) -> DeliveryDestination:
    """Create file delivery destination."""
    return DeliveryDestination(
        name=name,
        method=DeliveryMethod.FILE_OUTPUT,
        config=FileDeliveryConfig(
            output_path=output_path,
            format=format,
            **kwargs
        ),
        enabled=enabled,
        event_types_filter=event_types_filter,
        status_filter=status_filter,
    )


def create_stdout_destination(
    name: str = "stdout",
    format: str = "json",
    enabled: bool = True,
    event_types_filter: Optional[list[str]] = None,
    status_filter: Optional[list[str]] = None,
) -> DeliveryDestination:
    """Create stdout delivery destination."""
    return DeliveryDestination(
        name=name,
        method=DeliveryMethod.STDOUT,
        config=StdoutDeliveryConfig(format=format),
        enabled=enabled,
        event_types_filter=event_types_filter,
        status_filter=status_filter,
    )


def delivery_config_from_dict(data: dict[str, Any]) -> EventDeliveryConfig:
    """Build delivery configuration from a YAML ``delivery`` section."""
    destinations = []
    for entry in data.get("destinations", []):
        method = DeliveryMethod(entry["method"])
        filters = {
            "enabled": entry.get("enabled", True),
            "event_types_filter": entry.get("event_types"),
            "status_filter": entry.get("statuses"),
        }
        if method == DeliveryMethod.FILE_OUTPUT:
            destinations.append(create_file_destination(
                name=entry["name"],
                output_path=entry["output_path"],
                format=entry.get("format", "jsonl"),
                **filters,
            ))
        else:
            destinations.append(create_stdout_destination(
                name=entry.get("name", "stdout"),
                format=entry.get("format", "json"),
                **filters,
            ))

    return EventDeliveryConfig(
        destinations=destinations,
        enabled=data.get("enabled", True),
        retry_attempts=data.get("retry_attempts", 3),
        retry_delay_seconds=data.get("retry_delay_seconds", 0.05),
    )

"""Configuration loader with 3-tier parameter precedence."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors.system_failures import ConfigurationError
from .defaults import AuditParams, CoordinatorParams, DefaultConfig, get_default_config
from .delivery import EventDeliveryConfig, delivery_config_from_dict, get_default_delivery_config
from .tolerance import RiskToleranceConfig, normalize_request_shape

# Sections of the defaults that are engine-wide rather than per request
_ENGINE_SECTIONS = ("coordinator", "audit")


@dataclass(frozen=True)
class ConfigLoader:
    """Manages configuration loading with 3-tier precedence."""

    config_dir: Path
    defaults: DefaultConfig

    @classmethod
    def create(cls, config_dir: Optional[Path] = None) -> "ConfigLoader":
        """Create a ConfigLoader instance."""
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"

        return cls(
            config_dir=Path(config_dir),
            defaults=get_default_config(),
        )

    def load_portfolio_config(self, portfolio_id: str) -> dict[str, Any]:
        """Load portfolio-specific configuration overrides."""
        portfolios = self._load_yaml("portfolios.yaml").get("portfolios") or {}
        return portfolios.get(portfolio_id) or {}

    def portfolio_ids(self) -> list[str]:
        """Portfolios with configured overrides."""
        return list(self._load_yaml("portfolios.yaml").get("portfolios") or {})

    def load_engine_config(self) -> dict[str, Any]:
        """Load engine-wide settings (coordinator, audit, delivery)."""
        return self._load_yaml("engine.yaml")

    def merge_config(
        self,
        portfolio_id: str,
        request_overrides: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """
        Merge configuration with 3-tier precedence.

        Priority order:
        1. Per-request overrides (highest priority)
        2. Portfolio-specific overrides
        3. Global defaults (lowest priority)

        A tier that sets tolerance_level discards planner values from the
        tiers below it, so the level's presets apply under its own planner
        values.
        """
        config = self._dataclass_to_dict(self.defaults)
        for section in _ENGINE_SECTIONS:
            config.pop(section, None)

        for layer in (self.load_portfolio_config(portfolio_id), request_overrides or {}):
            layer = normalize_request_shape(layer)
            if "tolerance_level" in layer:
                config.pop("planner", None)
            config = self._deep_merge(config, layer)

        return config

    def tolerance_for(
        self,
        portfolio_id: str,
        request_overrides: Optional[dict[str, Any]] = None
    ) -> RiskToleranceConfig:
        """Build the validated per-request tolerance config for a portfolio."""
        return RiskToleranceConfig.from_dict(self.merge_config(portfolio_id, request_overrides))

    def coordinator_params(self) -> CoordinatorParams:
        section = self.load_engine_config().get("coordinator") or {}
        return self._build_section(CoordinatorParams, self.defaults.coordinator, section, "coordinator")

    def audit_params(self) -> AuditParams:
        section = self.load_engine_config().get("audit") or {}
        return self._build_section(AuditParams, self.defaults.audit, section, "audit")

    def delivery_config(self) -> EventDeliveryConfig:
        section = self.load_engine_config().get("delivery")
        if not section:
            return get_default_delivery_config()
        try:
            return delivery_config_from_dict(section)
        except (KeyError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid delivery configuration: {e}",
                context={"config_dir": str(self.config_dir)}
            ) from e

    def _load_yaml(self, filename: str) -> dict[str, Any]:
        path = self.config_dir / filename

        if not path.exists():
            return {}

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    f"Could not parse {filename}: {e}",
                    context={"path": str(path)}
                ) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"{filename} must contain a mapping at the top level",
                context={"path": str(path)}
            )
        return data

    def _build_section(self, section_cls: type, default: Any, overrides: dict[str, Any], name: str) -> Any:
        values = self._deep_merge(self._dataclass_to_dict(default), overrides)
        try:
            return section_cls(**values)
        except TypeError as e:
            raise ConfigurationError(
                f"Invalid {name} configuration: {e}",
                context={"config_dir": str(self.config_dir)}
            ) from e

    def _dataclass_to_dict(self, obj: Any) -> dict[str, Any]:
        """Convert nested dataclasses to dictionary."""
        if hasattr(obj, '__dataclass_fields__'):
            result = {}
            for field_name in obj.__dataclass_fields__:
                value = getattr(obj, field_name)
                if hasattr(value, '__dataclass_fields__'):
                    result[field_name] = self._dataclass_to_dict(value)
                else:
                    result[field_name] = value
            return result
        return obj  # type: ignore[no-any-return]

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

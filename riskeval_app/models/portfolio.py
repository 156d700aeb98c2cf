"""
Portfolio snapshot models.

Positions are owned by the external portfolio collaborator; the engine only
ever holds an immutable, versioned snapshot of them.
"""

from dataclasses import dataclass
from functools import cached_property
from typing import Any

from ..errors.rejections import ValidationError


@dataclass(frozen=True)
class PortfolioPosition:
    """Single holding inside a portfolio snapshot."""
    symbol: str
    quantity: float
    purchase_price: float
    asset_class: str = "crypto"

    def __post_init__(self):
        if not self.symbol:
            raise ValidationError("Position missing symbol", field="symbol", value=self.symbol)
        if self.quantity < 0:
            raise ValidationError("Position quantity must be non-negative", field="quantity", value=self.quantity)
        if self.purchase_price <= 0:
            raise ValidationError(
                "Position purchase_price must be positive",
                field="purchase_price", value=self.purchase_price
            )

    @property
    def cost_basis(self) -> float:
        return self.quantity * self.purchase_price


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Read-only, versioned view of a portfolio."""
    portfolio_id: str
    version: int
    positions: tuple[PortfolioPosition, ...]
    captured_at: int        # epoch ms, UTC

    def __post_init__(self):
        if not self.portfolio_id:
            raise ValidationError("Snapshot missing portfolio_id", field="portfolio_id", value=self.portfolio_id)
        if self.version < 0:
            raise ValidationError("Snapshot version must be non-negative", field="version", value=self.version)
        if not isinstance(self.positions, tuple):
            # Lists are accepted at construction and frozen into a tuple
            object.__setattr__(self, "positions", tuple(self.positions))

    @cached_property
    def _by_symbol(self) -> dict[str, list[PortfolioPosition]]:
        index: dict[str, list[PortfolioPosition]] = {}
        for position in self.positions:
            index.setdefault(position.symbol, []).append(position)
        return index

    @property
    def symbols(self) -> list[str]:
        """Held symbols in first-seen order."""
        return list(self._by_symbol)

    def positions_for(self, symbol: str) -> list[PortfolioPosition]:
        return list(self._by_symbol.get(symbol, ()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "portfolio_id": self.portfolio_id,
            "version": self.version,
            "captured_at": self.captured_at,
            "positions": [
                {
                    "symbol": p.symbol,
                    "quantity": float(p.quantity),
                    "purchase_price": float(p.purchase_price),
                    "asset_class": p.asset_class,
                }
                for p in self.positions
            ],
        }

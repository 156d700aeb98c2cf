"""
Per-portfolio exposure book with running per-dimension aggregates.

The book keeps one aggregated exposure per held symbol together with each
incremental risk dimension's per-symbol contribution. A portfolio delta only
replaces the entries of the symbols it touches. Running totals and the value
ranking are adjusted by the old and new entry on every update, so a delta costs work proportional to its size.
The engine rebuilds the book on every coarse tick, which bounds float drift
in the running sums.
"""

import bisect
import math
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from types import MappingProxyType
from typing import Optional

from ..models.market import MarketContext
from ..models.portfolio import PortfolioSnapshot
from ..models.risk import RiskDimension


@dataclass(frozen=True)
class SymbolExposure:
    """All positions in one symbol, marked at the latest known price."""
    symbol: str
    quantity: float
    cost_basis: float
    price: float
    asset_class: str = "crypto"

    @property
    def value(self) -> float:
        return self.quantity * self.price

    @property
    def average_cost(self) -> float:
        return self.cost_basis / self.quantity if self.quantity > 0 else 0.0

    @property
    def drawdown(self) -> float:
        """Fractional loss against the average purchase price, 0 when in profit."""
        average_cost = self.average_cost
        if average_cost <= 0:
            return 0.0
        return max(0.0, 1.0 - self.price / average_cost)


def aggregate_positions(
    snapshot: PortfolioSnapshot,
    market: MarketContext,
    symbols: Optional[Iterable[str]] = None,
) -> dict[str, Optional[SymbolExposure]]:
    """
    Aggregate the snapshot's positions per symbol.

    Symbols with no remaining quantity map to None so callers can drop them
    from a book. Positions are marked at the latest tick price, falling back
    to the average purchase price when no tick is known.
    """
    wanted = list(dict.fromkeys(symbols)) if symbols is not None else snapshot.symbols
    result: dict[str, Optional[SymbolExposure]] = {}

    for symbol in wanted:
        positions = snapshot.positions_for(symbol)
        quantity = math.fsum(p.quantity for p in positions)
        if quantity <= 0:
            result[symbol] = None
            continue

        cost_basis = math.fsum(p.cost_basis for p in positions)
        price = market.price(symbol)
        if price is None:
            price = cost_basis / quantity

        result[symbol] = SymbolExposure(
            symbol=symbol,
            quantity=quantity,
            cost_basis=cost_basis,
            price=price,
            asset_class=positions[0].asset_class,
        )

    return result


class ExposureBook:
    """Running exposure aggregates for one portfolio."""

    def __init__(self, dimensions: Iterable[RiskDimension] = ()):
        self._entries: dict[str, SymbolExposure] = {}
        self._contributions: dict[RiskDimension, dict[str, float]] = {dim: {} for dim in dimensions}
        self._contribution_totals: dict[RiskDimension, float] = {dim: 0.0 for dim in self._contributions}
        self._total_value = 0.0
        self._ranking: list[tuple[float, str]] = []     # (-value, symbol), ascending
        self._journal: Optional[list[tuple[str, Optional[SymbolExposure], dict[RiskDimension, Optional[float]]]]] = None

    def __iter__(self) -> Iterator[SymbolExposure]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._entries

    @property
    def entries(self) -> Mapping[str, SymbolExposure]:
        return MappingProxyType(self._entries)

    @property
    def total_value(self) -> float:
        return self._total_value

    def get(self, symbol: str) -> Optional[SymbolExposure]:
        return self._entries.get(symbol)

    def weight(self, symbol: str) -> float:
        entry = self._entries.get(symbol)
        if entry is None or self._total_value <= 0:
            return 0.0
        return entry.value / self._total_value

    def contribution(self, dimension: RiskDimension, symbol: str) -> float:
        return self._contributions[dimension].get(symbol, 0.0)

    def contribution_total(self, dimension: RiskDimension) -> float:
        return self._contribution_totals[dimension]

    def set_entry(
        self,
        symbol: str,
        exposure: Optional[SymbolExposure],
        contributions: Optional[Mapping[RiskDimension, float]] = None,
    ) -> None:
        """Replace (or with None, remove) one symbol's exposure and contributions."""
        if self._journal is not None:
            previous = {dim: values.get(symbol) for dim, values in self._contributions.items()}
            self._journal.append((symbol, self._entries.get(symbol), previous))

        self._put(symbol, exposure)
        if exposure is None:
            for dim in self._contributions:
                self._put_contribution(dim, symbol, None)
            return

        for dim, value in (contributions or {}).items():
            if dim in self._contributions:
                self._put_contribution(dim, symbol, value)

    def top_exposures(self, limit: int) -> list[SymbolExposure]:
        """Largest holdings by value; ties broken by symbol."""
        return [self._entries[symbol] for _, symbol in self._ranking[:limit]]

    @contextmanager
    def transaction(self) -> Iterator["ExposureBook"]:
        """
        Apply a group of updates atomically.

        Any exception raised inside the block, including task cancellation,
        rolls every update made in the block back before propagating.
        """
        if self._journal is not None:
            raise RuntimeError("ExposureBook transactions cannot be nested")

        self._journal = []
        try:
            yield self
        except BaseException:
            self._rollback()
            raise
        finally:
            self._journal = None

    def _put(self, symbol: str, exposure: Optional[SymbolExposure]) -> None:
        previous = self._entries.get(symbol)
        if previous is not None:
            value = previous.value
            self._total_value -= value
            del self._ranking[bisect.bisect_left(self._ranking, (-value, symbol))]

        if exposure is None:
            self._entries.pop(symbol, None)
        else:
            value = exposure.value
            self._entries[symbol] = exposure
            self._total_value += value
            bisect.insort(self._ranking, (-value, symbol))

        if not self._entries:
            self._total_value = 0.0

    def _put_contribution(self, dim: RiskDimension, symbol: str, value: Optional[float]) -> None:
        values = self._contributions[dim]
        previous = values.pop(symbol, None)
        if previous is not None:
            self._contribution_totals[dim] -= previous
        if value is not None:
            values[symbol] = value
            self._contribution_totals[dim] += value
        if not values:
            self._contribution_totals[dim] = 0.0

    def _rollback(self) -> None:
        assert self._journal is not None
        for symbol, entry, contributions in reversed(self._journal):
            self._put(symbol, entry)
            for dim, value in contributions.items():
                self._put_contribution(dim, symbol, value)

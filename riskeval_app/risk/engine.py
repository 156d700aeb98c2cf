"""
Risk assessment engine.

Keeps one exposure book and the last dimension scores per portfolio.
A new snapshot version that only touches a few symbols recomputes the
liquidity and concentration contributions of those symbols; market,
volatility and regulatory scores are refreshed on the coarse tick, or
whenever a full rebuild is needed.

Every analyzer call is time-boxed. A dimension that does not answer in time
keeps its previously cached score (or the fallback severity when there is
none), is reported in ``stale_dimensions`` and is recomputed in full on the
next assessment. A result that is not a finite number is treated the same
way and additionally flags the score with an analyzer failure.
"""

import asyncio
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Optional

from ..analyzers.base import IncrementalRiskAnalyzer, RiskAnalyzer, clamp_unit
from ..config.defaults import RiskAnalyzerParams
from ..config.tolerance import RiskToleranceConfig
from ..errors import AnalyzerTimeoutError, ConfigurationError, StaleDataError
from ..logging.config import get_decision_logger, log_risk_decision
from ..models.market import MarketContext
from ..models.portfolio import PortfolioSnapshot
from ..models.risk import ExposureSummary, RiskDimension, RiskScore
from ..models.status import ScoreFlag, status_from_flags
from .exposure import ExposureBook, SymbolExposure, aggregate_positions
from .levels import classify_risk_level, weighted_risk


@dataclass
class _PortfolioRiskState:
    """Mutable per-portfolio state, owned by the engine."""
    book: ExposureBook
    snapshot_version: int
    scores: dict[RiskDimension, float]
    coarse_at_ms: int
    params: RiskAnalyzerParams
    dirty: set[RiskDimension] = field(default_factory=set)
    last_score: Optional[RiskScore] = None


class RiskAssessmentEngine:
    """Aggregates the five risk dimensions for versioned portfolio snapshots."""

    def __init__(self, analyzers: Sequence[RiskAnalyzer]):
        analyzers = tuple(analyzers)
        dimensions = [a.dimension for a in analyzers]
        if sorted(dimensions, key=list(RiskDimension).index) != list(RiskDimension):
            raise ConfigurationError(
                "RiskAssessmentEngine needs exactly one analyzer per risk dimension",
                context={"dimensions": [d.value for d in dimensions]}
            )

        self.analyzers = analyzers
        self._incremental = tuple(a for a in analyzers if isinstance(a, IncrementalRiskAnalyzer))
        self._coarse = tuple(a for a in analyzers if not isinstance(a, IncrementalRiskAnalyzer))
        self._states: dict[str, _PortfolioRiskState] = {}
        self.logger = get_decision_logger(__name__)

    def cached_score(self, portfolio_id: str) -> Optional[RiskScore]:
        state = self._states.get(portfolio_id)
        return state.last_score if state else None

    def forget(self, portfolio_id: str) -> None:
        self._states.pop(portfolio_id, None)

    async def assess(
        self,
        snapshot: PortfolioSnapshot,
        market: MarketContext,
        *,
        config: RiskToleranceConfig,
        changed_symbols: Optional[Iterable[str]] = None,
        tracked_symbols: Iterable[str] = (),
    ) -> RiskScore:
        """
        Assess portfolio risk for a snapshot.

        Args:
            snapshot: Immutable portfolio snapshot
            market: Market context for this cycle
            config: Per-request tolerance configuration
            changed_symbols: Symbols touched since the last assessed version.
                Derived by comparing against the book when omitted.
            tracked_symbols: Symbols whose exposure must be reported even when
                they fall outside the largest ``max_reported_exposures``.

        Raises:
            StaleDataError: If the snapshot is older than the last one assessed.
        """
        portfolio_id = snapshot.portfolio_id
        state = self._states.get(portfolio_id)
        tracked = tuple(dict.fromkeys(tracked_symbols))

        if state is not None and snapshot.version < state.snapshot_version:
            raise StaleDataError(
                f"Snapshot version {snapshot.version} is older than assessed version {state.snapshot_version}",
                context={
                    "portfolio_id": portfolio_id,
                    "snapshot_version": snapshot.version,
                    "assessed_version": state.snapshot_version,
                },
            )

        engine_params = config.risk_engine
        coarse_due = (
            state is not None
            and market.timestamp - state.coarse_at_ms >= engine_params.coarse_tick_ms
        )
        failed: list[RiskDimension] = []

        if state is None or coarse_due or state.dirty or state.params != config.risk_analyzers:
            state, stale = await self._rebuild(snapshot, market, config, state, failed)
            mode = "full"
        else:
            changed = None if changed_symbols is None else list(dict.fromkeys(changed_symbols))
            if snapshot.version == state.snapshot_version and not changed:
                return self._score(snapshot, market, config, state, [], [], tracked, mode="cached")
            stale = await self._update(snapshot, market, config, state, changed, failed)
            mode = "incremental"

        self._states[portfolio_id] = state
        return self._score(snapshot, market, config, state, stale, failed, tracked, mode)

    async def _rebuild(
        self,
        snapshot: PortfolioSnapshot,
        market: MarketContext,
        config: RiskToleranceConfig,
        previous: Optional[_PortfolioRiskState],
        failed: list[RiskDimension],
    ) -> tuple[_PortfolioRiskState, list[RiskDimension]]:
        """Build a fresh book; the previous state is left untouched until it succeeds."""
        params = config.risk_analyzers
        book = ExposureBook(a.dimension for a in self._incremental)
        exposures = [e for e in aggregate_positions(snapshot, market).values() if e is not None]
        for exposure in exposures:
            book.set_entry(exposure.symbol, exposure)

        timeout_s = config.risk_engine.dimension_timeout_ms / 1000.0
        incremental_results, coarse_results = await asyncio.gather(
            asyncio.gather(*(
                self._timed(a, a.contributions(exposures, market, params), timeout_s, failed)
                for a in self._incremental
            )),
            asyncio.gather(*(
                self._timed(a, a.analyze(book, market, params), timeout_s, failed)
                for a in self._coarse
            )),
        )

        scores: dict[RiskDimension, float] = {}
        stale: list[RiskDimension] = []

        for analyzer, contributions in zip(self._incremental, incremental_results):
            contributions = self._checked_contributions(analyzer, contributions, failed)
            if contributions is None:
                stale.append(analyzer.dimension)
                continue
            for exposure in exposures:
                book.set_entry(exposure.symbol, exposure, {analyzer.dimension: contributions[exposure.symbol]})
            value = self._checked(analyzer, analyzer.score(book, market, params), failed)
            if value is None:
                stale.append(analyzer.dimension)
                continue
            scores[analyzer.dimension] = value

        for analyzer, value in zip(self._coarse, coarse_results):
            value = self._checked(analyzer, value, failed)
            if value is None:
                stale.append(analyzer.dimension)
                continue
            scores[analyzer.dimension] = value

        for dim in stale:
            scores[dim] = self._fallback(previous, dim, config)

        state = _PortfolioRiskState(
            book=book,
            snapshot_version=snapshot.version,
            scores=scores,
            coarse_at_ms=market.timestamp,
            params=params,
            dirty=set(stale),
        )
        return state, stale

    async def _update(
        self,
        snapshot: PortfolioSnapshot,
        market: MarketContext,
        config: RiskToleranceConfig,
        state: _PortfolioRiskState,
        changed: Optional[list[str]],
        failed: list[RiskDimension],
    ) -> list[RiskDimension]:
        """Recompute the incremental dimensions for changed symbols only."""
        params = config.risk_analyzers
        book = state.book

        if changed is None:
            current = aggregate_positions(snapshot, market)
            changed = [s for s, e in current.items() if book.get(s) != e]
            changed.extend(s for s in book.entries if s not in current)
            updates = {s: current.get(s) for s in changed}
        else:
            updates = aggregate_positions(snapshot, market, changed)

        present: list[SymbolExposure] = [e for e in updates.values() if e is not None]
        timeout_s = config.risk_engine.dimension_timeout_ms / 1000.0
        stale: list[RiskDimension] = []

        with book.transaction():
            for symbol, exposure in updates.items():
                book.set_entry(symbol, exposure)

            results = await asyncio.gather(*(
                self._timed(a, a.contributions(present, market, params), timeout_s, failed)
                for a in self._incremental
            ))

            for analyzer, contributions in zip(self._incremental, results):
                contributions = self._checked_contributions(analyzer, contributions, failed)
                if contributions is None:
                    stale.append(analyzer.dimension)
                    continue
                for exposure in present:
                    book.set_entry(exposure.symbol, exposure, {analyzer.dimension: contributions[exposure.symbol]})

        for analyzer in self._incremental:
            if analyzer.dimension in stale:
                continue
            value = self._checked(analyzer, analyzer.score(book, market, params), failed)
            if value is None:
                stale.append(analyzer.dimension)
                continue
            state.scores[analyzer.dimension] = value

        state.snapshot_version = snapshot.version
        state.dirty.update(stale)
        self.logger.debug(
            "risk_incremental_update",
            portfolio_id=snapshot.portfolio_id,
            snapshot_version=snapshot.version,
            changed_symbols=list(updates),
        )
        return stale

    async def _timed(self, analyzer: RiskAnalyzer, call, timeout_s: float, failed: list[RiskDimension]):
        try:
            return await asyncio.wait_for(call, timeout=timeout_s)
        except TimeoutError:
            error = AnalyzerTimeoutError(
                f"{analyzer.dimension.value} risk analyzer timed out",
                dimension=analyzer.dimension.value,
                timeout_ms=timeout_s * 1000.0,
            )
            self.logger.warning(
                "risk_analyzer_timeout",
                error_type=type(error).__name__,
                dimension=analyzer.dimension.value,
                timeout_ms=error.timeout_ms,
                fallback_strategy=error.fallback_strategy,
            )
            return None
        except Exception as e:
            self.logger.warning(
                "risk_analyzer_failed",
                error_type=type(e).__name__,
                error=str(e),
                dimension=analyzer.dimension.value,
                fallback_strategy="exclude_or_reuse_cached",
            )
            failed.append(analyzer.dimension)
            return None

    def _checked(self, analyzer: RiskAnalyzer, value, failed: list[RiskDimension]) -> Optional[float]:
        """A dimension score clamped into [0, 1], or None if the analyzer gave no usable number."""
        if value is None:
            return None
        value = float(value)
        if not math.isfinite(value):
            self._reject(analyzer, value, failed)
            return None
        return clamp_unit(value)

    def _checked_contributions(
        self,
        analyzer: RiskAnalyzer,
        contributions: Optional[Mapping[str, float]],
        failed: list[RiskDimension],
    ) -> Optional[Mapping[str, float]]:
        if contributions is None:
            return None
        for value in contributions.values():
            if not math.isfinite(value):
                self._reject(analyzer, value, failed)
                return None
        return contributions

    def _reject(self, analyzer: RiskAnalyzer, value: float, failed: list[RiskDimension]) -> None:
        self.logger.warning(
            "risk_analyzer_invalid_result",
            dimension=analyzer.dimension.value,
            value=repr(value),
            fallback_strategy="exclude_or_reuse_cached",
        )
        failed.append(analyzer.dimension)

    @staticmethod
    def _fallback(previous: Optional[_PortfolioRiskState], dim: RiskDimension,
                  config: RiskToleranceConfig) -> float:
        if previous is not None and dim in previous.scores:
            return previous.scores[dim]
        return config.risk_engine.fallback_severity

    def _score(
        self,
        snapshot: PortfolioSnapshot,
        market: MarketContext,
        config: RiskToleranceConfig,
        state: _PortfolioRiskState,
        stale: list[RiskDimension],
        failed: list[RiskDimension],
        tracked: tuple[str, ...],
        mode: str,
    ) -> RiskScore:
        dimension_scores = {dim: state.scores[dim] for dim in RiskDimension}
        overall = weighted_risk(dimension_scores, config.risk_weights)
        level = classify_risk_level(overall, config.risk_levels)

        book = state.book
        reported = book.top_exposures(config.risk_engine.max_reported_exposures)
        reported_symbols = {e.symbol for e in reported}
        exposures = tuple(self._summary(book, e) for e in reported)
        tracked_exposures = tuple(
            self._summary(book, book.get(symbol))
            for symbol in tracked
            if symbol in book and symbol not in reported_symbols
        )

        stale_dims = tuple(dim for dim in RiskDimension if dim in stale)
        flags = []
        if stale_dims:
            flags.append(ScoreFlag.STALE_DIMENSION)
        if failed:
            flags.append(ScoreFlag.ANALYZER_FAILURE)

        score = RiskScore(
            portfolio_id=snapshot.portfolio_id,
            snapshot_version=snapshot.version,
            dimension_scores=dimension_scores,
            overall_score=overall,
            risk_level=level,
            exposures=exposures,
            tracked_exposures=tracked_exposures,
            stale_dimensions=stale_dims,
            assessed_at_ms=max(snapshot.captured_at, market.timestamp),
            status=status_from_flags(flags),
            flags=tuple(flags),
        )
        state.last_score = score

        log_risk_decision(
            self.logger,
            portfolio_id=snapshot.portfolio_id,
            risk_level=level.value,
            overall_score=overall,
            reason=mode,
            context={
                "snapshot_version": snapshot.version,
                "stale_dimensions": [d.value for d in stale_dims],
            },
        )
        return score

    @staticmethod
    def _summary(book: ExposureBook, exposure: SymbolExposure) -> ExposureSummary:
        return ExposureSummary(
            symbol=exposure.symbol,
            weight=book.weight(exposure.symbol),
            price=exposure.price,
            asset_class=exposure.asset_class,
        )

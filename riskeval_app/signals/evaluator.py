"""
Signal evaluator: aggregates per-source dimension scores into one score.

Every (signal, analyzer) call is time-boxed independently and all of them
run concurrently, so the evaluator never waits longer than one dimension
timeout. Late or failing calls are excluded and the overall score is
renormalized over the weight of the dimensions that did answer.
"""

import asyncio
import hashlib
import math
from collections.abc import Iterable, Sequence
from typing import Optional

from ..analyzers.base import SignalAnalyzer, clamp_unit
from ..config.defaults import RecommendationThresholds
from ..config.tolerance import RiskToleranceConfig
from ..errors import AnalyzerTimeoutError, ConfigurationError, QuorumError, ValidationError
from ..logging.config import get_decision_logger
from ..models.market import MarketContext
from ..models.signals import (
    DegradedSignalScore,
    Recommendation,
    SignalDimension,
    SignalScore,
    TradingSignal,
)
from ..models.status import ScoreFlag, status_from_flags

NEUTRAL_SCORE = 0.5

_FLAG_ORDER = list(ScoreFlag)


def classify_recommendation(score: float, thresholds: RecommendationThresholds) -> Recommendation:
    """Map an overall score onto a recommendation tier. Monotonic in score."""
    if score >= thresholds.strong_buy:
        return Recommendation.STRONG_BUY
    if score >= thresholds.buy:
        return Recommendation.BUY
    if score >= thresholds.hold:
        return Recommendation.HOLD
    if score >= thresholds.sell:
        return Recommendation.SELL
    return Recommendation.STRONG_SELL


def select_preferred(scores: Iterable[SignalScore]) -> SignalScore:
    """
    Pick one score among competing scores for the same symbol.

    Highest overall score wins; ties go to the narrower confidence interval,
    then to the most recent sequence number.

    The coordinator evaluates one request per portfolio and never holds two
    scores for a symbol at once. Callers that evaluate the same symbol more
    than once, such as a batch over several request configs or a replay of
    audited scores, use this to choose the score to act on.
    """
    candidates = list(scores)
    if not candidates:
        raise ValueError("select_preferred() requires at least one score")
    symbols = {s.symbol for s in candidates}
    if len(symbols) > 1:
        raise ValueError(f"select_preferred() needs scores for one symbol, got {sorted(symbols)}")
    return max(candidates, key=lambda s: (s.overall_score, -s.interval_width, s.sequence_number))


def _sorted_flags(flags: Iterable[ScoreFlag]) -> tuple[ScoreFlag, ...]:
    return tuple(sorted(set(flags), key=_FLAG_ORDER.index))


def _population_variance(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    mean = math.fsum(values) / len(values)
    return math.fsum((v - mean) ** 2 for v in values) / len(values)


class SignalEvaluator:
    """Scores the latest signal of each source on one symbol."""

    def __init__(self, analyzers: Sequence[SignalAnalyzer]):
        analyzers = tuple(analyzers)
        dimensions = [a.dimension for a in analyzers]
        if not analyzers:
            raise ConfigurationError("SignalEvaluator needs at least one analyzer")
        if len(set(dimensions)) != len(dimensions):
            raise ConfigurationError(
                "Each signal dimension may only have one analyzer",
                context={"dimensions": [d.value for d in dimensions]}
            )

        self.analyzers = analyzers
        self.logger = get_decision_logger(__name__)

    async def evaluate(
        self,
        signals: Sequence[TradingSignal],
        market: MarketContext,
        *,
        snapshot_version: int,
        config: RiskToleranceConfig,
    ) -> SignalScore:
        """
        Evaluate signals into a SignalScore, or a DegradedSignalScore below quorum.

        Raises:
            ValidationError: If no signals are given or they span several symbols.
        """
        latest, superseded = self._latest_per_source(signals)
        symbol = latest[0].symbol
        params = config.signal_evaluation
        timeout_s = params.dimension_timeout_ms / 1000.0

        calls = [(signal, analyzer) for signal in latest for analyzer in self.analyzers]
        outcomes = await asyncio.gather(
            *(self._run_analyzer(signal, analyzer, market, timeout_s) for signal, analyzer in calls)
        )

        flags: set[ScoreFlag] = set()
        if superseded:
            flags.add(ScoreFlag.STALE_SIGNALS_DISCARDED)

        per_source: dict[str, dict[SignalDimension, float]] = {s.source_id: {} for s in latest}
        for (signal, analyzer), (value, flag) in zip(calls, outcomes):
            if flag is not None:
                flags.add(flag)
                continue
            per_source[signal.source_id][analyzer.dimension] = value

        responding = [s for s in latest if per_source[s.source_id]]

        per_dimension: dict[SignalDimension, list[float]] = {}
        for signal in responding:
            for dim, value in per_source[signal.source_id].items():
                per_dimension.setdefault(dim, []).append(value)

        dimension_scores = {
            a.dimension: math.fsum(per_dimension[a.dimension]) / len(per_dimension[a.dimension])
            for a in self.analyzers
            if a.dimension in per_dimension
        }
        if len(dimension_scores) < len(SignalDimension):
            flags.add(ScoreFlag.PARTIAL_DIMENSIONS)

        weights = config.signal_weights.as_mapping()
        mass = math.fsum(weights[dim] for dim in dimension_scores)
        if mass > 0:
            overall = clamp_unit(math.fsum(weights[dim] * score for dim, score in dimension_scores.items()) / mass)
            half_width = self._half_width(responding, per_dimension, weights, mass, config)
            interval = (max(0.0, overall - half_width), min(1.0, overall + half_width))
        else:
            overall = NEUTRAL_SCORE
            interval = (0.0, 1.0)
            flags.add(ScoreFlag.PARTIAL_DIMENSIONS)

        if len(responding) < params.min_quorum:
            flags.add(ScoreFlag.LOW_QUORUM)

        score_kwargs = dict(
            signal_id=self._signal_id(symbol, latest, snapshot_version),
            symbol=symbol,
            sequence_number=max(s.sequence_number for s in latest),
            snapshot_version=snapshot_version,
            dimension_scores=dimension_scores,
            overall_score=overall,
            recommendation=classify_recommendation(overall, config.recommendation),
            confidence_interval=interval,
            responding_sources=tuple(s.source_id for s in responding),
            reference_price=market.price(symbol),
            evaluated_at_ms=max(s.timestamp for s in latest),
            flags=_sorted_flags(flags),
        )

        if ScoreFlag.LOW_QUORUM in flags:
            error = QuorumError(
                f"{len(responding)} of {params.min_quorum} required sources responded for {symbol}",
                responding=len(responding),
                required=params.min_quorum,
            )
            self.logger.warning(
                "signal_score_degraded",
                error_type=type(error).__name__,
                error=str(error),
                symbol=symbol,
                flags=[f.value for f in score_kwargs["flags"]],
            )
            return DegradedSignalScore(**score_kwargs, required_quorum=params.min_quorum)

        score = SignalScore(**score_kwargs, status=status_from_flags(flags))
        self.logger.info(
            "signal_scored",
            signal_id=score.signal_id,
            symbol=symbol,
            overall_score=round(overall, 6),
            recommendation=score.recommendation.value,
            status=score.status.value,
            responding_sources=len(responding),
        )
        return score

    async def _run_analyzer(
        self,
        signal: TradingSignal,
        analyzer: SignalAnalyzer,
        market: MarketContext,
        timeout_s: float,
    ) -> tuple[float, Optional[ScoreFlag]]:
        try:
            value = await asyncio.wait_for(analyzer.analyze(signal, market), timeout=timeout_s)
        except TimeoutError:
            error = AnalyzerTimeoutError(
                f"{analyzer.dimension.value} analyzer timed out",
                dimension=analyzer.dimension.value,
                timeout_ms=timeout_s * 1000.0,
            )
            self.logger.warning(
                "analyzer_timeout",
                error_type=type(error).__name__,
                source_id=signal.source_id,
                dimension=analyzer.dimension.value,
                timeout_ms=error.timeout_ms,
            )
            return math.nan, ScoreFlag.DIMENSION_TIMEOUT
        except Exception as e:
            self.logger.warning(
                "analyzer_failed",
                error_type=type(e).__name__,
                error=str(e),
                source_id=signal.source_id,
                dimension=analyzer.dimension.value,
            )
            return math.nan, ScoreFlag.ANALYZER_FAILURE

        try:
            value = float(value)
        except (TypeError, ValueError):
            value = math.nan
        if math.isnan(value):
            self.logger.warning(
                "analyzer_returned_nan",
                source_id=signal.source_id,
                dimension=analyzer.dimension.value,
            )
            return math.nan, ScoreFlag.ANALYZER_FAILURE

        return clamp_unit(value), None

    def _half_width(
        self,
        responding: Sequence[TradingSignal],
        per_dimension: dict[SignalDimension, list[float]],
        weights: dict[SignalDimension, float],
        mass: float,
        config: RiskToleranceConfig,
    ) -> float:
        """Interval half-width from model uncertainty plus source disagreement."""
        params = config.signal_evaluation
        uncertainty = math.fsum(s.model_uncertainty for s in responding) / len(responding)
        pooled_variance = math.fsum(
            weights[dim] * _population_variance(values) for dim, values in per_dimension.items()
        ) / mass
        half_width = params.uncertainty_scale * uncertainty + params.dispersion_scale * math.sqrt(pooled_variance)
        return min(params.max_half_width, max(0.0, half_width))

    @staticmethod
    def _latest_per_source(
        signals: Sequence[TradingSignal],
    ) -> tuple[list[TradingSignal], list[TradingSignal]]:
        """Keep each source's highest-sequence signal; sources ordered by id."""
        if not signals:
            raise ValidationError("At least one signal is required", field="signals", value=[])

        symbols = {s.symbol for s in signals}
        if len(symbols) > 1:
            raise ValidationError(
                "Signals for one evaluation must share a symbol",
                field="symbol", value=sorted(symbols)
            )

        latest: dict[str, TradingSignal] = {}
        superseded: list[TradingSignal] = []
        for signal in signals:
            current = latest.get(signal.source_id)
            if current is None or signal.sequence_number > current.sequence_number:
                if current is not None:
                    superseded.append(current)
                latest[signal.source_id] = signal
            else:
                superseded.append(signal)

        return [latest[source_id] for source_id in sorted(latest)], superseded

    @staticmethod
    def _signal_id(symbol: str, signals: Sequence[TradingSignal], snapshot_version: int) -> str:
        parts = [symbol, str(snapshot_version)]
        parts.extend(f"{s.source_id}:{s.sequence_number}" for s in signals)
        return hashlib.sha256("|".join(parts).encode()).hexdigest()[:32]

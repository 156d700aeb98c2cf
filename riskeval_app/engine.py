"""
Main evaluation coordinator.

Orchestrates the evaluation pipeline for each portfolio:
Signals + Snapshot → (Signal Score ∥ Risk Score) → Mitigation Plan → Execution → Events

At most one cycle runs per portfolio at a time. A newer request for the same
portfolio supersedes the in-flight one: the older cycle is cancelled and its
result discarded, unless it has already entered its commit phase (execution
and emission), which always runs to completion.
"""

import asyncio
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from .analyzers import default_risk_analyzers, default_signal_analyzers
from .config.defaults import CoordinatorParams
from .config.loader import ConfigLoader
from .config.tolerance import RiskToleranceConfig
from .data.normalizer import (
    normalize_market_context,
    normalize_prediction,
    normalize_snapshot,
    normalize_tolerance,
    parse_json_payload,
)
from .errors import (
    ConcurrentModificationError,
    DeliveryError,
    PlanTransitionError,
    RejectionError,
    ValidationError,
    status_for,
)
from .events.emitter import EventEmitter
from .events.records import (
    EventRecord,
    mitigation_plan_record,
    rejection_record,
    risk_score_record,
    signal_score_record,
)
from .logging.config import get_decision_logger
from .models.market import MarketContext
from .models.mitigation import ExecutionReport, MitigationPlan
from .models.portfolio import PortfolioSnapshot
from .models.risk import RiskScore
from .models.signals import SignalScore, TradingSignal
from .models.status import EvaluationStatus, ScoreFlag, status_from_flags
from .persistence.event_store import EventStore
from .planner.cycle import PlanCycleRunner
from .portfolio.executor import VersionCheckedExecutor
from .portfolio.store import PortfolioStore
from .risk.engine import RiskAssessmentEngine
from .signals.collector import SignalCollector
from .signals.evaluator import SignalEvaluator
from .signals.ordering import SequenceGuard
from .utils.time import elapsed_ms, monotonic_ms, now_ms

logger = structlog.get_logger(__name__)
decision_logger = get_decision_logger(__name__)


@dataclass(frozen=True)
class EvaluationRequest:
    """One evaluation of a portfolio against the latest signals on a symbol."""
    request_id: str
    signals: tuple[TradingSignal, ...]
    snapshot: PortfolioSnapshot
    market: MarketContext
    config: RiskToleranceConfig = field(default_factory=RiskToleranceConfig)
    changed_symbols: Optional[tuple[str, ...]] = None

    @property
    def portfolio_id(self) -> str:
        return self.snapshot.portfolio_id

    @classmethod
    def from_payload(cls, raw: Any, loader: Optional[ConfigLoader] = None) -> "EvaluationRequest":
        """
        Build a request from a raw payload.

        Expected keys: request_id (optional), snapshot, predictions, market and
        an optional tolerance mapping. With a loader, the tolerance mapping is
        layered over the portfolio's configured overrides.

        Raises:
            ValidationError: If any part of the payload is malformed.
        """
        data = parse_json_payload(raw)
        snapshot = normalize_snapshot(data.get("snapshot") or {})
        predictions = data.get("predictions") or []
        if not isinstance(predictions, list):
            raise ValidationError("predictions must be a list", field="predictions")
        tolerance = data.get("tolerance") or {}
        if loader is not None:
            config = loader.tolerance_for(snapshot.portfolio_id, tolerance)
        else:
            config = normalize_tolerance(tolerance)
        changed = data.get("changed_symbols")

        return cls(
            request_id=str(data.get("request_id") or uuid.uuid4().hex),
            signals=tuple(normalize_prediction(p).to_signal() for p in predictions),
            snapshot=snapshot,
            market=normalize_market_context(data.get("market") or {}),
            config=config,
            changed_symbols=tuple(changed) if changed is not None else None,
        )


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of one evaluation request."""
    request_id: str
    portfolio_id: str
    status: EvaluationStatus
    signal_score: Optional[SignalScore] = None
    risk_score: Optional[RiskScore] = None
    plan: Optional[MitigationPlan] = None
    execution: Optional[ExecutionReport] = None
    records: tuple[EventRecord, ...] = ()
    flags: tuple[str, ...] = ()
    error: Optional[str] = None
    superseded: bool = False
    latency_ms: float = 0.0


class EvaluationCoordinator:
    """
    Coordinates signal scoring, risk assessment, planning and emission.

    Analyzer collections, the executor and the emitter are injected; the
    coordinator owns the only mutable cross-request state: per-portfolio
    generations, in-flight cycles and sequence watermarks.
    """

    def __init__(
        self,
        signal_evaluator: SignalEvaluator,
        risk_engine: RiskAssessmentEngine,
        emitter: Optional[EventEmitter] = None,
        *,
        executor: Optional[VersionCheckedExecutor] = None,
        collector: Optional[SignalCollector] = None,
        params: Optional[CoordinatorParams] = None,
        sequence_guard: Optional[SequenceGuard] = None,
    ) -> None:
        self.logger = logger
        self.signal_evaluator = signal_evaluator
        self.risk_engine = risk_engine
        self.emitter = emitter or EventEmitter()
        self.executor = executor
        self.collector = collector
        self.params = params or CoordinatorParams()
        self.sequence_guard = sequence_guard or SequenceGuard()
        self.planner = PlanCycleRunner()

        # Per-portfolio coordination state
        self._generations: dict[str, int] = {}
        self._tasks: dict[str, set[asyncio.Task]] = {}
        self._committing: set[asyncio.Task] = set()
        self._superseded: set[asyncio.Task] = set()
        self._active_plans: dict[str, str] = {}

        # Pipeline state
        self._intake: Optional[asyncio.Queue] = None
        self._emit_queue: Optional[asyncio.Queue] = None
        self._workers: list[asyncio.Task] = []
        self._emit_worker: Optional[asyncio.Task] = None

    @classmethod
    def create(
        cls,
        loader: Optional[ConfigLoader] = None,
        store: Optional[PortfolioStore] = None,
        collector: Optional[SignalCollector] = None,
    ) -> "EvaluationCoordinator":
        """Assemble a coordinator with the default analyzers and configured sinks."""
        loader = loader or ConfigLoader.create()
        params = loader.coordinator_params()
        audit = loader.audit_params()
        emitter = EventEmitter(
            delivery_config=loader.delivery_config(),
            store=EventStore(audit.db_path) if audit.retention_enabled else None,
        )
        executor = None
        if store is not None:
            executor = VersionCheckedExecutor(
                store,
                max_retries=params.cas_max_retries,
                max_version_lag=loader.defaults.planner.max_snapshot_version_lag,
            )
        return cls(
            SignalEvaluator(default_signal_analyzers(loader.defaults.risk_analyzers)),
            RiskAssessmentEngine(default_risk_analyzers()),
            emitter,
            executor=executor,
            collector=collector,
            params=params,
        )

    def active_plan(self, portfolio_id: str) -> Optional[str]:
        """Plan id currently being committed for a portfolio, if any."""
        return self._active_plans.get(portfolio_id)

    def in_flight(self, portfolio_id: str) -> int:
        return sum(1 for t in self._tasks.get(portfolio_id, ()) if not t.done())

    async def collect_request(
        self,
        symbol: str,
        snapshot: PortfolioSnapshot,
        market: MarketContext,
        config: Optional[RiskToleranceConfig] = None,
        request_id: Optional[str] = None,
    ) -> EvaluationRequest:
        """Gather the latest predictions for a symbol into a request."""
        if self.collector is None:
            raise ValidationError("No signal collector configured", field="collector")
        collected = await self.collector.collect(symbol, market)
        return EvaluationRequest(
            request_id=request_id or uuid.uuid4().hex,
            signals=collected.signals,
            snapshot=snapshot,
            market=market,
            config=config or RiskToleranceConfig(),
        )

    async def evaluate(self, request: EvaluationRequest) -> EvaluationResult:
        """
        Evaluate a request, superseding any in-flight request for the portfolio.

        Returns a superseded result if a newer request for the same portfolio
        arrives before this one reaches its commit phase.
        """
        portfolio_id = request.portfolio_id
        generation = self._generations.get(portfolio_id, 0) + 1
        self._generations[portfolio_id] = generation

        pending = [t for t in self._tasks.get(portfolio_id, ()) if not t.done()]
        for task in pending:
            if task not in self._committing and task not in self._superseded:
                self._superseded.add(task)
                task.cancel()
        if pending:
            self.logger.info(
                "evaluation_superseding",
                portfolio_id=portfolio_id,
                request_id=request.request_id,
                pending=len(pending),
            )

        task = asyncio.create_task(self._run(request, generation, pending))
        tasks = self._tasks.setdefault(portfolio_id, set())
        tasks.add(task)
        task.add_done_callback(lambda t: self._forget_task(portfolio_id, t))
        try:
            return await task
        except asyncio.CancelledError:
            # Superseded before the cycle got to run at all
            if asyncio.current_task().cancelling() or not task.cancelled():
                raise
            return self._superseded_result(request, monotonic_ms())

    def _forget_task(self, portfolio_id: str, task: asyncio.Task) -> None:
        self._tasks.get(portfolio_id, set()).discard(task)
        self._committing.discard(task)
        self._superseded.discard(task)

    def _is_current(self, request: EvaluationRequest, generation: int) -> bool:
        return self._generations.get(request.portfolio_id) == generation

    async def _run(
        self,
        request: EvaluationRequest,
        generation: int,
        pending: Sequence[asyncio.Task],
    ) -> EvaluationResult:
        started = monotonic_ms()
        try:
            if pending:
                # Older cycles unwind (or finish committing) before this one starts
                await asyncio.wait(pending)
            return await self._run_cycle(request, generation, started)

        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task in self._superseded:
                task.uncancel()
                if task.cancelling() == 0:
                    return self._superseded_result(request, started)
            raise

        except RejectionError as e:
            return await self._reject(request, generation, e, started)

    async def _run_cycle(
        self,
        request: EvaluationRequest,
        generation: int,
        started: float,
    ) -> EvaluationResult:
        portfolio_id = request.portfolio_id
        config = request.config

        accepted, discarded = self.sequence_guard.filter(portfolio_id, request.signals)
        signal_score, risk_score = await self._score(request, accepted)

        cycle = self.planner.start(portfolio_id, cycle_id=request.request_id)
        cycle = self.planner.mitigate(cycle, signal_score, risk_score, config)
        plan = cycle.plan

        if not self._is_current(request, generation):
            return self._superseded_result(request, started)

        # Commit phase: execution and emission are never cancelled by supersession
        self._committing.add(asyncio.current_task())
        if portfolio_id in self._active_plans:
            raise PlanTransitionError(
                f"Portfolio {portfolio_id} already has an active plan",
                current_state=cycle.state.value,
                context={"active_plan": self._active_plans[portfolio_id], "plan_id": plan.plan_id},
            )
        self._active_plans[portfolio_id] = plan.plan_id
        try:
            execution = None
            if self.executor is not None and self.planner.needs_execution(cycle):
                cycle = self.planner.begin_execution(cycle)
                execution = await asyncio.shield(self._execute(plan))
            cycle = self.planner.audit(cycle, execution)

            return await self._commit(
                request, signal_score, risk_score, plan, execution, started,
                discarded_signals=bool(discarded),
            )
        finally:
            self._active_plans.pop(portfolio_id, None)

    async def _score(
        self,
        request: EvaluationRequest,
        signals: Sequence[TradingSignal],
    ) -> tuple[SignalScore, RiskScore]:
        """Run signal evaluation and risk assessment concurrently."""
        signal_task = asyncio.create_task(self.signal_evaluator.evaluate(
            signals,
            request.market,
            snapshot_version=request.snapshot.version,
            config=request.config,
        ))
        risk_task = asyncio.create_task(self.risk_engine.assess(
            request.snapshot,
            request.market,
            config=request.config,
            changed_symbols=request.changed_symbols,
            tracked_symbols=[s.symbol for s in signals],
        ))
        try:
            signal_score, risk_score = await asyncio.gather(signal_task, risk_task)
        except BaseException:
            for task in (signal_task, risk_task):
                task.cancel()
            await asyncio.gather(signal_task, risk_task, return_exceptions=True)
            raise
        return signal_score, risk_score

    async def _execute(self, plan: MitigationPlan) -> ExecutionReport:
        try:
            return await self.executor.execute(plan)
        except ConcurrentModificationError as e:
            self.logger.warning(
                "plan_execution_failed",
                plan_id=plan.plan_id,
                portfolio_id=plan.portfolio_id,
                error_type=type(e).__name__,
                error=str(e),
                context=e.context,
            )
            return ExecutionReport(
                plan_id=plan.plan_id,
                portfolio_id=plan.portfolio_id,
                applied=False,
                attempts=e.retry_count,
                expected_version=e.expected_version if e.expected_version is not None else plan.snapshot_version,
                committed_version=None,
                error=str(e),
            )

    async def _commit(
        self,
        request: EvaluationRequest,
        signal_score: SignalScore,
        risk_score: RiskScore,
        plan: MitigationPlan,
        execution: Optional[ExecutionReport],
        started: float,
        discarded_signals: bool = False,
    ) -> EvaluationResult:
        """Emit the cycle's records, then advance the sequence watermark."""
        flags = {*signal_score.flags, *risk_score.flags}
        if discarded_signals:
            flags.add(ScoreFlag.STALE_SIGNALS_DISCARDED)
        if execution is not None and not execution.applied:
            flags.add(ScoreFlag.EXECUTION_FAILED)

        latency = elapsed_ms(started)
        if latency > self.params.latency_budget_ms:
            flags.add(ScoreFlag.LATENCY_BUDGET_EXCEEDED)
            self.logger.warning(
                "latency_budget_exceeded",
                portfolio_id=request.portfolio_id,
                request_id=request.request_id,
                latency_ms=round(latency, 3),
                budget_ms=self.params.latency_budget_ms,
            )

        plan_flags = tuple(f.value for f in ScoreFlag if f in flags)
        plan_status = status_from_flags(flags)
        emitted_at = now_ms()
        records = (
            signal_score_record(signal_score, request.portfolio_id, request.request_id, emitted_at),
            risk_score_record(risk_score, request.request_id, emitted_at),
            mitigation_plan_record(plan, request.request_id, emitted_at, plan_status, plan_flags, execution),
        )

        error = None
        try:
            await self._emit(records)
        except DeliveryError as e:
            error = str(e)
            self.logger.error(
                "event_delivery_failed",
                portfolio_id=request.portfolio_id,
                request_id=request.request_id,
                error_type=type(e).__name__,
                error=error,
                context=e.context,
            )

        self.sequence_guard.commit(request.portfolio_id, signal_score.symbol, signal_score.sequence_number)

        decision_logger.info(
            "evaluation_completed",
            portfolio_id=request.portfolio_id,
            request_id=request.request_id,
            plan_id=plan.plan_id,
            recommendation=signal_score.recommendation.value,
            risk_level=risk_score.risk_level.value,
            actions=len(plan.actions),
            status=plan_status.value,
            latency_ms=round(elapsed_ms(started), 3),
        )

        return EvaluationResult(
            request_id=request.request_id,
            portfolio_id=request.portfolio_id,
            status=plan_status,
            signal_score=signal_score,
            risk_score=risk_score,
            plan=plan,
            execution=execution,
            records=records,
            flags=plan_flags,
            error=error,
            latency_ms=elapsed_ms(started),
        )

    async def _reject(
        self,
        request: EvaluationRequest,
        generation: int,
        error: RejectionError,
        started: float,
    ) -> EvaluationResult:
        if not self._is_current(request, generation):
            return self._superseded_result(request, started)

        self._committing.add(asyncio.current_task())
        status = status_for(error)
        self.logger.warning(
            "evaluation_rejected",
            portfolio_id=request.portfolio_id,
            request_id=request.request_id,
            error_type=type(error).__name__,
            error=str(error),
            context=error.context,
        )

        record = rejection_record(request.portfolio_id, request.request_id, now_ms(), error, status)
        delivery_error = None
        try:
            await self._emit((record,))
        except DeliveryError as e:
            delivery_error = str(e)
            self.logger.error("event_delivery_failed", request_id=request.request_id, error=delivery_error)

        return EvaluationResult(
            request_id=request.request_id,
            portfolio_id=request.portfolio_id,
            status=status,
            records=(record,),
            error=delivery_error or str(error),
            latency_ms=elapsed_ms(started),
        )

    def _superseded_result(self, request: EvaluationRequest, started: float) -> EvaluationResult:
        self.logger.warning(
            "evaluation_superseded",
            portfolio_id=request.portfolio_id,
            request_id=request.request_id,
            generation=self._generations.get(request.portfolio_id),
        )
        return EvaluationResult(
            request_id=request.request_id,
            portfolio_id=request.portfolio_id,
            status=EvaluationStatus.REJECTED,
            error="superseded by a newer request",
            superseded=True,
            latency_ms=elapsed_ms(started),
        )

    async def _emit(self, records: Sequence[EventRecord]) -> None:
        """Emit through the pipeline's emit stage when running, directly otherwise."""
        if self._emit_queue is None:
            await self.emitter.emit(records)
            return
        done = asyncio.get_running_loop().create_future()
        await self._emit_queue.put((tuple(records), done))
        await done

    # Pipeline

    @property
    def running(self) -> bool:
        return self._intake is not None

    async def start(self) -> None:
        """Start the worker pool and the emit stage."""
        if self.running:
            return
        self._intake = asyncio.Queue(maxsize=self.params.intake_queue_size)
        self._emit_queue = asyncio.Queue(maxsize=self.params.emit_queue_size)
        self._emit_worker = asyncio.create_task(self._emit_loop(), name="riskeval-emit")
        self._workers = [
            asyncio.create_task(self._worker_loop(i), name=f"riskeval-worker-{i}")
            for i in range(self.params.workers)
        ]
        self.logger.info(
            "pipeline_started",
            workers=self.params.workers,
            intake_queue_size=self.params.intake_queue_size,
            emit_queue_size=self.params.emit_queue_size,
        )

    async def submit(self, request: EvaluationRequest) -> "asyncio.Future[EvaluationResult]":
        """
        Queue a request. Waits while the intake queue is full.

        Returns:
            A future resolved with the request's result.
        """
        if self._intake is None:
            raise ValidationError("Pipeline is not running", field="pipeline")
        future = asyncio.get_running_loop().create_future()
        await self._intake.put((request, future))
        return future

    async def stop(self, drain: bool = True) -> None:
        """Stop the pipeline, optionally finishing queued requests first."""
        if self._intake is None:
            return
        if drain:
            await self._intake.join()
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)

        if drain:
            await self._emit_queue.join()
        self._emit_worker.cancel()
        await asyncio.gather(self._emit_worker, return_exceptions=True)

        for queue in (self._intake, self._emit_queue):
            while not queue.empty():
                _, future = queue.get_nowait()
                if not future.done():
                    future.cancel()

        self._intake = None
        self._emit_queue = None
        self._workers = []
        self._emit_worker = None
        self.logger.info("pipeline_stopped", drained=drain)

    async def _worker_loop(self, index: int) -> None:
        while True:
            request, future = await self._intake.get()
            try:
                if future.cancelled():
                    continue
                result = await self.evaluate(request)
                if not future.done():
                    future.set_result(result)
            except asyncio.CancelledError:
                if not future.done():
                    future.cancel()
                raise
            except Exception as e:
                self.logger.error(
                    "evaluation_failed",
                    worker=index,
                    portfolio_id=request.portfolio_id,
                    request_id=request.request_id,
                    error_type=type(e).__name__,
                    error=str(e),
                    exc_info=True,
                )
                if not future.done():
                    future.set_exception(e)
            finally:
                self._intake.task_done()

    async def _emit_loop(self) -> None:
        while True:
            records, done = await self._emit_queue.get()
            try:
                await self.emitter.emit(records)
                if not done.done():
                    done.set_result(None)
            except asyncio.CancelledError:
                if not done.done():
                    done.cancel()
                raise
            except Exception as e:
                if not done.done():
                    done.set_exception(e)
            finally:
                self._emit_queue.task_done()

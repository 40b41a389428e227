"""Coordinate-ascent line search over a discrete parameter space."""

from __future__ import annotations

import logging
import math
from concurrent.futures import Future, ThreadPoolExecutor, as_completed, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable

from ..config import LineSearchConfig
from ..errors import EvaluationError
from .parameter_space import ParameterSpace
from .results_store import EvaluationLog, EvaluationResult, ResultCache

if TYPE_CHECKING:  # pragma: no cover
    from ..evaluation.evaluator import Evaluator

logger = logging.getLogger(__name__)

Callback = Callable[[EvaluationResult], None]


class SearchStatus(str, Enum):
    SWEEPING = "sweeping"
    SWEEP_COMPLETE = "sweep_complete"
    FINISHED = "finished"


@dataclass
class SearchState:
    """Mutable progress of one search run."""

    best_score: float
    best_per_round: list[float]
    round_number: int = 1
    status: SearchStatus = SearchStatus.SWEEPING
    evaluations: int = 0
    cache_hits: int = 0
    failures: int = 0
    skipped_invalid: int = 0
    stop_reason: str | None = None

    @classmethod
    def initial(cls, sentinel: float) -> "SearchState":
        return cls(best_score=sentinel, best_per_round=[sentinel])


@dataclass
class SearchResult:
    """Final parameters and bookkeeping of a finished search."""

    parameters: dict[str, Any]
    best_score: float
    best_per_round: list[float]
    rounds: int
    evaluations: int
    cache_hits: int
    failures: int
    skipped_invalid: int
    stop_reason: str


@dataclass
class _Candidate:
    value: Any
    vector: dict[str, Any]
    key: str


@dataclass
class LineSearchEngine:
    """
    Optimise one parameter at a time against the best setting of all others.

    Every sweep visits the parameters in declaration order. For each one the
    remaining parameters are held fixed, every valid candidate is scored
    (from the cache when possible) and the parameter is then set back to the
    best vector seen so far. Sweeps repeat until the round cap is reached or
    a round improves the best score by less than ``min_improvement``.

    Callbacks run once per recorded result, cached or failed, with the
    swept parameter set to the candidate being recorded. With
    ``max_workers > 1`` the evaluator runs before results are folded in, so
    it must rely on the vector it is handed rather than the space.
    """

    parameter_space: ParameterSpace
    evaluator: "Evaluator"
    config: LineSearchConfig = field(default_factory=LineSearchConfig)
    results_store: EvaluationLog = field(default_factory=EvaluationLog)
    callbacks: Iterable[Callback] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        for lower, upper in self.config.constraints:
            if self.parameter_space.add_ordering_constraint(lower, upper):
                logger.debug("constraint registered: %s <= %s", lower, upper)
        self._delegated: list[str] = (
            self.parameter_space.delegated(self.config.externally_optimized)
            if self.config.external_optimization
            else []
        )
        self.cache = ResultCache(enabled=self.config.cache_enabled)
        self.state = SearchState.initial(self.config.initial_best_score)

    def run(self) -> SearchResult:
        """Search from the defaults until a stopping condition holds."""
        self.parameter_space.reset()
        self.cache = ResultCache(enabled=self.config.cache_enabled)
        self.state = SearchState.initial(self.config.initial_best_score)
        logger.info("parameters to optimize: %s", ", ".join(self.parameter_space.names()))
        if self._delegated:
            logger.info("delegated to the oracle's optimizer: %s", ", ".join(self._delegated))

        while self.state.status is not SearchStatus.FINISHED:
            self.sweep()
            self._finish_round()

        logger.info(
            "top values from rounds: %s",
            "; ".join(_format_score(score) for score in self.state.best_per_round),
        )
        return SearchResult(
            parameters=self.parameter_space.vector(),
            best_score=self.state.best_score,
            best_per_round=list(self.state.best_per_round),
            rounds=self.state.round_number,
            evaluations=self.state.evaluations,
            cache_hits=self.state.cache_hits,
            failures=self.state.failures,
            skipped_invalid=self.state.skipped_invalid,
            stop_reason=self.state.stop_reason or "",
        )

    def sweep(self) -> SearchState:
        """Optimise every sweepable parameter once."""
        self.state.status = SearchStatus.SWEEPING
        for name in self.parameter_space:
            if self._should_skip(name):
                continue
            self.optimize_parameter(name)
        self.state.status = SearchStatus.SWEEP_COMPLETE
        return self.state

    def optimize_parameter(self, name: str) -> None:
        """Score every valid candidate of ``name`` and keep the best vector."""
        logger.info(
            "*** optimizing parameter %s, round: %d, current best: %s",
            name,
            self.state.round_number,
            _format_score(self.state.best_score),
        )
        candidates = self._candidates(name)
        if self.config.max_workers > 1 and len(candidates) > 1:
            self._evaluate_parallel(name, candidates)
        else:
            for candidate in candidates:
                self.parameter_space.set_current(name, candidate.value)
                self._consider(self._evaluate(name, candidate))
        self.parameter_space.restore_best()

    # Sweep helpers -----------------------------------------------------

    def _should_skip(self, name: str) -> bool:
        if not self.parameter_space.has_multiple_candidates(name):
            logger.debug("skipping %s: single candidate", name)
            return True
        if name in self._delegated:
            logger.debug("skipping %s: optimised by the oracle", name)
            return True
        return False

    def _candidates(self, name: str) -> list[_Candidate]:
        space = self.parameter_space
        candidates: list[_Candidate] = []
        for value in space.definition(name).candidates():
            space.set_current(name, value)
            vector = space.vector()
            if not space.is_valid(vector):
                self.state.skipped_invalid += 1
                logger.debug("skipping invalid combination %s", space.cache_key(vector))
                continue
            candidates.append(_Candidate(value=value, vector=vector, key=space.cache_key(vector)))
        return candidates

    def _evaluate(self, name: str, candidate: _Candidate) -> EvaluationResult:
        cached = self.cache.get(candidate.key)
        if cached is not None:
            logger.info("cached value found: %s", candidate.key)
            result = EvaluationResult(parameters=dict(candidate.vector), score=cached, cached=True)
        else:
            result = self._score(candidate)
        return self._record(name, candidate, result)

    def _evaluate_parallel(self, name: str, candidates: list[_Candidate]) -> None:
        jobs: dict[int, _Candidate] = {}
        seen: set[str] = set()
        for index, candidate in enumerate(candidates):
            if self.cache.enabled and (candidate.key in seen or candidate.key in self.cache):
                continue
            seen.add(candidate.key)
            jobs[index] = candidate

        fresh: dict[int, EvaluationResult] = {}
        pool = ThreadPoolExecutor(max_workers=self.config.max_workers)
        futures: dict[Future, int] = {}
        try:
            for index, candidate in jobs.items():
                futures[pool.submit(self._score, candidate)] = index
            for future in as_completed(futures):
                fresh[futures[future]] = future.result()
        except BaseException:
            self._abandon(pool, futures)
            raise
        pool.shutdown(wait=True)

        # Fold in candidate order so ties resolve exactly as in a sequential sweep.
        for index, candidate in enumerate(candidates):
            self.parameter_space.set_current(name, candidate.value)
            if index in fresh:
                self._consider(self._record(name, candidate, fresh[index]))
            else:
                self._consider(self._evaluate(name, candidate))

    def _abandon(self, pool: ThreadPoolExecutor, futures: Iterable[Future]) -> None:
        """
        Stop a batch without waiting for evaluations to finish on their own.

        Queued candidates are dropped. An evaluator exposing ``cancel()`` is
        told to stop, and running evaluations then get ``cancel_timeout``
        seconds to release their workspaces.
        """
        pool.shutdown(wait=False, cancel_futures=True)
        cancel = getattr(self.evaluator, "cancel", None)
        if cancel is None:
            return
        cancel()
        running = [future for future in futures if not future.done()]
        if running:
            _, still_running = wait(running, timeout=self.config.cancel_timeout)
            if still_running:
                logger.warning("%d evaluation(s) still running after cancellation", len(still_running))

    def _score(self, candidate: _Candidate) -> EvaluationResult:
        """Call the evaluator; per-candidate failures become failed results."""
        submitted = self.parameter_space.materialize(candidate.vector, delegated=self._delegated)
        try:
            result = self.evaluator.evaluate(submitted)
        except EvaluationError as exc:
            return EvaluationResult.failure(candidate.vector, str(exc))
        if result.score is None or not math.isfinite(result.score):
            return EvaluationResult.failure(candidate.vector, f"score out of range: {result.score!r}")
        return result

    def _record(self, name: str, candidate: _Candidate, result: EvaluationResult) -> EvaluationResult:
        result.metadata.update(
            {"round": self.state.round_number, "parameter": name, "value": candidate.value, "key": candidate.key}
        )
        if result.cached:
            self.state.cache_hits += 1
        elif result.succeeded:
            self.state.evaluations += 1
            # Keyed by the requested vector, not the oracle-rewritten one.
            self.cache.put(candidate.key, result.score)
        else:
            self.state.failures += 1
            logger.warning("excluding %s=%s: %s", name, candidate.value, result.error)

        self.results_store.append(result)
        for callback in self.callbacks:
            callback(result)
        return result

    def _consider(self, result: EvaluationResult) -> None:
        if not result.succeeded or not result.score > self.state.best_score:
            return
        self.state.best_score = result.score
        self.parameter_space.record_best(result.parameters)
        logger.info("new best score %s with %s", _format_score(result.score), result.metadata.get("key"))

    # Stopping ----------------------------------------------------------

    def _finish_round(self) -> None:
        state = self.state
        state.best_per_round.append(state.best_score)
        improvement = state.best_per_round[-1] - state.best_per_round[-2]
        logger.info(
            "round %d complete: best %s (improvement %s), evaluations %d, cache hits %d",
            state.round_number,
            _format_score(state.best_score),
            _format_score(improvement),
            state.evaluations,
            state.cache_hits,
        )

        if state.round_number >= self.config.max_rounds:
            state.stop_reason = f"maximum of {self.config.max_rounds} rounds reached"
        elif not improvement >= self.config.min_improvement:
            state.stop_reason = f"improvement to last round < {self.config.min_improvement}"

        if state.stop_reason is not None:
            logger.info("%s, stopping", state.stop_reason)
            state.status = SearchStatus.FINISHED
        else:
            state.round_number += 1


def _format_score(value: float) -> str:
    if math.isfinite(value):
        return f"{value:.4f}"
    return str(value)



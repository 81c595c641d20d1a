"""Bounded exhaustive search over a nested parameter grid."""

from __future__ import annotations

import copy
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Union

from core.callbacks import invoke, resolve
from core.errors import NoValidConfigurationError, SearchLimitError
from search.space import SearchSpaceDescriptor, compute_search_space, iter_configurations, parse_space


LOGGER = logging.getLogger(__name__)

PROGRESS_INTERVAL = 0.1

Config = dict[str, Any]
EvaluateFunction = Callable[[Config], Union[float, Awaitable[float]]]


@dataclass(frozen=True, slots=True)
class TerminationCondition:
    """Early-stop rules checked before each candidate.

    ``min_score`` ends the run normally once the best score reaches it.
    ``max_time`` (seconds) and ``max_evaluations`` abort the run with
    ``SearchLimitError``.
    """

    min_score: float | None = None
    max_time: float | None = None
    max_evaluations: int | None = None


@dataclass
class SearchStats:
    """Counters for one brute-force run; times are ``time.time()`` seconds."""

    total_configs: int
    evaluated_configs: int = 0
    valid_configs: int = 0
    invalid_configs: int = 0
    start_time: float = 0.0
    end_time: float = 0.0

    @property
    def processed(self) -> int:
        return self.evaluated_configs + self.invalid_configs


@dataclass(frozen=True, slots=True)
class SearchProgress:
    progress: float
    current_step: int
    total_steps: int
    evaluated_configs: int
    valid_configs: int
    invalid_configs: int
    elapsed_time: float
    estimated_time_remaining: float
    best_score: float


@dataclass(frozen=True, slots=True)
class EvaluationEvent:
    current_config: Config
    current_score: float
    best_config: Config
    best_score: float
    progress: float
    total_configs: int
    current_step: int


@dataclass
class BruteForceCallbacks:
    """Optional hooks; each may return an awaitable, which is awaited."""

    on_evaluation: Callable[[EvaluationEvent], Any] | None = None
    on_new_best: Callable[[Config, float], Any] | None = None
    on_complete: Callable[[Config, float, SearchStats], Any] | None = None
    on_error: Callable[[Exception, Config], Any] | None = None
    on_progress: Callable[[SearchProgress], Any] | None = None


@dataclass
class BruteForceConfig:
    parameter_space: Mapping[str, Any]
    evaluate_config: EvaluateFunction
    base_config: Mapping[str, Any] | None = None
    validate_config: Callable[[Config], Any] | None = None
    termination_condition: TerminationCondition | None = None
    callbacks: BruteForceCallbacks = field(default_factory=BruteForceCallbacks)

    def __post_init__(self) -> None:
        # Reject malformed spaces at construction, before any search starts.
        self.parameter_space = parse_space(self.parameter_space)


@dataclass
class BruteForceResult:
    best_config: Config
    best_score: float
    stats: SearchStats
    search_space: SearchSpaceDescriptor


def estimate_time_remaining(elapsed: float, progress: float) -> float:
    if progress <= 0:
        return math.inf
    return max(0.0, elapsed / progress - elapsed)


class BruteForceSearch:
    """Evaluate every grid point of a parameter space.

    Per candidate, in order:
        1. Termination checks: ``max_time`` / ``max_evaluations`` raise
           ``SearchLimitError``; a reached ``min_score`` stops the loop.
        2. ``validate_config``: rejected candidates count as invalid.
        3. Evaluation: success updates counters and the best; an exception
           counts the candidate invalid, fires ``on_error`` and the run goes on.
    Progress is reported at most every ``PROGRESS_INTERVAL`` seconds plus one
    final event once the run succeeds.
    """

    def __init__(self, config: BruteForceConfig, clock: Callable[[], float] = time.time) -> None:
        self.config = config
        self.clock = clock
        self._last_progress = -math.inf

    async def run(self) -> BruteForceResult:
        config = self.config
        callbacks = config.callbacks
        self._last_progress = -math.inf
        search_space = compute_search_space(config.parameter_space)
        stats = SearchStats(total_configs=search_space.size, start_time=self.clock())
        LOGGER.info(
            "Brute-force search over %d configurations in %d dimensions",
            search_space.size,
            search_space.dimensions,
        )

        best_config: Config | None = None
        best_score = -math.inf
        try:
            for candidate in iter_configurations(config.parameter_space, config.base_config):
                if self._should_stop(stats, best_config is not None, best_score):
                    break

                if config.validate_config is not None and not await resolve(config.validate_config(candidate)):
                    stats.invalid_configs += 1
                    await self._maybe_progress(stats, best_score)
                    continue

                try:
                    score = float(await resolve(config.evaluate_config(candidate)))
                except Exception as exc:
                    stats.invalid_configs += 1
                    LOGGER.debug("Evaluation failed for %s: %s", candidate, exc)
                    await invoke(callbacks.on_error, exc, candidate)
                    continue

                stats.evaluated_configs += 1
                stats.valid_configs += 1
                if score > best_score:
                    best_score = score
                    best_config = copy.deepcopy(candidate)
                    await invoke(callbacks.on_new_best, candidate, score)

                await invoke(
                    callbacks.on_evaluation,
                    EvaluationEvent(
                        current_config=candidate,
                        current_score=score,
                        best_config=best_config,
                        best_score=best_score,
                        progress=stats.evaluated_configs / stats.total_configs,
                        total_configs=stats.total_configs,
                        current_step=stats.evaluated_configs,
                    ),
                )
                await self._maybe_progress(stats, best_score)
        finally:
            stats.end_time = self.clock()

        if best_config is None:
            raise NoValidConfigurationError(
                f"No valid configuration found ({stats.invalid_configs} of {stats.total_configs} rejected)",
                stats=stats,
            )

        await invoke(callbacks.on_progress, self._progress(stats, best_score, final=True))
        await invoke(callbacks.on_complete, best_config, best_score, stats)
        LOGGER.info(
            "Brute-force search finished: best_score=%.6g evaluated=%d invalid=%d",
            best_score,
            stats.evaluated_configs,
            stats.invalid_configs,
        )
        return BruteForceResult(
            best_config=best_config,
            best_score=best_score,
            stats=stats,
            search_space=search_space,
        )

    def _should_stop(self, stats: SearchStats, has_best: bool, best_score: float) -> bool:
        condition = self.config.termination_condition
        if condition is None:
            return False
        if condition.max_time is not None and self.clock() - stats.start_time > condition.max_time:
            raise SearchLimitError(f"Search timed out ({condition.max_time}s)", limit="max_time", stats=stats)
        if condition.max_evaluations is not None and stats.evaluated_configs >= condition.max_evaluations:
            raise SearchLimitError(
                f"Reached maximum evaluations ({condition.max_evaluations})",
                limit="max_evaluations",
                stats=stats,
            )
        return condition.min_score is not None and has_best and best_score >= condition.min_score

    def _progress(self, stats: SearchStats, best_score: float, final: bool = False) -> SearchProgress:
        now = stats.end_time if final else self.clock()
        elapsed = now - stats.start_time
        progress = 1.0 if final else stats.processed / stats.total_configs
        return SearchProgress(
            progress=progress,
            current_step=stats.processed,
            total_steps=stats.total_configs,
            evaluated_configs=stats.evaluated_configs,
            valid_configs=stats.valid_configs,
            invalid_configs=stats.invalid_configs,
            elapsed_time=elapsed,
            estimated_time_remaining=0.0 if final else estimate_time_remaining(elapsed, progress),
            best_score=best_score,
        )

    async def _maybe_progress(self, stats: SearchStats, best_score: float) -> None:
        if self.config.callbacks.on_progress is None:
            return
        now = self.clock()
        if now - self._last_progress < PROGRESS_INTERVAL:
            return
        self._last_progress = now
        await invoke(self.config.callbacks.on_progress, self._progress(stats, best_score))


async def brute_force_search(config: BruteForceConfig) -> BruteForceResult:
    """Run ``config`` to completion and return its result."""
    return await BruteForceSearch(config).run()

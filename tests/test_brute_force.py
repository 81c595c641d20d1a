"""Tests for the bounded brute-force search."""

from __future__ import annotations

import asyncio
import itertools
import math
from typing import Any

import pytest

from core.errors import NoValidConfigurationError, SearchLimitError, SearchSpaceError
from search.brute_force import (
    BruteForceCallbacks,
    BruteForceConfig,
    BruteForceSearch,
    TerminationCondition,
    brute_force_search,
    estimate_time_remaining,
)


SPHERE_SPACE = {"x": {"min": -5.0, "max": 5.0, "step": 0.5}, "y": {"min": -5.0, "max": 5.0, "step": 0.5}}


def _sphere(config: dict[str, Any]) -> float:
    return -(config["x"] ** 2 + config["y"] ** 2)


def test_sphere_best_is_origin() -> None:
    result = asyncio.run(brute_force_search(BruteForceConfig(SPHERE_SPACE, _sphere)))

    assert result.search_space.size == 441
    assert math.hypot(result.best_config["x"], result.best_config["y"]) <= 0.5
    assert result.best_score > -0.5
    assert result.stats.evaluated_configs == 441
    assert result.stats.invalid_configs == 0
    assert result.stats.end_time >= result.stats.start_time


def test_throwing_candidate_counts_invalid_and_search_continues() -> None:
    errors: list[tuple[Exception, dict]] = []

    def evaluate(config: dict[str, Any]) -> float:
        if config["x"] == 0 and config["y"] == 0:
            raise RuntimeError("boom")
        return _sphere(config)

    config = BruteForceConfig(
        SPHERE_SPACE,
        evaluate,
        callbacks=BruteForceCallbacks(on_error=lambda exc, candidate: errors.append((exc, candidate))),
    )
    result = asyncio.run(brute_force_search(config))

    assert result.stats.invalid_configs == 1
    assert result.stats.evaluated_configs == 440
    assert len(errors) == 1
    assert str(errors[0][0]) == "boom"
    assert errors[0][1] == {"x": 0.0, "y": 0.0}
    assert result.best_score == pytest.approx(-0.25)
    assert math.hypot(result.best_config["x"], result.best_config["y"]) <= 0.5


def test_oversized_space_fails_before_any_evaluation() -> None:
    calls = {"count": 0}

    def evaluate(config: dict[str, Any]) -> float:
        calls["count"] += 1
        return 0.0

    space = {name: {"min": 0, "max": 99, "step": 1} for name in ("a", "b", "c", "d")}

    with pytest.raises(SearchSpaceError, match="too large"):
        asyncio.run(brute_force_search(BruteForceConfig(space, evaluate)))
    assert calls["count"] == 0


def test_malformed_space_is_rejected_at_construction() -> None:
    with pytest.raises(SearchSpaceError, match="Invalid parameter range"):
        BruteForceConfig({"x": {"min": 0, "max": 1, "step": 0}}, _sphere)


def test_min_score_stops_early_without_error() -> None:
    config = BruteForceConfig(SPHERE_SPACE, _sphere, termination_condition=TerminationCondition(min_score=-1.0))

    result = asyncio.run(brute_force_search(config))

    assert result.best_score == -1.0
    assert result.best_config == {"x": -1.0, "y": 0.0}
    assert result.stats.evaluated_configs == 8 * 21 + 11


def test_max_evaluations_raises_limit_error() -> None:
    config = BruteForceConfig(SPHERE_SPACE, _sphere, termination_condition=TerminationCondition(max_evaluations=5))

    with pytest.raises(SearchLimitError, match="maximum evaluations") as excinfo:
        asyncio.run(brute_force_search(config))

    assert excinfo.value.limit == "max_evaluations"
    assert excinfo.value.stats.evaluated_configs == 5


def test_max_time_raises_limit_error_with_stats() -> None:
    ticks = itertools.count()
    config = BruteForceConfig(SPHERE_SPACE, _sphere, termination_condition=TerminationCondition(max_time=2.5))

    with pytest.raises(SearchLimitError, match="timed out") as excinfo:
        asyncio.run(BruteForceSearch(config, clock=lambda: float(next(ticks))).run())

    stats = excinfo.value.stats
    assert excinfo.value.limit == "max_time"
    assert 0 < stats.evaluated_configs < 441
    assert stats.end_time > stats.start_time


def test_rejected_candidates_are_never_evaluated() -> None:
    evaluated: list[float] = []

    def evaluate(config: dict[str, Any]) -> float:
        evaluated.append(config["x"])
        return _sphere(config)

    config = BruteForceConfig(SPHERE_SPACE, evaluate, validate_config=lambda candidate: candidate["x"] >= 0)
    result = asyncio.run(brute_force_search(config))

    assert min(evaluated) >= 0
    assert result.stats.invalid_configs == 10 * 21
    assert result.stats.valid_configs == 11 * 21
    assert result.best_config == {"x": 0.0, "y": 0.0}


def test_no_valid_configuration_raises() -> None:
    errors: list[Exception] = []

    def evaluate(config: dict[str, Any]) -> float:
        raise ValueError("unusable")

    config = BruteForceConfig(
        {"x": {"min": 0, "max": 2, "step": 1}},
        evaluate,
        callbacks=BruteForceCallbacks(on_error=lambda exc, candidate: errors.append(exc)),
    )

    with pytest.raises(NoValidConfigurationError) as excinfo:
        asyncio.run(brute_force_search(config))

    assert excinfo.value.stats.invalid_configs == 3
    assert len(errors) == 3


def test_progress_is_throttled_and_ends_with_final_event() -> None:
    events = []
    config = BruteForceConfig(SPHERE_SPACE, _sphere, callbacks=BruteForceCallbacks(on_progress=events.append))

    asyncio.run(BruteForceSearch(config, clock=lambda: 0.0).run())

    assert len(events) == 2
    assert events[0].current_step == 1
    assert events[0].best_score == -50.0
    assert events[-1].progress == 1.0
    assert events[-1].current_step == 441
    assert events[-1].estimated_time_remaining == 0.0
    assert events[-1].best_score == 0.0


def test_callbacks_observe_every_evaluation() -> None:
    evaluations = []
    bests: list[float] = []
    completed = []

    config = BruteForceConfig(
        {"x": {"min": 0, "max": 4, "step": 1}},
        lambda candidate: candidate["x"] % 3,
        callbacks=BruteForceCallbacks(
            on_evaluation=evaluations.append,
            on_new_best=lambda candidate, score: bests.append(score),
            on_complete=lambda best, score, stats: completed.append((best, score, stats.evaluated_configs)),
        ),
    )
    asyncio.run(brute_force_search(config))

    assert [event.current_step for event in evaluations] == [1, 2, 3, 4, 5]
    assert evaluations[-1].progress == 1.0
    assert bests == [0.0, 1.0, 2.0]
    assert completed == [({"x": 2}, 2.0, 5)]


def test_async_evaluation_and_base_config() -> None:
    seen: list[dict[str, Any]] = []

    async def evaluate(config: dict[str, Any]) -> float:
        await asyncio.sleep(0)
        seen.append(config)
        return config["params"]["gain"] * config["scale"]

    async def validate(config: dict[str, Any]) -> bool:
        return config["params"]["gain"] != 1

    config = BruteForceConfig(
        {"params": {"gain": {"min": 0, "max": 3, "step": 1}}},
        evaluate,
        base_config={"scale": 2.0, "params": {"offset": 1}},
        validate_config=validate,
    )
    result = asyncio.run(brute_force_search(config))

    assert result.best_config == {"scale": 2.0, "params": {"offset": 1, "gain": 3}}
    assert result.best_score == 6.0
    assert result.stats.invalid_configs == 1
    assert all(item["params"]["offset"] == 1 for item in seen)


def test_estimate_time_remaining() -> None:
    assert estimate_time_remaining(10.0, 0.5) == 10.0
    assert estimate_time_remaining(1.0, 0.0) == math.inf


def test_repeated_runs_on_one_search_report_progress_again() -> None:
    events = []
    search = BruteForceSearch(
        BruteForceConfig(SPHERE_SPACE, _sphere, callbacks=BruteForceCallbacks(on_progress=events.append)),
        clock=lambda: 0.0,
    )

    asyncio.run(search.run())
    asyncio.run(search.run())

    assert [event.current_step for event in events] == [1, 441, 1, 441]

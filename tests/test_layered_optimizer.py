"""Tests for the two-phase layered optimizer."""

from __future__ import annotations

import asyncio
import math
from typing import Any

import pytest

from core.errors import ConfigurationError, NoValidConfigurationError, OptimizerError
from engine.layered import (
    BRUTE_FORCE_PHASE,
    GENETIC_PHASE,
    GeneticPhaseSettings,
    LayeredConfig,
    LayeredOptimizer,
    RefinementSettings,
    layered_optimize,
)
from search.brute_force import BruteForceConfig, brute_force_search


SPHERE_SPACE = {"x": {"min": -5.0, "max": 5.0, "step": 0.5}, "y": {"min": -5.0, "max": 5.0, "step": 0.5}}


def _sphere(config: dict[str, Any]) -> float:
    return -(config["x"] ** 2 + config["y"] ** 2)


def _small_config(radius: float = 0.3, scale: float = 0.5) -> LayeredConfig:
    return LayeredConfig(
        genetic=GeneticPhaseSettings(population_size=30, generations=15),
        refinement=RefinementSettings(search_radius=radius, step_scale=scale),
    )


def test_layered_optimizer_finds_sphere_origin() -> None:
    optimizer = LayeredOptimizer(SPHERE_SPACE, _sphere, _small_config(), seed=42)

    best = asyncio.run(optimizer.optimize())

    assert math.hypot(best["x"], best["y"]) <= 0.5
    assert _sphere(best) > -0.5
    assert optimizer.last_genetic_result is not None
    assert optimizer.last_genetic_result.generations == 15
    assert optimizer.last_brute_force_result is not None
    assert optimizer.last_brute_force_result.best_score >= optimizer.last_genetic_result.best_fitness


def test_progress_reports_genetic_then_brute_force_phase() -> None:
    events = []

    best = asyncio.run(layered_optimize(SPHERE_SPACE, _sphere, _small_config(), on_progress=events.append, seed=1))

    phases = [event.phase for event in events]
    genetic_count = phases.count(GENETIC_PHASE)
    assert genetic_count == 15
    assert phases[:genetic_count] == [GENETIC_PHASE] * genetic_count
    assert set(phases[genetic_count:]) == {BRUTE_FORCE_PHASE}
    assert [event.current_step for event in events[:3]] == [1, 2, 3]
    assert events[0].total_steps == 15
    assert events[-1].current_step == events[-1].total_steps
    assert events[-1].best_score == _sphere(best)
    assert all(event.best_score > -math.inf for event in events if event.phase == BRUTE_FORCE_PHASE)


def test_full_radius_refinement_matches_plain_brute_force() -> None:
    optimizer = LayeredOptimizer(SPHERE_SPACE, _sphere, _small_config(radius=1.0, scale=1.0))

    refined = asyncio.run(optimizer.refine({"x": 3.5, "y": -2.0}))
    plain = asyncio.run(brute_force_search(BruteForceConfig(SPHERE_SPACE, _sphere)))

    assert refined.search_space.size == plain.search_space.size == 441
    assert refined.best_config == plain.best_config
    assert refined.best_score == plain.best_score


def test_refinement_narrows_around_centre() -> None:
    optimizer = LayeredOptimizer(SPHERE_SPACE, _sphere, _small_config(radius=0.1, scale=0.5))

    result = asyncio.run(optimizer.refine({"x": 5.0, "y": 0.0}))

    # x: [4, 5] at step 0.25; y: [-1, 1] at step 0.25.
    assert result.search_space.size == 5 * 9
    assert result.best_config == {"x": 4.0, "y": 0.0}


def test_base_config_is_merged_into_every_candidate() -> None:
    seen: list[dict[str, Any]] = []

    def evaluate(config: dict[str, Any]) -> float:
        seen.append(config)
        return -abs(config["model"]["gain"] - config["target"])

    optimizer = LayeredOptimizer(
        {"model": {"gain": {"min": 0.0, "max": 4.0, "step": 0.5}}},
        evaluate,
        LayeredConfig(genetic=GeneticPhaseSettings(population_size=6, generations=3)),
        base_config={"target": 2.5, "model": {"name": "linear"}},
        seed=5,
    )
    best = asyncio.run(optimizer.optimize())

    assert best["target"] == 2.5
    assert best["model"]["name"] == "linear"
    assert best["model"]["gain"] == pytest.approx(2.5)
    assert all(config["model"]["name"] == "linear" for config in seen)


def test_invalid_candidates_score_negative_infinity_in_genetic_phase() -> None:
    optimizer = LayeredOptimizer(
        SPHERE_SPACE,
        _sphere,
        _small_config(),
        validate_config=lambda config: config["x"] >= 0,
        seed=3,
    )

    best = asyncio.run(optimizer.optimize())

    assert best["x"] >= 0
    assert optimizer.last_genetic_result.best_individual["x"] >= 0


def test_evaluation_failing_everywhere_propagates_exhaustion() -> None:
    def evaluate(config: dict[str, Any]) -> float:
        raise RuntimeError("model diverged")

    optimizer = LayeredOptimizer(
        {"x": {"min": 0.0, "max": 1.0, "step": 0.5}},
        evaluate,
        LayeredConfig(genetic=GeneticPhaseSettings(population_size=4, generations=2)),
        seed=0,
    )

    with pytest.raises(NoValidConfigurationError):
        asyncio.run(optimizer.optimize())
    assert optimizer.last_genetic_result.best_fitness == -math.inf


def test_unexpected_failures_are_wrapped_with_phase() -> None:
    def on_progress(event) -> None:
        raise ValueError("listener broke")

    optimizer = LayeredOptimizer(SPHERE_SPACE, _sphere, _small_config(), seed=0)

    with pytest.raises(OptimizerError, match="Optimization failed in genetic phase: listener broke") as excinfo:
        asyncio.run(optimizer.optimize(on_progress))
    assert isinstance(excinfo.value.__cause__, ValueError)


@pytest.mark.parametrize(
    "config, message",
    [
        (LayeredConfig(refinement=RefinementSettings(search_radius=0.0)), "search_radius"),
        (LayeredConfig(refinement=RefinementSettings(step_scale=1.5)), "step_scale"),
        (LayeredConfig(refinement=RefinementSettings(step_scale=0.0)), "step_scale"),
        (LayeredConfig(genetic=GeneticPhaseSettings(population_size=0)), "population_size"),
        (LayeredConfig(genetic=GeneticPhaseSettings(elitism_rate=2.0)), "elitism_rate"),
        (LayeredConfig(genetic=GeneticPhaseSettings(selection_strategy="bogus")), "Unknown selection strategy"),
    ],
)
def test_invalid_layered_settings_raise(config: LayeredConfig, message: str) -> None:
    with pytest.raises(ConfigurationError, match=message):
        LayeredOptimizer(SPHERE_SPACE, _sphere, config)


def test_space_without_ranges_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="no parameter ranges"):
        LayeredOptimizer({"group": {}}, _sphere)


def test_same_seed_reproduces_layered_run() -> None:
    first = asyncio.run(layered_optimize(SPHERE_SPACE, _sphere, _small_config(), seed=11))
    second = asyncio.run(layered_optimize(SPHERE_SPACE, _sphere, _small_config(), seed=11))

    assert first == second

"""Two-phase optimizer: genetic exploration, then brute-force refinement."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from core.callbacks import invoke, resolve
from core.deterministic_rng import DeterministicRNG
from core.errors import ConfigurationError, OptimizerError
from evolution.ga import GeneticAlgorithm, GeneticCallbacks, GeneticConfig, GeneticResult
from evolution.operators import StrategyParams, check_strategy_names
from search.brute_force import (
    BruteForceCallbacks,
    BruteForceConfig,
    BruteForceResult,
    BruteForceSearch,
    EvaluateFunction,
    SearchProgress,
)
from search.params import mutate_in_range, random_in_range
from search.space import Range, apply_values, flatten_space, narrow_space, parse_space


LOGGER = logging.getLogger(__name__)

GENETIC_PHASE = "genetic"
BRUTE_FORCE_PHASE = "bruteforce"

# Share of a range width a mutated leaf may move in one step (either direction).
MUTATION_STRENGTH = 0.05
LEAF_SWAP_PROBABILITY = 0.5


@dataclass(frozen=True, slots=True)
class GeneticPhaseSettings:
    population_size: int = 100
    generations: int = 30
    mutation_rate: float = 0.1
    crossover_rate: float = 0.8
    elitism_rate: float = 0.1
    selection_strategy: str = "tournament"
    tournament_size: int = 5


@dataclass(frozen=True, slots=True)
class RefinementSettings:
    search_radius: float = 0.8
    step_scale: float = 0.02


@dataclass(frozen=True)
class LayeredConfig:
    genetic: GeneticPhaseSettings = field(default_factory=GeneticPhaseSettings)
    refinement: RefinementSettings = field(default_factory=RefinementSettings)


@dataclass(frozen=True, slots=True)
class OptimizerProgress:
    """Progress event tagged with the phase that produced it."""

    phase: str
    current_step: int
    total_steps: int
    best_score: float
    message: str


ProgressCallback = Callable[[OptimizerProgress], Any]


def check_layered_config(config: LayeredConfig) -> None:
    """Raise ``ConfigurationError`` for settings that would fail mid-run."""
    genetic = config.genetic
    refinement = config.refinement
    if not refinement.search_radius > 0:
        raise ConfigurationError("search_radius must be a positive number")
    if not 0 < refinement.step_scale <= 1:
        raise ConfigurationError("step_scale must be in (0, 1]")
    if genetic.population_size <= 0:
        raise ConfigurationError("population_size must be > 0")
    if genetic.generations <= 0:
        raise ConfigurationError("generations must be > 0")
    for name in ("mutation_rate", "crossover_rate", "elitism_rate"):
        if not 0.0 <= getattr(genetic, name) <= 1.0:
            raise ConfigurationError(f"{name} must be in [0.0, 1.0]")
    check_strategy_names(genetic.selection_strategy, None, None)


class LayeredOptimizer:
    """Genetic search over the whole space, then a fine grid around its result.

    The genetic phase works on flat genomes keyed by dotted parameter path;
    each genome is merged into ``base_config`` before evaluation. The
    refinement phase narrows every range around the genetic optimum
    (``radius = width * search_radius``, ``step = step * step_scale``) and
    enumerates the narrowed grid.
    """

    def __init__(
        self,
        parameter_space: Mapping[str, Any],
        evaluate_config: EvaluateFunction,
        config: LayeredConfig | None = None,
        base_config: Mapping[str, Any] | None = None,
        validate_config: Callable[[dict[str, Any]], Any] | None = None,
        seed: int | None = None,
    ) -> None:
        self.config = config or LayeredConfig()
        check_layered_config(self.config)

        self.parameter_space = parse_space(parameter_space)
        self.ranges: dict[str, Range] = flatten_space(self.parameter_space)
        if not self.ranges:
            raise ConfigurationError("Parameter space contains no parameter ranges")
        self.evaluate_config = evaluate_config
        self.base_config = dict(base_config) if base_config else {}
        self.validate_config = validate_config
        self.rng = DeterministicRNG.from_optional(seed)

        self.last_genetic_result: GeneticResult | None = None
        self.last_brute_force_result: BruteForceResult | None = None

    async def optimize(self, on_progress: ProgressCallback | None = None) -> dict[str, Any]:
        """Run both phases and return the refined nested configuration."""
        try:
            genetic = await self.explore(on_progress)
        except OptimizerError:
            raise
        except Exception as exc:
            LOGGER.error("Genetic phase failed: %s", exc)
            raise OptimizerError(f"Optimization failed in {GENETIC_PHASE} phase: {exc}") from exc

        center = apply_values(self.base_config, genetic.best_individual)
        try:
            refined = await self.refine(center, on_progress)
        except OptimizerError:
            raise
        except Exception as exc:
            LOGGER.error("Refinement phase failed: %s", exc)
            raise OptimizerError(f"Optimization failed in {BRUTE_FORCE_PHASE} phase: {exc}") from exc
        return refined.best_config

    async def explore(self, on_progress: ProgressCallback | None = None) -> GeneticResult:
        """Run the genetic phase alone."""
        settings = self.config.genetic
        generate_rng = self.rng.stream("generate")
        mutate_rng = self.rng.stream("mutate")
        swap_rng = self.rng.stream("swap")
        best_score = -math.inf

        def generate() -> dict[str, float]:
            return {path: random_in_range(bounds, generate_rng) for path, bounds in self.ranges.items()}

        def mutate(individual: Mapping[str, float]) -> dict[str, float]:
            mutated = dict(individual)
            for path, bounds in self.ranges.items():
                if mutate_rng.random() < settings.mutation_rate:
                    mutated[path] = mutate_in_range(mutated[path], bounds, MUTATION_STRENGTH, mutate_rng)
            return mutated

        def crossover(
            parent1: Mapping[str, float],
            parent2: Mapping[str, float],
        ) -> tuple[dict[str, float], dict[str, float]]:
            child1 = dict(parent1)
            child2 = dict(parent2)
            for path in self.ranges:
                if swap_rng.random() < LEAF_SWAP_PROBABILITY:
                    child1[path], child2[path] = child2[path], child1[path]
            return child1, child2

        async def fitness(individual: Mapping[str, float]) -> float:
            candidate = apply_values(self.base_config, individual)
            if self.validate_config is not None and not await resolve(self.validate_config(candidate)):
                return -math.inf
            try:
                return float(await resolve(self.evaluate_config(candidate)))
            except Exception as exc:
                LOGGER.warning("Evaluation failed during %s phase: %s", GENETIC_PHASE, exc)
                return -math.inf

        async def on_new_best(individual: Mapping[str, float], score: float, generation: int) -> None:
            nonlocal best_score
            best_score = score

        async def on_generation(generation: int, *_: Any) -> None:
            await invoke(
                on_progress,
                OptimizerProgress(
                    phase=GENETIC_PHASE,
                    current_step=generation + 1,
                    total_steps=settings.generations,
                    best_score=best_score,
                    message=f"Genetic search: generation {generation + 1}/{settings.generations}",
                ),
            )

        genetic_config = GeneticConfig(
            population_size=settings.population_size,
            max_generations=settings.generations,
            mutation_rate=settings.mutation_rate,
            crossover_rate=settings.crossover_rate,
            elitism_rate=settings.elitism_rate,
            fitness_function=fitness,
            generate_individual=generate,
            mutate=mutate,
            crossover=crossover,
            selection_strategy=settings.selection_strategy,
            strategy_params=StrategyParams(tournament_size=settings.tournament_size),
            callbacks=GeneticCallbacks(on_generation=on_generation, on_new_best=on_new_best),
            seed=self.rng.child(GENETIC_PHASE).seed,
        )
        result = await GeneticAlgorithm(genetic_config).run()
        self.last_genetic_result = result
        LOGGER.info("Genetic phase best fitness %.6g after %d generations", result.best_fitness, result.generations)
        return result

    async def refine(
        self,
        center: Mapping[str, Any],
        on_progress: ProgressCallback | None = None,
    ) -> BruteForceResult:
        """Run the brute-force phase around the nested configuration ``center``."""
        refinement = self.config.refinement
        space = narrow_space(self.parameter_space, center, refinement.search_radius, refinement.step_scale)

        async def forward(progress: SearchProgress) -> None:
            await invoke(
                on_progress,
                OptimizerProgress(
                    phase=BRUTE_FORCE_PHASE,
                    current_step=progress.current_step,
                    total_steps=progress.total_steps,
                    best_score=progress.best_score,
                    message=f"Refining: {progress.current_step}/{progress.total_steps} configurations",
                ),
            )

        search = BruteForceSearch(
            BruteForceConfig(
                parameter_space=space,
                evaluate_config=self.evaluate_config,
                base_config=self.base_config,
                validate_config=self.validate_config,
                callbacks=BruteForceCallbacks(on_progress=forward if on_progress is not None else None),
            )
        )
        result = await search.run()
        self.last_brute_force_result = result
        return result


async def layered_optimize(
    parameter_space: Mapping[str, Any],
    evaluate_config: EvaluateFunction,
    config: LayeredConfig | None = None,
    on_progress: ProgressCallback | None = None,
    **options: Any,
) -> dict[str, Any]:
    """Convenience wrapper around ``LayeredOptimizer.optimize``."""
    return await LayeredOptimizer(parameter_space, evaluate_config, config, **options).optimize(on_progress)

"""Generic genetic algorithm engine with adaptive rate control."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

import numpy as np

from core.callbacks import invoke, resolve
from core.deterministic_rng import DeterministicRNG
from core.errors import ConfigurationError
from evolution.operators import (
    MutationContext,
    ResolvedOperators,
    StrategyParams,
    check_strategy_names,
    resolve_operators,
)
from evolution.strategies import AdaptiveMutationParams
from genome.representation import Genome, copy_genome, ensure_same_shape, genome_kind


LOGGER = logging.getLogger(__name__)

TARGET_REACHED = "target fitness reached"
MAX_GENERATIONS_REACHED = "max generations reached"

# Window over which an unchanged best fitness counts as stagnation.
STAGNATION_WINDOW = 5
STAGNATION_TOLERANCE = 1e-6

FitnessFunction = Callable[[Genome], Union[float, Awaitable[float]]]


@dataclass(frozen=True, slots=True)
class AdaptiveParams:
    """Bounds for adaptive mutation/crossover control.

    Unset rate bounds default to multiples of the initial rates:
    ``max_mutation_rate = 2 * mutation_rate`` and
    ``min_crossover_rate = crossover_rate / 2``.
    """

    min_mutation_rate: float | None = None
    max_mutation_rate: float | None = None
    min_crossover_rate: float | None = None
    max_crossover_rate: float | None = None
    diversity_threshold: float = 0.1
    min_mutation_range: float = 0.1
    max_mutation_range: float = 1.0


@dataclass
class GeneticCallbacks:
    """Optional hooks; each may return an awaitable, which is awaited."""

    on_generation: Callable[..., Any] | None = None
    on_new_best: Callable[..., Any] | None = None
    on_termination: Callable[[str], Any] | None = None


@dataclass
class GeneticConfig:
    """Configuration for one genetic run.

    Named crossover/mutation strategies take precedence over the custom
    ``crossover``/``mutate`` functions whenever they support the genome kind
    produced by ``generate_individual``.
    """

    population_size: int
    max_generations: int
    mutation_rate: float
    crossover_rate: float
    elitism_rate: float
    fitness_function: FitnessFunction
    generate_individual: Callable[[], Genome]
    mutate: Callable[[Genome], Genome] | None = None
    crossover: Callable[[Genome, Genome], Any] | None = None
    selection_strategy: str = "tournament"
    crossover_strategy: str | None = None
    mutation_strategy: str | None = None
    strategy_params: StrategyParams = field(default_factory=StrategyParams)
    calculate_diversity: Callable[[list[Genome]], Any] | None = None
    termination_condition: Callable[[int, float], Any] | None = None
    adaptive_params: AdaptiveParams | None = None
    callbacks: GeneticCallbacks = field(default_factory=GeneticCallbacks)
    seed: int | None = None

    def __post_init__(self) -> None:
        if int(self.population_size) <= 0:
            raise ConfigurationError("population_size must be > 0")
        if int(self.max_generations) <= 0:
            raise ConfigurationError("max_generations must be > 0")
        for name in ("mutation_rate", "crossover_rate", "elitism_rate"):
            value = float(getattr(self, name))
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be in [0.0, 1.0], got {value}")
        if self.strategy_params.tournament_size < 1:
            raise ConfigurationError("tournament_size must be >= 1")
        check_strategy_names(self.selection_strategy, self.crossover_strategy, self.mutation_strategy)


@dataclass
class GeneticResult:
    """Outcome of a genetic run."""

    best_individual: Genome
    best_fitness: float
    generations: int
    history: list[float]
    diversity_history: list[float]
    termination_reason: str
    final_population: list[Genome]
    mutation_rate_history: list[float] = field(default_factory=list)
    crossover_rate_history: list[float] = field(default_factory=list)


class GeneticAlgorithm:
    """Run a genetic optimization described by ``GeneticConfig``.

    Lifecycle of each generation:
        1. Evaluate the population in order.
        2. Update the best-ever individual and fire ``on_new_best`` on strict
           improvement.
        3. Record best-ever fitness and diversity, fire ``on_generation``.
        4. Adapt mutation/crossover rates when ``adaptive_params`` is set.
        5. Stop when the termination predicate holds.
        6. Breed the next population: elites, then selected parents with
           crossover or cloning, then mutation.
    """

    def __init__(self, config: GeneticConfig) -> None:
        self.config = config
        self.rng = DeterministicRNG.from_optional(config.seed)
        self.mutation_rate = float(config.mutation_rate)
        self.crossover_rate = float(config.crossover_rate)

    async def run(self) -> GeneticResult:
        config = self.config
        callbacks = config.callbacks
        # Each run starts from the configured rates and fresh RNG streams.
        self.rng.reset()
        self.mutation_rate = float(config.mutation_rate)
        self.crossover_rate = float(config.crossover_rate)
        population = self._initial_population()
        operators = resolve_operators(
            genome_kind(population[0]),
            config.selection_strategy,
            config.crossover_strategy,
            config.mutation_strategy,
            config.strategy_params,
            config.crossover,
            config.mutate,
            self.rng.stream,
        )
        LOGGER.debug("Resolved operators: %s", operators.labels)

        best_individual: Genome = copy_genome(population[0])
        best_fitness = -math.inf
        history: list[float] = []
        diversity_history: list[float] = []
        mutation_rates: list[float] = []
        crossover_rates: list[float] = []

        for generation in range(int(config.max_generations)):
            fitnesses = [float(await resolve(config.fitness_function(genome))) for genome in population]
            best_index = int(np.argmax(fitnesses))
            generation_best = fitnesses[best_index]
            mean_fitness = float(np.mean(fitnesses))

            if generation_best > best_fitness:
                best_fitness = generation_best
                best_individual = copy_genome(population[best_index])
                await invoke(callbacks.on_new_best, best_individual, best_fitness, generation)

            diversity = 0.0
            if config.calculate_diversity is not None:
                diversity = float(await resolve(config.calculate_diversity(population)))

            history.append(best_fitness)
            diversity_history.append(diversity)
            await invoke(
                callbacks.on_generation,
                generation,
                population,
                fitnesses,
                generation_best,
                mean_fitness,
                diversity,
            )

            if config.adaptive_params is not None:
                self._adapt_rates(config.adaptive_params, diversity, history)
            mutation_rates.append(self.mutation_rate)
            crossover_rates.append(self.crossover_rate)

            LOGGER.debug(
                "generation=%d best=%.6g mean=%.6g diversity=%.4f mutation_rate=%.4f crossover_rate=%.4f",
                generation,
                generation_best,
                mean_fitness,
                diversity,
                self.mutation_rate,
                self.crossover_rate,
            )

            if config.termination_condition is not None and await resolve(
                config.termination_condition(generation, best_fitness)
            ):
                return await self._finish(
                    TARGET_REACHED,
                    generation + 1,
                    best_individual,
                    best_fitness,
                    history,
                    diversity_history,
                    population,
                    mutation_rates,
                    crossover_rates,
                )

            if generation + 1 < config.max_generations:
                population = await self._next_population(population, fitnesses, operators)

        return await self._finish(
            MAX_GENERATIONS_REACHED,
            int(config.max_generations),
            best_individual,
            best_fitness,
            history,
            diversity_history,
            population,
            mutation_rates,
            crossover_rates,
        )

    def _initial_population(self) -> list[Genome]:
        population = [self.config.generate_individual() for _ in range(int(self.config.population_size))]
        first = population[0]
        for genome in population[1:]:
            ensure_same_shape(first, genome)
        return population

    def _adapt_rates(self, params: AdaptiveParams, diversity: float, history: list[float]) -> None:
        initial_mutation = float(self.config.mutation_rate)
        initial_crossover = float(self.config.crossover_rate)

        if diversity < params.diversity_threshold:
            ceiling = params.max_mutation_rate if params.max_mutation_rate is not None else initial_mutation * 2
            self.mutation_rate = min(ceiling, self.mutation_rate * 1.1)
        else:
            self.mutation_rate = (self.mutation_rate + initial_mutation) / 2
            if params.min_mutation_rate is not None:
                self.mutation_rate = max(params.min_mutation_rate, self.mutation_rate)

        stagnant = (
            len(history) >= STAGNATION_WINDOW
            and abs(history[-1] - history[-STAGNATION_WINDOW]) < STAGNATION_TOLERANCE
        )
        if stagnant:
            floor = params.min_crossover_rate if params.min_crossover_rate is not None else initial_crossover / 2
            self.crossover_rate = max(floor, self.crossover_rate * 0.9)
        else:
            self.crossover_rate = (self.crossover_rate + initial_crossover) / 2
            if params.max_crossover_rate is not None:
                self.crossover_rate = min(params.max_crossover_rate, self.crossover_rate)

    def _mutation_bounds(self) -> AdaptiveMutationParams:
        params = self.config.adaptive_params or AdaptiveParams()
        return AdaptiveMutationParams(
            min_mutation_rate=(
                params.min_mutation_rate if params.min_mutation_rate is not None else self.mutation_rate / 2
            ),
            max_mutation_rate=(
                params.max_mutation_rate if params.max_mutation_rate is not None else self.mutation_rate * 2
            ),
            min_mutation_range=params.min_mutation_range,
            max_mutation_range=params.max_mutation_range,
        )

    async def _next_population(
        self,
        population: list[Genome],
        fitnesses: list[float],
        operators: ResolvedOperators,
    ) -> list[Genome]:
        size = int(self.config.population_size)
        breed_rng = self.rng.stream("breeding")

        elite_count = int(math.floor(size * float(self.config.elitism_rate)))
        order = sorted(range(len(population)), key=lambda i: fitnesses[i], reverse=True)
        next_population = [copy_genome(population[i]) for i in order[:elite_count]]

        bounds = self._mutation_bounds()
        max_fitness = max(fitnesses)
        min_fitness = min(fitnesses)

        while len(next_population) < size:
            if breed_rng.random() < self.crossover_rate:
                parent1 = operators.select(population, fitnesses)
                parent2 = operators.select(population, fitnesses)
                children = operators.crossover(parent1, parent2)
            else:
                children = (copy_genome(operators.select(population, fitnesses)),)

            for child in children:
                child_fitness = None
                if operators.mutation_uses_fitness:
                    child_fitness = float(await resolve(self.config.fitness_function(child)))
                context = MutationContext(
                    rate=self.mutation_rate,
                    adaptive=bounds,
                    fitness=child_fitness,
                    max_fitness=max_fitness,
                    min_fitness=min_fitness,
                )
                next_population.append(operators.mutate(child, context))

        # Crossover adds children in pairs; drop the overshoot at random, never an elite.
        trim_rng = self.rng.stream("trim")
        while len(next_population) > size:
            del next_population[trim_rng.randrange(elite_count, len(next_population))]
        return next_population

    async def _finish(
        self,
        reason: str,
        generations: int,
        best_individual: Genome,
        best_fitness: float,
        history: list[float],
        diversity_history: list[float],
        population: list[Genome],
        mutation_rates: list[float],
        crossover_rates: list[float],
    ) -> GeneticResult:
        LOGGER.info(
            "Genetic run finished: reason=%s generations=%d best_fitness=%.6g",
            reason,
            generations,
            best_fitness,
        )
        await invoke(self.config.callbacks.on_termination, reason)
        return GeneticResult(
            best_individual=best_individual,
            best_fitness=best_fitness,
            generations=generations,
            history=history,
            diversity_history=diversity_history,
            termination_reason=reason,
            final_population=population,
            mutation_rate_history=mutation_rates,
            crossover_rate_history=crossover_rates,
        )


async def genetic_optimize(config: GeneticConfig) -> GeneticResult:
    """Run ``config`` to completion and return its result."""
    return await GeneticAlgorithm(config).run()


"""Registries of named strategies and their resolution into run operators.

A genetic run is configured with strategy names and optional custom
functions. ``resolve_operators`` turns that configuration into three plain
callables once per run, after the genome kind is known, so the generation
loop never branches on names or genome shapes.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from core.errors import ConfigurationError
from evolution import strategies
from genome.representation import Genome, GenomeKind


@dataclass(frozen=True, slots=True)
class StrategyParams:
    """Tuning knobs for the named strategies."""

    tournament_size: int = 3
    uniform_rate: float = 0.5
    arithmetic_alpha: float = 0.5
    gaussian_sigma: float = 0.1
    mutation_range: Mapping[str, Mapping[str, float]] | None = None


@dataclass(frozen=True, slots=True)
class MutationContext:
    """Values the engine knows when a child is mutated."""

    rate: float
    adaptive: strategies.AdaptiveMutationParams
    fitness: float | None = None
    max_fitness: float = 0.0
    min_fitness: float = 0.0


SelectFn = Callable[[Sequence[Genome], Sequence[float]], Genome]
CrossoverFn = Callable[[Genome, Genome], "tuple[Genome, Genome]"]
MutateFn = Callable[[Genome, MutationContext], Genome]

SelectionFactory = Callable[[StrategyParams, random.Random], SelectFn]
CrossoverFactory = Callable[[StrategyParams, random.Random], CrossoverFn]
MutationFactory = Callable[[StrategyParams, random.Random], "MutateFn | None"]


@dataclass(frozen=True)
class NamedCrossover:
    kinds: frozenset[GenomeKind]
    factory: CrossoverFactory


@dataclass(frozen=True)
class NamedMutation:
    """Named mutation entry.

    ``factory`` may return None when the strategy lacks a prerequisite for
    this run (uniform mutation without ``mutation_range``); the custom mutate
    function is then used instead.
    """

    kinds: frozenset[GenomeKind]
    factory: MutationFactory
    uses_fitness: bool = False


@dataclass(frozen=True)
class ResolvedOperators:
    """Operators bound for one run."""

    select: SelectFn
    crossover: CrossoverFn
    mutate: MutateFn
    mutation_uses_fitness: bool = False
    labels: dict[str, str] = field(default_factory=dict)


_SELECTION_STRATEGIES: dict[str, SelectionFactory] = {}
_CROSSOVER_STRATEGIES: dict[str, NamedCrossover] = {}
_MUTATION_STRATEGIES: dict[str, NamedMutation] = {}


def register_selection_strategy(name: str, factory: SelectionFactory) -> None:
    _SELECTION_STRATEGIES[str(name)] = factory


def register_crossover_strategy(name: str, kinds: Sequence[GenomeKind], factory: CrossoverFactory) -> None:
    _CROSSOVER_STRATEGIES[str(name)] = NamedCrossover(kinds=frozenset(kinds), factory=factory)


def register_mutation_strategy(
    name: str,
    kinds: Sequence[GenomeKind],
    factory: MutationFactory,
    uses_fitness: bool = False,
) -> None:
    _MUTATION_STRATEGIES[str(name)] = NamedMutation(kinds=frozenset(kinds), factory=factory, uses_fitness=uses_fitness)


def available_selection_strategies() -> list[str]:
    return sorted(_SELECTION_STRATEGIES)


def available_crossover_strategies() -> list[str]:
    return sorted(_CROSSOVER_STRATEGIES)


def available_mutation_strategies() -> list[str]:
    return sorted(_MUTATION_STRATEGIES)


def _unknown(kind: str, name: str, available: list[str]) -> ConfigurationError:
    return ConfigurationError(f"Unknown {kind} strategy '{name}'. Available: {', '.join(available)}")


def check_strategy_names(
    selection: str,
    crossover: str | None,
    mutation: str | None,
) -> None:
    """Fail fast on names that no registry knows."""
    if selection not in _SELECTION_STRATEGIES:
        raise _unknown("selection", selection, available_selection_strategies())
    if crossover is not None and crossover not in _CROSSOVER_STRATEGIES:
        raise _unknown("crossover", crossover, available_crossover_strategies())
    if mutation is not None and mutation not in _MUTATION_STRATEGIES:
        raise _unknown("mutation", mutation, available_mutation_strategies())


def resolve_operators(
    kind: GenomeKind,
    selection: str,
    crossover: str | None,
    mutation: str | None,
    params: StrategyParams,
    custom_crossover: Callable[[Genome, Genome], Any] | None,
    custom_mutate: Callable[[Genome], Genome] | None,
    rng_for: Callable[[str], random.Random],
) -> ResolvedOperators:
    """Bind the operators for a run on genomes of ``kind``.

    A named crossover or mutation strategy wins over the custom function when
    it supports ``kind``; otherwise the custom function is used. A
    ``ConfigurationError`` is raised when neither is usable.
    """
    check_strategy_names(selection, crossover, mutation)
    labels: dict[str, str] = {"selection": selection}

    select = _SELECTION_STRATEGIES[selection](params, rng_for("selection"))

    crossover_fn: CrossoverFn | None = None
    if crossover is not None:
        entry = _CROSSOVER_STRATEGIES[crossover]
        if kind in entry.kinds:
            crossover_fn = entry.factory(params, rng_for("crossover"))
            labels["crossover"] = crossover
    if crossover_fn is None:
        if custom_crossover is None:
            reason = f"'{crossover}' does not support {kind.value} genomes" if crossover else "no strategy was named"
            raise ConfigurationError(f"No crossover operator: {reason} and no custom crossover was supplied.")
        crossover_fn = _custom_crossover(custom_crossover)
        labels["crossover"] = "custom"

    mutate_fn: MutateFn | None = None
    uses_fitness = False
    if mutation is not None:
        named = _MUTATION_STRATEGIES[mutation]
        if kind in named.kinds:
            mutate_fn = named.factory(params, rng_for("mutation"))
            uses_fitness = named.uses_fitness and mutate_fn is not None
            if mutate_fn is not None:
                labels["mutation"] = mutation
    if mutate_fn is None:
        if custom_mutate is None:
            reason = f"'{mutation}' is not usable for {kind.value} genomes" if mutation else "no strategy was named"
            raise ConfigurationError(f"No mutation operator: {reason} and no custom mutate was supplied.")
        mutate_fn = _custom_mutate(custom_mutate)
        labels["mutation"] = "custom"

    return ResolvedOperators(
        select=select,
        crossover=crossover_fn,
        mutate=mutate_fn,
        mutation_uses_fitness=uses_fitness,
        labels=labels,
    )


def _custom_crossover(function: Callable[[Genome, Genome], Any]) -> CrossoverFn:
    def crossover(parent1: Genome, parent2: Genome) -> tuple[Genome, Genome]:
        child1, child2 = function(parent1, parent2)
        return child1, child2

    return crossover


def _custom_mutate(function: Callable[[Genome], Genome]) -> MutateFn:
    def mutate(individual: Genome, context: MutationContext) -> Genome:
        return function(individual)

    return mutate


def _tournament(params: StrategyParams, rng: random.Random) -> SelectFn:
    return lambda population, fitnesses: strategies.tournament(population, fitnesses, params.tournament_size, rng)


def _roulette(params: StrategyParams, rng: random.Random) -> SelectFn:
    return lambda population, fitnesses: strategies.roulette(population, fitnesses, rng)


def _rank(params: StrategyParams, rng: random.Random) -> SelectFn:
    return lambda population, fitnesses: strategies.rank(population, fitnesses, rng)


def _single_point(params: StrategyParams, rng: random.Random) -> CrossoverFn:
    return lambda parent1, parent2: strategies.single_point(parent1, parent2, rng)


def _two_point(params: StrategyParams, rng: random.Random) -> CrossoverFn:
    return lambda parent1, parent2: strategies.two_point(parent1, parent2, rng)


def _uniform_crossover(params: StrategyParams, rng: random.Random) -> CrossoverFn:
    return lambda parent1, parent2: strategies.uniform_crossover(parent1, parent2, params.uniform_rate, rng)


def _arithmetic(params: StrategyParams, rng: random.Random) -> CrossoverFn:
    return lambda parent1, parent2: strategies.arithmetic(parent1, parent2, params.arithmetic_alpha)


def _gaussian(params: StrategyParams, rng: random.Random) -> MutateFn:
    def mutate(individual: Genome, context: MutationContext) -> Genome:
        return strategies.gaussian(individual, params.gaussian_sigma, context.rate, rng)

    return mutate


def _uniform_mutation(params: StrategyParams, rng: random.Random) -> MutateFn | None:
    if not params.mutation_range:
        return None
    ranges = params.mutation_range

    def mutate(individual: Genome, context: MutationContext) -> Genome:
        return strategies.uniform_mutation(individual, ranges, context.rate, rng)

    return mutate


def _adaptive(params: StrategyParams, rng: random.Random) -> MutateFn:
    def mutate(individual: Genome, context: MutationContext) -> Genome:
        fitness = context.max_fitness if context.fitness is None else context.fitness
        return strategies.adaptive(
            individual,
            fitness,
            context.max_fitness,
            context.min_fitness,
            context.adaptive,
            rng,
        )

    return mutate


_BOTH = (GenomeKind.SEQUENCE, GenomeKind.MAPPING)

register_selection_strategy("tournament", _tournament)
register_selection_strategy("roulette", _roulette)
register_selection_strategy("rank", _rank)

register_crossover_strategy("single_point", (GenomeKind.SEQUENCE,), _single_point)
register_crossover_strategy("two_point", (GenomeKind.SEQUENCE,), _two_point)
register_crossover_strategy("uniform", (GenomeKind.SEQUENCE,), _uniform_crossover)
register_crossover_strategy("arithmetic", (GenomeKind.MAPPING,), _arithmetic)

register_mutation_strategy("gaussian", _BOTH, _gaussian)
register_mutation_strategy("uniform", (GenomeKind.MAPPING,), _uniform_mutation)
register_mutation_strategy("adaptive", _BOTH, _adaptive, uses_fitness=True)

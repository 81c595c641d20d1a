"""Selection, crossover and mutation strategies for the genetic engine.

Every function is pure with respect to its inputs: parents and individuals
are copied before edits. Randomness comes from the ``rng`` argument so that
concurrent runs never share state; when it is omitted a fixed-seed
``random.Random(0)`` is used.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence, TypeVar

from core.errors import GenomeShapeError
from genome.representation import (
    Genome,
    GenomeKind,
    MappingGenome,
    SequenceGenome,
    ensure_same_shape,
    genome_kind,
    rebuild_sequence,
)


T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class AdaptiveMutationParams:
    """Bounds interpolated by ``adaptive`` from weak to strong individuals."""

    min_mutation_rate: float
    max_mutation_rate: float
    min_mutation_range: float = 0.1
    max_mutation_range: float = 1.0


def _check_selection_inputs(population: Sequence[T], fitnesses: Sequence[float]) -> None:
    if len(population) != len(fitnesses):
        raise ValueError("Population and fitness lengths must match.")
    if not population:
        raise ValueError("Cannot select from an empty population.")


def tournament(
    population: Sequence[T],
    fitnesses: Sequence[float],
    tournament_size: int = 3,
    rng: random.Random | None = None,
) -> T:
    """Pick best fitness individual from a sampled subset.

    Indices are drawn with replacement. Ties keep the first sampled index.
    """
    _check_selection_inputs(population, fitnesses)
    local_rng = rng or random.Random(0)
    size = max(1, int(tournament_size))
    indices = [local_rng.randrange(len(population)) for _ in range(size)]
    best_index = max(indices, key=lambda i: fitnesses[i])
    return population[best_index]


def roulette(
    population: Sequence[T],
    fitnesses: Sequence[float],
    rng: random.Random | None = None,
) -> T:
    """Fitness-proportional selection.

    A pointer drawn uniformly in ``[0, total)`` is decreased by each fitness in
    population order and the first individual that brings it to ``<= 0`` wins.
    When the total fitness is not positive, or no individual brings the
    pointer down (rounding), the last individual is returned.
    """
    _check_selection_inputs(population, fitnesses)
    local_rng = rng or random.Random(0)
    total = float(sum(fitnesses))
    if not total > 0:
        return population[-1]
    pointer = local_rng.random() * total
    for individual, fitness in zip(population, fitnesses):
        pointer -= fitness
        if pointer <= 0:
            return individual
    return population[-1]


def rank(
    population: Sequence[T],
    fitnesses: Sequence[float],
    rng: random.Random | None = None,
) -> T:
    """Linear rank selection: best gets weight ``n``, worst gets ``1``."""
    _check_selection_inputs(population, fitnesses)
    local_rng = rng or random.Random(0)
    order = sorted(range(len(population)), key=lambda i: fitnesses[i], reverse=True)
    size = len(order)
    total_rank = size * (size + 1) / 2
    pointer = local_rng.random() * total_rank
    for position, index in enumerate(order):
        pointer -= size - position
        if pointer <= 0:
            return population[index]
    return population[order[-1]]


def _sequence_parents(parent1: Genome, parent2: Genome, name: str) -> None:
    if ensure_same_shape(parent1, parent2) is not GenomeKind.SEQUENCE:
        raise GenomeShapeError(f"{name} crossover requires sequence genomes.")


def single_point(
    parent1: SequenceGenome,
    parent2: SequenceGenome,
    rng: random.Random | None = None,
) -> tuple[SequenceGenome, SequenceGenome]:
    """Swap every gene from a random cut point to the end."""
    _sequence_parents(parent1, parent2, "single_point")
    local_rng = rng or random.Random(0)
    child1 = list(parent1)
    child2 = list(parent2)
    if child1:
        point = local_rng.randrange(len(child1))
        child1[point:], child2[point:] = child2[point:], child1[point:]
    return rebuild_sequence(parent1, child1), rebuild_sequence(parent2, child2)


def two_point(
    parent1: SequenceGenome,
    parent2: SequenceGenome,
    rng: random.Random | None = None,
) -> tuple[SequenceGenome, SequenceGenome]:
    """Swap the genes between two random cut points (end exclusive)."""
    _sequence_parents(parent1, parent2, "two_point")
    local_rng = rng or random.Random(0)
    child1 = list(parent1)
    child2 = list(parent2)
    if child1:
        start = local_rng.randrange(len(child1))
        end = local_rng.randrange(len(child1))
        if start > end:
            start, end = end, start
        child1[start:end], child2[start:end] = child2[start:end], child1[start:end]
    return rebuild_sequence(parent1, child1), rebuild_sequence(parent2, child2)


def uniform_crossover(
    parent1: SequenceGenome,
    parent2: SequenceGenome,
    mix_rate: float = 0.5,
    rng: random.Random | None = None,
) -> tuple[SequenceGenome, SequenceGenome]:
    """Swap each gene independently with probability ``mix_rate``."""
    _sequence_parents(parent1, parent2, "uniform")
    local_rng = rng or random.Random(0)
    child1 = list(parent1)
    child2 = list(parent2)
    for i in range(len(child1)):
        if local_rng.random() < mix_rate:
            child1[i], child2[i] = child2[i], child1[i]
    return rebuild_sequence(parent1, child1), rebuild_sequence(parent2, child2)


def arithmetic(
    parent1: MappingGenome,
    parent2: MappingGenome,
    alpha: float = 0.5,
) -> tuple[dict[str, float], dict[str, float]]:
    """Blend two mapping genomes key by key.

    ``child1 = alpha*p1 + (1-alpha)*p2`` and ``child2`` is the complement.
    """
    if ensure_same_shape(parent1, parent2) is not GenomeKind.MAPPING:
        raise GenomeShapeError("arithmetic crossover requires mapping genomes.")
    child1: dict[str, float] = {}
    child2: dict[str, float] = {}
    for key in parent1:
        a = float(parent1[key])
        b = float(parent2[key])
        child1[key] = alpha * a + (1.0 - alpha) * b
        child2[key] = (1.0 - alpha) * a + alpha * b
    return child1, child2


def box_muller(rng: random.Random) -> float:
    """Standard normal deviate from two uniform draws."""
    u1 = 1.0 - rng.random()  # (0, 1], keeps log() finite
    u2 = rng.random()
    return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)


def _perturb(genome: Genome, change: Callable[[float], float], rate: float, rng: random.Random) -> Genome:
    """Apply ``change(value)`` to each gene with probability ``rate``."""
    if genome_kind(genome) is GenomeKind.MAPPING:
        mutated = dict(genome)
        for key in mutated:
            if rng.random() < rate:
                mutated[key] = change(float(genome[key]))
        return mutated
    values = list(genome)
    for i, value in enumerate(values):
        if rng.random() < rate:
            values[i] = change(float(value))
    return rebuild_sequence(genome, values)


def gaussian(
    individual: Genome,
    sigma: float = 0.1,
    rate: float = 0.1,
    rng: random.Random | None = None,
) -> Genome:
    """Add ``N(0, sigma)`` noise to each gene with probability ``rate``."""
    local_rng = rng or random.Random(0)
    return _perturb(individual, lambda value: value + box_muller(local_rng) * sigma, rate, local_rng)


def uniform_mutation(
    individual: MappingGenome,
    ranges: Mapping[str, Mapping[str, float]],
    rate: float = 0.1,
    rng: random.Random | None = None,
) -> dict[str, float]:
    """Redraw each ranged key uniformly in ``[min, max)`` with probability ``rate``.

    Keys without an entry in ``ranges`` are never changed.
    """
    if genome_kind(individual) is not GenomeKind.MAPPING:
        raise GenomeShapeError("uniform mutation requires a mapping genome.")
    local_rng = rng or random.Random(0)
    mutated = dict(individual)
    for key in mutated:
        # Draw for every key so the sequence does not depend on which keys are ranged.
        hit = local_rng.random() < rate
        bounds = ranges.get(key)
        if hit and bounds is not None:
            low = float(bounds["min"])
            high = float(bounds["max"])
            mutated[key] = low + local_rng.random() * (high - low)
    return mutated


def adaptive(
    individual: Genome,
    fitness: float,
    max_fitness: float,
    min_fitness: float,
    params: AdaptiveMutationParams,
    rng: random.Random | None = None,
) -> Genome:
    """Mutate weak individuals harder than strong ones.

    Relative fitness ``r`` is ``(fitness - min) / (max - min)``, ``1`` when
    the fitness range is zero, and clamped to ``[0, 1]`` for fitness outside
    the population bounds. Rate and magnitude move linearly from their
    maximum at ``r = 0`` to their minimum at ``r = 1``; each hit gene shifts by
    a uniform draw in ``[-magnitude, magnitude)``.
    """
    local_rng = rng or random.Random(0)
    fitness_range = max_fitness - min_fitness
    relative = 1.0 if fitness_range == 0 else (fitness - min_fitness) / fitness_range
    relative = min(1.0, max(0.0, relative))
    rate = params.max_mutation_rate - (params.max_mutation_rate - params.min_mutation_rate) * relative
    magnitude = params.max_mutation_range - (params.max_mutation_range - params.min_mutation_range) * relative
    return _perturb(
        individual,
        lambda value: value + (local_rng.random() * 2.0 - 1.0) * magnitude,
        rate,
        local_rng,
    )

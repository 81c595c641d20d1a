"""Population diversity measures for adaptive genetic runs."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping, Sequence

import numpy as np

from genome.representation import Genome, genome_values


def _bounds(spec: Any) -> tuple[float, float]:
    if isinstance(spec, Mapping):
        return float(spec["min"]), float(spec["max"])
    return float(spec.min), float(spec.max)


def _mean_pairwise_distance(matrix: np.ndarray) -> float:
    count = matrix.shape[0]
    if count < 2:
        return 0.0
    deltas = matrix[:, None, :] - matrix[None, :, :]
    distances = np.sqrt(np.sum(deltas * deltas, axis=-1))
    upper = np.triu_indices(count, k=1)
    return float(np.mean(distances[upper]))


def population_diversity(
    population: Sequence[Genome],
    ranges: Mapping[str, Any] | None = None,
    exclude: Iterable[str] = (),
) -> float:
    """Mean pairwise Euclidean distance between individuals.

    With ``ranges`` (mapping genomes only) each parameter difference is divided
    by its range width, so the result does not depend on parameter units.
    Parameters listed in ``exclude``, missing from ``ranges`` or with a zero
    width do not contribute. Without ``ranges`` the raw gene values are used.
    Populations with fewer than two individuals have diversity ``0.0``.
    """
    if len(population) < 2:
        return 0.0

    if ranges is None:
        return _mean_pairwise_distance(np.array([genome_values(genome) for genome in population], dtype=float))

    skipped = set(exclude)
    keys: list[str] = []
    widths: list[float] = []
    for key, spec in ranges.items():
        if key in skipped:
            continue
        low, high = _bounds(spec)
        if high - low > 0:
            keys.append(key)
            widths.append(high - low)
    if not keys:
        return 0.0

    matrix = np.array([[float(genome[key]) for key in keys] for genome in population], dtype=float)
    return _mean_pairwise_distance(matrix / np.array(widths, dtype=float))


def diversity_function(
    ranges: Mapping[str, Any] | None = None,
    exclude: Iterable[str] = (),
) -> Callable[[Sequence[Genome]], float]:
    """Return a ``calculate_diversity`` hook bound to ``ranges``."""
    excluded = tuple(exclude)

    def calculate(population: Sequence[Genome]) -> float:
        return population_diversity(population, ranges, excluded)

    return calculate

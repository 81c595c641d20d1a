"""Random parameter generation, mutation and recombination within ranges.

These helpers build genetic operators for flat mapping genomes whose keys
are parameter names and whose values must stay inside known ranges.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from core.errors import ConfigurationError
from search.constraints import SumConstraint


@dataclass(frozen=True, slots=True)
class ParamRange:
    """Interval with an optional grid step."""

    min: float
    max: float
    step: float | None = None


@dataclass(frozen=True, slots=True)
class RelativeRange:
    """Range expressed as ``base +/- variation``."""

    base: float
    variation: float


def as_param_range(spec: Any) -> ParamRange:
    """Accept ``ParamRange``, ``search.space.Range`` or a ``{min, max[, step]}`` mapping."""
    if isinstance(spec, ParamRange):
        return spec
    if isinstance(spec, Mapping):
        return ParamRange(float(spec["min"]), float(spec["max"]), spec.get("step"))
    return ParamRange(float(spec.min), float(spec.max), getattr(spec, "step", None))


def random_in_range(spec: Any, rng: random.Random | None = None) -> float:
    """Draw a grid value ``min + k*step`` or, without a step, a uniform value."""
    bounds = as_param_range(spec)
    local_rng = rng or random.Random(0)
    if bounds.step is not None and bounds.step > 0:
        steps = int(math.floor((bounds.max - bounds.min) / bounds.step + 1e-9))
        return round(bounds.min + local_rng.randint(0, steps) * bounds.step, 12)
    return bounds.min + local_rng.random() * (bounds.max - bounds.min)


def clamp_to_range(value: float, spec: Any) -> float:
    bounds = as_param_range(spec)
    return max(bounds.min, min(bounds.max, value))


def snap_to_step(value: float, spec: Any) -> float:
    """Round ``value`` to the nearest grid point counted from ``min``."""
    bounds = as_param_range(spec)
    if bounds.step is None or bounds.step <= 0:
        return value
    snapped = round(bounds.min + round((value - bounds.min) / bounds.step) * bounds.step, 12)
    return clamp_to_range(snapped, bounds)


def mutate_in_range(
    value: float,
    spec: Any,
    strength: float = 0.1,
    rng: random.Random | None = None,
) -> float:
    """Shift ``value`` by up to ``strength`` of the range width, clamp, then snap."""
    bounds = as_param_range(spec)
    local_rng = rng or random.Random(0)
    shifted = value + (local_rng.random() * 2.0 - 1.0) * (bounds.max - bounds.min) * strength
    return snap_to_step(clamp_to_range(shifted, bounds), bounds)


def range_overlap(first: Any, second: Any) -> ParamRange | None:
    a = as_param_range(first)
    b = as_param_range(second)
    low = max(a.min, b.min)
    high = min(a.max, b.max)
    if low <= high:
        return ParamRange(low, high)
    return None


def relative_to_absolute(relative: Mapping[str, RelativeRange]) -> dict[str, ParamRange]:
    """Convert ``base +/- variation`` ranges; lower bounds never go below zero."""
    return {
        key: ParamRange(max(0.0, spec.base - spec.variation), spec.base + spec.variation)
        for key, spec in relative.items()
    }


class ParameterGenerator:
    """Generate and mutate flat parameter mappings inside ``ranges``.

    Parameters named by a ``SumConstraint`` are generated jointly: all but the
    last are drawn so that the last can absorb the remainder within its range
    (widened by the constraint tolerance). ``mutate`` only touches
    unconstrained parameters, so constrained sums are preserved.
    """

    def __init__(
        self,
        ranges: Mapping[str, Any],
        sum_constraints: Sequence[SumConstraint] = (),
        rng: random.Random | None = None,
        max_attempts: int = 100,
    ) -> None:
        self.ranges = {key: as_param_range(spec) for key, spec in ranges.items()}
        self.sum_constraints = tuple(sum_constraints)
        self.rng = rng or random.Random(0)
        self.max_attempts = max_attempts
        for constraint in self.sum_constraints:
            missing = [key for key in constraint.params if key not in self.ranges]
            if missing:
                raise ConfigurationError(f"Sum constraint references unknown parameters: {', '.join(missing)}")
        self._constrained = {key for constraint in self.sum_constraints for key in constraint.params}

    def is_constrained(self, key: str) -> bool:
        return key in self._constrained

    def generate(self) -> dict[str, float]:
        params: dict[str, float] = {}
        for key, spec in self.ranges.items():
            if not self.is_constrained(key):
                params[key] = random_in_range(spec, self.rng)
        for constraint in self.sum_constraints:
            params.update(self._draw_constrained(constraint))
        return {key: params[key] for key in self.ranges if key in params}

    def mutate(self, individual: Mapping[str, float]) -> dict[str, float]:
        mutated = dict(individual)
        candidates = [key for key in self.ranges if not self.is_constrained(key) and key in mutated]
        if not candidates:
            return mutated
        key = candidates[self.rng.randrange(len(candidates))]
        mutated[key] = mutate_in_range(float(mutated[key]), self.ranges[key], rng=self.rng)
        return mutated

    def _draw_constrained(self, constraint: SumConstraint) -> dict[str, float]:
        *leading, last = constraint.params
        last_range = self.ranges[last]
        for _ in range(self.max_attempts):
            values: dict[str, float] = {}
            total = 0.0
            for index, key in enumerate(leading):
                spec = self.ranges[key]
                # Leave room for the parameters that follow.
                remaining = len(constraint.params) - index - 1
                ceiling = min(spec.max, constraint.target_sum - total - remaining * spec.min)
                if ceiling < spec.min:
                    ceiling = spec.min
                value = random_in_range(ParamRange(spec.min, ceiling), self.rng)
                values[key] = value
                total += value
            target = constraint.target_sum - total
            if last_range.min - constraint.tolerance <= target <= last_range.max + constraint.tolerance:
                values[last] = clamp_to_range(target, last_range)
                return values
        raise ConfigurationError(
            f"Could not satisfy sum constraint on {', '.join(constraint.params)} "
            f"(target {constraint.target_sum}) after {self.max_attempts} attempts"
        )


def crossover_params(
    parent1: Mapping[str, float],
    parent2: Mapping[str, float],
    ranges: Mapping[str, Any],
    method: str = "average",
    weight: float = 0.5,
    exclude: Iterable[str] = (),
    sum_constraints: Sequence[SumConstraint] = (),
) -> tuple[dict[str, float], dict[str, float]]:
    """Recombine two parameter mappings.

    ``"average"`` gives both children the mean value; ``"weighted"`` blends
    with ``weight`` and its complement. After blending, the last parameter of
    each sum constraint absorbs the remainder so the sum holds exactly.
    """
    if method not in {"average", "weighted"}:
        raise ConfigurationError(f"Unknown crossover method '{method}'. Available: average, weighted")
    skipped = set(exclude)
    child1 = dict(parent1)
    child2 = dict(parent2)
    for key in ranges:
        if key in skipped or key not in parent1 or key not in parent2:
            continue
        a = float(parent1[key])
        b = float(parent2[key])
        if method == "weighted":
            child1[key] = a * weight + b * (1.0 - weight)
            child2[key] = a * (1.0 - weight) + b * weight
        else:
            child1[key] = child2[key] = (a + b) / 2.0

    for constraint in sum_constraints:
        *leading, last = constraint.params
        for child in (child1, child2):
            child[last] = constraint.target_sum - sum(float(child[key]) for key in leading)
    return child1, child2

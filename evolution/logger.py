"""Logging hooks that report genetic-run progress through ``logging``."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from evolution.ga import GeneticCallbacks
from genome.representation import Genome


@dataclass(frozen=True)
class GenerationMetrics:
    """Structured per-generation metrics payload."""

    generation_index: int
    mean_fitness: float = 0.0
    max_fitness: float = 0.0
    diversity: float = 0.0


@dataclass
class GenerationLogger:
    """Collect ``GenerationMetrics`` and log them as a run progresses.

    ``callbacks()`` returns a ``GeneticCallbacks`` wired to this logger; other
    hooks can be chained through ``on_termination``.
    """

    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("evolution.progress"))
    level: int = logging.INFO
    precision: int = 4
    format_individual: Callable[[Genome], str] | None = None
    records: list[GenerationMetrics] = field(default_factory=list)

    def _fmt(self, value: float) -> str:
        return f"{value:.{self.precision}f}"

    def log_generation(
        self,
        generation: int,
        population: Sequence[Genome],
        fitnesses: Sequence[float],
        best_fitness: float,
        mean_fitness: float,
        diversity: float,
    ) -> None:
        metrics = GenerationMetrics(
            generation_index=int(generation),
            mean_fitness=float(mean_fitness),
            max_fitness=float(best_fitness),
            diversity=float(diversity),
        )
        self.records.append(metrics)
        self.logger.log(
            self.level,
            "Generation %d: best=%s mean=%s diversity=%s",
            generation,
            self._fmt(best_fitness),
            self._fmt(mean_fitness),
            self._fmt(diversity),
        )

    def log_new_best(self, individual: Genome, fitness: float, generation: int) -> None:
        if self.format_individual is not None:
            self.logger.log(
                self.level,
                "New best at generation %d: %s fitness=%s",
                generation,
                self.format_individual(individual),
                self._fmt(fitness),
            )
        else:
            self.logger.log(self.level, "New best at generation %d: fitness=%s", generation, self._fmt(fitness))

    def callbacks(self, on_termination: Callable[[str], Any] | None = None) -> GeneticCallbacks:
        return GeneticCallbacks(
            on_generation=self.log_generation,
            on_new_best=self.log_new_best,
            on_termination=on_termination,
        )

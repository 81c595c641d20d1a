"""Exception taxonomy shared by the genetic, brute-force and layered engines."""

from __future__ import annotations

from typing import Any


class OptimizerError(RuntimeError):
    """Base class for every failure raised by the optimization toolkit."""


class ConfigurationError(OptimizerError, ValueError):
    """Raised when an engine is configured with invalid settings."""


class SearchSpaceError(ConfigurationError):
    """Raised when a parameter space is malformed or too large to enumerate."""


class GenomeShapeError(OptimizerError, ValueError):
    """Raised when two genomes do not share the same length or key set."""


class ExhaustionError(OptimizerError):
    """Raised when a search ends without producing a usable result."""


class SearchLimitError(ExhaustionError):
    """Raised when a brute-force run hits its time or evaluation limit.

    ``limit`` names the condition that fired (``"max_time"`` or
    ``"max_evaluations"``) and ``stats`` carries the counters at that point.
    """

    def __init__(self, message: str, limit: str, stats: Any = None) -> None:
        super().__init__(message)
        self.limit = limit
        self.stats = stats


class NoValidConfigurationError(ExhaustionError):
    """Raised when no candidate configuration was successfully evaluated."""

    def __init__(self, message: str, stats: Any = None) -> None:
        super().__init__(message)
        self.stats = stats

"""Load layered-optimization jobs from YAML or JSON files."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

from core.errors import ConfigurationError
from engine.layered import (
    GeneticPhaseSettings,
    LayeredConfig,
    LayeredOptimizer,
    RefinementSettings,
    check_layered_config,
)
from search.brute_force import EvaluateFunction
from search.space import flatten_space, parse_space


_REQUIRED_KEYS: tuple[str, ...] = ("parameter_space",)
_KNOWN_KEYS: frozenset[str] = frozenset(
    {"name", "parameter_space", "base_config", "seed", "genetic", "refinement"}
)


@dataclass(frozen=True)
class OptimizationJob:
    """Validated description of one layered optimization.

    The scoring function is not part of a job file; callers pair a job with
    their own ``evaluate_config`` when building a ``LayeredOptimizer``.
    """

    parameter_space: dict[str, Any]
    config: LayeredConfig = field(default_factory=LayeredConfig)
    base_config: dict[str, Any] = field(default_factory=dict)
    seed: int | None = None
    name: str = ""
    extras: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Return a job value by key, falling back to ``extras``."""
        if hasattr(self, key):
            return getattr(self, key)
        return self.extras.get(key, default)

    def parameter_paths(self) -> list[str]:
        return list(flatten_space(self.parameter_space))

    def build_optimizer(
        self,
        evaluate_config: EvaluateFunction,
        validate_config: Callable[[dict[str, Any]], Any] | None = None,
    ) -> LayeredOptimizer:
        """Pair this job with a scoring function."""
        return LayeredOptimizer(
            self.parameter_space,
            evaluate_config,
            config=self.config,
            base_config=self.base_config,
            validate_config=validate_config,
            seed=self.seed,
        )


class ConfigLoader:
    """Load and validate optimization job files (YAML or JSON)."""

    @staticmethod
    def load(path: str | Path) -> OptimizationJob:
        """Load a single job from ``path``.

        Args:
            path: Path to a YAML or JSON job file.

        Returns:
            A validated ``OptimizationJob`` instance.
        """
        payload = _read_config_payload(path)
        if not isinstance(payload, Mapping):
            raise ConfigurationError("Single job file must contain a mapping object.")
        return ConfigLoader.from_mapping(payload)

    @staticmethod
    def load_many(path: str | Path) -> list[OptimizationJob]:
        """Load one or many jobs from ``path``.

        Supports:
            - top-level mapping for a single job
            - top-level list of mappings
            - top-level mapping with a ``jobs`` list
        """
        payload = _read_config_payload(path)

        if isinstance(payload, list):
            return [ConfigLoader.from_mapping(item) for item in payload]

        if isinstance(payload, Mapping) and "jobs" in payload:
            jobs = payload["jobs"]
            if not isinstance(jobs, list):
                raise ConfigurationError("'jobs' must be a list of mappings.")
            return [ConfigLoader.from_mapping(item) for item in jobs]

        if isinstance(payload, Mapping):
            return [ConfigLoader.from_mapping(payload)]

        raise ConfigurationError("Unsupported config file structure.")

    @staticmethod
    def from_mapping(payload: Any) -> OptimizationJob:
        """Validate an already-parsed mapping and build an ``OptimizationJob``."""
        if not isinstance(payload, Mapping):
            raise ConfigurationError("Each job must be a mapping object.")
        return _validate_and_build(payload)


def _read_config_payload(path: str | Path) -> Any:
    """Read raw config payload from JSON or YAML file."""
    config_path = Path(path)
    suffix = config_path.suffix.lower()
    content = config_path.read_text(encoding="utf-8")

    if suffix == ".json":
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid JSON in {config_path}: {exc}") from exc

    if suffix in {".yaml", ".yml"}:
        try:
            return yaml.safe_load(content)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

    raise ConfigurationError(f"Unsupported config extension: {suffix}")


def _section(payload: Mapping[str, Any], key: str) -> dict[str, Any]:
    section = payload.get(key) or {}
    if not isinstance(section, Mapping):
        raise ConfigurationError(f"'{key}' must be a mapping")
    return dict(section)


def _build_settings(cls: type, section: dict[str, Any], key: str) -> Any:
    allowed = set(cls.__dataclass_fields__)
    unknown = sorted(set(section) - allowed)
    if unknown:
        raise ConfigurationError(f"Unknown keys in '{key}': {', '.join(unknown)}")
    return cls(**section)


def _validate_and_build(payload: Mapping[str, Any]) -> OptimizationJob:
    """Validate raw mapping and build ``OptimizationJob``."""
    missing = [key for key in _REQUIRED_KEYS if key not in payload]
    if missing:
        raise ConfigurationError(f"Missing required config keys: {', '.join(missing)}")

    parameter_space = parse_space(payload["parameter_space"])
    if not flatten_space(parameter_space):
        raise ConfigurationError("parameter_space must contain at least one range")

    base_config = payload.get("base_config") or {}
    if not isinstance(base_config, Mapping):
        raise ConfigurationError("base_config must be a mapping")

    seed = payload.get("seed")
    if seed is not None:
        if isinstance(seed, bool) or not isinstance(seed, int):
            raise ConfigurationError("seed must be an integer")

    genetic = _build_settings(GeneticPhaseSettings, _section(payload, "genetic"), "genetic")
    refinement = _build_settings(RefinementSettings, _section(payload, "refinement"), "refinement")

    layered = LayeredConfig(genetic=genetic, refinement=refinement)
    check_layered_config(layered)

    extras = {k: v for k, v in payload.items() if k not in _KNOWN_KEYS}

    return OptimizationJob(
        parameter_space=parameter_space,
        config=layered,
        base_config=dict(base_config),
        seed=seed,
        name=str(payload.get("name", "")),
        extras=extras,
    )

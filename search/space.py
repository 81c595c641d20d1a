"""Parameter-space model: ranges, nested spaces, sizing and enumeration.

A parameter space is a nested mapping whose leaves are ``Range`` objects (or
plain mappings with numeric ``min``, ``max`` and ``step`` keys). Leaves are
addressed by dotted paths such as ``"weights.volume"``.
"""

from __future__ import annotations

import copy
import itertools
import math
import time
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

from core.errors import SearchSpaceError


MAX_CONFIGS = 10_000_000
MAX_SAFE_INTEGER = 2**53 - 1
DEFAULT_TIME_BUDGET = 5.0

# Absorbs float error in (max - min) / step, e.g. (0.3 - 0.0) / 0.1 = 2.9999999999999996.
_STEP_EPSILON = 1e-9
_VALUE_DIGITS = 12

PATH_SEPARATOR = "."


@dataclass(frozen=True, slots=True)
class Range:
    """Closed numeric interval sampled every ``step`` from ``min``."""

    min: float
    max: float
    step: float

    def __post_init__(self) -> None:
        for name in ("min", "max", "step"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise SearchSpaceError(f"Range {name} must be a finite number, got {value!r}")
        if self.step <= 0:
            raise SearchSpaceError(f"Invalid parameter range: min={self.min}, max={self.max}, step={self.step}")
        if self.min > self.max:
            raise SearchSpaceError(f"Invalid parameter range: min={self.min} is greater than max={self.max}")

    @property
    def width(self) -> float:
        return float(self.max) - float(self.min)

    @property
    def steps(self) -> int:
        """Number of grid points: ``floor((max - min) / step) + 1``."""
        ratio = self.width / float(self.step)
        if not math.isfinite(ratio):
            raise SearchSpaceError(
                f"Search space too large: range min={self.min}, max={self.max}, step={self.step} has unbounded steps"
            )
        return int(math.floor(ratio + _STEP_EPSILON)) + 1

    def value_at(self, index: int) -> float:
        value = round(float(self.min) + index * float(self.step), _VALUE_DIGITS)
        return min(value, float(self.max))

    def values(self) -> Iterator[float]:
        """Yield grid values lazily; index-based so steps do not accumulate error."""
        for index in range(self.steps):
            yield self.value_at(index)

    def clamp(self, value: float) -> float:
        return min(float(self.max), max(float(self.min), float(value)))

    def snap(self, value: float) -> float:
        """Clamp ``value`` and move it to the nearest grid point."""
        index = round((self.clamp(value) - float(self.min)) / float(self.step))
        return self.value_at(min(max(index, 0), self.steps - 1))

    def to_dict(self) -> dict[str, float]:
        return {"min": self.min, "max": self.max, "step": self.step}


@dataclass(frozen=True, slots=True)
class SearchSpaceDescriptor:
    """Size (number of grid points) and dimensionality of a parameter space."""

    size: int
    dimensions: int


def is_range_spec(value: Any) -> bool:
    """Return True for a ``Range`` or a mapping shaped like one."""
    if isinstance(value, Range):
        return True
    if not isinstance(value, Mapping):
        return False
    return all(
        key in value and isinstance(value[key], (int, float)) and not isinstance(value[key], bool)
        for key in ("min", "max", "step")
    )


def _as_range(value: Any, path: str) -> Range:
    if isinstance(value, Range):
        return value
    try:
        return Range(min=value["min"], max=value["max"], step=value["step"])
    except SearchSpaceError as exc:
        raise SearchSpaceError(f"Parameter '{path}': {exc}") from exc


def parse_space(space: Mapping[str, Any], _prefix: str = "") -> dict[str, Any]:
    """Normalise a nested space so that every leaf is a ``Range``.

    Errors name the dotted path of the offending entry.
    """
    if not isinstance(space, Mapping):
        raise SearchSpaceError(f"Parameter space must be a mapping, got {type(space).__name__}")
    parsed: dict[str, Any] = {}
    for key, value in space.items():
        if not isinstance(key, str) or not key or PATH_SEPARATOR in key:
            raise SearchSpaceError(f"Invalid parameter name {key!r} under '{_prefix or '<root>'}'")
        path = f"{_prefix}{PATH_SEPARATOR}{key}" if _prefix else key
        if is_range_spec(value):
            parsed[key] = _as_range(value, path)
        elif isinstance(value, Mapping):
            parsed[key] = parse_space(value, path)
        else:
            raise SearchSpaceError(f"Parameter '{path}' must be a range or a nested mapping, got {value!r}")
    return parsed


def flatten_space(space: Mapping[str, Any]) -> dict[str, Range]:
    """Return ``{dotted_path: Range}`` in declaration order."""
    flat: dict[str, Range] = {}

    def walk(node: Mapping[str, Any], prefix: str) -> None:
        for key, value in node.items():
            path = f"{prefix}{PATH_SEPARATOR}{key}" if prefix else key
            if is_range_spec(value):
                flat[path] = _as_range(value, path)
            else:
                walk(value, path)

    walk(parse_space(space), "")
    return flat


def unflatten_space(flat: Mapping[str, Range]) -> dict[str, Any]:
    """Inverse of ``flatten_space``."""
    nested: dict[str, Any] = {}
    for path, value in flat.items():
        set_path(nested, path, value)
    return nested


def compute_search_space(
    space: Mapping[str, Any],
    time_budget: float = DEFAULT_TIME_BUDGET,
) -> SearchSpaceDescriptor:
    """Size a parameter space, failing fast when it cannot be enumerated.

    Raises ``SearchSpaceError`` when a range is invalid, when the running
    product would leave the 53-bit safe integer domain, when it exceeds
    ``MAX_CONFIGS``, when sizing takes longer than ``time_budget`` seconds, or
    when the space holds no range at all.
    """
    started = time.monotonic()
    size = 1
    dimensions = 0

    def traverse(node: Mapping[str, Any]) -> None:
        nonlocal size, dimensions
        if time.monotonic() - started > time_budget:
            raise SearchSpaceError(f"Computing the search space size timed out ({time_budget}s)")
        for value in node.values():
            if not isinstance(value, Range):
                traverse(value)
                continue
            dimensions += 1
            steps = value.steps
            if steps <= 0:
                raise SearchSpaceError(
                    f"Invalid parameter range: min={value.min}, max={value.max}, step={value.step}"
                )
            if size > MAX_SAFE_INTEGER // steps:
                raise SearchSpaceError("Search space too large: size would overflow the 53-bit integer range")
            size *= steps
            if size > MAX_CONFIGS:
                raise SearchSpaceError(
                    f"Search space too large ({size} > {MAX_CONFIGS}); narrow the ranges or increase the steps"
                )

    traverse(parse_space(space))
    if dimensions == 0:
        raise SearchSpaceError("Search space contains no parameter ranges")
    return SearchSpaceDescriptor(size=size, dimensions=dimensions)


def get_path(config: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted path from a nested mapping."""
    node: Any = config
    for key in path.split(PATH_SEPARATOR):
        if not isinstance(node, Mapping) or key not in node:
            return default
        node = node[key]
    return node


def set_path(config: dict[str, Any], path: str, value: Any) -> None:
    """Write a dotted path into a nested dict, creating intermediate dicts."""
    keys = path.split(PATH_SEPARATOR)
    node = config
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[keys[-1]] = value


def apply_values(base_config: Mapping[str, Any] | None, values: Mapping[str, float]) -> dict[str, Any]:
    """Deep-copy ``base_config`` and overwrite it with dotted-path ``values``."""
    config = copy.deepcopy(dict(base_config)) if base_config else {}
    for path, value in values.items():
        set_path(config, path, value)
    return config


def iter_configurations(
    space: Mapping[str, Any],
    base_config: Mapping[str, Any] | None = None,
) -> Iterator[dict[str, Any]]:
    """Lazily yield every grid configuration as a fresh nested dict.

    Order matches nested loops in declaration order: the last declared
    parameter varies fastest.
    """
    flat = flatten_space(space)
    paths = list(flat)
    for combination in itertools.product(*(list(flat[path].values()) for path in paths)):
        yield apply_values(base_config, dict(zip(paths, combination)))


def narrow_space(
    space: Mapping[str, Any],
    center: Mapping[str, Any],
    search_radius: float,
    step_scale: float,
) -> dict[str, Any]:
    """Shrink every range around the matching value of ``center``.

    ``center`` is a nested configuration. For each leaf with a numeric value
    ``v``: ``radius = (max - min) * search_radius``, the new bounds are
    ``[max(min, v - radius), min(max, v + radius)]`` and the new step is
    ``step * step_scale``. Leaves without a value keep their range.
    """
    narrowed: dict[str, Range] = {}
    for path, bounds in flatten_space(space).items():
        value = get_path(center, path)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            narrowed[path] = bounds
            continue
        radius = bounds.width * float(search_radius)
        low = max(float(bounds.min), float(value) - radius)
        high = min(float(bounds.max), float(value) + radius)
        if low > high:
            # Centre lies outside the original range; collapse onto the nearest bound.
            low = high = bounds.clamp(value)
        narrowed[path] = Range(min=low, max=high, step=float(bounds.step) * float(step_scale))
    return unflatten_space(narrowed)

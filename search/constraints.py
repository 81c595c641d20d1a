"""Constraint checks over flat parameter mappings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from core.errors import ConfigurationError
from search.space import get_path


LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SumConstraint:
    """The listed parameters must add up to ``target_sum`` within ``tolerance``."""

    params: tuple[str, ...]
    target_sum: float
    tolerance: float = 1e-6

    def __post_init__(self) -> None:
        if not self.params:
            raise ConfigurationError("SumConstraint needs at least one parameter")
        if self.tolerance < 0:
            raise ConfigurationError("SumConstraint tolerance must be >= 0")


@dataclass(frozen=True, slots=True)
class OrderedGroup:
    """The listed parameters must be strictly increasing in the given order."""

    name: str
    params: tuple[str, ...]


def _bounds(spec: Any) -> tuple[float, float]:
    if isinstance(spec, Mapping):
        return float(spec["min"]), float(spec["max"])
    return float(spec.min), float(spec.max)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_ranges(params: Mapping[str, Any], ranges: Mapping[str, Any]) -> bool:
    """Every parameter must have a range and lie inside it."""
    for key, value in params.items():
        spec = ranges.get(key)
        if spec is None or not _is_number(value):
            return False
        low, high = _bounds(spec)
        if not low <= value <= high:
            return False
    return True


def validate_ordered_groups(params: Mapping[str, Any], groups: Sequence[OrderedGroup]) -> bool:
    for group in groups:
        for current_key, next_key in zip(group.params, group.params[1:]):
            current = params.get(current_key)
            following = params.get(next_key)
            if not _is_number(current) or not _is_number(following) or current >= following:
                return False
    return True


def validate_sum_constraints(params: Mapping[str, Any], constraints: Sequence[SumConstraint]) -> bool:
    """Missing or non-numeric members count as zero and are logged."""
    for constraint in constraints:
        total = 0.0
        for key in constraint.params:
            value = params.get(key)
            if not _is_number(value):
                LOGGER.warning("Parameter %s is not a number; counting it as 0.", key)
                continue
            total += float(value)
        if abs(total - constraint.target_sum) > constraint.tolerance:
            return False
    return True


def validate_all_constraints(
    params: Mapping[str, Any],
    ranges: Mapping[str, Any],
    ordered_groups: Sequence[OrderedGroup] = (),
    sum_constraints: Sequence[SumConstraint] = (),
) -> bool:
    return (
        validate_ranges(params, ranges)
        and validate_ordered_groups(params, ordered_groups)
        and validate_sum_constraints(params, sum_constraints)
    )


def config_validator(
    ranges: Mapping[str, Any],
    ordered_groups: Sequence[OrderedGroup] = (),
    sum_constraints: Sequence[SumConstraint] = (),
) -> Callable[[Mapping[str, Any]], bool]:
    """Build a ``validate_config`` predicate for nested configurations.

    ``ranges`` is keyed by dotted path; the predicate reads those paths from
    the nested config and applies ``validate_all_constraints``.
    """
    paths = tuple(ranges)
    ordered = tuple(ordered_groups)
    sums = tuple(sum_constraints)

    def validate(config: Mapping[str, Any]) -> bool:
        flat = {path: get_path(config, path) for path in paths}
        return validate_all_constraints(flat, ranges, ordered, sums)

    return validate

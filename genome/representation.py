"""Genome representation shared by strategies and the genetic engine.

A genome is either an ordered sequence of floats with a fixed length or a
mapping from parameter name to float with a fixed key set. Engines never
modify a genome in place: every operator copies and then edits the copy.
"""

from __future__ import annotations

import enum
from typing import Any, Mapping, Sequence, Union

from core.errors import GenomeShapeError


SequenceGenome = Sequence[float]
MappingGenome = Mapping[str, float]
Genome = Union[SequenceGenome, MappingGenome]


class GenomeKind(str, enum.Enum):
    """Structural kind of a genome."""

    SEQUENCE = "sequence"
    MAPPING = "mapping"


def genome_kind(genome: Any) -> GenomeKind:
    """Return the kind of ``genome`` or raise when it is neither shape."""
    if isinstance(genome, Mapping):
        return GenomeKind.MAPPING
    if isinstance(genome, Sequence) and not isinstance(genome, (str, bytes)):
        return GenomeKind.SEQUENCE
    raise GenomeShapeError(
        f"Genome must be a sequence of floats or a mapping of str to float, got {type(genome).__name__}."
    )


def ensure_same_shape(first: Genome, second: Genome) -> GenomeKind:
    """Check that two genomes can be recombined and return their shared kind."""
    kind = genome_kind(first)
    other_kind = genome_kind(second)
    if kind is not other_kind:
        raise GenomeShapeError(f"Cannot combine a {kind.value} genome with a {other_kind.value} genome.")
    if kind is GenomeKind.SEQUENCE:
        if len(first) != len(second):
            raise GenomeShapeError(f"Sequence genomes differ in length: {len(first)} != {len(second)}.")
    else:
        first_keys = set(first)
        second_keys = set(second)
        if first_keys != second_keys:
            missing = sorted(first_keys.symmetric_difference(second_keys))
            raise GenomeShapeError(f"Mapping genomes differ in keys: {', '.join(missing)}.")
    return kind


def copy_genome(genome: Genome) -> Genome:
    """Return a shallow copy that keeps the container type of ``genome``."""
    if genome_kind(genome) is GenomeKind.MAPPING:
        return dict(genome)
    return rebuild_sequence(genome, list(genome))


def rebuild_sequence(template: SequenceGenome, values: list[float]) -> SequenceGenome:
    """Return ``values`` in the same container type as ``template``."""
    if isinstance(template, tuple):
        return tuple(values)
    return values


def genome_values(genome: Genome) -> list[float]:
    """Return gene values in a stable order (key order for mapping genomes)."""
    if genome_kind(genome) is GenomeKind.MAPPING:
        return [float(genome[key]) for key in genome]
    return [float(value) for value in genome]


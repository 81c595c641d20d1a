"""Deterministic RNG container handing out independent named streams."""

from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass, field


@dataclass
class DeterministicRNG:
    """Owns per-purpose RNG streams without touching global random state.

    Each optimizer run draws selection, crossover, mutation and bookkeeping
    randomness from separate streams so that adding a draw in one place does
    not shift the sequence seen by the others.
    """

    seed: int
    _streams: dict[str, random.Random] = field(default_factory=dict, init=False, repr=False)

    @classmethod
    def from_optional(cls, seed: int | None) -> "DeterministicRNG":
        """Build a container, drawing a fresh seed from the OS when ``seed`` is None."""
        if seed is None:
            seed = random.SystemRandom().randrange(2**32)
        return cls(seed=int(seed))

    def stream(self, name: str) -> random.Random:
        """Return independent deterministic stream by name."""
        if name not in self._streams:
            # Use stable cross-process seed derivation instead of built-in hash().
            digest = hashlib.sha256(f"{self.seed}:{name}".encode("utf-8")).digest()
            derived_seed = int.from_bytes(digest[:8], byteorder="big", signed=False) & 0xFFFFFFFF
            self._streams[name] = random.Random(derived_seed)
        return self._streams[name]

    def child(self, name: str) -> "DeterministicRNG":
        """Return a container whose streams are derived from this one under ``name``."""
        return DeterministicRNG(seed=self.stream(f"child:{name}").randrange(2**32))

    def reset(self) -> None:
        """Drop every stream so the next ``stream`` call starts from its seed again."""
        self._streams.clear()

"""Tests for named deterministic RNG streams."""

from __future__ import annotations

from core.deterministic_rng import DeterministicRNG


def test_streams_are_reproducible_and_independent() -> None:
    first = DeterministicRNG(seed=5)
    second = DeterministicRNG(seed=5)

    assert [first.stream("a").random() for _ in range(3)] == [second.stream("a").random() for _ in range(3)]
    assert first.stream("a") is first.stream("a")
    assert DeterministicRNG(seed=5).stream("a").random() != DeterministicRNG(seed=5).stream("b").random()


def test_reset_restarts_streams() -> None:
    rng = DeterministicRNG(seed=9)
    before = rng.stream("x").random()

    rng.reset()

    assert rng.stream("x").random() == before


def test_child_seed_is_derived_deterministically() -> None:
    assert DeterministicRNG(seed=3).child("genetic").seed == DeterministicRNG(seed=3).child("genetic").seed
    assert DeterministicRNG(seed=3).child("genetic").seed != DeterministicRNG(seed=4).child("genetic").seed


def test_from_optional_keeps_given_seed_and_draws_otherwise() -> None:
    assert DeterministicRNG.from_optional(12).seed == 12
    assert isinstance(DeterministicRNG.from_optional(None).seed, int)

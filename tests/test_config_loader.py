"""Tests for job loading and validation."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from configs.loader import ConfigLoader, OptimizationJob
from engine.layered import LayeredOptimizer
from search.space import Range


EXAMPLE_PATH = Path(__file__).resolve().parents[1] / "configs" / "example_layered.yaml"


def _job_payload(**overrides) -> dict:
    payload = {
        "name": "demo",
        "parameter_space": {"x": {"min": 0, "max": 1, "step": 0.5}},
        "seed": 1,
        "genetic": {"population_size": 8, "generations": 3},
        "note": "demo",
    }
    payload.update(overrides)
    return payload


def test_load_json_config(tmp_path) -> None:
    config_path = tmp_path / "job.json"
    config_path.write_text(json.dumps(_job_payload()), encoding="utf-8")

    job = ConfigLoader.load(config_path)

    assert job.name == "demo"
    assert job.seed == 1
    assert job.parameter_space == {"x": Range(0, 1, 0.5)}
    assert job.config.genetic.population_size == 8
    assert job.config.genetic.tournament_size == 5
    assert job.config.refinement.search_radius == 0.8
    assert job.get("note") == "demo"
    assert job.get("missing", "fallback") == "fallback"


def test_load_yaml_example_job() -> None:
    job = ConfigLoader.load(EXAMPLE_PATH)

    assert job.parameter_paths() == ["weights.volume", "weights.distance", "penalty"]
    assert job.config.genetic.population_size == 40
    assert job.config.refinement.step_scale == 0.5
    assert job.base_config


def test_load_many_jobs_list(tmp_path) -> None:
    config_path = tmp_path / "batch.yaml"
    config_path.write_text(
        "jobs:\n"
        "  - parameter_space: {x: {min: 0, max: 1, step: 0.5}}\n"
        "    genetic: {generations: 5}\n"
        "  - parameter_space: {y: {min: -1, max: 1, step: 1}}\n"
        "    genetic: {generations: 6}\n",
        encoding="utf-8",
    )

    jobs = ConfigLoader.load_many(config_path)

    assert len(jobs) == 2
    assert jobs[1].config.genetic.generations == 6
    assert jobs[1].parameter_paths() == ["y"]


def test_load_many_accepts_top_level_list_and_single_mapping(tmp_path) -> None:
    list_path = tmp_path / "list.json"
    list_path.write_text(json.dumps([_job_payload(), _job_payload(seed=2)]), encoding="utf-8")
    single_path = tmp_path / "single.json"
    single_path.write_text(json.dumps(_job_payload()), encoding="utf-8")

    assert [job.seed for job in ConfigLoader.load_many(list_path)] == [1, 2]
    assert len(ConfigLoader.load_many(single_path)) == 1


def test_invalid_config_missing_required_key(tmp_path) -> None:
    config_path = tmp_path / "invalid.json"
    config_path.write_text(json.dumps({"seed": 1}), encoding="utf-8")

    with pytest.raises(ValueError, match="Missing required config keys: parameter_space"):
        ConfigLoader.load(config_path)


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"genetic": {"populaton_size": 8}}, "Unknown keys in 'genetic': populaton_size"),
        ({"refinement": {"search_radius": -1}}, "search_radius"),
        ({"seed": "one"}, "seed must be an integer"),
        ({"base_config": [1, 2]}, "base_config must be a mapping"),
        ({"genetic": "fast"}, "'genetic' must be a mapping"),
        ({"parameter_space": {"x": {"min": 1, "max": 0, "step": 1}}}, "Invalid parameter range"),
        ({"parameter_space": {}}, "at least one range"),
    ],
)
def test_invalid_job_values_are_rejected(tmp_path, overrides: dict, message: str) -> None:
    config_path = tmp_path / "job.json"
    config_path.write_text(json.dumps(_job_payload(**overrides)), encoding="utf-8")

    with pytest.raises(ValueError, match=message):
        ConfigLoader.load(config_path)


def test_unsupported_and_malformed_files(tmp_path) -> None:
    text_path = tmp_path / "job.txt"
    text_path.write_text("parameter_space: {}", encoding="utf-8")
    broken_path = tmp_path / "job.json"
    broken_path.write_text("{not json", encoding="utf-8")
    scalar_path = tmp_path / "job.yaml"
    scalar_path.write_text("just a string\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Unsupported config extension"):
        ConfigLoader.load(text_path)
    with pytest.raises(ValueError, match="Invalid JSON"):
        ConfigLoader.load(broken_path)
    with pytest.raises(ValueError, match="must contain a mapping"):
        ConfigLoader.load(scalar_path)


def test_build_optimizer_pairs_job_with_scoring_function() -> None:
    job = ConfigLoader.from_mapping(_job_payload(base_config={"fixed": True}))

    optimizer = job.build_optimizer(lambda config: -config["x"])

    assert isinstance(job, OptimizationJob)
    assert isinstance(optimizer, LayeredOptimizer)
    assert optimizer.base_config == {"fixed": True}
    assert optimizer.rng.seed == 1
    assert list(optimizer.ranges) == ["x"]

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from costbench.config import (
    apply_properties, default_config, load_properties, parse_properties,
    small_config,
)
from costbench.errors import WorkloadError


def test_defaults():
    config = default_config()
    assert config.request_distribution == "uniform"
    assert set(config.cost_tiers) == {"HIGH", "MID", "LOW"}
    # default tiers stay inside the histogram range
    assert all(t.cost_max <= 450 for t in config.cost_tiers.values())


def test_expected_new_keys():
    config = small_config()
    config.operation_count = 1000
    config.mix.memset_proportion = 0.1
    assert config.expected_new_keys == 200


def test_apply_field_names_and_aliases():
    config = default_config()
    apply_properties(config, {
        "record_count": "100",
        "operationcount": "200",
        "requestdistribution": "zipfian",
        "memset_proportion": "1.0",
        "memget_proportion": "0",
        "default_set": "true",
        "zipfian_constant": "0.5",
    })
    assert config.record_count == 100
    assert config.operation_count == 200
    assert config.request_distribution == "zipfian"
    assert config.mix.memset_proportion == 1.0
    assert config.mix.memget_proportion == 0.0
    assert config.default_set is True
    assert config.zipfian_constant == 0.5


def test_apply_tier_properties():
    config = default_config()
    apply_properties(config, {
        "high_cost_prob": "0.5",
        "high_cost_min": "10",
        "high_cost_max": "20",
        "low_value_length": "8",
    })
    assert config.high_cost.prob == 0.5
    assert config.high_cost.cost_min == 10
    assert config.high_cost.cost_max == 20
    assert config.low_cost.value_length == 8


def test_apply_rejects_bad_input():
    with pytest.raises(WorkloadError):
        apply_properties(default_config(), {"no_such_thing": "1"})
    with pytest.raises(WorkloadError):
        apply_properties(default_config(), {"record_count": "many"})
    with pytest.raises(WorkloadError):
        apply_properties(default_config(), {"default_set": "maybe"})
    with pytest.raises(WorkloadError):
        apply_properties(default_config(), {"mix": "x"})


def test_parse_properties():
    props = parse_properties([
        "# workload c",
        "",
        "recordcount=1000",
        "requestdistribution = latest ",
    ])
    assert props == {"recordcount": "1000", "requestdistribution": "latest"}

    with pytest.raises(WorkloadError):
        parse_properties(["garbage"])


def test_named_proportions_replace_mix():
    config = apply_properties(default_config(), {"memset_proportion": "1.0"})
    assert config.mix.memset_proportion == 1.0
    assert config.mix.memget_proportion == 0.0

    # properties that do not name a proportion leave the mix alone
    config = apply_properties(default_config(), {"recordcount": "5"})
    assert config.mix.memget_proportion == 0.95
    assert config.mix.memset_proportion == 0.05


def test_load_properties(tmp_path):
    path = tmp_path / "workload.properties"
    path.write_text("threads=4\nmemget_proportion=0.5\n")
    config = apply_properties(default_config(), load_properties(str(path)))
    assert config.thread_count == 4
    assert config.mix.memget_proportion == 0.5


if __name__ == "__main__":
    test_defaults()
    test_expected_new_keys()
    test_apply_field_names_and_aliases()
    test_apply_tier_properties()
    test_apply_rejects_bad_input()
    test_parse_properties()
    test_named_proportions_replace_mix()
    print("all config tests passed")

from fractions import Fraction

import pytest

from kubemetrics.resource import (
    Quantity,
    one_attribute_per_allocatable,
    one_attribute_per_capacity,
    parse_quantity,
)


def _raw_resources():
    return {
        "cpu": parse_quantity("1985m"),
        "pods": Quantity(110),
        "ephemeral-storage": Quantity(18211580000),
        "storage": Quantity(18211580000),
        "memory": Quantity(2033280000),
        "replicationcontrollers": Quantity(1),
        "beta.newrelic.com/test-name": parse_quantity("10985m"),
        "alpha.newrelic.com/test-name": Quantity(111),
    }


@pytest.mark.parametrize(
    "transform, prefix",
    [
        (one_attribute_per_allocatable, "allocatable"),
        (one_attribute_per_capacity, "capacity"),
    ],
)
def test_one_attribute_per_resource(transform, prefix):
    expected = {
        f"{prefix}CpuCores": 1.985,
        f"{prefix}Pods": 110,
        f"{prefix}EphemeralStorageBytes": 18211580000,
        f"{prefix}StorageBytes": 18211580000,
        f"{prefix}MemoryBytes": 2033280000,
        f"{prefix}Replicationcontrollers": 1,
        f"{prefix}BetaNewrelicComTestName": 11,
        f"{prefix}AlphaNewrelicComTestName": 111,
    }
    assert transform(_raw_resources()) == expected


def test_cpu_is_float_and_others_int():
    result = one_attribute_per_capacity(_raw_resources())
    assert (type(result["capacityCpuCores"]), result["capacityCpuCores"]) == (float, 1.985)
    assert (type(result["capacityPods"]), result["capacityPods"]) == (int, 110)
    assert (type(result["capacityBetaNewrelicComTestName"]), result["capacityBetaNewrelicComTestName"]) == (int, 11)


def test_non_resource_mapping_raises():
    with pytest.raises(TypeError, match="creating resource allocatable attributes"):
        one_attribute_per_allocatable({"cpu": "2"})
    with pytest.raises(TypeError, match="creating resource capacity attributes"):
        one_attribute_per_capacity("not a mapping")


@pytest.mark.parametrize(
    "text, amount",
    [
        ("1985m", Fraction(1985, 1000)),
        ("100Mi", Fraction(104857600)),
        ("1.5Gi", Fraction(3 * 2**29)),
        ("2e3", Fraction(2000)),
        ("2k", Fraction(2000)),
        ("110", Fraction(110)),
        ("-1", Fraction(-1)),
        (".5", Fraction(1, 2)),
    ],
)
def test_parse_quantity(text, amount):
    assert parse_quantity(text).amount == amount


@pytest.mark.parametrize("text", ["", "abc", "10Xi", "1.2.3", "m"])
def test_parse_quantity_invalid(text):
    with pytest.raises(ValueError):
        parse_quantity(text)


def test_quantity_values_round_up():
    quantity = parse_quantity("10985m")
    assert quantity.value() == 11
    assert quantity.milli_value() == 10985
    assert quantity.as_approximate_float() == 10.985


def test_milli_value_of_cpu_request():
    assert parse_quantity("100m").milli_value() == 100
    assert parse_quantity("2").milli_value() == 2000
    assert parse_quantity("1n").milli_value() == 1
import pytest

from kubemetrics.transform import one_metric_per_label, prefix_from_map_int


def test_one_metric_per_label():
    labels = {"1": "1", "2": "2", "3": "3"}
    expected = {"label.1": "1", "label.2": "2", "label.3": "3"}
    assert one_metric_per_label(labels) == expected


def test_one_metric_per_label_empty():
    assert one_metric_per_label({}) == {}


@pytest.mark.parametrize("value", [None, "labels", {"a": 1}, ["a"]])
def test_one_metric_per_label_rejects_wrong_type(value):
    with pytest.raises(TypeError, match="error on creating kubelet label metrics"):
        one_metric_per_label(value)


def test_prefix_from_map_int():
    transform = prefix_from_map_int("condition.")
    result = transform({"Ready": 1, "DiskPressure": 0, "Odd": -1})
    assert result == {"condition.Ready": 1, "condition.DiskPressure": 0, "condition.Odd": -1}


def test_prefix_from_map_int_keeps_key_count():
    source = {str(n): n for n in range(10)}
    result = prefix_from_map_int("p")(source)
    assert len(result) == len(source)
    assert all(key.startswith("p") for key in result)


@pytest.mark.parametrize("value", [None, {"a": "1"}, {"a": True}, [1, 2]])
def test_prefix_from_map_int_rejects_wrong_type(value):
    with pytest.raises(TypeError, match="cannot make prefixes"):
        prefix_from_map_int("x.")(value)
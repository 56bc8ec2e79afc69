import json

import pytest

from sparenode.api import InvokeFunction, Resources


def _request(**overrides):
    values = dict(
        function="mandelbrot",
        image="/images/nanosvm",
        vcpus=2,
        memory=256,
        payload="test",
        emergency=False,
        hops=0,
    )
    values.update(overrides)
    return InvokeFunction(**values)


def test_invoke_to_dict_has_wire_field_names():
    data = _request().to_dict()
    assert set(data) == {
        "function",
        "image",
        "vcpus",
        "memory",
        "payload",
        "emergency",
        "hops",
    }
    assert data["function"] == "mandelbrot"
    assert data["vcpus"] == 2


def test_invoke_round_trip_through_json():
    original = _request(emergency=True, hops=3)
    restored = InvokeFunction.from_dict(json.loads(json.dumps(original.to_dict())))
    assert restored == original


def test_invoke_missing_field_is_rejected():
    body = (
        '{"function":"mandelbrot","image":"/home/ubuntu/.ops/images/nanosvm",'
        '"vcpus":8,"memory":256, "payload": "test"}'
    )
    with pytest.raises(ValueError, match="emergency"):
        InvokeFunction.from_dict(json.loads(body))


def test_invoke_wrong_type_is_rejected():
    data = _request().to_dict()
    data["vcpus"] = "two"
    with pytest.raises(ValueError):
        InvokeFunction.from_dict(data)


def test_invoke_bool_is_not_an_int():
    data = _request().to_dict()
    data["hops"] = True
    with pytest.raises(ValueError):
        InvokeFunction.from_dict(data)


def test_resources_round_trip():
    resources = Resources(cpus=4, memory=1024)
    assert Resources.from_dict(resources.to_dict()) == resources
    assert resources.to_dict() == {"cpus": 4, "memory": 1024}


def test_resources_negative_rejected():
    with pytest.raises(ValueError):
        Resources.from_dict({"cpus": -1, "memory": 10})


def test_resources_missing_field_rejected():
    with pytest.raises(ValueError, match="memory"):
        Resources.from_dict({"cpus": 1})
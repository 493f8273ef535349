import json

import pytest
import yaml
from saj.saj_serialize import serialize, deserialize, detect_format
from saj.saj_datatypes import ProcedureClosure, Procedure, Variable, Environment, Number


def test_detect_format():
    assert detect_format('  {"a": 1}') == "json"
    assert detect_format("[1]") == "json"
    assert detect_format("a: 1") == "yaml"
    assert detect_format("   ") is None


def test_deserialize_json_and_yaml():
    assert deserialize('{"type": "number", "value": 1}') == {"type": "number", "value": 1}
    assert deserialize(b'[1, 2]') == [1, 2]
    assert deserialize("type: string\nvalue: hi\n") == {"type": "string", "value": "hi"}
    assert deserialize("a: 1", fmt="yaml") == {"a": 1}


def test_deserialize_invalid_raises_value_error():
    with pytest.raises(ValueError):
        deserialize("{ not: [valid")


def test_serialize_closure_as_procedure():
    closure = ProcedureClosure(Procedure(["x"], Variable("x")), Environment())
    out = json.loads(serialize({"f": closure}, pretty=False))
    assert out["f"]["type"] == "procedureClosure"
    assert out["f"]["procedure"]["inputs"] == ["x"]


def test_serialize_node_and_yaml():
    assert json.loads(serialize(Number(2))) == {"type": "number", "value": 2}
    assert yaml.safe_load(serialize({"a": [1, 2]}, fmt="yaml")) == {"a": [1, 2]}


def test_serialize_unknown_format():
    with pytest.raises(ValueError):
        serialize(1, fmt="toml")

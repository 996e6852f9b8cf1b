import pytest

from docshell.shell_handles import DatabaseHandle
from docshell.shell_serialize import deserialize, detect_format, serialize, stringify, to_wire


def test_json_roundtrip():
    value = {"a": 1, "b": [1, 2, "x"], "c": {"d": True}}
    s = serialize(value, fmt="json")
    out = deserialize(s)  # JSON is sniffed from leading "{"
    assert out == value


def test_yaml_roundtrip_content_type():
    value = {"a": 1, "b": ["x", "y"], "c": {"d": 2}}
    s = serialize(value, fmt="yaml")
    out = deserialize(s, content_type="application/x-yaml")
    assert out == value


def test_yaml_with_json_content_type_fallback():
    # YAML payload mislabeled as JSON should still load via fallback to YAML
    yaml_text = "a: 1\nb: [x, y]\n"
    out = deserialize(yaml_text, content_type="application/json")
    assert out == {"a": 1, "b": ["x", "y"]}


def test_unknown_format_returns_text():
    assert deserialize(b"plain words", content_type="text/plain") == "plain words"
    assert detect_format("text/plain", "<xml/>") is None
    with pytest.raises(ValueError):
        serialize({}, fmt="toml")


def test_charset_from_content_type():
    data = "{\"k\": \"é\"}".encode("latin-1")
    assert deserialize(data, content_type="application/json; charset=latin-1") == {"k": "é"}


def test_to_wire_normalizes_handles_and_tuples():
    db = DatabaseHandle("shop", "h", 1)
    assert to_wire({"c": db.users, "t": (1, (2, 3)), 5: "x"}) == {
        "c": {"db": {"name": "shop", "address": "h", "port": 1}, "name": "users"},
        "t": [1, [2, 3]],
        "5": "x",
    }


def test_stringify_is_compact_json():
    assert stringify({"a": [1, "b"]}) == '{"a":[1,"b"]}'
    assert stringify("x") == '"x"'
    assert stringify(None) == "null"
    assert stringify({1, 2}) == repr({1, 2})

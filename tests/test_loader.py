"""
Tests for YAML machine definitions.
"""

import pytest

from fsm_engine import DefinitionError, MachineLoader

DOOR_YAML = """
name: door
initial: closed
transitions:
  closed: [open, locked]
  open: [closed]
  locked: closed
"""


def test_from_file(tmp_path, config, registry):
    path = tmp_path / "door.yaml"
    path.write_text(DOOR_YAML)

    sm = MachineLoader.from_file(path, config=config, registry=registry)

    assert sm.name == "door"
    assert sm.current_state() == "closed"
    assert sm.transitions() == {
        "closed": frozenset({"open", "locked"}),
        "open": frozenset({"closed"}),
        "locked": frozenset({"closed"}),
    }
    assert sm.transition("open")


def test_name_defaults_to_file_stem(tmp_path, config):
    path = tmp_path / "turnstile.yaml"
    path.write_text("transitions:\n  idle: [busy]\n")
    assert MachineLoader.from_file(path, config=config).name == "turnstile"


def test_connect_all(config):
    sm = MachineLoader.from_dict({
        "name": "mesh",
        "connect_all": {"states": ["a", "b"], "include_self": True},
    }, config=config)
    assert sm.has_transition("a", "a")
    assert sm.has_transition("b", "a")


def test_connect_all_as_list(config):
    sm = MachineLoader.from_dict({"connect_all": ["a", "b"]}, config=config)
    assert sm.has_transition("a", "b")
    assert not sm.has_transition("a", "a")


def test_empty_target_list_ignored(config):
    sm = MachineLoader.from_dict({"transitions": {"end": None}}, config=config)
    assert sm.transitions() == {}


@pytest.mark.parametrize("data", [
    ["not", "a", "mapping"],
    {"transitions": ["a", "b"]},
    {"connect_all": {"include_self": True}},
    {"transitions": {"closed": [["a"]]}},
    {"transitions": {"closed": {"open": 1}}},
    {"connect_all": [["a", "b"]]},
    {"initial": ["closed"]},
])
def test_malformed_definitions(data, config):
    with pytest.raises(DefinitionError):
        MachineLoader.from_dict(data, config=config)


def test_invalid_yaml(tmp_path, config):
    path = tmp_path / "broken.yaml"
    path.write_text("transitions: [unclosed\n")
    with pytest.raises(DefinitionError):
        MachineLoader.from_file(path, config=config)


def test_empty_file(tmp_path, config):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    with pytest.raises(DefinitionError):
        MachineLoader.from_file(path, config=config)


def test_nested_list_target_in_file(tmp_path, config):
    path = tmp_path / "nested.yaml"
    path.write_text("transitions:\n  closed: [[a]]\n")
    with pytest.raises(DefinitionError, match="closed"):
        MachineLoader.from_file(path, config=config)

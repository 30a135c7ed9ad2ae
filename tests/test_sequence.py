"""
Tests for sequence pattern detection.
"""

import pytest

from fsm_engine import InvalidRegistrationError, StateMachine


@pytest.fixture
def toggle(machine):
    machine.add_all_transitions(["A", "B"], include_self=True)
    return machine


def drive(sm, states):
    for state in states:
        assert sm.transition(state)


def test_pattern_fires_for_each_occurrence(toggle):
    matches = []
    toggle.on_sequence(["A", "B", "A"], matches.append)

    drive(toggle, ["A", "B", "A", "B", "A"])

    assert matches == [("A", "B", "A"), ("A", "B", "A")]


def test_overlapping_pairs_each_fire(toggle):
    matches = []
    toggle.on_sequence(["A", "A"], matches.append)

    drive(toggle, ["B", "A", "A", "A"])

    assert len(matches) == 2


def test_partial_match_does_not_fire(toggle):
    matches = []
    toggle.on_sequence(["A", "B", "A"], matches.append)

    drive(toggle, ["A", "B", "B", "A"])

    assert matches == []


def test_matches_by_equality(toggle):
    matches = []
    toggle.on_sequence(("A", "B"), matches.append)
    drive(toggle, ["A", "".join(["B"])])
    assert matches == [("A", "B")]


def test_pattern_uses_routed_states(toggle):
    matches = []
    toggle.on_sequence(["A", "A"], matches.append)
    toggle.route_before_entering("B", lambda current, proposed: "A")

    drive(toggle, ["A", "B"])

    assert matches == [("A", "A")]


def test_sequence_runs_after_all_handlers(toggle):
    order = []
    toggle.on_sequence(["A"], lambda matched: order.append("sequence"))
    toggle.on_transition(lambda a, b: order.append("transition"))
    toggle.on_entering(lambda state: order.append("enter"))

    drive(toggle, ["B", "A"])

    assert order == ["enter", "enter", "transition", "sequence"]


def test_release_stops_matches(toggle):
    matches = []
    registration = toggle.on_sequence(["A"], matches.append)
    drive(toggle, ["A"])
    registration.release()
    registration.release()
    drive(toggle, ["A"])
    assert matches == [("A",)]


def test_empty_pattern_rejected(toggle):
    with pytest.raises(InvalidRegistrationError):
        toggle.on_sequence([], lambda matched: None)


def test_non_callable_sequence_handler_rejected(toggle):
    with pytest.raises(InvalidRegistrationError):
        toggle.on_sequence(["A"], None)


def test_handler_object(toggle):
    class Watcher:
        def __init__(self):
            self.seen = []

        def on_match(self, pattern):
            self.seen.append(pattern)

    watcher = Watcher()
    toggle.on_sequence(["A", "B"], watcher)
    drive(toggle, ["A", "B"])
    assert watcher.seen == [("A", "B")]


def test_long_pattern_extends_history(config, registry):
    config.history_size = 2
    sm = StateMachine("long", config=config, registry=registry)
    sm.add_all_transitions(["A", "B"])
    matches = []
    sm.on_sequence(["A", "B", "A", "B"], matches.append)

    drive(sm, ["A", "B", "A", "B"])

    assert matches == [("A", "B", "A", "B")]
    assert len(sm.history()) == 4


def test_reset_clears_history_for_matching(toggle):
    matches = []
    toggle.on_sequence(["A", "B"], matches.append)
    drive(toggle, ["A"])
    toggle.reset()
    drive(toggle, ["B"])
    assert matches == []


def test_failing_sequence_handler_propagates(toggle):
    later = []

    def broken(matched):
        raise RuntimeError("pattern handler")

    toggle.on_sequence(["A"], broken)
    toggle.on_sequence(["A"], later.append)

    with pytest.raises(RuntimeError):
        toggle.transition("A")
    assert later == [("A",)]
    assert toggle.current_state() == "A"

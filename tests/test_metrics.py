"""
Tests for Prometheus metrics.
"""

import threading
import time

from prometheus_client import CollectorRegistry

from fsm_engine import EngineConfig, StateMachine
from fsm_engine.metrics import metric_prefix


def test_transitions_counted_per_edge(door, registry):
    door.transition("open")
    door.transition("closed")
    door.transition("open")

    value = registry.get_sample_value(
        'door_transitions_total', {'from_state': 'closed', 'to_state': 'open'}
    )
    assert value == 2.0
    assert registry.get_sample_value('door_transition_latency_seconds_count') == 3.0


def test_latency_excludes_waiting_for_the_lock(door, registry):
    inside = threading.Event()

    def slow(state):
        inside.set()
        time.sleep(0.3)

    door.on_entering("open", slow)
    opener = threading.Thread(target=door.transition, args=("open",))
    opener.start()
    assert inside.wait(5)

    closer = threading.Thread(target=door.transition, args=("closed",))
    closer.start()
    opener.join()
    closer.join()

    assert door.current_state() == "closed"
    assert registry.get_sample_value(
        'door_transition_latency_seconds_bucket', {'le': '0.1'}
    ) == 2.0
    assert registry.get_sample_value('door_transition_latency_seconds_count') == 2.0


def test_rejections_counted_by_reason(door, registry):
    door.transition("ajar")
    door.route_before_entering("open", lambda current, proposed: "ajar")
    door.transition("open")

    assert registry.get_sample_value('door_rejected_transitions_total', {'reason': 'illegal'}) == 1.0
    assert registry.get_sample_value(
        'door_rejected_transitions_total', {'reason': 'routed_illegal'}
    ) == 1.0


def test_current_state_info(door, registry):
    door.transition("locked")
    assert registry.get_sample_value(
        'door_state_info', {'state': 'locked', 'previous_state': 'closed'}
    ) == 1.0


def test_machines_with_same_name_do_not_collide(config):
    first = StateMachine("twin", config=config)
    second = StateMachine("twin", config=config)
    first.transition("a")
    assert first.metrics.registry is not second.metrics.registry


def test_shared_registry(config):
    shared = CollectorRegistry()
    StateMachine("left", config=config, registry=shared).transition("x")
    StateMachine("right", config=config, registry=shared).transition("y")
    assert shared.get_sample_value('left_transitions_total', {'from_state': '', 'to_state': 'x'}) == 1.0
    assert shared.get_sample_value('right_transitions_total', {'from_state': '', 'to_state': 'y'}) == 1.0


def test_metrics_can_be_disabled(registry):
    sm = StateMachine("quiet", config=EngineConfig(metrics_enabled=False), registry=registry)
    assert sm.metrics is None
    assert sm.transition("a")
    assert registry.get_sample_value('quiet_transitions_total', {'from_state': '', 'to_state': 'a'}) is None


def test_metric_prefix():
    assert metric_prefix("Cruise-Control") == "cruise_control"
    assert metric_prefix("2fast") == "fsm_2fast"
    assert metric_prefix("door") == "door"

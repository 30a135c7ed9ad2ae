"""
Tests for environment configuration.
"""

import pytest

from fsm_engine import EngineConfig, StateMachine


def test_defaults(monkeypatch):
    for name in ["FSM_MAX_ROUTING_PASSES", "FSM_HISTORY_SIZE", "FSM_METRICS_ENABLED", "FSM_DEBUG"]:
        monkeypatch.delenv(name, raising=False)

    config = EngineConfig.from_env()

    assert config.max_routing_passes is None
    assert config.history_size == 20
    assert config.metrics_enabled is True
    assert config.debug is False


def test_from_env(monkeypatch):
    monkeypatch.setenv("FSM_MAX_ROUTING_PASSES", "5")
    monkeypatch.setenv("FSM_HISTORY_SIZE", "3")
    monkeypatch.setenv("FSM_METRICS_ENABLED", "false")
    monkeypatch.setenv("FSM_DEBUG", "TRUE")

    config = EngineConfig.from_env()

    assert config.max_routing_passes == 5
    assert config.history_size == 3
    assert config.metrics_enabled is False
    assert config.debug is True


def test_blank_pass_limit_means_default(monkeypatch):
    monkeypatch.setenv("FSM_MAX_ROUTING_PASSES", " ")
    assert EngineConfig.from_env().max_routing_passes is None


def test_invalid_values_rejected():
    with pytest.raises(ValueError):
        EngineConfig(max_routing_passes=0)
    with pytest.raises(ValueError):
        EngineConfig(history_size=-1)


def test_machine_reads_env_when_no_config(monkeypatch):
    monkeypatch.setenv("FSM_METRICS_ENABLED", "false")
    sm = StateMachine("env")
    assert sm.metrics is None


def test_debug_logs_routing(caplog):
    sm = StateMachine("debug", initial_state="a", config=EngineConfig(debug=True, metrics_enabled=False))
    sm.add_transitions("a", ["b", "c"])
    sm.route_before_entering("b", lambda current, proposed: "c")

    with caplog.at_level("DEBUG", logger="fsm_engine"):
        sm.transition("b")

    assert "redirected 'b' -> 'c'" in caplog.text

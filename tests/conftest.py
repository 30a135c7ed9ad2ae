import pytest
from prometheus_client import CollectorRegistry

from fsm_engine import EngineConfig, StateMachine


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def machine(config, registry):
    """Empty machine, no initial state"""
    return StateMachine("test", config=config, registry=registry)


@pytest.fixture
def door(config, registry):
    """closed <-> open, closed <-> locked, starting closed"""
    sm = StateMachine("door", initial_state="closed", config=config, registry=registry)
    sm.add_transitions("closed", ["open", "locked"])
    sm.add_transition("open", "closed")
    sm.add_transition("locked", "closed")
    return sm

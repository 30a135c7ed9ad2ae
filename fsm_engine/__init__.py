"""
FSM Engine

An embeddable state machine with routers, sequence detection and Prometheus metrics.
"""

__version__ = "0.1.0"

from .config import EngineConfig
from .core import StateMachine
from .errors import (
    StateMachineError,
    InvalidRegistrationError,
    InitialStateFrozenError,
    RoutingLoopError,
    DefinitionError,
    RejectionReason,
)
from .handlers import HandlerRegistration, StateHandler, TransitionHandler
from .routing import StateRouter
from .sequence import SequenceHandler
from .loader import MachineLoader
from .wrapped import WrappedStateMachine, TokenStateMachine, StateToken

__all__ = [
    "StateMachine",
    "EngineConfig",
    "HandlerRegistration",
    "StateHandler",
    "TransitionHandler",
    "StateRouter",
    "SequenceHandler",
    "RejectionReason",
    "StateMachineError",
    "InvalidRegistrationError",
    "InitialStateFrozenError",
    "RoutingLoopError",
    "DefinitionError",
    "MachineLoader",
    "WrappedStateMachine",
    "TokenStateMachine",
    "StateToken",
]

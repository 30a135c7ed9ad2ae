"""
Exceptions raised by the state machine engine.
"""

from enum import Enum


class RejectionReason(Enum):
    """Why a transition request did not change the current state"""
    ILLEGAL = "illegal"                # requested edge not declared
    ROUTED_ILLEGAL = "routed_illegal"  # routers picked a non-adjacent state
    ROUTING_LOOP = "routing_loop"      # routers never settled
    SUPERSEDED = "superseded"          # a nested transition moved the machine first


class StateMachineError(Exception):
    """Base class for engine errors"""
    pass


class InvalidRegistrationError(StateMachineError, ValueError):
    """A handler, router or pattern was rejected at registration time"""
    pass


class InitialStateFrozenError(StateMachineError):
    """The initial state cannot change once transitions have happened"""
    pass


class RoutingLoopError(StateMachineError):
    """Router chain did not reach a fixed point within the pass limit"""

    def __init__(self, requested, last_target, passes: int):
        super().__init__(
            f"routing for {requested!r} did not settle after {passes} passes "
            f"(last target {last_target!r})"
        )
        self.requested = requested
        self.last_target = last_target
        self.passes = passes


class DefinitionError(StateMachineError):
    """A machine definition document is malformed"""
    pass

"""
Adapter that lets arbitrary domain values act as states.

The engine only ever sees canonical tokens. Each distinct domain value is
wrapped once and the token is cached, so repeated calls with equal values
reach the same engine state.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

from prometheus_client import CollectorRegistry

from .config import EngineConfig
from .core import StateMachine
from .handlers import HandlerRegistration, StateHandler, TransitionHandler, coerce_callback
from .routing import StateRouter
from .sequence import SequenceHandler


class WrappedStateMachine(ABC):
    """
    Forwards every operation to an inner StateMachine, converting states.

    Subclasses define ``wrap`` and ``unwrap``. Callbacks handed to the inner
    machine are wrapped too; the wrappers compare and hash like the
    callbacks they wrap.
    """

    def __init__(self,
                 initial: Any = None,
                 name: str = "machine",
                 config: Optional[EngineConfig] = None,
                 registry: Optional[CollectorRegistry] = None):
        self._cache: Dict[Any, Any] = {}
        self.machine = StateMachine(name, config=config, registry=registry)
        if initial is not None:
            self.machine.set_initial_state(self._wrap(initial))

    @abstractmethod
    def wrap(self, value: Any) -> Any:
        """Create the engine token for a domain value"""

    @abstractmethod
    def unwrap(self, token: Any) -> Any:
        """Recover the domain value from an engine token"""

    def _wrap(self, value: Any) -> Any:
        if value is None:
            return None
        token = self._cache.get(value)
        if token is None:
            token = self.wrap(value)
            self._cache[value] = token
        return token

    def _unwrap(self, token: Any) -> Any:
        return None if token is None else self.unwrap(token)

    def _wrap_all(self, values: Iterable[Any]) -> List[Any]:
        if isinstance(values, (str, bytes)):
            values = [values]
        return [self._wrap(value) for value in values]

    # state

    def current_state(self) -> Any:
        return self._unwrap(self.machine.current_state())

    def initial_state(self) -> Any:
        return self._unwrap(self.machine.initial_state())

    def set_initial_state(self, value: Any) -> None:
        self.machine.set_initial_state(self._wrap(value))

    def transition(self, value: Any) -> bool:
        return self.machine.transition(self._wrap(value))

    def transition_count(self) -> int:
        return self.machine.transition_count()

    def history(self) -> Tuple[Any, ...]:
        return tuple(self._unwrap(token) for token in self.machine.history())

    def reset(self) -> None:
        self.machine.reset()

    # graph

    def add_transition(self, from_value: Any, to_value: Any, handler: Any = None) -> bool:
        return self.machine.add_transition(
            self._wrap(from_value), self._wrap(to_value), self._transition_callback(handler)
        )

    def add_transitions(self, from_value: Any, to_values: Iterable[Any], handler: Any = None) -> bool:
        return self.machine.add_transitions(
            self._wrap(from_value), self._wrap_all(to_values), self._transition_callback(handler)
        )

    def add_all_transitions(self, values: Iterable[Any], include_self: bool = False) -> None:
        self.machine.add_all_transitions(self._wrap_all(values), include_self)

    def remove_transitions(self, from_value: Any, to_values: Iterable[Any]) -> bool:
        return self.machine.remove_transitions(self._wrap(from_value), self._wrap_all(to_values))

    # handlers

    def on_entering(self, *args) -> HandlerRegistration:
        return self.machine.on_entering(*self._state_args(args))

    def on_exiting(self, *args) -> HandlerRegistration:
        return self.machine.on_exiting(*self._state_args(args))

    def on_transition(self, *args) -> HandlerRegistration:
        *states, handler = args
        return self.machine.on_transition(
            *[self._wrap(s) for s in states], self._transition_callback(handler)
        )

    def route_on_transition(self, *args) -> HandlerRegistration:
        *states, router = args
        return self.machine.route_on_transition(
            *[self._wrap(s) for s in states], _RouterWrapper(self, router)
        )

    def route_before_entering(self, to_value: Any, router: Any) -> HandlerRegistration:
        return self.machine.route_before_entering(self._wrap(to_value), _RouterWrapper(self, router))

    def route_after_exiting(self, from_value: Any, router: Any) -> HandlerRegistration:
        return self.machine.route_after_exiting(self._wrap(from_value), _RouterWrapper(self, router))

    def on_sequence(self, pattern: Iterable[Any], handler: Any) -> HandlerRegistration:
        return self.machine.on_sequence(self._wrap_all(pattern), _SequenceWrapper(self, handler))

    def _state_args(self, args: tuple) -> tuple:
        *states, handler = args
        return (*[self._wrap(s) for s in states], _StateCallbackWrapper(self, handler))

    def _transition_callback(self, handler: Any):
        if handler is None:
            return None
        return _TransitionCallbackWrapper(self, handler)

    def __str__(self):
        return str(self.machine)


class _CallbackWrapper:
    """Converts engine tokens back to domain values around a user callback"""

    protocol: type = object
    method = ""
    kind = ""

    def __init__(self, owner: WrappedStateMachine, callback: Any):
        self.owner = owner
        self.callback = callback
        self._call = coerce_callback(callback, self.protocol, self.method, self.kind)

    def __eq__(self, other):
        if not isinstance(other, _CallbackWrapper):
            return NotImplemented
        return self.callback == other.callback

    def __hash__(self):
        return hash(self.callback)

    def __repr__(self):
        return f"<{type(self).__name__} {self.callback!r}>"


class _StateCallbackWrapper(_CallbackWrapper):
    protocol = StateHandler
    method = "on_state"
    kind = "state"

    def on_state(self, state):
        self._call(self.owner._unwrap(state))


class _TransitionCallbackWrapper(_CallbackWrapper):
    protocol = TransitionHandler
    method = "on_transition"
    kind = "transition"

    def on_transition(self, from_state, to_state):
        self._call(self.owner._unwrap(from_state), self.owner._unwrap(to_state))


class _RouterWrapper(_CallbackWrapper):
    protocol = StateRouter
    method = "route"
    kind = "router"

    def route(self, current, proposed):
        decision = self._call(self.owner._unwrap(current), self.owner._unwrap(proposed))
        return self.owner._wrap(decision)


class _SequenceWrapper(_CallbackWrapper):
    protocol = SequenceHandler
    method = "on_match"
    kind = "sequence"

    def on_match(self, pattern):
        self._call(tuple(self.owner._unwrap(token) for token in pattern))


class StateToken:
    """Canonical engine-side identity for one domain value"""

    __slots__ = ("value",)

    def __init__(self, value: Any):
        self.value = value

    @property
    def name(self) -> str:
        return getattr(self.value, 'name', None) or str(self.value)

    def __repr__(self):
        return f"StateToken({self.value!r})"

    def __str__(self):
        return self.name


class TokenStateMachine(WrappedStateMachine):
    """WrappedStateMachine backed by StateToken instances"""

    def wrap(self, value: Any) -> StateToken:
        return StateToken(value)

    def unwrap(self, token: StateToken) -> Any:
        return token.value

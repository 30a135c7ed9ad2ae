"""
Entry, exit and transition callbacks with revocable registrations.
"""

import logging
import threading
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from typing_extensions import Protocol, runtime_checkable

from .errors import InvalidRegistrationError

logger = logging.getLogger(__name__)

State = Hashable


@runtime_checkable
class StateHandler(Protocol):
    """Called with the state being entered or exited"""

    def on_state(self, state: Any) -> None:
        ...


@runtime_checkable
class TransitionHandler(Protocol):
    """Called with the source and destination of a completed transition"""

    def on_transition(self, from_state: Any, to_state: Any) -> None:
        ...


class HandlerRegistration:
    """
    Handle returned by every registration call.

    Releasing it removes exactly the handler (or router, or sequence
    pattern) it was created for. Releasing twice is a no-op.
    """

    def __init__(self,
                 kind: str,
                 remover: Callable[["HandlerRegistration"], None],
                 lock: threading.RLock):
        self.kind = kind
        self._remover = remover
        self._lock = lock
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def release(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
            self._remover(self)

    def __repr__(self):
        status = "active" if self._active else "released"
        return f"<HandlerRegistration {self.kind} {status}>"


Entry = Tuple[HandlerRegistration, Callable[..., Any]]


def coerce_callback(handler: Any, protocol: type, method: str, kind: str) -> Callable[..., Any]:
    """
    Accept either an implementation of ``protocol`` or a plain callable.

    ``method`` names the protocol method that is called for implementations.
    Raises InvalidRegistrationError for anything else.
    """
    if isinstance(handler, protocol):
        bound = getattr(handler, method)
        if callable(bound):
            return bound
    if callable(handler):
        return handler
    raise InvalidRegistrationError(
        f"{kind} handler must be callable or define {method}(), got {handler!r}"
    )


def dispatch(phase: str, entries: List[Entry], *args) -> None:
    """
    Run every still-active handler of one phase in order.

    A failing handler does not stop the rest of the phase; the first
    failure is re-raised once the phase is done.
    """
    first_error: Optional[BaseException] = None
    for registration, callback in entries:
        # released while an earlier handler of this transition was running
        if not registration.active:
            continue
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"{phase} handler {callback!r} failed: {e}")
            if first_error is None:
                first_error = e
    if first_error is not None:
        raise first_error


class _Table:
    """Registration-ordered callbacks, global and keyed"""

    def __init__(self, kind: str, lock: threading.RLock):
        self.kind = kind
        self._lock = lock
        self._global: Dict[HandlerRegistration, Callable[..., Any]] = {}
        self._keyed: Dict[Any, Dict[HandlerRegistration, Callable[..., Any]]] = {}

    def add(self, key: Any, callback: Callable[..., Any], scoped: bool) -> HandlerRegistration:
        with self._lock:
            if scoped:
                bucket = self._keyed.setdefault(key, {})
            else:
                bucket = self._global

            def remove(registration: HandlerRegistration):
                bucket.pop(registration, None)
                if scoped and not bucket and self._keyed.get(key) is bucket:
                    del self._keyed[key]

            registration = HandlerRegistration(self.kind, remove, self._lock)
            bucket[registration] = callback
            return registration

    def lookup(self, key: Any) -> List[Entry]:
        """Scoped handlers for ``key`` first, then global ones"""
        with self._lock:
            entries = list(self._keyed.get(key, {}).items())
            entries.extend(self._global.items())
            return entries

    def __len__(self):
        with self._lock:
            return len(self._global) + sum(len(b) for b in self._keyed.values())


class HandlerRegistry:
    """Entry, exit and transition handler tables of one machine"""

    def __init__(self, lock: threading.RLock):
        self._entering = _Table("entering", lock)
        self._exiting = _Table("exiting", lock)
        self._transition = _Table("transition", lock)

    def on_entering(self, *args) -> HandlerRegistration:
        """on_entering(handler) or on_entering(state, handler)"""
        state, handler, scoped = _split_state_args("on_entering", args)
        callback = coerce_callback(handler, StateHandler, "on_state", "entering")
        return self._entering.add(state, callback, scoped)

    def on_exiting(self, *args) -> HandlerRegistration:
        """on_exiting(handler) or on_exiting(state, handler)"""
        state, handler, scoped = _split_state_args("on_exiting", args)
        callback = coerce_callback(handler, StateHandler, "on_state", "exiting")
        return self._exiting.add(state, callback, scoped)

    def on_transition(self, *args) -> HandlerRegistration:
        """on_transition(handler) or on_transition(from_state, to_state, handler)"""
        if len(args) == 1:
            callback = coerce_callback(args[0], TransitionHandler, "on_transition", "transition")
            return self._transition.add(None, callback, scoped=False)
        if len(args) == 3:
            from_state, to_state, handler = args
            callback = coerce_callback(handler, TransitionHandler, "on_transition", "transition")
            return self._transition.add((from_state, to_state), callback, scoped=True)
        raise TypeError(f"on_transition() takes 1 or 3 arguments ({len(args)} given)")

    def entering(self, state: State) -> List[Entry]:
        return self._entering.lookup(state)

    def exiting(self, state: State) -> List[Entry]:
        return self._exiting.lookup(state)

    def transitioning(self, from_state: State, to_state: State) -> List[Entry]:
        return self._transition.lookup((from_state, to_state))

    def count(self) -> int:
        return len(self._entering) + len(self._exiting) + len(self._transition)


def _split_state_args(name: str, args: tuple):
    if len(args) == 1:
        return None, args[0], False
    if len(args) == 2:
        return args[0], args[1], True
    raise TypeError(f"{name}() takes 1 or 2 arguments ({len(args)} given)")

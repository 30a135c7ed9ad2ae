"""
Core state machine: transition graph, routing, handler dispatch and history.
"""

import logging
import threading
import time
from typing import Any, Dict, FrozenSet, Hashable, Iterable, List, Optional, Set, Tuple

from prometheus_client import CollectorRegistry

from .config import EngineConfig
from .errors import InitialStateFrozenError, RejectionReason, RoutingLoopError
from .handlers import HandlerRegistration, HandlerRegistry, TransitionHandler, coerce_callback, dispatch
from .metrics import MachineMetrics
from .routing import RouterChain
from .sequence import SequenceDetector

logger = logging.getLogger(__name__)

State = Hashable


class StateMachine:
    """
    An embeddable finite state machine.

    Features:
    - Declared transition graph; undeclared moves are rejected
    - Entry, exit and transition handlers, global or per state/edge
    - Routers that may redirect a transition before it is committed
    - Sequence patterns matched against the history of entered states
    - Prometheus metrics and structured ``[SM:name]`` log lines

    Every operation holds one reentrant lock for its whole duration,
    including handler and router calls. A slow handler therefore blocks
    all other callers of this machine.
    """

    def __init__(self,
                 name: str = "machine",
                 initial_state: Optional[State] = None,
                 config: Optional[EngineConfig] = None,
                 registry: Optional[CollectorRegistry] = None):
        """
        Initialize state machine.

        Args:
            name: Name used in log lines and metric names
            initial_state: Optional starting state
            config: Engine tunables (defaults to EngineConfig.from_env())
            registry: Prometheus registry for this machine's metrics
        """
        self.name = name
        self.config = config if config is not None else EngineConfig.from_env()
        self._lock = threading.RLock()

        self._edges: Dict[State, Set[State]] = {}
        self._known_states: Set[State] = set()
        self._edge_handlers: Dict[Tuple[State, State], List[HandlerRegistration]] = {}

        self._initial_state: Optional[State] = None
        self._current_state: Optional[State] = None
        self._transition_count = 0
        # bumped whenever the current state is replaced, never reset
        self._generation = 0
        self._last_rejection: Optional[RejectionReason] = None

        self._handlers = HandlerRegistry(self._lock)
        self._routers = RouterChain(self._lock, debug=self.config.debug)
        self._sequences = SequenceDetector(self._lock, self.config.history_size)

        self.metrics: Optional[MachineMetrics] = None
        if self.config.metrics_enabled:
            self.metrics = MachineMetrics(name, registry)

        if initial_state is not None:
            self.set_initial_state(initial_state)

    # Graph store

    def add_transition(self, from_state: State, to_state: State, handler: Any = None) -> bool:
        """
        Declare the edge ``from_state -> to_state``.

        Returns False if the edge already existed. A handler, if given, is
        attached to the edge and dropped when the edge is removed.
        """
        return self.add_transitions(from_state, [to_state], handler)

    def add_transitions(self, from_state: State, to_states: Iterable[State], handler: Any = None) -> bool:
        """Declare edges from ``from_state`` to each of ``to_states``"""
        if handler is not None:
            coerce_callback(handler, TransitionHandler, "on_transition", "transition")

        added = False
        with self._lock:
            for to_state in _as_list(to_states):
                added = self._add_edge(from_state, to_state) or added
                if handler is not None:
                    registration = self._handlers.on_transition(from_state, to_state, handler)
                    self._edge_handlers.setdefault((from_state, to_state), []).append(registration)
        return added

    def add_all_transitions(self, states: Iterable[State], include_self: bool = False) -> None:
        """Connect every state to every other state, and to itself if include_self"""
        states = _as_list(states)
        with self._lock:
            for from_state in states:
                for to_state in states:
                    if from_state == to_state and not include_self:
                        continue
                    self._add_edge(from_state, to_state)

    def remove_transitions(self, from_state: State, to_states: Iterable[State]) -> bool:
        """Remove edges; True if at least one existing edge was removed"""
        removed = False
        with self._lock:
            targets = self._edges.get(from_state)
            if not targets:
                return False

            for to_state in _as_list(to_states):
                if to_state not in targets:
                    continue
                targets.discard(to_state)
                removed = True
                for registration in self._edge_handlers.pop((from_state, to_state), []):
                    registration.release()
                logger.debug(f"Removed transition: {from_state!r} -> {to_state!r}")

            if not targets:
                del self._edges[from_state]
        return removed

    def _add_edge(self, from_state: State, to_state: State) -> bool:
        targets = self._edges.setdefault(from_state, set())
        self._known_states.add(from_state)
        self._known_states.add(to_state)
        if to_state in targets:
            return False
        targets.add(to_state)
        logger.debug(f"Added transition: {from_state!r} -> {to_state!r}")
        return True

    def has_transition(self, from_state: State, to_state: State) -> bool:
        with self._lock:
            return to_state in self._edges.get(from_state, ())

    def states(self) -> FrozenSet[State]:
        """Every state used in an edge, set as initial or visited"""
        with self._lock:
            return frozenset(self._known_states)

    def transitions(self) -> Dict[State, FrozenSet[State]]:
        """Snapshot of the transition graph"""
        with self._lock:
            return {source: frozenset(targets) for source, targets in self._edges.items()}

    def available_transitions(self) -> FrozenSet[State]:
        """States reachable from the current state in one transition"""
        with self._lock:
            if self._current_state is None:
                return frozenset()
            return frozenset(self._edges.get(self._current_state, ()))

    # State

    def current_state(self) -> Optional[State]:
        with self._lock:
            return self._current_state

    def initial_state(self) -> Optional[State]:
        with self._lock:
            return self._initial_state

    def set_initial_state(self, state: State) -> None:
        """
        Set the state ``reset()`` returns to, and move there.

        Raises InitialStateFrozenError once a transition has happened
        since construction or the last reset.
        """
        if state is None:
            raise ValueError("initial state must not be None")

        with self._lock:
            if self._transition_count > 0:
                raise InitialStateFrozenError(
                    f"cannot change initial state of {self.name} after "
                    f"{self._transition_count} transition(s)"
                )
            self._initial_state = state
            self._current_state = state
            self._generation += 1
            self._known_states.add(state)
            logger.info(f"[SM:{self.name}] INIT: state={state}")
            if self.metrics:
                self.metrics.record_state(state)

    def transition_count(self) -> int:
        with self._lock:
            return self._transition_count

    def last_rejection(self) -> Optional[RejectionReason]:
        """Reason the most recent transition() returned False, None after a success"""
        with self._lock:
            return self._last_rejection

    def history(self) -> Tuple[State, ...]:
        """Retained tail of the states entered by transitions"""
        return self._sequences.history()

    def history_offset(self) -> int:
        """Number of history entries dropped by truncation"""
        with self._lock:
            return self._sequences.offset

    def reset(self) -> None:
        """Return to the initial state, clearing history and the transition count"""
        with self._lock:
            self._current_state = self._initial_state
            self._generation += 1
            self._transition_count = 0
            self._last_rejection = None
            self._sequences.clear()
            logger.info(f"[SM:{self.name}] INIT: state={self._initial_state}")
            if self.metrics and self._initial_state is not None:
                self.metrics.record_state(self._initial_state)

    # Transitions

    def transition(self, target: State) -> bool:
        """
        Move to ``target``, or wherever the routers send it.

        Returns:
            True if the state changed, False if the request was rejected.
            On False nothing was mutated by this call. Only a SUPERSEDED
            rejection has run handlers: the exit handlers, one of which
            moved the machine through a nested transition.

        Handler failures propagate once their phase has finished. Failures
        in entry or transition handlers happen after the new state has been
        committed and are not rolled back.
        """
        if target is None:
            raise ValueError("target state must not be None")

        with self._lock:
            transition_start = time.perf_counter()
            current = self._current_state
            generation = self._generation

            if current is not None and target not in self._edges.get(current, ()):
                logger.debug(f"[SM:{self.name}] IGNORED: trigger='{target}' state={current} reason=no_transition")
                return self._reject(RejectionReason.ILLEGAL)

            try:
                final = self._routers.resolve(current, target, self._max_routing_passes(target))
            except RoutingLoopError as e:
                logger.warning(
                    f"[SM:{self.name}] BLOCKED: trigger='{target}' from={current} "
                    f"to={e.last_target} reason={RejectionReason.ROUTING_LOOP.value}"
                )
                return self._reject(RejectionReason.ROUTING_LOOP)

            if self._generation != generation:
                return self._superseded(current, target)

            if final != target and current is not None and final not in self._edges.get(current, ()):
                logger.info(
                    f"[SM:{self.name}] BLOCKED: trigger='{target}' from={current} "
                    f"to={final} reason={RejectionReason.ROUTED_ILLEGAL.value}"
                )
                return self._reject(RejectionReason.ROUTED_ILLEGAL)

            if current is not None:
                dispatch("exiting", self._handlers.exiting(current), current)
                if self._generation != generation:
                    return self._superseded(current, final)

            tail = self._commit(current, final, target, transition_start)

            dispatch("entering", self._handlers.entering(final), final)

            if current is not None:
                dispatch("transition", self._handlers.transitioning(current, final), current, final)

            # nested transitions have already matched their own tails
            self._sequences.evaluate(tail)
            return True

    def _commit(self, previous: Optional[State], state: State, trigger: State,
                start: float) -> Tuple[State, ...]:
        if previous is None and self._initial_state is None:
            # the first move of an empty machine fixes its starting point
            self._initial_state = state

        self._current_state = state
        self._known_states.add(state)
        self._transition_count += 1
        self._generation += 1
        self._last_rejection = None
        tail = self._sequences.record(state)

        logger.info(f"[SM:{self.name}] TRANSITION: {previous} -> {state} | trigger={trigger}")
        if self.metrics:
            self.metrics.record_transition(previous, state, time.perf_counter() - start)
        return tail

    def _superseded(self, current: Optional[State], target: State) -> bool:
        logger.info(
            f"[SM:{self.name}] BLOCKED: trigger='{target}' from={current} "
            f"to={self._current_state} reason={RejectionReason.SUPERSEDED.value}"
        )
        return self._reject(RejectionReason.SUPERSEDED)

    def _reject(self, reason: RejectionReason) -> bool:
        self._last_rejection = reason
        if self.metrics:
            self.metrics.record_rejection(reason)
        return False

    def _max_routing_passes(self, target: State) -> int:
        if self.config.max_routing_passes is not None:
            return self.config.max_routing_passes
        return len(self._known_states | {target}) + 2

    # Handlers and routers

    def on_entering(self, *args) -> HandlerRegistration:
        """on_entering(handler) or on_entering(state, handler)"""
        return self._handlers.on_entering(*args)

    def on_exiting(self, *args) -> HandlerRegistration:
        """on_exiting(handler) or on_exiting(state, handler)"""
        return self._handlers.on_exiting(*args)

    def on_transition(self, *args) -> HandlerRegistration:
        """on_transition(handler) or on_transition(from_state, to_state, handler)"""
        return self._handlers.on_transition(*args)

    def route_on_transition(self, *args) -> HandlerRegistration:
        """route_on_transition(router) or route_on_transition(from_state, to_state, router)"""
        return self._routers.route_on_transition(*args)

    def route_before_entering(self, to_state: State, router: Any) -> HandlerRegistration:
        return self._routers.route_before_entering(to_state, router)

    def route_after_exiting(self, from_state: State, router: Any) -> HandlerRegistration:
        return self._routers.route_after_exiting(from_state, router)

    def on_sequence(self, pattern: Iterable[State], handler: Any) -> HandlerRegistration:
        """Call ``handler`` with the matched slice whenever history ends with ``pattern``"""
        return self._sequences.on_sequence(pattern, handler)

    def __str__(self):
        with self._lock:
            edges = sum(len(targets) for targets in self._edges.values())
            return (
                f"StateMachine({self.name}: current={self._current_state!r}, "
                f"states={len(self._known_states)}, transitions={edges}, "
                f"count={self._transition_count})"
            )

    __repr__ = __str__


def _as_list(states: Iterable[State]) -> List[State]:
    # a lone string is a state, not a collection of one-letter states
    if isinstance(states, (str, bytes)):
        return [states]
    return list(states)

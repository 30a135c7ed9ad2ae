"""
Router chain: rewrites the destination of a transition before it is committed.

Resolution runs in passes. One pass applies, in this order, every matching
after-exiting router, every matching on-transition router and every matching
before-entering router. Within a scope routers run in registration order and
each one is matched against the target as it stands when its turn comes, so a
router's output is the next router's input. Passes repeat until one completes
without any redirect; a chain that never settles raises RoutingLoopError.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Tuple

from typing_extensions import Protocol, runtime_checkable

from .errors import RoutingLoopError
from .handlers import HandlerRegistration, coerce_callback

logger = logging.getLogger(__name__)


@runtime_checkable
class StateRouter(Protocol):
    """Returns the state a transition should really go to (None keeps it)"""

    def route(self, current: Any, proposed: Any) -> Any:
        ...


class RouterScope(Enum):
    """Hook points, listed in evaluation order"""
    AFTER_EXITING = "after_exiting"
    ON_TRANSITION = "on_transition"
    BEFORE_ENTERING = "before_entering"


@dataclass(frozen=True)
class _Rule:
    callback: Callable[[Any, Any], Any]
    key: Any = None
    scoped: bool = True


class RouterChain:
    """Registered routers of one machine and the bounded resolution loop"""

    def __init__(self, lock: threading.RLock, debug: bool = False):
        self._lock = lock
        self.debug = debug
        self._rules: Dict[RouterScope, Dict[HandlerRegistration, _Rule]] = {
            scope: {} for scope in RouterScope
        }

    def route_on_transition(self, *args) -> HandlerRegistration:
        """route_on_transition(router) or route_on_transition(from_state, to_state, router)"""
        if len(args) == 1:
            rule = _Rule(_router_callback(args[0]), scoped=False)
        elif len(args) == 3:
            from_state, to_state, router = args
            rule = _Rule(_router_callback(router), key=(from_state, to_state))
        else:
            raise TypeError(f"route_on_transition() takes 1 or 3 arguments ({len(args)} given)")
        return self._add(RouterScope.ON_TRANSITION, rule)

    def route_before_entering(self, to_state: Any, router: Any) -> HandlerRegistration:
        return self._add(RouterScope.BEFORE_ENTERING, _Rule(_router_callback(router), key=to_state))

    def route_after_exiting(self, from_state: Any, router: Any) -> HandlerRegistration:
        return self._add(RouterScope.AFTER_EXITING, _Rule(_router_callback(router), key=from_state))

    def _add(self, scope: RouterScope, rule: _Rule) -> HandlerRegistration:
        with self._lock:
            table = self._rules[scope]

            def remove(registration: HandlerRegistration):
                table.pop(registration, None)

            registration = HandlerRegistration(f"router:{scope.value}", remove, self._lock)
            table[registration] = rule
            return registration

    def __len__(self):
        with self._lock:
            return sum(len(table) for table in self._rules.values())

    def resolve(self, current: Any, requested: Any, max_passes: int) -> Any:
        """
        Return the destination after routing ``current -> requested``.

        Raises RoutingLoopError when every one of ``max_passes`` passes
        redirected the target at least once.
        """
        target = requested
        if not len(self):
            return target

        for _ in range(max_passes):
            target, redirected = self._apply_pass(current, target)
            if not redirected:
                return target

        raise RoutingLoopError(requested, target, max_passes)

    def _apply_pass(self, current: Any, target: Any) -> Tuple[Any, bool]:
        with self._lock:
            snapshot: List[Tuple[RouterScope, List[Tuple[HandlerRegistration, _Rule]]]] = [
                (scope, list(self._rules[scope].items())) for scope in RouterScope
            ]

        redirected = False
        for scope, rules in snapshot:
            for registration, rule in rules:
                if not registration.active:
                    continue
                if not self._matches(scope, rule, current, target):
                    continue
                decision = rule.callback(current, target)
                if decision is None or decision == target:
                    continue
                if self.debug:
                    logger.debug(f"{scope.value} router redirected {target!r} -> {decision!r}")
                target = decision
                redirected = True

        return target, redirected

    @staticmethod
    def _matches(scope: RouterScope, rule: _Rule, current: Any, target: Any) -> bool:
        if scope is RouterScope.AFTER_EXITING:
            return current is not None and rule.key == current
        if scope is RouterScope.ON_TRANSITION:
            return not rule.scoped or rule.key == (current, target)
        return rule.key == target


def _router_callback(router: Any) -> Callable[[Any, Any], Any]:
    return coerce_callback(router, StateRouter, "route", "router")

"""
Sequence detection over the history of entered states.
"""

import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, Iterable, List, Tuple

from typing_extensions import Protocol, runtime_checkable

from .errors import InvalidRegistrationError
from .handlers import HandlerRegistration, coerce_callback, dispatch

logger = logging.getLogger(__name__)


@runtime_checkable
class SequenceHandler(Protocol):
    """Called with the matched slice of history"""

    def on_match(self, pattern: Tuple[Any, ...]) -> None:
        ...


class SequenceDetector:
    """
    Keeps the tail of the history and matches registered patterns against it.

    Only the last ``max(history_size, longest pattern)`` entries are kept;
    ``offset`` counts the entries dropped so far.
    """

    def __init__(self, lock: threading.RLock, history_size: int = 20):
        self._lock = lock
        self.history_size = history_size
        self._patterns: Dict[HandlerRegistration, Tuple[Tuple[Any, ...], Callable[..., Any]]] = {}
        self._history: Deque[Any] = deque()
        self._offset = 0

    def on_sequence(self, pattern: Iterable[Any], handler: Any) -> HandlerRegistration:
        pattern = tuple(pattern)
        if not pattern:
            raise InvalidRegistrationError("sequence pattern must not be empty")
        callback = coerce_callback(handler, SequenceHandler, "on_match", "sequence")

        with self._lock:
            def remove(registration: HandlerRegistration):
                self._patterns.pop(registration, None)

            registration = HandlerRegistration("sequence", remove, self._lock)
            self._patterns[registration] = (pattern, callback)
            return registration

    @property
    def capacity(self) -> int:
        with self._lock:
            longest = max((len(p) for p, _ in self._patterns.values()), default=0)
            return max(self.history_size, longest)

    @property
    def offset(self) -> int:
        return self._offset

    def history(self) -> Tuple[Any, ...]:
        with self._lock:
            return tuple(self._history)

    def record(self, state: Any) -> Tuple[Any, ...]:
        """Append an entered state, trimming the oldest entries; returns the new tail"""
        with self._lock:
            self._history.append(state)
            capacity = self.capacity
            while len(self._history) > capacity:
                self._history.popleft()
                self._offset += 1
            return tuple(self._history)

    def clear(self) -> None:
        with self._lock:
            self._history.clear()
            self._offset = 0

    def evaluate(self, tail: Tuple[Any, ...]) -> None:
        """
        Fire the handler of every pattern that matches ``tail``.

        ``tail`` is the history as returned by the ``record`` call of one
        transition, so each recorded state is matched exactly once even
        when handlers record further states in between.
        """
        with self._lock:
            matched: List[Tuple[HandlerRegistration, Callable[..., Any]]] = []
            for registration, (pattern, callback) in self._patterns.items():
                size = len(pattern)
                if size > len(tail):
                    continue
                if tail[-size:] == pattern:
                    matched.append((registration, _bind(callback, tail[-size:])))

        if matched:
            logger.debug(f"{len(matched)} sequence pattern(s) matched")
            dispatch("sequence", matched)


def _bind(callback: Callable[..., Any], matched: Tuple[Any, ...]) -> Callable[[], Any]:
    return lambda: callback(matched)

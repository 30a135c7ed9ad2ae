"""
Prometheus metrics for a single state machine.
"""

import re
from typing import Any, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, Info

from .errors import RejectionReason


def metric_prefix(name: str) -> str:
    """Turn a machine name into a valid metric name prefix"""
    prefix = re.sub(r'[^a-zA-Z0-9_]', '_', name.lower())
    if not prefix or prefix[0].isdigit():
        prefix = f"fsm_{prefix}"
    return prefix


class MachineMetrics:
    """
    Transition counters and latency histogram for one machine.

    Every instance registers into its own CollectorRegistry unless one is
    given, so machines sharing a name do not collide. Pass
    ``prometheus_client.REGISTRY`` to expose them on the default endpoint.
    """

    def __init__(self, name: str, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        prefix = metric_prefix(name)
        self.prefix = prefix

        # Transition counter
        self.transition_counter = Counter(
            f'{prefix}_transitions',
            f'Total state transitions of {name}',
            labelnames=['from_state', 'to_state'],
            registry=self.registry
        )

        # Rejected transition requests
        self.rejection_counter = Counter(
            f'{prefix}_rejected_transitions',
            f'Transition requests rejected by {name}',
            labelnames=['reason'],
            registry=self.registry
        )

        # Time from taking the machine lock to committing the new state
        self.transition_latency = Histogram(
            f'{prefix}_transition_latency_seconds',
            'Latency of state transitions from lock acquisition to commit',
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1),
            registry=self.registry
        )

        # Current state for dashboards
        self.state_info = Info(
            f'{prefix}_state',
            f'Current state of {name}',
            registry=self.registry
        )

    def record_transition(self, from_state: Any, to_state: Any, latency: float):
        self.transition_counter.labels(
            from_state=_label(from_state),
            to_state=_label(to_state)
        ).inc()
        self.transition_latency.observe(latency)
        self.state_info.info({'state': _label(to_state), 'previous_state': _label(from_state)})

    def record_rejection(self, reason: RejectionReason):
        self.rejection_counter.labels(reason=reason.value).inc()

    def record_state(self, state: Any):
        self.state_info.info({'state': _label(state), 'previous_state': ''})


def _label(state: Any) -> str:
    if state is None:
        return ''
    name = getattr(state, 'name', None)
    return str(name) if name is not None else str(state)

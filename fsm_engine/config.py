"""
Engine configuration, read from the environment.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, 'true' if default else 'false').lower() == 'true'


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return None
    return int(raw)


@dataclass
class EngineConfig:
    """
    Tunables shared by every machine built with this config.

    Attributes:
        max_routing_passes: Cap on router resolution passes. None means
            "number of known states plus two".
        history_size: Minimum number of history entries kept.
        metrics_enabled: Whether Prometheus metrics are recorded.
        debug: Log every routing decision at DEBUG level.
    """
    max_routing_passes: Optional[int] = None
    history_size: int = 20
    metrics_enabled: bool = True
    debug: bool = False

    def __post_init__(self):
        if self.max_routing_passes is not None and self.max_routing_passes < 1:
            raise ValueError("max_routing_passes must be at least 1")
        if self.history_size < 0:
            raise ValueError("history_size must not be negative")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from FSM_* environment variables"""
        history_size = _env_int('FSM_HISTORY_SIZE')
        return cls(
            max_routing_passes=_env_int('FSM_MAX_ROUTING_PASSES'),
            history_size=20 if history_size is None else history_size,
            metrics_enabled=_env_flag('FSM_METRICS_ENABLED', True),
            debug=_env_flag('FSM_DEBUG', False),
        )

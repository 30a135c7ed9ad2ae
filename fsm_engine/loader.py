"""
Build state machines from YAML definitions.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from prometheus_client import CollectorRegistry

from .config import EngineConfig
from .core import StateMachine
from .errors import DefinitionError

logger = logging.getLogger(__name__)


class MachineLoader:
    """
    Loader for machine definition documents.

    Expected format::

        name: door
        initial: closed
        transitions:
          closed: [open, locked]
          open: [closed]
        connect_all:
          states: [a, b]
          include_self: false
    """

    @staticmethod
    def from_file(filepath: Union[str, Path],
                  config: Optional[EngineConfig] = None,
                  registry: Optional[CollectorRegistry] = None) -> StateMachine:
        """Load a machine definition from a YAML file"""
        filepath = Path(filepath)

        with open(filepath, 'r') as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise DefinitionError(f"{filepath}: invalid YAML: {e}") from e

        if data is None:
            raise DefinitionError(f"{filepath}: empty definition")

        if isinstance(data, dict):
            data.setdefault('name', filepath.stem)
        return MachineLoader.from_dict(data, config=config, registry=registry)

    @staticmethod
    def from_dict(data: Dict[str, Any],
                  config: Optional[EngineConfig] = None,
                  registry: Optional[CollectorRegistry] = None) -> StateMachine:
        """Build a machine from an already parsed definition"""
        if not isinstance(data, dict):
            raise DefinitionError(f"definition must be a mapping, got {type(data).__name__}")

        name = str(data.get('name', 'machine'))
        machine = StateMachine(name, config=config, registry=registry)

        transitions = data.get('transitions') or {}
        if not isinstance(transitions, dict):
            raise DefinitionError(f"{name}: 'transitions' must map a state to its targets")

        for from_state, targets in transitions.items():
            if targets is None:
                continue
            if not isinstance(targets, list):
                targets = [targets]
            for target in targets:
                if not _is_scalar(target):
                    raise DefinitionError(f"{name}: target of {from_state!r} must be a state name, got {target!r}")
            machine.add_transitions(from_state, targets)

        connect_all = data.get('connect_all')
        if connect_all is not None:
            MachineLoader._parse_connect_all(machine, name, connect_all)

        initial = data.get('initial')
        if initial is not None:
            if not _is_scalar(initial):
                raise DefinitionError(f"{name}: initial state must be a state name, got {initial!r}")
            machine.set_initial_state(initial)

        logger.debug(f"Loaded machine {name} with {len(machine.states())} states")
        return machine

    @staticmethod
    def _parse_connect_all(machine: StateMachine, name: str, data: Any):
        if isinstance(data, list):
            data = {'states': data}
        if not isinstance(data, dict) or not isinstance(data.get('states'), list):
            raise DefinitionError(f"{name}: 'connect_all' needs a list of states")
        for state in data['states']:
            if not _is_scalar(state):
                raise DefinitionError(f"{name}: connect_all state must be a state name, got {state!r}")
        machine.add_all_transitions(data['states'], bool(data.get('include_self', False)))


def _is_scalar(value: Any) -> bool:
    # sequences, mappings and !!set values cannot be states
    return not isinstance(value, (list, dict, set))

#!/usr/bin/env python3
"""
Command-line interface for inspecting and driving machine definitions.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from prometheus_client import generate_latest

from .config import EngineConfig
from .core import StateMachine
from .errors import DefinitionError
from .loader import MachineLoader
from .log_formatter import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fsm-tool",
        description="Inspect and drive YAML state machine definitions"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    describe = subparsers.add_parser("describe", help="Print states and transitions")
    describe.add_argument("definition", type=Path, help="Machine definition YAML file")

    run = subparsers.add_parser("run", help="Drive the machine through a list of states")
    run.add_argument("definition", type=Path, help="Machine definition YAML file")
    run.add_argument("states", nargs="+", help="States to transition to, in order")
    run.add_argument(
        "--metrics",
        action="store_true",
        help="Print Prometheus metrics after the run"
    )

    return parser


def describe(machine: StateMachine) -> List[str]:
    """Human readable summary of a machine's graph"""
    lines = [f"Machine: {machine.name}", f"Initial state: {machine.initial_state()}"]
    lines.append("States:")
    for state in sorted(machine.states(), key=str):
        lines.append(f"  {state}")
    lines.append("Transitions:")
    for source, targets in sorted(machine.transitions().items(), key=lambda item: str(item[0])):
        for target in sorted(targets, key=str):
            lines.append(f"  {source} -> {target}")
    return lines


def run(machine: StateMachine, states: List[str]) -> bool:
    """Request each transition in turn; True if all succeeded"""
    ok = True
    for state in states:
        before = machine.current_state()
        if machine.transition(state):
            print(f"[       OK ] {before} -> {machine.current_state()}")
        else:
            ok = False
            reason = machine.last_rejection()
            print(f"[  FAILED  ] {before} -> {state} ({reason.value if reason else 'rejected'})")
    print(f"Transitions: {machine.transition_count()}, current state: {machine.current_state()}")
    return ok


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    args = build_parser().parse_args(argv)

    package_logger = logging.getLogger("fsm_engine")
    previous_level = package_logger.level
    handler = setup_logging("DEBUG" if args.verbose else "WARNING")
    try:
        return _execute(args)
    finally:
        package_logger.removeHandler(handler)
        package_logger.setLevel(previous_level)


def _execute(args: argparse.Namespace) -> int:
    try:
        machine = MachineLoader.from_file(args.definition, config=EngineConfig.from_env())
    except (OSError, DefinitionError) as e:
        logger.error(f"Failed to load {args.definition}: {e}")
        return 2

    if args.command == "describe":
        print("\n".join(describe(machine)))
        return 0

    ok = run(machine, args.states)
    if args.metrics and machine.metrics:
        print(generate_latest(machine.metrics.registry).decode('utf-8'), end="")
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())

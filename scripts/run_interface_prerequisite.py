#!/usr/bin/env python3
"""Run the interface prerequisite phase over a saved pipeline state.

Usage examples:
  python scripts/run_interface_prerequisite.py state.json
  python scripts/run_interface_prerequisite.py state.json -o prerequisites.json --capacity 4
  python scripts/run_interface_prerequisite.py state.json --check-cycles --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from pydantic import ValidationError

from apps.phases.interface_prerequisite import InterfacePrerequisitePhase
from libs.core.exceptions import PhaseError
from libs.core.logging_config import setup_logging
from libs.core.models import PipelineState
from libs.interface.prerequisite_validator import find_cycles

logger = logging.getLogger("backforge.scripts")


def load_state(path: Path) -> PipelineState:
    return PipelineState.model_validate_json(path.read_text(encoding="utf-8"))


async def run(args: argparse.Namespace, state: PipelineState) -> list[dict]:
    phase = InterfacePrerequisitePhase(state, check_cycles=args.check_cycles)
    declared = await phase.execute(capacity=args.capacity)
    return [item.model_dump(mode="json") for item in declared]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Declare endpoint prerequisites for a pipeline state.")
    parser.add_argument("state", type=Path, help="PipelineState JSON file")
    parser.add_argument("--output", "-o", type=Path, help="Write declarations here instead of stdout")
    parser.add_argument("--capacity", type=int, help="Operations per session (default: INTERFACE_CAPACITY)")
    parser.add_argument("--check-cycles", action="store_true", help="Reject multi-hop prerequisite cycles")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    parser.add_argument("--log-dir", type=Path, help="Directory of system.log (default: logs/backforge)")
    parser.add_argument("--audit", action="store_true", help="Only report cycles already in the state")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, log_dir=args.log_dir, service_name="interface_prerequisite")

    try:
        state = load_state(args.state)
    except (OSError, ValidationError) as e:
        logger.error(f"Cannot load pipeline state {args.state}: {e}")
        return 2

    if args.audit:
        operations = state.interface.operations if state.interface else []
        cycles = find_cycles(operations)
        for cycle in cycles:
            print(" -> ".join(str(e) for e in [*cycle, cycle[0]]))
        return 1 if cycles else 0

    try:
        declared = asyncio.run(run(args, state))
    except PhaseError as e:
        logger.error(f"Phase failed: {e}")
        return 1

    payload = json.dumps(declared, indent=2)
    if args.output:
        args.output.write_text(payload + "\n", encoding="utf-8")
        logger.info(f"Wrote {len(declared)} declaration(s) to {args.output}")
    else:
        print(payload)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

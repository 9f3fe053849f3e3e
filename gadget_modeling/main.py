"""Command line interface for gadget_modeling."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from elftools.common.exceptions import ELFError

from .architectures import ARCHITECTURES, get_emulator
from .constraints import ConstraintSolver
from .disasm import read_gadget
from .errors import UnsupportedArchitectureError
from .instruction import read_trace_lines
from .trace_recorder import TraceRecord, save_trace

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_INSTRUCTIONS = 32


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gadget-modeling",
        description="Check whether an x86 gadget deterministically reaches an exec-family call",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    trace_parser = subparsers.add_parser("trace", help="Emulate a file of disassembled instructions")
    trace_parser.add_argument("trace_file", type=Path, help="Path to the trace file")
    trace_parser.add_argument("--arch", choices=sorted(ARCHITECTURES), default="amd64", help="Target architecture")

    gadget_parser = subparsers.add_parser("gadget", help="Emulate the code at an offset of an ELF library")
    gadget_parser.add_argument("library", type=Path, help="Path to the shared library")
    gadget_parser.add_argument("offset", type=lambda s: int(s, 0), help="File offset of the candidate, e.g. 0x4f2c5")

    for sub in (trace_parser, gadget_parser):
        sub.add_argument("--output", "-o", type=Path, help="Write the run record as JSON")
        sub.add_argument("--max-instructions", type=int, default=DEFAULT_MAX_INSTRUCTIONS,
                         help="Stop emulating after this many instructions")
    return parser


def _load(args) -> tuple:
    if args.command == "trace":
        return args.arch, read_trace_lines(args.trace_file), str(args.trace_file)
    gadget = read_gadget(args.library, args.offset, max_instructions=args.max_instructions)
    return gadget.arch, gadget.lines, f"{gadget.path}:{gadget.offset:#x}"


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        arch, lines, source = _load(args)
    except (OSError, ELFError, UnsupportedArchitectureError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    LOGGER.debug("emulating %d instructions from %s as %s", len(lines), source, arch)
    emulator = get_emulator(arch)
    recorder = TraceRecord(arch=arch, source=source)
    result = emulator.run(lines, max_instructions=args.max_instructions, solver=ConstraintSolver(),
                          recorder=recorder)
    recorder.set_final_state(result, emulator)
    LOGGER.debug("final state:\n%s", emulator.get_state_str())

    for line in lines[:result.steps]:
        print(f"    {line}")
    if result.ok:
        print(f"[+] {source} reaches {result.target}")
        for constraint in result.constraints:
            print(f"    constraint: {constraint}")
    elif result.failure is not None:
        print(f"[-] {source} rejected ({result.failure.value}): {result.error}")
    else:
        print(f"[-] {source} ends after {result.steps} instructions without a terminal call")

    if args.output:
        save_trace(recorder, args.output)
        print(f"[+] run record written to {args.output}")
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())

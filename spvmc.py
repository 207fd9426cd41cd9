#!/usr/bin/env python3
"""
spvmc — SPVM assembler, bytecode writer and runner

Usage:
    spvmc <input> [-a] [-r] [-v] [-o output.spvm] [--listing]
                  [--max-steps N] [--trace] [--log-level LEVEL] [--log-file PATH]

Input is a binary container (.spvm) unless -a is given, in which case it
is assembly source.

Examples:
    spvmc hello.asm -a -r              # assemble and run
    spvmc hello.asm -a -r -v           # run with disassembly + interactive breakpoints
    spvmc hello.asm -a -o hello.spvm   # assemble to a binary container
    spvmc hello.spvm -r                # run a saved binary
    spvmc hello.spvm                   # print a listing of a saved binary
"""

import argparse
import logging
import sys
import traceback

from spvm import __version__
from spvm.assembler import Assembler, AssemblerError
from spvm.binary import Binary, BinaryError, LoadError
from spvm.debug_info import DebugInfo
from spvm.disasm import format_listing
from spvm.instruction import wrap_i32
from spvm.log_setup import setup_logging
from spvm.machine import StackMachine, MachineFault

log = logging.getLogger("spvm.cli")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="spvmc",
        description="SPVM stack machine toolchain: assemble, save, run, debug",
    )
    parser.add_argument("input", help="Input file (.spvm binary, or source with -a)")
    parser.add_argument("-a", "--assemble", action="store_true",
                        help="Treat input as assembly source")
    parser.add_argument("-r", "--run", action="store_true",
                        help="Execute the program")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Show disassembly and stop at @Break breakpoints")
    parser.add_argument("-o", "--output",
                        help="Write a binary container (ignored with --run)")
    parser.add_argument("--listing", action="store_true",
                        help="Print a disassembly listing to stdout")
    parser.add_argument("--max-steps", type=int, default=None,
                        help="Fault after executing this many instructions")
    parser.add_argument("--trace", action="store_true",
                        help="Print an execution trace to stderr after the run")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Console log level (default: WARNING)")
    parser.add_argument("--log-file", default=None,
                        help="Also write a DEBUG log to this file")
    parser.add_argument("--version", action="version",
                        version=f"spvmc {__version__}")

    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else getattr(logging, args.log_level)
    setup_logging(level, args.log_file)

    try:
        if args.assemble:
            asm = Assembler()
            program = asm.assemble_file(args.input)
            debug_info = asm.debug_info
        else:
            program = Binary.load(args.input).instructions
            debug_info = DebugInfo()
        debug_info.verbose = args.verbose
        log.info("%s: %d instructions", args.input, len(program))

        if args.run:
            machine = StackMachine(debug_info, max_steps=args.max_steps, trace=args.trace)
            try:
                exit_code = machine.run(program)
            finally:
                if args.trace:
                    print("\n".join(machine.trace_output), file=sys.stderr)
            print(f"[simulation exited with code {wrap_i32(exit_code)}]")
        elif args.output:
            Binary(program).save(args.output)
            print(f"Wrote {len(program)} instructions -> {args.output}")

        if args.listing or not (args.run or args.output):
            print(format_listing(program, debug_info), end="")

    except AssemblerError as e:
        print(f"Parse error: {e}", file=sys.stderr)
        return 1
    except LoadError as e:
        print(f"Load error: {e}", file=sys.stderr)
        return 1
    except BinaryError as e:
        print(f"Save error: {e}", file=sys.stderr)
        return 1
    except MachineFault as e:
        print(f"Panic: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Internal error: {e}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())

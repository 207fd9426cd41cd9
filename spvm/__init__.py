"""
SPVM — a small stack-based virtual machine toolchain
=====================================================
A textual assembly language, an assembler that lowers it to bytecode,
a binary container for persisting that bytecode, and an interpreter
with breakpoint-driven interactive debugging.

Architecture:
    ┌──────────┐    ┌───────────┐    ┌──────────────┐    ┌──────────────┐
    │ Source   │───>│ Assembler │───>│ Instructions │───>│ StackMachine │
    │ (.asm)   │    │ + labels  │    │ + DebugInfo  │    │ (run/debug)  │
    └──────────┘    └───────────┘    └──────┬───────┘    └──────────────┘
                                            │  ▲
                                     save() ▼  │ load()
                                      ┌───────────────┐
                                      │ Binary (.spvm)│
                                      └───────────────┘

    - instruction.py: Opcode table, Instruction, binary record encode/decode
    - assembler.py:   Line parser, label relocation, @PushStr / @Break
    - binary.py:      ".SPVM" container (magic + count + records)
    - machine.py:     Fetch/evaluate loop, faults, breakpoints
    - debug_info.py:  Breakpoints, label annotations, verbosity flag
    - disasm.py:      Text listings and rich state rendering
"""

__version__ = "0.2.0"

from typing import Optional, TextIO

from .instruction import Opcode, Instruction, DecodeError
from .debug_info import DebugInfo
from .assembler import Assembler, AssemblerError, assemble, assemble_file
from .binary import Binary, BinaryError, LoadError
from .machine import StackMachine, MachineState, MachineFault
from .disasm import format_listing


def run_source(source: str, *, out: Optional[TextIO] = None,
               filename: str = "<source>", max_steps: Optional[int] = None) -> int:
    """Assemble and run source text. Returns the program's exit code.

    Raises AssemblerError or MachineFault.
    """
    program, debug_info = assemble(source, filename)
    machine = StackMachine(debug_info, out=out, max_steps=max_steps)
    return machine.run(program)

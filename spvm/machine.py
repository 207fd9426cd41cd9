"""
SPVM Stack Machine — fetch/evaluate loop over an assembled program.

State:
  ip         index of the next instruction
  stack      operand stack of signed 64-bit integers (top = last element)
  exit_code  None while running; set by EXIT or by a fault

Execution model:
  1. Stop with a fault if ip is past the end of the program
  2. If verbose and ip has a breakpoint: render state, ask to continue
  3. Dispatch the instruction to its handler (handlers advance ip)
  4. Repeat until EXIT halts the machine or a fault is raised

Binary operators pop a (top) then b (below it) and push `a OP b`, so
SUB computes top - second. Jumps and calls take their target from the
stack. CALL pushes ip + 1 as the return address; returning is just
pushing that address back on top and executing JMP.

Every fault raises MachineFault, moves the machine to FAULTED and sets
exit_code to FAULT_EXIT_CODE. Nothing is retried.
"""

from __future__ import annotations
from typing import Callable, Dict, List, Optional, Sequence, TextIO
from enum import Enum
import logging
import sys

from rich.console import Console

from .debug_info import DebugInfo
from .disasm import render_state
from .instruction import Instruction, Opcode, wrap_i64

__all__ = ['StackMachine', 'MachineState', 'MachineFault']

log = logging.getLogger(__name__)


class MachineState(Enum):
    RUNNING = 'RUNNING'
    HALTED = 'HALTED'
    FAULTED = 'FAULTED'


class MachineFault(Exception):
    """Execution fault at a given instruction address."""
    def __init__(self, address: int, mnemonic: Optional[str], reason: str):
        self.address = address
        self.mnemonic = mnemonic
        self.reason = reason
        where = f"(@{address:04x})"
        if mnemonic:
            super().__init__(f"{where} {mnemonic}: {reason}")
        else:
            super().__init__(f"{where} {reason}")


class StackMachine:
    """SPVM interpreter.

    Usage:
        machine = StackMachine(debug_info)
        exit_code = machine.run(program)   # raises MachineFault on fault
    """

    FAULT_EXIT_CODE = 255
    DEFAULT_MAX_STEPS = None   # unlimited

    def __init__(self, debug_info: Optional[DebugInfo] = None,
                 out: Optional[TextIO] = None,
                 console: Optional[Console] = None,
                 prompt: Optional[Callable[[str], str]] = None,
                 max_steps: Optional[int] = None,
                 trace: bool = False):
        self.debug_info = debug_info if debug_info is not None else DebugInfo()
        self.out = out if out is not None else sys.stdout
        self.console = console if console is not None else Console()
        self.prompt = prompt if prompt is not None else self.console.input
        self.max_steps = max_steps if max_steps is not None else self.DEFAULT_MAX_STEPS
        self.trace = trace

        self._dispatch = self._build_dispatch()
        self.reset()

    def reset(self):
        self.ip: int = 0
        self.stack: List[int] = []
        self.exit_code: Optional[int] = None
        self.state = MachineState.RUNNING
        self.steps: int = 0
        self.trace_output: List[str] = []

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def run(self, program: Sequence[Instruction]) -> int:
        """Run until EXIT. Returns the exit code, raises MachineFault otherwise."""
        if self.debug_info.verbose:
            render_state(self.console, program, self.ip, self.stack, self.debug_info)

        while self.state is MachineState.RUNNING:
            self.step(program)

        log.debug("Halted with exit code %d after %d steps", self.exit_code, self.steps)
        return self.exit_code

    def step(self, program: Sequence[Instruction]) -> MachineState:
        """Execute one instruction. Returns the state afterwards."""
        if self.state is not MachineState.RUNNING:
            return self.state

        if self.ip >= len(program):
            raise self._fault(f"no instruction left at {self.ip:04x}")

        if self.max_steps is not None and self.steps >= self.max_steps:
            raise self._fault(f"step limit exceeded ({self.max_steps} steps)")

        instruction = program[self.ip]

        if self.debug_info.verbose and self.debug_info.breakpoint_at(self.ip):
            self._pause(program, instruction)

        if self.trace:
            line = f"{self.ip:04x}: {str(instruction):<20} {self.stack}"
            self.trace_output.append(line)
            log.debug(line)

        self._dispatch[instruction.opcode](instruction)
        self.steps += 1
        return self.state

    def _pause(self, program: Sequence[Instruction], instruction: Instruction):
        """Breakpoint: show state and block until the user answers."""
        render_state(self.console, program, self.ip, self.stack, self.debug_info)
        try:
            answer = self.prompt(f"breakpoint at {self.ip:04x}, continue? [Y/n] ")
        except EOFError:
            answer = 'n'
        if answer.strip().lower() in ('n', 'no'):
            raise self._fault("aborted at breakpoint", instruction)

    # ══════════════════════════════════════════════
    # Helpers
    # ══════════════════════════════════════════════

    def _fault(self, reason: str, instruction: Optional[Instruction] = None) -> MachineFault:
        """Move to FAULTED and build the exception for the caller to raise."""
        self.state = MachineState.FAULTED
        self.exit_code = self.FAULT_EXIT_CODE
        fault = MachineFault(self.ip, instruction.mnemonic if instruction else None, reason)
        log.debug("Fault: %s", fault)
        return fault

    def _pop(self, instruction: Instruction) -> int:
        if not self.stack:
            raise self._fault(
                f"stack underflow: not enough values on stack for `{instruction.mnemonic}`",
                instruction)
        return self.stack.pop()

    def _jump(self, target: int, instruction: Instruction):
        if target < 0:
            raise self._fault(f"invalid jump target {target}", instruction)
        self.ip = target

    def _emit(self, text: str):
        self.out.write(text)
        self.out.flush()

    # ══════════════════════════════════════════════
    # Instruction handlers
    # ══════════════════════════════════════════════

    def _build_dispatch(self) -> Dict[Opcode, Callable[[Instruction], None]]:
        return {
            Opcode.PUSH:     self._op_push,
            Opcode.POP:      self._op_pop,
            Opcode.DUP:      self._op_dup,
            Opcode.SWAP:     self._op_swap,
            Opcode.JZ:       self._op_jz,
            Opcode.JNZ:      self._op_jnz,
            Opcode.JMP:      self._op_jmp,
            Opcode.ADD:      self._op_binary,
            Opcode.SUB:      self._op_binary,
            Opcode.MUL:      self._op_binary,
            Opcode.DIV:      self._op_binary,
            Opcode.EXIT:     self._op_exit,
            Opcode.PRINTOUT: self._op_printout,
            Opcode.CALL:     self._op_call,
            Opcode.PRINTSTR: self._op_printstr,
        }

    # ── Stack ──

    def _op_push(self, ins):
        self.stack.append(ins.arg)
        self.ip += 1

    def _op_pop(self, ins):
        self._pop(ins)
        self.ip += 1

    def _op_dup(self, ins):
        value = self._pop(ins)
        self.stack.append(value)
        self.stack.append(value)
        self.ip += 1

    def _op_swap(self, ins):
        a = self._pop(ins)
        b = self._pop(ins)
        self.stack.append(a)
        self.stack.append(b)
        self.ip += 1

    # ── Arithmetic ──

    def _op_binary(self, ins):
        a = self._pop(ins)
        b = self._pop(ins)
        op = ins.opcode
        if op == Opcode.ADD:
            result = a + b
        elif op == Opcode.SUB:
            result = a - b
        elif op == Opcode.MUL:
            result = a * b
        else:
            if b == 0:
                raise self._fault("division by zero", ins)
            # Truncate toward zero like fixed-width integer division
            result = abs(a) // abs(b)
            if (a < 0) != (b < 0):
                result = -result
        self.stack.append(wrap_i64(result))
        self.ip += 1

    # ── Control flow ──

    def _op_jz(self, ins):
        target = self._pop(ins)
        cond = self._pop(ins)
        if cond == 0:
            self._jump(target, ins)
        else:
            self.ip += 1

    def _op_jnz(self, ins):
        target = self._pop(ins)
        cond = self._pop(ins)
        if cond != 0:
            self._jump(target, ins)
        else:
            self.ip += 1

    def _op_jmp(self, ins):
        self._jump(self._pop(ins), ins)

    def _op_call(self, ins):
        target = self._pop(ins)
        self.stack.append(self.ip + 1)
        self._jump(target, ins)

    def _op_exit(self, ins):
        # The one pop that tolerates an empty stack
        self.exit_code = self.stack.pop() if self.stack else 0
        self.state = MachineState.HALTED
        self.ip += 1

    # ── Output ──

    def _op_printout(self, ins):
        self._emit(f"{self._pop(ins)}\n")
        self.ip += 1

    def _op_printstr(self, ins):
        while True:
            value = self._pop(ins)
            if value == 0:
                break
            if not 0 < value <= 0x10FFFF or 0xD800 <= value <= 0xDFFF:
                raise self._fault(f"value {value} is not a character", ins)
            self._emit(chr(value))
        self.ip += 1

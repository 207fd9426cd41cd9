"""
SPVM Instruction Model — opcodes, mnemonics and the binary record format.

Every other stage shares this one contract: the assembler emits
Instruction objects, the binary container serializes them, and the
stack machine executes them.

Record layout (little-endian):
  [u16 opcode ID]                 all opcodes
  [u16 opcode ID][i64 operand]    PUSH only

Only PUSH carries an operand. Control transfers (JZ, JNZ, JMP, CALL) take
their target from the operand stack, so label relocation only ever has to
patch PUSH operands (see set_arg()).
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Tuple
import struct

__all__ = ['Opcode', 'Instruction', 'DecodeError', 'wrap_i64', 'wrap_i32',
           'I64_MIN', 'I64_MAX']


I64_MIN = -(1 << 63)
I64_MAX = (1 << 63) - 1

_ID = struct.Struct('<H')
_ARG = struct.Struct('<q')


class DecodeError(Exception):
    """Raised when a byte record cannot be decoded into an Instruction."""
    def __init__(self, message: str, offset: int = 0):
        self.offset = offset
        super().__init__(f"offset {offset}: {message}")


class Opcode(IntEnum):
    """Opcode IDs as stored in the binary format. Names are the mnemonics."""

    PUSH = 0
    POP = 1
    DUP = 2
    SWAP = 3
    JZ = 4
    JNZ = 5
    JMP = 6
    ADD = 7
    SUB = 8
    MUL = 9
    DIV = 10
    EXIT = 11
    PRINTOUT = 12
    CALL = 13
    PRINTSTR = 14


# Opcodes whose record carries an embedded i64 operand
OPERAND_OPCODES = frozenset({Opcode.PUSH})


def wrap_i64(value: int) -> int:
    """Fold an arbitrary int into the signed 64-bit range (two's complement)."""
    value &= 0xFFFFFFFFFFFFFFFF
    if value > I64_MAX:
        value -= 1 << 64
    return value


def wrap_i32(value: int) -> int:
    """Fold an int into the signed 32-bit range, as a process exit status."""
    value &= 0xFFFFFFFF
    if value >= 1 << 31:
        value -= 1 << 32
    return value


@dataclass
class Instruction:
    """One decoded instruction. `arg` is set for PUSH and None otherwise."""
    opcode: Opcode
    arg: Optional[int] = None

    def __post_init__(self):
        self.opcode = Opcode(self.opcode)
        if self.opcode in OPERAND_OPCODES:
            if self.arg is None:
                raise ValueError(f"{self.mnemonic} requires an operand")
            _check_range(self.arg)
        elif self.arg is not None:
            raise ValueError(f"{self.mnemonic} takes no operand")

    # ── Construction ──

    @classmethod
    def push(cls, value: int) -> 'Instruction':
        return cls(Opcode.PUSH, value)

    @classmethod
    def from_mnemonic(cls, mnemonic: str, arg: Optional[int] = None) -> 'Instruction':
        """Build an instruction from its text mnemonic (case-insensitive).

        Raises KeyError for an unknown mnemonic and ValueError for a
        missing or unexpected operand.
        """
        return cls(Opcode[mnemonic.upper()], arg)

    # ── Introspection ──

    @property
    def mnemonic(self) -> str:
        return self.opcode.name

    @property
    def id(self) -> int:
        return int(self.opcode)

    def set_arg(self, arg: int):
        """Patch the operand of a PUSH. No-op for every other opcode."""
        if self.opcode in OPERAND_OPCODES:
            _check_range(arg)
            self.arg = arg

    # ── Binary encoding ──

    def encode(self) -> bytes:
        data = _ID.pack(self.id)
        if self.opcode in OPERAND_OPCODES:
            data += _ARG.pack(self.arg)
        return data

    @classmethod
    def decode(cls, data: bytes, offset: int = 0) -> Tuple['Instruction', int]:
        """Decode one record starting at `offset`.

        Returns (instruction, offset of the next record).
        """
        if offset + _ID.size > len(data):
            raise DecodeError("truncated opcode", offset)
        (op_id,) = _ID.unpack_from(data, offset)
        try:
            opcode = Opcode(op_id)
        except ValueError:
            raise DecodeError(f"no such opcode ID {op_id}", offset) from None

        pos = offset + _ID.size
        if opcode not in OPERAND_OPCODES:
            return cls(opcode), pos

        if pos + _ARG.size > len(data):
            raise DecodeError(f"truncated operand for {opcode.name}", offset)
        (arg,) = _ARG.unpack_from(data, pos)
        return cls(opcode, arg), pos + _ARG.size

    def __str__(self) -> str:
        if self.opcode in OPERAND_OPCODES:
            return f"{self.mnemonic:<10}{self.arg}"
        return self.mnemonic


def _check_range(value: int):
    if not I64_MIN <= value <= I64_MAX:
        raise ValueError(f"operand {value} does not fit in 64 bits")

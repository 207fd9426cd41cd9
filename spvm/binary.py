"""
SPVM Binary Container — persist and restore a program.

File layout:
  [5 bytes]  magic ".SPVM"
  [8 bytes]  instruction count, unsigned little-endian
  [records]  Instruction.encode() output, back to back in program order

The count has a fixed width and byte order so files move between hosts
unchanged. No checksum, no compression, no version field beyond the magic.
Labels and breakpoints are not stored: a loaded program runs with an
empty DebugInfo.
"""

from __future__ import annotations
from typing import List, Optional
from pathlib import Path
import logging
import struct

from .instruction import Instruction, DecodeError

__all__ = ['Binary', 'BinaryError', 'LoadError', 'MAGIC', 'save', 'load']

log = logging.getLogger(__name__)

MAGIC = b'.SPVM'
_HEADER = struct.Struct('<Q')


class BinaryError(Exception):
    """Raised when a binary container cannot be written."""
    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class LoadError(BinaryError):
    """Raised when a binary container cannot be read or decoded."""


class Binary:
    """A program wrapped for persistence.

    Usage:
        Binary(program).save('out.spvm')
        program = Binary.load('out.spvm').instructions
    """

    def __init__(self, instructions: List[Instruction]):
        self.instructions = instructions

    @property
    def num_instructions(self) -> int:
        return len(self.instructions)

    # ── Serialization ──

    def to_bytes(self) -> bytes:
        out = bytearray(MAGIC)
        out += _HEADER.pack(self.num_instructions)
        for instruction in self.instructions:
            out += instruction.encode()
        return bytes(out)

    @classmethod
    def from_bytes(cls, data: bytes, source: Optional[str] = None) -> 'Binary':
        """Decode a container image. `source` only labels error messages."""
        if data[:len(MAGIC)] != MAGIC:
            raise LoadError("wrong file format (bad magic)", source)

        pos = len(MAGIC)
        if pos + _HEADER.size > len(data):
            raise LoadError("truncated header", source)
        (count,) = _HEADER.unpack_from(data, pos)
        pos += _HEADER.size

        instructions = []
        while len(instructions) < count:
            try:
                instruction, pos = Instruction.decode(data, pos)
            except DecodeError as e:
                raise LoadError(
                    f"record {len(instructions)} of {count}: {e}", source) from e
            instructions.append(instruction)

        if pos < len(data):
            log.warning("%s: ignoring %d trailing bytes after %d instructions",
                        source or "<bytes>", len(data) - pos, count)
        return cls(instructions)

    # ── Files ──

    def save(self, path):
        data = self.to_bytes()
        try:
            with open(path, 'wb') as f:
                f.write(data)
                f.flush()
        except OSError as e:
            raise BinaryError(f"cannot write binary: {e}", str(path)) from e
        log.info("Saved %d instructions (%d bytes) to %s",
                 self.num_instructions, len(data), path)

    @classmethod
    def load(cls, path) -> 'Binary':
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            raise LoadError(f"cannot read binary: {e}", str(path)) from e
        binary = cls.from_bytes(data, str(path))
        log.debug("Loaded %d instructions from %s", binary.num_instructions, path)
        return binary


# ──────────────────────────────────────────────
# Convenience functions
# ──────────────────────────────────────────────

def save(program: List[Instruction], path):
    """Write `program` to `path` as a binary container."""
    Binary(program).save(path)


def load(path) -> List[Instruction]:
    """Read a binary container, return its instructions."""
    return Binary.load(path).instructions

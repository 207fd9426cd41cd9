"""
SPVM Assembler — single-pass text-to-bytecode translation with relocation.

Input:  Assembly text, one statement per line
Output: List of Instruction objects + DebugInfo (labels, breakpoints)

Line grammar, checked in this order:
  ; comment            ignored (also blank lines)
  name:                label definition, emits nothing
  @PushStr "text"      metainstruction, expands to PUSH instructions
  @Break               metainstruction, registers a breakpoint here
  MNEMONIC [operand]   real instruction, only PUSH takes an operand

How label resolution works:
  The assembler walks the source once, keeping two tables:
    labels       name -> resolved address
    relocations  name -> addresses of PUSH instructions waiting for it
  A PUSH naming a known label gets the address straight away. A PUSH
  naming a label not seen yet is emitted as PUSH 0 and its address is
  recorded under that name. When the label is finally defined every
  recorded PUSH is patched in place (Instruction.set_arg) and the name
  leaves the relocation table. Anything still pending at end of input
  is an unresolved label.

  This gives the same result as a classic two-pass assembler because
  every instruction has a fixed slot: addresses are list indices, so
  nothing has to be re-measured after patching.
"""

from __future__ import annotations
from typing import Dict, List, Optional, Tuple
from pathlib import Path
import logging
import re

from .debug_info import DebugInfo
from .instruction import Instruction, I64_MIN, I64_MAX

__all__ = ['Assembler', 'AssemblerError', 'assemble', 'assemble_file']

log = logging.getLogger(__name__)


class AssemblerError(Exception):
    """Raised on assembly errors."""
    def __init__(self, message: str, filename: str = "", line_num: int = 0,
                 line_text: str = ""):
        self.message = message
        self.filename = filename
        self.line_num = line_num
        self.line_text = line_text
        if filename and line_num:
            text = f"{filename}:{line_num}: {message}"
        elif line_num:
            text = f"Line {line_num}: {message}"
        elif filename:
            text = f"{filename}: {message}"
        else:
            text = message
        super().__init__(text)


# ──────────────────────────────────────────────
# Lexical helpers
# ──────────────────────────────────────────────

# Decimal, 0x hex or 0b binary, optional sign
_INT_RE = re.compile(r'^([+-]?)(?:0[xX]([0-9a-fA-F]+)|0[bB]([01]+)|([0-9]+))$')

# Recognized escapes inside @PushStr literals
_ESCAPES = {'n': '\n', 't': '\t', '0': '\0', '\\': '\\'}


def _strip_comment(line: str, quoted: bool = False) -> str:
    """Cut a trailing ';' comment.

    With `quoted`, a ';' inside a "..." literal is kept. Only @PushStr
    lines have literals; elsewhere '"' is an ordinary character.
    """
    in_string = False
    for i, ch in enumerate(line):
        if quoted and ch == '"':
            in_string = not in_string
        elif ch == ';' and not in_string:
            return line[:i]
    return line


def _parse_int(text: str) -> Optional[int]:
    """Parse an integer literal. Returns None if `text` is not one."""
    m = _INT_RE.match(text)
    if not m:
        return None
    sign, hex_part, bin_part, dec_part = m.groups()
    if hex_part is not None:
        value = int(hex_part, 16)
    elif bin_part is not None:
        value = int(bin_part, 2)
    else:
        value = int(dec_part)
    return -value if sign == '-' else value


def _unescape(text: str) -> str:
    """Resolve \\n, \\t, \\0 and \\\\ escapes. Raises ValueError on any other."""
    out = []
    chars = iter(text)
    for ch in chars:
        if ch != '\\':
            out.append(ch)
            continue
        nxt = next(chars, None)
        if nxt is None:
            raise ValueError("dangling '\\' at end of string literal")
        if nxt not in _ESCAPES:
            raise ValueError(f"unknown escape sequence '\\{nxt}'")
        out.append(_ESCAPES[nxt])
    return ''.join(out)


def _join_string_literal(tokens: List[str]) -> Tuple[str, List[str]]:
    """Re-join whitespace-split tokens into one "..." literal.

    Returns (literal without quotes, remaining tokens). Tokens are joined
    with a single space until one closes the literal.
    """
    if not tokens[0].startswith('"'):
        raise ValueError("string literal must start with '\"'")
    text = tokens[0]
    i = 1
    while len(text) < 2 or not text.endswith('"'):
        if i >= len(tokens):
            raise ValueError("unterminated string literal")
        text += ' ' + tokens[i]
        i += 1
    return text[1:-1], tokens[i:]


# ──────────────────────────────────────────────
# The Assembler
# ──────────────────────────────────────────────

class Assembler:
    """SPVM assembler.

    Usage:
        asm = Assembler("hello.asm")
        program = asm.assemble(source_text)
        asm.debug_info.breakpoints   # addresses of @Break
    """

    def __init__(self, filename: str = "<source>"):
        self.filename = filename
        self.labels: Dict[str, int] = {}             # name -> address
        self.relocations: Dict[str, List[int]] = {}  # name -> PUSH addresses awaiting it
        self.program: List[Instruction] = []
        self.debug_info = DebugInfo()
        self._line_num = 0
        self._line_text = ""

    def assemble(self, source: str) -> List[Instruction]:
        """Assemble source text. Returns the program; debug data stays on self."""
        self.labels = {}
        self.relocations = {}
        self.program = []
        self.debug_info = DebugInfo()

        # Only '\n' ends a line: str.splitlines() would also break on form
        # feeds and Unicode separators that may sit inside a literal
        lines = source.split('\n')
        if lines[-1] == '':
            lines.pop()
        for line_num, line in enumerate(lines, 1):
            if line.endswith('\r'):
                line = line[:-1]
            self._line_num = line_num
            self._line_text = line
            self._parse_line(line)

        if self.relocations:
            pending = '; '.join(
                f"`{name}` (referenced at {', '.join(f'{a:04x}' for a in addrs)})"
                for name, addrs in self.relocations.items()
            )
            raise self._error(f"could not resolve labels: {pending}")

        log.debug("%s: %d instructions, %d labels, %d breakpoints",
                  self.filename, len(self.program), len(self.labels),
                  len(self.debug_info.breakpoints))
        return self.program

    def assemble_file(self, path) -> List[Instruction]:
        """Read and assemble a source file. Diagnostics name the file."""
        self.filename = str(path)
        try:
            source = Path(path).read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise AssemblerError(f"cannot read source: {e}", self.filename) from e
        return self.assemble(source)

    # ── Line dispatch ──

    def _error(self, message: str) -> AssemblerError:
        return AssemblerError(message, self.filename, self._line_num, self._line_text)

    def _parse_line(self, line: str):
        text = line.strip()
        if not text or text.startswith(';'):
            return

        tokens = _strip_comment(text, quoted=text.split(None, 1)[0] == '@PushStr').split()
        if not tokens:
            return

        head = tokens[0]
        if head.endswith(':'):
            if len(tokens) > 1:
                raise self._error(f"unexpected text after label: `{tokens[1]}`")
            self._define_label(head[:-1])
        elif head.startswith('@'):
            self._expand_meta(head[1:], tokens[1:])
        else:
            self._parse_instruction(head, tokens[1:])

    # ── Labels ──

    def _define_label(self, name: str):
        if not name or ':' in name:
            raise self._error(f"invalid label name `{name}:`")
        if name in self.labels:
            raise self._error(
                f"label `{name}` already defined at {self.labels[name]:04x}")

        addr = len(self.program)
        for ref in self.relocations.pop(name, []):
            self.program[ref].set_arg(addr)

        self.labels[name] = addr
        self.debug_info.add_label(addr, name)

    def _label_addr(self, name: str, instruction_addr: int) -> int:
        """Address of `name`, or 0 with a relocation recorded if not yet known."""
        if name in self.labels:
            return self.labels[name]
        self.relocations.setdefault(name, []).append(instruction_addr)
        return 0

    # ── Metainstructions ──

    def _expand_meta(self, name: str, args: List[str]):
        if name == 'PushStr':
            if not args:
                raise self._error("`@PushStr` expects one string argument")
            try:
                literal, rest = _join_string_literal(args)
                text = _unescape(literal)
            except ValueError as e:
                raise self._error(f"`@PushStr`: {e}") from None
            if rest:
                raise self._error(f"too many arguments: `{rest[0]}`")

            # Terminator first, first character last: popping yields forward order
            for value in reversed([ord(ch) for ch in text] + [0]):
                self.program.append(Instruction.push(value))

        elif name == 'Break':
            if args:
                raise self._error(f"`@Break` takes no argument, got `{args[0]}`")
            self.debug_info.add_breakpoint(len(self.program))

        else:
            raise self._error(f"no such metainstruction `@{name}`")

    # ── Instructions ──

    def _parse_instruction(self, mnemonic: str, args: List[str]):
        if len(args) > 1:
            raise self._error(f"too many arguments: `{args[1]}`")
        operand = args[0] if args else None

        # PUSH starts at 0; the real operand is patched in below
        try:
            instruction = Instruction.from_mnemonic(
                mnemonic, None if operand is None else 0)
        except KeyError:
            raise self._error(f"no such mnemonic `{mnemonic}`") from None
        except ValueError:
            name = mnemonic.upper()
            if operand is None:
                raise self._error(f"`{name}` expects one argument") from None
            raise self._error(f"`{name}` takes no argument, got `{operand}`") from None

        if operand is not None:
            instruction.set_arg(self._operand_value(operand))
        self.program.append(instruction)

    def _operand_value(self, operand: str) -> int:
        value = _parse_int(operand)
        if value is None:
            return self._label_addr(operand, len(self.program))
        if not I64_MIN <= value <= I64_MAX:
            raise self._error(f"integer literal `{operand}` does not fit in 64 bits")
        return value


# ──────────────────────────────────────────────
# Convenience functions
# ──────────────────────────────────────────────

def assemble(source: str, filename: str = "<source>") -> Tuple[List[Instruction], DebugInfo]:
    """Assemble source text, return (program, debug_info)."""
    asm = Assembler(filename)
    program = asm.assemble(source)
    return program, asm.debug_info


def assemble_file(path) -> Tuple[List[Instruction], DebugInfo]:
    """Assemble a source file, return (program, debug_info)."""
    asm = Assembler()
    program = asm.assemble_file(path)
    return program, asm.debug_info

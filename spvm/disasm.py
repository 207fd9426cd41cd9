"""
SPVM Disassembly — plain-text listings and rich console rendering.

format_listing() produces source text that assembles back to the same
program (labels and @Break lines included when DebugInfo is supplied).
render_state() draws the instruction listing and operand stack for the
verbose / breakpoint view.
"""

from typing import List, Optional, Sequence

from rich.console import Console
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from .debug_info import DebugInfo
from .instruction import Instruction


def format_listing(program: Sequence[Instruction],
                   debug_info: Optional[DebugInfo] = None) -> str:
    """Render `program` as assembly text, one instruction per line."""
    lines: List[str] = []
    for addr, instruction in enumerate(program):
        lines.extend(_annotations(addr, debug_info))
        lines.append(f"    {str(instruction):<24}; {addr:04x}")
    # Labels / breakpoints sitting past the last instruction
    lines.extend(_annotations(len(program), debug_info))
    return '\n'.join(lines) + '\n'


def _annotations(addr: int, debug_info: Optional[DebugInfo]) -> List[str]:
    if debug_info is None:
        return []
    lines = [f"{name}:" for name in debug_info.labels_at(addr)]
    if debug_info.breakpoint_at(addr):
        lines.append("    @Break")
    return lines


def render_state(console: Console, program: Sequence[Instruction], ip: int,
                 stack: Sequence[int], debug_info: Optional[DebugInfo] = None):
    """Print the disassembly with an IP marker, then the stack (bottom first)."""
    console.print(Rule("Instructions"))
    code = Table(show_header=False, box=None, pad_edge=False)
    code.add_column("addr", style="blue")
    code.add_column("ip", style="green")
    code.add_column("instruction")
    code.add_column("label", style="yellow")

    for addr, instruction in enumerate(program):
        label = debug_info.label_at(addr) if debug_info else None
        marker = ">>" if addr == ip else "  "
        if debug_info and debug_info.breakpoint_at(addr):
            marker += "*"
        text = Text(instruction.mnemonic, style="bold magenta")
        if instruction.arg is not None:
            text.append(f" {instruction.arg}")
        code.add_row(f"{addr:04x}", marker, text, Text(f"<{label}>") if label else "")
    console.print(code)

    console.print(Rule("Stack"))
    if not stack:
        console.print(Text("<no entries>", style="bright_black"))
        return
    values = Table(show_header=False, box=None, pad_edge=False)
    values.add_column("slot", style="blue")
    values.add_column("value", style="red")
    for slot, value in enumerate(stack):
        values.add_row(f"{slot:04x}", str(value))
    console.print(values)

"""
SPVM Debug Layer — breakpoints, label annotations and the verbosity flag.

Written by the assembler, read by the stack machine. A program loaded from
a binary container gets an empty DebugInfo: labels and breakpoints are not
persisted.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set


@dataclass
class DebugInfo:
    breakpoints: Set[int] = field(default_factory=set)
    labels: Dict[int, List[str]] = field(default_factory=dict)
    verbose: bool = False

    def add_breakpoint(self, addr: int):
        self.breakpoints.add(addr)

    def breakpoint_at(self, addr: int) -> bool:
        return addr in self.breakpoints

    def add_label(self, addr: int, label: str):
        self.labels.setdefault(addr, []).append(label)

    def label_at(self, addr: int) -> Optional[str]:
        """Label annotation for `addr`, or None. Several labels are comma-joined."""
        names = self.labels.get(addr)
        if not names:
            return None
        return ', '.join(names)

    def labels_at(self, addr: int) -> List[str]:
        return list(self.labels.get(addr, ()))

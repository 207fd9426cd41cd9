"""
Debug layer and listing tests.
"""

import io

from rich.console import Console

from spvm.assembler import assemble
from spvm.debug_info import DebugInfo
from spvm.disasm import format_listing, render_state
from spvm.machine import StackMachine


class TestDebugInfo:
    def test_defaults(self):
        info = DebugInfo()
        assert info.breakpoints == set()
        assert info.labels == {}
        assert info.verbose is False

    def test_breakpoints(self):
        info = DebugInfo()
        info.add_breakpoint(3)
        info.add_breakpoint(3)
        assert info.breakpoint_at(3)
        assert not info.breakpoint_at(4)
        assert info.breakpoints == {3}

    def test_several_labels_at_one_address(self):
        info = DebugInfo()
        info.add_label(2, "first")
        info.add_label(2, "second")
        assert info.label_at(2) == "first, second"
        assert info.labels_at(2) == ["first", "second"]
        assert info.labels_at(9) == []

    def test_instances_do_not_share_state(self):
        a, b = DebugInfo(), DebugInfo()
        a.add_breakpoint(1)
        assert b.breakpoints == set()


class TestListing:
    def test_layout(self):
        program, debug_info = assemble("start:\nalias:\n@Break\nPUSH 12\nEXIT\n")
        assert format_listing(program, debug_info) == (
            "start:\n"
            "alias:\n"
            "    @Break\n"
            "    PUSH      12            ; 0000\n"
            "    EXIT                    ; 0001\n"
        )

    def test_trailing_label(self):
        program, debug_info = assemble("POP\nend:\n")
        assert format_listing(program, debug_info).endswith("end:\n")


class TestRenderState:
    def _render(self, source, ip, stack):
        program, debug_info = assemble(source)
        buf = io.StringIO()
        render_state(Console(file=buf, width=100), program, ip, stack, debug_info)
        return buf.getvalue()

    def test_marks_instruction_pointer(self):
        text = self._render("PUSH 1\nhere:\nPOP\n", 1, [1])
        lines = text.splitlines()
        pop_line = next(line for line in lines if "POP" in line)
        assert ">>" in pop_line
        assert "<here>" in pop_line

    def test_breakpoint_marker(self):
        text = self._render("PUSH 1\n@Break\nPOP\n", 0, [])
        pop_line = next(line for line in text.splitlines() if "POP" in line)
        assert "*" in pop_line

    def test_stack_values(self):
        text = self._render("EXIT\n", 0, [5, -8])
        assert "<no entries>" not in text
        assert "-8" in text

    def test_empty_stack(self):
        assert "<no entries>" in self._render("EXIT\n", 0, [])

    def test_label_with_brackets_is_not_markup(self):
        text = self._render("loop[/x]:\n[b]start:\nEXIT\n", 0, [])
        assert "<loop[/x], [b]start>" in text

    def test_verbose_run_with_bracketed_label(self):
        program, debug_info = assemble("loop[/x]:\n@Break\nEXIT\n")
        debug_info.verbose = True
        buf = io.StringIO()
        machine = StackMachine(debug_info, out=io.StringIO(),
                               console=Console(file=buf, width=100),
                               prompt=lambda text: "y")
        assert machine.run(program) == 0
        assert "<loop[/x]>" in buf.getvalue()

"""
Binary container tests: layout, save/load and load-time diagnostics.
"""

import struct

import pytest
from spvm.assembler import assemble
from spvm.binary import Binary, BinaryError, LoadError, MAGIC, save, load
from spvm.instruction import Instruction, Opcode


SOURCE = """
    @PushStr "hey"
    PRINTSTR
loop:
    PUSH -9000000000
    PUSH loop
    @Break
    CALL
    EXIT
"""


class TestLayout:
    def test_header(self):
        data = Binary([Instruction.push(7), Instruction(Opcode.EXIT)]).to_bytes()
        assert data[:5] == b'.SPVM'
        assert struct.unpack_from('<Q', data, 5) == (2,)
        assert data[13:] == (b'\x00\x00' + struct.pack('<q', 7) + b'\x0b\x00')

    def test_empty_program(self):
        data = Binary([]).to_bytes()
        assert data == MAGIC + b'\x00' * 8
        assert Binary.from_bytes(data).instructions == []


class TestRoundTrip:
    def test_save_then_load(self, tmp_path):
        program, debug_info = assemble(SOURCE)
        path = tmp_path / "prog.spvm"
        save(program, path)
        assert load(path) == program

    def test_debug_info_is_not_persisted(self, tmp_path):
        program, debug_info = assemble(SOURCE)
        assert debug_info.breakpoints
        path = tmp_path / "prog.spvm"
        Binary(program).save(path)
        # Only instructions are stored: the file is exactly header + records
        expected = len(MAGIC) + 8 + sum(len(ins.encode()) for ins in program)
        assert path.stat().st_size == expected


class TestLoadErrors:
    def test_wrong_magic(self, tmp_path):
        path = tmp_path / "bad.spvm"
        path.write_bytes(b'.ELF!' + b'\x00' * 8)
        with pytest.raises(LoadError) as exc:
            Binary.load(path)
        assert "wrong file format" in str(exc.value)
        assert exc.value.path == str(path)

    def test_truncated_header(self):
        with pytest.raises(LoadError):
            Binary.from_bytes(MAGIC + b'\x01\x00')

    def test_count_exceeds_records(self):
        data = MAGIC + struct.pack('<Q', 3) + b'\x01\x00'
        with pytest.raises(LoadError) as exc:
            Binary.from_bytes(data)
        assert "record 1 of 3" in str(exc.value)

    def test_unknown_opcode(self):
        data = MAGIC + struct.pack('<Q', 1) + b'\x63\x00'
        with pytest.raises(LoadError) as exc:
            Binary.from_bytes(data)
        assert "99" in str(exc.value)

    def test_truncated_push_operand(self):
        data = MAGIC + struct.pack('<Q', 1) + b'\x00\x00\x05'
        with pytest.raises(LoadError):
            Binary.from_bytes(data)

    def test_missing_file(self, tmp_path):
        with pytest.raises(LoadError):
            load(tmp_path / "nope.spvm")

    def test_trailing_bytes_ignored(self, caplog):
        data = Binary([Instruction(Opcode.POP)]).to_bytes() + b'\xff\xff'
        assert Binary.from_bytes(data).instructions == [Instruction(Opcode.POP)]
        assert "trailing" in caplog.text


class TestSaveErrors:
    def test_unwritable_path(self, tmp_path):
        with pytest.raises(BinaryError):
            save([Instruction(Opcode.EXIT)], tmp_path / "no_dir" / "out.spvm")

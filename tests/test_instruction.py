"""
Instruction model tests: opcode table, encoding and decoding.
"""

import pytest
from spvm.instruction import (
    Instruction, Opcode, DecodeError, wrap_i64, wrap_i32, I64_MIN, I64_MAX,
)


class TestOpcodeTable:
    def test_ids_and_mnemonics(self):
        expected = [
            (0, "PUSH"), (1, "POP"), (2, "DUP"), (3, "SWAP"), (4, "JZ"),
            (5, "JNZ"), (6, "JMP"), (7, "ADD"), (8, "SUB"), (9, "MUL"),
            (10, "DIV"), (11, "EXIT"), (12, "PRINTOUT"), (13, "CALL"),
            (14, "PRINTSTR"),
        ]
        assert [(op.value, op.name) for op in Opcode] == expected

    def test_from_mnemonic_case_insensitive(self):
        assert Instruction.from_mnemonic("dup") == Instruction(Opcode.DUP)
        assert Instruction.from_mnemonic("Push", 3) == Instruction.push(3)

    def test_from_mnemonic_unknown(self):
        with pytest.raises(KeyError):
            Instruction.from_mnemonic("NOP")

    def test_push_requires_operand(self):
        with pytest.raises(ValueError):
            Instruction(Opcode.PUSH)

    def test_other_opcodes_reject_operand(self):
        with pytest.raises(ValueError):
            Instruction(Opcode.JMP, 4)

    def test_operand_range(self):
        Instruction.push(I64_MAX)
        Instruction.push(I64_MIN)
        with pytest.raises(ValueError):
            Instruction.push(I64_MAX + 1)


class TestSetArg:
    def test_patches_push(self):
        ins = Instruction.push(0)
        ins.set_arg(42)
        assert ins.arg == 42

    def test_noop_on_other_opcodes(self):
        ins = Instruction(Opcode.JMP)
        ins.set_arg(42)
        assert ins.arg is None


class TestEncoding:
    def test_push_encoding(self):
        assert Instruction.push(1).encode() == b'\x00\x00' + b'\x01' + b'\x00' * 7

    def test_negative_operand_twos_complement(self):
        assert Instruction.push(-1).encode() == b'\x00\x00' + b'\xff' * 8

    def test_operandless_is_two_bytes(self):
        for op in Opcode:
            if op is Opcode.PUSH:
                continue
            data = Instruction(op).encode()
            assert data == bytes([op.value, 0]), op.name

    def test_decode_sequence(self):
        data = Instruction.push(-5).encode() + Instruction(Opcode.PRINTSTR).encode()
        first, pos = Instruction.decode(data)
        second, end = Instruction.decode(data, pos)
        assert first == Instruction.push(-5)
        assert pos == 10
        assert second == Instruction(Opcode.PRINTSTR)
        assert end == len(data)

    def test_decode_unknown_id(self):
        with pytest.raises(DecodeError) as exc:
            Instruction.decode(b'\x0f\x00')
        assert "15" in str(exc.value)
        assert exc.value.offset == 0

    def test_decode_truncated_operand(self):
        with pytest.raises(DecodeError):
            Instruction.decode(b'\x00\x00\x01\x02')

    def test_decode_truncated_id(self):
        with pytest.raises(DecodeError):
            Instruction.decode(b'\x01')


class TestText:
    def test_str(self):
        assert str(Instruction(Opcode.PRINTOUT)) == "PRINTOUT"
        assert str(Instruction.push(12)) == "PUSH      12"

    def test_wrap_i64(self):
        assert wrap_i64(I64_MAX + 1) == I64_MIN
        assert wrap_i64(I64_MIN - 1) == I64_MAX
        assert wrap_i64(-7) == -7

    def test_wrap_i32(self):
        assert wrap_i32(3) == 3
        assert wrap_i32(-1) == -1
        assert wrap_i32(1 << 32) == 0
        assert wrap_i32((1 << 32) + 1) == 1
        assert wrap_i32(1 << 31) == -(1 << 31)

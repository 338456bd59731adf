"""
Assembler and disassembler tests.
"""

import contextlib
import io
import unittest

from layout import compute_layout
from asm import assemble, words_to_bytes, encode_instruction, AsmError
from cli import disasm_one


class TestAssembler(unittest.TestCase):
    def test_load_immediate(self):
        self.assertEqual(assemble("ldi r0, 170\nldih r0, 0xAA"), [0x20AA, 0x21AA])

    def test_memory_forms(self):
        self.assertEqual(assemble("ld r0, r1, 1"), [0x0041])
        self.assertEqual(assemble("ld r0, r1, -32"), [0x0060])
        self.assertEqual(assemble("st r1, r0, 1"), [0x1201])

    def test_math_forms(self):
        self.assertEqual(assemble("add r0, r1"), [0x3001])
        self.assertEqual(assemble("mul r0, 65"), [0x5841])
        self.assertEqual(assemble("sub r0, -1"), [0x48FF])
        self.assertEqual(assemble("shl r0, #16"), [0x7810])
        self.assertEqual(assemble("SHR R2, 0b11"), [0x6A03])

    def test_bitwise_forms(self):
        self.assertEqual(assemble("and r0, r1\nor r0, r1\nxor r0, r1"),
                         [0x9040, 0xA040, 0xB040])
        self.assertEqual(assemble("not r3"), [0x8600])

    def test_word_directive_and_comments(self):
        words = assemble("""
            ; header comment
            .word 0xC000, 5   ; raw words

            ldi r1, 1
        """)
        self.assertEqual(words, [0xC000, 5, 0x2201])

    def test_layout_dependent_encoding(self):
        lay = compute_layout(register_count=4)
        self.assertEqual(assemble("ld r1, r2, -3", lay), [0b0000_01_10_11111101])
        with self.assertRaises(AsmError):
            assemble("ld r4, r0, 0", lay)

    def test_no_slot_for_mnemonic(self):
        lay = compute_layout(instruction_slots=8)
        self.assertEqual(assemble("shl r0, 1", lay), [0b111_1_000_000000001])
        with self.assertRaises(ValueError):
            encode_instruction(lay, "xor", ["r0", "r1"])

    def test_listing(self):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            assemble("ldi r0, 1\n.word 1, 2", listing=True)
        lines = out.getvalue().splitlines()
        self.assertEqual(len(lines), 3)
        self.assertIn("2001", lines[0])
        self.assertIn("ldi r0, 1", lines[0])

    def test_words_to_bytes(self):
        self.assertEqual(words_to_bytes([0x20AA, 0x0102]), b"\xaa\x20\x02\x01")
        lay = compute_layout(register_bits=24, memory_size=16)
        self.assertEqual(words_to_bytes([0x123456], lay), b"\x56\x34\x12")


class TestAsmErrors(unittest.TestCase):
    def assertAsmError(self, source, line=1):
        with self.assertRaises(AsmError) as cm:
            assemble(source)
        self.assertEqual(cm.exception.line, line)

    def test_unknown_mnemonic(self):
        self.assertAsmError("jmp r0")

    def test_offset_out_of_range(self):
        self.assertAsmError("ldi r0, 1\nld r0, r1, 32", line=2)

    def test_register_out_of_range(self):
        self.assertAsmError("not r8")

    def test_operand_count(self):
        self.assertAsmError("add r0")
        self.assertAsmError("not r0, r1")

    def test_immediate_out_of_range(self):
        self.assertAsmError("ldi r0, 256")
        self.assertAsmError("ldi r0, -1")
        self.assertAsmError("add r0, 128")

    def test_bad_tokens(self):
        self.assertAsmError("ld r0, r1, x")
        self.assertAsmError("and r0, 5")
        self.assertAsmError(".word")


class TestDisassembler(unittest.TestCase):
    def setUp(self):
        self.layout = compute_layout()

    def test_memory(self):
        self.assertEqual(disasm_one(0x0060, self.layout), "ld r0, r1, -32")
        self.assertEqual(disasm_one(0x1201, self.layout), "st r1, r0, 1")

    def test_immediates(self):
        self.assertEqual(disasm_one(0x21AA, self.layout), "ldih r0, 0xaa")
        self.assertEqual(disasm_one(0x48FF, self.layout), "sub r0, -1")
        self.assertEqual(disasm_one(0x3001, self.layout), "add r0, r1")

    def test_bitwise(self):
        self.assertEqual(disasm_one(0xB040, self.layout), "xor r0, r1")
        self.assertEqual(disasm_one(0x8600, self.layout), "not r3")

    def test_unknown(self):
        self.assertEqual(disasm_one(0xC000, self.layout), ".word 0xc000")

    def test_reassembles(self):
        word = assemble("st r5, r6, -7")[0]
        self.assertEqual(assemble(disasm_one(word, self.layout)), [word])


if __name__ == "__main__":
    unittest.main()

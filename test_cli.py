"""
Command-line interface tests: argparse entry point and the monitor.
"""

import contextlib
import io
import os
import tempfile
import unittest

from asm import assemble
from cli import TinyCLI, main
from system import TinySystem


class TestMain(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = self._tmp.name

    def tearDown(self):
        self._tmp.cleanup()

    def write(self, name, text):
        path = os.path.join(self.tmp, name)
        with open(path, "w") as f:
            f.write(text)
        return path

    def call(self, *argv):
        out = io.StringIO()
        err = io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            rc = main(list(argv))
        return rc, out.getvalue(), err.getvalue()

    def test_assemble_to_image(self):
        src = self.write("prog.asm", "ldi r0, 170\nldih r0, 170\n")
        out_path = os.path.join(self.tmp, "prog.bin")
        rc, out, _ = self.call("--assemble", src, out_path)
        self.assertEqual(rc, 0)
        with open(out_path, "rb") as f:
            self.assertEqual(f.read(), b"\xaa\x20\xaa\x21")
        self.assertIn("2 words", out)

    def test_assemble_error(self):
        src = self.write("bad.asm", "ldi r0, 1\nbogus r1\n")
        rc, _, err = self.call("--assemble", src, os.path.join(self.tmp, "x.bin"))
        self.assertEqual(rc, 1)
        self.assertIn("Line 2", err)

    def test_run_assembly(self):
        src = self.write("prog.asm", "ldi r0, 21\nadd r0, r0\n")
        rc, out, _ = self.call("--asm", src, "--run")
        self.assertEqual(rc, 0)
        self.assertIn("R0  = 0x002a", out)
        self.assertIn("OK", out)

    def test_run_image(self):
        path = os.path.join(self.tmp, "prog.bin")
        with open(path, "wb") as f:
            f.write(b"\x05\x20")  # ldi r0, 5
        rc, out, _ = self.call("--load", path, "--run")
        self.assertEqual(rc, 0)
        self.assertIn("R0  = 0x0005", out)

    def test_run_fault_exit_code(self):
        src = self.write("prog.asm", "shr r0, 17\n")
        rc, out, _ = self.call("--asm", src, "--run")
        self.assertEqual(rc, 1)
        self.assertIn("SHIFT_OUT_OF_RANGE", out)

    def test_configuration_error(self):
        rc, _, err = self.call("--registers", "6", "--run")
        self.assertEqual(rc, 2)
        self.assertIn("Configuration error", err)

    def test_custom_layout(self):
        src = self.write("prog.asm", "ldi r15, 1\nshl r15, 20\n")
        rc, out, _ = self.call("--bits", "24", "--registers", "16",
                               "--memory", "0x1000", "--asm", src, "--run")
        self.assertEqual(rc, 0)
        self.assertIn("R15 = 0x100000", out)


class TestMonitor(unittest.TestCase):
    def setUp(self):
        self.out = io.StringIO()
        self.sys = TinySystem()
        self.cli = TinyCLI(self.sys, stdout=self.out)

    def output(self):
        text = self.out.getvalue()
        self.out.seek(0)
        self.out.truncate()
        return text

    def test_inline_asm_and_run(self):
        self.cli.onecmd('asm -e "ldi r0, 5 | add r0, 1"')
        self.assertIn("Assembled 2 words", self.output())
        self.cli.onecmd("run")
        self.assertIn("OK", self.output())
        self.assertEqual(self.sys.cpu.regs[0], 6)

    def test_step_shows_disassembly(self):
        self.sys.load_program(assemble("ldi r1, 3\nshl r1, 17"))
        self.cli.onecmd("step")
        self.assertIn("ldi r1, 0x3", self.output())
        self.cli.onecmd("step")
        text = self.output()
        self.assertIn("shl r1, 17", text)
        self.assertIn("ERROR SHIFT_OUT_OF_RANGE", text)
        self.cli.onecmd("step")
        self.assertIn("Halted", self.output())

    def test_run_when_halted(self):
        self.cli.onecmd("run")
        self.assertIn("halted", self.output())

    def test_registers(self):
        self.cli.onecmd("setreg r2 0x1234")
        self.assertEqual(self.sys.cpu.regs[2], 0x1234)
        self.cli.onecmd("setreg r9 1")
        self.assertIn("r0-r7", self.output())
        self.cli.onecmd("regs")
        self.assertIn("R2  = 0x1234", self.output())

    def test_memory(self):
        self.cli.onecmd("setmem 0x10 0xaa 0xbb")
        self.assertIn("Wrote 2 bytes", self.output())
        self.cli.onecmd("dump 0x10 2")
        self.assertIn("aa bb", self.output())
        self.cli.onecmd("setmem 0xffff 1 2")
        self.assertIn("Error", self.output())

    def test_disasm(self):
        self.sys.load_program(assemble("ldi r0, 1\n.word 0xF000"))
        self.cli.onecmd("disasm 0 2")
        text = self.output()
        self.assertIn(">>> 0000: 2001  ldi r0, 0x1", text)
        self.assertIn(".word 0xf000", text)

    def test_reset_and_cycles(self):
        self.sys.load_program(assemble("ldi r0, 1"))
        self.cli.onecmd("run")
        self.cli.onecmd("cycles")
        self.assertIn("1 cycles", self.output())
        self.cli.onecmd("reset")
        self.assertEqual(self.sys.pc, 0)
        self.assertIn("System reset", self.output())

    def test_unknown_and_quit(self):
        self.cli.onecmd("frobnicate")
        self.assertIn("Unknown command", self.output())
        self.assertTrue(self.cli.onecmd("quit"))


if __name__ == "__main__":
    unittest.main()

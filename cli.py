#!/usr/bin/env python3
"""
TinyCPU Monitor / CLI
=====================
Command-line interface for the TinyCPU system emulator.

Provides:
  - Processor configuration (opcode slots, register count/width, memory)
  - Binary image / assembly loading
  - Run / step execution with status reporting
  - Register and memory inspection / modification
  - Disassembly

Usage:
  python cli.py [--slots N] [--registers N] [--bits N] [--memory BYTES]
                [--load IMAGE | --asm FILE] [--run] [-v]
  python cli.py --assemble SRC OUT [--listing]
"""

from __future__ import annotations
import argparse
import cmd
import logging
import shlex
import sys
from typing import Optional

from layout import CpuConfig, Layout, Status, ConfigurationError, to_signed
from instructions import (
    KIND_LOAD, KIND_STORE, KIND_LDI, KIND_MATH, KIND_BITWISE, KIND_NOT,
    lookup, signed_offset,
)
from asm import assemble, words_to_bytes, AsmError
from system import TinySystem, HaltError

logger = logging.getLogger("tinycpu.cli")

# ---------------------------------------------------------------------------
#  Disassembler
# ---------------------------------------------------------------------------

def disasm_one(word: int, layout: Layout) -> str:
    """Render one instruction word in assembler syntax."""
    word &= layout.word_mask
    instr = lookup(layout, word)
    if instr is None:
        return f".word {word:#0{layout.register_bytes * 2 + 2}x}"

    _, ops = instr.decode(word, layout)
    kind = instr.kind
    if kind == KIND_LOAD:
        return f"ld r{ops.dst}, r{ops.base}, {signed_offset(ops, layout)}"
    if kind == KIND_STORE:
        return f"st r{ops.addr}, r{ops.src}, {signed_offset(ops, layout)}"
    if kind == KIND_LDI:
        name = "ldih" if ops.upper else "ldi"
        return f"{name} r{ops.dst}, {ops.data:#x}"
    if kind == KIND_MATH:
        if ops.immediate:
            return f"{instr.mnemonic} r{ops.dst}, {to_signed(ops.operand, layout.register_bits)}"
        return f"{instr.mnemonic} r{ops.dst}, r{ops.operand}"
    if kind == KIND_BITWISE:
        return f"{instr.mnemonic} r{ops.dst}, r{ops.src}"
    if kind == KIND_NOT:
        return f"not r{ops.dst}"
    return f".word {word:#x}"


def _status_text(status: Status) -> str:
    if status.is_error:
        return f"ERROR {status.name} ({int(status)})"
    if status.is_warning:
        return f"WARNING {status.name} ({int(status)})"
    return "OK"

# ---------------------------------------------------------------------------
#  Interactive monitor
# ---------------------------------------------------------------------------

class TinyCLI(cmd.Cmd):
    """Interactive monitor for the TinyCPU system."""

    intro = (
        "\n"
        "TinyCPU Monitor.  Type 'help' for commands, 'quit' to exit.\n"
    )
    prompt = "TINY> "

    def __init__(self, system: TinySystem, stdout=None):
        super().__init__(stdout=stdout)
        self.sys = system

    def _print(self, text: str = ""):
        self.stdout.write(text + "\n")

    # -- Parsing helpers --

    def _parse_int(self, s: str) -> int:
        return int(s.strip(), 0)

    def _parse_reg(self, s: str) -> Optional[int]:
        s = s.strip().lower()
        if s.startswith("r") and s[1:].isdigit():
            idx = int(s[1:])
            if idx < self.sys.layout.register_count:
                return idx
        return None

    # ================================================================
    #  Commands
    # ================================================================

    # -- Loading --

    def do_load(self, arg):
        """Load a binary image of little-endian words: load <file>"""
        parts = shlex.split(arg)
        if not parts:
            self._print("Usage: load <file>")
            return
        try:
            self.sys.load_image_file(parts[0])
        except (OSError, ValueError) as e:
            self._print(f"Error: {e}")
            return
        self._print(f"Loaded {len(self.sys.program)} words from '{parts[0]}'")

    def do_asm(self, arg):
        """Assemble a file into the program image: asm <file.asm>
        Or inline, instructions separated by '|': asm -e "ldi r0, 5 | add r0, 1" """
        parts = shlex.split(arg)
        if not parts:
            self._print('Usage: asm <file.asm>  OR  asm -e "code"')
            return
        if parts[0] == "-e":
            source = " ".join(parts[1:]).replace("|", "\n")
        else:
            try:
                with open(parts[0], "r") as f:
                    source = f.read()
            except OSError as e:
                self._print(f"Error reading '{parts[0]}': {e}")
                return
        try:
            words = assemble(source, self.sys.layout)
        except AsmError as e:
            self._print(f"Assembly error: {e}")
            return
        self.sys.load_program(words)
        self._print(f"Assembled {len(words)} words")

    # -- Execution --

    def do_step(self, arg):
        """Step N instructions: step [count]"""
        count = self._parse_int(arg) if arg.strip() else 1
        for _ in range(count):
            pc = self.sys.pc
            word = self.sys.current_word
            try:
                status = self.sys.step()
            except HaltError as e:
                self._print(f"Halted: {e}")
                break
            self._print(f"  {pc:04d}: {disasm_one(word, self.sys.layout):<24s} "
                        f"{_status_text(status)}")
            if status.is_error:
                break

    def do_run(self, arg):
        """Run until halt or fault: run [max_steps]"""
        max_steps = self._parse_int(arg) if arg.strip() else 1_000_000
        if self.sys.halted:
            self._print("System is halted. Use 'reset' or load a program.")
            return
        status = self.sys.run(max_steps)
        self._print(f"Stopped at word {self.sys.pc} after {self.sys.cycle_count} "
                    f"cycles: {_status_text(status)}")
        if self.sys.warnings:
            self._print(f"  {self.sys.warnings} warning(s)")

    def do_reset(self, arg):
        """Reset registers, memory and PC (program is kept)."""
        self.sys.reset()
        self._print("System reset.")

    # -- Inspection --

    def do_regs(self, arg):
        """Show CPU registers."""
        self._print(self.sys.cpu.dump_regs())
        self._print(f"  PC = {self.sys.pc}  halted={self.sys.halted}")

    def do_setreg(self, arg):
        """Set register: setreg <rN> <value>"""
        parts = shlex.split(arg)
        if len(parts) < 2:
            self._print("Usage: setreg <reg> <value>")
            return
        idx = self._parse_reg(parts[0])
        if idx is None:
            self._print(f"Register must be r0-r{self.sys.layout.register_count - 1}.")
            return
        self.sys.cpu.write_register(idx, self._parse_int(parts[1]))
        self._print(f"  R{idx} = {self.sys.cpu.read_register(idx):#x}")

    def do_dump(self, arg):
        """Hex dump memory: dump <address> [count]
        Count defaults to 64 bytes."""
        parts = shlex.split(arg)
        if not parts:
            self._print("Usage: dump <address> [count]")
            return
        addr = self._parse_int(parts[0])
        count = self._parse_int(parts[1]) if len(parts) > 1 else 64
        end = min(addr + count, self.sys.layout.memory_size)
        if addr < 0 or addr >= end:
            self._print("Address out of range.")
            return

        for row_start in range(addr, end, 16):
            row = self.sys.cpu.read_memory(row_start, min(16, end - row_start))
            hex_bytes = [f"{b:02x}" for b in row] + ["  "] * (16 - len(row))
            ascii_chars = ''.join(chr(b) if 0x20 <= b < 0x7F else '.' for b in row)
            hex_str = ' '.join(hex_bytes[:8]) + '  ' + ' '.join(hex_bytes[8:])
            self._print(f"  {row_start:#06x}: {hex_str}  |{ascii_chars}|")

    def do_setmem(self, arg):
        """Set memory bytes: setmem <address> <byte> [byte] ..."""
        parts = shlex.split(arg)
        if len(parts) < 2:
            self._print("Usage: setmem <addr> <byte...>")
            return
        addr = self._parse_int(parts[0])
        data = bytes(self._parse_int(tok) & 0xFF for tok in parts[1:])
        try:
            self.sys.cpu.write_memory(addr, data)
        except IndexError as e:
            self._print(f"Error: {e}")
            return
        self._print(f"  Wrote {len(data)} bytes at {addr:#x}")

    def do_disasm(self, arg):
        """Disassemble the program: disasm [start] [count]
        Defaults to the current PC, 16 words."""
        parts = shlex.split(arg)
        start = self._parse_int(parts[0]) if parts else self.sys.pc
        count = self._parse_int(parts[1]) if len(parts) > 1 else 16
        digits = self.sys.layout.register_bytes * 2
        for i in range(start, min(start + count, len(self.sys.program))):
            word = self.sys.program[i]
            marker = ">>>" if i == self.sys.pc else "   "
            self._print(f"  {marker} {i:04d}: {word:0{digits}x}  "
                        f"{disasm_one(word, self.sys.layout)}")

    def do_cycles(self, arg):
        """Show total cycle count."""
        self._print(f"  {self.sys.cycle_count} cycles, {self.sys.warnings} warnings")

    def do_quit(self, arg):
        """Exit the monitor."""
        self._print("Goodbye.")
        return True
    do_exit = do_quit
    do_q = do_quit

    def do_EOF(self, arg):
        self._print()
        return self.do_quit(arg)

    def default(self, line):
        """Handle unknown commands gracefully."""
        self._print(f"Unknown command: {line.split()[0]!r}. Type 'help' for available commands.")

    def emptyline(self):
        """Don't repeat the last command on empty input."""
        pass

# ---------------------------------------------------------------------------
#  Main
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="TinyCPU System Monitor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python cli.py --asm prog.asm --run\n"
               "  python cli.py --assemble prog.asm prog.bin --listing\n"
               "  python cli.py --load prog.bin\n"
               "  python cli.py --bits 24 --registers 16 --memory 4096\n"
    )
    parser.add_argument("--slots", type=int, default=16,
                        help="Opcode slots, a power of two (default: 16)")
    parser.add_argument("--registers", type=int, default=8,
                        help="Register count, a power of two (default: 8)")
    parser.add_argument("--bits", type=int, default=16,
                        help="Register width in bits (default: 16)")
    parser.add_argument("--memory", type=lambda s: int(s, 0), default=None,
                        metavar="BYTES",
                        help="Memory size in bytes (default: 2**bits)")
    parser.add_argument("--load", type=str, default=None, metavar="IMAGE",
                        help="Load a binary image of little-endian words")
    parser.add_argument("--asm", type=str, default=None, metavar="FILE",
                        help="Assemble FILE and load it as the program")
    parser.add_argument("--assemble", nargs=2, metavar=("SRC", "OUT"),
                        help="Assemble SRC to binary image OUT and exit")
    parser.add_argument("--listing", "-l", action="store_true",
                        help="Print assembly listing (with --assemble)")
    parser.add_argument("--run", action="store_true",
                        help="Run the loaded program, print registers and exit")
    parser.add_argument("--verbose", "-v", action="count", default=0,
                        help="More logging (-v info, -vv debug)")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    config = CpuConfig(instruction_slots=args.slots, register_count=args.registers,
                       register_bits=args.bits, memory_size=args.memory)
    try:
        sys_emu = TinySystem(config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    # ---- Assemble-only mode -------------------------------------------
    if args.assemble:
        src_path, out_path = args.assemble
        with open(src_path, "r") as f:
            source = f.read()
        try:
            words = assemble(source, sys_emu.layout, listing=args.listing)
        except AsmError as e:
            print(f"Assembly error: {e}", file=sys.stderr)
            return 1
        with open(out_path, "wb") as f:
            f.write(words_to_bytes(words, sys_emu.layout))
        print(f"Assembled {src_path} -> {out_path} ({len(words)} words)")
        return 0

    if args.load:
        sys_emu.load_image_file(args.load)
        logger.info("loaded %d words from %s", len(sys_emu.program), args.load)
    elif args.asm:
        with open(args.asm, "r") as f:
            source = f.read()
        try:
            sys_emu.load_program(assemble(source, sys_emu.layout))
        except AsmError as e:
            print(f"Assembly error: {e}", file=sys.stderr)
            return 1

    if args.run:
        status = sys_emu.run()
        print(sys_emu.cpu.dump_regs())
        print(f"Stopped at word {sys_emu.pc}: {_status_text(status)}")
        return 1 if status.is_error else 0

    cli = TinyCLI(sys_emu)
    try:
        cli.cmdloop()
    except KeyboardInterrupt:
        print("\nInterrupted. Goodbye.")
    return 0


if __name__ == "__main__":
    sys.exit(main())

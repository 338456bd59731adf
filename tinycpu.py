"""
TinyCPU Processor
=================
A fixed-width-instruction processor model: a register file, a
byte-addressable little-endian memory of ``2**register_bits`` bytes and a
two-phase decode/execute dispatcher.

The dispatcher only routes and propagates status codes; bounds checking
and arithmetic belong to the instruction families (instructions.py).

Usage:
  from tinycpu import Processor
  cpu = Processor()
  status = cpu.decode(word)
  if not status.is_error:
      status = cpu.execute()
"""

from __future__ import annotations
import logging
from typing import Any, Optional

from layout import (CpuConfig, Layout, Status, ConfigurationError, TinyCpuError,
                    layout_for, mask, sign_extend, to_signed, compute_layout)
from instructions import DEFAULT_INSTRUCTIONS, UNKNOWN, Instruction

__all__ = [
    "Processor", "CpuConfig", "Layout", "Status", "ConfigurationError",
    "TinyCpuError", "compute_layout", "sign_extend", "to_signed", "mask",
    "IDLE", "DECODED", "EXECUTED",
]

# Dispatcher states
IDLE     = "idle"
DECODED  = "decoded"
EXECUTED = "executed"


class Processor:
    """TinyCPU core: owns registers and memory, dispatches instructions."""

    logger = logging.getLogger(__name__)

    def __init__(self, config: Optional[CpuConfig] = None,
                 logger: Optional[logging.Logger] = None,
                 instructions: tuple[Instruction, ...] = DEFAULT_INSTRUCTIONS):
        self.config = config or CpuConfig()
        self.layout: Layout = layout_for(self.config)
        if len(instructions) > self.layout.instruction_slots:
            raise ConfigurationError(
                f"{len(instructions)} instruction families do not fit in "
                f"{self.layout.instruction_slots} opcode slots")
        if logger is not None:
            self.logger = logger

        self.regs: list[int] = [0] * self.layout.register_count
        self.mem = bytearray(self.layout.memory_size)

        # opcode value (top field, in place) -> family
        self.opcodes: dict[int, Instruction] = {}
        opcode = 0
        for instr in instructions:
            self.opcodes[opcode] = instr
            opcode += self.layout.opcode_step

        self.state: str = IDLE
        self._current: Optional[Instruction] = None
        self._operands: Any = None
        self._word: int = 0

    # -- Dispatcher --

    def decode(self, word: int) -> Status:
        """Idle -> Decoded.  Looks up the opcode and runs its decoder."""
        word &= self.layout.word_mask
        self.state = IDLE
        self._current = None
        self._operands = None
        self._word = word

        instr = self.opcodes.get(self.layout.opcode_of(word), UNKNOWN)
        status, operands = instr.decode(word, self.layout)
        if status.is_error:
            self.logger.error("decode %#0*x: %s", self._hex_digits(), word, status.name)
            return status
        if status.is_warning:
            self.logger.warning("decode %#0*x: %s", self._hex_digits(), word, status.name)

        self.logger.debug("decoded %#0*x as %s %s", self._hex_digits(), word,
                          instr.mnemonic, operands)
        self._current = instr
        self._operands = operands
        self.state = DECODED
        return status

    def execute(self) -> Status:
        """Decoded -> Executed.  Runs the executor of the last decoded word."""
        if self.state != DECODED or self._current is None:
            status = Status.EXECUTE_UNKNOWN_INSTRUCTION
            self.logger.error("execute in state %s: %s", self.state, status.name)
            return status

        instr = self._current
        status = instr.execute(self._operands, self.regs, self.mem, self.layout)
        if status.is_error:
            self.logger.error("execute %s (%#0*x): %s", instr.mnemonic,
                              self._hex_digits(), self._word, status.name)
            self.state = IDLE
            self._current = None
            return status
        if status.is_warning:
            self.logger.warning("execute %s (%#0*x): %s", instr.mnemonic,
                                self._hex_digits(), self._word, status.name)
        self.state = EXECUTED
        return status

    def cycle(self, word: int) -> Status:
        """One full decode-then-execute cycle."""
        status = self.decode(word)
        if status.is_error:
            return status
        return self.execute()

    @property
    def current(self) -> Optional[Instruction]:
        return self._current

    @property
    def operands(self) -> Any:
        return self._operands

    # -- Host access --

    def read_register(self, idx: int) -> int:
        return self.regs[idx]

    def write_register(self, idx: int, value: int):
        self.regs[idx] = value & self.layout.word_mask

    def _check_range(self, addr: int, size: int):
        if addr < 0 or size < 0 or addr + size > self.layout.memory_size:
            raise IndexError(f"memory access {addr:#x}+{size} outside "
                             f"0..{self.layout.memory_size:#x}")

    def read_memory(self, addr: int, size: int = 1) -> bytes:
        self._check_range(addr, size)
        return bytes(self.mem[addr:addr + size])

    def write_memory(self, addr: int, data: bytes | bytearray):
        self._check_range(addr, len(data))
        self.mem[addr:addr + len(data)] = data

    def reset(self):
        """Zero registers and memory and return to Idle."""
        self.regs[:] = [0] * self.layout.register_count
        self.mem[:] = bytes(self.layout.memory_size)
        self.state = IDLE
        self._current = None
        self._operands = None
        self._word = 0

    # -- Debug / introspection --

    def _hex_digits(self) -> int:
        return self.layout.register_bytes * 2 + 2

    def dump_regs(self) -> str:
        width = self.layout.register_bits
        lines = []
        for i, v in enumerate(self.regs):
            lines.append(f"  R{i:<2d} = {v:#0{self._hex_digits()}x}  "
                         f"({v}, signed {to_signed(v, width)})")
        lines.append(f"  state = {self.state}")
        return "\n".join(lines)

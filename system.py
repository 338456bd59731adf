"""
TinyCPU System
==============
Wires a :class:`tinycpu.Processor` to a program image and drives it:

  - the program image is a list of instruction words, held apart from
    the processor's data memory and addressed by a word-index PC
  - ``step()`` fetches one word, decodes and executes it under a single
    lock, so a multi-threaded host never observes half a cycle
  - hard errors stop the machine with ``fault`` set; warnings are counted
    and execution continues
"""

from __future__ import annotations
import logging
import threading
from typing import Iterable, Optional

from layout import CpuConfig, Status, TinyCpuError
from tinycpu import Processor


class HaltError(TinyCpuError):
    pass


class TinySystem:
    """Processor + program image + fetch loop."""

    logger = logging.getLogger("tinycpu.system")

    def __init__(self, config: Optional[CpuConfig] = None,
                 logger: Optional[logging.Logger] = None):
        if logger is not None:
            self.logger = logger
        self.cpu = Processor(config, logger=logger)
        self.layout = self.cpu.layout
        self.program: list[int] = []
        self.pc: int = 0
        self.halted: bool = True   # nothing loaded yet
        self.fault: Optional[Status] = None
        self.last_status: Status = Status.OK
        self.cycle_count: int = 0
        self.warnings: int = 0
        self._lock = threading.Lock()

    # -----------------------------------------------------------------
    #  Program loading
    # -----------------------------------------------------------------

    def load_program(self, words: Iterable[int]):
        """Replace the program image and rewind to word 0."""
        with self._lock:
            self.program = [w & self.layout.word_mask for w in words]
            self.pc = 0
            self.halted = not self.program
            self.fault = None

    def load_image(self, data: bytes | bytearray):
        """Load a binary image of little-endian register-width words."""
        size = self.layout.register_bytes
        if len(data) % size:
            raise ValueError(f"image length {len(data)} is not a multiple of "
                             f"the {size}-byte word size")
        self.load_program(int.from_bytes(data[i:i + size], "little")
                          for i in range(0, len(data), size))

    def load_image_file(self, path: str):
        with open(path, "rb") as f:
            data = f.read()
        self.load_image(data)

    # -----------------------------------------------------------------
    #  Execution
    # -----------------------------------------------------------------

    def step(self) -> Status:
        """Fetch, decode and execute one instruction word."""
        with self._lock:
            if self.halted:
                raise HaltError("system is halted")
            if self.pc >= len(self.program):
                self.halted = True
                raise HaltError(f"PC {self.pc} past end of program")

            word = self.program[self.pc]
            status = self.cpu.cycle(word)
            self.cycle_count += 1
            self.last_status = status

            if status.is_error:
                self.halted = True
                self.fault = status
                self.logger.error("fault at word %d (%#x): %s", self.pc, word, status.name)
                return status
            if status.is_warning:
                self.warnings += 1

            self.pc += 1
            if self.pc >= len(self.program):
                self.halted = True
            return status

    def run(self, max_steps: int = 1_000_000) -> Status:
        """Run until halt, fault or max_steps.  Returns the last status."""
        status = self.last_status
        for _ in range(max_steps):
            if self.halted:
                break
            status = self.step()
        else:
            self.logger.info("stopped after %d steps", max_steps)
        return status

    def reset(self):
        """Reset the processor and rewind; the program image is kept."""
        with self._lock:
            self.cpu.reset()
            self.pc = 0
            self.halted = not self.program
            self.fault = None
            self.last_status = Status.OK
            self.cycle_count = 0
            self.warnings = 0

    @property
    def current_word(self) -> Optional[int]:
        return self.program[self.pc] if self.pc < len(self.program) else None

"""
TinyCPU Layout
==============
Processor configuration, derived bit-field layout and status codes.

The instruction word is one register wide.  The opcode lives in the top
``bits_for_opcode`` bits; operand fields are carved out of the remainder
most-significant first.  Every width here is derived from the three
configuration integers, nothing is hard-coded to 16 bits.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

# ---------------------------------------------------------------------------
#  Defaults
# ---------------------------------------------------------------------------

DEFAULT_INSTRUCTION_SLOTS = 16
DEFAULT_REGISTER_COUNT    = 8
DEFAULT_REGISTER_BITS     = 16

BITS_IN_BYTE = 8

# ---------------------------------------------------------------------------
#  Status codes
# ---------------------------------------------------------------------------

class Status(IntEnum):
    """Result of every decode/execute step.

    Values below -500 are hard errors, values in [-500, 0) are warnings
    (the operation partially happened), 0 is success.
    """
    UNKNOWN_ERROR               = -1000
    DECODE_UNKNOWN_INSTRUCTION  = -999
    EXECUTE_UNKNOWN_INSTRUCTION = -998
    OUT_OF_MEMORY               = -997
    SHIFT_OUT_OF_RANGE          = -996
    UNKNOWN_WARNING             = -500
    LAST_MEMORY_BYTE            = -499
    OK                          = 0

    @property
    def is_error(self) -> bool:
        return self < Status.UNKNOWN_WARNING

    @property
    def is_warning(self) -> bool:
        return Status.UNKNOWN_WARNING <= self < Status.OK

    @property
    def is_ok(self) -> bool:
        return self == Status.OK


class TinyCpuError(Exception):
    """Base for errors raised (not returned) by the emulator."""
    pass

class ConfigurationError(TinyCpuError, ValueError):
    pass

# ---------------------------------------------------------------------------
#  Helpers
# ---------------------------------------------------------------------------

def mask(bits: int) -> int:
    """All-ones value *bits* wide."""
    return (1 << bits) - 1

def bits_for(count: int) -> int:
    """Number of bits needed to select one of *count* (a power of two) items."""
    return count.bit_length() - 1

def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0

def sign_extend(val: int, bits: int, width: int) -> int:
    """Sign-extend a *bits*-wide field to an unsigned *width*-bit word.

    If the field's top bit is set the result is OR'ed with ``ones << bits``
    so it reads as the two's-complement negative of the full width.
    """
    val &= mask(bits)
    if val & (1 << (bits - 1)):
        val |= mask(width) << bits
    return val & mask(width)

def to_signed(val: int, width: int) -> int:
    """Interpret an unsigned *width*-bit word as a signed Python int."""
    val &= mask(width)
    return val - (1 << width) if val & (1 << (width - 1)) else val

# ---------------------------------------------------------------------------
#  Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CpuConfig:
    instruction_slots: int = DEFAULT_INSTRUCTION_SLOTS
    register_count: int    = DEFAULT_REGISTER_COUNT
    register_bits: int     = DEFAULT_REGISTER_BITS
    # None -> the whole address space, 2**register_bits bytes
    memory_size: Optional[int] = None


@dataclass(frozen=True)
class Layout:
    """Field widths and masks derived from a :class:`CpuConfig`."""
    instruction_slots: int
    register_count: int
    register_bits: int
    bits_for_opcode: int
    bits_for_register: int
    opcode_mask: int
    memory_size: int

    @property
    def word_mask(self) -> int:
        return mask(self.register_bits)

    @property
    def register_bytes(self) -> int:
        return self.register_bits // BITS_IN_BYTE

    @property
    def half_bits(self) -> int:
        return self.register_bits // 2

    @property
    def opcode_shift(self) -> int:
        return self.register_bits - self.bits_for_opcode

    @property
    def opcode_step(self) -> int:
        """Distance between successive opcode values."""
        return 1 << self.opcode_shift

    @property
    def operand_bits(self) -> int:
        """Bits left after the opcode field."""
        return self.register_bits - self.bits_for_opcode

    @property
    def register_mask(self) -> int:
        return self.register_count - 1

    def opcode_of(self, word: int) -> int:
        """Opcode value of *word*, still in its top-field position."""
        return word & self.opcode_mask

    def opcode_index(self, word: int) -> int:
        return (word & self.opcode_mask) >> self.opcode_shift


def compute_layout(instruction_slots: int = DEFAULT_INSTRUCTION_SLOTS,
                   register_count: int = DEFAULT_REGISTER_COUNT,
                   register_bits: int = DEFAULT_REGISTER_BITS,
                   memory_size: Optional[int] = None) -> Layout:
    """Derive the instruction layout, raising ConfigurationError if any
    instruction format does not fit in one register word."""
    if not is_power_of_two(instruction_slots) or instruction_slots < 2:
        raise ConfigurationError(
            f"instruction slot count must be a power of two >= 2, got {instruction_slots}")
    if not is_power_of_two(register_count) or register_count < 2:
        raise ConfigurationError(
            f"register count must be a power of two >= 2, got {register_count}")
    if register_bits <= 0 or register_bits % BITS_IN_BYTE:
        raise ConfigurationError(
            f"register width must be a positive multiple of {BITS_IN_BYTE}, got {register_bits}")

    op_bits = bits_for(instruction_slots)
    reg_bits = bits_for(register_count)
    remainder = register_bits - op_bits

    # ld/st: two registers + at least a sign bit of offset.  The arithmetic
    # format (selector + register + operand naming a register) is the same size.
    if remainder < 2 * reg_bits + 1:
        raise ConfigurationError(
            f"load/store format needs {op_bits + 2 * reg_bits + 1} bits, "
            f"register is {register_bits}")
    # ldi: register + upper/lower selector + half-word of data
    if remainder < reg_bits + 1 + register_bits // 2:
        raise ConfigurationError(
            f"load-immediate format needs {op_bits + reg_bits + 1 + register_bits // 2} "
            f"bits, register is {register_bits}")

    address_space = 1 << register_bits
    if memory_size is None:
        memory_size = address_space
    elif not 0 < memory_size <= address_space:
        raise ConfigurationError(
            f"memory size must be in 1..{address_space}, got {memory_size}")

    return Layout(
        instruction_slots=instruction_slots,
        register_count=register_count,
        register_bits=register_bits,
        bits_for_opcode=op_bits,
        bits_for_register=reg_bits,
        opcode_mask=(mask(register_bits) << (register_bits - op_bits)) & mask(register_bits),
        memory_size=memory_size,
    )


def layout_for(config: CpuConfig) -> Layout:
    return compute_layout(config.instruction_slots, config.register_count,
                          config.register_bits, config.memory_size)

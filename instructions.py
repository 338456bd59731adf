"""
TinyCPU Instruction Families
============================
One decoder and one executor per instruction family.

Decoders only look at the instruction word and the layout; they never
touch registers or memory.  Executors receive the decoded operands plus
the processor's register list and memory buffer and apply the effect.
Both return a :class:`layout.Status`.

Formats (MSB first after the opcode, widths from the layout):

    ld    dst(R)  base(R)  offset(rest, signed)
    st    addr(R) src(R)   offset(rest, signed)
    ldi   dst(R)  upper(1) data(half word)
    math  imm(1)  dst(R)   src register / signed immediate (rest)
    and/or/xor   dst(R) src(R) unused
    not   dst(R)  unused
"""

from __future__ import annotations
import operator
from dataclasses import dataclass
from typing import Any, Callable, Optional

from layout import Layout, Status, mask, sign_extend, to_signed

# ---------------------------------------------------------------------------
#  Family kinds (used by the assembler / disassembler)
# ---------------------------------------------------------------------------

KIND_LOAD     = "load"
KIND_STORE    = "store"
KIND_LDI      = "ldi"
KIND_MATH     = "math"
KIND_BITWISE  = "bitwise"
KIND_NOT      = "not"
KIND_UNKNOWN  = "unknown"

# ---------------------------------------------------------------------------
#  Operand types
# ---------------------------------------------------------------------------

@dataclass
class LoadOperands:
    dst: int
    base: int
    offset: int    # sign-extended to register width, unsigned form


@dataclass
class StoreOperands:
    addr: int
    src: int
    offset: int


@dataclass
class LoadImmediateOperands:
    dst: int
    upper: bool
    data: int


@dataclass
class MathOperands:
    immediate: bool
    dst: int
    # register index when immediate is False, otherwise the
    # sign-extended immediate in unsigned register-width form
    operand: int


@dataclass
class BitwiseOperands:
    dst: int
    src: int


@dataclass
class NotOperands:
    dst: int

# ---------------------------------------------------------------------------
#  Field helpers
# ---------------------------------------------------------------------------

def _field(word: int, shift: int, bits: int) -> int:
    return (word >> shift) & mask(bits)

def _put(value: int, shift: int, bits: int) -> int:
    return (value & mask(bits)) << shift

def _check_reg(layout: Layout, idx: int):
    if not 0 <= idx < layout.register_count:
        raise ValueError(f"register r{idx} out of range (r0-r{layout.register_count - 1})")

def _check_signed(value: int, bits: int, what: str):
    lo, hi = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    if not lo <= value <= hi:
        raise ValueError(f"{what} {value} does not fit in {bits} signed bits ({lo}..{hi})")

def _check_unsigned(value: int, bits: int, what: str):
    if not 0 <= value <= mask(bits):
        raise ValueError(f"{what} {value} does not fit in {bits} unsigned bits")

def memory_shifts(layout: Layout) -> tuple[int, int]:
    """Bit positions of the two register fields of ld/st.  The offset
    occupies everything below the second one."""
    first = layout.operand_bits - layout.bits_for_register
    return first, first - layout.bits_for_register

def ldi_shifts(layout: Layout) -> tuple[int, int]:
    dst = layout.operand_bits - layout.bits_for_register
    return dst, dst - 1

def math_shifts(layout: Layout) -> tuple[int, int]:
    imm = layout.operand_bits - 1
    return imm, imm - layout.bits_for_register

def bitwise_shifts(layout: Layout) -> tuple[int, int]:
    dst = layout.operand_bits - layout.bits_for_register
    return dst, dst - layout.bits_for_register

# ---------------------------------------------------------------------------
#  Memory access (ld / st)
# ---------------------------------------------------------------------------

def effective_address(layout: Layout, base_value: int, offset: int) -> int:
    """Base register plus signed offset, wrapping at register width."""
    return (base_value + offset) & layout.word_mask


def decode_load(word: int, layout: Layout) -> tuple[Status, LoadOperands]:
    first, second = memory_shifts(layout)
    r = layout.bits_for_register
    return Status.OK, LoadOperands(
        dst=_field(word, first, r),
        base=_field(word, second, r),
        offset=sign_extend(word, second, layout.register_bits),
    )


def execute_load(ops: LoadOperands, regs: list[int], mem: bytearray,
                 layout: Layout) -> Status:
    addr = effective_address(layout, regs[ops.base], ops.offset)
    if addr >= layout.memory_size:
        return Status.OUT_OF_MEMORY
    size = layout.register_bytes
    if addr > layout.memory_size - size:
        # Only the trailing bytes exist; missing high bytes read as zero.
        regs[ops.dst] = int.from_bytes(mem[addr:layout.memory_size], "little")
        return Status.LAST_MEMORY_BYTE
    regs[ops.dst] = int.from_bytes(mem[addr:addr + size], "little")
    return Status.OK


def encode_load(layout: Layout, dst: int, base: int, offset: int) -> int:
    first, second = memory_shifts(layout)
    _check_reg(layout, dst)
    _check_reg(layout, base)
    _check_signed(offset, second, "offset")
    r = layout.bits_for_register
    return _put(dst, first, r) | _put(base, second, r) | _put(offset, 0, second)


def decode_store(word: int, layout: Layout) -> tuple[Status, StoreOperands]:
    first, second = memory_shifts(layout)
    r = layout.bits_for_register
    return Status.OK, StoreOperands(
        addr=_field(word, first, r),
        src=_field(word, second, r),
        offset=sign_extend(word, second, layout.register_bits),
    )


def execute_store(ops: StoreOperands, regs: list[int], mem: bytearray,
                  layout: Layout) -> Status:
    addr = effective_address(layout, regs[ops.addr], ops.offset)
    if addr >= layout.memory_size:
        return Status.OUT_OF_MEMORY
    size = layout.register_bytes
    data = (regs[ops.src] & layout.word_mask).to_bytes(size, "little")
    if addr > layout.memory_size - size:
        avail = layout.memory_size - addr
        mem[addr:layout.memory_size] = data[:avail]
        return Status.LAST_MEMORY_BYTE
    mem[addr:addr + size] = data
    return Status.OK


def encode_store(layout: Layout, addr: int, src: int, offset: int) -> int:
    # Same field positions as ld.
    return encode_load(layout, addr, src, offset)

# ---------------------------------------------------------------------------
#  Load immediate (half word)
# ---------------------------------------------------------------------------

def decode_load_immediate(word: int, layout: Layout) -> tuple[Status, LoadImmediateOperands]:
    dst_shift, upper_shift = ldi_shifts(layout)
    return Status.OK, LoadImmediateOperands(
        dst=_field(word, dst_shift, layout.bits_for_register),
        upper=bool(_field(word, upper_shift, 1)),
        data=_field(word, 0, layout.half_bits),
    )


def execute_load_immediate(ops: LoadImmediateOperands, regs: list[int],
                           mem: bytearray, layout: Layout) -> Status:
    half = layout.half_bits
    low_mask = mask(half)
    if ops.upper:
        regs[ops.dst] = (regs[ops.dst] & low_mask) | (ops.data << half)
    else:
        regs[ops.dst] = (regs[ops.dst] & (low_mask << half)) | ops.data
    regs[ops.dst] &= layout.word_mask
    return Status.OK


def encode_load_immediate(layout: Layout, dst: int, upper: bool, data: int) -> int:
    dst_shift, upper_shift = ldi_shifts(layout)
    _check_reg(layout, dst)
    _check_unsigned(data, layout.half_bits, "immediate")
    return (_put(dst, dst_shift, layout.bits_for_register)
            | _put(int(upper), upper_shift, 1)
            | data)

# ---------------------------------------------------------------------------
#  Arithmetic and logical shifts
# ---------------------------------------------------------------------------

def decode_math(word: int, layout: Layout) -> tuple[Status, MathOperands]:
    imm_shift, dst_shift = math_shifts(layout)
    immediate = bool(_field(word, imm_shift, 1))
    if immediate:
        operand = sign_extend(word, dst_shift, layout.register_bits)
    else:
        operand = _field(word, 0, dst_shift) & layout.register_mask
    return Status.OK, MathOperands(
        immediate=immediate,
        dst=_field(word, dst_shift, layout.bits_for_register),
        operand=operand,
    )


def _operand_value(ops: MathOperands, regs: list[int]) -> int:
    return ops.operand if ops.immediate else regs[ops.operand]


def _arith(op: Callable[[int, int], int]):
    def execute(ops: MathOperands, regs: list[int], mem: bytearray,
                layout: Layout) -> Status:
        regs[ops.dst] = op(regs[ops.dst], _operand_value(ops, regs)) & layout.word_mask
        return Status.OK
    execute.__name__ = f"execute_{op.__name__}"
    return execute

execute_add = _arith(operator.add)
execute_sub = _arith(operator.sub)
execute_mul = _arith(operator.mul)


def _shift(op: Callable[[int, int], int]):
    def execute(ops: MathOperands, regs: list[int], mem: bytearray,
                layout: Layout) -> Status:
        # Read unsigned: negative immediates land far above the width.
        amount = _operand_value(ops, regs) & layout.word_mask
        if amount > layout.register_bits:
            return Status.SHIFT_OUT_OF_RANGE
        regs[ops.dst] = op(regs[ops.dst], amount) & layout.word_mask
        return Status.OK
    execute.__name__ = f"execute_{op.__name__}"
    return execute

execute_shr = _shift(operator.rshift)
execute_shl = _shift(operator.lshift)


def encode_math(layout: Layout, dst: int, operand: int, immediate: bool) -> int:
    imm_shift, dst_shift = math_shifts(layout)
    _check_reg(layout, dst)
    if immediate:
        _check_signed(operand, dst_shift, "immediate")
    else:
        _check_reg(layout, operand)
    return (_put(int(immediate), imm_shift, 1)
            | _put(dst, dst_shift, layout.bits_for_register)
            | _put(operand, 0, dst_shift))

# ---------------------------------------------------------------------------
#  Bitwise
# ---------------------------------------------------------------------------

def decode_bitwise(word: int, layout: Layout) -> tuple[Status, BitwiseOperands]:
    dst_shift, src_shift = bitwise_shifts(layout)
    r = layout.bits_for_register
    return Status.OK, BitwiseOperands(
        dst=_field(word, dst_shift, r),
        src=_field(word, src_shift, r),
    )


def _bitwise(op: Callable[[int, int], int]):
    def execute(ops: BitwiseOperands, regs: list[int], mem: bytearray,
                layout: Layout) -> Status:
        regs[ops.dst] = op(regs[ops.dst], regs[ops.src]) & layout.word_mask
        return Status.OK
    execute.__name__ = f"execute_{op.__name__}"
    return execute

execute_and = _bitwise(operator.and_)
execute_or  = _bitwise(operator.or_)
execute_xor = _bitwise(operator.xor)


def encode_bitwise(layout: Layout, dst: int, src: int) -> int:
    dst_shift, src_shift = bitwise_shifts(layout)
    _check_reg(layout, dst)
    _check_reg(layout, src)
    r = layout.bits_for_register
    return _put(dst, dst_shift, r) | _put(src, src_shift, r)


def decode_not(word: int, layout: Layout) -> tuple[Status, NotOperands]:
    dst_shift, _ = bitwise_shifts(layout)
    return Status.OK, NotOperands(dst=_field(word, dst_shift, layout.bits_for_register))


def execute_not(ops: NotOperands, regs: list[int], mem: bytearray,
                layout: Layout) -> Status:
    regs[ops.dst] = ~regs[ops.dst] & layout.word_mask
    return Status.OK


def encode_not(layout: Layout, dst: int) -> int:
    dst_shift, _ = bitwise_shifts(layout)
    _check_reg(layout, dst)
    return _put(dst, dst_shift, layout.bits_for_register)

# ---------------------------------------------------------------------------
#  Unknown opcode placeholder
# ---------------------------------------------------------------------------

def decode_unknown(word: int, layout: Layout) -> tuple[Status, None]:
    return Status.DECODE_UNKNOWN_INSTRUCTION, None


def execute_unknown(ops: Any, regs: list[int], mem: bytearray,
                    layout: Layout) -> Status:
    return Status.EXECUTE_UNKNOWN_INSTRUCTION

# ---------------------------------------------------------------------------
#  Instruction table
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Instruction:
    mnemonic: str
    kind: str
    decode: Callable[[int, Layout], tuple[Status, Any]]
    execute: Callable[[Any, list[int], bytearray, Layout], Status]


LOAD      = Instruction("ld",  KIND_LOAD,    decode_load,           execute_load)
STORE     = Instruction("st",  KIND_STORE,   decode_store,          execute_store)
LOAD_IMM  = Instruction("ldi", KIND_LDI,     decode_load_immediate, execute_load_immediate)
ADD       = Instruction("add", KIND_MATH,    decode_math,           execute_add)
SUB       = Instruction("sub", KIND_MATH,    decode_math,           execute_sub)
MUL       = Instruction("mul", KIND_MATH,    decode_math,           execute_mul)
SHR       = Instruction("shr", KIND_MATH,    decode_math,           execute_shr)
SHL       = Instruction("shl", KIND_MATH,    decode_math,           execute_shl)
NOT       = Instruction("not", KIND_NOT,     decode_not,            execute_not)
AND       = Instruction("and", KIND_BITWISE, decode_bitwise,        execute_and)
OR        = Instruction("or",  KIND_BITWISE, decode_bitwise,        execute_or)
XOR       = Instruction("xor", KIND_BITWISE, decode_bitwise,        execute_xor)
UNKNOWN   = Instruction("???", KIND_UNKNOWN, decode_unknown,        execute_unknown)

# Registration order is the opcode numbering.
DEFAULT_INSTRUCTIONS: tuple[Instruction, ...] = (
    LOAD, STORE, LOAD_IMM, ADD, SUB, MUL, SHR, SHL, NOT, AND, OR, XOR,
)

BY_MNEMONIC = {instr.mnemonic: instr for instr in DEFAULT_INSTRUCTIONS}


def opcode_index(mnemonic: str,
                 instructions: tuple[Instruction, ...] = DEFAULT_INSTRUCTIONS) -> int:
    for i, instr in enumerate(instructions):
        if instr.mnemonic == mnemonic:
            return i
    raise KeyError(mnemonic)


def lookup(layout: Layout, word: int,
           instructions: tuple[Instruction, ...] = DEFAULT_INSTRUCTIONS) -> Optional[Instruction]:
    """Family registered for the opcode of *word*, or None."""
    idx = layout.opcode_index(word)
    return instructions[idx] if idx < len(instructions) else None


def signed_offset(ops: LoadOperands | StoreOperands, layout: Layout) -> int:
    return to_signed(ops.offset, layout.register_bits)

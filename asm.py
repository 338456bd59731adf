"""
TinyCPU Assembler
=================
Translates assembly text into instruction words for a given layout.

Supports:
  - All instruction families (ld, st, ldi/ldih, add, sub, mul, shr, shl,
    not, and, or, xor)
  - Immediate literals (decimal, negative decimal, hex with 0x prefix,
    binary with 0b prefix)
  - Comments (';' to end of line)
  - .word directive for raw words

Syntax:
  ld   rD, rB, off     ; rD <- mem[rB + off]
  st   rA, rS, off     ; mem[rA + off] <- rS
  ldi  rD, imm         ; lower half of rD
  ldih rD, imm         ; upper half of rD
  add  rD, rS | imm    ; also sub, mul, shr, shl
  and  rD, rS          ; also or, xor
  not  rD

Usage:
  from asm import assemble
  words = assemble(source_text)
"""

from __future__ import annotations
from typing import Optional

from layout import Layout, compute_layout
from instructions import (
    DEFAULT_INSTRUCTIONS, KIND_LOAD, KIND_STORE, KIND_LDI, KIND_MATH,
    KIND_BITWISE, KIND_NOT, BY_MNEMONIC, opcode_index,
    encode_load, encode_store, encode_load_immediate, encode_math,
    encode_bitwise, encode_not,
)

# Operand counts per family kind
OPERAND_COUNT = {
    KIND_LOAD: 3, KIND_STORE: 3, KIND_LDI: 2, KIND_MATH: 2,
    KIND_BITWISE: 2, KIND_NOT: 1,
}

# ---------------------------------------------------------------------------
#  Parser helpers
# ---------------------------------------------------------------------------

def _is_reg(tok: str) -> bool:
    tok = tok.strip().lower()
    return tok.startswith("r") and tok[1:].isdigit()

def _parse_reg(tok: str) -> int:
    """Parse 'R0'.. or 'r0'.. Returns register index (range checked later)."""
    if _is_reg(tok):
        return int(tok.strip()[1:])
    raise ValueError(f"Invalid register: {tok.strip()!r}")

def _parse_imm(tok: str) -> int:
    """Parse an immediate value (decimal, -decimal, 0x hex, 0b binary)."""
    tok = tok.strip().lstrip("#")
    try:
        return int(tok, 0)
    except ValueError:
        raise ValueError(f"Invalid immediate: {tok!r}") from None

def _split_ops(rest: str) -> list[str]:
    """Split operand string by comma, trimming whitespace."""
    return [s.strip() for s in rest.split(",") if s.strip()]

def _split_mnemonic(text: str) -> tuple[str, str]:
    parts = text.split(None, 1)
    return parts[0].lower(), (parts[1] if len(parts) > 1 else "")

# ---------------------------------------------------------------------------
#  Assembler
# ---------------------------------------------------------------------------

class AsmError(Exception):
    def __init__(self, line: int, msg: str):
        self.line = line
        super().__init__(f"Line {line}: {msg}")


def encode_instruction(layout: Layout, mnemonic: str, ops: list[str]) -> int:
    """Encode one instruction (opcode included).  Raises ValueError."""
    family = "ldi" if mnemonic == "ldih" else mnemonic
    instr = BY_MNEMONIC.get(family)
    if instr is None:
        raise ValueError(f"Unknown mnemonic: {mnemonic}")
    want = OPERAND_COUNT[instr.kind]
    if len(ops) != want:
        raise ValueError(f"{mnemonic} takes {want} operand(s), got {len(ops)}")

    kind = instr.kind
    if kind == KIND_LOAD:
        bits = encode_load(layout, _parse_reg(ops[0]), _parse_reg(ops[1]), _parse_imm(ops[2]))
    elif kind == KIND_STORE:
        bits = encode_store(layout, _parse_reg(ops[0]), _parse_reg(ops[1]), _parse_imm(ops[2]))
    elif kind == KIND_LDI:
        bits = encode_load_immediate(layout, _parse_reg(ops[0]), mnemonic == "ldih",
                                     _parse_imm(ops[1]))
    elif kind == KIND_MATH:
        if _is_reg(ops[1]):
            bits = encode_math(layout, _parse_reg(ops[0]), _parse_reg(ops[1]), False)
        else:
            bits = encode_math(layout, _parse_reg(ops[0]), _parse_imm(ops[1]), True)
    elif kind == KIND_BITWISE:
        bits = encode_bitwise(layout, _parse_reg(ops[0]), _parse_reg(ops[1]))
    else:
        bits = encode_not(layout, _parse_reg(ops[0]))

    idx = opcode_index(family, DEFAULT_INSTRUCTIONS)
    if idx >= layout.instruction_slots:
        raise ValueError(f"{mnemonic} has no opcode slot in this layout")
    return (idx << layout.opcode_shift) | bits


def assemble(source: str, layout: Optional[Layout] = None,
             listing: bool = False) -> list[int]:
    """
    Single-pass assembler: every line yields one or more words.
    If listing=True, print an index/word/source listing to stdout.
    """
    layout = layout or compute_layout()
    digits = layout.register_bytes * 2
    words: list[int] = []

    for lineno, raw in enumerate(source.split("\n"), 1):
        text = raw.split(";", 1)[0].strip()
        if not text:
            continue
        start = len(words)
        mnem, rest = _split_mnemonic(text)
        try:
            if mnem == ".word":
                vals = _split_ops(rest)
                if not vals:
                    raise ValueError(".word needs at least one value")
                words.extend(_parse_imm(v) & layout.word_mask for v in vals)
            else:
                words.append(encode_instruction(layout, mnem, _split_ops(rest)))
        except ValueError as e:
            raise AsmError(lineno, str(e)) from None

        if listing:
            for i in range(start, len(words)):
                src = text if i == start else ""
                print(f"  {i:04d}  {words[i]:0{digits}X}  {src}")

    return words


def words_to_bytes(words: list[int], layout: Optional[Layout] = None) -> bytes:
    """Serialize words as a little-endian image (the format TinySystem loads)."""
    layout = layout or compute_layout()
    size = layout.register_bytes
    return b"".join((w & layout.word_mask).to_bytes(size, "little") for w in words)

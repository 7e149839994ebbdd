"""RV32IM instruction set definitions: fields, immediates and disassembly."""

from __future__ import annotations

from enum import IntEnum

MASK32 = 0xFFFFFFFF
XLEN = 32


def _opcode_code(major: int) -> int:
    return (major << 2) | 3


class Opcode(IntEnum):
    """Major opcodes of the RV32IM base instruction formats."""

    LOAD = _opcode_code(0x00)
    OPIMM = _opcode_code(0x04)
    AUIPC = _opcode_code(0x05)
    STORE = _opcode_code(0x08)
    OP = _opcode_code(0x0C)
    LUI = _opcode_code(0x0D)
    BRANCH = _opcode_code(0x18)
    JALR = _opcode_code(0x19)
    JAL = _opcode_code(0x1B)
    SYSTEM = _opcode_code(0x1C)


_REG_ALIASES = [
    ("ZERO", 0), ("RA", 1), ("SP", 2), ("GP", 3), ("TP", 4), ("T0", 5),
    ("T1", 6), ("R2", 7), ("T2", 7), ("FP", 8), ("S0", 8), ("S1", 9),
    ("A0", 10), ("A1", 11), ("A2", 12), ("A3", 13), ("A4", 14), ("A5", 15),
    ("A6", 16), ("A7", 17), ("S2", 18), ("S3", 19), ("S4", 20), ("S5", 21),
    ("S6", 22), ("S7", 23), ("S8", 24), ("S9", 25), ("S10", 26), ("S11", 27),
    ("T3", 28), ("T4", 29), ("T5", 30), ("T6", 31),
]

Reg = IntEnum(
    "Reg",
    [(f"X{i}", i) for i in range(32)] + [("PC", 32)] + _REG_ALIASES,
)
Reg.__doc__ = "CPU register identifiers: x0..x31, their ABI aliases and PC."


def sext(value: int, bits: int) -> int:
    """Sign-extend the low ``bits`` bits of ``value`` to a 32-bit word."""
    amount = bits % 32
    value &= MASK32
    if amount == 0:
        return value
    if value & (1 << (amount - 1)):
        value |= (MASK32 << amount) & MASK32
    return value


def sra(value: int, amount: int) -> int:
    """Arithmetic right shift of a 32-bit word."""
    amount %= 32
    shifted = (value & MASK32) >> amount
    return sext(shifted, 32 - amount)


def bits(value: int, low: int, high: int) -> int:
    """Extract bits ``low`` (inclusive) to ``high`` (exclusive) of ``value``."""
    return (value >> low) & ((1 << (high - low)) - 1)


def to_signed(value: int) -> int:
    """Interpret a 32-bit word as a two's complement integer."""
    value &= MASK32
    return value - (1 << 32) if value & 0x80000000 else value


def opcode(instr: int) -> int:
    return bits(instr, 0, 7)


def rd(instr: int) -> int:
    return bits(instr, 7, 12)


def funct3(instr: int) -> int:
    return bits(instr, 12, 15)


def rs1(instr: int) -> int:
    return bits(instr, 15, 20)


def rs2(instr: int) -> int:
    return bits(instr, 20, 25)


def funct7(instr: int) -> int:
    return bits(instr, 25, 32)


def i_imm12(instr: int) -> int:
    return bits(instr, 20, 32)


def i_imm12_sext(instr: int) -> int:
    return sext(i_imm12(instr), 12)


def s_imm12(instr: int) -> int:
    return bits(instr, 7, 12) | (bits(instr, 25, 32) << 5)


def s_imm12_sext(instr: int) -> int:
    return sext(s_imm12(instr), 12)


def b_imm13(instr: int) -> int:
    return (
        (bits(instr, 7, 8) << 11)
        | (bits(instr, 8, 12) << 1)
        | (bits(instr, 25, 31) << 5)
        | (bits(instr, 31, 32) << 12)
    )


def b_imm13_sext(instr: int) -> int:
    return sext(b_imm13(instr), 13)


def u_imm20(instr: int) -> int:
    return bits(instr, 12, 32)


def j_imm21(instr: int) -> int:
    return (
        (bits(instr, 12, 20) << 12)
        | (bits(instr, 20, 21) << 11)
        | (bits(instr, 21, 31) << 1)
        | (bits(instr, 31, 32) << 20)
    )


def j_imm21_sext(instr: int) -> int:
    return sext(j_imm21(instr), 21)


_ILLEGAL = "<illegal>"

_OP_MNEMONICS = {
    0x00: ("ADD", "SLL", "SLT", "SLTU", "XOR", "SRL", "OR", "AND"),
    0x20: ("SUB", None, None, None, None, "SRA", None, None),
    0x01: ("MUL", "MULH", "MULHSU", "MULHU", "DIV", "DIVU", "REM", "REMU"),
}
_OPIMM_MNEMONICS = ("ADDI", "SLLI", "SLTI", "SLTIU", "XORI", "SRLI", "ORI", "ANDI")
_LOAD_MNEMONICS = ("LB", "LH", "LW", None, "LBU", "LHU", None, None)
_STORE_MNEMONICS = ("SB", "SH", "SW", None, None, None, None, None)
_BRANCH_MNEMONICS = ("BEQ", "BNE", None, None, "BLT", "BGE", "BLTU", "BGEU")


def _dis_op(instr: int) -> str:
    table = _OP_MNEMONICS.get(funct7(instr))
    if table is None:
        return _ILLEGAL
    mnem = table[funct3(instr)]
    if mnem is None:
        return _ILLEGAL
    return f"{mnem} x{rd(instr)}, x{rs1(instr)}, x{rs2(instr)}"


def _dis_opimm(instr: int) -> str:
    imm = to_signed(i_imm12_sext(instr))
    f3 = funct3(instr)
    mnem = _OPIMM_MNEMONICS[f3]
    if f3 == 3:
        imm &= 0x7FF
    elif f3 == 1:
        if funct7(instr) != 0:
            return _ILLEGAL
    elif f3 == 5:
        if funct7(instr) == 0x20:
            mnem = "SRAI"
            imm &= 0x1F
        elif funct7(instr) != 0:
            return _ILLEGAL
    return f"{mnem} x{rd(instr)}, x{rs1(instr)}, {imm}"


def _dis_load(instr: int) -> str:
    mnem = _LOAD_MNEMONICS[funct3(instr)]
    if mnem is None:
        return _ILLEGAL
    imm = to_signed(i_imm12_sext(instr))
    return f"{mnem} x{rd(instr)}, {imm}(x{rs1(instr)})"


def _dis_store(instr: int) -> str:
    mnem = _STORE_MNEMONICS[funct3(instr)]
    if mnem is None:
        return _ILLEGAL
    imm = to_signed(s_imm12_sext(instr))
    return f"{mnem} x{rs2(instr)}, {imm}(x{rs1(instr)})"


def _dis_branch(instr: int) -> str:
    mnem = _BRANCH_MNEMONICS[funct3(instr)]
    if mnem is None:
        return _ILLEGAL
    imm = to_signed(b_imm13_sext(instr))
    return f"{mnem} x{rs1(instr)}, x{rs2(instr)}, *{imm:+d}"


def _dis_system(instr: int) -> str:
    if funct3(instr) != 0:
        return _ILLEGAL
    imm = i_imm12(instr)
    if imm == 0:
        return "ECALL"
    if imm == 1:
        return "EBREAK"
    return _ILLEGAL


def disassemble(instr: int) -> str:
    """Return the textual form of a 32-bit instruction word."""
    op = opcode(instr)
    if op == Opcode.OP:
        return _dis_op(instr)
    if op == Opcode.OPIMM:
        return _dis_opimm(instr)
    if op == Opcode.LOAD:
        return _dis_load(instr)
    if op == Opcode.STORE:
        return _dis_store(instr)
    if op == Opcode.BRANCH:
        return _dis_branch(instr)
    if op == Opcode.JAL:
        imm = to_signed(j_imm21_sext(instr))
        return f"JAL x{rd(instr)}, *{imm:+d}"
    if op == Opcode.JALR:
        if funct3(instr) != 0:
            return _ILLEGAL
        imm = to_signed(i_imm12_sext(instr))
        return f"JALR x{rd(instr)}, {imm}(x{rs1(instr)})"
    if op == Opcode.LUI:
        return f"LUI x{rd(instr)}, 0x{u_imm20(instr):05x}"
    if op == Opcode.AUIPC:
        return f"AUIPC x{rd(instr)}, 0x{u_imm20(instr):05x}"
    if op == Opcode.SYSTEM:
        return _dis_system(instr)
    return _ILLEGAL
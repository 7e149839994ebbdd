"""RV32IM processor core: register file, fetch and execute."""

from __future__ import annotations

from enum import IntEnum
from typing import Callable

from .isa import (
    MASK32,
    Opcode,
    Reg,
    b_imm13_sext,
    funct3,
    funct7,
    i_imm12,
    i_imm12_sext,
    j_imm21_sext,
    opcode,
    rd,
    rs1,
    rs2,
    s_imm12_sext,
    sext,
    sra,
    to_signed,
    u_imm20,
)
from .memory import MappingError, Memory

N_REGS = 32


class CpuStatus(IntEnum):
    """Outcome of executing one instruction."""

    OK = 0
    MEMORY_FAULT = -1
    ILL_INST_FAULT = -2
    ECALL_TRAP = -3
    EBREAK_TRAP = -4


_SKIPPED_ON_CLEAR = frozenset(
    {CpuStatus.ILL_INST_FAULT, CpuStatus.EBREAK_TRAP, CpuStatus.ECALL_TRAP}
)


def _trunc_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a < 0) == (b < 0) else -quotient


class Cpu:
    """A single RV32IM hart attached to a memory."""

    def __init__(self, memory: Memory) -> None:
        self.memory = memory
        self.regs = [0] * N_REGS
        self.pc = 0
        self.last_status = CpuStatus.OK
        self._handlers: dict[int, Callable[[int], CpuStatus]] = {
            Opcode.LOAD: self._load,
            Opcode.OPIMM: self._opimm,
            Opcode.AUIPC: self._auipc,
            Opcode.STORE: self._store,
            Opcode.OP: self._op,
            Opcode.LUI: self._lui,
            Opcode.BRANCH: self._branch,
            Opcode.JALR: self._jalr,
            Opcode.JAL: self._jal,
            Opcode.SYSTEM: self._system,
        }

    def get_register(self, reg: int) -> int:
        """Value of a general purpose register or of the PC."""
        if reg == Reg.ZERO:
            return 0
        if reg == Reg.PC:
            return self.pc
        return self.regs[reg]

    def set_register(self, reg: int, value: int) -> None:
        """Set a register; writes to x0 are ignored."""
        value &= MASK32
        if reg == Reg.PC:
            self.pc = value
        elif reg != Reg.ZERO:
            self.regs[reg] = value

    def reset(self, pc: int) -> None:
        """Clear all registers and the fault state, and set the PC."""
        self.last_status = CpuStatus.OK
        self.pc = pc & MASK32
        self.regs = [0] * N_REGS

    def clear_last_fault(self) -> CpuStatus:
        """Resume after a fault or trap, skipping the trapping instruction."""
        if self.last_status in _SKIPPED_ON_CLEAR:
            self._advance(4)
        self.last_status = CpuStatus.OK
        return self.last_status

    def tick(self) -> CpuStatus:
        """Execute one instruction; a pending fault is returned unchanged."""
        if self.last_status != CpuStatus.OK:
            return self.last_status
        try:
            instr = self.memory.read32(self.pc)
        except MappingError:
            self.last_status = CpuStatus.MEMORY_FAULT
            return self.last_status
        handler = self._handlers.get(opcode(instr))
        if handler is None:
            self.last_status = CpuStatus.ILL_INST_FAULT
        else:
            try:
                self.last_status = handler(instr)
            except MappingError:
                self.last_status = CpuStatus.MEMORY_FAULT
        self.regs[Reg.ZERO] = 0
        return self.last_status

    def _advance(self, offset: int) -> None:
        self.pc = (self.pc + offset) & MASK32

    def _set(self, reg: int, value: int) -> None:
        self.regs[reg] = value & MASK32

    def _load(self, instr: int) -> CpuStatus:
        addr = (self.regs[rs1(instr)] + i_imm12_sext(instr)) & MASK32
        match funct3(instr):
            case 0:
                value = sext(self.memory.read8(addr), 8)
            case 1:
                value = sext(self.memory.read16(addr), 16)
            case 2:
                value = self.memory.read32(addr)
            case 4:
                value = self.memory.read8(addr)
            case 5:
                value = self.memory.read16(addr)
            case _:
                return CpuStatus.ILL_INST_FAULT
        self._set(rd(instr), value)
        self._advance(4)
        return CpuStatus.OK

    def _opimm(self, instr: int) -> CpuStatus:
        src = self.regs[rs1(instr)]
        imm = i_imm12_sext(instr)
        shamt = i_imm12(instr) & 0x1F
        f7 = funct7(instr)
        match funct3(instr):
            case 0:
                value = src + imm
            case 1:
                if f7 != 0x00:
                    return CpuStatus.ILL_INST_FAULT
                value = src << shamt
            case 2:
                value = int(to_signed(src) < to_signed(imm))
            case 3:
                value = int(src < i_imm12(instr))
            case 4:
                value = src ^ imm
            case 5:
                if f7 == 0x00:
                    value = src >> shamt
                elif f7 == 0x20:
                    value = sra(src, shamt)
                else:
                    return CpuStatus.ILL_INST_FAULT
            case 6:
                value = src | imm
            case _:
                value = src & imm
        self._set(rd(instr), value)
        self._advance(4)
        return CpuStatus.OK

    def _auipc(self, instr: int) -> CpuStatus:
        self._set(rd(instr), self.pc + (u_imm20(instr) << 12))
        self._advance(4)
        return CpuStatus.OK

    def _store(self, instr: int) -> CpuStatus:
        addr = (self.regs[rs1(instr)] + s_imm12_sext(instr)) & MASK32
        value = self.regs[rs2(instr)]
        match funct3(instr):
            case 0:
                self.memory.write8(addr, value & 0xFF)
            case 1:
                self.memory.write16(addr, value & 0xFFFF)
            case 2:
                self.memory.write32(addr, value)
            case _:
                return CpuStatus.ILL_INST_FAULT
        self._advance(4)
        return CpuStatus.OK

    def _op(self, instr: int) -> CpuStatus:
        a = self.regs[rs1(instr)]
        b = self.regs[rs2(instr)]
        sa, sb = to_signed(a), to_signed(b)
        f3 = funct3(instr)
        f7 = funct7(instr)
        if f7 == 0x00:
            match f3:
                case 0:
                    value = a + b
                case 1:
                    value = a << (b & 0x1F)
                case 2:
                    value = int(sa < sb)
                case 3:
                    value = int(a < b)
                case 4:
                    value = a ^ b
                case 5:
                    value = a >> (b & 0x1F)
                case 6:
                    value = a | b
                case _:
                    value = a & b
        elif f7 == 0x20:
            match f3:
                case 0:
                    value = a - b
                case 5:
                    value = sra(a, b & 0x1F)
                case _:
                    return CpuStatus.ILL_INST_FAULT
        elif f7 == 0x01:
            match f3:
                case 0:
                    value = a * b
                case 1:
                    value = (sa * sb) >> 32
                case 2:
                    value = (sa * b) >> 32
                case 3:
                    value = (a * b) >> 32
                case 4:
                    if b == 0:
                        value = MASK32
                    elif a == 0x80000000 and b == MASK32:
                        value = 0x80000000
                    else:
                        value = _trunc_div(sa, sb)
                case 5:
                    value = MASK32 if b == 0 else a // b
                case 6:
                    if b == 0:
                        value = a
                    elif a == 0x80000000 and b == MASK32:
                        value = 0
                    else:
                        value = sa - sb * _trunc_div(sa, sb)
                case _:
                    value = a if b == 0 else a % b
        else:
            return CpuStatus.ILL_INST_FAULT
        self._set(rd(instr), value)
        self._advance(4)
        return CpuStatus.OK

    def _lui(self, instr: int) -> CpuStatus:
        self._set(rd(instr), u_imm20(instr) << 12)
        self._advance(4)
        return CpuStatus.OK

    def _branch(self, instr: int) -> CpuStatus:
        a = self.regs[rs1(instr)]
        b = self.regs[rs2(instr)]
        match funct3(instr):
            case 0:
                taken = a == b
            case 1:
                taken = a != b
            case 4:
                taken = to_signed(a) < to_signed(b)
            case 5:
                taken = to_signed(a) >= to_signed(b)
            case 6:
                taken = a < b
            case 7:
                taken = a >= b
            case _:
                return CpuStatus.ILL_INST_FAULT
        self._advance(b_imm13_sext(instr) if taken else 4)
        return CpuStatus.OK

    def _jalr(self, instr: int) -> CpuStatus:
        if funct3(instr) != 0:
            return CpuStatus.ILL_INST_FAULT
        self._set(rd(instr), self.pc + 4)
        target = self.regs[rs1(instr)] + i_imm12_sext(instr)
        self.pc = target & MASK32 & ~1
        return CpuStatus.OK

    def _jal(self, instr: int) -> CpuStatus:
        self._set(rd(instr), self.pc + 4)
        self._advance(j_imm21_sext(instr))
        return CpuStatus.OK

    def _system(self, instr: int) -> CpuStatus:
        if funct3(instr) != 0:
            return CpuStatus.ILL_INST_FAULT
        imm = i_imm12(instr)
        if imm == 0:
            return CpuStatus.ECALL_TRAP
        if imm == 1:
            return CpuStatus.EBREAK_TRAP
        return CpuStatus.ILL_INST_FAULT
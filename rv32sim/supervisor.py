"""Supervisor: stack management and environment calls for the simulated program."""

from __future__ import annotations

import contextlib
import sys
from enum import IntEnum
from typing import Optional, TextIO

from .cpu import Cpu, CpuStatus
from .debugger import DebugResult, Debugger
from .isa import MASK32, Reg, to_signed
from .memory import MemError, Memory

STACK_TOP = 0x80000000
STACK_PAGE_SIZE = 4096


class SvStatus(IntEnum):
    """State of the simulated program after a supervisor tick."""

    RUNNING = 0
    TERMINATED = 1
    KILLED = 2
    MEMORY_FAULT = CpuStatus.MEMORY_FAULT
    ILL_INST_FAULT = CpuStatus.ILL_INST_FAULT
    INVALID_SYSCALL = -1000


class SupervisorError(Exception):
    """Raised when the supervisor cannot set up the program environment."""


class _Syscall(IntEnum):
    PRINT_INT = 1
    READ_INT = 5
    EXIT_0 = 10
    PRINT_CHAR = 11
    READ_CHAR = 12
    EXIT = 93


class Supervisor:
    """Runs a program on a CPU, serving its system calls."""

    def __init__(
        self,
        cpu: Cpu,
        memory: Memory,
        debugger: Optional[Debugger] = None,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
    ) -> None:
        self.cpu = cpu
        self.memory = memory
        self.debugger = debugger
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.stack_bottom = STACK_TOP
        self.exit_code = 0
        self._pushback = ""

    def initialize(self) -> None:
        """Map the first stack page and point the stack pointer at it."""
        bottom = STACK_TOP - STACK_PAGE_SIZE
        try:
            self.memory.map_area(bottom, STACK_PAGE_SIZE)
        except MemError as exc:
            raise SupervisorError(f"cannot map the stack: {exc}") from exc
        self.stack_bottom = bottom
        self.cpu.set_register(Reg.SP, STACK_TOP - 4)

    def _expand_stack(self) -> None:
        fault = self.memory.last_fault_address
        if self.stack_bottom - STACK_PAGE_SIZE <= fault < self.stack_bottom:
            self.stack_bottom -= STACK_PAGE_SIZE
            with contextlib.suppress(MemError):
                self.memory.map_area(self.stack_bottom, STACK_PAGE_SIZE)

    def _getchar(self) -> str:
        if self._pushback:
            ch, self._pushback = self._pushback, ""
            return ch
        return self.stdin.read(1)

    def _read_int(self) -> int:
        ch = self._getchar()
        while ch and ch.isspace():
            ch = self._getchar()
        sign = 1
        if ch in ("+", "-"):
            sign = -1 if ch == "-" else 1
            ch = self._getchar()
        digits = ""
        while ch and ch in "0123456789":
            digits += ch
            ch = self._getchar()
        self._pushback = ch
        return sign * int(digits) if digits else 0

    def handle_env_call(self) -> SvStatus:
        """Serve the system call selected by register a7."""
        call = self.cpu.get_register(Reg.A7)
        a0 = self.cpu.get_register(Reg.A0)
        if call == _Syscall.PRINT_INT:
            self.stdout.write(str(to_signed(a0)))
        elif call == _Syscall.READ_INT:
            self.stdout.write("int value? >")
            self.stdout.flush()
            self.cpu.set_register(Reg.A0, self._read_int())
        elif call == _Syscall.EXIT_0:
            self.exit_code = 0
            return SvStatus.TERMINATED
        elif call == _Syscall.PRINT_CHAR:
            self.stdout.write(chr(a0 & 0xFF))
        elif call == _Syscall.READ_CHAR:
            self.stdout.flush()
            ch = self._getchar()
            self.cpu.set_register(Reg.A0, ord(ch) if ch else MASK32)
        elif call == _Syscall.EXIT:
            self.exit_code = to_signed(a0)
            return SvStatus.TERMINATED
        else:
            return SvStatus.INVALID_SYSCALL
        return SvStatus.RUNNING

    def tick(self) -> SvStatus:
        """Run the debugger check and one instruction, handling traps."""
        if self.debugger is not None and self.debugger.tick() is DebugResult.EXIT:
            return SvStatus.KILLED

        status = self.cpu.tick()
        if status == CpuStatus.MEMORY_FAULT:
            self._expand_stack()
            self.cpu.clear_last_fault()
            status = self.cpu.tick()

        if status == CpuStatus.ECALL_TRAP:
            result = self.handle_env_call()
            if result == SvStatus.RUNNING:
                self.cpu.clear_last_fault()
            return result
        if status == CpuStatus.EBREAK_TRAP:
            if self.debugger is not None and self.debugger.enabled:
                self.debugger.request_enter()
            self.cpu.clear_last_fault()
            return SvStatus.RUNNING
        if status == CpuStatus.ILL_INST_FAULT:
            return SvStatus.ILL_INST_FAULT
        if status == CpuStatus.MEMORY_FAULT:
            return SvStatus.MEMORY_FAULT
        return SvStatus.RUNNING

    def run(self) -> SvStatus:
        """Tick until the program stops running and return the final status."""
        status = SvStatus.RUNNING
        while status == SvStatus.RUNNING:
            status = self.tick()
        return status
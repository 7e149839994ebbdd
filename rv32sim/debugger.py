"""Interactive debugger: breakpoints, stepping and state inspection."""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Callable, Optional, TextIO

from .cpu import Cpu
from .isa import MASK32, Opcode, Reg, disassemble, funct3, opcode, rd
from .memory import Memory

MASK64 = (1 << 64) - 1

_NUMBER = re.compile(r"\s*([+-]?)(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)")

_HELP = (
    "Debugger commands:",
    "q               Exit the simulator",
    "c               Exit the debugger and continue (up to the next",
    "                  breakpoint if any)",
    "s               Step in",
    "n               Step over",
    "b <address>     Add a breakpoint at the specified address",
    "bl              List all breakpoints",
    "br <id>         Remove breakpoint number <id>",
    "v               Print current CPU state",
    "u <start> <len> Disassemble 'len' instructions from address 'start'",
    "d <start> <len> Dump 'len' bytes from address 'start'",
)


def _parse_ulong(text: str) -> Optional[tuple[int, str]]:
    """Parse an unsigned number with C base-0 conventions.

    Returns the value and the unparsed rest of ``text``, or None when no
    number is present.
    """
    match = _NUMBER.match(text)
    if match is None:
        return None
    sign, digits = match.groups()
    if digits[:2].lower() == "0x":
        value = int(digits[2:], 16)
    elif digits.startswith("0"):
        value = int(digits, 8)
    else:
        value = int(digits, 10)
    if sign == "-":
        value = -value
    return value & MASK64, text[match.end():]


class DebugResult(IntEnum):
    """What the simulation should do after a debugger tick."""

    CONTINUE = 0
    EXIT = 1


@dataclass(frozen=True)
class Breakpoint:
    """A breakpoint on an instruction address."""

    id: int
    address: int


class _Trigger(Enum):
    NONE = 0
    BREAKPOINT = 1
    STEP_IN = 2
    STEP_OVER = 3
    USER = 4


class Debugger:
    """Command-line debugger attached to a CPU and its memory."""

    def __init__(
        self,
        cpu: Cpu,
        memory: Memory,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        self.cpu = cpu
        self.memory = memory
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.stderr = stderr if stderr is not None else sys.stderr
        self.enabled = False
        self._breakpoints: list[Breakpoint] = []
        self._next_id = 0
        self._user_requests_enter = False
        self._step_in = False
        self._step_over = False
        self._step_over_addr = 0
        self._commands: tuple[tuple[str, Callable[[str], Optional[DebugResult]]], ...] = (
            ("q", lambda _args: DebugResult.EXIT),
            ("c", lambda _args: DebugResult.CONTINUE),
            ("s", self._cmd_step_in),
            ("n", self._cmd_step_over),
            ("bl", self._cmd_list_breakpoints),
            ("br", self._cmd_remove_breakpoint),
            ("b", self._cmd_add_breakpoint),
            ("v", self._cmd_cpu_status),
            ("u", self._cmd_disassemble),
            ("d", self._cmd_mem_dump),
        )

    def enable(self) -> bool:
        """Enable the debugger; return whether it was enabled before."""
        old, self.enabled = self.enabled, True
        return old

    def disable(self) -> bool:
        """Disable the debugger; return whether it was enabled before."""
        old, self.enabled = self.enabled, False
        return old

    def request_enter(self) -> None:
        """Enter the debugger prompt at the next tick."""
        self._user_requests_enter = True

    def log(self, message: str) -> int:
        """Write a line to the error stream when enabled; return chars written."""
        if not self.enabled:
            return 0
        return self.stderr.write(message + "\n")

    def add_breakpoint(self, address: int) -> int:
        """Add a breakpoint and return its identifier."""
        bp = Breakpoint(self._next_id, address & MASK32)
        self._next_id += 1
        self._breakpoints.insert(0, bp)
        return bp.id

    def remove_breakpoint(self, bp_id: int) -> bool:
        """Remove a breakpoint; return False if it does not exist."""
        for index, bp in enumerate(self._breakpoints):
            if bp.id == bp_id:
                del self._breakpoints[index]
                return True
        return False

    def get_breakpoint(self, bp_id: int) -> int:
        """Address of a breakpoint, or 0 if it does not exist."""
        return next((bp.address for bp in self._breakpoints if bp.id == bp_id), 0)

    def breakpoints(self) -> list[Breakpoint]:
        """All breakpoints, most recently added first."""
        return list(self._breakpoints)

    def run_command(self, line: str) -> Optional[DebugResult]:
        """Execute one prompt command.

        Returns None when the prompt should be shown again, otherwise what the
        simulation should do next.
        """
        rest = line
        for keyword, action in self._commands:
            rest = rest.lstrip()
            if rest.startswith(keyword):
                return action(rest[len(keyword):])
        if rest:
            print("\n".join(_HELP), file=self.stdout)
        return None

    def print_cpu_status(self) -> None:
        """Print the PC, the current instruction and all registers."""
        pc = self.cpu.get_register(Reg.PC)
        inst = self.memory.debug_read32(pc)
        parts = [f"PC : {pc:08x}: {inst:08x} {disassemble(inst)}\n"]
        for reg in range(32):
            parts.append(f"X{reg:<2d}: {self.cpu.get_register(reg):08x}")
            parts.append("\n" if (reg + 1) % 4 == 0 else " ")
        self.stderr.write("".join(parts))

    def tick(self) -> DebugResult:
        """Check for a trigger and, if one fired, run the interactive prompt."""
        trigger, bp = self._check_trigger()
        if trigger is _Trigger.NONE:
            return DebugResult.CONTINUE
        if bp is not None:
            self.stderr.write(
                f"Stopped at breakpoint #{bp.id} (PC=0x{bp.address:08x})\n"
            )
        self._step_in = False
        self._step_over = False
        self._user_requests_enter = False
        self.print_cpu_status()
        while True:
            self.stderr.write("debug> ")
            self.stderr.flush()
            line = self.stdin.readline()
            if not line:
                return DebugResult.EXIT
            result = self.run_command(line)
            if result is not None:
                return result

    def _check_trigger(self) -> tuple[_Trigger, Optional[Breakpoint]]:
        if not self.enabled:
            return _Trigger.NONE, None
        if self._user_requests_enter:
            return _Trigger.USER, None
        if self._step_in:
            return _Trigger.STEP_IN, None
        pc = self.cpu.get_register(Reg.PC)
        if self._step_over and self._step_over_addr == pc:
            return _Trigger.STEP_OVER, None
        for bp in self._breakpoints:
            if bp.address == pc:
                return _Trigger.BREAKPOINT, bp
        return _Trigger.NONE, None

    def _error(self, message: str) -> None:
        self.stderr.write(message + "\n")

    def _parse_two(self, args: str) -> Optional[tuple[int, int]]:
        first = _parse_ulong(args)
        if first is None:
            self._error("First argument is not a valid number")
            return None
        second = _parse_ulong(first[1])
        if second is None:
            self._error("Second argument is not a valid number")
            return None
        return first[0], second[0]

    def _cmd_step_in(self, _args: str) -> DebugResult:
        self._step_in = True
        return DebugResult.CONTINUE

    def _cmd_step_over(self, _args: str) -> DebugResult:
        pc = self.cpu.get_register(Reg.PC)
        inst = self.memory.debug_read32(pc)
        is_call = (
            opcode(inst) == Opcode.JAL
            or (opcode(inst) == Opcode.JALR and funct3(inst) == 0)
        ) and rd(inst) == Reg.RA
        if is_call:
            self._step_over = True
            self._step_over_addr = (pc + 4) & MASK32
        else:
            self._step_in = True
        return DebugResult.CONTINUE

    def _cmd_add_breakpoint(self, args: str) -> None:
        parsed = _parse_ulong(args)
        if parsed is None:
            self._error("First argument is not a valid number")
            return None
        address = parsed[0]
        bp_id = self.add_breakpoint(address)
        self._error(f"Added breakpoint {bp_id} at address 0x{address:08x}")
        return None

    def _cmd_remove_breakpoint(self, args: str) -> None:
        parsed = _parse_ulong(args)
        if parsed is None:
            self._error("First argument is not a valid number")
            return None
        bp_id = parsed[0]
        if self.remove_breakpoint(bp_id):
            self._error(f"Removed breakpoint {bp_id}")
        else:
            self._error(f"Breakpoint {bp_id} not found")
        return None

    def _cmd_list_breakpoints(self, _args: str) -> None:
        if not self._breakpoints:
            self._error("No breakpoints defined")
            return None
        for bp in self._breakpoints:
            self._error(f"Breakpoint {bp.id:<8d} Address 0x{bp.address:08x}")
        return None

    def _cmd_cpu_status(self, _args: str) -> None:
        self.print_cpu_status()
        return None

    def _cmd_disassemble(self, args: str) -> None:
        parsed = self._parse_two(args)
        if parsed is None:
            return None
        start, length = parsed
        for i in range(length):
            address = (start + 4 * i) & MASK32
            instr = self.memory.debug_read32(address)
            self._error(f"{address:08x}:  {instr:08x}  {disassemble(instr)}")
        return None

    def _cmd_mem_dump(self, args: str) -> None:
        parsed = self._parse_two(args)
        if parsed is None:
            return None
        start, length = parsed
        if length == 0:
            self._error("Length is zero")
            return None
        parts = [f"{start & MASK32:08x}: "]
        for i in range(length):
            address = (start + i) & MASK32
            parts.append(f"{self.memory.debug_read8(address):02x}")
            count = i + 1
            parts.append("\n" if count % 16 == 0 or count == length else " ")
            if count % 16 == 0 and count < length:
                parts.append(f"{(address + 1) & MASK32:08x}: ")
        self.stderr.write("".join(parts))
        return None
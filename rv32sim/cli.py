"""Command-line entry point of the RV32IM simulator."""

from __future__ import annotations

import getopt
import sys
from enum import IntEnum
from typing import Optional, Sequence

from .cpu import Cpu
from .debugger import Debugger, _parse_ulong
from .isa import MASK32, Reg
from .loader import (
    ExecType,
    InvalidArchError,
    InvalidFormatError,
    LoaderError,
    detect_exec_type,
    load_binary,
    load_elf,
)
from .memory import Memory
from .supervisor import Supervisor, SupervisorError, SvStatus

PROG_NAME = "rv32sim"

_LONG_OPTIONS = ["debug", "entry=", "help", "load-addr=", "prg-exit-code"]

_USAGE_OPTIONS = (
    "Options:",
    "  -d, --debug           Enters debug mode before starting execution",
    "  -e, --entry=ADDR      Force the entry point to ADDR",
    "  -l, --load-addr=ADDR  Sets the executable loading address (only",
    "                          for executables in raw binary format)",
    "  -x, --prg-exit-code   Exits the simulator with the same exit code",
    "                          as the simulated program. In case of faults",
    "                          produces POSIX-style exit codes.",
    "  -h, --help            Displays available options",
)


class SimExit(IntEnum):
    """Reasons for the simulator to stop."""

    SUCCESS = 0
    HELP = 1
    INVALID_ARGS = 2
    INVALID_FILE = 3
    SIGSEGV = 4
    SIGILL = 5


_NORMAL_CODES = (0, 0, 1, 2, 100, 101)
_POSIX_CODES = (0, 126, 126, 126, 128 + 11, 128 + 4)


def exit_code(code: int, to_posix: bool) -> int:
    """Process exit code for a simulator exit reason."""
    if not 0 <= code < len(SimExit):
        return int(code)
    return (_POSIX_CODES if to_posix else _NORMAL_CODES)[code]


def _usage(name: str) -> None:
    print("RISC-V RV32IM simulator")
    print(f"usage: {name} [options] executable\n")
    print("\n".join(_USAGE_OPTIONS))


def _fail(message: str) -> None:
    sys.stdout.flush()
    print(message, file=sys.stderr)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the simulator and return the process exit code."""
    args = list(sys.argv[1:] if argv is None else argv)
    name = PROG_NAME

    try:
        options, operands = getopt.gnu_getopt(args, "de:hl:x", _LONG_OPTIONS)
    except getopt.GetoptError as exc:
        print(f"{name}: {exc}", file=sys.stderr)
        _usage(name)
        posix = any(arg in ("-x", "--prg-exit-code") for arg in args)
        return exit_code(SimExit.INVALID_ARGS, posix)

    debug = False
    entry: Optional[int] = None
    load = 0
    prg_exit_code = False
    for option, value in options:
        if option in ("-d", "--debug"):
            debug = True
        elif option in ("-e", "--entry"):
            parsed = _parse_ulong(value)
            if parsed is None:
                _fail("Invalid entry address")
                return 1
            entry = parsed[0] & MASK32
        elif option in ("-l", "--load-addr"):
            parsed = _parse_ulong(value)
            if parsed is None:
                _fail("Invalid load address")
                return 1
            load = parsed[0] & MASK32
        elif option in ("-x", "--prg-exit-code"):
            prg_exit_code = True
        else:
            _usage(name)
            return exit_code(SimExit.HELP, prg_exit_code)

    if not operands:
        _usage(name)
        return exit_code(SimExit.INVALID_ARGS, prg_exit_code)
    if len(operands) > 1:
        _fail("Cannot load more than one file, exiting.")
        return exit_code(SimExit.INVALID_ARGS, prg_exit_code)
    path = operands[0]

    memory = Memory()
    cpu = Cpu(memory)
    debugger = Debugger(cpu, memory)
    if debug:
        debugger.enable()

    try:
        exec_type = detect_exec_type(path)
    except LoaderError:
        _fail("Could not open executable, exiting.")
        return exit_code(SimExit.INVALID_FILE, prg_exit_code)

    try:
        if exec_type is ExecType.BINARY:
            load_binary(path, memory, cpu, load,
                        load if entry is None else entry, log=debugger.log)
        else:
            load_elf(path, memory, cpu, log=debugger.log)
            if entry is not None:
                cpu.set_register(Reg.PC, entry)
    except InvalidArchError:
        _fail("Not a valid RISC-V executable, exiting.")
        return exit_code(SimExit.INVALID_FILE, prg_exit_code)
    except InvalidFormatError:
        _fail("Unsupported executable, exiting.")
        return exit_code(SimExit.INVALID_FILE, prg_exit_code)
    except LoaderError:
        _fail("Error during executable loading, exiting.")
        return exit_code(SimExit.INVALID_FILE, prg_exit_code)

    supervisor = Supervisor(cpu, memory, debugger, sys.stdin, sys.stdout)
    try:
        supervisor.initialize()
    except SupervisorError:
        status = SvStatus.MEMORY_FAULT
    else:
        if debug:
            debugger.request_enter()
        status = supervisor.run()
    sys.stdout.flush()

    if status == SvStatus.MEMORY_FAULT:
        _fail(f"Memory fault at address 0x{memory.last_fault_address:08x}, "
              "execution stopped.")
        return exit_code(SimExit.SIGSEGV, prg_exit_code)
    if status == SvStatus.ILL_INST_FAULT:
        _fail(f"Illegal instruction at address 0x{cpu.get_register(Reg.PC):08x}")
        return exit_code(SimExit.SIGILL, prg_exit_code)
    if prg_exit_code:
        return supervisor.exit_code
    return 0
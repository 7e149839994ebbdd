"""Loading of raw binary and ELF32 RISC-V executables into memory."""

from __future__ import annotations

import os
import struct
from enum import Enum
from typing import BinaryIO, Callable, Optional

from .cpu import Cpu
from .memory import MemError, Memory

MAX_BINARY_SIZE = 0x8000000

ELF_MAGIC = b"\x7fELF"
ELFCLASS32 = 1
ELFDATA2LSB = 1
ET_EXEC = 2
EM_RISCV = 0xF3
PT_NULL = 0
PT_LOAD = 1
PT_NOTE = 4

_EHDR = struct.Struct("<16sHHIIIIIHHHHHH")
_PHDR = struct.Struct("<8I")

Log = Optional[Callable[[str], None]]


class LoaderError(Exception):
    """Base class for executable loading errors."""


class LoaderFileError(LoaderError):
    """The file could not be opened or read."""


class LoaderMemoryError(LoaderError):
    """The executable could not be mapped in memory."""


class InvalidFormatError(LoaderError):
    """The file is not a supported executable."""


class InvalidArchError(LoaderError):
    """The executable is not for RISC-V."""


class ExecType(Enum):
    """Detected executable formats."""

    BINARY = 0
    ELF = 1


def _emit(log: Log, message: str) -> None:
    if log is not None:
        log(message)


def _open(path: str) -> BinaryIO:
    try:
        return open(path, "rb")
    except OSError as exc:
        raise LoaderFileError(f"cannot open {path}: {exc}") from exc


def _map(memory: Memory, base: int, extent: int) -> bytearray:
    try:
        return memory.map_area(base, extent)
    except MemError as exc:
        raise LoaderMemoryError(str(exc)) from exc


def _read_exact(fp: BinaryIO, size: int) -> bytes:
    data = fp.read(size)
    if len(data) < size:
        raise LoaderFileError("unexpected end of file")
    return data


def load_binary(
    path: str,
    memory: Memory,
    cpu: Cpu,
    base: int = 0,
    entry: Optional[int] = None,
    log: Log = None,
) -> None:
    """Load a raw binary image at ``base`` and reset the CPU to ``entry``."""
    if entry is None:
        entry = base
    _emit(log, f'Loading raw binary file "{path}" at address {base}')
    with _open(path) as fp:
        size = fp.seek(0, os.SEEK_END)
        if size > MAX_BINARY_SIZE:
            raise LoaderFileError(f"{path} is too large")
        fp.seek(0, os.SEEK_SET)
        buffer = _map(memory, base, size)
        if size == 0:
            raise LoaderFileError(f"{path} is empty")
        buffer[:] = _read_exact(fp, size)
    cpu.reset(entry)


def load_elf(path: str, memory: Memory, cpu: Cpu, log: Log = None) -> None:
    """Load the segments of an ELF32 RISC-V executable and reset the CPU."""
    _emit(log, f'Loading ELF file "{path}"')
    with _open(path) as fp:
        (ident, e_type, e_machine, e_version, e_entry, e_phoff, _shoff, _flags,
         _ehsize, e_phentsize, e_phnum, _shentsize, _shnum, _shstrndx) = (
            _EHDR.unpack(_read_exact(fp, _EHDR.size)))
        if (ident[:4] != ELF_MAGIC or ident[4] != ELFCLASS32
                or ident[5] != ELFDATA2LSB or ident[6] != 1):
            raise InvalidFormatError("not a 32-bit little-endian ELF file")
        if e_type != ET_EXEC or e_version != 1:
            raise InvalidFormatError("not an ELF executable")
        if e_machine != EM_RISCV:
            raise InvalidArchError("not a RISC-V executable")

        for index in range(e_phnum):
            fp.seek(e_phoff + index * e_phentsize)
            p_type, p_offset, p_vaddr, _paddr, p_filesz, p_memsz, _pf, _pa = (
                _PHDR.unpack(_read_exact(fp, _PHDR.size)))
            if p_type in (PT_NULL, PT_NOTE):
                continue
            if p_type != PT_LOAD:
                raise InvalidFormatError(f"unsupported segment type {p_type}")
            _emit(
                log,
                f"Loaded section at 0x{p_offset:08x} (size=0x{p_filesz:08x}) "
                f"to 0x{p_vaddr:08x} (size=0x{p_memsz:08x})",
            )
            if p_memsz == 0:
                continue
            buffer = _map(memory, p_vaddr, p_memsz)
            if p_filesz > 0:
                fp.seek(p_offset)
                size = min(p_memsz, p_filesz)
                buffer[:size] = _read_exact(fp, size)

    _emit(log, f"Setting the entry point to 0x{e_entry:x}")
    cpu.reset(e_entry)


def detect_exec_type(path: str) -> ExecType:
    """Tell ELF executables from raw binaries by their magic number."""
    with _open(path) as fp:
        magic = _read_exact(fp, 4)
    return ExecType.ELF if magic == ELF_MAGIC else ExecType.BINARY
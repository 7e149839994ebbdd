"""Sparse little-endian memory made of non-overlapping mapped areas."""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field

MASK32 = 0xFFFFFFFF


class MemError(Exception):
    """Base class for memory errors."""


class ExtentMappedError(MemError):
    """Raised when a new area would overlap an already mapped one."""

    def __init__(self, base: int, extent: int) -> None:
        super().__init__(f"area 0x{base:08x}+0x{extent:x} overlaps a mapped area")
        self.base = base
        self.extent = extent


class MappingError(MemError):
    """Raised when an access touches memory that is not mapped."""

    def __init__(self, address: int) -> None:
        super().__init__(f"unmapped access at 0x{address:08x}")
        self.address = address


@dataclass
class _Area:
    base: int
    extent: int
    buffer: bytearray = field(repr=False)

    @property
    def end(self) -> int:
        return self.base + self.extent


class Memory:
    """Address space of the simulated machine."""

    def __init__(self) -> None:
        self._areas: list[_Area] = []
        self._bases: list[int] = []
        self.last_fault_address = 0

    def map_area(self, base: int, extent: int) -> bytearray:
        """Map a zero-filled area and return its backing buffer."""
        base &= MASK32
        if extent == 0:
            return bytearray()
        index = bisect_left(self._bases, base + extent)
        if index > 0 and base < self._areas[index - 1].end:
            raise ExtentMappedError(base, extent)
        area = _Area(base, extent, bytearray(extent))
        self._areas.insert(index, area)
        self._bases.insert(index, base)
        return area.buffer

    def _find(self, addr: int, extent: int) -> _Area | None:
        index = bisect_right(self._bases, addr) - 1
        if index < 0:
            return None
        area = self._areas[index]
        if addr < area.end and addr + extent <= area.end:
            return area
        return None

    def is_mapped(self, addr: int, extent: int) -> bool:
        """Whether ``extent`` bytes starting at ``addr`` lie in one area."""
        return self._find(addr & MASK32, extent) is not None

    def _access(self, addr: int, extent: int) -> tuple[_Area, int]:
        addr &= MASK32
        area = self._find(addr, extent)
        if area is None:
            self.last_fault_address = addr
            raise MappingError(addr)
        return area, addr - area.base

    def _read(self, addr: int, extent: int) -> int:
        area, offset = self._access(addr, extent)
        return int.from_bytes(area.buffer[offset:offset + extent], "little")

    def _write(self, addr: int, extent: int, value: int) -> None:
        area, offset = self._access(addr, extent)
        mask = (1 << (8 * extent)) - 1
        area.buffer[offset:offset + extent] = (value & mask).to_bytes(extent, "little")

    def _debug_read(self, addr: int, extent: int) -> int:
        addr &= MASK32
        area = self._find(addr, extent)
        if area is None:
            return (1 << (8 * extent)) - 1
        offset = addr - area.base
        return int.from_bytes(area.buffer[offset:offset + extent], "little")

    def read8(self, addr: int) -> int:
        return self._read(addr, 1)

    def read16(self, addr: int) -> int:
        return self._read(addr, 2)

    def read32(self, addr: int) -> int:
        return self._read(addr, 4)

    def debug_read8(self, addr: int) -> int:
        """Read a byte without faulting; unmapped memory reads as all ones."""
        return self._debug_read(addr, 1)

    def debug_read16(self, addr: int) -> int:
        """Read a half-word without faulting; unmapped memory reads as all ones."""
        return self._debug_read(addr, 2)

    def debug_read32(self, addr: int) -> int:
        """Read a word without faulting; unmapped memory reads as all ones."""
        return self._debug_read(addr, 4)

    def write8(self, addr: int, value: int) -> None:
        self._write(addr, 1, value)

    def write16(self, addr: int, value: int) -> None:
        self._write(addr, 2, value)

    def write32(self, addr: int, value: int) -> None:
        self._write(addr, 4, value)
import pytest

from rv32sim.memory import ExtentMappedError, MappingError, MemError, Memory

BASE = 0x1000


@pytest.fixture
def mem():
    m = Memory()
    m.map_area(BASE, 64)
    return m


def test_new_area_is_zeroed(mem):
    assert mem.read32(BASE) == 0
    assert mem.read8(BASE + 63) == 0


@pytest.mark.parametrize("width,value", [(1, 0xAB), (2, 0xBEEF), (4, 0xDEADBEEF)])
def test_write_read_round_trip(mem, width, value):
    write = {1: mem.write8, 2: mem.write16, 4: mem.write32}[width]
    read = {1: mem.read8, 2: mem.read16, 4: mem.read32}[width]
    write(BASE + 4, value)
    assert read(BASE + 4) == value


def test_little_endian_layout():
    m = Memory()
    buf = m.map_area(BASE, 16)
    m.write32(BASE, 0x11223344)
    assert bytes(buf[0:4]) == (0x11223344).to_bytes(4, "little")
    assert m.read8(BASE) == 0x44
    assert m.read16(BASE + 2) == 0x1122


def test_buffer_is_backing_store():
    m = Memory()
    buf = m.map_area(BASE, 8)
    buf[0:4] = (0xCAFEBABE).to_bytes(4, "little")
    assert m.read32(BASE) == 0xCAFEBABE


def test_write_masks_value(mem):
    mem.write8(BASE, 0x1FF)
    assert mem.read8(BASE) == 0xFF
    assert mem.read8(BASE + 1) == 0


def test_unmapped_read_raises_and_records_fault(mem):
    with pytest.raises(MappingError) as info:
        mem.read32(0x5000)
    assert info.value.address == 0x5000
    assert mem.last_fault_address == 0x5000


def test_unmapped_write_raises(mem):
    with pytest.raises(MemError):
        mem.write16(BASE - 2, 1)
    assert mem.last_fault_address == BASE - 2


def test_access_straddling_end_fails(mem):
    with pytest.raises(MappingError):
        mem.read32(BASE + 62)
    assert mem.last_fault_address == BASE + 62


def test_access_across_adjacent_areas_fails(mem):
    mem.map_area(BASE + 64, 64)
    assert mem.read8(BASE + 64) == 0
    with pytest.raises(MappingError):
        mem.read32(BASE + 62)


def test_debug_reads_unmapped_are_all_ones(mem):
    mem.last_fault_address = BASE
    assert mem.debug_read8(0x9000) == 0xFF
    assert mem.debug_read16(0x9000) == 0xFFFF
    assert mem.debug_read32(0x9000) == 0xFFFFFFFF
    assert mem.last_fault_address == BASE


def test_debug_reads_mapped(mem):
    mem.write32(BASE, 0x01020304)
    assert mem.debug_read32(BASE) == 0x01020304
    assert mem.debug_read16(BASE) == mem.read16(BASE)
    assert mem.debug_read8(BASE + 3) == mem.read8(BASE + 3)


@pytest.mark.parametrize("base,extent", [(BASE, 1), (BASE + 63, 1), (BASE - 1, 2), (BASE - 16, 100)])
def test_overlapping_map_raises(mem, base, extent):
    with pytest.raises(ExtentMappedError):
        mem.map_area(base, extent)


def test_adjacent_maps_allowed(mem):
    mem.map_area(BASE - 16, 16)
    mem.map_area(BASE + 64, 16)
    assert mem.is_mapped(BASE - 16, 16 + 64 + 16) is False
    assert mem.is_mapped(BASE - 16, 16)
    assert mem.is_mapped(BASE + 64, 16)


def test_zero_extent_maps_nothing():
    m = Memory()
    assert m.map_area(BASE, 0) == bytearray()
    assert not m.is_mapped(BASE, 1)
    with pytest.raises(MappingError):
        m.read8(BASE)


def test_out_of_order_mapping():
    m = Memory()
    m.map_area(0x3000, 16)
    m.map_area(0x1000, 16)
    m.map_area(0x2000, 16)
    for addr in (0x1000, 0x2000, 0x3000):
        m.write32(addr, addr)
    assert [m.read32(a) for a in (0x1000, 0x2000, 0x3000)] == [0x1000, 0x2000, 0x3000]


def test_is_mapped_does_not_record_fault(mem):
    mem.last_fault_address = 0
    assert not mem.is_mapped(0x7000, 4)
    assert mem.last_fault_address == 0


def test_stack_like_mapping_below_top():
    m = Memory()
    m.map_area(0x80000000 - 4096, 4096)
    m.write32(0x80000000 - 4, 0xFFFFFFFF)
    assert m.read32(0x80000000 - 4) == 0xFFFFFFFF
    with pytest.raises(MappingError):
        m.read8(0x80000000)
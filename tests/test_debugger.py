import io
import struct

from rv32sim.cpu import Cpu
from rv32sim.debugger import Breakpoint, DebugResult, Debugger
from rv32sim.isa import Opcode, Reg, disassemble
from rv32sim.memory import Memory


def addi(rd, rs1, imm):
    return ((imm & 0xFFF) << 20) | (rs1 << 15) | (rd << 7) | Opcode.OPIMM


def jal(rd):
    return (rd << 7) | Opcode.JAL


def make(stdin_text="", words=(addi(1, 0, 1),) * 4):
    memory = Memory()
    buffer = memory.map_area(0, 64)
    data = b"".join(struct.pack("<I", w) for w in words)
    buffer[: len(data)] = data
    cpu = Cpu(memory)
    cpu.reset(0)
    out, err = io.StringIO(), io.StringIO()
    dbg = Debugger(cpu, memory, io.StringIO(stdin_text), out, err)
    return dbg, cpu, memory, out, err


def test_enable_disable_return_previous_state():
    dbg, *_ = make()
    assert dbg.enable() is False
    assert dbg.enable() is True
    assert dbg.disable() is True
    assert dbg.enabled is False


def test_log_only_when_enabled():
    dbg, _, _, _, err = make()
    assert dbg.log("hidden") == 0
    assert err.getvalue() == ""
    dbg.enable()
    dbg.log("shown")
    assert err.getvalue() == "shown\n"


def test_breakpoint_management():
    dbg, *_ = make()
    first = dbg.add_breakpoint(0x100)
    second = dbg.add_breakpoint(0x200)
    assert second == first + 1
    assert dbg.breakpoints() == [Breakpoint(second, 0x200), Breakpoint(first, 0x100)]
    assert dbg.get_breakpoint(first) == 0x100
    assert dbg.remove_breakpoint(first) is True
    assert dbg.remove_breakpoint(first) is False
    assert dbg.get_breakpoint(first) == 0
    assert [bp.id for bp in dbg.breakpoints()] == [second]


def test_commands_quit_and_continue():
    dbg, *_ = make()
    assert dbg.run_command("q\n") is DebugResult.EXIT
    assert dbg.run_command("  c\n") is DebugResult.CONTINUE
    assert dbg.run_command("\n") is None


def test_add_list_remove_commands():
    dbg, _, _, _, err = make()
    assert dbg.run_command("b 0x20\n") is None
    assert dbg.run_command("b 010\n") is None
    assert dbg.run_command("b -1\n") is None
    assert [bp.address for bp in dbg.breakpoints()] == [0xFFFFFFFF, 8, 0x20]
    dbg.run_command("bl\n")
    assert "Address 0x00000020" in err.getvalue()
    dbg.run_command("br 0\n")
    assert "Removed breakpoint 0" in err.getvalue()
    dbg.run_command("br 0\n")
    assert "Breakpoint 0 not found" in err.getvalue()


def test_empty_breakpoint_list_and_bad_numbers():
    dbg, _, _, _, err = make()
    dbg.run_command("bl\n")
    dbg.run_command("b foo\n")
    dbg.run_command("u 0 zz\n")
    text = err.getvalue()
    assert "No breakpoints defined" in text
    assert "First argument is not a valid number" in text
    assert "Second argument is not a valid number" in text
    assert dbg.breakpoints() == []


def test_unknown_command_prints_help():
    dbg, _, _, out, _ = make()
    assert dbg.run_command("zzz\n") is None
    assert out.getvalue().startswith("Debugger commands:")


def test_memory_dump():
    dbg, _, memory, _, err = make()
    memory.write32(0, 0x04030201)
    dbg.run_command("d 0 4\n")
    assert err.getvalue() == "00000000: 01 02 03 04\n"


def test_memory_dump_wraps_lines_and_zero_length():
    dbg, _, _, _, err = make()
    dbg.run_command("d 0 17\n")
    lines = err.getvalue().splitlines()
    assert len(lines) == 2
    assert lines[1].startswith("00000010: ")
    dbg.run_command("d 0 0\n")
    assert err.getvalue().endswith("Length is zero\n")


def test_disassemble_command_uses_memory_contents():
    dbg, _, memory, _, err = make()
    word = memory.read32(4)
    dbg.run_command("u 4 1\n")
    assert err.getvalue() == f"00000004:  {word:08x}  {disassemble(word)}\n"


def test_print_cpu_status_shows_registers():
    dbg, cpu, _, _, err = make()
    cpu.set_register(5, 0xDEADBEEF)
    dbg.print_cpu_status()
    text = err.getvalue()
    assert "X5 : deadbeef" in text
    assert text.startswith("PC : 00000000: ")
    assert len(text.splitlines()) == 9


def test_tick_when_disabled_or_not_triggered():
    dbg, _, _, _, err = make("q\n")
    dbg.request_enter()
    assert dbg.tick() is DebugResult.CONTINUE
    dbg.enable()
    dbg.disable()
    assert err.getvalue() == ""


def test_tick_user_request_reads_commands():
    dbg, _, _, _, err = make("v\nq\n")
    dbg.enable()
    dbg.request_enter()
    assert dbg.tick() is DebugResult.EXIT
    assert err.getvalue().count("debug> ") == 2
    # the request was consumed
    assert dbg.tick() is DebugResult.CONTINUE


def test_tick_end_of_input_exits():
    dbg, *_ = make("")
    dbg.enable()
    dbg.request_enter()
    assert dbg.tick() is DebugResult.EXIT


def test_tick_stops_at_breakpoint():
    dbg, cpu, _, _, err = make("c\n")
    dbg.enable()
    bp_id = dbg.add_breakpoint(8)
    assert dbg.tick() is DebugResult.CONTINUE
    assert "Stopped" not in err.getvalue()
    cpu.set_register(Reg.PC, 8)
    assert dbg.tick() is DebugResult.CONTINUE
    assert f"Stopped at breakpoint #{bp_id} (PC=0x00000008)" in err.getvalue()


def test_step_in_triggers_next_tick():
    dbg, *_ = make("")
    dbg.enable()
    assert dbg.run_command("s\n") is DebugResult.CONTINUE
    assert dbg.tick() is DebugResult.EXIT


def test_step_over_call_waits_for_return_address():
    dbg, cpu, *_ = make("", words=(jal(Reg.RA), addi(1, 0, 1)))
    dbg.enable()
    assert dbg.run_command("n\n") is DebugResult.CONTINUE
    assert dbg.tick() is DebugResult.CONTINUE
    cpu.set_register(Reg.PC, 4)
    assert dbg.tick() is DebugResult.EXIT


def test_step_over_non_call_is_step_in():
    dbg, *_ = make("")
    dbg.enable()
    dbg.run_command("n\n")
    assert dbg.tick() is DebugResult.EXIT
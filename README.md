# rv32sim

A simulator for programs built for the RISC-V RV32IM instruction set. It
loads a 32-bit little-endian RISC-V ELF executable, or a raw binary image,
runs it on a simulated CPU and gives it a small set of system calls for
console input and output. An interactive debugger lets you step through the
program, set breakpoints, disassemble code and dump memory.

## Installation

```
pip install .
```

## Running a program

```
rv32sim program.o
```

Options:

| Option | Meaning |
| --- | --- |
| `-d`, `--debug` | Enter the debugger before execution starts |
| `-e`, `--entry=ADDR` | Force the entry point to `ADDR` |
| `-l`, `--load-addr=ADDR` | Load address for raw binary executables (default 0) |
| `-x`, `--prg-exit-code` | Exit with the simulated program's exit code; errors and faults give POSIX-style codes |
| `-h`, `--help` | Show the available options |

Addresses may be written in decimal, in hexadecimal with a `0x` prefix, or in
octal with a leading `0`.

A file that starts with the ELF magic number is loaded as an ELF executable;
any other file is loaded as a raw binary image. For a raw binary the entry
point is the load address unless `--entry` is given.

A program gets a stack of its own below address `0x80000000`; the stack
pointer starts at `0x7ffffffc`. The stack grows one 4 KiB page at a time when
the program touches memory in the page just below it.

### System calls

The program issues `ECALL` with the call number in `a7`:

| `a7` | Call |
| --- | --- |
| 1 | Print the signed integer in `a0` |
| 5 | Prompt with `int value? >` and read a decimal integer into `a0` |
| 10 | Exit with code 0 |
| 11 | Print the character in `a0` |
| 12 | Read a character into `a0` (`-1` at end of input) |
| 93 | Exit with the code in `a0` |

A memory fault or an illegal instruction stops the simulation with an error
message. An unknown system call also stops it, without a message, and the
simulator exits as after a normal exit with code 0.

### Exit codes

| Situation | Default | With `-x` |
| --- | --- | --- |
| Program finished | 0 | the program's exit code |
| `--help` | 0 | 126 |
| Invalid arguments | 1 | 126 |
| Executable could not be opened or loaded | 2 | 126 |
| Memory fault | 100 | 139 |
| Illegal instruction | 101 | 132 |

An address given to `--entry` or `--load-addr` that is not a number makes the
simulator exit with code 1.

## Debugger

With `--debug`, or when the program runs `EBREAK` while debugging is on, the
simulator prints the CPU state to standard error and reads commands at a
`debug>` prompt:

```
q               Exit the simulator
c               Continue (up to the next breakpoint if any)
s               Step in
n               Step over
b <address>     Add a breakpoint at the specified address
bl              List all breakpoints
br <id>         Remove breakpoint number <id>
v               Print current CPU state
u <start> <len> Disassemble 'len' instructions from address 'start'
d <start> <len> Dump 'len' bytes from address 'start'
```

`n` steps over a `JAL` or `JALR` that writes `ra`, stopping at the following
instruction; on any other instruction it behaves like `s`. Any unrecognised
command prints the list above. End of input at the prompt exits the
simulator. While debugging is on, the loader also reports what it loads.

## Using it as a library

```python
from rv32sim.memory import Memory
from rv32sim.cpu import Cpu
from rv32sim.isa import disassemble

memory = Memory()
memory.map_area(0x1000, 16)
memory.write32(0x1000, 0x00500093)   # ADDI x1, x0, 5
cpu = Cpu(memory)
cpu.reset(0x1000)
cpu.tick()
print(cpu.get_register(1))           # 5
print(disassemble(0x00500093))       # ADDI x1, x0, 5
```

A whole program can be run the way the command line does it:

```python
from rv32sim.cpu import Cpu
from rv32sim.loader import load_elf
from rv32sim.memory import Memory
from rv32sim.supervisor import Supervisor

memory = Memory()
cpu = Cpu(memory)
load_elf("program.o", memory, cpu)
supervisor = Supervisor(cpu, memory)
supervisor.initialize()
status = supervisor.run()            # an SvStatus
print(status, supervisor.exit_code)
```

The modules:

- `rv32sim.isa` — instruction fields, immediates, `Opcode`, `Reg` and
  `disassemble`.
- `rv32sim.memory` — `Memory`, a sparse address space of mapped areas;
  unmapped accesses raise `MappingError`, overlapping mappings raise
  `ExtentMappedError`.
- `rv32sim.cpu` — `Cpu`, which executes one instruction per `tick()` and
  reports a `CpuStatus`.
- `rv32sim.loader` — `load_elf`, `load_binary` and `detect_exec_type`; failures
  raise subclasses of `LoaderError`.
- `rv32sim.debugger` — `Debugger`, with breakpoints and the interactive prompt.
- `rv32sim.supervisor` — `Supervisor`, which sets up the stack and serves
  system calls.
- `rv32sim.cli` — the `rv32sim` command.

## Tests

```
pip install .[test]
pytest
```
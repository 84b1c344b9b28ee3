# rvsim

A cycle-level simulator of a 32-bit RISC-V (RV32I) processor. The processor is
assembled from small hardware modules that talk to each other through wires
and clocked registers. On every cycle each module does its work, then every
register takes its new value at once, as it would in hardware.

## Installing

```
pip install .
```

For running the tests:

```
pip install .[test]
pytest
```

## Program images

Programs are given as a hex memory image: an `@address` token sets the load
address (in hex), and every following hex token is one byte stored at the
current address, which then advances by one. Execution starts at address 0.

```
@00000000
13 05 a0 02 13 05 f0 0f
```

This image holds `addi a0, zero, 42` followed by `0x0ff00513`
(`li a0, 255`), the instruction that ends a program.

## Running a program

```
rvsim program.data
rvsim < program.data
rvsim --max-cycles 100000 program.data
```

The image is read from the named file, or from standard input when no file is
given. The processor fetches, decodes and retires one instruction at a time,
using a memory unit, an ALU and a control unit; modules run in a random order
each cycle, which does not change the outcome.

When the ALU finishes the instruction `0x0ff00513`, the simulation stops and
the low eight bits of register `a0`, as they stood before that instruction,
are printed (`42` for the image above). If an unknown instruction, ALU
operation or memory access is met, `oops` is printed instead. If the program
does not stop within `--max-cycles` cycles (one billion by default), nothing
is printed.

Supported instructions: the R-type and I-type arithmetic and shift
instructions, loads (`lb`, `lh`, `lw`, `lbu`, `lhu`), stores (`sb`, `sh`,
`sw`), conditional branches, `jal`, `jalr`, `auipc` and `lui`.

## Exercising the memory unit

```
rvsim-memtest program.data
```

`rvsim-memtest` loads a memory image (by default `../sample/sample.data`) and
then reads requests from standard input: groups of four hex numbers giving the
address, the issue kind (1 = load, 2 = store), the access mode and the value.
Load modes are 0 (`lb`), 1 (`lh`), 2 (`lw`), 4 (`lbu`) and 5 (`lhu`); store
modes are 0 (byte), 1 (half-word) and 2 (word). Each request is run through
the memory unit until it finishes and the result is printed in hex (0 for
stores). A request with issue kind 0, or an unsupported access, ends the
command with an error message and exit status 1.

## Using it from Python

```python
from rvsim.cli import run_program
from rvsim.alu import alu_compute
from rvsim.memory import parse_hex_image, perform_access

memory = parse_hex_image("@0\n78 56 34 12\n")
word = perform_access(memory, 1, 2, 0)          # load word -> 0x12345678
total = alu_compute(0b0000, 2, 3)               # add -> 5
code = run_program("@0\n13 05 a0 02 13 05 f0 0f\n")  # -> 42, or None if it never halts
```

- `rvsim.hardware`: `Register` (clocked; `load` schedules a value, `tick`
  applies it), `Wire` (reads a register, another wire or a callable), the
  abstract `Module`, and `CPU` (`add_module`, `run_once`, `run`), together with
  the bit helpers `mask`, `field`, `sign_extend`, `to_signed` and `concat`.
- `rvsim.alu`: `alu_compute` and `ALUModule`, raising `ALUError`.
- `rvsim.memory`: `parse_hex_image`, `perform_access` and `MemModule`, raising
  `MemError`.
- `rvsim.control`: `ControlModule`, raising `ControlError` on an undecodable
  instruction and `Halt` (with its `code`) when the program ends.
- `rvsim.cli`: `build_cpu`, `run_program`, `main` and `memtest_main`.
- `rvsim.pipeline`: `QueuedALUModule` and `QueuedMemModule`, which buffer up
  to eight tagged requests and complete them in issue order, and
  `FetchModule`, which reads instruction words from a memory image and raises
  `FetchError` on an unmapped address.

## What it does not do

The units in `rvsim.pipeline` are building blocks only: the package has no
out-of-order control unit that drives them, and no command runs a program on
them. Programs run only on the single-issue core that `build_cpu` assembles.
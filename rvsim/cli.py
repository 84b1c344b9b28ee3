"""Command-line entry points: run a program image, or exercise the memory unit."""

from __future__ import annotations

import argparse
import itertools
import sys
from collections.abc import Iterable, Iterator, MutableMapping
from pathlib import Path

from rvsim.alu import ALUError, ALUModule
from rvsim.control import ControlError, ControlModule, Halt
from rvsim.hardware import CPU
from rvsim.memory import MemError, MemModule, parse_hex_image

DEFAULT_MAX_CYCLES = 1_000_000_000
DEFAULT_SAMPLE = "../sample/sample.data"


def build_cpu(memory: MutableMapping[int, int]) -> CPU:
    """Wire a memory unit, an ALU and a control unit around ``memory``."""
    mem = MemModule(memory)
    alu = ALUModule()
    control = ControlModule()

    mem.addr.connect(control.mem_addr)
    mem.delta.connect(control.mem_delta)
    mem.value.connect(control.mem_value)
    mem.issue.connect(control.mem_issue)
    mem.mode.connect(control.mem_mode)

    alu.value1.connect(control.alu_value1)
    alu.value2.connect(control.alu_value2)
    alu.issue.connect(control.alu_issue)
    alu.mode.connect(control.alu_mode)

    control.mem_result.connect(mem.result)
    control.mem_done.connect(mem.fin)
    control.alu_result.connect(alu.result)
    control.alu_done.connect(alu.fin)

    cpu = CPU()
    cpu.add_module(mem)
    cpu.add_module(alu)
    cpu.add_module(control)
    return cpu


def run_program(text: str, max_cycles: int = DEFAULT_MAX_CYCLES) -> int | None:
    """Run a hex image; return its exit code, or None if it did not halt in time."""
    cpu = build_cpu(parse_hex_image(text))
    try:
        cpu.run(max_cycles, shuffle=True)
    except Halt as halt:
        return halt.code
    return None


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run a RV32I program image.")
    parser.add_argument("image", nargs="?", help="hex image file (default: standard input)")
    parser.add_argument("--max-cycles", type=int, default=DEFAULT_MAX_CYCLES)
    args = parser.parse_args(argv)

    text = Path(args.image).read_text() if args.image else sys.stdin.read()
    try:
        code = run_program(text, args.max_cycles)
    except (ALUError, MemError, ControlError):
        print("oops")
        return 0
    if code is not None:
        print(code)
    return 0


def _read_requests(lines: Iterable[str]) -> Iterator[tuple[int, int, int, int]]:
    tokens = (token for line in lines for token in line.split())
    while True:
        group = list(itertools.islice(tokens, 4))
        if len(group) < 4:
            return
        try:
            addr, issue, mode, value = (int(token, 16) for token in group)
        except ValueError:
            return
        yield addr, issue, mode, value


def memtest_main(argv: list[str] | None = None) -> int:
    """Load an image, then serve ``addr issue mode value`` requests from standard input."""
    parser = argparse.ArgumentParser(description="Drive the memory unit by hand.")
    parser.add_argument("image", nargs="?", default=DEFAULT_SAMPLE, help="hex image file")
    args = parser.parse_args(argv)

    mem = MemModule(parse_hex_image(Path(args.image).read_text()))
    request = {"addr": 0, "issue": 0, "mode": 0, "value": 0}
    mem.addr.connect(lambda: request["addr"])
    mem.delta.connect(lambda: 0)
    mem.value.connect(lambda: request["value"])
    mem.issue.connect(lambda: request["issue"])
    mem.mode.connect(lambda: request["mode"])
    cpu = CPU()
    cpu.add_module(mem)

    for addr, issue, mode, value in _read_requests(sys.stdin):
        if not issue & 0b11:
            print("request has no operation", file=sys.stderr)
            return 1
        request.update(addr=addr, issue=issue, mode=mode, value=value)
        try:
            cpu.run_once()
            request["issue"] = 0
            while not mem.fin:
                cpu.run_once()
        except MemError as error:
            print(error, file=sys.stderr)
            return 1
        print(format(int(mem.result), "x"))
    return 0
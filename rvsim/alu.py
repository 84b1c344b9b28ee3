"""Arithmetic-logic unit with a fixed latency."""

from __future__ import annotations

from collections.abc import Callable

from rvsim.hardware import Module, Register, Wire, mask, to_signed

_SHIFT_MASK = 0x1F

_OPERATIONS: dict[int, Callable[[int, int], int]] = {
    0b0000: lambda a, b: a + b,  # add
    0b0001: lambda a, b: a - b,  # sub
    0b1110: lambda a, b: a & b,  # and
    0b1100: lambda a, b: a | b,  # or
    0b1000: lambda a, b: a ^ b,  # xor
    0b0010: lambda a, b: a << (b & _SHIFT_MASK),  # sll
    0b1010: lambda a, b: a >> (b & _SHIFT_MASK),  # srl
    0b1011: lambda a, b: to_signed(a) >> (b & _SHIFT_MASK),  # sra
    0b0100: lambda a, b: int(to_signed(a) < to_signed(b)),  # slt
    0b0110: lambda a, b: int(a < b),  # sltu
    0b0101: lambda a, b: int(to_signed(a) >= to_signed(b)),  # sge, for bge
    0b0111: lambda a, b: int(a >= b),  # sgeu, for bgeu
    0b1111: lambda a, b: int(a == b),  # seq, for beq
    0b1101: lambda a, b: int(a != b),  # sne, for bne
}


class ALUError(Exception):
    """Raised on an unknown operation or an issue while the unit is busy."""


def alu_compute(mode: int, value1: int, value2: int) -> int:
    """Apply the 4-bit operation ``mode`` to two 32-bit operands."""
    try:
        operation = _OPERATIONS[mode]
    except KeyError:
        raise ALUError(f"unsupported ALU mode {mode:#06b}") from None
    return mask(operation(mask(value1, 32), mask(value2, 32)), 32)


class ALUModule(Module):
    """Accepts one operation at a time and reports its result after ``LAG`` cycles."""

    LAG = 1

    def __init__(self) -> None:
        self.value1 = Wire(32)
        self.value2 = Wire(32)
        self.issue = Wire(1)
        self.mode = Wire(4)
        self.fin = Register(1)
        self.result = Register(32)
        self._state = 0
        self._operands = (0, 0)
        self._mode = 0

    def _idle(self) -> None:
        self.fin.load(0)
        self.result.load(0)

    def work(self) -> None:
        if self.issue.value:
            if self._state:
                raise ALUError("ALU issued while busy")
            self._state = 1
            self._operands = (self.value1.value, self.value2.value)
            self._mode = self.mode.value
            self._idle()
        elif self._state:
            if self._state == self.LAG:
                self._state = 0
                self.fin.load(1)
                self.result.load(alu_compute(self._mode, *self._operands))
            else:
                self._state += 1
                self._idle()
        else:
            self._idle()
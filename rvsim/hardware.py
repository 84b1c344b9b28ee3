"""Cycle-level building blocks: bit helpers, registers, wires, modules and the clock."""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from typing import Union

WORD_BITS = 32


def mask(value: int, width: int) -> int:
    """Keep the low ``width`` bits of ``value``."""
    if width < 0:
        raise ValueError(f"width must not be negative, got {width}")
    return int(value) & ((1 << width) - 1)


def field(value: int, low: int, width: int) -> int:
    """Extract ``width`` bits of ``value`` starting at bit ``low``."""
    return mask(int(value) >> low, width)


def sign_extend(value: int, width: int) -> int:
    """Sign-extend a ``width``-bit value to an unsigned 32-bit word."""
    if not 1 <= width <= WORD_BITS:
        raise ValueError(f"width must be between 1 and {WORD_BITS}, got {width}")
    value = mask(value, width)
    if value >> (width - 1):
        value -= 1 << width
    return mask(value, WORD_BITS)


def to_signed(value: int) -> int:
    """Interpret a 32-bit word as a two's complement integer."""
    value = mask(value, WORD_BITS)
    return value - (1 << WORD_BITS) if value >> (WORD_BITS - 1) else value


def concat(*parts: tuple[int, int]) -> int:
    """Join ``(value, width)`` pairs, most significant part first."""
    result = 0
    for value, width in parts:
        result = (result << width) | mask(value, width)
    return result


class Register:
    """A clocked storage element: writes become visible after the next tick."""

    __slots__ = ("width", "_current", "_next")

    def __init__(self, width: int, value: int = 0) -> None:
        if width < 1:
            raise ValueError(f"register width must be positive, got {width}")
        self.width = width
        self._current = mask(value, width)
        self._next = self._current

    @property
    def value(self) -> int:
        return self._current

    def load(self, value: int) -> None:
        """Schedule ``value`` to be stored at the next clock edge."""
        self._next = mask(value, self.width)

    def tick(self) -> None:
        """Apply the scheduled value."""
        self._current = self._next

    def __int__(self) -> int:
        return self._current

    __index__ = __int__

    def __bool__(self) -> bool:
        return self._current != 0

    def __repr__(self) -> str:
        return f"Register(width={self.width}, value={self._current:#x})"


WireSource = Union[Register, "Wire", Callable[[], Union[int, Register, "Wire"]]]


class Wire:
    """A combinational input that reads whatever its source currently holds."""

    __slots__ = ("width", "_source")

    def __init__(self, width: int, source: WireSource | None = None) -> None:
        if width < 1:
            raise ValueError(f"wire width must be positive, got {width}")
        self.width = width
        self._source = source

    def connect(self, source: WireSource) -> None:
        """Attach the wire to a register, another wire or a callable."""
        self._source = source

    @property
    def value(self) -> int:
        source = self._source
        if source is None:
            raise RuntimeError("wire is not connected")
        produced = source() if callable(source) else source
        return mask(int(produced), self.width)

    def __int__(self) -> int:
        return self.value

    __index__ = __int__

    def __bool__(self) -> bool:
        return self.value != 0

    def __repr__(self) -> str:
        state = "connected" if self._source is not None else "unconnected"
        return f"Wire(width={self.width}, {state})"


class Module(ABC):
    """A hardware unit that computes one cycle at a time."""

    def registers(self) -> Iterator[Register]:
        """Yield every register the module owns, including those in lists."""
        for attribute in vars(self).values():
            if isinstance(attribute, Register):
                yield attribute
            elif isinstance(attribute, (list, tuple)):
                yield from (item for item in attribute if isinstance(item, Register))

    @abstractmethod
    def work(self) -> None:
        """Compute the next state of the module's registers."""


class CPU:
    """Drives a set of modules with a common clock."""

    def __init__(self) -> None:
        self.modules: list[Module] = []
        self.cycles = 0
        self.rng = random.Random()

    def add_module(self, module: Module) -> None:
        self.modules.append(module)

    def run_once(self) -> None:
        """Run a single clock cycle with modules in the order they were added."""
        self._cycle(self.modules)

    def run(self, max_cycles: int, shuffle: bool = False) -> int:
        """Run up to ``max_cycles`` cycles; return how many were run."""
        for _ in range(max_cycles):
            order = list(self.modules)
            if shuffle:
                self.rng.shuffle(order)
            self._cycle(order)
        return max_cycles

    def _cycle(self, order: Iterable[Module]) -> None:
        for module in order:
            module.work()
        for module in self.modules:
            for register in module.registers():
                register.tick()
        self.cycles += 1
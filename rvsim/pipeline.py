"""Queued execution units and an instruction fetch unit for an out-of-order core."""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass

from rvsim.alu import ALUError, alu_compute
from rvsim.hardware import Module, Register, Wire, mask
from rvsim.memory import MemError, perform_access

TAG_BITS = 5


class FetchError(Exception):
    """Raised when fetching from an unmapped address or issuing while busy."""


@dataclass
class _ALURequest:
    value1: int
    value2: int
    mode: int
    tag: int
    state: int = 0


@dataclass
class _MemRequest:
    place: int
    value: int
    issue: int
    mode: int
    tag: int
    state: int = 0


class QueuedALUModule(Module):
    """ALU that buffers tagged operations and completes them in issue order."""

    LAG = 1
    MAX_CAPACITY = 8

    def __init__(self) -> None:
        self.value1 = Wire(32)
        self.value2 = Wire(32)
        self.issue = Wire(1)
        self.mode = Wire(4)
        self.to_input = Wire(TAG_BITS)
        self.done = Register(1)
        self.result = Register(32)
        self.full = Register(1)
        self.to_output = Register(TAG_BITS)
        self.queue: deque[_ALURequest] = deque()

    def _idle(self) -> None:
        self.done.load(0)
        self.result.load(0)
        self.to_output.load(0)

    def work(self) -> None:
        if self.issue.value:
            if self.full:
                raise ALUError("ALU queue is full")
            self.queue.append(
                _ALURequest(
                    self.value1.value, self.value2.value, self.mode.value, self.to_input.value
                )
            )
            self._idle()
        if self.queue:
            front = self.queue[0]
            if front.state == self.LAG:
                self.done.load(1)
                self.to_output.load(front.tag)
                front.state = 0
                self.result.load(alu_compute(front.mode, front.value1, front.value2))
                self.queue.popleft()
            else:
                front.state += 1
                self._idle()
        else:
            self._idle()
        self.full.load(int(len(self.queue) == self.MAX_CAPACITY))


class QueuedMemModule(Module):
    """Memory unit that buffers tagged accesses and serves them in issue order."""

    LAG = 3
    MAX_CAPACITY = 8

    def __init__(self, memory: MutableMapping[int, int] | None = None) -> None:
        self.memory: MutableMapping[int, int] = {} if memory is None else memory
        self.addr = Wire(32)
        self.delta = Wire(32)
        self.value = Wire(32)
        self.issue = Wire(2)
        self.mode = Wire(3)
        self.to_input = Wire(TAG_BITS)
        self.result = Register(32)
        self.done = Register(1)
        self.to_output = Register(TAG_BITS)
        self.full = Register(1)
        self.queue: deque[_MemRequest] = deque()

    def work(self) -> None:
        issue = self.issue.value
        if issue:
            if self.full:
                raise MemError("memory queue is full")
            self.queue.append(
                _MemRequest(
                    mask(self.addr.value + self.delta.value, 32),
                    self.value.value,
                    issue,
                    self.mode.value,
                    self.to_input.value,
                )
            )
            self.done.load(0)
            self.result.load(0)
            self.to_output.load(0)
        if self.queue:
            front = self.queue[0]
            if front.state == self.LAG:
                self.done.load(1)
                self.to_output.load(front.tag)
                self.result.load(
                    perform_access(self.memory, front.issue, front.mode, front.place, front.value)
                )
                self.queue.popleft()
            else:
                front.state += 1
                self.done.load(0)
                self.result.load(0)
        else:
            self.done.load(0)
            self.result.load(0)
        self.full.load(int(len(self.queue) == self.MAX_CAPACITY))


class FetchModule(Module):
    """Reads one instruction word at a time from a read-only memory image."""

    LAG = 1

    def __init__(self, memory: Mapping[int, int]) -> None:
        self.memory = memory
        self.addr = Wire(32)
        self.issue = Wire(1)
        self.result = Register(32)
        self.done = Register(1)
        self.busy = Register(1)
        self._state = 0
        self._address = 0

    def _fetch(self) -> int:
        data = []
        for offset in range(4):
            location = mask(self._address + offset, 32)
            try:
                data.append(mask(self.memory[location], 8))
            except KeyError:
                raise FetchError(f"no instruction byte at {location:#010x}") from None
        return int.from_bytes(bytes(data), "little")

    def work(self) -> None:
        if self.issue.value:
            if self._state:
                raise FetchError("fetch issued while busy")
            self._state = 1
            self._address = self.addr.value
            self.result.load(0)
            self.done.load(0)
            self.busy.load(1)
        elif self._state:
            if self._state == self.LAG:
                self.result.load(self._fetch())
                self.done.load(1)
                self._state = 0
                self.busy.load(0)
            else:
                self.result.load(0)
                self.done.load(0)
                self._state += 1
                self.busy.load(1)
        else:
            self.result.load(0)
            self.done.load(0)
            self.busy.load(0)
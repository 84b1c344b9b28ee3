"""Byte-addressed memory: image loading, access decoding and a timed memory unit."""

from __future__ import annotations

from collections.abc import MutableMapping

from rvsim.hardware import Module, Register, Wire, concat, mask, sign_extend

_LOAD_WORD = 0b01010
_LOAD_HALF = 0b01001
_LOAD_HALF_UNSIGNED = 0b01101
_LOAD_BYTE = 0b01000
_LOAD_BYTE_UNSIGNED = 0b01100
_STORES = {0b10000, 0b10001, 0b10010}


class MemError(Exception):
    """Raised on a malformed image, a bad access or an issue while busy."""


def _parse_hex(token: str) -> int:
    try:
        return int(token, 16)
    except ValueError:
        raise MemError(f"invalid hexadecimal token {token!r}") from None


def parse_hex_image(text: str) -> dict[int, int]:
    """Parse a whitespace-separated hex image with ``@address`` markers."""
    memory: dict[int, int] = {}
    place = 0
    for token in text.split():
        if token.startswith("@"):
            place = mask(_parse_hex(token[1:]), 32)
        else:
            memory[place] = mask(_parse_hex(token), 8)
            place = mask(place + 1, 32)
    return memory


def _read(memory: MutableMapping[int, int], address: int, size: int) -> int:
    data = bytes(memory.get(mask(address + offset, 32), 0) for offset in range(size))
    return int.from_bytes(data, "little")


def perform_access(
    memory: MutableMapping[int, int], issue: int, mode: int, address: int, value: int = 0
) -> int:
    """Carry out one load (issue 1) or store (issue 2); return the loaded word."""
    address = mask(address, 32)
    code = concat((issue, 2), (mode, 3))
    if code == _LOAD_WORD:
        return _read(memory, address, 4)
    if code == _LOAD_HALF:
        return sign_extend(_read(memory, address, 2), 16)
    if code == _LOAD_HALF_UNSIGNED:
        return _read(memory, address, 2)
    if code == _LOAD_BYTE:
        return sign_extend(_read(memory, address, 1), 8)
    if code == _LOAD_BYTE_UNSIGNED:
        return _read(memory, address, 1)
    if code in _STORES:
        size = 1 << mask(mode, 3)
        data = mask(value, 32).to_bytes(4, "little")[:size]
        for offset, byte in enumerate(data):
            memory[mask(address + offset, 32)] = byte
        return 0
    raise MemError(f"unsupported memory access issue={issue} mode={mode}")


class MemModule(Module):
    """Serves one memory access at a time with a latency of ``LAG`` cycles."""

    LAG = 1

    def __init__(self, memory: MutableMapping[int, int] | None = None) -> None:
        self.memory: MutableMapping[int, int] = {} if memory is None else memory
        self.addr = Wire(32)
        self.delta = Wire(32)
        self.value = Wire(32)
        self.issue = Wire(2)
        self.mode = Wire(3)
        self.fin = Register(1)
        self.result = Register(32)
        self._state = 0
        self._request = (0, 0, 0, 0)

    def _idle(self) -> None:
        self.fin.load(0)
        self.result.load(0)

    def work(self) -> None:
        issue = self.issue.value
        if issue:
            if self._state:
                raise MemError("memory issued while busy")
            self._state = 1
            location = mask(self.addr.value + self.delta.value, 32)
            self._request = (issue, self.mode.value, location, self.value.value)
            self._idle()
        elif self._state:
            if self._state == self.LAG:
                self._state = 0
                self.fin.load(1)
                self.result.load(perform_access(self.memory, *self._request))
            else:
                self._state += 1
                self._idle()
        else:
            self._idle()
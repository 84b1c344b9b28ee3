"""Single-issue control unit that fetches, decodes and retires RV32I instructions."""

from __future__ import annotations

import logging
from collections.abc import Callable

from rvsim.hardware import Module, Register, Wire, concat, field, mask, sign_extend

logger = logging.getLogger(__name__)

HALT_INSTRUCTION = 0x0FF00513
NUM_REGISTERS = 32
RETURN_REGISTER = 10

_MEM_LOAD = 1
_MEM_STORE = 2
_MODE_WORD = 2


class ControlError(Exception):
    """Raised when an instruction cannot be decoded."""


class Halt(Exception):
    """Raised when the program finishes; ``code`` is the low byte of ``a0``."""

    def __init__(self, code: int) -> None:
        super().__init__(code)
        self.code = code


class ControlModule(Module):
    """Drives the memory and ALU units, holding at most one instruction in flight."""

    ROB_CAPACITY = 1

    def __init__(self) -> None:
        self.mem_result = Wire(32)
        self.mem_done = Wire(1)
        self.alu_result = Wire(32)
        self.alu_done = Wire(1)

        self.mem_addr = Register(32)
        self.mem_delta = Register(32)
        self.mem_value = Register(32)
        self.mem_issue = Register(2)
        self.mem_mode = Register(3)
        self.alu_value1 = Register(32)
        self.alu_value2 = Register(32)
        self.alu_issue = Register(1)
        self.alu_mode = Register(4)

        self.reg = [Register(32) for _ in range(NUM_REGISTERS)]
        self.pc = Register(32)
        self.logic = Register(32)
        self.current_instruction = Register(32)
        self.default_jmp = Register(32)
        self.finished = Register(1)

        self.rob_size = 0
        self.mem_busy = False
        self.alu_busy = False
        self._loading_to = self.reg[0]
        self._alu_to = self.reg[0]
        self._decoders: dict[int, Callable[[int], None]] = {
            0x33: self._arithmetic,
            0x13: self._arithmetic_immediate,
            0x03: self._load,
            0x23: self._store,
            0x63: self._branch,
            0x6F: self._jal,
            0x67: self._jalr,
            0x17: self._auipc,
            0x37: self._lui,
        }

    def work(self) -> None:
        if self.finished:
            self.finished.load(0)
            self.commit()

        if self.mem_done:
            self.mem_busy = False
            result = self.mem_result.value
            if self._loading_to is not self.reg[0]:
                self._loading_to.load(result)
            if self._loading_to is self.current_instruction:
                self.parse_instruction(result)
            else:
                self.finished.load(1)

        if not self.mem_busy and self.rob_size < self.ROB_CAPACITY:
            self._loading_to = self.current_instruction
            self.mem_busy = True
            self.rob_size += 1
            self.mem_addr.load(int(self.pc))
            self.mem_delta.load(0)
            self.mem_issue.load(_MEM_LOAD)
            self.mem_mode.load(_MODE_WORD)

        if self.alu_done:
            self.alu_busy = False
            if int(self.current_instruction) == HALT_INSTRUCTION:
                raise Halt(int(self.reg[RETURN_REGISTER]) & 0xFF)
            result = self.alu_result.value
            if self._alu_to is not self.reg[0]:
                self._alu_to.load(result)
            if self._alu_to is self.logic and result:
                self.pc.load(int(self.default_jmp))
            self.finished.load(1)

        if self.mem_issue:
            self.mem_issue.load(0)
        if self.alu_issue:
            self.alu_issue.load(0)

    def commit(self) -> None:
        """Retire the instruction at the head of the reorder buffer."""
        logger.debug("commit")
        self.rob_size -= 1

    def parse_instruction(self, instruction: int) -> None:
        """Decode ``instruction`` and dispatch it to the proper unit."""
        instruction = mask(instruction, 32)
        logger.debug("decode %08x", instruction)
        decoder = self._decoders.get(field(instruction, 0, 7))
        if decoder is None:
            raise ControlError(f"unsupported instruction {instruction:#010x}")
        decoder(instruction)

    def _write(self, rd: int, value: int) -> None:
        if rd:
            self.reg[rd].load(value)

    def _advance(self) -> None:
        self.pc.load(int(self.pc) + 4)

    def _issue_alu(self, target: Register, mode: int, value1: int, value2: int) -> None:
        self.alu_busy = True
        self._alu_to = target
        self.alu_issue.load(1)
        self.alu_mode.load(mode)
        self.alu_value1.load(value1)
        self.alu_value2.load(value2)

    def _arithmetic(self, instruction: int) -> None:
        rd = field(instruction, 7, 5)
        funct3 = field(instruction, 12, 3)
        rs1 = field(instruction, 15, 5)
        rs2 = field(instruction, 20, 5)
        alternate = field(instruction, 30, 1)
        self._issue_alu(
            self.reg[rd],
            concat((funct3, 3), (alternate, 1)),
            int(self.reg[rs1]),
            int(self.reg[rs2]),
        )
        self._advance()

    def _arithmetic_immediate(self, instruction: int) -> None:
        rd = field(instruction, 7, 5)
        funct3 = field(instruction, 12, 3)
        rs1 = field(instruction, 15, 5)
        if funct3 in (1, 5):
            mode = concat((funct3, 3), (field(instruction, 30, 1), 1))
            operand = field(instruction, 20, 5)
        else:
            mode = concat((funct3, 3), (0, 1))
            operand = sign_extend(field(instruction, 20, 12), 12)
        self._issue_alu(self.reg[rd], mode, int(self.reg[rs1]), operand)
        self._advance()

    def _load(self, instruction: int) -> None:
        rd = field(instruction, 7, 5)
        funct3 = field(instruction, 12, 3)
        rs1 = field(instruction, 15, 5)
        self.mem_busy = True
        self._loading_to = self.reg[rd]
        self.mem_addr.load(int(self.reg[rs1]))
        self.mem_delta.load(sign_extend(field(instruction, 20, 12), 12))
        self.mem_issue.load(_MEM_LOAD)
        self.mem_mode.load(funct3)
        self._advance()

    def _store(self, instruction: int) -> None:
        funct3 = field(instruction, 12, 3)
        rs1 = field(instruction, 15, 5)
        rs2 = field(instruction, 20, 5)
        offset = concat((field(instruction, 25, 7), 7), (field(instruction, 7, 5), 5))
        self.mem_busy = True
        self._loading_to = self.reg[0]
        self.mem_addr.load(int(self.reg[rs1]))
        self.mem_delta.load(sign_extend(offset, 12))
        self.mem_value.load(int(self.reg[rs2]))
        self.mem_issue.load(_MEM_STORE)
        self.mem_mode.load(funct3)
        self._advance()

    def _branch(self, instruction: int) -> None:
        funct3 = field(instruction, 12, 3)
        rs1 = field(instruction, 15, 5)
        rs2 = field(instruction, 20, 5)
        offset = concat(
            (field(instruction, 31, 1), 1),
            (field(instruction, 7, 1), 1),
            (field(instruction, 25, 6), 6),
            (field(instruction, 8, 4), 4),
            (0, 1),
        )
        if funct3 in (0, 1):
            mode = concat((~funct3, 3), (1, 1))
        else:
            mode = concat((0, 1), (funct3, 3))
        self._issue_alu(self.logic, mode, int(self.reg[rs1]), int(self.reg[rs2]))
        self.default_jmp.load(int(self.pc) + sign_extend(offset, 13))
        self._advance()

    def _jal(self, instruction: int) -> None:
        rd = field(instruction, 7, 5)
        offset = concat(
            (field(instruction, 31, 1), 1),
            (field(instruction, 12, 8), 8),
            (field(instruction, 20, 1), 1),
            (field(instruction, 21, 10), 10),
            (0, 1),
        )
        self._write(rd, int(self.pc) + 4)
        self.pc.load(int(self.pc) + sign_extend(offset, 21))
        self.finished.load(1)

    def _jalr(self, instruction: int) -> None:
        rd = field(instruction, 7, 5)
        rs1 = field(instruction, 15, 5)
        offset = sign_extend(field(instruction, 20, 12), 12)
        self._write(rd, int(self.pc) + 4)
        logger.debug("jalr base %08x", int(self.reg[rs1]))
        self.pc.load((int(self.reg[rs1]) + offset) & 0xFFFFFFFE)
        self.finished.load(1)

    def _auipc(self, instruction: int) -> None:
        rd = field(instruction, 7, 5)
        upper = field(instruction, 12, 20) << 12
        self._write(rd, int(self.pc) + upper)
        self._advance()
        self.finished.load(1)

    def _lui(self, instruction: int) -> None:
        rd = field(instruction, 7, 5)
        self._write(rd, field(instruction, 12, 20) << 12)
        self._advance()
        self.finished.load(1)
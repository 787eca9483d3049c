from __future__ import annotations

from dataclasses import dataclass

from ..errors import InstructionTooShort


def sext8(value: int) -> int:
    value &= 0xFF
    return value - 0x100 if value & 0x80 else value


def sext16(value: int) -> int:
    value &= 0xFFFF
    return value - 0x10000 if value & 0x8000 else value


@dataclass(frozen=True)
class InstrWindow:
    """
    Random-access view over the bytes of one instruction.

    C166 operands are packed into nibbles of fixed byte positions rather than
    read sequentially, so every accessor takes the byte index it reads from.
    Accessors raise `InstructionTooShort` when the host handed over fewer bytes
    than the encoding needs.
    """

    pc: int
    data: bytes

    def require(self, count: int) -> None:
        if count > len(self.data):
            raise InstructionTooShort(count, len(self.data))

    def byte(self, index: int) -> int:
        self.require(index + 1)
        return self.data[index]

    def word(self, index: int) -> int:
        self.require(index + 2)
        return self.data[index] | (self.data[index + 1] << 8)

    def nibble_high(self, index: int) -> int:
        return self.byte(index) >> 4

    def nibble_low(self, index: int) -> int:
        return self.byte(index) & 0xF

    @property
    def opcode(self) -> int:
        return self.byte(0)

    # Named operand fields, by C166 manual field name.

    def reg_short(self) -> int:
        return self.byte(1)

    def mem(self) -> int:
        return self.word(2)

    def data16(self) -> int:
        return self.word(2)

    def caddr(self) -> int:
        return self.word(2)

    def data8(self) -> int:
        return self.byte(2)

    def data4(self) -> int:
        return self.nibble_high(1)

    def data3(self) -> int:
        return self.byte(1) & 0x7

    def rwi_index(self) -> int:
        return self.byte(1) & 0x3

    def rwi_selector(self) -> int:
        return (self.byte(1) & 0xC) >> 2

    def bit_position(self) -> int:
        # BSET/BCLR keep the bit number in the opcode's high nibble.
        return self.nibble_high(0)

    def branch_bit_position(self) -> int:
        return self.nibble_high(3)

    def rel8(self, index: int = 1) -> int:
        return sext8(self.byte(index))

    def irang2(self) -> int:
        # EXTx count field: 1..4 instructions
        return ((self.byte(1) >> 4) & 0x3) + 1

    def ext_subop(self) -> int:
        return self.byte(1) >> 6

    def trap7(self) -> int:
        return (self.byte(1) >> 1) & 0x7F


__all__ = ["InstrWindow", "sext8", "sext16"]

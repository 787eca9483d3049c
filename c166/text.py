"""Disassembly text tokens for decoded C166 instructions."""

from __future__ import annotations

from typing import List

from binja_test_mocks.tokens import (
    MemType,
    TAddr,
    TBegMem,
    TEndMem,
    TInstr,
    TInt,
    TReg,
    TSep,
    TText,
    Token,
)

from .constants import sfr_name
from .decoding.bind import (
    BitRef,
    BitWord,
    DecodedInstr,
    Imm,
    Indirect,
    Mem,
    Reg,
    RegShort,
    Target,
)
from .resolver import GprRef, Resolver, ShortRef

MNEMONIC_COLUMN = 7

# Operand keys printed as bare numbers rather than "#imm".
_BARE_NUMBERS = ("seg",)


def _hex(value: int) -> TInt:
    return TInt(f"{value:#x}")


class Renderer:
    """Builds token lists; reads the extension state but never changes it."""

    def __init__(self, resolver: Resolver) -> None:
        self.resolver = resolver

    def render(self, decoded: DecodedInstr, addr: int) -> List[Token]:
        tokens: List[Token] = [TInstr(decoded.mnemonic)]
        operands = [self._operand(decoded, key, addr) for key in decoded.display]
        if operands:
            tokens.append(TSep(" " * max(1, MNEMONIC_COLUMN - len(decoded.mnemonic))))
        for index, operand in enumerate(operands):
            if index:
                tokens.append(TSep(", "))
            tokens.extend(operand)
        return tokens

    def _ref(self, ref: ShortRef) -> List[Token]:
        if isinstance(ref, GprRef):
            return [TReg(ref.name)]
        if ref.name is not None:
            return [TReg(ref.name)]
        return [TAddr(ref.address)]

    def _operand(self, decoded: DecodedInstr, key: str, addr: int) -> List[Token]:
        if key == "cond":
            assert decoded.cond is not None
            return [TText(decoded.cond.text)]

        op = decoded.operand(key)
        if isinstance(op, Reg):
            return [TReg(op.name)]
        if isinstance(op, RegShort):
            return self._ref(self.resolver.register_short(addr, op.code, op.width))
        if isinstance(op, Imm):
            if key in _BARE_NUMBERS:
                return [_hex(op.value)]
            return [TText("#"), _hex(op.value)]
        if isinstance(op, Mem):
            physical = self.resolver.memory_operand(addr, op.raw)
            name = sfr_name(physical)
            return [TReg(name)] if name is not None else [TAddr(physical)]
        if isinstance(op, Indirect):
            return self._indirect(op)
        if isinstance(op, BitRef):
            word = self._ref(self.resolver.bit_address(addr, op.bitoff))
            return word + [TText("."), TInt(str(op.pos))]
        if isinstance(op, BitWord):
            return self._ref(self.resolver.bit_address(addr, op.bitoff))
        if isinstance(op, Target):
            return [TAddr(op.address)]
        raise TypeError(f"Cannot render operand {key}={op!r}")

    def _indirect(self, op: Indirect) -> List[Token]:
        tokens: List[Token] = [TBegMem(MemType.EXTERNAL)]
        if op.mode == "pre_dec":
            tokens.append(TSep("-"))
        tokens.append(TReg(op.base))
        if op.mode == "post_inc":
            tokens.append(TSep("+"))
        elif op.mode == "disp":
            tokens.extend([TSep("+"), TText("#"), _hex(op.disp)])
        tokens.append(TEndMem(MemType.EXTERNAL))
        return tokens


__all__ = ["Renderer", "MNEMONIC_COLUMN"]

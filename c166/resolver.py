"""Operand address resolution.

Turns the raw register-short, bitoff and mem fields of a decoded instruction
into concrete registers or physical addresses, taking the extension state at
the instruction's address into account.  Indirect operands depend on a
register's run-time value, so those are built as IL expressions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from .constants import (
    BIT_ESFR_BASE,
    BIT_RAM_BASE,
    BIT_SFR_BASE,
    CONSTANT_SFRS,
    DPP0,
    ESFR_BASE,
    SFR_BASE,
    SHORT_GPR_THRESHOLD,
    reg_name,
    sfr_name,
)
from .state import ExtensionStateStore, ExtKind

PAGE_OFFSET_MASK = 0x3FFF
BIT_RAM_LIMIT = 0x7F


@dataclass(frozen=True)
class GprRef:
    """A register of the current bank."""

    name: str


@dataclass(frozen=True)
class SfrRef:
    """A memory mapped word: SFR, extended SFR or bit-addressable RAM."""

    address: int

    @property
    def name(self) -> Optional[str]:
        return sfr_name(self.address)

    @property
    def constant(self) -> Optional[int]:
        return CONSTANT_SFRS.get(self.address)


ShortRef = Union[GprRef, SfrRef]


class Resolver:
    def __init__(self, store: ExtensionStateStore) -> None:
        self.store = store

    def register_short(self, addr: int, code: int, width: int = 2) -> ShortRef:
        if code > SHORT_GPR_THRESHOLD:
            return GprRef(reg_name(code & 0xF, width))
        base = ESFR_BASE if self.store.query_register_bank(addr) else SFR_BASE
        return SfrRef(base + 2 * code)

    def bit_address(self, addr: int, bitoff: int) -> ShortRef:
        if bitoff <= BIT_RAM_LIMIT:
            return SfrRef(BIT_RAM_BASE + 2 * bitoff)
        if bitoff <= SHORT_GPR_THRESHOLD:
            base = BIT_ESFR_BASE if self.store.query_register_bank(addr) else BIT_SFR_BASE
            return SfrRef(base + 2 * (bitoff & 0x7F))
        return GprRef(reg_name(bitoff & 0xF, 2))

    def memory_operand(self, addr: int, mem16: int) -> int:
        """Physical address of a direct ``mem`` operand: page, segment, custom DPP, default DPP."""
        state = self.store.get(addr)
        if state.has(ExtKind.PAGE):
            return (state.page10 << 14) | (mem16 & PAGE_OFFSET_MASK)
        if state.has(ExtKind.SEGMENT):
            return (state.segment8 << 16) | mem16
        if state.has(ExtKind.CUSTOM_DPP):
            dpp = state.dpp
        else:
            dpp = self.store.default_dpp()
        return (dpp[mem16 >> 14] << 14) | (mem16 & PAGE_OFFSET_MASK)

    # -- IL builders --------------------------------------------------------

    def indirect(self, il, addr: int, reg: str, disp16: Optional[int] = None):
        """Physical address expression for ``[reg]`` or ``[reg + #disp16]``."""
        base = il.reg(2, reg)
        if disp16:
            base = il.add(2, base, il.const(2, disp16))

        # Unlike direct mem operands, a segment override is checked before a page one.
        state = self.store.get(addr)
        if state.has(ExtKind.SEGMENT):
            return il.or_expr(3, il.const(3, state.segment8 << 16), base)
        if state.has(ExtKind.PAGE):
            return il.or_expr(
                3,
                il.const(3, state.page10 << 14),
                il.and_expr(2, base, il.const(2, PAGE_OFFSET_MASK)),
            )

        # DPPx is chosen at run time by the top two bits of the pointer.
        slot = il.logical_shift_right(2, base, il.const(1, 14))
        dpp_addr = il.add(
            3, il.const_pointer(3, DPP0), il.shift_left(2, slot, il.const(1, 1))
        )
        return il.or_expr(
            3,
            il.shift_left(3, il.load(2, dpp_addr), il.const(1, 14)),
            il.and_expr(2, base, il.const(2, PAGE_OFFSET_MASK)),
        )

    def read_ref(self, il, ref: ShortRef, width: int):
        if isinstance(ref, GprRef):
            return il.reg(width, ref.name)
        if ref.constant is not None:
            return il.const(width, ref.constant & ((1 << (8 * width)) - 1))
        return il.load(width, il.const_pointer(3, ref.address))

    def write_ref(self, il, ref: ShortRef, width: int, value, flags=None):
        if isinstance(ref, GprRef):
            if flags is not None:
                return il.set_reg(width, ref.name, value, flags)
            return il.set_reg(width, ref.name, value)
        if ref.constant is not None:
            # Writes to ZEROS/ONES are discarded by the hardware.
            return il.nop()
        if flags is not None:
            return il.store(width, il.const_pointer(3, ref.address), value, flags)
        return il.store(width, il.const_pointer(3, ref.address), value)

    def read_short(self, il, addr: int, code: int, width: int):
        return self.read_ref(il, self.register_short(addr, code, width), width)

    def write_short(self, il, addr: int, code: int, width: int, value, flags=None):
        return self.write_ref(
            il, self.register_short(addr, code, width), width, value, flags
        )


__all__ = ["GprRef", "SfrRef", "ShortRef", "Resolver"]

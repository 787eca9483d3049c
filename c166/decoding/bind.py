from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Literal, Optional, Tuple

from ..constants import Cond, FlagPolicy

OperandWidth = Literal[1, 2]
IndirectMode = Literal["plain", "post_inc", "pre_dec", "disp"]


@dataclass(frozen=True, slots=True)
class Reg:
    """Register named directly by a 4-bit field."""

    name: str
    width: OperandWidth


@dataclass(frozen=True, slots=True)
class RegShort:
    """8-bit register-short address; GPR or SFR depending on context."""

    code: int
    width: OperandWidth

    def __post_init__(self) -> None:
        if not 0 <= self.code <= 0xFF:
            raise ValueError(f"RegShort out of range: {self.code:#x}")


@dataclass(frozen=True, slots=True)
class Imm:
    value: int
    width: OperandWidth

    def __post_init__(self) -> None:
        if not 0 <= self.value <= 0xFFFF:
            raise ValueError(f"Imm out of range: {self.value:#x}")


@dataclass(frozen=True, slots=True)
class Mem:
    """Raw 16-bit memory operand; the physical address depends on DPP/EXT state."""

    raw: int
    width: OperandWidth

    def __post_init__(self) -> None:
        if not 0 <= self.raw <= 0xFFFF:
            raise ValueError(f"Mem out of range: {self.raw:#x}")

    @property
    def dpp_slot(self) -> int:
        return self.raw >> 14


@dataclass(frozen=True, slots=True)
class Indirect:
    base: str
    mode: IndirectMode
    width: OperandWidth
    disp: int = 0


@dataclass(frozen=True, slots=True)
class BitRef:
    bitoff: int
    pos: int

    def __post_init__(self) -> None:
        if not 0 <= self.pos <= 0xF:
            raise ValueError(f"Bit position out of range: {self.pos}")


@dataclass(frozen=True, slots=True)
class BitWord:
    """Bit-addressable word named by an 8-bit bitoff field (BFLDH/BFLDL)."""

    bitoff: int


@dataclass(frozen=True, slots=True)
class Target:
    address: int


@dataclass(frozen=True, slots=True)
class ExtOverride:
    """Decoded operands of an EXTP/EXTS/EXTR/ATOMIC instruction."""

    kind: Literal["atomic", "extr", "exts", "extp", "extsr", "extpr"]
    count: int
    value: Optional[int] = None
    reg: Optional[str] = None

    @property
    def has_segment(self) -> bool:
        return self.kind in ("exts", "extsr")

    @property
    def has_page(self) -> bool:
        return self.kind in ("extp", "extpr")

    @property
    def has_register_bank(self) -> bool:
        return self.kind in ("extr", "extsr", "extpr")


@dataclass(frozen=True, slots=True)
class DecodedInstr:
    opcode: int
    mnemonic: str
    family: str
    length: int
    binds: Dict[str, object] = field(default_factory=dict)
    # Operand keys in display order.
    display: Tuple[str, ...] = ()
    flags: Optional[FlagPolicy] = None
    cond: Optional[Cond] = None
    # Family specific selector, e.g. the ALU operation or shift kind.
    operation: Optional[str] = None

    def operand(self, key: str) -> object:
        return self.binds[key]


__all__ = [
    "OperandWidth",
    "IndirectMode",
    "Reg",
    "RegShort",
    "Imm",
    "Mem",
    "Indirect",
    "BitRef",
    "BitWord",
    "Target",
    "ExtOverride",
    "DecodedInstr",
]

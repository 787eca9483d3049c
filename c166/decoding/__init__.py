"""
Typed decoding helpers for C166 instruction bytes.

`decode_map` turns a 2- or 4-byte window into a `DecodedInstr` carrying typed
operand binds; the classifier, lifter and renderer all consume that one
decoded form so they can never disagree about an instruction's length.
"""

from .bind import (  # noqa: F401
    BitRef,
    BitWord,
    DecodedInstr,
    ExtOverride,
    Imm,
    Indirect,
    Mem,
    Reg,
    RegShort,
    Target,
)
from .reader import InstrWindow  # noqa: F401
from . import decode_map  # noqa: F401

__all__ = [
    "BitRef",
    "BitWord",
    "DecodedInstr",
    "ExtOverride",
    "Imm",
    "Indirect",
    "Mem",
    "Reg",
    "RegShort",
    "Target",
    "InstrWindow",
    "decode_map",
]

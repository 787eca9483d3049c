"""Decode and lift failures.

Every error raised by the core describes a single instruction (or a single
persisted blob).  The architecture surface converts them into "no result" so
one bad instruction never aborts analysis of the surrounding function.
"""

from __future__ import annotations

from typing import Optional


class C166Error(Exception):
    pass


class InstructionTooShort(C166Error, ValueError):
    def __init__(self, need: int, have: int) -> None:
        super().__init__(f"Insufficient bytes: need {need}, have {have}")
        self.need = need
        self.have = have


class UnknownOpcode(C166Error):
    def __init__(self, opcode: int, addr: Optional[int] = None) -> None:
        where = f" at {addr:#x}" if addr is not None else ""
        super().__init__(f"Unknown opcode {opcode:#04x}{where}")
        self.opcode = opcode
        self.addr = addr


class UnsupportedVariant(C166Error):
    """The opcode is known, but this particular form is not modelled."""

    def __init__(self, mnemonic: str, addr: Optional[int], reason: str) -> None:
        where = f" at {addr:#x}" if addr is not None else ""
        super().__init__(f"Unsupported {mnemonic}{where}: {reason}")
        self.mnemonic = mnemonic
        self.addr = addr
        self.reason = reason


class MalformedPersistedState(C166Error):
    def __init__(self, size: int, record_size: int) -> None:
        super().__init__(
            f"State blob of {size} bytes is not a multiple of the "
            f"{record_size}-byte record size"
        )
        self.size = size
        self.record_size = record_size


__all__ = [
    "C166Error",
    "InstructionTooShort",
    "UnknownOpcode",
    "UnsupportedVariant",
    "MalformedPersistedState",
]

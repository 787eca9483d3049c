"""Instruction length and control-flow shape, as the host's analysis needs them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from binja_test_mocks import binja_api  # noqa: F401  # pyright: ignore
from binaryninja.enums import BranchType

from ..constants import Cond
from .bind import DecodedInstr, Target
from .decode_map import decode_opcode


@dataclass(frozen=True)
class Fallthrough:
    pass


@dataclass(frozen=True)
class Unconditional:
    target: int


@dataclass(frozen=True)
class Conditional:
    target: int
    fallthrough: int
    # Conditional CALLA is reported as a branch pair as well.
    call: bool = False


@dataclass(frozen=True)
class Call:
    target: int


@dataclass(frozen=True)
class Return:
    pass


@dataclass(frozen=True)
class IndirectUnresolved:
    call: bool = False


@dataclass(frozen=True)
class NoReturn:
    pass


@dataclass(frozen=True)
class Trap:
    target: int


BranchShape = Union[
    Fallthrough,
    Unconditional,
    Conditional,
    Call,
    Return,
    IndirectUnresolved,
    NoReturn,
    Trap,
]


@dataclass(frozen=True)
class Classification:
    length: int
    shape: BranchShape

    def apply_to(self, info) -> None:
        """Fill a host ``InstructionInfo`` (length plus branch list)."""
        info.length = self.length
        shape = self.shape
        if isinstance(shape, Unconditional):
            info.add_branch(BranchType.UnconditionalBranch, shape.target)
        elif isinstance(shape, Conditional):
            info.add_branch(BranchType.TrueBranch, shape.target)
            info.add_branch(BranchType.FalseBranch, shape.fallthrough)
        elif isinstance(shape, (Call, Trap)):
            info.add_branch(BranchType.CallDestination, shape.target)
        elif isinstance(shape, Return):
            info.add_branch(BranchType.FunctionReturn)
        elif isinstance(shape, IndirectUnresolved):
            info.add_branch(BranchType.UnresolvedBranch)
        elif isinstance(shape, NoReturn):
            info.add_branch(BranchType.ExceptionBranch)


def shape_of(decoded: DecodedInstr, addr: int) -> BranchShape:
    family = decoded.family
    fallthrough = addr + decoded.length
    target = decoded.binds.get("target")

    if family == "jump":
        if decoded.operation == "indirect":
            return IndirectUnresolved()
        assert isinstance(target, Target)
        if decoded.cond in (None, Cond.UC):
            return Unconditional(target.address)
        return Conditional(target.address, fallthrough)
    if family == "bitjump":
        assert isinstance(target, Target)
        return Conditional(target.address, fallthrough)
    if family == "call":
        if decoded.operation == "indirect":
            return IndirectUnresolved(call=True)
        assert isinstance(target, Target)
        if decoded.cond in (None, Cond.UC):
            return Call(target.address)
        return Conditional(target.address, fallthrough, call=True)
    if family == "ret":
        return Return()
    if family == "trap":
        assert isinstance(target, Target)
        return Trap(target.address)
    if family == "system" and decoded.operation == "noreturn":
        return NoReturn()
    return Fallthrough()


def classify(data: bytes, addr: int) -> Classification:
    """Length and branch shape of the instruction at ``addr``.

    Shares the opcode table with the lifter, so both always agree on the
    consumed length. Decoding errors propagate unchanged.
    """
    decoded = decode_opcode(data, addr)
    return Classification(decoded.length, shape_of(decoded, addr))


__all__ = [
    "Fallthrough",
    "Unconditional",
    "Conditional",
    "Call",
    "Return",
    "IndirectUnresolved",
    "NoReturn",
    "Trap",
    "BranchShape",
    "Classification",
    "classify",
    "shape_of",
]

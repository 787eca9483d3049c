"""Shared fixtures: a recording LLIL function, stores, resolvers and lifters."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, List, Tuple

import pytest

from binja_test_mocks import binja_api  # noqa: F401  # pyright: ignore
from binja_test_mocks.mock_llil import (
    MockFlag,
    MockGoto,
    MockLLIL,
    MockLowLevelILFunction,
    mreg,
)

import binaryninja  # noqa: E402  # the binja_test_mocks stand-in

# binja_test_mocks' PluginCommand lacks register_for_range, which the plugin's
# package __init__ (imported by pytest as the rootdir package) calls.
if not hasattr(binaryninja.PluginCommand, "register_for_range"):
    binaryninja.PluginCommand.register_for_range = staticmethod(  # type: ignore[attr-defined]
        lambda *_args, **_kwargs: None
    )

from c166.config import C166_TC, C166_TVX, C166_V2, C166Config
from c166.lift import Lifter
from c166.resolver import Resolver
from c166.state import ExtensionStateStore


class RecordingIL(MockLowLevelILFunction):
    """`MockLowLevelILFunction` with every operation the lifter emits.

    Each builder returns a `MockLLIL` named ``OP.size{flags}`` so the tests do
    not depend on which LLIL helpers the installed Binary Ninja API offers.
    """

    def _op(self, name: str, size, *ops: Any, flags=None) -> MockLLIL:
        kwargs = {"size": size}
        if flags is not None:
            kwargs["flags"] = flags
        return self.expr(SimpleNamespace(name=f"LLIL_{name}"), *ops, **kwargs)

    @staticmethod
    def _reg(reg: Any):
        if isinstance(reg, str):
            return mreg(reg)
        return mreg(f"TEMP{int(reg) & 0x7FFFFFFF}")

    @staticmethod
    def _flag(flag: Any):
        return MockFlag(flag) if isinstance(flag, str) else flag

    def reg(self, size, reg):
        return self._op("REG", size, self._reg(reg))

    def set_reg(self, size, reg, value, flags=None):
        return self._op("SET_REG", size, self._reg(reg), value, flags=flags)

    def const(self, size, value):
        return self._op("CONST", size, value)

    def const_pointer(self, size, value):
        return self._op("CONST_PTR", size, value)

    def load(self, size, addr):
        return self._op("LOAD", size, addr)

    def store(self, size, addr, value, flags=None):
        return self._op("STORE", size, addr, value, flags=flags)

    def flag(self, flag):
        return self._op("FLAG", None, self._flag(flag))

    def set_flag(self, flag, value):
        return self._op("SET_FLAG", None, self._flag(flag), value)

    def add(self, size, a, b, flags=None):
        return self._op("ADD", size, a, b, flags=flags)

    def add_carry(self, size, a, b, carry, flags=None):
        return self._op("ADC", size, a, b, carry, flags=flags)

    def sub(self, size, a, b, flags=None):
        return self._op("SUB", size, a, b, flags=flags)

    def sub_borrow(self, size, a, b, carry, flags=None):
        return self._op("SBB", size, a, b, carry, flags=flags)

    def and_expr(self, size, a, b, flags=None):
        return self._op("AND", size, a, b, flags=flags)

    def or_expr(self, size, a, b, flags=None):
        return self._op("OR", size, a, b, flags=flags)

    def xor_expr(self, size, a, b, flags=None):
        return self._op("XOR", size, a, b, flags=flags)

    def not_expr(self, size, a, flags=None):
        return self._op("NOT", size, a, flags=flags)

    def neg_expr(self, size, a, flags=None):
        return self._op("NEG", size, a, flags=flags)

    def shift_left(self, size, a, b, flags=None):
        return self._op("LSL", size, a, b, flags=flags)

    def logical_shift_right(self, size, a, b, flags=None):
        return self._op("LSR", size, a, b, flags=flags)

    def arith_shift_right(self, size, a, b, flags=None):
        return self._op("ASR", size, a, b, flags=flags)

    def rotate_left(self, size, a, b, flags=None):
        return self._op("ROL", size, a, b, flags=flags)

    def rotate_right(self, size, a, b, flags=None):
        return self._op("ROR", size, a, b, flags=flags)

    def mult_double_prec_signed(self, size, a, b, flags=None):
        return self._op("MULS_DP", size, a, b, flags=flags)

    def mult_double_prec_unsigned(self, size, a, b, flags=None):
        return self._op("MULU_DP", size, a, b, flags=flags)

    def div_signed(self, size, a, b, flags=None):
        return self._op("DIVS", size, a, b, flags=flags)

    def div_unsigned(self, size, a, b, flags=None):
        return self._op("DIVU", size, a, b, flags=flags)

    def mod_signed(self, size, a, b, flags=None):
        return self._op("MODS", size, a, b, flags=flags)

    def mod_unsigned(self, size, a, b, flags=None):
        return self._op("MODU", size, a, b, flags=flags)

    def div_double_prec_signed(self, size, a, b, flags=None):
        return self._op("DIVS_DP", size, a, b, flags=flags)

    def div_double_prec_unsigned(self, size, a, b, flags=None):
        return self._op("DIVU_DP", size, a, b, flags=flags)

    def mod_double_prec_signed(self, size, a, b, flags=None):
        return self._op("MODS_DP", size, a, b, flags=flags)

    def mod_double_prec_unsigned(self, size, a, b, flags=None):
        return self._op("MODU_DP", size, a, b, flags=flags)

    def sign_extend(self, size, a, flags=None):
        return self._op("SX", size, a, flags=flags)

    def zero_extend(self, size, a, flags=None):
        return self._op("ZX", size, a, flags=flags)

    def low_part(self, size, a, flags=None):
        return self._op("LOW_PART", size, a, flags=flags)

    def compare_equal(self, size, a, b):
        return self._op("CMP_E", size, a, b)

    def push(self, size, value):
        return self._op("PUSH", size, value)

    def pop(self, size):
        return self._op("POP", size)

    def jump(self, dest):
        return self._op("JUMP", None, dest)

    def call(self, dest):
        return self._op("CALL", None, dest)

    def ret(self, dest):
        return self._op("RET", None, dest)

    def no_ret(self):
        return self._op("NORET", None)

    def nop(self):
        return self._op("NOP", None)

    def unimplemented(self):
        return self._op("UNIMPL", None)

    def ops(self) -> List[str]:
        """Top-level operation names with size and flag suffixes."""
        # Older mocks build MockGoto without an op name.
        return [
            "GOTO" if isinstance(il, MockGoto) else il.op for il in self.ils
        ]


class InfoRecorder:
    """Stands in for `binaryninja.InstructionInfo`."""

    def __init__(self) -> None:
        self.length = 0
        self.branches: List[Tuple[str, Any]] = []

    def add_branch(self, branch_type, target=None, arch=None) -> None:
        self.branches.append((branch_type.name, target))


@pytest.fixture
def il() -> RecordingIL:
    return RecordingIL()


@pytest.fixture
def info() -> InfoRecorder:
    return InfoRecorder()


@pytest.fixture
def store() -> ExtensionStateStore:
    # Reset DPPs as the C166 boots: DPP0..DPP3 = 0, 1, 2, 3.
    return ExtensionStateStore(default_dpp=(0, 1, 2, 3))


@pytest.fixture
def resolver(store: ExtensionStateStore) -> Resolver:
    return Resolver(store)


@pytest.fixture
def config() -> C166Config:
    return C166Config(default_dpp=(0, 1, 2, 3), trace_lift=False)


@pytest.fixture
def lifter(resolver: Resolver, config: C166Config) -> Lifter:
    return Lifter(resolver, C166_TC, config)


@pytest.fixture
def lifter_tvx(resolver: Resolver, config: C166Config) -> Lifter:
    return Lifter(resolver, C166_TVX, config)


@pytest.fixture
def lifter_v2(resolver: Resolver, config: C166Config) -> Lifter:
    return Lifter(resolver, C166_V2, config)

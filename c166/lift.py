"""LowLevelIL emitters for decoded C166 instructions.

One emitter per instruction family; `Lifter.lift` dispatches on
`DecodedInstr.family`.  Every non-extension instruction also carries a still
running EXTx override forward to the next instruction slot.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Dict, Optional, Tuple

from binja_test_mocks import binja_api  # noqa: F401  # pyright: ignore
from binaryninja.lowlevelil import LLIL_TEMP, LowLevelILLabel  # type: ignore

from .config import C166Config, CpuVariant, load_c166_config
from .constants import (
    CSP,
    FLAG_C,
    FLAG_E,
    FLAG_N,
    FLAG_V,
    FLAG_Z,
    MDH,
    MDL,
    PSW,
    SEGMENT_MASK,
    Cond,
)
from .decoding.bind import (
    BitRef,
    DecodedInstr,
    ExtOverride,
    Imm,
    Indirect,
    Mem,
    Reg,
    RegShort,
    Target,
)
from .resolver import Resolver, ShortRef

logger = logging.getLogger(__name__)


class AluOp(enum.Enum):
    ADD = "add"
    ADDC = "addc"
    SUB = "sub"
    SUBC = "subc"
    CMP = "cmp"
    AND = "and"
    OR = "or"
    XOR = "xor"


# (flag expression builder, value the expression must equal for the branch)
_CONDITIONS: Dict[Cond, Tuple[Callable, int]] = {
    Cond.Z: (lambda il: il.flag(FLAG_Z), 1),
    Cond.NZ: (lambda il: il.flag(FLAG_Z), 0),
    Cond.V: (lambda il: il.flag(FLAG_V), 1),
    Cond.NV: (lambda il: il.flag(FLAG_V), 0),
    Cond.N: (lambda il: il.flag(FLAG_N), 1),
    Cond.NN: (lambda il: il.flag(FLAG_N), 0),
    Cond.ULT: (lambda il: il.flag(FLAG_C), 1),
    Cond.UGE: (lambda il: il.flag(FLAG_C), 0),
    Cond.SLT: (lambda il: il.xor_expr(1, il.flag(FLAG_N), il.flag(FLAG_V)), 1),
    Cond.SGE: (lambda il: il.xor_expr(1, il.flag(FLAG_N), il.flag(FLAG_V)), 0),
    Cond.SLE: (
        lambda il: il.or_expr(
            1, il.xor_expr(1, il.flag(FLAG_N), il.flag(FLAG_V)), il.flag(FLAG_Z)
        ),
        1,
    ),
    Cond.SGT: (
        lambda il: il.or_expr(
            1, il.xor_expr(1, il.flag(FLAG_N), il.flag(FLAG_V)), il.flag(FLAG_Z)
        ),
        0,
    ),
    Cond.ULE: (lambda il: il.or_expr(1, il.flag(FLAG_C), il.flag(FLAG_Z)), 1),
    Cond.UGT: (lambda il: il.or_expr(1, il.flag(FLAG_C), il.flag(FLAG_Z)), 0),
    Cond.NET: (lambda il: il.or_expr(1, il.flag(FLAG_Z), il.flag(FLAG_E)), 0),
}


def condition_expr(il, cond: Cond):
    build, expected = _CONDITIONS[cond]
    return il.compare_equal(1, build(il), il.const(1, expected))


class Lifter:
    def __init__(
        self,
        resolver: Resolver,
        variant: CpuVariant,
        config: Optional[C166Config] = None,
    ) -> None:
        self.resolver = resolver
        self.store = resolver.store
        self.variant = variant
        self.config = config or load_c166_config()

    @property
    def stack_pointer(self) -> str:
        return self.variant.stack_pointer

    def lift(self, il, decoded: DecodedInstr, addr: int) -> int:
        if self.config.trace_lift:
            logger.debug("lift %#08x %s %r", addr, decoded.mnemonic, decoded.binds)
        emitter = getattr(self, _EMITTERS[decoded.family])
        emitter(il, decoded, addr)
        if decoded.family != "ext":
            self.store.propagate(addr, decoded.length)
        return decoded.length

    # -- operand access -----------------------------------------------------

    def _address(self, il, addr: int, op: Indirect):
        disp = op.disp if op.mode == "disp" else None
        return self.resolver.indirect(il, addr, op.base, disp)

    def read(self, il, addr: int, op: object):
        if isinstance(op, Reg):
            return il.reg(op.width, op.name)
        if isinstance(op, RegShort):
            return self.resolver.read_short(il, addr, op.code, op.width)
        if isinstance(op, Imm):
            return il.const(op.width, op.value)
        if isinstance(op, Mem):
            physical = self.resolver.memory_operand(addr, op.raw)
            return il.load(op.width, il.const_pointer(3, physical))
        if isinstance(op, Indirect):
            return il.load(op.width, self._address(il, addr, op))
        raise TypeError(f"Cannot read operand {op!r}")

    def write(self, il, addr: int, op: object, value, flags=None):
        if isinstance(op, Reg):
            if flags is not None:
                return il.set_reg(op.width, op.name, value, flags)
            return il.set_reg(op.width, op.name, value)
        if isinstance(op, RegShort):
            return self.resolver.write_short(il, addr, op.code, op.width, value, flags)
        if isinstance(op, Mem):
            dest = il.const_pointer(3, self.resolver.memory_operand(addr, op.raw))
        elif isinstance(op, Indirect):
            dest = self._address(il, addr, op)
        else:
            raise TypeError(f"Cannot write operand {op!r}")
        if flags is not None:
            return il.store(op.width, dest, value, flags)
        return il.store(op.width, dest, value)

    def _step(self, il, op: object, mode: str) -> None:
        if not isinstance(op, Indirect) or op.mode != mode:
            return
        reg = il.reg(2, op.base)
        amount = il.const(2, op.width)
        if mode == "pre_dec":
            il.append(il.set_reg(2, op.base, il.sub(2, reg, amount)))
        else:
            il.append(il.set_reg(2, op.base, il.add(2, reg, amount)))

    def _is_stack_slot(self, op: object, mode: str) -> bool:
        return (
            isinstance(op, Indirect)
            and op.mode == mode
            and op.width == 2
            and op.base == self.stack_pointer
        )

    def _md_read(self, il, sfr: int):
        return il.load(2, il.const_pointer(3, sfr))

    def _md_write(self, il, sfr: int, value) -> None:
        il.append(il.store(2, il.const_pointer(3, sfr), value))

    # -- arithmetic ---------------------------------------------------------

    def _alu_expr(self, il, op: AluOp, width: int, lhs, rhs, flags):
        if op is AluOp.ADD:
            return il.add(width, lhs, rhs, flags=flags)
        if op is AluOp.ADDC:
            return il.add_carry(width, lhs, rhs, il.flag(FLAG_C), flags=flags)
        if op in (AluOp.SUB, AluOp.CMP):
            return il.sub(width, lhs, rhs, flags=flags)
        if op is AluOp.SUBC:
            return il.sub_borrow(width, lhs, rhs, il.flag(FLAG_C), flags=flags)
        if op is AluOp.AND:
            return il.and_expr(width, lhs, rhs, flags=flags)
        if op is AluOp.OR:
            return il.or_expr(width, lhs, rhs, flags=flags)
        return il.xor_expr(width, lhs, rhs, flags=flags)

    def _lift_alu(self, il, di: DecodedInstr, addr: int) -> None:
        dst, src = di.operand("dst"), di.operand("src")
        op = AluOp(di.operation)
        width = dst.width  # type: ignore[attr-defined]
        result = self._alu_expr(
            il, op, width, self.read(il, addr, dst), self.read(il, addr, src), di.flags
        )
        if op is AluOp.CMP:
            il.append(result)
        else:
            il.append(self.write(il, addr, dst, result))
        self._step(il, src, "post_inc")

    def _lift_cmp_step(self, il, di: DecodedInstr, addr: int) -> None:
        dst, src = di.operand("dst"), di.operand("src")
        assert isinstance(dst, Reg)
        il.append(
            il.sub(2, il.reg(2, dst.name), self.read(il, addr, src), flags=di.flags)
        )
        step = int(di.operation or 0)
        if step > 0:
            adjusted = il.add(2, il.reg(2, dst.name), il.const(2, step))
        else:
            adjusted = il.sub(2, il.reg(2, dst.name), il.const(2, -step))
        il.append(il.set_reg(2, dst.name, adjusted))

    def _lift_unary(self, il, di: DecodedInstr, addr: int) -> None:
        dst = di.operand("dst")
        assert isinstance(dst, Reg)
        value = il.reg(dst.width, dst.name)
        if di.operation == "neg":
            result = il.neg_expr(dst.width, value, flags=di.flags)
        else:
            result = il.not_expr(dst.width, value, flags=di.flags)
        il.append(il.set_reg(dst.width, dst.name, result))

    def _lift_mul(self, il, di: DecodedInstr, addr: int) -> None:
        lhs, rhs = di.operand("dst"), di.operand("src")
        assert isinstance(lhs, Reg) and isinstance(rhs, Reg)
        if di.operation == "signed":
            product = il.mult_double_prec_signed(
                4, il.reg(2, lhs.name), il.reg(2, rhs.name), flags=di.flags
            )
        else:
            product = il.mult_double_prec_unsigned(
                4, il.reg(2, lhs.name), il.reg(2, rhs.name), flags=di.flags
            )
        il.append(il.set_reg(4, LLIL_TEMP(0), product))
        self._md_write(il, MDL, il.low_part(2, il.reg(4, LLIL_TEMP(0))))
        self._md_write(
            il,
            MDH,
            il.low_part(
                2, il.logical_shift_right(4, il.reg(4, LLIL_TEMP(0)), il.const(1, 16))
            ),
        )

    def _md_dividend(self, il):
        return il.or_expr(
            4,
            il.shift_left(4, il.zero_extend(4, self._md_read(il, MDH)), il.const(1, 16)),
            il.zero_extend(4, self._md_read(il, MDL)),
        )

    def _lift_div(self, il, di: DecodedInstr, addr: int) -> None:
        src = di.operand("src")
        assert isinstance(src, Reg)
        kind = di.operation
        divisor = il.reg(2, src.name)
        if kind == "div":
            quotient = il.div_signed(2, self._md_read(il, MDL), divisor, flags=di.flags)
            remainder = il.mod_signed(2, self._md_read(il, MDL), il.reg(2, src.name))
        elif kind == "divu":
            quotient = il.div_unsigned(2, self._md_read(il, MDL), divisor, flags=di.flags)
            remainder = il.mod_unsigned(2, self._md_read(il, MDL), il.reg(2, src.name))
        elif kind == "divl":
            quotient = il.div_double_prec_signed(
                2, self._md_dividend(il), divisor, flags=di.flags
            )
            remainder = il.mod_double_prec_signed(
                2, self._md_dividend(il), il.reg(2, src.name)
            )
        else:
            quotient = il.div_double_prec_unsigned(
                2, self._md_dividend(il), divisor, flags=di.flags
            )
            remainder = il.mod_double_prec_unsigned(
                2, self._md_dividend(il), il.reg(2, src.name)
            )
        # Both results read the old MDL/MDH, so compute them before storing.
        il.append(il.set_reg(2, LLIL_TEMP(0), quotient))
        il.append(il.set_reg(2, LLIL_TEMP(1), remainder))
        self._md_write(il, MDL, il.reg(2, LLIL_TEMP(0)))
        self._md_write(il, MDH, il.reg(2, LLIL_TEMP(1)))

    def _lift_shift(self, il, di: DecodedInstr, addr: int) -> None:
        dst, count = di.operand("dst"), di.operand("src")
        assert isinstance(dst, Reg)
        if isinstance(count, Imm):
            amount = il.const(1, count.value)
        else:
            amount = il.and_expr(2, self.read(il, addr, count), il.const(2, 0xF))
        value = il.reg(2, dst.name)
        kind = di.operation
        if kind == "shl":
            result = il.shift_left(2, value, amount, flags=di.flags)
        elif kind == "shr":
            result = il.logical_shift_right(2, value, amount, flags=di.flags)
        elif kind == "ashr":
            result = il.arith_shift_right(2, value, amount, flags=di.flags)
        elif kind == "rol":
            result = il.rotate_left(2, value, amount, flags=di.flags)
        else:
            result = il.rotate_right(2, value, amount, flags=di.flags)
        il.append(il.set_reg(2, dst.name, result))

    def _lift_prior(self, il, di: DecodedInstr, addr: int) -> None:
        dst = di.operand("dst")
        assert isinstance(dst, Reg)
        il.append(il.set_reg(2, dst.name, il.unimplemented()))

    # -- bits ---------------------------------------------------------------

    def _bit_ref(self, addr: int, bit: BitRef) -> ShortRef:
        return self.resolver.bit_address(addr, bit.bitoff)

    def _bit_value(self, il, addr: int, bit: BitRef):
        word = self.resolver.read_ref(il, self._bit_ref(addr, bit), 2)
        return il.and_expr(
            2, il.logical_shift_right(2, word, il.const(1, bit.pos)), il.const(2, 1)
        )

    def _set_bit(self, il, addr: int, bit: BitRef, value: bool, flags=None):
        ref = self._bit_ref(addr, bit)
        word = self.resolver.read_ref(il, ref, 2)
        mask = 1 << bit.pos
        if value:
            result = il.or_expr(2, word, il.const(2, mask))
        else:
            result = il.and_expr(2, word, il.const(2, ~mask & 0xFFFF))
        return self.resolver.write_ref(il, ref, 2, result, flags)

    def _lift_bit(self, il, di: DecodedInstr, addr: int) -> None:
        bit = di.operand("bit")
        assert isinstance(bit, BitRef)
        il.append(self._set_bit(il, addr, bit, di.operation == "set"))

    def _lift_bitlogic(self, il, di: DecodedInstr, addr: int) -> None:
        dst, src = di.operand("dst"), di.operand("src")
        assert isinstance(dst, BitRef) and isinstance(src, BitRef)
        kind = di.operation
        if kind == "bcmp":
            self._lift_bcmp(il, addr, dst, src)
            return

        ref = self._bit_ref(addr, dst)
        word = self.resolver.read_ref(il, ref, 2)
        mask = 1 << dst.pos
        bit = self._bit_value(il, addr, src)
        if kind == "bmovn":
            bit = il.xor_expr(2, bit, il.const(2, 1))
        placed = il.shift_left(2, bit, il.const(1, dst.pos))
        if kind in ("bmov", "bmovn"):
            result = il.or_expr(
                2, il.and_expr(2, word, il.const(2, ~mask & 0xFFFF)), placed
            )
        elif kind == "band":
            result = il.and_expr(
                2, word, il.or_expr(2, il.const(2, ~mask & 0xFFFF), placed)
            )
        elif kind == "bor":
            result = il.or_expr(2, word, placed)
        else:
            result = il.xor_expr(2, word, placed)
        il.append(self.resolver.write_ref(il, ref, 2, result, di.flags))

    def _lift_bcmp(self, il, addr: int, dst: BitRef, src: BitRef) -> None:
        def pair(build):
            return build(2, self._bit_value(il, addr, src), self._bit_value(il, addr, dst))

        il.append(il.set_flag(FLAG_E, il.const(1, 0)))
        il.append(
            il.set_flag(FLAG_Z, il.compare_equal(2, pair(il.or_expr), il.const(2, 0)))
        )
        il.append(il.set_flag(FLAG_V, pair(il.or_expr)))
        il.append(il.set_flag(FLAG_C, pair(il.and_expr)))
        il.append(il.set_flag(FLAG_N, pair(il.xor_expr)))

    def _lift_bitfield(self, il, di: DecodedInstr, addr: int) -> None:
        # BFLDH/BFLDL are not modelled.
        il.append(il.unimplemented())

    def _lift_bitjump(self, il, di: DecodedInstr, addr: int) -> None:
        bit, target = di.operand("bit"), di.operand("target")
        assert isinstance(bit, BitRef) and isinstance(target, Target)
        kind = di.operation
        word = self.resolver.read_ref(il, self._bit_ref(addr, bit), 2)
        tested = il.and_expr(2, word, il.const(2, 1 << bit.pos))
        if kind in ("jb", "jbc"):
            cond = il.compare_equal(2, tested, il.const(2, 1 << bit.pos))
        else:
            cond = il.compare_equal(2, tested, il.const(2, 0))

        if_true = LowLevelILLabel()
        if_false = LowLevelILLabel()
        il.append(il.if_expr(cond, if_true, if_false))
        il.mark_label(if_true)
        if kind == "jbc":
            il.append(self._set_bit(il, addr, bit, False))
        elif kind == "jnbs":
            il.append(self._set_bit(il, addr, bit, True))
        il.append(il.jump(il.const(3, target.address)))
        il.mark_label(if_false)

    # -- control transfer ---------------------------------------------------

    @staticmethod
    def _in_segment(il, addr: int, reg: str):
        # Indirect targets stay in the code segment of the branch itself.
        return il.or_expr(
            3, il.const(3, addr & SEGMENT_MASK), il.zero_extend(3, il.reg(2, reg))
        )

    def _lift_jump(self, il, di: DecodedInstr, addr: int) -> None:
        if di.operation == "indirect":
            base = di.operand("base")
            assert isinstance(base, Indirect)
            il.append(il.jump(self._in_segment(il, addr, base.base)))
            return
        target = di.operand("target")
        assert isinstance(target, Target)
        if di.cond in (None, Cond.UC):
            il.append(il.jump(il.const(3, target.address)))
            return
        if_true = LowLevelILLabel()
        if_false = LowLevelILLabel()
        il.append(il.if_expr(condition_expr(il, di.cond), if_true, if_false))
        il.mark_label(if_true)
        il.append(il.jump(il.const(3, target.address)))
        il.mark_label(if_false)

    def _lift_call(self, il, di: DecodedInstr, addr: int) -> None:
        if di.operation == "indirect":
            base = di.operand("base")
            assert isinstance(base, Indirect)
            il.append(il.call(self._in_segment(il, addr, base.base)))
            return
        target = di.operand("target")
        assert isinstance(target, Target)
        if di.cond in (None, Cond.UC):
            il.append(il.call(il.const(3, target.address)))
            return
        if_true = LowLevelILLabel()
        if_false = LowLevelILLabel()
        il.append(il.if_expr(condition_expr(il, di.cond), if_true, if_false))
        il.mark_label(if_true)
        il.append(il.call(il.const(3, target.address)))
        il.append(il.goto(if_false))
        il.mark_label(if_false)

    def _lift_ret(self, il, di: DecodedInstr, addr: int) -> None:
        link = self.variant.link_reg
        if link is not None:
            il.append(il.ret(il.reg(3, link)))
            return
        kind = di.operation
        if kind == "ret":
            il.append(il.ret(il.pop(2)))
            return
        il.append(il.set_reg(2, LLIL_TEMP(0), il.pop(2)))
        if kind == "rets":
            il.append(il.set_reg(2, CSP, il.pop(2)))
        elif kind == "retp":
            reg = di.operand("reg")
            assert isinstance(reg, RegShort)
            il.append(self.resolver.write_short(il, addr, reg.code, 2, il.pop(2)))
        else:
            il.append(il.set_reg(2, PSW, il.pop(2)))
        il.append(il.ret(il.reg(2, LLIL_TEMP(0))))

    def _lift_trap(self, il, di: DecodedInstr, addr: int) -> None:
        target = di.operand("target")
        assert isinstance(target, Target)
        il.append(il.call(il.const(3, target.address)))

    def _lift_system(self, il, di: DecodedInstr, addr: int) -> None:
        if di.operation == "noreturn":
            il.append(il.no_ret())
        else:
            il.append(il.unimplemented())

    def _lift_nop(self, il, di: DecodedInstr, addr: int) -> None:
        il.append(il.nop())

    # -- stack --------------------------------------------------------------

    def _lift_stack(self, il, di: DecodedInstr, addr: int) -> None:
        reg = di.operand("reg")
        assert isinstance(reg, RegShort)
        if di.operation == "push":
            il.append(il.push(2, self.resolver.read_short(il, addr, reg.code, 2)))
        else:
            il.append(
                self.resolver.write_short(il, addr, reg.code, 2, il.pop(2), di.flags)
            )

    def _lift_scxt(self, il, di: DecodedInstr, addr: int) -> None:
        dst, src = di.operand("dst"), di.operand("src")
        assert isinstance(dst, RegShort)
        il.append(il.push(2, self.resolver.read_short(il, addr, dst.code, 2)))
        il.append(self.write(il, addr, dst, self.read(il, addr, src)))

    # -- moves --------------------------------------------------------------

    def _lift_move(self, il, di: DecodedInstr, addr: int) -> None:
        dst, src = di.operand("dst"), di.operand("src")
        if self._is_stack_slot(src, "post_inc"):
            value = il.pop(2)
        else:
            value = None
        if self._is_stack_slot(dst, "pre_dec"):
            il.append(il.push(2, value if value is not None else self.read(il, addr, src)))
            return

        self._step(il, dst, "pre_dec")
        if value is None:
            value = self.read(il, addr, src)
        il.append(self.write(il, addr, dst, value, di.flags))
        if not self._is_stack_slot(src, "post_inc"):
            self._step(il, src, "post_inc")
        self._step(il, dst, "post_inc")

    def _lift_move_ext(self, il, di: DecodedInstr, addr: int) -> None:
        dst, src = di.operand("dst"), di.operand("src")
        byte = self.read(il, addr, src)
        if di.operation == "sx":
            value = il.sign_extend(2, byte)
        else:
            value = il.zero_extend(2, byte)
        il.append(self.write(il, addr, dst, value, di.flags))

    # -- extension instructions ---------------------------------------------

    def _lift_ext(self, il, di: DecodedInstr, addr: int) -> None:
        ext = di.operand("ext")
        assert isinstance(ext, ExtOverride)
        if ext.reg is not None:
            # The override value lives in a register; nothing to record statically.
            il.append(il.unimplemented())
            return

        nxt = addr + di.length
        span = ext.count - 1
        if ext.kind == "atomic":
            self.store.set_atomic(nxt, span)
        if ext.has_register_bank:
            self.store.set_register_bank(nxt, span)
        if ext.has_segment:
            self.store.set_segment(nxt, ext.value or 0, span)
        if ext.has_page:
            self.store.set_page(nxt, ext.value or 0, span)
        logger.debug(
            "%s at %#x overrides %#x for %d instruction(s)",
            di.mnemonic,
            addr,
            nxt,
            ext.count,
        )
        il.append(il.nop())


_EMITTERS: Dict[str, str] = {
    "alu": "_lift_alu",
    "cmp_step": "_lift_cmp_step",
    "unary": "_lift_unary",
    "mul": "_lift_mul",
    "div": "_lift_div",
    "shift": "_lift_shift",
    "prior": "_lift_prior",
    "bit": "_lift_bit",
    "bitlogic": "_lift_bitlogic",
    "bitfield": "_lift_bitfield",
    "bitjump": "_lift_bitjump",
    "jump": "_lift_jump",
    "call": "_lift_call",
    "ret": "_lift_ret",
    "trap": "_lift_trap",
    "system": "_lift_system",
    "nop": "_lift_nop",
    "stack": "_lift_stack",
    "scxt": "_lift_scxt",
    "move": "_lift_move",
    "move_ext": "_lift_move_ext",
    "ext": "_lift_ext",
}


__all__ = ["AluOp", "Lifter", "condition_expr"]

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional, Tuple

from ..constants import (
    ADDRESS_MASK,
    Cond,
    FlagPolicy,
    WRITE_ALL,
    WRITE_EZN,
    byte_reg,
    gpr,
    reg_name,
)
from ..errors import UnknownOpcode, UnsupportedVariant
from .bind import (
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
from .reader import InstrWindow


@dataclass(frozen=True)
class FamilySpec:
    """Per-family defaults shared by every opcode of the family."""

    default_length: int
    flags: Optional[FlagPolicy]


FAMILIES: Dict[str, FamilySpec] = {
    "alu": FamilySpec(2, WRITE_ALL),
    "cmp_step": FamilySpec(2, WRITE_ALL),
    "unary": FamilySpec(2, WRITE_ALL),
    "mul": FamilySpec(2, WRITE_ALL),
    "div": FamilySpec(2, WRITE_ALL),
    "shift": FamilySpec(2, WRITE_ALL),
    "bit": FamilySpec(2, None),
    "bitlogic": FamilySpec(4, WRITE_ALL),
    "bitfield": FamilySpec(4, WRITE_ALL),
    "bitjump": FamilySpec(4, None),
    "jump": FamilySpec(2, None),
    "call": FamilySpec(4, None),
    "ret": FamilySpec(2, None),
    "trap": FamilySpec(2, None),
    "stack": FamilySpec(2, WRITE_EZN),
    "scxt": FamilySpec(4, None),
    "prior": FamilySpec(2, WRITE_ALL),
    "move": FamilySpec(2, WRITE_EZN),
    "move_ext": FamilySpec(2, WRITE_EZN),
    "system": FamilySpec(4, None),
    "nop": FamilySpec(2, None),
    "ext": FamilySpec(2, None),
}


DecoderFunc = Callable[["OpcodeEntry", InstrWindow], DecodedInstr]


@dataclass(frozen=True)
class OpcodeEntry:
    opcode: int
    mnemonic: str
    family: str
    length: int
    decoder: DecoderFunc
    operation: Optional[str] = None
    # Operand width in bytes for forms that exist as word and byte variants.
    width: int = 2

    @property
    def flags(self) -> Optional[FlagPolicy]:
        return FAMILIES[self.family].flags


def _make(
    entry: OpcodeEntry,
    win: InstrWindow,
    binds: Dict[str, object],
    display: Tuple[str, ...],
    *,
    cond: Optional[Cond] = None,
    mnemonic: Optional[str] = None,
) -> DecodedInstr:
    win.require(entry.length)
    return DecodedInstr(
        opcode=entry.opcode,
        mnemonic=mnemonic or entry.mnemonic,
        family=entry.family,
        length=entry.length,
        binds=binds,
        display=display,
        flags=entry.flags,
        cond=cond,
        operation=entry.operation,
    )


def _binary(
    entry: OpcodeEntry, win: InstrWindow, dst: object, src: object
) -> DecodedInstr:
    return _make(entry, win, {"dst": dst, "src": src}, ("dst", "src"))


# ---------------------------------------------------------------------------
# Arithmetic and logic


def _dec_rn_rm(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    w = entry.width
    return _binary(
        entry,
        win,
        Reg(reg_name(win.nibble_high(1), w), w),
        Reg(reg_name(win.nibble_low(1), w), w),
    )


def _dec_rn_rwi(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    """Rn,[Rwi] / Rn,[Rwi+] / Rn,#data3 share one opcode, told apart by byte 1."""
    w = entry.width
    dst = Reg(reg_name(win.nibble_high(1), w), w)
    selector = win.rwi_selector()
    src: object
    if selector == 0b10:
        src = Indirect(gpr(win.rwi_index()), "plain", w)
    elif selector == 0b11:
        src = Indirect(gpr(win.rwi_index()), "post_inc", w)
    else:
        src = Imm(win.data3(), w)
    return _binary(entry, win, dst, src)


def _dec_reg_imm(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    w = entry.width
    value = win.data8() if w == 1 else win.data16()
    return _binary(entry, win, RegShort(win.reg_short(), w), Imm(value, w))


def _dec_reg_mem(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    w = entry.width
    return _binary(entry, win, RegShort(win.reg_short(), w), Mem(win.mem(), w))


def _dec_mem_reg(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    w = entry.width
    return _binary(entry, win, Mem(win.mem(), w), RegShort(win.reg_short(), w))


def _dec_cmp_step_imm4(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    return _binary(
        entry, win, Reg(gpr(win.nibble_low(1)), 2), Imm(win.data4(), 2)
    )


def _dec_cmp_step_mem(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    return _binary(entry, win, Reg(gpr(win.nibble_low(1)), 2), Mem(win.mem(), 2))


def _dec_cmp_step_imm16(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    return _binary(
        entry, win, Reg(gpr(win.nibble_low(1)), 2), Imm(win.data16(), 2)
    )


def _dec_unary(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    w = entry.width
    return _make(entry, win, {"dst": Reg(reg_name(win.nibble_high(1), w), w)}, ("dst",))


def _dec_mul(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    return _binary(
        entry,
        win,
        Reg(gpr(win.nibble_high(1)), 2),
        Reg(gpr(win.nibble_low(1)), 2),
    )


def _dec_div(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    return _make(entry, win, {"src": Reg(gpr(win.nibble_high(1)), 2)}, ("src",))


def _dec_shift_reg(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    return _binary(
        entry,
        win,
        Reg(gpr(win.nibble_high(1)), 2),
        Reg(gpr(win.nibble_low(1)), 2),
    )


def _dec_shift_imm(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    return _binary(
        entry, win, Reg(gpr(win.nibble_low(1)), 2), Imm(win.nibble_high(1), 1)
    )


def _dec_prior(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    return _binary(
        entry,
        win,
        Reg(gpr(win.nibble_high(1)), 2),
        Reg(gpr(win.nibble_low(1)), 2),
    )


# ---------------------------------------------------------------------------
# Bit instructions


def _dec_bit_single(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    bit = BitRef(win.reg_short(), win.bit_position())
    return _make(entry, win, {"bit": bit}, ("bit",))


def _dec_bit_pair(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    # QQ ZZ qz: source bit Q.q, destination bit Z.z
    dst = BitRef(win.byte(2), win.nibble_low(3))
    src = BitRef(win.byte(1), win.nibble_high(3))
    return _binary(entry, win, dst, src)


def _dec_bitfield(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    if entry.mnemonic == "bfldh":
        data, mask = win.byte(2), win.byte(3)
    else:
        mask, data = win.byte(2), win.byte(3)
    binds = {
        "bitoff": BitWord(win.reg_short()),
        "mask": Imm(mask, 1),
        "data": Imm(data, 1),
    }
    return _make(entry, win, binds, ("bitoff", "mask", "data"))


def _dec_bit_jump(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    bit = BitRef(win.reg_short(), win.branch_bit_position())
    target = Target((win.pc + win.rel8(2) * 2 + 4) & ADDRESS_MASK)
    return _make(entry, win, {"bit": bit, "target": target}, ("bit", "target"))


# ---------------------------------------------------------------------------
# Control transfer


def _dec_jmpr(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    cond = Cond(win.nibble_high(0))
    target = Target((win.pc + win.rel8(1) * 2 + 2) & ADDRESS_MASK)
    return _make(entry, win, {"target": target}, ("cond", "target"), cond=cond)


def _dec_absolute(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    cond = Cond(win.nibble_high(1))
    target = Target((win.pc & 0xFF0000) | win.caddr())
    return _make(entry, win, {"target": target}, ("cond", "target"), cond=cond)


def _dec_segmented(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    segment = win.byte(1)
    target = Target((segment << 16) | win.caddr())
    return _make(
        entry,
        win,
        {"seg": Imm(segment, 1), "target": target},
        ("seg", "target"),
    )


def _dec_indirect_branch(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    cond = Cond(win.nibble_high(1))
    if cond != Cond.UC:
        raise UnsupportedVariant(
            entry.mnemonic, win.pc, f"conditional indirect branch ({cond.text})"
        )
    base = Indirect(gpr(win.nibble_low(1)), "plain", 2)
    return _make(entry, win, {"base": base}, ("cond", "base"), cond=cond)


def _dec_callr(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    target = Target((win.pc + win.rel8(1) * 2 + 2) & ADDRESS_MASK)
    return _make(entry, win, {"target": target}, ("target",))


def _dec_pcall(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    win.require(entry.length)
    raise UnsupportedVariant(entry.mnemonic, win.pc, "pcall is not modelled")


def _dec_plain(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    return _make(entry, win, {}, ())


def _dec_retp(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    return _make(entry, win, {"reg": RegShort(win.reg_short(), 2)}, ("reg",))


def _dec_trap(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    number = win.trap7()
    binds = {
        "trap": Imm(number, 1),
        "target": Target((win.pc & 0xFF0000) + number * 4),
    }
    return _make(entry, win, binds, ("trap",))


def _dec_protected(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    # Protected system instructions repeat the opcode: OP ~OP OP OP.
    op = entry.opcode
    if (win.byte(1), win.byte(2), win.byte(3)) != (op ^ 0xFF, op, op):
        raise UnsupportedVariant(
            entry.mnemonic, win.pc, "malformed protected instruction encoding"
        )
    return _make(entry, win, {}, ())


# ---------------------------------------------------------------------------
# Stack


def _dec_stack(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    return _make(entry, win, {"reg": RegShort(win.reg_short(), 2)}, ("reg",))


def _dec_scxt_imm(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    return _binary(entry, win, RegShort(win.reg_short(), 2), Imm(win.data16(), 2))


def _dec_scxt_mem(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    return _binary(entry, win, RegShort(win.reg_short(), 2), Mem(win.mem(), 2))


# ---------------------------------------------------------------------------
# Moves


def _dec_mov_imm4(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    w = entry.width
    return _binary(
        entry, win, Reg(reg_name(win.nibble_low(1), w), w), Imm(win.data4(), w)
    )


def _mov_rn_ind(mode: str) -> DecoderFunc:
    def decode(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
        w = entry.width
        return _binary(
            entry,
            win,
            Reg(reg_name(win.nibble_high(1), w), w),
            Indirect(gpr(win.nibble_low(1)), mode, w),  # type: ignore[arg-type]
        )

    return decode


def _mov_ind_rn(mode: str) -> DecoderFunc:
    def decode(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
        w = entry.width
        return _binary(
            entry,
            win,
            Indirect(gpr(win.nibble_low(1)), mode, w),  # type: ignore[arg-type]
            Reg(reg_name(win.nibble_high(1), w), w),
        )

    return decode


def _mov_ind_ind(dst_mode: str, src_mode: str) -> DecoderFunc:
    def decode(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
        w = entry.width
        return _binary(
            entry,
            win,
            Indirect(gpr(win.nibble_high(1)), dst_mode, w),  # type: ignore[arg-type]
            Indirect(gpr(win.nibble_low(1)), src_mode, w),  # type: ignore[arg-type]
        )

    return decode


def _dec_mov_rn_disp(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    w = entry.width
    return _binary(
        entry,
        win,
        Reg(reg_name(win.nibble_high(1), w), w),
        Indirect(gpr(win.nibble_low(1)), "disp", w, win.data16()),
    )


def _dec_mov_disp_rn(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    w = entry.width
    return _binary(
        entry,
        win,
        Indirect(gpr(win.nibble_low(1)), "disp", w, win.data16()),
        Reg(reg_name(win.nibble_high(1), w), w),
    )


def _dec_mov_ind_mem(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    w = entry.width
    return _binary(
        entry, win, Indirect(gpr(win.nibble_low(1)), "plain", w), Mem(win.mem(), w)
    )


def _dec_mov_mem_ind(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    w = entry.width
    return _binary(
        entry, win, Mem(win.mem(), w), Indirect(gpr(win.nibble_low(1)), "plain", w)
    )


def _dec_movx_rr(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    # MOVBS/MOVBZ Rwn, Rbm: byte 1 is "mn"
    return _binary(
        entry,
        win,
        Reg(gpr(win.nibble_low(1)), 2),
        Reg(byte_reg(win.nibble_high(1)), 1),
    )


def _dec_movx_reg_mem(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    return _binary(entry, win, RegShort(win.reg_short(), 2), Mem(win.mem(), 1))


def _dec_movx_mem_reg(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    return _binary(entry, win, Mem(win.mem(), 2), RegShort(win.reg_short(), 1))


# ---------------------------------------------------------------------------
# Extension instructions

_EXT_IMMEDIATE_KINDS = ("exts", "extp", "extsr", "extpr")


def _dec_ext_short(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    subop = win.ext_subop()
    if subop == 0:
        kind = "atomic"
    elif subop == 2:
        kind = "extr"
    else:
        raise UnsupportedVariant("atomic/extr", win.pc, f"reserved sub-operation {subop}")
    ext = ExtOverride(kind, win.irang2())  # type: ignore[arg-type]
    return _make(entry, win, {"ext": ext, "count": Imm(ext.count, 1)}, ("count",), mnemonic=kind)


def _dec_ext_immediate(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    kind = _EXT_IMMEDIATE_KINDS[win.ext_subop()]
    if kind in ("exts", "extsr"):
        value = win.byte(2)
    else:
        value = win.byte(2) | ((win.byte(3) & 0x3) << 8)
    ext = ExtOverride(kind, win.irang2(), value=value)  # type: ignore[arg-type]
    binds = {
        "ext": ext,
        "value": Imm(value, 2),
        "count": Imm(ext.count, 1),
    }
    return _make(entry, win, binds, ("value", "count"), mnemonic=kind)


def _dec_ext_register(entry: OpcodeEntry, win: InstrWindow) -> DecodedInstr:
    kind = _EXT_IMMEDIATE_KINDS[win.ext_subop()]
    reg = gpr(win.nibble_low(1))
    ext = ExtOverride(kind, win.irang2(), reg=reg)  # type: ignore[arg-type]
    binds = {
        "ext": ext,
        "reg": Reg(reg, 2),
        "count": Imm(ext.count, 1),
    }
    return _make(entry, win, binds, ("reg", "count"), mnemonic=kind)


# ---------------------------------------------------------------------------
# Table

OPCODES: Dict[int, OpcodeEntry] = {}


def _add(
    opcode: int,
    mnemonic: str,
    family: str,
    decoder: DecoderFunc,
    *,
    length: Optional[int] = None,
    operation: Optional[str] = None,
    width: int = 2,
) -> None:
    if opcode in OPCODES:
        raise ValueError(f"Duplicate opcode {opcode:#04x}")
    OPCODES[opcode] = OpcodeEntry(
        opcode=opcode,
        mnemonic=mnemonic,
        family=family,
        length=length if length is not None else FAMILIES[family].default_length,
        decoder=decoder,
        operation=operation,
        width=width,
    )


_ALU_OPS = ("add", "addc", "sub", "subc", "cmp", "xor", "and", "or")

for _row, _op in enumerate(_ALU_OPS):
    for _byte_form in (0, 1):
        _mn = _op + ("b" if _byte_form else "")
        _base = (_row << 4) | _byte_form
        _width = 1 if _byte_form else 2
        _add(_base | 0x0, _mn, "alu", _dec_rn_rm, operation=_op, width=_width)
        _add(_base | 0x8, _mn, "alu", _dec_rn_rwi, operation=_op, width=_width)
        _add(_base | 0x6, _mn, "alu", _dec_reg_imm, length=4, operation=_op, width=_width)
        _add(_base | 0x2, _mn, "alu", _dec_reg_mem, length=4, operation=_op, width=_width)
        if _op != "cmp":
            _add(_base | 0x4, _mn, "alu", _dec_mem_reg, length=4, operation=_op, width=_width)

for _high, _mn, _step in ((0x8, "cmpi1", 1), (0x9, "cmpi2", 2), (0xA, "cmpd1", -1), (0xB, "cmpd2", -2)):
    _base = _high << 4
    _add(_base | 0x0, _mn, "cmp_step", _dec_cmp_step_imm4, operation=str(_step))
    _add(_base | 0x2, _mn, "cmp_step", _dec_cmp_step_mem, length=4, operation=str(_step))
    _add(_base | 0x6, _mn, "cmp_step", _dec_cmp_step_imm16, length=4, operation=str(_step))

_add(0x81, "neg", "unary", _dec_unary, operation="neg")
_add(0xA1, "negb", "unary", _dec_unary, operation="neg", width=1)
_add(0x91, "cpl", "unary", _dec_unary, operation="cpl")
_add(0xB1, "cplb", "unary", _dec_unary, operation="cpl", width=1)

_add(0x0B, "mul", "mul", _dec_mul, operation="signed")
_add(0x1B, "mulu", "mul", _dec_mul, operation="unsigned")
_add(0x4B, "div", "div", _dec_div, operation="div")
_add(0x5B, "divu", "div", _dec_div, operation="divu")
_add(0x6B, "divl", "div", _dec_div, operation="divl")
_add(0x7B, "divlu", "div", _dec_div, operation="divlu")

for _opcode, _mn in ((0x0C, "rol"), (0x2C, "ror"), (0x4C, "shl"), (0x6C, "shr"), (0xAC, "ashr")):
    _add(_opcode, _mn, "shift", _dec_shift_reg, operation=_mn)
    _add(_opcode | 0x10, _mn, "shift", _dec_shift_imm, operation=_mn)

for _pos in range(16):
    _add((_pos << 4) | 0xE, "bclr", "bit", _dec_bit_single, operation="clear")
    _add((_pos << 4) | 0xF, "bset", "bit", _dec_bit_single, operation="set")

for _opcode, _mn in (
    (0x2A, "bcmp"),
    (0x3A, "bmovn"),
    (0x4A, "bmov"),
    (0x5A, "bor"),
    (0x6A, "band"),
    (0x7A, "bxor"),
):
    _add(_opcode, _mn, "bitlogic", _dec_bit_pair, operation=_mn)

_add(0x0A, "bfldl", "bitfield", _dec_bitfield)
_add(0x1A, "bfldh", "bitfield", _dec_bitfield)

_add(0x8A, "jb", "bitjump", _dec_bit_jump, operation="jb")
_add(0x9A, "jnb", "bitjump", _dec_bit_jump, operation="jnb")
_add(0xAA, "jbc", "bitjump", _dec_bit_jump, operation="jbc")
_add(0xBA, "jnbs", "bitjump", _dec_bit_jump, operation="jnbs")

for _cc in range(16):
    _add((_cc << 4) | 0xD, "jmpr", "jump", _dec_jmpr, operation="relative")
_add(0xEA, "jmpa", "jump", _dec_absolute, length=4, operation="absolute")
_add(0xFA, "jmps", "jump", _dec_segmented, length=4, operation="segmented")
_add(0x9C, "jmpi", "jump", _dec_indirect_branch, operation="indirect")

_add(0xBB, "callr", "call", _dec_callr, length=2, operation="relative")
_add(0xCA, "calla", "call", _dec_absolute, operation="absolute")
_add(0xDA, "calls", "call", _dec_segmented, operation="segmented")
_add(0xAB, "calli", "call", _dec_indirect_branch, length=2, operation="indirect")
_add(0xE2, "pcall", "call", _dec_pcall)

_add(0xCB, "ret", "ret", _dec_plain, operation="ret")
_add(0xDB, "rets", "ret", _dec_plain, operation="rets")
_add(0xEB, "retp", "ret", _dec_retp, operation="retp")
_add(0xFB, "reti", "ret", _dec_plain, operation="reti")
_add(0x9B, "trap", "trap", _dec_trap)

_add(0xEC, "push", "stack", _dec_stack, operation="push")
_add(0xFC, "pop", "stack", _dec_stack, operation="pop")
_add(0xC6, "scxt", "scxt", _dec_scxt_imm)
_add(0xD6, "scxt", "scxt", _dec_scxt_mem)
_add(0x2B, "prior", "prior", _dec_prior)

_add(0xCC, "nop", "nop", _dec_plain)
_add(0xB7, "srst", "system", _dec_protected)
_add(0x87, "idle", "system", _dec_protected)
_add(0x97, "pwrdn", "system", _dec_protected, operation="noreturn")
_add(0xA7, "srvwdt", "system", _dec_protected)
_add(0xA5, "diswdt", "system", _dec_protected)
_add(0xB5, "einit", "system", _dec_protected)

_add(0xD1, "atomic", "ext", _dec_ext_short)
_add(0xD7, "extp", "ext", _dec_ext_immediate, length=4)
_add(0xDC, "extp", "ext", _dec_ext_register)

# MOV and MOVB share their layouts; the byte form is the word opcode + 1
# except for the four-byte forms, which are laid out separately.
_MOV_FORMS: Tuple[Tuple[int, int, DecoderFunc, int], ...] = (
    (0xF0, 0xF1, _dec_rn_rm, 2),
    (0xE0, 0xE1, _dec_mov_imm4, 2),
    (0xE6, 0xE7, _dec_reg_imm, 4),
    (0xA8, 0xA9, _mov_rn_ind("plain"), 2),
    (0x98, 0x99, _mov_rn_ind("post_inc"), 2),
    (0xB8, 0xB9, _mov_ind_rn("plain"), 2),
    (0x88, 0x89, _mov_ind_rn("pre_dec"), 2),
    (0xC8, 0xC9, _mov_ind_ind("plain", "plain"), 2),
    (0xD8, 0xD9, _mov_ind_ind("post_inc", "plain"), 2),
    (0xE8, 0xE9, _mov_ind_ind("plain", "post_inc"), 2),
    (0xD4, 0xF4, _dec_mov_rn_disp, 4),
    (0xC4, 0xE4, _dec_mov_disp_rn, 4),
    (0x84, 0xA4, _dec_mov_ind_mem, 4),
    (0x94, 0xB4, _dec_mov_mem_ind, 4),
    (0xF2, 0xF3, _dec_reg_mem, 4),
    (0xF6, 0xF7, _dec_mem_reg, 4),
)

for _word_op, _byte_op, _decoder, _length in _MOV_FORMS:
    _add(_word_op, "mov", "move", _decoder, length=_length)
    _add(_byte_op, "movb", "move", _decoder, length=_length, width=1)

for _base, _mn, _op in ((0xD0, "movbs", "sx"), (0xC0, "movbz", "zx")):
    _add(_base, _mn, "move_ext", _dec_movx_rr, operation=_op)
    _add(_base | 0x2, _mn, "move_ext", _dec_movx_reg_mem, length=4, operation=_op)
    _add(_base | 0x5, _mn, "move_ext", _dec_movx_mem_reg, length=4, operation=_op)


def instruction_length(opcode: int) -> int:
    try:
        return OPCODES[opcode].length
    except KeyError:
        raise UnknownOpcode(opcode) from None


def decode_opcode(data: bytes, addr: int) -> DecodedInstr:
    """Decode the instruction at ``addr`` from ``data``.

    Raises `UnknownOpcode` for bytes outside the table, `UnsupportedVariant`
    for recognised but unmodelled forms and `InstructionTooShort` when
    ``data`` does not hold the whole instruction.
    """
    win = InstrWindow(addr, bytes(data[:4]))
    opcode = win.opcode
    try:
        entry = OPCODES[opcode]
    except KeyError:
        raise UnknownOpcode(opcode, addr) from None
    return entry.decoder(entry, win)


def iter_opcodes() -> Iterator[OpcodeEntry]:
    for opcode in sorted(OPCODES):
        yield OPCODES[opcode]


__all__ = [
    "FamilySpec",
    "FAMILIES",
    "OpcodeEntry",
    "OPCODES",
    "decode_opcode",
    "instruction_length",
    "iter_opcodes",
]

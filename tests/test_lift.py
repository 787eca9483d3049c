import logging

import pytest
from binja_test_mocks.mock_llil import MockFlag, MockIfExpr, MockLabel, mllil, mreg

from c166.config import C166Config
from c166.decoding.decode_map import decode_opcode
from c166.lift import Lifter
from c166.state import ExtensionStateStore


def _reg(name: str, size: str = "w"):
    return mllil(f"REG.{size}", [mreg(name)])


def _const(value: int, size: str = "w"):
    return mllil(f"CONST.{size}", [value])


def lift(lifter: Lifter, il, data: bytes, addr: int = 0x100) -> int:
    return lifter.lift(il, decode_opcode(data, addr), addr)


# -- arithmetic -------------------------------------------------------------


def test_add_register_pair(lifter, il) -> None:
    assert lift(lifter, il, bytes([0x00, 0x12])) == 2
    assert il.ils == [
        mllil("SET_REG.w", [mreg("r1"), mllil("ADD.w{*}", [_reg("r1"), _reg("r2")])])
    ]


def test_addc_uses_carry(lifter, il) -> None:
    lift(lifter, il, bytes([0x10, 0x12]))
    assert il.ils == [
        mllil(
            "SET_REG.w",
            [
                mreg("r1"),
                mllil("ADC.w{*}", [_reg("r1"), _reg("r2"), mllil("FLAG", [MockFlag("c")])]),
            ],
        )
    ]


def test_cmp_only_sets_flags(lifter, il) -> None:
    lift(lifter, il, bytes([0x48, 0x15]))
    assert il.ils == [mllil("SUB.w{*}", [_reg("r1"), _const(5)])]


def test_alu_post_increment_source(lifter, il) -> None:
    lift(lifter, il, bytes([0x08, 0x3E]))
    assert il.ops() == ["SET_REG.w", "SET_REG.w"]
    assert il.ils[1] == mllil(
        "SET_REG.w", [mreg("r2"), mllil("ADD.w", [_reg("r2"), _const(2)])]
    )


def test_byte_alu_with_sfr_destination(lifter, il) -> None:
    # addb MDL(low byte), #0x7f
    lift(lifter, il, bytes([0x07, 0x07, 0x7F, 0x00]))
    load = mllil("LOAD.b", [mllil("CONST_PTR.l", [0xFE0E])])
    assert il.ils == [
        mllil(
            "STORE.b",
            [mllil("CONST_PTR.l", [0xFE0E]), mllil("ADD.b{*}", [load, _const(0x7F, "b")])],
        )
    ]


def test_cmp_step(lifter, il) -> None:
    lift(lifter, il, bytes([0x80, 0x53]))
    assert il.ils == [
        mllil("SUB.w{*}", [_reg("r3"), _const(5)]),
        mllil("SET_REG.w", [mreg("r3"), mllil("ADD.w", [_reg("r3"), _const(1)])]),
    ]

    il.ils.clear()
    lift(lifter, il, bytes([0xB0, 0x53]))
    assert il.ils[1] == mllil(
        "SET_REG.w", [mreg("r3"), mllil("SUB.w", [_reg("r3"), _const(2)])]
    )


def test_neg_and_cpl(lifter, il) -> None:
    lift(lifter, il, bytes([0x81, 0x10]))
    lift(lifter, il, bytes([0xB1, 0x20]))
    assert il.ils == [
        mllil("SET_REG.w", [mreg("r1"), mllil("NEG.w{*}", [_reg("r1")])]),
        mllil("SET_REG.b", [mreg("rl1"), mllil("NOT.b{*}", [_reg("rl1", "b")])]),
    ]


def test_mul_writes_md_pair(lifter, il) -> None:
    lift(lifter, il, bytes([0x0B, 0x12]))
    assert len(il.ils) == 3
    product = il.ils[0]
    assert product.bare_op() == "SET_REG"
    assert product.ops[0] == mreg("TEMP0")
    assert product.ops[1].bare_op() == "MULS_DP"
    assert product.ops[1].flags() == "*"
    assert il.ils[1].op == "STORE.w"
    assert il.ils[1].ops[0] == mllil("CONST_PTR.l", [0xFE0E])
    assert il.ils[2].ops[0] == mllil("CONST_PTR.l", [0xFE0C])


def test_div_computes_both_results_first(lifter, il) -> None:
    lift(lifter, il, bytes([0x4B, 0x33]))
    assert il.ops() == ["SET_REG.w", "SET_REG.w", "STORE.w", "STORE.w"]
    assert il.ils[0].ops[0] == mreg("TEMP0")
    assert il.ils[0].ops[1].op == "DIVS.w{*}"
    assert il.ils[1].ops[1].op == "MODS.w"
    assert il.ils[2] == mllil(
        "STORE.w", [mllil("CONST_PTR.l", [0xFE0E]), _reg("TEMP0")]
    )
    assert il.ils[3] == mllil(
        "STORE.w", [mllil("CONST_PTR.l", [0xFE0C]), _reg("TEMP1")]
    )


def test_long_division_uses_md_pair(lifter, il) -> None:
    lift(lifter, il, bytes([0x7B, 0x33]))
    assert il.ils[0].ops[1].op == "DIVU_DP.w{*}"
    dividend = il.ils[0].ops[1].ops[0]
    assert dividend.op == "OR.error"


def test_shift_immediate_and_register(lifter, il) -> None:
    lift(lifter, il, bytes([0x5C, 0x41]))
    lift(lifter, il, bytes([0x4C, 0x12]))
    assert il.ils == [
        mllil(
            "SET_REG.w",
            [mreg("r1"), mllil("LSL.w{*}", [_reg("r1"), _const(4, "b")])],
        ),
        mllil(
            "SET_REG.w",
            [
                mreg("r1"),
                mllil(
                    "LSL.w{*}",
                    [_reg("r1"), mllil("AND.w", [_reg("r2"), _const(0xF)])],
                ),
            ],
        ),
    ]


def test_prior_is_opaque(lifter, il) -> None:
    lift(lifter, il, bytes([0x2B, 0x12]))
    assert il.ils == [mllil("SET_REG.w", [mreg("r1"), mllil("UNIMPL", [])])]


# -- bits -------------------------------------------------------------------


def test_bset_on_gpr(lifter, il) -> None:
    lift(lifter, il, bytes([0x3F, 0xF2]))
    assert il.ils == [
        mllil("SET_REG.w", [mreg("r2"), mllil("OR.w", [_reg("r2"), _const(0x8)])])
    ]


def test_bclr_on_bit_ram(lifter, il) -> None:
    lift(lifter, il, bytes([0x1E, 0x08]))
    word = mllil("CONST_PTR.l", [0xFD10])
    assert il.ils == [
        mllil(
            "STORE.w",
            [word, mllil("AND.w", [mllil("LOAD.w", [word]), _const(0xFFFD)])],
        )
    ]


def test_bmov_writes_flags(lifter, il) -> None:
    lift(lifter, il, bytes([0x4A, 0xF2, 0xF3, 0x51]))
    assert len(il.ils) == 1
    assert il.ils[0].op == "SET_REG.w{*}"
    assert il.ils[0].ops[0] == mreg("r3")


def test_bcmp_sets_each_flag(lifter, il) -> None:
    lift(lifter, il, bytes([0x2A, 0xF2, 0xF3, 0x51]))
    assert il.ops() == ["SET_FLAG"] * 5
    assert [expr.ops[0] for expr in il.ils] == [
        MockFlag("e"),
        MockFlag("z"),
        MockFlag("v"),
        MockFlag("c"),
        MockFlag("n"),
    ]


def test_bitfield_is_unimplemented(lifter, il) -> None:
    lift(lifter, il, bytes([0x1A, 0x08, 0xAA, 0x0F]))
    assert il.ils == [mllil("UNIMPL", [])]


def test_jb_branches_on_bit(lifter, il) -> None:
    lift(lifter, il, bytes([0x8A, 0xF1, 0x05, 0x30]), 0x2000)
    assert il.ops() == ["IF", "LABEL", "JUMP", "LABEL"]
    branch = il.ils[0]
    assert isinstance(branch, MockIfExpr)
    assert branch.cond == mllil(
        "CMP_E.w",
        [mllil("AND.w", [_reg("r1"), _const(0x8)]), _const(0x8)],
    )
    assert il.ils[2] == mllil("JUMP", [_const(0x200E, "l")])


def test_jbc_clears_bit_when_taken(lifter, il) -> None:
    lift(lifter, il, bytes([0xAA, 0xF1, 0x05, 0x30]), 0x2000)
    assert il.ops() == ["IF", "LABEL", "SET_REG.w", "JUMP", "LABEL"]
    assert il.ils[2] == mllil(
        "SET_REG.w", [mreg("r1"), mllil("AND.w", [_reg("r1"), _const(0xFFF7)])]
    )


# -- control transfer -------------------------------------------------------


def test_unconditional_jmpr(lifter, il) -> None:
    lift(lifter, il, bytes([0x0D, 0x04]), 0x1000)
    assert il.ils == [mllil("JUMP", [_const(0x100A, "l")])]


def test_conditional_jmpr(lifter, il) -> None:
    lift(lifter, il, bytes([0x2D, 0xFE]), 0x1000)
    assert il.ops() == ["IF", "LABEL", "JUMP", "LABEL"]
    branch = il.ils[0]
    assert isinstance(branch, MockIfExpr)
    assert branch.cond == mllil(
        "CMP_E.b", [mllil("FLAG", [MockFlag("z")]), _const(1, "b")]
    )
    assert isinstance(il.ils[1], MockLabel) and il.ils[1].label is branch.t
    assert isinstance(il.ils[3], MockLabel) and il.ils[3].label is branch.f
    assert il.ils[2] == mllil("JUMP", [_const(0x0FFE, "l")])


def test_not_equal_condition_checks_z_and_e(lifter, il) -> None:
    lift(lifter, il, bytes([0x1D, 0x04]), 0x1000)
    flags = mllil("OR.b", [mllil("FLAG", [MockFlag("z")]), mllil("FLAG", [MockFlag("e")])])
    assert il.ils[0].cond == mllil("CMP_E.b", [flags, _const(0, "b")])


def _in_segment(segment: int, reg: str):
    return mllil("OR.l", [_const(segment, "l"), mllil("ZX.l", [_reg(reg)])])


def test_indirect_jump(lifter, il) -> None:
    lift(lifter, il, bytes([0x9C, 0x04]))
    assert il.ils == [mllil("JUMP", [_in_segment(0, "r4")])]


def test_indirect_jump_keeps_code_segment(lifter, il) -> None:
    lift(lifter, il, bytes([0x9C, 0x04]), 0x120000)
    lift(lifter, il, bytes([0xAB, 0x05]), 0x12F000)
    assert il.ils == [
        mllil("JUMP", [_in_segment(0x120000, "r4")]),
        mllil("CALL", [_in_segment(0x120000, "r5")]),
    ]


def test_calls(lifter, il) -> None:
    lift(lifter, il, bytes([0xCA, 0x00, 0x00, 0x20]))
    lift(lifter, il, bytes([0xDA, 0x01, 0x00, 0x10]))
    lift(lifter, il, bytes([0xAB, 0x04]))
    assert il.ils == [
        mllil("CALL", [_const(0x2000, "l")]),
        mllil("CALL", [_const(0x011000, "l")]),
        mllil("CALL", [_in_segment(0, "r4")]),
    ]


def test_conditional_calla(lifter, il) -> None:
    lift(lifter, il, bytes([0xCA, 0x30, 0x00, 0x20]))
    assert il.ops() == ["IF", "LABEL", "CALL", "GOTO", "LABEL"]
    assert il.ils[3].label is il.ils[0].f


def test_return_variants(lifter, il) -> None:
    lift(lifter, il, bytes([0xCB, 0x00]))
    assert il.ils == [mllil("RET", [mllil("POP.w", [])])]

    il.ils.clear()
    lift(lifter, il, bytes([0xDB, 0x00]))
    assert il.ils == [
        mllil("SET_REG.w", [mreg("TEMP0"), mllil("POP.w", [])]),
        mllil("SET_REG.w", [mreg("csp"), mllil("POP.w", [])]),
        mllil("RET", [_reg("TEMP0")]),
    ]

    il.ils.clear()
    lift(lifter, il, bytes([0xFB, 0x88]))
    assert il.ils[1] == mllil("SET_REG.w", [mreg("psw"), mllil("POP.w", [])])


def test_retp_restores_register(lifter, il) -> None:
    lift(lifter, il, bytes([0xEB, 0xF5]))
    assert il.ils[1] == mllil("SET_REG.w", [mreg("r5"), mllil("POP.w", [])])


def test_link_register_return(lifter_v2, il) -> None:
    lift(lifter_v2, il, bytes([0xCB, 0x00]))
    assert il.ils == [mllil("RET", [_reg("lr", "l")])]


def test_trap_calls_vector(lifter, il) -> None:
    lift(lifter, il, bytes([0x9B, 0x08]), 0x010000)
    assert il.ils == [mllil("CALL", [_const(0x010010, "l")])]


def test_system_instructions(lifter, il) -> None:
    lift(lifter, il, bytes([0x97, 0x68, 0x97, 0x97]))
    lift(lifter, il, bytes([0x87, 0x78, 0x87, 0x87]))
    lift(lifter, il, bytes([0xCC, 0x00]))
    assert il.ils == [mllil("NORET", []), mllil("UNIMPL", []), mllil("NOP", [])]


# -- stack and moves --------------------------------------------------------


def test_push_pop(lifter, il) -> None:
    lift(lifter, il, bytes([0xEC, 0xF3]))
    lift(lifter, il, bytes([0xFC, 0xF3]))
    assert il.ils == [
        mllil("PUSH.w", [_reg("r3")]),
        mllil("SET_REG.w{ezn}", [mreg("r3"), mllil("POP.w", [])]),
    ]


def test_scxt(lifter, il) -> None:
    lift(lifter, il, bytes([0xC6, 0xF1, 0x34, 0x12]))
    assert il.ils == [
        mllil("PUSH.w", [_reg("r1")]),
        mllil("SET_REG.w", [mreg("r1"), _const(0x1234)]),
    ]


def test_mov_register(lifter, il) -> None:
    lift(lifter, il, bytes([0xF0, 0x12]))
    assert il.ils == [mllil("SET_REG.w{ezn}", [mreg("r1"), _reg("r2")])]


def test_stack_moves_become_push_pop(lifter, il) -> None:
    # Classic Tasking: r0 is the user stack pointer.
    lift(lifter, il, bytes([0x88, 0x40]))
    lift(lifter, il, bytes([0x98, 0x40]))
    assert il.ils == [
        mllil("PUSH.w", [_reg("r4")]),
        mllil("SET_REG.w{ezn}", [mreg("r4"), mllil("POP.w", [])]),
    ]


def test_pointer_moves_on_other_variant(lifter_tvx, il) -> None:
    # r15 is the stack pointer here, so [r0+] is an ordinary pointer.
    lift(lifter_tvx, il, bytes([0x98, 0x40]))
    assert il.ops() == ["SET_REG.w{ezn}", "SET_REG.w"]
    assert il.ils[0].ops[1].bare_op() == "LOAD"
    assert il.ils[1] == mllil(
        "SET_REG.w", [mreg("r0"), mllil("ADD.w", [_reg("r0"), _const(2)])]
    )


def test_pre_decrement_store(lifter_tvx, il) -> None:
    lift(lifter_tvx, il, bytes([0x89, 0x40]))
    assert il.ops() == ["SET_REG.w", "STORE.b{ezn}"]
    assert il.ils[0] == mllil(
        "SET_REG.w", [mreg("r0"), mllil("SUB.w", [_reg("r0"), _const(1)])]
    )


def test_mov_memory_uses_dpp(lifter, il) -> None:
    lift(lifter, il, bytes([0xF2, 0xF1, 0x02, 0x80]))
    assert il.ils == [
        mllil(
            "SET_REG.w{ezn}",
            [mreg("r1"), mllil("LOAD.w", [mllil("CONST_PTR.l", [0x8002])])],
        )
    ]


def test_movbz_zero_extends(lifter, il) -> None:
    lift(lifter, il, bytes([0xC0, 0x41]))
    assert il.ils == [
        mllil("SET_REG.w{ezn}", [mreg("r1"), mllil("ZX.w", [_reg("rl2", "b")])])
    ]


def test_movbs_sign_extends(lifter, il) -> None:
    lift(lifter, il, bytes([0xD0, 0x41]))
    assert il.ils[0].ops[1].op == "SX.w"


# -- extension instructions -------------------------------------------------


def test_extp_retargets_next_memory_operand(
    lifter, il, store: ExtensionStateStore
) -> None:
    assert lift(lifter, il, bytes([0xD7, 0x40, 0x03, 0x00]), 0x2000) == 4
    assert il.ils == [mllil("NOP", [])]
    assert store.query_page(0x2004) == 3
    assert store.get(0x2004).remaining == 0

    il.ils.clear()
    lift(lifter, il, bytes([0xF2, 0xF1, 0x00, 0x40]), 0x2004)
    assert il.ils == [
        mllil(
            "SET_REG.w{ezn}",
            [mreg("r1"), mllil("LOAD.w", [mllil("CONST_PTR.l", [0xC000])])],
        )
    ]
    assert 0x2008 not in store


def test_ext_count_spans_following_instructions(
    lifter, il, store: ExtensionStateStore
) -> None:
    # exts #0x12, #2
    lift(lifter, il, bytes([0xD7, 0x10, 0x12, 0x00]), 0x3000)
    lift(lifter, il, bytes([0xF0, 0x12]), 0x3004)
    lift(lifter, il, bytes([0xF0, 0x12]), 0x3006)
    lift(lifter, il, bytes([0xF0, 0x12]), 0x3008)
    assert store.query_segment(0x3004) == 0x12
    assert store.query_segment(0x3006) == 0x12
    assert store.query_segment(0x3008) is None


def test_extr_switches_register_short_to_esfr(
    lifter, il, store: ExtensionStateStore
) -> None:
    lift(lifter, il, bytes([0xD1, 0x80]), 0x400)
    assert store.query_register_bank(0x402)
    il.ils.clear()
    lift(lifter, il, bytes([0xEC, 0x10]), 0x402)
    assert il.ils == [mllil("PUSH.w", [mllil("LOAD.w", [mllil("CONST_PTR.l", [0xF020])])])]


def test_atomic_is_recorded(lifter, il, store: ExtensionStateStore) -> None:
    lift(lifter, il, bytes([0xD1, 0x10]), 0x500)
    assert store.query_atomic(0x502)
    assert store.get(0x502).remaining == 1
    assert not store.query_register_bank(0x502)


def test_register_form_ext_has_no_static_effect(
    lifter, il, store: ExtensionStateStore
) -> None:
    lift(lifter, il, bytes([0xDC, 0x45]), 0x600)
    assert il.ils == [mllil("UNIMPL", [])]
    assert len(store) == 0


def test_trace_logging(resolver, il, caplog) -> None:
    from c166.config import C166_TC

    lifter = Lifter(resolver, C166_TC, C166Config((0, 1, 2, 3), trace_lift=True))
    with caplog.at_level(logging.DEBUG, logger="c166.lift"):
        lift(lifter, il, bytes([0xCC, 0x00]), 0x1234)
    assert "nop" in caplog.text
    assert "0x001234" in caplog.text


@pytest.mark.parametrize("data", [bytes([0xF0, 0x12]), bytes([0xCC, 0x00])])
def test_lift_returns_decoded_length(lifter, il, data: bytes) -> None:
    assert lift(lifter, il, data) == 2

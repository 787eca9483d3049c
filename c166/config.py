from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Dict, Optional, Tuple

from .constants import VIRTUAL_LR


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().casefold()
    return normalized not in {"0", "false", "off", ""}


def _env_dpp(name: str) -> Tuple[int, int, int, int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return (0, 0, 0, 0)
    parts = [chunk.strip() for chunk in raw.split(",")]
    if len(parts) != 4:
        raise ValueError(f"{name} expects four comma separated values, got {raw!r}")
    values = tuple(int(part, 0) & 0x3FF for part in parts)
    return values  # type: ignore[return-value]


@dataclass(frozen=True)
class CallingConventionSpec:
    name: str
    int_arg_regs: Tuple[str, ...]
    caller_saved_regs: Tuple[str, ...]
    callee_saved_regs: Tuple[str, ...]
    int_return_reg: str
    high_int_return_reg: Optional[str] = None
    stack_reserved_for_arg_regs: bool = False


@dataclass(frozen=True)
class CpuVariant:
    """Everything that differs between the supported C166 toolchains."""

    name: str
    stack_pointer: str
    calling_convention: CallingConventionSpec
    link_reg: Optional[str] = None
    description: str = field(default="", compare=False)


def _with_bytes(*regs: str) -> Tuple[str, ...]:
    # r0..r7 alias a low/high byte register pair each
    out = []
    for reg in regs:
        out.append(reg)
        index = int(reg[1:])
        if index < 8:
            out.extend((f"rl{index}", f"rh{index}"))
    return tuple(out)


TASKING_VX_CC = CallingConventionSpec(
    name="c166-vx",
    int_arg_regs=("r2", "r3", "r4", "r5"),
    callee_saved_regs=_with_bytes("r0", "r1", "r6", "r7", "r8", "r9", "r10"),
    caller_saved_regs=_with_bytes(
        "r2", "r3", "r4", "r5", "r11", "r12", "r13", "r14"
    ),
    int_return_reg="r2",
)

TASKING_CLASSIC_CC = CallingConventionSpec(
    name="c166-classic",
    int_arg_regs=("r12", "r13", "r14", "r15"),
    callee_saved_regs=_with_bytes("r6", "r7", "r8", "r9", "r10"),
    caller_saved_regs=_with_bytes("r1", "r2", "r3", "r4", "r5", "r10", "r11"),
    int_return_reg="r4",
    high_int_return_reg="r5",
)

TASKING_V2_CC = CallingConventionSpec(
    name="c166-v2",
    int_arg_regs=("r8", "r9", "r10", "r11", "r12"),
    callee_saved_regs=("r13", "r14", "r15"),
    caller_saved_regs=_with_bytes(
        "r1", "r2", "r3", "r4", "r5", "r6", "r7", "r8", "r9", "r10", "r11", "r12"
    ),
    int_return_reg="r4",
    high_int_return_reg="r5",
    stack_reserved_for_arg_regs=True,
)

C166_TVX = CpuVariant(
    name="c166tvx",
    stack_pointer="r15",
    calling_convention=TASKING_VX_CC,
    description="Tasking C166/ST10 VX toolchain",
)
C166_TC = CpuVariant(
    name="c166tc",
    stack_pointer="r0",
    calling_convention=TASKING_CLASSIC_CC,
    description="Tasking C166/ST10 classic toolchain",
)
C166_V2 = CpuVariant(
    name="c166v2",
    stack_pointer="r0",
    calling_convention=TASKING_V2_CC,
    link_reg=VIRTUAL_LR,
    description="Tasking C166/ST10 v2 toolchain",
)

VARIANTS: Dict[str, CpuVariant] = {
    variant.name: variant for variant in (C166_TVX, C166_TC, C166_V2)
}


def get_variant(name: str) -> CpuVariant:
    try:
        return VARIANTS[name]
    except KeyError:
        raise ValueError(
            f"Unknown C166 variant '{name}' (expected one of: {sorted(VARIANTS)})"
        ) from None


@dataclass(frozen=True)
class C166Config:
    default_dpp: Tuple[int, int, int, int]
    trace_lift: bool


def load_c166_config() -> C166Config:
    return C166Config(
        default_dpp=_env_dpp("C166_DEFAULT_DPP"),
        trace_lift=_env_flag("C166_TRACE_LIFT", default=False),
    )


__all__ = [
    "CallingConventionSpec",
    "CpuVariant",
    "C166_TVX",
    "C166_TC",
    "C166_V2",
    "VARIANTS",
    "get_variant",
    "C166Config",
    "load_c166_config",
]

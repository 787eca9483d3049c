"""Shared architecture constants for the C166 family.

Register names, flag names, condition codes and the special function
register (SFR) addresses used by the decoder, lifter and renderer.
"""

from enum import IntEnum
from typing import Dict, Literal, Optional, Tuple

# Physical address space: 24 address bits, 16 MiB.
ADDRESS_MASK = 0xFFFFFF
SEGMENT_MASK = 0xFF0000

# 16 general purpose word registers. The bank they live in is selected by
# CP at run time; the lifter treats them as ordinary architecture registers.
GPRS: Tuple[str, ...] = tuple(f"r{i}" for i in range(16))

# Byte registers are encoded as a 4-bit index: even values select the low
# byte of r(n/2), odd values its high byte (RL0, RH0, RL1, RH1, ...).
BYTE_REGS: Tuple[str, ...] = tuple(
    f"r{'lh'[i & 1]}{i >> 1}" for i in range(16)
)

CSP = "csp"
CPUCON1 = "cpucon1"
CPUCON2 = "cpucon2"
PSW = "psw"
CP = "cp"
# Not a hardware register: models the return address for the v2 ABI.
VIRTUAL_LR = "lr"

SYSTEM_REGS: Tuple[str, ...] = (CSP, CPUCON1, CPUCON2, PSW, CP, VIRTUAL_LR)

# Numeric register ids: 0..15 word GPRs, 16..31 byte registers, 32..37
# system registers.
REGISTER_IDS: Dict[str, int] = {
    **{name: i for i, name in enumerate(GPRS)},
    **{name: 16 + i for i, name in enumerate(BYTE_REGS)},
    **{name: 32 + i for i, name in enumerate(SYSTEM_REGS)},
}


def gpr(index: int) -> str:
    return GPRS[index & 0xF]


def byte_reg(index: int) -> str:
    return BYTE_REGS[index & 0xF]


def reg_name(index: int, width: int) -> str:
    """Name of the register selected by a 4-bit field for an operand width."""
    return byte_reg(index) if width == 1 else gpr(index)


# Flags, in PSW bit order.
FLAG_N = "n"
FLAG_C = "c"
FLAG_V = "v"
FLAG_Z = "z"
FLAG_E = "e"
FLAGS: Tuple[str, ...] = (FLAG_N, FLAG_C, FLAG_V, FLAG_Z, FLAG_E)


# Flag-write type names as registered with the host.
FlagPolicy = Literal["*", "z", "ezn"]

WRITE_ALL: FlagPolicy = "*"
WRITE_Z: FlagPolicy = "z"
WRITE_EZN: FlagPolicy = "ezn"

FLAG_WRITE_TYPES: Dict[str, Tuple[str, ...]] = {
    WRITE_ALL: FLAGS,
    WRITE_Z: (FLAG_Z,),
    WRITE_EZN: (FLAG_E, FLAG_Z, FLAG_N),
}


class Cond(IntEnum):
    UC = 0x0
    NET = 0x1
    Z = 0x2
    NZ = 0x3
    V = 0x4
    NV = 0x5
    N = 0x6
    NN = 0x7
    ULT = 0x8
    UGE = 0x9
    SGT = 0xA
    SLE = 0xB
    SLT = 0xC
    SGE = 0xD
    UGT = 0xE
    ULE = 0xF

    @property
    def text(self) -> str:
        return f"cc_{self.name.lower()}"


# Special function registers (word addresses).
DPP0 = 0xFE00
DPP1 = 0xFE02
DPP2 = 0xFE04
DPP3 = 0xFE06
CSP_ADDR = 0xFE08
MDH = 0xFE0C
MDL = 0xFE0E
CP_ADDR = 0xFE10
SP_ADDR = 0xFE12
STKOV = 0xFE14
STKUN = 0xFE16
MDC = 0xFF0E
PSW_ADDR = 0xFF10
ZEROS = 0xFF1C
ONES = 0xFF1E

# Register-short and bit-offset address bases.
SFR_BASE = 0xFE00
ESFR_BASE = 0xF000
BIT_RAM_BASE = 0xFD00
BIT_SFR_BASE = 0xFF00
BIT_ESFR_BASE = 0xF100

# Register-short codes above this value address the current register bank.
SHORT_GPR_THRESHOLD = 0xEF

SFR_NAMES: Dict[int, str] = {
    DPP0: "DPP0",
    DPP1: "DPP1",
    DPP2: "DPP2",
    DPP3: "DPP3",
    CSP_ADDR: "CSP",
    MDH: "MDH",
    MDL: "MDL",
    CP_ADDR: "CP",
    SP_ADDR: "SP",
    STKOV: "STKOV",
    STKUN: "STKUN",
    MDC: "MDC",
    PSW_ADDR: "PSW",
    ZEROS: "ZEROS",
    ONES: "ONES",
}

# Read-only registers whose value is fixed by hardware.
CONSTANT_SFRS: Dict[int, int] = {
    ZEROS: 0x0000,
    ONES: 0xFFFF,
}


def sfr_name(address: int) -> Optional[str]:
    return SFR_NAMES.get(address)


__all__ = [
    "ADDRESS_MASK",
    "SEGMENT_MASK",
    "GPRS",
    "BYTE_REGS",
    "SYSTEM_REGS",
    "REGISTER_IDS",
    "CSP",
    "CPUCON1",
    "CPUCON2",
    "PSW",
    "CP",
    "VIRTUAL_LR",
    "gpr",
    "byte_reg",
    "reg_name",
    "FLAGS",
    "FLAG_N",
    "FLAG_C",
    "FLAG_V",
    "FLAG_Z",
    "FLAG_E",
    "FlagPolicy",
    "WRITE_ALL",
    "WRITE_Z",
    "WRITE_EZN",
    "FLAG_WRITE_TYPES",
    "Cond",
    "DPP0",
    "MDH",
    "MDL",
    "SFR_BASE",
    "ESFR_BASE",
    "BIT_RAM_BASE",
    "BIT_SFR_BASE",
    "BIT_ESFR_BASE",
    "SHORT_GPR_THRESHOLD",
    "SFR_NAMES",
    "CONSTANT_SFRS",
    "sfr_name",
]

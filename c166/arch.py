from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple, Type

from binja_test_mocks import binja_api  # noqa: F401  # pyright: ignore
from binaryninja import (  # type: ignore
    Architecture,
    CallingConvention,
    InstructionInfo,
    RegisterInfo,
    log_error,
)
from binaryninja.enums import Endianness, FlagRole  # type: ignore
from binja_test_mocks.tokens import asm

from .config import (
    C166Config,
    CallingConventionSpec,
    CpuVariant,
    VARIANTS,
    load_c166_config,
)
from .constants import (
    BYTE_REGS,
    FLAG_C,
    FLAG_E,
    FLAG_N,
    FLAG_V,
    FLAG_Z,
    FLAG_WRITE_TYPES,
    FLAGS,
    GPRS,
    SYSTEM_REGS,
    VIRTUAL_LR,
)
from .decoding.bind import DecodedInstr
from .decoding.branches import Classification, shape_of
from .decoding.decode_map import decode_opcode
from .errors import C166Error
from .lift import Lifter
from .resolver import Resolver
from .state import ExtensionStateStore
from .text import Renderer

logger = logging.getLogger(__name__)

_shared_store = ExtensionStateStore(load_c166_config().default_dpp)


def shared_store() -> ExtensionStateStore:
    """The store every registered C166 variant reads and writes."""
    return _shared_store


def set_shared_store(store: ExtensionStateStore) -> None:
    global _shared_store
    _shared_store = store


class C166Core:
    """Decode, classify, render and lift for one CPU variant.

    Decoding failures (unknown opcodes, unmodelled forms, short buffers) turn
    into ``None``; anything else is reported through Binary Ninja's log and
    re-raised.
    """

    def __init__(
        self,
        variant: CpuVariant,
        store: Optional[ExtensionStateStore] = None,
        config: Optional[C166Config] = None,
    ) -> None:
        self.variant = variant
        self.store = store if store is not None else shared_store()
        self.resolver = Resolver(self.store)
        self.lifter = Lifter(self.resolver, variant, config)
        self.renderer = Renderer(self.resolver)

    def decode(self, data: bytes, addr: int) -> Optional[DecodedInstr]:
        try:
            return decode_opcode(data, addr)
        except C166Error as exc:
            logger.debug("%s: cannot decode at %#x: %s", self.variant.name, addr, exc)
            return None

    def instruction_info(self, data: bytes, addr: int, info=None):
        try:
            decoded = self.decode(data, addr)
            if decoded is None:
                return None
            if info is None:
                info = InstructionInfo()
            Classification(decoded.length, shape_of(decoded, addr)).apply_to(info)
            return info
        except Exception as exc:
            log_error(
                f"{self.variant.name}.get_instruction_info() failed at {addr:#x}: {exc}"
            )
            raise

    def instruction_tokens(self, data: bytes, addr: int):
        decoded = self.decode(data, addr)
        if decoded is None:
            return None
        return self.renderer.render(decoded, addr), decoded.length

    def instruction_text(self, data: bytes, addr: int):
        try:
            rendered = self.instruction_tokens(data, addr)
            if rendered is None:
                return None
            tokens, length = rendered
            return asm(tokens), length
        except Exception as exc:
            log_error(
                f"{self.variant.name}.get_instruction_text() failed at {addr:#x}: {exc}"
            )
            raise

    def instruction_low_level_il(self, data: bytes, addr: int, il) -> Optional[int]:
        try:
            decoded = self.decode(data, addr)
            if decoded is None:
                return None
            return self.lifter.lift(il, decoded, addr)
        except Exception as exc:
            log_error(
                f"{self.variant.name}.get_instruction_low_level_il() failed at {addr:#x}: {exc}"
            )
            raise


_cores: Dict[str, C166Core] = {}


def core_for(variant: CpuVariant) -> C166Core:
    # Rebuilt whenever the shared store has been swapped out.
    core = _cores.get(variant.name)
    if core is None or core.store is not shared_store():
        core = _cores[variant.name] = C166Core(variant, shared_store())
    return core


def register_infos(variant: CpuVariant) -> Dict[str, RegisterInfo]:
    regs: Dict[str, RegisterInfo] = {name: RegisterInfo(name, 2) for name in GPRS}
    # rl<n>/rh<n> are the low/high byte of r<n>
    for index, name in enumerate(BYTE_REGS):
        regs[name] = RegisterInfo(GPRS[index >> 1], 1, index & 1)
    for name in SYSTEM_REGS:
        if name == VIRTUAL_LR:
            if variant.link_reg is not None:
                regs[name] = RegisterInfo(name, 3)
            continue
        regs[name] = RegisterInfo(name, 2)
    return regs


FLAG_ROLES = {
    FLAG_N: "NegativeSignFlagRole",
    FLAG_C: "CarryFlagRole",
    FLAG_V: "OverflowFlagRole",
    FLAG_Z: "ZeroFlagRole",
    FLAG_E: "SpecialFlagRole",
}


def make_architecture(variant: CpuVariant) -> Type[Architecture]:
    """Build the Binary Ninja architecture class for ``variant``."""

    attrs = {
        "name": variant.name,
        "endianness": Endianness.LittleEndian,
        "address_size": 3,
        "default_int_size": 2,
        "max_instr_length": 4,
        "instr_alignment": 2,
        "regs": register_infos(variant),
        "stack_pointer": variant.stack_pointer,
        "flags": list(FLAGS),
        "flag_roles": {flag: FlagRole[role] for flag, role in FLAG_ROLES.items()},
        "flag_write_types": list(FLAG_WRITE_TYPES),
        "flags_written_by_flag_write_type": {
            name: list(flags) for name, flags in FLAG_WRITE_TYPES.items()
        },
        "get_instruction_info": lambda self, data, addr: core_for(
            variant
        ).instruction_info(data, addr),
        "get_instruction_text": lambda self, data, addr: core_for(
            variant
        ).instruction_text(data, addr),
        "get_instruction_low_level_il": lambda self, data, addr, il: core_for(
            variant
        ).instruction_low_level_il(data, addr, il),
    }
    if variant.link_reg is not None:
        attrs["link_reg"] = variant.link_reg
    class_name = f"C166Architecture_{variant.name}"
    return type(class_name, (Architecture,), attrs)


def make_calling_convention(spec: CallingConventionSpec) -> Type[CallingConvention]:
    attrs = {
        "name": spec.name,
        "int_arg_regs": list(spec.int_arg_regs),
        "caller_saved_regs": list(spec.caller_saved_regs),
        "callee_saved_regs": list(spec.callee_saved_regs),
        "int_return_reg": spec.int_return_reg,
        "stack_reserved_for_arg_regs": spec.stack_reserved_for_arg_regs,
    }
    if spec.high_int_return_reg is not None:
        attrs["high_int_return_reg"] = spec.high_int_return_reg
    class_name = "C166CallingConvention_" + spec.name.replace("-", "_")
    return type(class_name, (CallingConvention,), attrs)


def register_all() -> List[Tuple[Architecture, CallingConvention]]:
    """Register every variant and its calling convention with Binary Ninja."""
    registered = []
    for variant in VARIANTS.values():
        arch_cls = make_architecture(variant)
        arch_cls.register()
        arch = Architecture[variant.name]
        cc_cls = make_calling_convention(variant.calling_convention)
        cc = cc_cls(arch, variant.calling_convention.name)
        arch.register_calling_convention(cc)
        arch.default_calling_convention = cc
        registered.append((arch, cc))
    return registered


__all__ = [
    "C166Core",
    "core_for",
    "shared_store",
    "set_shared_store",
    "register_infos",
    "make_architecture",
    "make_calling_convention",
    "register_all",
]
